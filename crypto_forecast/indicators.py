"""
Rolling technical indicators and the per-step feature vectors built from them.

Every aggregate is updated incrementally during one left-to-right pass, so
a series of n observations costs O(n) regardless of the window sizes.
"""
from collections import deque
from typing import List

import numpy as np

from .config import MOVING_AVERAGES, VOLATILITY_WINDOW, VOLUME_WINDOW, RSI_PERIOD, FEATURE_NAMES
from .errors import InsufficientDataError
from .types import FeatureSet, FeatureVector, MarketSeries

# first index at which every indicator has a full lookback
WARMUP = max(RSI_PERIOD, VOLATILITY_WINDOW, VOLUME_WINDOW, *MOVING_AVERAGES)
FEATURE_DIM = len(FEATURE_NAMES)


class RollingWindow:
    """Fixed-size trailing window with running sum and sum of squares."""

    def __init__(self, size: int):
        self.size = size
        self._values = deque()
        self.total = 0.0
        self.total_sq = 0.0
        self._flat_run = 0  # trailing run of identical values

    def __len__(self):
        return len(self._values)

    def push(self, value: float):
        if self._values and value == self._values[-1]:
            self._flat_run += 1
        else:
            self._flat_run = 1
        self._values.append(value)
        self.total += value
        self.total_sq += value * value
        if len(self._values) > self.size:
            old = self._values.popleft()
            self.total -= old
            self.total_sq -= old * old

    @property
    def mean(self) -> float:
        return self.total / len(self._values)

    @property
    def std(self) -> float:
        """Population standard deviation; exactly 0 for a constant window."""
        n = len(self._values)
        if n < 2 or self._flat_run >= n:
            return 0.0
        mean = self.total / n
        return float(np.sqrt(max(self.total_sq / n - mean * mean, 0.0)))


class WilderRSI:
    """
    Wilder-smoothed RSI fed one price change at a time.

    The first `period` changes seed simple averages; after that
    avg = (avg * (period - 1) + new) / period.
    """

    def __init__(self, period: int = RSI_PERIOD):
        self.period = period
        self._count = 0
        self._avg_gain = 0.0
        self._avg_loss = 0.0

    def update(self, change: float) -> float:
        gain = change if change > 0 else 0.0
        loss = -change if change < 0 else 0.0
        self._count += 1
        if self._count <= self.period:
            # still seeding: accumulate sums, turn them into averages at the end
            self._avg_gain += gain
            self._avg_loss += loss
            if self._count == self.period:
                self._avg_gain /= self.period
                self._avg_loss /= self.period
        else:
            self._avg_gain = (self._avg_gain * (self.period - 1) + gain) / self.period
            self._avg_loss = (self._avg_loss * (self.period - 1) + loss) / self.period
        return self.value

    @property
    def value(self) -> float:
        if self._count < self.period:
            return 50.0
        if self._avg_loss == 0:
            return 100.0
        rs = self._avg_gain / self._avg_loss
        return 100.0 - 100.0 / (1.0 + rs)


def momentum(prices, index: int) -> float:
    """One-step return; 0 at the first index."""
    if index == 0:
        return 0.0
    return float(prices[index] / prices[index - 1] - 1)


def rsi_series(prices, period: int = RSI_PERIOD) -> np.ndarray:
    """RSI for every index; 50 where there is not enough history."""
    out = np.full(len(prices), 50.0)
    rsi = WilderRSI(period)
    for i in range(1, len(prices)):
        out[i] = rsi.update(prices[i] - prices[i - 1])
    return out


def compute_feature_set(series: MarketSeries) -> FeatureSet:
    """
    Feature vectors for every index from WARMUP to the end of the series.

    Row i carries (ma5, ma10, momentum, volatility, volume_ratio, rsi) and
    the target price[i + 1]. The final index has no successor; it is kept
    aside as `latest` for live inference.
    """
    prices = series.prices
    volumes = series.volumes
    n = len(prices)
    if n < WARMUP + 2:
        raise InsufficientDataError(
            f"Need at least {WARMUP + 2} observations for feature processing, got {n}"
        )

    short_ma, long_ma = (RollingWindow(w) for w in MOVING_AVERAGES)
    # centred on the first price to keep the sum of squares well conditioned
    spread = RollingWindow(VOLATILITY_WINDOW)
    volume_window = RollingWindow(VOLUME_WINDOW)
    rsi = WilderRSI(RSI_PERIOD)
    origin = prices[0]

    rows = []
    for i in range(n):
        price = prices[i]
        short_ma.push(price)
        long_ma.push(price)
        spread.push(price - origin)
        volume_window.push(volumes[i])
        if i > 0:
            rsi.update(price - prices[i - 1])

        if i < WARMUP:
            continue

        avg_volume = volume_window.mean
        rows.append(FeatureVector(
            values=tuple(float(v) for v in (
                short_ma.mean,
                long_ma.mean,
                momentum(prices, i),
                spread.std,
                volumes[i] / avg_volume if avg_volume != 0 else 1.0,
                rsi.value,
            )),
            target=float(prices[i + 1]) if i + 1 < n else None,
            source_index=i,
            timestamp=series.observations[i].timestamp,
            price=float(price),
        ))

    return FeatureSet(vectors=tuple(rows[:-1]), latest=rows[-1], fingerprint=series.fingerprint)


def compute_features(series: MarketSeries) -> List[FeatureVector]:
    return list(compute_feature_set(series).vectors)
