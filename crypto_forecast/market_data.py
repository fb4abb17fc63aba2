"""
Market data acquisition.

`acquire` always hands back a usable series: live history when the source
provides enough of it, otherwise a synthetic random walk (anchored to the
live price when at least that is available).
"""
import logging
import math
import threading
from datetime import datetime, timedelta, timezone
from typing import Callable, Optional

import numpy as np
import pandas as pd

from .config import (
    INSTRUMENTS, USE_HISTORY, HISTORY_DAYS, SYNTHETIC_DATA_POINTS,
    MIN_SERIES_LENGTH, VOLATILITY, VOLUME_MULTIPLIER, PRICE_REFRESH_INTERVAL,
)
from .errors import DataFetchError, UnknownInstrumentError
from .market_client import MarketDataClient
from .types import MarketSeries, Observation, Provenance

logger = logging.getLogger(__name__)


def get_instrument(key: str) -> dict:
    try:
        return INSTRUMENTS[key]
    except KeyError:
        raise UnknownInstrumentError(key) from None


def instrument_tier(key: str) -> str:
    return 'enhanced' if get_instrument(key)['enhanced'] else 'standard'


def _today_utc() -> datetime:
    return pd.Timestamp.now(tz='UTC').normalize().to_pydatetime()


def generate_synthetic_series(
    instrument: str,
    current_price: Optional[float] = None,
    recent_change: float = 0.0,
    points: int = SYNTHETIC_DATA_POINTS,
    rng: Optional[np.random.Generator] = None,
    end: Optional[datetime] = None,
) -> MarketSeries:
    """
    Bounded random walk with a trend toward the latest price, a slow sine
    cycle and a weekday/weekend effect. Daily observations ending at `end`.

    When `current_price` is given the walk is anchored to it and the final
    observation is pinned to that price.
    """
    meta = get_instrument(instrument)
    rng = rng if rng is not None else np.random.default_rng()
    end = end or _today_utc()
    points = max(points, MIN_SERIES_LENGTH)

    latest = current_price or meta['base_price']
    volatility = VOLATILITY[instrument_tier(instrument)]
    floor = latest * 0.1

    # approximate price ~30 days ago from the 24h change
    price = latest * (1 - (recent_change / 100) * 0.3)
    observations = []
    for i in range(points):
        progress = i / (points - 1)
        trend = (latest - price) / price * 0.002 * progress + math.sin(i / 14) * 0.01
        weekend = 0.98 if i % 7 in (0, 6) else 1.02
        walk = (rng.random() - 0.5) * volatility

        price = max(price * (1 + trend + walk) * weekend, floor)
        # volatile days trade more
        volume = VOLUME_MULTIPLIER * (0.5 + rng.random()) * (abs(walk) * 10 + 0.5)
        observations.append(Observation(
            timestamp=end - timedelta(days=points - 1 - i),
            price=float(price),
            volume=float(volume),
        ))

    if current_price:
        last = observations[-1]
        observations[-1] = Observation(last.timestamp, float(current_price), last.volume)

    return MarketSeries(
        instrument=instrument,
        observations=tuple(observations),
        provenance=Provenance.ENHANCED if current_price else Provenance.SYNTHETIC,
        current_price=observations[-1].price,
    )


def series_from_history(instrument: str, prices, volumes) -> MarketSeries:
    """
    Build a live series from (timestamp_ms, value) pairs.

    Points are merged by timestamp, deduplicated (last one wins) and sorted.
    Raises DataFetchError when fewer than MIN_SERIES_LENGTH usable points remain.
    """
    merged = {}
    for ts, price in prices:
        if price is not None and math.isfinite(price) and price > 0:
            merged[ts] = [price, 0.0]
    for ts, volume in volumes:
        if ts in merged and volume is not None and math.isfinite(volume):
            merged[ts][1] = max(float(volume), 0.0)

    if len(merged) < MIN_SERIES_LENGTH:
        raise DataFetchError(
            f"History for {instrument} has {len(merged)} points, need {MIN_SERIES_LENGTH}"
        )

    observations = tuple(
        Observation(
            timestamp=datetime.fromtimestamp(ts / 1000, tz=timezone.utc),
            price=float(p),
            volume=v,
        )
        for ts, (p, v) in sorted(merged.items())
    )
    return MarketSeries(
        instrument=instrument,
        observations=observations,
        provenance=Provenance.LIVE,
        current_price=observations[-1].price,
    )


def acquire(
    instrument: str,
    client: Optional[MarketDataClient] = None,
    seed: Optional[int] = None,
    use_history: bool = USE_HISTORY,
) -> MarketSeries:
    """
    Fetch-or-synthesize a series for `instrument`.

    Never raises DataFetchError: any failure of the market data source
    degrades to synthetic data. Unknown instruments still raise.
    """
    meta = get_instrument(instrument)
    client = client or MarketDataClient()
    rng = np.random.default_rng(seed)

    if use_history:
        try:
            prices, volumes = client.get_history(meta['api_id'], HISTORY_DAYS)
            series = series_from_history(instrument, prices, volumes)
            logger.info("Loaded %d live observations for %s", len(series), meta['name'])
            return series
        except DataFetchError as e:
            logger.warning("History unavailable for %s: %s", meta['name'], e)

    try:
        price, change = client.get_price(meta['api_id'])
    except DataFetchError as e:
        logger.warning("API unavailable for %s, using synthetic data: %s", meta['name'], e)
        return generate_synthetic_series(instrument, rng=rng)

    logger.info("Real %s price: $%s (%+.2f%% 24h)", meta['name'], price, change)
    return generate_synthetic_series(instrument, current_price=price, recent_change=change, rng=rng)


class PriceRefresher:
    """
    Polls the live price on a background thread.

    Failures are logged and retried on the next interval; they never
    reach the session.
    """

    def __init__(self, client: MarketDataClient, api_id: str,
                 on_price: Callable[[float], None],
                 interval: float = PRICE_REFRESH_INTERVAL):
        self.client = client
        self.api_id = api_id
        self.on_price = on_price
        self.interval = interval
        self._stop = threading.Event()
        self._thread = None

    @property
    def running(self):
        return self._thread is not None and self._thread.is_alive()

    def start(self):
        if self.running:
            return
        self._stop.clear()
        self._thread = threading.Thread(
            target=self._run, name=f"price-refresh-{self.api_id}", daemon=True
        )
        self._thread.start()

    def stop(self, timeout=None):
        self._stop.set()
        if self._thread is not None and self._thread is not threading.current_thread():
            self._thread.join(timeout)
        self._thread = None

    def refresh_once(self):
        try:
            price, _ = self.client.get_price(self.api_id)
        except DataFetchError as e:
            logger.info("Price update failed for %s: %s", self.api_id, e)
            return None
        self.on_price(price)
        logger.debug("Price updated for %s: %s", self.api_id, price)
        return price

    def _run(self):
        while not self._stop.wait(self.interval):
            self.refresh_once()
