"""
Shared fixtures for the forecasting tests.
"""
from datetime import datetime, timedelta, timezone
from unittest.mock import MagicMock

import numpy as np
import pytest

from crypto_forecast.errors import DataFetchError
from crypto_forecast.market_client import MarketDataClient
from crypto_forecast.market_data import generate_synthetic_series
from crypto_forecast.types import MarketSeries, Observation, Provenance

START = datetime(2024, 1, 1, tzinfo=timezone.utc)


def make_series(prices, volumes=None, instrument='btc'):
    """Build a daily MarketSeries from plain price/volume lists."""
    if volumes is None:
        volumes = [1_000_000.0] * len(prices)
    observations = tuple(
        Observation(START + timedelta(days=i), float(p), float(v))
        for i, (p, v) in enumerate(zip(prices, volumes))
    )
    return MarketSeries(instrument, observations, Provenance.SYNTHETIC, float(prices[-1]))


@pytest.fixture
def synthetic_series():
    """100 deterministic synthetic BTC observations."""
    return generate_synthetic_series(
        'btc', rng=np.random.default_rng(7), end=datetime(2024, 6, 1, tzinfo=timezone.utc)
    )


@pytest.fixture
def trending_series():
    """Gentle uptrend with a weekly wiggle and noisy volume."""
    rng = np.random.default_rng(3)
    n = 120
    prices = 100 + np.arange(n) * 0.5 + np.sin(np.arange(n) / 3) * 2
    volumes = 1_000_000 * (0.5 + rng.random(n))
    return make_series(prices, volumes)


@pytest.fixture
def failing_client():
    """Market data client whose every request fails."""
    client = MagicMock(spec=MarketDataClient)
    client.get_price.side_effect = DataFetchError('offline')
    client.get_history.side_effect = DataFetchError('offline')
    return client


@pytest.fixture
def live_client():
    """Client that returns a live price but no history."""
    client = MagicMock(spec=MarketDataClient)
    client.get_price.return_value = (50000.0, 2.5)
    client.get_history.side_effect = DataFetchError('no history')
    return client
