"""
Tests for the chronological split and the feature cache.
"""
from unittest.mock import patch

import pytest

from crypto_forecast import dataset
from crypto_forecast.dataset import FeatureCache, split
from crypto_forecast.errors import InsufficientDataError
from crypto_forecast.indicators import compute_features
from tests.conftest import make_series


class TestSplit:

    def test_boundary_is_floor(self, synthetic_series):
        vectors = compute_features(synthetic_series)  # 85 vectors
        parts = split(vectors, 0.8)
        assert parts.boundary == int(len(vectors) * 0.8) == 68
        assert len(parts.train) == 68
        assert len(parts.test) == 17

    def test_reconstructs_input_in_order(self, synthetic_series):
        vectors = compute_features(synthetic_series)
        parts = split(vectors, 0.8)
        assert list(parts.train) + list(parts.test) == vectors

    def test_chronological(self, synthetic_series):
        parts = split(compute_features(synthetic_series), 0.8)
        assert parts.train[-1].source_index < parts.test[0].source_index

    def test_deterministic(self, synthetic_series):
        vectors = compute_features(synthetic_series)
        assert split(vectors, 0.7) == split(vectors, 0.7)

    def test_small_test_partition_raises(self):
        """12 vectors at 0.8 -> 9 train / 3 test, below the minimum of 5."""
        vectors = list(range(12))
        with pytest.raises(InsufficientDataError):
            split(vectors, 0.8)

    def test_small_train_partition_raises(self):
        with pytest.raises(InsufficientDataError):
            split(list(range(20)), 0.4)

    def test_minimum_sizes_accepted(self):
        parts = split(list(range(15)), 0.7)
        assert (len(parts.train), len(parts.test)) == (10, 5)

    @pytest.mark.parametrize('ratio', [0, 1, -0.2, 1.5])
    def test_invalid_ratio(self, ratio):
        with pytest.raises(ValueError):
            split(list(range(100)), ratio)


class TestFeatureCache:

    def test_repeated_calls_hit_cache(self, synthetic_series):
        cache = FeatureCache()
        with patch.object(dataset, 'compute_feature_set', wraps=dataset.compute_feature_set) as compute:
            first = cache.get_or_compute(synthetic_series)
            second = cache.get_or_compute(synthetic_series)
        assert first is second
        assert compute.call_count == 1
        assert (cache.hits, cache.misses) == (1, 1)

    def test_equal_content_shares_entry(self):
        prices = [float(p) for p in range(100, 140)]
        cache = FeatureCache()
        first = cache.get_or_compute(make_series(prices))
        second = cache.get_or_compute(make_series(list(prices)))
        assert first is second

    def test_changed_series_recomputes(self):
        prices = [float(p) for p in range(100, 140)]
        cache = FeatureCache()
        first = cache.get_or_compute(make_series(prices))
        second = cache.get_or_compute(make_series(prices[::-1]))
        assert first is not second
        assert first.fingerprint != second.fingerprint
        assert len(cache) == 2

    def test_invalidate(self, synthetic_series):
        cache = FeatureCache()
        cache.get_or_compute(synthetic_series)
        cache.invalidate()
        assert len(cache) == 0
        cache.get_or_compute(synthetic_series)
        assert cache.misses == 2
