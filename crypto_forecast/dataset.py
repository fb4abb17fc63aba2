"""
Chronological train/test splitting and the fingerprint-keyed feature cache.
"""
import logging
from dataclasses import dataclass
from typing import Dict, Sequence, Tuple

from .config import MIN_TRAIN_SIZE, MIN_TEST_SIZE
from .errors import InsufficientDataError
from .indicators import compute_feature_set
from .types import FeatureSet, FeatureVector, MarketSeries

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class DatasetSplit:
    train: Tuple[FeatureVector, ...]
    test: Tuple[FeatureVector, ...]
    boundary: int


def split(vectors: Sequence[FeatureVector], train_ratio: float) -> DatasetSplit:
    """
    Contiguous prefix/suffix split at floor(n * train_ratio).

    Never shuffles: everything in `test` comes strictly after everything
    in `train`.
    """
    if not 0 < train_ratio < 1:
        raise ValueError(f'train_ratio must be in (0, 1), got {train_ratio}')
    vectors = tuple(vectors)
    boundary = int(len(vectors) * train_ratio)
    train, test = vectors[:boundary], vectors[boundary:]
    if len(train) < MIN_TRAIN_SIZE or len(test) < MIN_TEST_SIZE:
        raise InsufficientDataError(
            f'Split of {len(vectors)} vectors gives {len(train)} train / {len(test)} test; '
            f'need at least {MIN_TRAIN_SIZE} / {MIN_TEST_SIZE}'
        )
    return DatasetSplit(train=train, test=test, boundary=boundary)


class FeatureCache:
    """Feature sets keyed by the content fingerprint of their series."""

    def __init__(self):
        self._entries: Dict[str, FeatureSet] = {}
        self.hits = 0
        self.misses = 0

    def __len__(self):
        return len(self._entries)

    def get_or_compute(self, series: MarketSeries) -> FeatureSet:
        key = series.fingerprint
        cached = self._entries.get(key)
        if cached is not None:
            self.hits += 1
            return cached
        self.misses += 1
        feature_set = compute_feature_set(series)
        self._entries[key] = feature_set
        logger.info('Processed %d feature vectors for %s', len(feature_set.vectors), series.instrument)
        return feature_set

    def invalidate(self):
        self._entries.clear()
