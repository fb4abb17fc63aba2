"""
Core value types shared across the forecasting pipeline.

Everything here is immutable once built: a new series, feature set or
scaler replaces the old one wholesale.
"""
import hashlib
from dataclasses import dataclass, field, asdict
from datetime import datetime
from enum import Enum
from typing import Optional, Tuple

import numpy as np
import pandas as pd


class Provenance(Enum):
    """Where the observations of a series came from."""
    LIVE = "live"  # retrieved price history
    ENHANCED = "enhanced"  # synthetic walk anchored to a live price
    SYNTHETIC = "synthetic"  # no live data at all


@dataclass(frozen=True)
class Observation:
    timestamp: datetime
    price: float
    volume: float


@dataclass(frozen=True)
class MarketSeries:
    """Ordered observations for one instrument."""
    instrument: str
    observations: Tuple[Observation, ...]
    provenance: Provenance
    current_price: Optional[float] = None

    def __len__(self):
        return len(self.observations)

    @property
    def prices(self) -> np.ndarray:
        return np.array([o.price for o in self.observations], dtype=float)

    @property
    def volumes(self) -> np.ndarray:
        return np.array([o.volume for o in self.observations], dtype=float)

    @property
    def last_price(self) -> float:
        return self.observations[-1].price

    @property
    def fingerprint(self) -> str:
        """Order-sensitive content hash of the price (and volume) sequence."""
        h = hashlib.sha256(self.prices.tobytes())
        h.update(self.volumes.tobytes())
        return h.hexdigest()[:16]

    def to_frame(self) -> pd.DataFrame:
        return pd.DataFrame(
            {
                'Date': [o.timestamp for o in self.observations],
                'Price': [o.price for o in self.observations],
                'Volume': [o.volume for o in self.observations],
            }
        )

    def stats(self) -> dict:
        start = self.observations[0].price
        current = self.current_price if self.current_price is not None else self.last_price
        return {
            'data_points': len(self.observations),
            'current_price': current,
            'price_change_pct': (current / start - 1) * 100,
            'source': self.provenance.value,
        }


@dataclass(frozen=True)
class FeatureVector:
    values: Tuple[float, ...]
    target: Optional[float]  # None for the latest (inference-only) row
    source_index: int
    timestamp: datetime
    price: float

    @property
    def dimension(self) -> int:
        return len(self.values)


@dataclass(frozen=True)
class FeatureSet:
    vectors: Tuple[FeatureVector, ...]
    latest: FeatureVector
    fingerprint: str


@dataclass(frozen=True)
class Scaler:
    """Per-dimension z-score parameters. stds never contain zeros."""
    means: np.ndarray
    stds: np.ndarray

    @property
    def dimension(self) -> int:
        return len(self.means)


@dataclass(frozen=True)
class TrainingConfig:
    architecture: str
    hidden_units: int
    epochs: int
    learning_rate: float
    batch_size: int
    validation_split: float


@dataclass(frozen=True)
class TrainingProgress:
    epoch: int
    total_epochs: int
    training_loss: float
    validation_loss: float
    mean_absolute_error: float
    progress_pct: float = field(init=False)

    def __post_init__(self):
        object.__setattr__(self, 'progress_pct', self.epoch / self.total_epochs * 100)

    def to_dict(self):
        return asdict(self)


@dataclass(frozen=True)
class Metrics:
    mae: float
    mse: float
    rmse: float
    r2: float
    accuracy_pct: float
    sample_size: int

    def to_dict(self):
        return asdict(self)


@dataclass(frozen=True)
class Prediction:
    instrument: str
    architecture: str
    price: float
    current_price: float

    @property
    def change_pct(self) -> float:
        return (self.price / self.current_price - 1) * 100
