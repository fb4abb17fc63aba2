# crypto_forecast/utils.py
import numpy as np
from sklearn.preprocessing import StandardScaler

from .errors import InsufficientDataError
from .types import FeatureVector, Scaler


def feature_matrix(vectors) -> np.ndarray:
    """
    Input:
      vectors: FeatureVectors, a single FeatureVector, or anything array-like
    Return:
      float array of shape (num_vectors, dimension)
    """
    if isinstance(vectors, FeatureVector):
        vectors = [vectors]
    rows = [v.values if isinstance(v, FeatureVector) else v for v in vectors]
    return np.atleast_2d(np.asarray(rows, dtype=float))


def target_vector(vectors) -> np.ndarray:
    return np.array([v.target for v in vectors], dtype=float)


def fit_scaler(vectors) -> Scaler:
    """
    Per-dimension mean / population std. A zero-variance dimension gets
    std=1 so it passes through centred but unscaled.

    Only ever call this on the training partition.
    """
    X = feature_matrix(vectors) if len(vectors) else np.empty((0, 0))
    if X.shape[0] == 0:
        raise InsufficientDataError('Cannot fit a scaler on an empty vector set')
    sk = StandardScaler().fit(X)
    return Scaler(means=sk.mean_.copy(), stds=sk.scale_.copy())


def apply_scaler(vectors, scaler: Scaler) -> np.ndarray:
    X = feature_matrix(vectors)
    if X.shape[1] != scaler.dimension:
        raise ValueError(f'Expected {scaler.dimension} features, got {X.shape[1]}')
    return (X - scaler.means) / scaler.stds
