# crypto_forecast/predictor.py
import numpy as np

from .errors import PredictionNotReadyError
from .utils import apply_scaler


def ensure_ready(model, scaler):
    if model is None or not model.ready:
        raise PredictionNotReadyError('No trained model available. Train a model first.')
    if scaler is None:
        raise PredictionNotReadyError('No training-time scaler available. Train a model first.')
    return model, scaler


def predict_batch(model, scaler, vectors) -> np.ndarray:
    """
    vectors: raw (unscaled) feature vectors.
    They are scaled with the scaler captured at training time, never a new one.
    """
    model, scaler = ensure_ready(model, scaler)
    return model.predict(apply_scaler(vectors, scaler))


def predict(model, scaler, latest_features) -> float:
    pred = predict_batch(model, scaler, latest_features)
    return float(pred[0])
