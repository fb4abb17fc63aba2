"""
Regression metrics for a trained forecaster.
"""
import numpy as np
from sklearn.metrics import mean_absolute_error, mean_squared_error

from .errors import ValidationError
from .types import Metrics


def evaluate(predictions, actuals) -> Metrics:
    """
    Compare paired predictions and actual prices.

    accuracy_pct is 100 * (1 - MAE / mean(actual)), floored at 0. It is a
    normalized-error score, not a classification accuracy.
    """
    preds = np.asarray(predictions, dtype=float).ravel()
    acts = np.asarray(actuals, dtype=float).ravel()
    if preds.size == 0 or preds.size != acts.size:
        raise ValidationError(
            f'Predictions and actuals must be non-empty and equal length '
            f'(got {preds.size} and {acts.size})'
        )
    if not (np.all(np.isfinite(preds)) and np.all(np.isfinite(acts))):
        raise ValidationError('Predictions and actuals must be finite')

    n = acts.size
    mae = float(mean_absolute_error(acts, preds))
    mse = float(mean_squared_error(acts, preds))
    mean_actual = float(acts.mean())

    total_sq = float(np.sum((acts - mean_actual) ** 2))
    r2 = 0.0 if total_sq == 0 else 1 - (mse * n) / total_sq

    accuracy = max(0.0, (1 - mae / mean_actual) * 100) if mean_actual != 0 else 0.0

    return Metrics(
        mae=mae,
        mse=mse,
        rmse=float(np.sqrt(mse)),
        r2=float(r2),
        accuracy_pct=float(accuracy),
        sample_size=n,
    )
