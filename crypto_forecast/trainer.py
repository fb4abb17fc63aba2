# crypto_forecast/trainer.py
import logging
import math
import threading
from concurrent.futures import ThreadPoolExecutor, wait
from enum import Enum
from typing import Callable, Optional

import numpy as np
from sklearn.preprocessing import MinMaxScaler
from tensorflow.keras.models import Sequential
from tensorflow.keras.layers import Input, Dense, Dropout, BatchNormalization, Reshape, LSTM
from tensorflow.keras.optimizers import Adam
from tensorflow.keras.callbacks import Callback

from .config import MODEL_CONFIG, BATCH_SIZE, VALIDATION_SPLIT
from .errors import ForecastError, ModelTrainingError, TrainingCancelledError, PredictionNotReadyError
from .indicators import FEATURE_DIM
from .types import TrainingConfig, TrainingProgress

logger = logging.getLogger(__name__)

ProgressObserver = Callable[[TrainingProgress], None]


class ArchitectureKind(Enum):
    NEURAL = 'neural'
    DEEP = 'deep'
    LSTM = 'lstm'

    @classmethod
    def parse(cls, value):
        if isinstance(value, cls):
            return value
        try:
            return cls(str(value).strip().lower())
        except ValueError:
            raise ValueError(f'Unknown model type: {value}') from None


def get_training_config(kind, tier='standard', epochs=None) -> TrainingConfig:
    kind = ArchitectureKind.parse(kind)
    if epochs is not None and epochs < 1:
        raise ValueError(f'epochs must be at least 1, got {epochs}')
    params = MODEL_CONFIG[kind.value][tier]
    return TrainingConfig(
        architecture=kind.value,
        hidden_units=params['hidden_units'],
        epochs=epochs if epochs is not None else params['epochs'],
        learning_rate=params['learning_rate'],
        batch_size=BATCH_SIZE,
        validation_split=VALIDATION_SPLIT,
    )


def describe_architecture(kind, config: TrainingConfig) -> str:
    kind = ArchitectureKind.parse(kind)
    h = config.hidden_units
    if kind is ArchitectureKind.NEURAL:
        return f'Neural Network with {h} neurons'
    if kind is ArchitectureKind.DEEP:
        return f'Deep Neural Network with batch normalization ({h * 2} -> {h} -> {h // 2} neurons)'
    return f'LSTM Network with {h} memory units for time series analysis'


def build_neural_network(config: TrainingConfig, input_dim: int):
    h = config.hidden_units
    return Sequential([
        Input(shape=(input_dim,)),
        Dense(h, activation='relu', kernel_initializer='glorot_normal'),
        Dropout(0.2),
        Dense(h // 2, activation='relu'),
        Dense(1, activation='linear'),
    ])


def build_deep_network(config: TrainingConfig, input_dim: int):
    h = config.hidden_units
    return Sequential([
        Input(shape=(input_dim,)),
        Dense(h * 2, activation='relu'),
        BatchNormalization(),
        Dropout(0.3),
        Dense(h, activation='relu'),
        BatchNormalization(),
        Dropout(0.2),
        Dense(h // 2, activation='relu'),
        Dropout(0.1),
        Dense(1, activation='linear'),
    ])


def build_lstm_network(config: TrainingConfig, input_dim: int):
    # the feature vector is read as a short sequence of scalars
    h = config.hidden_units
    return Sequential([
        Input(shape=(input_dim,)),
        Reshape((input_dim, 1)),
        LSTM(h, return_sequences=False, dropout=0.2, recurrent_dropout=0.2),
        Dense(h // 2, activation='relu'),
        Dropout(0.2),
        Dense(1, activation='linear'),
    ])


_BUILDERS = {
    ArchitectureKind.NEURAL: build_neural_network,
    ArchitectureKind.DEEP: build_deep_network,
    ArchitectureKind.LSTM: build_lstm_network,
}


class ForecastModel:
    """
    A compiled network plus the target scaler fitted during training.

    Owned by a ModelTrainer. `dispose` releases the network; it is safe to
    call more than once but only the first call releases anything.
    """

    def __init__(self, kind: ArchitectureKind, config: TrainingConfig, network):
        self.kind = kind
        self.config = config
        self.network = network
        self.target_scaler = None
        self.trained = False
        self.history = None
        self._cancelled = threading.Event()
        self._disposed = False

    @property
    def disposed(self):
        return self._disposed

    @property
    def cancelled(self):
        return self._cancelled.is_set()

    @property
    def ready(self):
        return self.trained and not self._disposed

    def cancel(self):
        self._cancelled.set()

    def predict(self, X) -> np.ndarray:
        if not self.ready:
            raise PredictionNotReadyError('No trained model available for prediction')
        scaled = self.network.predict(np.asarray(X, dtype=float), verbose=0)
        return self.target_scaler.inverse_transform(scaled.reshape(-1, 1)).ravel()

    def dispose(self) -> bool:
        if self._disposed:
            return False
        self._cancelled.set()
        self._disposed = True
        self.network = None
        self.target_scaler = None
        return True


class _EpochObserver(Callback):
    """Forwards per-epoch logs and honours cancellation between batches."""

    def __init__(self, forecast_model: ForecastModel, total_epochs: int,
                 on_progress: Optional[ProgressObserver]):
        super().__init__()
        self.forecast_model = forecast_model
        self.total_epochs = total_epochs
        self.on_progress = on_progress
        self.diverged = False
        self.last_progress = None

    def on_train_batch_end(self, batch, logs=None):
        if self.forecast_model.cancelled:
            self.model.stop_training = True

    def on_epoch_end(self, epoch, logs=None):
        logs = logs or {}
        loss = float(logs.get('loss', math.nan))
        val_loss = float(logs.get('val_loss', 0.0))
        if not (math.isfinite(loss) and math.isfinite(val_loss)):
            self.diverged = True
            self.model.stop_training = True
            return
        if self.forecast_model.cancelled:
            self.model.stop_training = True
            return
        progress = TrainingProgress(
            epoch=epoch + 1,
            total_epochs=self.total_epochs,
            training_loss=loss,
            validation_loss=val_loss,
            mean_absolute_error=float(logs.get('mae', 0.0)),
        )
        self.last_progress = progress
        logger.debug('Epoch %d/%d - loss: %.4f', progress.epoch, progress.total_epochs, loss)
        if self.on_progress:
            self.on_progress(progress)


class TrainingRun:
    """Handle on a fit running in the background."""

    def __init__(self, model: ForecastModel, future):
        self.model = model
        self._future = future

    @property
    def done(self):
        return self._future.done()

    def cancel(self):
        self.model.cancel()

    def wait(self, timeout=None) -> bool:
        wait([self._future], timeout=timeout)
        return self.done

    def result(self, timeout=None) -> ForecastModel:
        return self._future.result(timeout)

    def exception(self, timeout=None):
        return self._future.exception(timeout)

    def add_done_callback(self, fn):
        self._future.add_done_callback(lambda _: fn(self))


class ModelTrainer:
    """
    Builds, trains and owns at most one ForecastModel at a time.

    Building a new model disposes the current one first, which also stops
    any fit still running for it.
    """

    def __init__(self):
        self._current: Optional[ForecastModel] = None
        self._lock = threading.RLock()
        self._executor = None
        self.released = 0

    @property
    def current(self) -> Optional[ForecastModel]:
        return self._current

    def build(self, kind, config: TrainingConfig, input_dim: int = FEATURE_DIM) -> ForecastModel:
        kind = ArchitectureKind.parse(kind)
        with self._lock:
            self.dispose()
            network = _BUILDERS[kind](config, input_dim)
            network.compile(
                optimizer=Adam(learning_rate=config.learning_rate),
                loss='mse',
                metrics=['mae'],
            )
            self._current = ForecastModel(kind, config, network)
            logger.info('Built %s model (%d hidden units)', kind.value, config.hidden_units)
            return self._current

    def fit(self, model: ForecastModel, train_x, train_y, config: Optional[TrainingConfig] = None,
            on_progress: Optional[ProgressObserver] = None) -> ForecastModel:
        """
        Run the epoch loop for `model`, calling `on_progress` after each epoch.

        Raises ModelTrainingError on a NaN/Inf loss (the model is disposed)
        and TrainingCancelledError if the model was cancelled or disposed
        while training.
        """
        config = config or model.config
        X = np.asarray(train_x, dtype=float)
        y = np.asarray(train_y, dtype=float).reshape(-1, 1)
        if len(X) < 2 or len(X) != len(y):
            self.release(model)
            raise ModelTrainingError(f'Need at least 2 aligned training rows, got {len(X)} and {len(y)}')

        network = model.network
        if network is None or model.cancelled:
            self.release(model)
            raise TrainingCancelledError('Model was disposed before training started')

        target_scaler = MinMaxScaler()
        y_scaled = target_scaler.fit_transform(y)
        validation_split = config.validation_split if int(len(X) * config.validation_split) >= 1 else 0.0
        observer = _EpochObserver(model, config.epochs, on_progress)

        try:
            history = network.fit(
                X, y_scaled,
                epochs=config.epochs,
                batch_size=config.batch_size,
                validation_split=validation_split,
                shuffle=True,
                verbose=0,
                callbacks=[observer],
            )
        except ForecastError:
            self.release(model)
            raise
        except Exception as e:
            self.release(model)
            raise ModelTrainingError(f'Model training failed: {e}') from e

        if model.cancelled:
            self.release(model)
            raise TrainingCancelledError('Training was cancelled')
        if observer.diverged:
            self.release(model)
            raise ModelTrainingError('Training diverged (loss is NaN or infinite)')
        if not history.history.get('loss'):
            self.release(model)
            raise ModelTrainingError('Training ran no epochs')

        model.target_scaler = target_scaler
        model.history = history.history
        model.trained = True
        logger.info('Training complete after %d epochs', len(history.history.get('loss', [])))
        return model

    def fit_async(self, model: ForecastModel, train_x, train_y, config: Optional[TrainingConfig] = None,
                  on_progress: Optional[ProgressObserver] = None) -> TrainingRun:
        with self._lock:
            if self._executor is None:
                self._executor = ThreadPoolExecutor(max_workers=1, thread_name_prefix='trainer')
            future = self._executor.submit(self.fit, model, train_x, train_y, config, on_progress)
        return TrainingRun(model, future)

    def release(self, model: ForecastModel):
        with self._lock:
            if self._current is model:
                self._current = None
            if model.dispose():
                self.released += 1
                logger.info('Disposed %s model', model.kind.value)

    def dispose(self):
        with self._lock:
            if self._current is not None:
                self.release(self._current)

    def shutdown(self, block=False):
        self.dispose()
        with self._lock:
            executor, self._executor = self._executor, None
        if executor is not None:
            executor.shutdown(wait=block)
