"""
One forecasting session for one selected instrument.

The session owns the loaded series, the feature cache, the training-time
scaler and (through its ModelTrainer) the model. Operations are
single-flight: while load, train or predict is in progress, another call
is a logged no-op returning None. Resetting or switching instrument is
never blocked; it abandons whatever is in flight.
"""
import logging
import threading
from typing import Optional

from .config import DEFAULT_INSTRUMENT, TRAIN_TEST_SPLIT, USE_HISTORY, PRICE_REFRESH_INTERVAL
from .dataset import FeatureCache, split
from .errors import InsufficientDataError, PredictionNotReadyError
from .evaluation import evaluate
from .market_client import MarketDataClient
from .market_data import acquire, get_instrument, instrument_tier, PriceRefresher
from .predictor import predict, predict_batch
from .trainer import ArchitectureKind, ModelTrainer, TrainingRun, get_training_config, describe_architecture
from .types import FeatureSet, MarketSeries, Prediction, TrainingConfig
from .utils import apply_scaler, fit_scaler, target_vector

logger = logging.getLogger(__name__)


class ForecastSession:

    def __init__(self, instrument: str = DEFAULT_INSTRUMENT, client: Optional[MarketDataClient] = None,
                 trainer: Optional[ModelTrainer] = None, seed: Optional[int] = None,
                 use_history: bool = USE_HISTORY, refresh_interval: float = PRICE_REFRESH_INTERVAL):
        get_instrument(instrument)
        self.instrument = instrument
        self.client = client or MarketDataClient()
        self.trainer = trainer or ModelTrainer()
        self.seed = seed
        self.use_history = use_history
        self.refresh_interval = refresh_interval
        self.cache = FeatureCache()
        self._lock = threading.RLock()
        self._processing = False
        self._generation = 0
        self._refresher = None
        self._settled = None
        self._clear_state()

    def _clear_state(self):
        self.series: Optional[MarketSeries] = None
        self.current_price = None
        self.scaler = None
        self.model = None
        self.architecture: Optional[ArchitectureKind] = None
        self.training_config: Optional[TrainingConfig] = None
        self.training_run: Optional[TrainingRun] = None
        self.training_error = None
        self.last_progress = None
        self.metrics = None
        self.last_prediction = None

    def __enter__(self):
        return self

    def __exit__(self, *exc):
        self.close()

    # -- single-flight guard --

    @property
    def is_processing(self):
        return self._processing

    def _begin(self, operation):
        with self._lock:
            if self._processing:
                logger.info('%s ignored: another operation is in progress', operation)
                return None
            self._processing = True
            return self._generation

    def _end(self, generation):
        with self._lock:
            if generation == self._generation:
                self._processing = False

    # -- operations --

    def load(self) -> Optional[MarketSeries]:
        """Acquire fresh data for the instrument and derive its features."""
        generation = self._begin('load')
        if generation is None:
            return None
        try:
            series = acquire(self.instrument, client=self.client, seed=self.seed,
                             use_history=self.use_history)
            with self._lock:
                if generation != self._generation:
                    return None
                self.cache.invalidate()
                if self.series is not None and self.series.fingerprint != series.fingerprint:
                    self._discard_model()
                self.series = series
                self.current_price = series.current_price
            feature_set = self.cache.get_or_compute(series)
            logger.info('Data loaded: %d observations, %d feature vectors (%s)',
                        len(series), len(feature_set.vectors), series.provenance.value)
            return series
        finally:
            self._end(generation)

    def _discard_model(self):
        # a model and scaler fitted on another series must not serve this one
        self.trainer.dispose()
        self.model = None
        self.scaler = None
        self.architecture = None
        self.training_config = None
        self.training_run = None
        self.training_error = None
        self.last_progress = None
        self.metrics = None
        self.last_prediction = None

    def feature_set(self) -> FeatureSet:
        if self.series is None:
            raise InsufficientDataError('No data loaded. Load data first.')
        return self.cache.get_or_compute(self.series)

    def start_training(self, architecture, on_progress=None, epochs: Optional[int] = None) -> Optional[TrainingRun]:
        """
        Split, fit the scaler on the training partition only, build a fresh
        model (disposing the previous one) and start fitting it in the
        background. Returns None when another operation is in flight.
        """
        kind = ArchitectureKind.parse(architecture)
        generation = self._begin('train')
        if generation is None:
            return None
        try:
            config = get_training_config(kind, instrument_tier(self.instrument), epochs)
            parts = split(self.feature_set().vectors, TRAIN_TEST_SPLIT)
            scaler = fit_scaler(parts.train)
            train_x = apply_scaler(parts.train, scaler)
            train_y = target_vector(parts.train)

            with self._lock:
                self.model = None
                self.scaler = None
                self.metrics = None
                self.training_error = None
                self.last_progress = None
                self.architecture = kind
                self.training_config = config
                model = self.trainer.build(kind, config)

            def observe(progress):
                if generation != self._generation:
                    return
                self.last_progress = progress
                if on_progress:
                    on_progress(progress)

            settled = threading.Event()
            run = self.trainer.fit_async(model, train_x, train_y, config, observe)
            self.training_run = run
            self._settled = settled
            run.add_done_callback(
                lambda r: self._finish_training(r, generation, scaler, parts.test, settled)
            )
            logger.info('Training %s model on %d vectors (%d epochs)', kind.value, len(parts.train), config.epochs)
            return run
        except BaseException:
            self._end(generation)
            raise

    def _finish_training(self, run, generation, scaler, test, settled):
        try:
            error = run.exception()
            with self._lock:
                if generation != self._generation:
                    # superseded: nothing from this run may reach the session
                    if not run.model.disposed:
                        self.trainer.release(run.model)
                    logger.info('Discarded superseded training run')
                    return
                if error is not None:
                    self.training_error = error
                    logger.error('Training failed: %s', error)
                    return
                model = run.result()
                try:
                    predictions = predict_batch(model, scaler, test)
                    self.metrics = evaluate(predictions, target_vector(test))
                except Exception as e:
                    self.training_error = e
                    self.trainer.release(model)
                    logger.error('Evaluation failed: %s', e)
                    return
                self.model = model
                self.scaler = scaler
                logger.info('Model trained: MAE %.6f, accuracy %.2f%%',
                            self.metrics.mae, self.metrics.accuracy_pct)
        finally:
            self._end(generation)
            settled.set()

    def wait_for_training(self, timeout=None) -> bool:
        settled = self._settled
        return settled.wait(timeout) if settled is not None else True

    def train(self, architecture, on_progress=None, epochs: Optional[int] = None):
        """Blocking train; returns the test-set Metrics (None if busy or superseded)."""
        generation = self._generation
        run = self.start_training(architecture, on_progress, epochs)
        if run is None:
            return None
        settled = self._settled
        run.wait()
        settled.wait()
        if generation != self._generation:
            return None
        if self.training_error is not None:
            raise self.training_error
        return self.metrics

    def predict(self) -> Optional[Prediction]:
        generation = self._begin('predict')
        if generation is None:
            return None
        try:
            with self._lock:
                model, scaler, architecture = self.model, self.scaler, self.architecture
                series, current = self.series, self.current_price
            if model is None or architecture is None or series is None:
                raise PredictionNotReadyError('No trained model available. Train a model first.')
            price = predict(model, scaler, self.cache.get_or_compute(series).latest)
            prediction = Prediction(
                instrument=series.instrument,
                architecture=architecture.value,
                price=price,
                current_price=current if current is not None else series.last_price,
            )
            self.last_prediction = prediction
            logger.info('Price prediction ready: %s', price)
            return prediction
        finally:
            self._end(generation)

    # -- lifecycle --

    def reset(self):
        with self._lock:
            self._generation += 1
            self._processing = False
            self.stop_price_updates()
            if self.training_run is not None:
                self.training_run.cancel()
            self.trainer.dispose()
            self.cache.invalidate()
            self._clear_state()
        logger.info('Session reset (%s)', self.instrument)

    def select_instrument(self, instrument: str):
        get_instrument(instrument)
        self.reset()
        self.instrument = instrument

    def close(self):
        self.reset()
        self.trainer.shutdown()

    def start_price_updates(self):
        with self._lock:
            if self._refresher is not None:
                return
            generation = self._generation

            def on_price(price):
                if generation == self._generation:
                    self.current_price = price

            self._refresher = PriceRefresher(
                self.client, get_instrument(self.instrument)['api_id'], on_price, self.refresh_interval
            )
            self._refresher.start()

    def stop_price_updates(self):
        refresher, self._refresher = self._refresher, None
        if refresher is not None:
            refresher.stop()

    # -- reporting --

    def model_info(self) -> Optional[dict]:
        architecture, config = self.architecture, self.training_config
        if architecture is None:
            return None
        meta = get_instrument(self.instrument)
        config = config or get_training_config(architecture, instrument_tier(self.instrument))
        return {
            'architecture': describe_architecture(architecture, config),
            'epochs': config.epochs,
            'learning_rate': config.learning_rate,
            'hidden_units': config.hidden_units,
            'enhanced': meta['enhanced'],
            'instrument_name': meta['name'],
        }

    def status(self) -> dict:
        run = self.training_run
        return {
            'instrument': self.instrument,
            'processing': self._processing,
            'data': self.series.stats() if self.series is not None else None,
            'current_price': self.current_price,
            'architecture': self.architecture.value if self.architecture else None,
            'training': None if run is None else ('done' if run.done else 'running'),
            'model_ready': self.model is not None and self.model.ready,
            'training_error': str(self.training_error) if self.training_error else None,
        }
