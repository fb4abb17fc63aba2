"""
End-to-end tests for ForecastSession: load, train, evaluate, predict,
single-flight behaviour and reset.
"""
import math
import threading
import time

import pytest

from crypto_forecast.errors import (
    InsufficientDataError,
    ModelTrainingError,
    PredictionNotReadyError,
    UnknownInstrumentError,
)
from crypto_forecast.session import ForecastSession
from crypto_forecast.types import Metrics, Provenance


@pytest.fixture
def session(failing_client):
    session = ForecastSession('btc', client=failing_client, seed=7, use_history=False, refresh_interval=60)
    yield session
    session.close()


class TestLoad:

    def test_offline_load_uses_synthetic_data(self, session):
        series = session.load()
        assert series.provenance is Provenance.SYNTHETIC
        assert len(series) >= 100
        assert session.current_price == series.current_price
        assert len(session.cache) == 1
        assert not session.is_processing

    def test_reload_replaces_cached_features(self, session):
        session.load()
        first = session.feature_set()
        session.load()
        assert len(session.cache) == 1
        assert session.feature_set() == first

    def test_train_before_load(self, session):
        with pytest.raises(InsufficientDataError):
            session.start_training('neural', epochs=1)
        assert not session.is_processing


class TestTrainAndPredict:

    def test_full_flow(self, session):
        session.load()
        progress = []
        metrics = session.train('neural', on_progress=progress.append, epochs=2)

        assert isinstance(metrics, Metrics)
        assert metrics.sample_size == 17
        assert math.isfinite(metrics.mae)
        assert 0.0 <= metrics.accuracy_pct <= 100.0
        assert [p.epoch for p in progress] == [1, 2]
        assert session.last_progress == progress[-1]

        prediction = session.predict()
        assert prediction.instrument == 'btc'
        assert prediction.architecture == 'neural'
        assert math.isfinite(prediction.price)
        assert prediction.current_price == session.series.last_price
        assert session.status()['model_ready']

    def test_predict_before_training(self, session):
        session.load()
        with pytest.raises(PredictionNotReadyError):
            session.predict()
        assert not session.is_processing

    def test_retrain_disposes_previous_model(self, session):
        session.load()
        session.train('neural', epochs=1)
        first = session.model
        session.train('deep', epochs=1)
        assert first.disposed
        assert session.model is not first
        assert session.architecture.value == 'deep'

    def test_training_failure_is_recorded(self, session, monkeypatch):
        session.load()

        def broken_fit(*args, **kwargs):
            raise ModelTrainingError('boom')

        monkeypatch.setattr(session.trainer, 'fit', broken_fit)
        with pytest.raises(ModelTrainingError):
            session.train('neural', epochs=1)
        assert session.model is None
        assert session.metrics is None
        assert str(session.training_error) == 'boom'
        assert not session.is_processing

    def test_unknown_architecture(self, session):
        session.load()
        with pytest.raises(ValueError):
            session.start_training('transformer')
        assert not session.is_processing

    @pytest.mark.parametrize('epochs', [0, -3])
    def test_non_positive_epochs_rejected(self, session, epochs):
        session.load()
        with pytest.raises(ValueError):
            session.start_training('neural', epochs=epochs)
        assert not session.is_processing
        assert session.trainer.current is None
        assert session.model is None

    def test_reload_with_new_data_discards_model(self, session):
        session.load()
        session.train('neural', epochs=1)
        old_model = session.model

        session.seed = 8
        session.load()

        assert old_model.disposed
        assert session.model is None
        assert session.scaler is None
        assert session.metrics is None
        assert session.model_info() is None
        assert not session.status()['model_ready']
        with pytest.raises(PredictionNotReadyError):
            session.predict()

    def test_reload_with_same_data_keeps_model(self, session):
        session.load()
        session.train('neural', epochs=1)
        model = session.model
        session.load()
        assert session.model is model
        assert session.predict() is not None

    def test_predict_after_reset(self, session):
        session.load()
        session.train('neural', epochs=1)
        session.reset()
        with pytest.raises(PredictionNotReadyError):
            session.predict()


class TestSingleFlightAndReset:

    def _start_blocked_run(self, session):
        started = threading.Event()
        proceed = threading.Event()

        def observe(progress):
            started.set()
            proceed.wait(10)

        session.load()
        run = session.start_training('neural', on_progress=observe, epochs=50)
        assert started.wait(60)
        return run, proceed

    def test_calls_while_training_are_ignored(self, session):
        run, proceed = self._start_blocked_run(session)
        try:
            assert session.is_processing
            assert session.load() is None
            assert session.predict() is None
            assert session.start_training('deep', epochs=1) is None
        finally:
            session.reset()
            proceed.set()
        assert session.wait_for_training(60)

    def test_reset_during_training_discards_run(self, session):
        run, proceed = self._start_blocked_run(session)
        model = run.model

        session.reset()
        assert model.disposed
        assert session.series is None
        assert session.architecture is None
        assert len(session.cache) == 0
        assert not session.is_processing

        proceed.set()
        assert session.wait_for_training(60)
        assert session.model is None
        assert session.metrics is None
        assert session.training_error is None
        assert session.trainer.released == 1

    def test_reset_then_train_again(self, session):
        run, proceed = self._start_blocked_run(session)
        session.reset()
        proceed.set()
        assert session.wait_for_training(60)

        session.load()
        metrics = session.train('neural', epochs=1)
        assert metrics is not None
        assert session.model.ready


class TestInstrumentAndReporting:

    def test_select_instrument(self, session):
        session.load()
        session.select_instrument('xrp')
        assert session.instrument == 'xrp'
        assert session.series is None
        series = session.load()
        assert series.instrument == 'xrp'

    def test_select_unknown_instrument(self, session):
        with pytest.raises(UnknownInstrumentError):
            session.select_instrument('doge')
        assert session.instrument == 'btc'

    def test_unknown_instrument_at_construction(self, failing_client):
        with pytest.raises(UnknownInstrumentError):
            ForecastSession('doge', client=failing_client)

    def test_model_info(self, session):
        assert session.model_info() is None
        session.load()
        session.train('neural', epochs=1)
        info = session.model_info()
        assert info['architecture'] == 'Neural Network with 32 neurons'
        assert info['hidden_units'] == 32
        assert info['epochs'] == 1
        assert info['enhanced'] is False
        assert info['instrument_name'] == 'Bitcoin'

    def test_status_before_and_after_load(self, session):
        status = session.status()
        assert status['data'] is None
        assert status['model_ready'] is False
        session.load()
        status = session.status()
        assert status['data']['source'] == 'synthetic'
        assert status['processing'] is False

    def test_price_updates(self, failing_client, live_client):
        session = ForecastSession('btc', client=failing_client, seed=7, refresh_interval=0.05)
        try:
            session.load()
            session.client = live_client
            session.start_price_updates()
            deadline = time.time() + 5
            while session.current_price != 50000.0 and time.time() < deadline:
                time.sleep(0.05)
            assert session.current_price == 50000.0
        finally:
            session.close()
        assert session._refresher is None

    def test_context_manager_closes(self, failing_client):
        with ForecastSession('sol', client=failing_client, seed=1) as session:
            session.load()
            assert session.series is not None
        assert session.series is None
        assert session.trainer.current is None
