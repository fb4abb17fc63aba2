# crypto_forecast/errors.py


class ForecastError(Exception):
    """Base class for errors raised by the forecasting pipeline."""


class DataFetchError(ForecastError):
    """The market data source could not be reached or returned garbage.

    Absorbed by `market_data.acquire`, which falls back to synthetic data.
    """


class InsufficientDataError(ForecastError):
    pass


class ModelTrainingError(ForecastError):
    pass


class TrainingCancelledError(ModelTrainingError):
    """The run was cancelled or superseded before it finished."""


class PredictionNotReadyError(ForecastError):
    pass


class ValidationError(ForecastError, ValueError):
    pass


class UnknownInstrumentError(ForecastError, KeyError):
    def __init__(self, key):
        super().__init__(key)
        self.key = key

    def __str__(self):
        return f"Unknown instrument: {self.key!r}"
