"""Next-step price forecasting for a single in-memory session per instrument."""

__version__ = "0.1.0"
