# crypto_forecast/config.py
from pathlib import Path
import os

from dotenv import load_dotenv

BASE_DIR = Path(__file__).resolve().parent.parent
load_dotenv(BASE_DIR / ".env")


def _env_bool(name, default):
    value = os.getenv(name)
    if value is None:
        return default
    return value.strip().lower() in ("1", "true", "yes", "on")


# Instrument catalogue. `enhanced` instruments (the ISO20022 coins) use the
# enhanced training tier and a calmer synthetic walk.
INSTRUMENTS = {
    'xrp': {'name': 'XRP', 'symbol': 'XRP', 'enhanced': True, 'base_price': 0.65, 'api_id': 'ripple'},
    'xlm': {'name': 'Stellar', 'symbol': 'XLM', 'enhanced': True, 'base_price': 0.12, 'api_id': 'stellar'},
    'ada': {'name': 'Cardano', 'symbol': 'ADA', 'enhanced': True, 'base_price': 0.45, 'api_id': 'cardano'},
    'btc': {'name': 'Bitcoin', 'symbol': 'BTC', 'enhanced': False, 'base_price': 45000.0, 'api_id': 'bitcoin'},
    'eth': {'name': 'Ethereum', 'symbol': 'ETH', 'enhanced': False, 'base_price': 2500.0, 'api_id': 'ethereum'},
    'sol': {'name': 'Solana', 'symbol': 'SOL', 'enhanced': False, 'base_price': 95.0, 'api_id': 'solana'},
}
DEFAULT_INSTRUMENT = os.getenv('DEFAULT_INSTRUMENT', 'xrp')

# Architecture lookup table keyed by (architecture, tier)
MODEL_CONFIG = {
    'neural': {
        'standard': {'hidden_units': 32, 'epochs': 100, 'learning_rate': 0.001},
        'enhanced': {'hidden_units': 64, 'epochs': 150, 'learning_rate': 0.0008},
    },
    'deep': {
        'standard': {'hidden_units': 64, 'epochs': 120, 'learning_rate': 0.0008},
        'enhanced': {'hidden_units': 96, 'epochs': 180, 'learning_rate': 0.0006},
    },
    'lstm': {
        'standard': {'hidden_units': 48, 'epochs': 130, 'learning_rate': 0.0009},
        'enhanced': {'hidden_units': 72, 'epochs': 200, 'learning_rate': 0.0007},
    },
}

# Market data source
COINGECKO_BASE_URL = os.getenv('COINGECKO_BASE_URL', 'https://api.coingecko.com/api/v3')
COINGECKO_API_KEY = os.getenv('COINGECKO_API_KEY')
FETCH_TIMEOUT = float(os.getenv('FETCH_TIMEOUT', 5))
USE_HISTORY = _env_bool('USE_HISTORY', False)
HISTORY_DAYS = int(os.getenv('HISTORY_DAYS', 100))
PRICE_REFRESH_INTERVAL = float(os.getenv('PRICE_REFRESH_INTERVAL', 300))

# Data processing
SYNTHETIC_DATA_POINTS = int(os.getenv('SYNTHETIC_DATA_POINTS', 100))
MIN_SERIES_LENGTH = int(os.getenv('MIN_SERIES_LENGTH', 100))
TRAIN_TEST_SPLIT = float(os.getenv('TRAIN_TEST_SPLIT', 0.8))
VALIDATION_SPLIT = float(os.getenv('VALIDATION_SPLIT', 0.2))
BATCH_SIZE = int(os.getenv('BATCH_SIZE', 16))
MIN_TRAIN_SIZE = 10
MIN_TEST_SIZE = 5

VOLATILITY = {'standard': 0.08, 'enhanced': 0.05}
VOLUME_MULTIPLIER = 1_000_000

# Feature engineering
MOVING_AVERAGES = (5, 10)
VOLATILITY_WINDOW = 10
VOLUME_WINDOW = 10
RSI_PERIOD = 14
FEATURE_NAMES = ('ma5', 'ma10', 'momentum', 'volatility', 'volume_ratio', 'rsi')

LOG_LEVEL = os.getenv('LOG_LEVEL', 'INFO')
