# crypto_forecast/market_client.py
import logging

import requests

from .config import COINGECKO_BASE_URL, COINGECKO_API_KEY, FETCH_TIMEOUT
from .errors import DataFetchError

logger = logging.getLogger(__name__)


class MarketDataClient:
    """Thin CoinGecko client. Every failure surfaces as DataFetchError."""

    def __init__(self, base_url=COINGECKO_BASE_URL, api_key=COINGECKO_API_KEY,
                 timeout=FETCH_TIMEOUT, session=None):
        self.base_url = base_url.rstrip('/')
        self.api_key = api_key
        self.timeout = timeout
        self.http = session or requests.Session()

    def _get(self, path, params):
        params = dict(params)
        if self.api_key:
            params['x_cg_demo_api_key'] = self.api_key
        url = f"{self.base_url}{path}"
        try:
            r = self.http.get(url, params=params, timeout=self.timeout)
            r.raise_for_status()
            return r.json()
        except requests.Timeout as e:
            raise DataFetchError(f"Timed out after {self.timeout}s: {url}") from e
        except requests.HTTPError as e:
            raise DataFetchError(f"HTTP {e.response.status_code} from {url}") from e
        except (requests.RequestException, ValueError) as e:
            raise DataFetchError(f"Request to {url} failed: {e}") from e

    def get_price(self, api_id):
        """Return (price, change_24h_pct) for a coin id."""
        data = self._get('/simple/price', {
            'ids': api_id,
            'vs_currencies': 'usd',
            'include_24hr_change': 'true',
        })
        try:
            entry = data[api_id]
            price = float(entry['usd'])
            change = float(entry.get('usd_24h_change') or 0.0)
        except (KeyError, TypeError, ValueError) as e:
            raise DataFetchError(f"Malformed price payload for {api_id}") from e
        if not price > 0:
            raise DataFetchError(f"No price data available for {api_id}")
        return price, change

    def get_history(self, api_id, days):
        """
        Return (prices, volumes) for the last `days` days.
        Each is a list of (timestamp_ms, value) pairs as sent by the API.
        """
        data = self._get(f'/coins/{api_id}/market_chart', {
            'vs_currency': 'usd',
            'days': days,
            'interval': 'daily',
        })
        try:
            prices = [(int(ts), float(v)) for ts, v in data['prices']]
            volumes = [(int(ts), float(v)) for ts, v in data.get('total_volumes', [])]
        except (KeyError, TypeError, ValueError) as e:
            raise DataFetchError(f"Malformed history payload for {api_id}") from e
        logger.debug("Fetched %d history points for %s", len(prices), api_id)
        return prices, volumes
