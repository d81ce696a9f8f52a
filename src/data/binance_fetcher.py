"""
Binance spot price fetcher: implements PriceFetcher against the public
``/api/v3/ticker/price`` endpoint (no API key).

Retries 429/5xx a few times with a short backoff; anything else raises.
"""

import logging
import time
from datetime import datetime, timezone
from decimal import Decimal, InvalidOperation
from typing import Callable

import requests

from data.fetcher import PriceFeedError, PriceQuote

logger = logging.getLogger("keeper.data.binance")

RETRY_STATUS = {429, 500, 502, 503, 504}
DEFAULT_BASE_URL = "https://api.binance.com"


class BinancePriceFetcher:
    """Fetch the latest spot price for a Binance symbol."""

    def __init__(
        self,
        base_url: str = DEFAULT_BASE_URL,
        *,
        timeout: float = 5.0,
        max_attempts: int = 3,
        backoff: float = 0.5,
        session: requests.Session | None = None,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self.max_attempts = max(1, max_attempts)
        self.backoff = backoff
        self._session = session or requests.Session()
        self._sleep = sleep

    def fetch_price(self, symbol: str) -> PriceQuote:
        url = f"{self.base_url}/api/v3/ticker/price"
        payload = self._request(url, {"symbol": symbol.upper()})
        try:
            price = Decimal(str(payload["price"]))
        except (KeyError, TypeError, InvalidOperation) as exc:
            raise PriceFeedError(f"Malformed ticker response for {symbol}: {payload!r}") from exc
        if price <= 0:
            raise PriceFeedError(f"Non-positive price for {symbol}: {price}")
        return PriceQuote(symbol.upper(), price, datetime.now(timezone.utc))

    def _request(self, url: str, params: dict) -> dict:
        last_error = ""
        for attempt in range(1, self.max_attempts + 1):
            try:
                response = self._session.get(url, params=params, timeout=self.timeout)
            except requests.RequestException as exc:
                last_error = str(exc)
            else:
                if response.status_code == 200:
                    try:
                        return response.json()
                    except ValueError as exc:
                        raise PriceFeedError(f"Ticker response is not JSON: {exc}") from exc
                last_error = f"HTTP {response.status_code}: {response.text[:200]}"
                if response.status_code not in RETRY_STATUS:
                    break
            if attempt < self.max_attempts:
                logger.warning("Price request failed (%s), retrying", last_error)
                self._sleep(self.backoff * attempt)
        raise PriceFeedError(f"Price request for {params.get('symbol')} failed: {last_error}")
