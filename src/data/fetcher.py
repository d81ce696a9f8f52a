"""
Fetch spot prices for oracle upkeep. Configurable adapter; sync.
"""

from dataclasses import dataclass
from datetime import datetime, timezone
from decimal import Decimal
from typing import Mapping, Protocol


class PriceFeedError(Exception):
    """Raised when a spot price cannot be obtained."""


@dataclass(frozen=True)
class PriceQuote:
    """One spot price observation; timestamp in UTC."""

    symbol: str
    price: Decimal
    timestamp: datetime

    def scaled(self, decimals: int) -> int:
        """Fixed-point integer with *decimals* places, truncated toward zero."""
        return int(self.price.scaleb(decimals))


class PriceFetcher(Protocol):
    """Protocol for spot price sources. Implement per provider."""

    def fetch_price(self, symbol: str) -> PriceQuote:
        """Latest price for an exchange symbol (e.g. ``XLMUSDT``)."""
        ...


class StaticPriceFetcher:
    """Serves fixed prices; for tests, dry runs and pinned testnet prices."""

    def __init__(self, prices: Mapping[str, Decimal | float | str]) -> None:
        self._prices = {k.upper(): Decimal(str(v)) for k, v in prices.items()}

    def fetch_price(self, symbol: str) -> PriceQuote:
        key = symbol.upper()
        if key not in self._prices:
            raise PriceFeedError(f"No static price for {symbol}")
        return PriceQuote(key, self._prices[key], datetime.now(timezone.utc))
