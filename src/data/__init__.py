"""
Spot price data for oracle upkeep.

No dependency on ledger/ or keeper/.
"""

from data.fetcher import PriceFeedError, PriceFetcher, PriceQuote, StaticPriceFetcher

__all__ = [
    "PriceFeedError",
    "PriceFetcher",
    "PriceQuote",
    "StaticPriceFetcher",
]


def get_binance_fetcher(base_url: str = "https://api.binance.com"):
    """Lazy import so requests is only touched when a live feed is used."""
    from data.binance_fetcher import BinancePriceFetcher

    return BinancePriceFetcher(base_url)
