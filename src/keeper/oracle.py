"""
Oracle updater: push spot prices to the oracle contract's set_price.

Prices come from a PriceFetcher (Binance public ticker in production) and
are scaled to the asset's fixed-point decimals. Quoting is a read and runs
outside the write lock; only set_price is serialized.
"""

from __future__ import annotations

import logging
from typing import Sequence

from config.loader import AssetConfig
from data.fetcher import PriceFetcher
from keeper.retry import RetryPolicy
from ledger.contracts import ExecutionResult
from ledger.market import MarketGateway

logger = logging.getLogger("keeper.oracle")


class OracleUpdater:
    def __init__(
        self,
        market: MarketGateway,
        fetcher: PriceFetcher,
        assets: Sequence[AssetConfig],
        retry: RetryPolicy,
    ) -> None:
        self._market = market
        self._fetcher = fetcher
        self._retry = retry
        self.assets = tuple(assets)

    def quote(self, asset: AssetConfig) -> int:
        """Scaled price for *asset*. Raises PriceFeedError."""
        q = self._fetcher.fetch_price(asset.feed_symbol)
        scaled = q.scaled(asset.decimals)
        logger.debug("%s (%s) = %s -> %d", asset.symbol, asset.feed_symbol, q.price, scaled)
        return scaled

    def push(self, asset: AssetConfig, price_scaled: int) -> ExecutionResult:
        result = self._retry.execute(
            lambda: self._market.set_price(asset.symbol, price_scaled),
            f"set_price({asset.symbol})",
        )
        if result.success:
            logger.info("Oracle %s updated to %d (tx %s)", asset.symbol, price_scaled, result.tx_hash)
        return result
