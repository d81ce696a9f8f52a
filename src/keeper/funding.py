"""
Funding applier: trigger the contract's funding accrual on its own timer.

The contract gates funding per window; calling early is rejected. The
keeper does not track windows locally, a "not due" rejection is a normal skip.
"""

from __future__ import annotations

import logging

from keeper.retry import RetryPolicy
from ledger.contracts import ExecutionResult
from ledger.market import MarketGateway

logger = logging.getLogger("keeper.funding")


class FundingApplier:
    def __init__(self, market: MarketGateway, retry: RetryPolicy) -> None:
        self._market = market
        self._retry = retry

    def apply_funding(self) -> ExecutionResult:
        result = self._retry.execute(self._market.apply_funding, "apply_funding")
        if result.success:
            logger.info("Funding applied (tx %s)", result.tx_hash)
        elif result.is_domain_rejection:
            logger.info("Funding not applied: %s", result.code or result.error)
        else:
            logger.error("Funding application failed: %s", result.error)
        return result
