"""Process-lifetime keeper counters. Owned by the CycleRunner."""

from __future__ import annotations

from dataclasses import asdict, dataclass, field
from datetime import datetime, timezone

from ledger.contracts import ExecutionResult

SLIPPAGE_CODE = "SlippageExceeded"


@dataclass
class KeeperStats:
    started_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    cycles: int = 0
    oracle_updates: int = 0
    funding_applications: int = 0
    liquidations_executed: int = 0
    orders_executed: int = 0
    orders_cancelled_slippage: int = 0
    orders_skipped_orphaned: int = 0
    skipped: int = 0
    total_rewards_earned: int = 0
    errors: int = 0

    def add_reward(self, reward: int | None) -> None:
        if reward:
            self.total_rewards_earned += reward

    def _record_failure(self, result: ExecutionResult) -> None:
        if result.is_domain_rejection:
            self.skipped += 1
        else:
            self.errors += 1

    def record_liquidation(self, result: ExecutionResult) -> None:
        if result.success:
            self.liquidations_executed += 1
            self.add_reward(result.reward)
        else:
            self._record_failure(result)

    def record_order(self, result: ExecutionResult) -> None:
        if result.success:
            self.orders_executed += 1
            self.add_reward(result.reward)
        elif result.is_domain_rejection and result.code == SLIPPAGE_CODE:
            self.orders_cancelled_slippage += 1
        else:
            self._record_failure(result)

    def record_funding(self, result: ExecutionResult) -> None:
        if result.success:
            self.funding_applications += 1
        else:
            self._record_failure(result)

    def record_oracle(self, result: ExecutionResult) -> None:
        if result.success:
            self.oracle_updates += 1
        else:
            self._record_failure(result)

    def uptime_seconds(self, now: datetime | None = None) -> float:
        now = now or datetime.now(timezone.utc)
        return (now - self.started_at).total_seconds()

    def snapshot(self, now: datetime | None = None) -> dict:
        """JSON-friendly copy of the counters."""
        data = asdict(self)
        data["started_at"] = self.started_at.isoformat()
        data["uptime_seconds"] = round(self.uptime_seconds(now), 1)
        # i128 rewards can exceed what JSON consumers parse as numbers
        data["total_rewards_earned"] = str(self.total_rewards_earned)
        return data
