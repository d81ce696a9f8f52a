"""
Cycle runner: one sweep = scan, then execute, then fold outcomes into stats.

    Idle -> Scanning -> Executing -> Idle
    FundingIdle -> FundingApplying -> FundingIdle

Scans are read-only and run concurrently. Every write (liquidation, order,
funding, oracle) goes through ``_write`` under one lock, so across all
timers at most one transaction is in flight on the signing account.

Liquidations run before orders: an order on a just-liquidated position is
meaningless. An unexpected exception inside a tick is logged and counted as
one error; it never escapes the tick.
"""

from __future__ import annotations

import logging
import threading
import time
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Callable

from config.loader import AssetConfig
from data.fetcher import PriceFeedError
from keeper.funding import FundingApplier
from keeper.oracle import OracleUpdater
from keeper.retry import RetryPolicy
from keeper.scanners import DEFAULT_SCAN_WORKERS, OrderScan, OrderScanner, PositionScanner
from keeper.stats import KeeperStats
from ledger.contracts import ExecutionResult
from ledger.market import MarketGateway

logger = logging.getLogger("keeper.runner")


class SweepState(str, Enum):
    IDLE = "Idle"
    SCANNING = "Scanning"
    EXECUTING = "Executing"


class FundingState(str, Enum):
    IDLE = "FundingIdle"
    DUE = "FundingDue"
    APPLYING = "FundingApplying"


@dataclass
class Action:
    kind: str  # "liquidate" | "execute_order"
    target: int
    result: ExecutionResult


@dataclass
class SweepReport:
    liquidatable: list[int] = field(default_factory=list)
    executable: list[int] = field(default_factory=list)
    orphaned: list[int] = field(default_factory=list)
    actions: list[Action] = field(default_factory=list)

    @property
    def attempted(self) -> int:
        return len(self.actions)


class CycleRunner:
    """Owns KeeperStats and the write lock; drives scanners and writers.

    Parameters
    ----------
    market:
        Typed contract gateway.
    retry:
        Policy wrapping every write.
    oracle:
        Optional OracleUpdater; oracle ticks are no-ops without it.
    events:
        Optional StructuredEventLogger for operator-facing JSON events.
    """

    def __init__(
        self,
        market: MarketGateway,
        *,
        retry: RetryPolicy | None = None,
        oracle: OracleUpdater | None = None,
        events: Any = None,
        scan_workers: int = DEFAULT_SCAN_WORKERS,
        stats: KeeperStats | None = None,
    ) -> None:
        self._market = market
        self._retry = retry or RetryPolicy()
        self._positions = PositionScanner(market, workers=scan_workers)
        self._orders = OrderScanner(market, workers=scan_workers)
        self._funding = FundingApplier(market, self._retry)
        self._oracle = oracle
        self._events = events
        self._stats = stats or KeeperStats()
        self._write_lock = threading.Lock()
        # Orphaned order ids already counted; an orphan stays pending on chain.
        self._orphans_counted: set[int] = set()
        self.state = SweepState.IDLE
        self.funding_state = FundingState.IDLE

    @property
    def stats(self) -> KeeperStats:
        return self._stats

    @property
    def has_oracle(self) -> bool:
        return self._oracle is not None

    # ---------- ticks (failure-isolated) ----------

    def run_sweep(self) -> SweepReport | None:
        """One liquidation + order sweep. Never raises."""
        return self._isolated("sweep", self.sweep, self._reset_sweep_state)

    def run_funding(self) -> ExecutionResult | None:
        """One funding tick. Never raises."""
        return self._isolated("funding", self.apply_funding, self._reset_funding_state)

    def run_oracle_update(self) -> list[ExecutionResult] | None:
        """One oracle tick. Never raises."""
        return self._isolated("oracle", self.update_oracle)

    def _isolated(self, name: str, tick: Callable[[], Any], reset: Callable[[], None] | None = None) -> Any:
        try:
            return tick()
        except Exception as exc:
            logger.exception("Unexpected error in %s tick", name)
            with self._write_lock:
                self._stats.errors += 1
            self._emit("error", message=f"{name} tick failed", detail=f"{type(exc).__name__}: {exc}")
            return None
        finally:
            if reset is not None:
                reset()

    def _reset_sweep_state(self) -> None:
        self.state = SweepState.IDLE

    def _reset_funding_state(self) -> None:
        self.funding_state = FundingState.IDLE

    # ---------- sweep ----------

    def sweep(self) -> SweepReport:
        started = time.monotonic()
        with self._write_lock:
            self._stats.cycles += 1
            cycle = self._stats.cycles
        self._emit("cycle_start", cycle=cycle)

        self.state = SweepState.SCANNING
        liquidatable, order_scan = self._scan()
        report = SweepReport(
            liquidatable=list(liquidatable),
            executable=list(order_scan.executable),
            orphaned=list(order_scan.orphaned),
        )
        self._emit(
            "targets_found",
            liquidatable=report.liquidatable,
            executable=report.executable,
            orphaned=report.orphaned,
        )

        self.state = SweepState.EXECUTING
        liquidated: set[int] = set()
        for position_id in liquidatable:
            result = self._write(
                f"liquidate({position_id})",
                lambda pid=position_id: self._market.liquidate(pid),
                self._stats.record_liquidation,
            )
            report.actions.append(Action("liquidate", position_id, result))
            self._emit_action("liquidate", position_id, result)
            if result.success:
                liquidated.add(position_id)

        orphaned = list(order_scan.orphaned)
        for order_id in order_scan.executable:
            linked = order_scan.linked_positions.get(order_id)
            if linked is not None and linked in liquidated:
                logger.info("Order %d skipped: position %d liquidated this sweep", order_id, linked)
                orphaned.append(order_id)
                report.orphaned.append(order_id)
                continue
            result = self._write(
                f"execute_order({order_id})",
                lambda oid=order_id: self._market.execute_order(oid),
                self._stats.record_order,
            )
            report.actions.append(Action("execute_order", order_id, result))
            self._emit_action("execute_order", order_id, result)

        new_orphans = set(orphaned) - self._orphans_counted
        if new_orphans:
            with self._write_lock:
                self._orphans_counted |= new_orphans
                self._stats.orders_skipped_orphaned += len(new_orphans)

        self.state = SweepState.IDLE
        elapsed = time.monotonic() - started
        logger.info(
            "Sweep %d done in %.1fs: %d liquidatable, %d executable, %d orphaned, %d attempted",
            cycle, elapsed, len(report.liquidatable), len(report.executable),
            len(report.orphaned), report.attempted,
        )
        self._emit("cycle_complete", cycle=cycle, attempted=report.attempted, seconds=round(elapsed, 2))
        self._emit("stats", **self._stats.snapshot())
        return report

    def _scan(self) -> tuple[list[int], OrderScan]:
        with ThreadPoolExecutor(max_workers=2, thread_name_prefix="scan") as pool:
            positions = pool.submit(self._positions.scan_liquidatable)
            orders = pool.submit(self._orders.scan_executable)
            return positions.result(), orders.result()

    # ---------- funding ----------

    def apply_funding(self) -> ExecutionResult:
        self.funding_state = FundingState.DUE
        with self._write_lock:
            self.funding_state = FundingState.APPLYING
            result = self._funding.apply_funding()
            self._stats.record_funding(result)
        self.funding_state = FundingState.IDLE
        self._emit("funding_result", **result.to_dict())
        return result

    # ---------- oracle ----------

    def update_oracle(self) -> list[ExecutionResult]:
        if self._oracle is None:
            return []
        results = []
        for asset in self._oracle.assets:
            try:
                price = self._oracle.quote(asset)
            except PriceFeedError as exc:
                logger.error("No price for %s: %s", asset.symbol, exc)
                with self._write_lock:
                    self._stats.errors += 1
                self._emit("error", message=f"price feed failed for {asset.symbol}", detail=str(exc))
                continue
            results.append(self._push_price(asset, price))
        return results

    def _push_price(self, asset: AssetConfig, price: int) -> ExecutionResult:
        with self._write_lock:
            result = self._oracle.push(asset, price)
            self._stats.record_oracle(result)
        self._emit("oracle_update", asset=asset.symbol, price=str(price), **result.to_dict())
        return result

    # ---------- helpers ----------

    def _write(
        self,
        label: str,
        call: Callable[[], ExecutionResult],
        record: Callable[[ExecutionResult], None],
    ) -> ExecutionResult:
        """Retry-wrapped write, serialized with every other write, folded into stats."""
        with self._write_lock:
            result = self._retry.execute(call, label)
            record(result)
        if result.success:
            logger.info("%s succeeded (tx %s, reward %s)", label, result.tx_hash, result.reward)
        elif result.is_domain_rejection:
            logger.info("%s skipped: %s", label, result.code or result.error)
        else:
            logger.error("%s failed after %d attempt(s): %s", label, result.attempts, result.error)
        return result

    def _emit_action(self, action: str, target: int, result: ExecutionResult) -> None:
        self._emit("action_result", action=action, target=target, **result.to_dict())

    def _emit(self, event: str, **fields: Any) -> None:
        if self._events is None:
            return
        emit = getattr(self._events, event, None)
        if emit is None:
            logger.debug("Event sink has no %s handler", event)
            return
        emit(**fields)
