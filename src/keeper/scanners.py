"""
Scanners: enumerate positions / orders and ask the contract which are actionable.

Eligibility is entirely the contract's call (is_liquidatable,
should_execute_order); scanners only enumerate and ask. Records can close
between enumeration and fetch, so "not found" is a silent skip. A failed
enumeration yields an empty scan: an empty cycle is safe, a crash is not.

Per-id reads fan out over a small thread pool; reads mutate nothing.
"""

from __future__ import annotations

import logging
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from typing import Callable, Iterable, TypeVar

from ledger.contracts import Order
from ledger.errors import DomainRejection, LedgerError
from ledger.market import MarketGateway

logger = logging.getLogger("keeper.scanner")

T = TypeVar("T")
R = TypeVar("R")

DEFAULT_SCAN_WORKERS = 4


def unique(ids: Iterable[int]) -> list[int]:
    """Drop duplicate ids, keeping first-seen order."""
    seen: set[int] = set()
    out: list[int] = []
    for i in ids:
        if i not in seen:
            seen.add(i)
            out.append(i)
    return out


def _fan_out(fn: Callable[[T], R], items: list[T], workers: int) -> list[R]:
    if workers <= 1 or len(items) <= 1:
        return [fn(item) for item in items]
    with ThreadPoolExecutor(max_workers=min(workers, len(items))) as pool:
        return list(pool.map(fn, items))


class PositionScanner:
    def __init__(self, market: MarketGateway, *, workers: int = DEFAULT_SCAN_WORKERS) -> None:
        self._market = market
        self._workers = workers

    def scan_liquidatable(self) -> list[int]:
        try:
            ids = unique(self._market.get_all_position_ids())
        except LedgerError as exc:
            logger.error("Could not enumerate positions: %s", exc)
            return []

        flags = _fan_out(self._check, ids, self._workers)
        found = [pid for pid, flagged in zip(ids, flags) if flagged]
        logger.info("Scanned %d position(s), %d liquidatable", len(ids), len(found))
        return found

    def _check(self, position_id: int) -> bool:
        try:
            position = self._market.get_position(position_id)
        except DomainRejection as exc:
            if not exc.is_not_found:
                logger.warning("Position %d: unexpected rejection on read: %s", position_id, exc)
            return False
        except LedgerError as exc:
            logger.warning("Position %d: no usable data (%s)", position_id, exc)
            return False
        if position is None:
            return False

        try:
            return self._market.is_liquidatable(position_id)
        except LedgerError as exc:
            logger.warning("Position %d: liquidation check failed (%s)", position_id, exc)
            return False


@dataclass
class OrderScan:
    """Orders to execute, plus triggered orders whose linked position is gone."""

    executable: list[int] = field(default_factory=list)
    orphaned: list[int] = field(default_factory=list)
    linked_positions: dict[int, int] = field(default_factory=dict)


class OrderScanner:
    EXECUTABLE = "executable"
    ORPHANED = "orphaned"

    def __init__(self, market: MarketGateway, *, workers: int = DEFAULT_SCAN_WORKERS) -> None:
        self._market = market
        self._workers = workers

    def scan_executable(self) -> OrderScan:
        try:
            ids = unique(self._market.get_all_order_ids())
        except LedgerError as exc:
            logger.error("Could not enumerate orders: %s", exc)
            return OrderScan()

        scan = OrderScan()
        for order_id, (verdict, order) in zip(ids, _fan_out(self._check, ids, self._workers)):
            if verdict == self.EXECUTABLE:
                scan.executable.append(order_id)
                if order is not None and order.linked_position_id is not None:
                    scan.linked_positions[order_id] = order.linked_position_id
            elif verdict == self.ORPHANED:
                scan.orphaned.append(order_id)

        logger.info(
            "Scanned %d order(s), %d executable, %d orphaned",
            len(ids), len(scan.executable), len(scan.orphaned),
        )
        return scan

    def _check(self, order_id: int) -> tuple[str | None, Order | None]:
        try:
            order = self._market.get_order(order_id)
        except DomainRejection as exc:
            if not exc.is_not_found:
                logger.warning("Order %d: unexpected rejection on read: %s", order_id, exc)
            return None, None
        except LedgerError as exc:
            logger.warning("Order %d: no usable data (%s)", order_id, exc)
            return None, None
        if order is None:
            return None, None

        # Status can change between enumeration and here.
        if not order.is_pending:
            logger.debug("Order %d is %s, skipping", order_id, order.status.value)
            return None, order

        try:
            triggered = self._market.should_execute_order(order_id)
        except LedgerError as exc:
            logger.warning("Order %d: trigger check failed (%s)", order_id, exc)
            return None, order
        if not triggered:
            return None, order

        if order.manages_position and not self._position_exists(order.linked_position_id):
            logger.info(
                "Order %d (%s) is orphaned: position %d no longer exists",
                order_id, order.order_type.value, order.linked_position_id,
            )
            return self.ORPHANED, order

        return self.EXECUTABLE, order

    def _position_exists(self, position_id: int) -> bool:
        try:
            return self._market.get_position(position_id) is not None
        except DomainRejection as exc:
            if exc.is_not_found:
                return False
            return True
        except LedgerError as exc:
            # Unknown: let the contract decide at execution time.
            logger.warning("Position %d: existence check failed (%s)", position_id, exc)
            return True
