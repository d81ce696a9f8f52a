"""Pytest fixtures: an in-memory ledger standing in for the Soroban RPC."""

from __future__ import annotations

import threading
import time
from collections import defaultdict, deque
from typing import Any, Sequence

import pytest

from ledger.client import ScArg
from ledger.contracts import ExecutionResult
from ledger.errors import DomainRejection, ParseError, SimulationError
from ledger.market import MarketGateway

KEEPER = "GKEEPERKEEPERKEEPERKEEPERKEEPERKEEPERKEEPERKEEPERKEEPER"
MARKET = "CMARKET"
ORACLE = "CORACLE"


def position_raw(pid: int, *, trader: str = "GTRADER", direction: int = 0, **overrides: Any) -> dict:
    raw = {
        "id": pid,
        "trader": trader,
        "asset": "XLM",
        "collateral": 1_000_0000000,
        "size": 5_000_0000000,
        "entry_price": 1_200_000,
        "direction": direction,
        "leverage": 5,
        "liquidation_price": 1_000_000,
        "timestamp": 1_700_000_000,
        "last_funding_time": 1_700_000_000,
        "accumulated_funding": 0,
    }
    raw.update(overrides)
    return raw


def order_raw(
    oid: int,
    *,
    status: int = 0,
    order_type: int = 0,
    has_position: bool = False,
    position_id: int = 0,
    **overrides: Any,
) -> dict:
    raw = {
        "id": oid,
        "trader": "GTRADER",
        "asset": "XLM",
        "order_type": order_type,
        "direction": 0,
        "collateral": 100_0000000,
        "leverage": 3,
        "trigger_price": 1_100_000,
        "trigger_condition": 1,
        "slippage_tolerance_bps": 50,
        "position_id": position_id,
        "has_position": has_position,
        "created_at": 1_700_000_100,
        "status": status,
    }
    raw.update(overrides)
    return raw


class FakeLedger:
    """LedgerClient over dicts of raw contract records.

    Default write behaviour mirrors the contract: liquidate removes a
    liquidatable position and pays ``reward``; execute_order marks a
    triggered pending order executed; otherwise a domain rejection.
    ``scripted[method]`` queues explicit results that take precedence.
    """

    def __init__(self) -> None:
        self.positions: dict[int, dict] = {}
        self.orders: dict[int, dict] = {}
        self.liquidatable: set[int] = set()
        self.triggered: set[int] = set()
        self.reward = 5
        self.position_ids_override: list | None = None
        self.read_errors: dict[str, Exception] = {}
        # (method, id) pairs whose stored value is not valid XDR
        self.undecodable: set[tuple[str, int]] = set()
        self.scripted: dict[str, deque] = defaultdict(deque)
        self.calls: list[tuple[str, tuple]] = []
        self.writes: list[tuple[str, tuple]] = []
        self.max_concurrent_writes = 0
        self.write_delay = 0.0
        self._in_flight = 0
        self._lock = threading.Lock()

    @property
    def public_key(self) -> str:
        return KEEPER

    def health(self) -> str:
        return "healthy"

    # ---------- setup helpers ----------

    def add_position(self, pid: int, *, liquidatable: bool = False, **overrides: Any) -> None:
        self.positions[pid] = position_raw(pid, **overrides)
        if liquidatable:
            self.liquidatable.add(pid)

    def add_order(self, oid: int, *, triggered: bool = False, **kwargs: Any) -> None:
        self.orders[oid] = order_raw(oid, **kwargs)
        if triggered:
            self.triggered.add(oid)

    def script(self, method: str, *results: ExecutionResult) -> None:
        self.scripted[method].extend(results)

    def write_count(self, method: str) -> int:
        return sum(1 for m, _ in self.writes if m == method)

    # ---------- LedgerClient ----------

    def read_call(self, contract_id: str, method: str, args: Sequence[ScArg] = ()) -> Any:
        values = tuple(a.value for a in args)
        with self._lock:
            self.calls.append((method, values))
        if method in self.read_errors:
            raise self.read_errors[method]
        if values and (method, values[0]) in self.undecodable:
            raise ParseError(f"{method}: could not decode result: invalid XDR")

        if method == "get_all_position_ids":
            if self.position_ids_override is not None:
                return list(self.position_ids_override)
            return sorted(self.positions)
        if method == "get_all_order_ids":
            return sorted(self.orders)
        if method == "get_position":
            if values[0] not in self.positions:
                raise DomainRejection("PositionNotFound", "HostError: Error(Contract, #3) PositionNotFound")
            return self.positions[values[0]]
        if method == "get_order":
            if values[0] not in self.orders:
                raise DomainRejection("OrderNotFound")
            return self.orders[values[0]]
        if method == "is_liquidatable":
            return values[0] in self.liquidatable and values[0] in self.positions
        if method == "should_execute_order":
            return values[0] in self.triggered
        if method == "lastprice":
            return [1_234_567, 1_700_000_000]
        raise SimulationError(f"{method}: unknown entry point")

    def write_call(self, contract_id: str, method: str, args: Sequence[ScArg] = ()) -> ExecutionResult:
        values = tuple(a.value for a in args)
        with self._lock:
            self._in_flight += 1
            self.max_concurrent_writes = max(self.max_concurrent_writes, self._in_flight)
            self.writes.append((method, values))
        try:
            if self.write_delay:
                time.sleep(self.write_delay)
            if self.scripted[method]:
                return self.scripted[method].popleft()
            return self._default_write(method, values)
        finally:
            with self._lock:
                self._in_flight -= 1

    def _default_write(self, method: str, values: tuple) -> ExecutionResult:
        n = len(self.writes)
        if method == "liquidate":
            pid = values[1]
            if pid in self.liquidatable and pid in self.positions:
                del self.positions[pid]
                self.liquidatable.discard(pid)
                return ExecutionResult.ok(f"tx-liq-{pid}-{n}", self.reward)
            return ExecutionResult.from_error(DomainRejection("NotLiquidatable"))
        if method == "execute_order":
            oid = values[1]
            order = self.orders.get(oid)
            if order and order["status"] == 0 and oid in self.triggered:
                order["status"] = 1
                self.triggered.discard(oid)
                return ExecutionResult.ok(f"tx-ord-{oid}-{n}")
            return ExecutionResult.from_error(DomainRejection("OrderNotTriggered"))
        return ExecutionResult.ok(f"tx-{method}-{n}")


@pytest.fixture
def ledger() -> FakeLedger:
    return FakeLedger()


@pytest.fixture
def market(ledger: FakeLedger) -> MarketGateway:
    return MarketGateway(ledger, MARKET, ORACLE)


@pytest.fixture
def no_sleep() -> list[float]:
    """Collects requested sleep durations instead of sleeping."""
    return []
