"""
Data contracts for the market: Position, Order, ExecutionResult.

Records mirror what the market contract returns from get_position / get_order.
Fixed-point amounts stay as Python ints (contract i128); the keeper never does
margin math on them. No I/O; these are plain dataclasses.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Any


# ---------------------------------------------------------------------------
# Contract enums
# ---------------------------------------------------------------------------


class Direction(str, Enum):
    LONG = "Long"
    SHORT = "Short"


class OrderType(str, Enum):
    LIMIT_ENTRY = "LimitEntry"
    STOP_LOSS = "StopLoss"
    TAKE_PROFIT = "TakeProfit"


class OrderStatus(str, Enum):
    """Order lifecycle. Everything except PENDING is terminal."""

    PENDING = "Pending"
    EXECUTED = "Executed"
    CANCELLED = "Cancelled"
    CANCELLED_SLIPPAGE = "CancelledSlippage"
    EXPIRED = "Expired"


class TriggerCondition(str, Enum):
    ABOVE = "Above"
    BELOW = "Below"


class FailureKind(str, Enum):
    """Why a write attempt failed. Decides retry behaviour."""

    DOMAIN_REJECTION = "DOMAIN_REJECTION"
    TRANSIENT = "TRANSIENT"
    TIMEOUT = "TIMEOUT"
    UNKNOWN = "UNKNOWN"


# ---------------------------------------------------------------------------
# Records
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class Position:
    """Open leveraged exposure. liquidation_price is authoritative on-chain."""

    id: int
    trader: str
    asset: str
    collateral: int
    size: int
    entry_price: int
    direction: Direction
    leverage: int
    liquidation_price: int
    created_at: int
    last_funding_time: int
    accumulated_funding: int


@dataclass(frozen=True)
class Order:
    """Standing conditional instruction awaiting a trigger price."""

    id: int
    trader: str
    asset: str
    order_type: OrderType
    direction: Direction
    collateral: int
    leverage: int
    trigger_price: int
    trigger_condition: TriggerCondition
    slippage_tolerance_bps: int
    linked_position_id: int | None
    has_position: bool
    created_at: int
    status: OrderStatus

    @property
    def is_pending(self) -> bool:
        return self.status is OrderStatus.PENDING

    @property
    def manages_position(self) -> bool:
        """StopLoss / TakeProfit attached to an existing position."""
        return self.has_position and self.linked_position_id is not None


@dataclass(frozen=True)
class ExecutionResult:
    """Outcome of one write (or one retried write). Logged, never persisted."""

    success: bool
    tx_hash: str | None = None
    reward: int | None = None
    error: str | None = None
    kind: FailureKind | None = None
    code: str | None = None
    attempts: int = 1

    @classmethod
    def ok(cls, tx_hash: str | None, reward: int | None = None) -> ExecutionResult:
        return cls(success=True, tx_hash=tx_hash, reward=reward)

    @classmethod
    def failed(
        cls,
        error: str,
        kind: FailureKind = FailureKind.UNKNOWN,
        *,
        code: str | None = None,
        tx_hash: str | None = None,
    ) -> ExecutionResult:
        return cls(success=False, error=error, kind=kind, code=code, tx_hash=tx_hash)

    @classmethod
    def from_error(cls, exc: Any) -> ExecutionResult:
        """Build a failed result from a ledger.errors.LedgerError."""
        return cls.failed(
            str(exc),
            getattr(exc, "kind", FailureKind.UNKNOWN),
            code=getattr(exc, "code", None),
            tx_hash=getattr(exc, "tx_hash", None),
        )

    @property
    def is_domain_rejection(self) -> bool:
        return self.kind is FailureKind.DOMAIN_REJECTION

    @property
    def is_timeout(self) -> bool:
        return self.kind is FailureKind.TIMEOUT

    def to_dict(self) -> dict:
        return {
            "success": self.success,
            "tx_hash": self.tx_hash,
            "reward": self.reward,
            "error": self.error,
            "kind": self.kind.value if self.kind else None,
            "code": self.code,
            "attempts": self.attempts,
        }
