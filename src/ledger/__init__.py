"""
Ledger layer: contract records, tagged errors, Soroban client, market gateway.

Depends on nothing in keeper/; keeper depends on ledger.
"""

from ledger.client import LedgerClient, ScArg, SorobanLedgerClient
from ledger.contracts import (
    Direction,
    ExecutionResult,
    FailureKind,
    Order,
    OrderStatus,
    OrderType,
    Position,
    TriggerCondition,
)
from ledger.errors import (
    DomainRejection,
    LedgerError,
    ParseError,
    SimulationError,
    TransientError,
    TransportTimeout,
)
from ledger.market import MarketGateway

__all__ = [
    "Direction",
    "DomainRejection",
    "ExecutionResult",
    "FailureKind",
    "LedgerClient",
    "LedgerError",
    "MarketGateway",
    "Order",
    "OrderStatus",
    "OrderType",
    "ParseError",
    "Position",
    "ScArg",
    "SimulationError",
    "SorobanLedgerClient",
    "TransientError",
    "TransportTimeout",
    "TriggerCondition",
]
