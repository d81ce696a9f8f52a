"""
Decode native contract values into Position / Order.

Soroban enums arrive in one of three shapes depending on how the contract
type is declared: a u32 index, a symbol string, or a one-element vector
``["Long"]``. Each enum has an explicit table; an unrecognised value raises
ParseError and the record is skipped. Numeric fields that fail to parse
fall back to 0 and are logged.
"""

from __future__ import annotations

import logging
from enum import Enum
from typing import Any, Mapping, TypeVar

from ledger.contracts import (
    Direction,
    Order,
    OrderStatus,
    OrderType,
    Position,
    TriggerCondition,
)
from ledger.errors import ParseError

logger = logging.getLogger("keeper.ledger.codec")

E = TypeVar("E", bound=Enum)

DIRECTION_BY_INDEX = {0: Direction.LONG, 1: Direction.SHORT}

ORDER_TYPE_BY_INDEX = {
    0: OrderType.LIMIT_ENTRY,
    1: OrderType.STOP_LOSS,
    2: OrderType.TAKE_PROFIT,
}

ORDER_STATUS_BY_INDEX = {
    0: OrderStatus.PENDING,
    1: OrderStatus.EXECUTED,
    2: OrderStatus.CANCELLED,
    3: OrderStatus.CANCELLED_SLIPPAGE,
    4: OrderStatus.EXPIRED,
}

TRIGGER_BY_INDEX = {0: TriggerCondition.ABOVE, 1: TriggerCondition.BELOW}


def decode_enum(table: Mapping[int, E], raw: Any, field: str) -> E:
    """Look up *raw* by index or by symbolic name in *table*."""
    value = raw
    if isinstance(value, (list, tuple)) and len(value) == 1:
        value = value[0]
    if isinstance(value, bytes):
        value = value.decode()

    if isinstance(value, bool):
        raise ParseError(f"{field}: boolean is not an enum value")
    if isinstance(value, int):
        if value in table:
            return table[value]
        raise ParseError(f"{field}: unknown index {value}")
    if isinstance(value, str):
        for member in table.values():
            if member.value == value:
                return member
        raise ParseError(f"{field}: unknown variant {value!r}")
    raise ParseError(f"{field}: cannot decode {raw!r}")


def to_int(raw: Any, field: str = "value") -> int:
    """Parse an integer field; 0 (with a warning) if it has the wrong shape."""
    if isinstance(raw, bool):
        return int(raw)
    if isinstance(raw, int):
        return raw
    try:
        return int(str(raw))
    except (TypeError, ValueError):
        logger.warning("Could not parse %s=%r as integer, using 0", field, raw)
        return 0


def to_str(raw: Any) -> str:
    if raw is None:
        return ""
    if isinstance(raw, bytes):
        return raw.decode()
    return str(getattr(raw, "address", raw))


def decode_asset(raw: Any) -> str:
    """Asset is a unit enum; accept ``"XLM"`` or ``["XLM"]``."""
    if isinstance(raw, (list, tuple)) and len(raw) == 1:
        raw = raw[0]
    return to_str(raw)


def _field(raw: Mapping[str, Any], name: str) -> Any:
    try:
        return raw[name]
    except KeyError:
        raise ParseError(f"missing field {name!r}") from None


def decode_position(raw: Any) -> Position:
    if not isinstance(raw, Mapping):
        raise ParseError(f"position: expected a map, got {type(raw).__name__}")
    return Position(
        id=to_int(_field(raw, "id"), "id"),
        trader=to_str(_field(raw, "trader")),
        asset=decode_asset(_field(raw, "asset")),
        collateral=to_int(raw.get("collateral"), "collateral"),
        size=to_int(raw.get("size"), "size"),
        entry_price=to_int(raw.get("entry_price"), "entry_price"),
        direction=decode_enum(DIRECTION_BY_INDEX, _field(raw, "direction"), "direction"),
        leverage=to_int(raw.get("leverage"), "leverage"),
        liquidation_price=to_int(raw.get("liquidation_price"), "liquidation_price"),
        created_at=to_int(raw.get("timestamp", raw.get("created_at")), "timestamp"),
        last_funding_time=to_int(raw.get("last_funding_time"), "last_funding_time"),
        accumulated_funding=to_int(raw.get("accumulated_funding"), "accumulated_funding"),
    )


def decode_order(raw: Any) -> Order:
    if not isinstance(raw, Mapping):
        raise ParseError(f"order: expected a map, got {type(raw).__name__}")
    has_position = bool(raw.get("has_position", False))
    position_id = to_int(raw.get("position_id"), "position_id")
    return Order(
        id=to_int(_field(raw, "id"), "id"),
        trader=to_str(_field(raw, "trader")),
        asset=decode_asset(_field(raw, "asset")),
        order_type=decode_enum(ORDER_TYPE_BY_INDEX, _field(raw, "order_type"), "order_type"),
        direction=decode_enum(DIRECTION_BY_INDEX, _field(raw, "direction"), "direction"),
        collateral=to_int(raw.get("collateral"), "collateral"),
        leverage=to_int(raw.get("leverage"), "leverage"),
        trigger_price=to_int(raw.get("trigger_price"), "trigger_price"),
        trigger_condition=decode_enum(
            TRIGGER_BY_INDEX, _field(raw, "trigger_condition"), "trigger_condition"
        ),
        slippage_tolerance_bps=to_int(raw.get("slippage_tolerance_bps"), "slippage_tolerance_bps"),
        linked_position_id=position_id if has_position else None,
        has_position=has_position,
        created_at=to_int(raw.get("created_at"), "created_at"),
        status=decode_enum(ORDER_STATUS_BY_INDEX, _field(raw, "status"), "status"),
    )


def decode_id_list(raw: Any, field: str = "ids") -> list[int]:
    """Normalize an enumeration result to ``list[int]``, dropping junk entries."""
    if raw is None:
        return []
    if not isinstance(raw, (list, tuple)):
        logger.warning("%s: expected a list, got %s", field, type(raw).__name__)
        return []
    ids: list[int] = []
    for item in raw:
        if isinstance(item, bool):
            logger.warning("%s: dropping non-integer id %r", field, item)
            continue
        try:
            ids.append(int(item))
        except (TypeError, ValueError):
            logger.warning("%s: dropping non-integer id %r", field, item)
    return ids


def decode_reward(raw: Any) -> int | None:
    """Reward returned by liquidate / execute_order, or None if absent or malformed."""
    if raw is None:
        return None
    if isinstance(raw, bool):
        logger.warning("Unexpected boolean reward %r, ignoring", raw)
        return None
    if isinstance(raw, int):
        return raw
    try:
        return int(str(raw))
    except (TypeError, ValueError):
        logger.warning("Could not parse reward %r, ignoring", raw)
        return None


def _contract_code(val: Any) -> int | None:
    """``N`` if *val* is an SCVal holding ``Error(Contract, #N)``."""
    if getattr(getattr(val, "type", None), "name", "") != "SCV_ERROR":
        return None
    err = getattr(val, "error", None)
    if getattr(getattr(err, "type", None), "name", "") != "SCE_CONTRACT":
        return None
    code = getattr(err, "contract_code", None)
    code = getattr(code, "uint32", code)
    return code if isinstance(code, int) and not isinstance(code, bool) else None


def contract_error_from_event(event: Any) -> int | None:
    """Contract error code carried by a decoded DiagnosticEvent, if any.

    A failing contract call emits an ``error`` event whose topics and data
    hold an ``SCV_ERROR`` value of type ``SCE_CONTRACT``.
    """
    body = getattr(getattr(getattr(event, "event", event), "body", None), "v0", None)
    if body is None:
        return None
    for val in [*(getattr(body, "topics", None) or []), getattr(body, "data", None)]:
        code = _contract_code(val)
        if code is not None:
            return code
    return None
