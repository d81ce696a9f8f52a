"""
Transaction confirmation: bounded poll of a submitted transaction.

    SUBMITTED -> CONFIRMED | REJECTED | TIMED_OUT

The ledger reports NOT_FOUND until the transaction is included. A timeout
is an unknown outcome: the transaction may still land, so callers must
re-derive state from the ledger instead of resubmitting.
"""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass
from enum import Enum
from typing import Any, Callable

logger = logging.getLogger("keeper.ledger.confirmation")

DEFAULT_POLL_INTERVAL = 1.0
DEFAULT_MAX_POLL_ATTEMPTS = 30

_CONFIRMED_STATUSES = {"SUCCESS"}
_REJECTED_STATUSES = {"FAILED", "ERROR"}
_PENDING_STATUSES = {"NOT_FOUND", "PENDING"}


class TxState(str, Enum):
    SUBMITTED = "SUBMITTED"
    CONFIRMED = "CONFIRMED"
    REJECTED = "REJECTED"
    TIMED_OUT = "TIMED_OUT"


@dataclass(frozen=True)
class Confirmation:
    state: TxState
    tx_hash: str
    polls: int
    response: Any = None
    status: str = ""

    @property
    def terminal(self) -> bool:
        return self.state is not TxState.SUBMITTED


def status_name(status: Any) -> str:
    """Normalize an RPC status (enum member or string) to its upper-case name."""
    value = getattr(status, "value", status)
    return str(value).upper()


def next_state(status: str) -> TxState:
    """Map one polled status to the state it moves the transaction into."""
    if status in _CONFIRMED_STATUSES:
        return TxState.CONFIRMED
    if status in _REJECTED_STATUSES:
        return TxState.REJECTED
    if status not in _PENDING_STATUSES:
        logger.warning("Unrecognised transaction status %r, still waiting", status)
    return TxState.SUBMITTED


def wait_for_confirmation(
    fetch: Callable[[str], Any],
    tx_hash: str,
    *,
    poll_interval: float = DEFAULT_POLL_INTERVAL,
    max_attempts: int = DEFAULT_MAX_POLL_ATTEMPTS,
    sleep: Callable[[float], None] = time.sleep,
) -> Confirmation:
    """Poll *fetch(tx_hash)* until a terminal status or *max_attempts* polls.

    *fetch* returns an object with a ``status`` attribute.
    """
    response = None
    status = ""
    for poll in range(1, max_attempts + 1):
        response = fetch(tx_hash)
        status = status_name(getattr(response, "status", ""))
        state = next_state(status)
        if state is not TxState.SUBMITTED:
            logger.debug("tx %s -> %s after %d poll(s)", tx_hash, state.value, poll)
            return Confirmation(state, tx_hash, poll, response, status)
        if poll < max_attempts:
            sleep(poll_interval)

    logger.warning("tx %s not confirmed after %d polls", tx_hash, max_attempts)
    return Confirmation(TxState.TIMED_OUT, tx_hash, max_attempts, response, status)
