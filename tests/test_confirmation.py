"""Tests for ledger.confirmation: bounded poll state machine (no real sleep)."""

from enum import Enum
from types import SimpleNamespace

from ledger.confirmation import TxState, next_state, status_name, wait_for_confirmation


class _Status(Enum):
    SUCCESS = "SUCCESS"
    NOT_FOUND = "NOT_FOUND"


def _fetcher(statuses):
    seq = list(statuses)
    calls = []

    def fetch(tx_hash):
        calls.append(tx_hash)
        status = seq.pop(0) if len(seq) > 1 else seq[0]
        return SimpleNamespace(status=status)

    return fetch, calls


def test_confirmed_after_pending_polls() -> None:
    fetch, calls = _fetcher(["NOT_FOUND", "NOT_FOUND", "SUCCESS"])
    sleeps = []
    c = wait_for_confirmation(fetch, "h", poll_interval=1.0, max_attempts=30, sleep=sleeps.append)
    assert c.state is TxState.CONFIRMED
    assert c.polls == 3
    assert sleeps == [1.0, 1.0]
    assert calls == ["h", "h", "h"]


def test_rejected() -> None:
    fetch, _ = _fetcher(["FAILED"])
    c = wait_for_confirmation(fetch, "h", sleep=lambda s: None)
    assert c.state is TxState.REJECTED
    assert c.status == "FAILED"
    assert c.terminal


def test_timeout_is_bounded() -> None:
    fetch, calls = _fetcher(["NOT_FOUND"])
    sleeps = []
    c = wait_for_confirmation(fetch, "h", poll_interval=1.0, max_attempts=30, sleep=sleeps.append)
    assert c.state is TxState.TIMED_OUT
    assert len(calls) == 30
    assert len(sleeps) == 29
    assert c.tx_hash == "h"


def test_enum_statuses_accepted() -> None:
    fetch, _ = _fetcher([_Status.NOT_FOUND, _Status.SUCCESS])
    c = wait_for_confirmation(fetch, "h", sleep=lambda s: None)
    assert c.state is TxState.CONFIRMED


def test_status_name() -> None:
    assert status_name(_Status.SUCCESS) == "SUCCESS"
    assert status_name("success") == "SUCCESS"


def test_unknown_status_keeps_waiting() -> None:
    assert next_state("WHATEVER") is TxState.SUBMITTED
