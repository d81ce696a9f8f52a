"""Tests for the keeper scheduler (short intervals, no signals)."""

import threading
import time

import pytest

from keeper.scheduler import KeeperScheduler


def _wait_for(predicate, timeout: float = 2.0) -> bool:
    deadline = time.monotonic() + timeout
    while time.monotonic() < deadline:
        if predicate():
            return True
        time.sleep(0.005)
    return predicate()


# ---------------------------------------------------------------------------
# add_job
# ---------------------------------------------------------------------------

def test_duplicate_job_raises() -> None:
    s = KeeperScheduler()
    s.add_job("sweep", 1, lambda: None)
    with pytest.raises(ValueError, match="already registered"):
        s.add_job("sweep", 1, lambda: None)


def test_non_positive_interval_raises() -> None:
    with pytest.raises(ValueError, match="positive interval"):
        KeeperScheduler().add_job("sweep", 0, lambda: None)


def test_jobs_listed_in_registration_order() -> None:
    s = KeeperScheduler()
    s.add_job("sweep", 10, lambda: None)
    s.add_job("funding", 3600, lambda: None)
    assert list(s.jobs) == ["sweep", "funding"]


# ---------------------------------------------------------------------------
# running
# ---------------------------------------------------------------------------

def test_jobs_run_independently() -> None:
    s = KeeperScheduler()
    fast, slow = [], []
    s.add_job("fast", 0.01, lambda: fast.append(1))
    s.add_job("slow", 60, lambda: slow.append(1))
    s.start()
    try:
        assert _wait_for(lambda: len(fast) >= 3)
    finally:
        s.stop()
        s.join(2)
    # run_immediately: slow fired once, then waits its interval
    assert slow == [1]


def test_long_job_does_not_starve_other_timer() -> None:
    s = KeeperScheduler()
    gate = threading.Event()
    ticks = []
    s.add_job("sweep", 0.01, lambda: gate.wait(2))
    s.add_job("funding", 0.01, lambda: ticks.append(1))
    s.start()
    try:
        assert _wait_for(lambda: len(ticks) >= 3)
    finally:
        gate.set()
        s.stop()
        s.join(2)


def test_run_immediately_false_waits_for_interval() -> None:
    s = KeeperScheduler()
    calls = []
    s.add_job("funding", 60, lambda: calls.append(1), run_immediately=False)
    s.start()
    time.sleep(0.05)
    s.stop()
    s.join(2)
    assert calls == []


def test_callback_exception_does_not_kill_thread() -> None:
    s = KeeperScheduler()
    calls = []

    def flaky() -> None:
        calls.append(1)
        if len(calls) == 1:
            raise RuntimeError("first tick blew up")

    s.add_job("sweep", 0.01, flaky)
    s.start()
    try:
        assert _wait_for(lambda: len(calls) >= 2)
    finally:
        s.stop()
        s.join(2)


def test_stop_lets_running_tick_finish() -> None:
    s = KeeperScheduler()
    started = threading.Event()
    finished = []

    def tick() -> None:
        started.set()
        time.sleep(0.05)
        finished.append(1)

    s.add_job("sweep", 60, tick)
    s.start()
    assert started.wait(2)
    s.stop()
    s.join(2)
    assert finished == [1]
    assert s.jobs["sweep"].runs == 1


def test_run_forever_returns_when_stopped() -> None:
    stop = threading.Event()
    s = KeeperScheduler(stop_event=stop)
    calls = []

    def tick() -> None:
        calls.append(1)
        stop.set()

    s.add_job("sweep", 60, tick)
    s.run_forever(install_signal_handlers=False)
    assert calls == [1]
    assert s.stopping
