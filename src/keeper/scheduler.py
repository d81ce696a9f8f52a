"""
Keeper scheduler: independent timers for sweep, funding and oracle ticks.

Each job runs on its own thread so a long sweep never starves the funding
timer; write serialization across jobs is the CycleRunner's lock. The stop
flag is checked between ticks: a tick that is already running (including
confirmation polling) finishes before its thread exits.
"""

from __future__ import annotations

import logging
import signal
import threading
from dataclasses import dataclass
from typing import Any, Callable

logger = logging.getLogger("keeper.scheduler")


@dataclass
class ScheduledJob:
    name: str
    interval: float
    callback: Callable[[], Any]
    run_immediately: bool = True
    runs: int = 0


class KeeperScheduler:
    """Thread-per-job interval scheduler with a shared stop flag."""

    def __init__(self, stop_event: threading.Event | None = None) -> None:
        self._jobs: dict[str, ScheduledJob] = {}
        self._threads: dict[str, threading.Thread] = {}
        self._stop = stop_event or threading.Event()

    @property
    def stop_event(self) -> threading.Event:
        return self._stop

    @property
    def stopping(self) -> bool:
        return self._stop.is_set()

    @property
    def jobs(self) -> dict[str, ScheduledJob]:
        return dict(self._jobs)

    def add_job(
        self,
        name: str,
        interval: float,
        callback: Callable[[], Any],
        *,
        run_immediately: bool = True,
    ) -> None:
        if name in self._jobs:
            raise ValueError(f"Job '{name}' already registered")
        if interval <= 0:
            raise ValueError(f"Job '{name}' needs a positive interval, got {interval}")
        self._jobs[name] = ScheduledJob(name, interval, callback, run_immediately)

    def start(self) -> None:
        self._stop.clear()
        for job in self._jobs.values():
            if job.name in self._threads:
                continue
            thread = threading.Thread(
                target=self._job_runner, args=(job,), name=f"keeper-{job.name}", daemon=True
            )
            self._threads[job.name] = thread
            thread.start()
        logger.info("Started %d job(s): %s", len(self._jobs), ", ".join(self._jobs))

    def stop(self) -> None:
        if not self._stop.is_set():
            logger.info("Stop requested; waiting for running ticks to finish")
        self._stop.set()

    def join(self, timeout: float | None = None) -> None:
        for thread in list(self._threads.values()):
            thread.join(timeout)
        self._threads = {n: t for n, t in self._threads.items() if t.is_alive()}

    def run_forever(self, *, install_signal_handlers: bool = True) -> None:
        """Start all jobs and block until stopped (SIGINT / SIGTERM)."""
        if install_signal_handlers:
            self.install_signal_handlers()
        self.start()
        # Short waits keep the main thread responsive to signals.
        while not self._stop.wait(0.5):
            if not any(t.is_alive() for t in self._threads.values()):
                break
        self.join()

    def install_signal_handlers(self) -> None:
        def _handle(signum: int, _frame: Any) -> None:
            logger.info("Received %s", signal.Signals(signum).name)
            self.stop()

        signal.signal(signal.SIGINT, _handle)
        signal.signal(signal.SIGTERM, _handle)

    def _job_runner(self, job: ScheduledJob) -> None:
        if not job.run_immediately and self._stop.wait(job.interval):
            return
        while not self._stop.is_set():
            try:
                job.callback()
            except Exception:
                # Callbacks isolate their own failures; this guards the thread.
                logger.exception("Error while executing job '%s'", job.name)
            job.runs += 1
            if self._stop.wait(job.interval):
                break
        logger.debug("Job '%s' stopped after %d run(s)", job.name, job.runs)
