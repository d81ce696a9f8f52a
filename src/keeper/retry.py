"""
Retry policy for write calls.

Only transient failures are retried. A domain rejection means the target is
no longer actionable and a timeout means the outcome is unknown; retrying
either one would waste fees or double-submit.
"""

from __future__ import annotations

import dataclasses
import logging
import time
from typing import Callable

from ledger.contracts import ExecutionResult, FailureKind

logger = logging.getLogger("keeper.retry")

MAX_RETRIES = 3
RETRY_DELAY = 2.0

_NO_RETRY = {FailureKind.DOMAIN_REJECTION, FailureKind.TIMEOUT}


class RetryPolicy:
    """Run a write thunk up to *max_retries* times with a fixed delay.

    Parameters
    ----------
    max_retries:
        Total attempts, including the first one.
    retry_delay:
        Seconds to sleep between attempts.
    sleep:
        Injectable for tests.
    """

    def __init__(
        self,
        *,
        max_retries: int = MAX_RETRIES,
        retry_delay: float = RETRY_DELAY,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        if max_retries < 1:
            raise ValueError("max_retries must be at least 1")
        self.max_retries = max_retries
        self.retry_delay = retry_delay
        self._sleep = sleep

    def execute(self, call: Callable[[], ExecutionResult], label: str = "write") -> ExecutionResult:
        result = ExecutionResult.failed(f"{label}: not attempted")
        for attempt in range(1, self.max_retries + 1):
            result = dataclasses.replace(call(), attempts=attempt)
            if result.success:
                return result
            if result.kind in _NO_RETRY:
                logger.info("%s: %s, not retrying (%s)", label, result.kind.value, result.error)
                return result
            if attempt < self.max_retries:
                logger.warning(
                    "%s: attempt %d/%d failed: %s. Retrying in %.1fs",
                    label, attempt, self.max_retries, result.error, self.retry_delay,
                )
                self._sleep(self.retry_delay)

        logger.error("%s: giving up after %d attempts: %s", label, self.max_retries, result.error)
        return result
