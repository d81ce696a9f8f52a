"""
Structured JSON event logger for operator observability.

Emits one JSON object per line to stderr. Events are designed to be
parsed by log aggregators (Grafana Loki, CloudWatch, ELK). Alerting is
left to that tooling; the keeper itself never calls out.
"""

from __future__ import annotations

import json
import sys
from datetime import datetime, timezone
from typing import Any


class StructuredEventLogger:
    """Emit structured JSON events to a stream (stderr by default)."""

    def __init__(
        self,
        keeper: str,
        *,
        enabled: bool = True,
        stream: Any = None,
    ) -> None:
        self._keeper = keeper
        self._enabled = enabled
        self._stream = stream or sys.stderr

    def _emit(self, event_type: str, **fields: Any) -> dict:
        record = {
            "ts": datetime.now(timezone.utc).isoformat(),
            "event": event_type,
            "keeper": self._keeper,
            **fields,
        }
        if self._enabled:
            self._stream.write(json.dumps(record, default=str) + "\n")
            self._stream.flush()
        return record

    def startup(self, network: str, market: str, jobs: list[str]) -> dict:
        return self._emit("startup", network=network, market=market, jobs=jobs)

    def cycle_start(self, cycle: int) -> dict:
        return self._emit("cycle_start", cycle=cycle)

    def targets_found(
        self,
        liquidatable: list[int],
        executable: list[int],
        orphaned: list[int],
    ) -> dict:
        return self._emit(
            "targets_found",
            liquidatable=liquidatable,
            executable=executable,
            orphaned=orphaned,
        )

    def action_result(self, action: str, target: int, **result: Any) -> dict:
        return self._emit("action_result", action=action, target=target, **result)

    def funding_result(self, **result: Any) -> dict:
        return self._emit("funding_result", **result)

    def oracle_update(self, asset: str, price: str, **result: Any) -> dict:
        return self._emit("oracle_update", asset=asset, price=price, **result)

    def cycle_complete(self, cycle: int, attempted: int, seconds: float) -> dict:
        return self._emit("cycle_complete", cycle=cycle, attempted=attempted, seconds=seconds)

    def stats(self, **snapshot: Any) -> dict:
        return self._emit("stats", **snapshot)

    def error(self, message: str, detail: str = "") -> dict:
        return self._emit("error", message=message, detail=detail)

    def shutdown(self, **snapshot: Any) -> dict:
        return self._emit("shutdown", **snapshot)
