"""In-memory counters for the cashback queue and expiration pipeline."""

from __future__ import annotations

from collections import defaultdict
from dataclasses import dataclass
from datetime import datetime, timezone
from threading import Lock
from typing import Dict


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass
class CashbackSnapshot:
    queue: Dict[str, int]
    expiration: Dict[str, int]
    runs: Dict[str, int]
    last_queue_run_at: datetime | None
    last_expiration_run_at: datetime | None
    last_error: str | None
    last_error_at: datetime | None
    failing_pipelines: list[str]

    def as_dict(self) -> Dict[str, object]:
        return {
            "queue": dict(self.queue),
            "expiration": dict(self.expiration),
            "runs": dict(self.runs),
            "last_queue_run_at": self.last_queue_run_at.isoformat() if self.last_queue_run_at else None,
            "last_expiration_run_at": (
                self.last_expiration_run_at.isoformat() if self.last_expiration_run_at else None
            ),
            "last_error": self.last_error,
            "last_error_at": self.last_error_at.isoformat() if self.last_error_at else None,
            "failing_pipelines": list(self.failing_pipelines),
        }


class CashbackObservabilityStore:
    """Collect cashback pipeline telemetry for dashboards and readiness checks."""

    def __init__(self) -> None:
        self._lock = Lock()
        self._queue: Dict[str, int] = defaultdict(int)
        self._expiration: Dict[str, int] = defaultdict(int)
        self._runs: Dict[str, int] = defaultdict(int)
        self._last_queue_run_at: datetime | None = None
        self._last_expiration_run_at: datetime | None = None
        self._last_error: str | None = None
        self._last_error_at: datetime | None = None
        self._failing: set[str] = set()

    def record_claim(self) -> None:
        with self._lock:
            self._queue["claimed"] += 1

    def record_claim_lost(self) -> None:
        with self._lock:
            self._queue["claims_lost"] += 1

    def record_outcome(self, outcome: str) -> None:
        with self._lock:
            self._queue[outcome] += 1

    def record_queue_run(self, *, processed: int) -> None:
        with self._lock:
            self._runs["queue"] += 1
            self._queue["processed"] += processed
            self._last_queue_run_at = _utcnow()
            self._failing.discard("queue")

    def record_expiration_run(self, *, expired_count: int, affected_customers: int) -> None:
        with self._lock:
            self._runs["expiration"] += 1
            self._expiration["lots_expired"] += expired_count
            self._expiration["customers_affected"] += affected_customers
            self._last_expiration_run_at = _utcnow()
            self._failing.discard("expiration")

    def record_run_failure(self, pipeline: str, error: str) -> None:
        with self._lock:
            self._runs[f"{pipeline}_failures"] += 1
            self._failing.add(pipeline)
            self._last_error = error
            self._last_error_at = _utcnow()

    def snapshot(self) -> CashbackSnapshot:
        with self._lock:
            return CashbackSnapshot(
                queue=dict(self._queue),
                expiration=dict(self._expiration),
                runs=dict(self._runs),
                last_queue_run_at=self._last_queue_run_at,
                last_expiration_run_at=self._last_expiration_run_at,
                last_error=self._last_error,
                last_error_at=self._last_error_at,
                failing_pipelines=sorted(self._failing),
            )

    def reset(self) -> None:
        with self._lock:
            self._queue.clear()
            self._expiration.clear()
            self._runs.clear()
            self._last_queue_run_at = None
            self._last_expiration_run_at = None
            self._last_error = None
            self._last_error_at = None
            self._failing.clear()


_STORE = CashbackObservabilityStore()


def get_cashback_store() -> CashbackObservabilityStore:
    return _STORE


__all__ = ["CashbackObservabilityStore", "CashbackSnapshot", "get_cashback_store"]
