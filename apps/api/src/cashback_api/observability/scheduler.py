"""Per-job run metrics for the in-process cashback scheduler."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from threading import Lock
from typing import Any, Dict


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _iso(value: datetime | None) -> str | None:
    return value.isoformat() if value else None


@dataclass
class SchedulerJobSnapshot:
    """Serializable snapshot of a scheduled job."""

    job_id: str
    task: str
    totals: Dict[str, int]
    last_runtime_seconds: float | None
    last_started_at: datetime | None
    last_success_at: datetime | None
    last_error_at: datetime | None
    last_error: str | None
    last_attempts: int
    last_result: Dict[str, Any] | None

    def as_dict(self) -> Dict[str, object]:
        return {
            "job_id": self.job_id,
            "task": self.task,
            "totals": self.totals,
            "last_runtime_seconds": self.last_runtime_seconds,
            "last_started_at": _iso(self.last_started_at),
            "last_success_at": _iso(self.last_success_at),
            "last_error_at": _iso(self.last_error_at),
            "last_error": self.last_error,
            "last_attempts": self.last_attempts,
            "last_result": self.last_result,
        }


@dataclass
class SchedulerSnapshot:
    totals: Dict[str, int]
    jobs: Dict[str, SchedulerJobSnapshot]

    def as_dict(self) -> Dict[str, object]:
        return {
            "totals": self.totals,
            "jobs": {job_id: snapshot.as_dict() for job_id, snapshot in self.jobs.items()},
        }


@dataclass
class _JobState:
    job_id: str
    task: str
    counters: Dict[str, int] = field(
        default_factory=lambda: {
            "runs": 0,
            "success": 0,
            "run_failures": 0,
            "attempt_failures": 0,
            "retries": 0,
            "consecutive_failures": 0,
        }
    )
    last_runtime_seconds: float | None = None
    last_started_at: datetime | None = None
    last_success_at: datetime | None = None
    last_error_at: datetime | None = None
    last_error: str | None = None
    last_attempts: int = 0
    last_result: Dict[str, Any] | None = None

    def snapshot(self) -> SchedulerJobSnapshot:
        return SchedulerJobSnapshot(
            job_id=self.job_id,
            task=self.task,
            totals=dict(self.counters),
            last_runtime_seconds=self.last_runtime_seconds,
            last_started_at=self.last_started_at,
            last_success_at=self.last_success_at,
            last_error_at=self.last_error_at,
            last_error=self.last_error,
            last_attempts=self.last_attempts,
            last_result=dict(self.last_result) if self.last_result is not None else None,
        )


class SchedulerObservabilityStore:
    """Tracks dispatch, retry and failure counts per scheduled job."""

    def __init__(self) -> None:
        self._lock = Lock()
        self._jobs: Dict[str, _JobState] = {}

    def reset(self) -> None:
        with self._lock:
            self._jobs.clear()

    def _state(self, job_id: str, task: str) -> _JobState:
        state = self._jobs.get(job_id)
        if state is None:
            state = _JobState(job_id=job_id, task=task)
            self._jobs[job_id] = state
        state.task = task
        return state

    def record_dispatch(self, job_id: str, task: str) -> None:
        with self._lock:
            state = self._state(job_id, task)
            state.counters["runs"] += 1
            state.last_started_at = _utcnow()
            state.last_attempts = 0

    def record_attempt_failure(self, job_id: str, task: str, *, attempts: int, error: str) -> None:
        with self._lock:
            state = self._state(job_id, task)
            state.counters["attempt_failures"] += 1
            state.counters["consecutive_failures"] += 1
            state.last_error = error
            state.last_error_at = _utcnow()
            state.last_attempts = attempts

    def record_retry(self, job_id: str, task: str, *, attempts: int) -> None:
        with self._lock:
            state = self._state(job_id, task)
            state.counters["retries"] += 1
            state.last_attempts = attempts

    def record_success(
        self,
        job_id: str,
        task: str,
        *,
        runtime_seconds: float,
        attempts: int,
        result: Dict[str, Any] | None = None,
    ) -> None:
        with self._lock:
            state = self._state(job_id, task)
            state.counters["success"] += 1
            state.counters["consecutive_failures"] = 0
            state.last_runtime_seconds = runtime_seconds
            state.last_success_at = _utcnow()
            state.last_attempts = attempts
            state.last_result = result
            state.last_error = None
            state.last_error_at = None

    def record_run_failure(self, job_id: str, task: str, *, runtime_seconds: float, attempts: int, error: str) -> None:
        with self._lock:
            state = self._state(job_id, task)
            state.counters["run_failures"] += 1
            state.last_runtime_seconds = runtime_seconds
            state.last_error = error
            state.last_error_at = _utcnow()
            state.last_attempts = attempts

    def snapshot(self) -> SchedulerSnapshot:
        with self._lock:
            jobs = {job_id: state.snapshot() for job_id, state in self._jobs.items()}
        totals: Dict[str, int] = {"runs": 0, "success": 0, "run_failures": 0, "attempt_failures": 0, "retries": 0}
        for job in jobs.values():
            for key in totals:
                totals[key] += job.totals.get(key, 0)
        return SchedulerSnapshot(totals=totals, jobs=jobs)


_SCHEDULER_STORE = SchedulerObservabilityStore()


def get_scheduler_store() -> SchedulerObservabilityStore:
    return _SCHEDULER_STORE


__all__ = [
    "SchedulerObservabilityStore",
    "SchedulerSnapshot",
    "get_scheduler_store",
]
