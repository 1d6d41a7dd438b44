"""Load cashback job schedules from TOML."""

from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

import tomllib
from loguru import logger


@dataclass(slots=True)
class JobDefinition:
    """Describe a scheduled job."""

    id: str
    task: str
    cron: str
    kwargs: dict[str, Any] = field(default_factory=dict)
    description: str | None = None
    max_attempts: int = 1
    base_backoff_seconds: float = 5.0
    backoff_multiplier: float = 2.0
    max_backoff_seconds: float = 60.0
    jitter_seconds: float = 1.0


@dataclass(slots=True)
class ScheduleConfig:
    timezone: str
    jobs: list[JobDefinition]


def _as_float(payload: dict[str, Any], key: str, default: float, *, floor: float) -> float:
    value = payload.get(key, default)
    try:
        return max(float(value), floor)
    except (TypeError, ValueError):
        return default


def load_job_definitions(config_path: Path) -> ScheduleConfig:
    """Load enabled job definitions from a TOML schedule file.

    Entries live under ``[jobs.<key>]``; ``enabled = false`` drops an entry
    and entries without a ``task`` or ``cron`` string are ignored.
    """

    if not config_path.exists():
        raise FileNotFoundError(f"Schedule config not found: {config_path}")

    data = tomllib.loads(config_path.read_text())
    jobs: list[JobDefinition] = []
    for key, payload in data.get("jobs", {}).items():
        if not isinstance(payload, dict) or not payload.get("enabled", True):
            continue
        task = payload.get("task")
        cron = payload.get("cron")
        if not isinstance(task, str) or not isinstance(cron, str):
            logger.warning("Ignoring incomplete schedule entry", job_id=key, path=str(config_path))
            continue
        kwargs = payload.get("kwargs", {})

        jobs.append(
            JobDefinition(
                id=str(payload.get("id") or key),
                task=task,
                cron=cron,
                kwargs=kwargs if isinstance(kwargs, dict) else {},
                description=payload.get("description"),
                max_attempts=max(int(payload.get("max_attempts", 1) or 1), 1),
                base_backoff_seconds=_as_float(payload, "base_backoff_seconds", 5.0, floor=0.0),
                backoff_multiplier=_as_float(payload, "backoff_multiplier", 2.0, floor=1.0),
                max_backoff_seconds=_as_float(payload, "max_backoff_seconds", 60.0, floor=0.0),
                jitter_seconds=_as_float(payload, "jitter_seconds", 1.0, floor=0.0),
            )
        )

    return ScheduleConfig(timezone=str(data.get("timezone", "UTC")), jobs=jobs)


__all__ = ["JobDefinition", "ScheduleConfig", "load_job_definitions"]
