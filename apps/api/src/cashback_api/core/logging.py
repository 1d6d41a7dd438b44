from __future__ import annotations

import json
import logging
import sys
from typing import Any, Dict

from loguru import logger
from opentelemetry import trace


# Attributes every stdlib LogRecord carries; anything else was passed via ``extra=``.
_STANDARD_RECORD_KEYS = frozenset(logging.makeLogRecord({}).__dict__) | {"message", "asctime", "taskName"}

_QUIET_LOGGERS = ("uvicorn.access", "apscheduler.executors", "apscheduler.scheduler", "httpx", "aiosqlite")


def pipeline_logger(pipeline: str, **context: Any):
    """Loguru logger tagged with the cashback pipeline (``queue`` or ``expiration``)."""

    return logger.bind(pipeline=pipeline, **context)


class InterceptHandler(logging.Handler):
    """Forward stdlib records from uvicorn, SQLAlchemy and APScheduler to Loguru."""

    def emit(self, record: logging.LogRecord) -> None:  # pragma: no cover - bridging glue
        try:
            level: str | int = logger.level(record.levelname).name
        except ValueError:
            level = record.levelno

        try:
            message = record.getMessage()
        except Exception:  # pragma: no cover - malformed format strings
            message = str(record.msg)

        context = {key: value for key, value in record.__dict__.items() if key not in _STANDARD_RECORD_KEYS}
        context.setdefault("stdlib_logger", record.name)

        logger.bind(**context).opt(depth=6, exception=record.exc_info).log(
            level, message.replace("{", "{{").replace("}", "}}")
        )


class JsonLogSink:
    """Write each Loguru record as one JSON line carrying service and trace metadata."""

    def __init__(self, *, service_name: str, environment: str, version: str, stream=None) -> None:
        self._service = {"service": service_name, "environment": environment, "version": version}
        self._stream = stream or sys.stdout

    def __call__(self, message: "logger.Message") -> None:
        self._stream.write(json.dumps(self.render(message.record), default=str) + "\n")

    def render(self, record: Dict[str, Any]) -> Dict[str, Any]:
        payload: Dict[str, Any] = {
            "timestamp": record["time"].isoformat(),
            "level": record["level"].name.lower(),
            "message": record["message"],
            "logger": record["name"],
            **self._service,
        }
        payload.update(_trace_fields())

        extra = dict(record["extra"])
        pipeline = extra.pop("pipeline", None)
        if pipeline:
            payload["pipeline"] = pipeline
        payload.update(extra)

        exception = record["exception"]
        if exception is not None and exception.type is not None:
            payload["exception"] = {"type": exception.type.__name__, "value": str(exception.value)}
        return payload


def _trace_fields() -> Dict[str, str]:
    span_context = trace.get_current_span().get_span_context()
    if not span_context.is_valid:
        return {}
    return {"trace_id": f"{span_context.trace_id:032x}", "span_id": f"{span_context.span_id:016x}"}


def configure_logging(*, service_name: str, environment: str, version: str) -> None:
    """Route Loguru and stdlib logging through a single JSON sink on stdout."""

    logger.remove()
    logger.add(
        JsonLogSink(service_name=service_name, environment=environment, version=version),
        backtrace=False,
        diagnose=False,
    )

    logging.basicConfig(handlers=[InterceptHandler()], level=0, force=True)
    for name in _QUIET_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)
