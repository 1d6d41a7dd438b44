"""Entry points that run one pipeline invocation and report a summary."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from time import perf_counter
from typing import Any, Awaitable, Callable, List

from sqlalchemy.ext.asyncio import AsyncSession

from cashback_api.core.logging import pipeline_logger
from cashback_api.core.settings import Settings, get_settings
from cashback_api.observability.cashback import get_cashback_store
from cashback_api.observability.tracing import get_tracer

from .dispatcher import CashbackQueueDispatcher
from .expiration import CashbackExpirationCoordinator
from .gateway import MessagingGateway, build_messaging_gateway

SessionFactory = Callable[[], AsyncSession] | Callable[[], Awaitable[AsyncSession]]
GatewayFactory = Callable[[], MessagingGateway]


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass
class RunSummary:
    """Outcome of one trigger invocation. Never persisted."""

    success: bool
    processed: int = 0
    sent: int = 0
    skipped: int = 0
    failed: int = 0
    expired_count: int = 0
    affected_customers: List[str] = field(default_factory=list)
    duration_ms: int = 0
    timestamp: datetime = field(default_factory=_utcnow)
    error: str | None = None

    def queue_payload(self) -> dict[str, Any]:
        payload: dict[str, Any] = {
            "success": self.success,
            "processed": self.processed,
            "sent": self.sent,
            "skipped": self.skipped,
            "failed": self.failed,
            "durationMs": self.duration_ms,
            "timestamp": self.timestamp.isoformat(),
        }
        if self.error is not None:
            payload["error"] = self.error
        return payload

    def expiration_payload(self) -> dict[str, Any]:
        payload: dict[str, Any] = {
            "success": self.success,
            "expiredCount": self.expired_count,
            "affectedCustomers": len(self.affected_customers),
            "durationMs": self.duration_ms,
            "timestamp": self.timestamp.isoformat(),
        }
        if self.error is not None:
            payload["error"] = self.error
        return payload


class CashbackTriggerService:
    """Wrap the dispatcher and expiration coordinator for external triggers.

    Both entry points measure wall-clock duration and always return a
    :class:`RunSummary`; failures are logged and reported through the
    summary's ``success`` flag instead of being raised.
    """

    def __init__(
        self,
        session_factory: SessionFactory,
        *,
        gateway_factory: GatewayFactory | None = None,
        settings: Settings | None = None,
    ) -> None:
        self._session_factory = session_factory
        self._settings = settings or get_settings()
        self._gateway_factory = gateway_factory or (lambda: build_messaging_gateway(self._settings))
        self._observability = get_cashback_store()

    async def process_queue(
        self,
        batch_size: int | None = None,
        *,
        time_budget_seconds: float | None = None,
    ) -> RunSummary:
        started = perf_counter()
        size = batch_size if batch_size is not None else self._settings.cashback_queue_batch_size
        budget = (
            time_budget_seconds
            if time_budget_seconds is not None
            else self._settings.cashback_queue_time_budget_seconds
        )

        try:
            dispatcher = CashbackQueueDispatcher(
                self._session_factory,
                self._gateway_factory(),
                stale_after_seconds=self._settings.cashback_queue_stale_after_seconds,
                concurrency=self._settings.cashback_queue_dispatch_concurrency,
                max_batch_size=self._settings.cashback_queue_max_batch_size,
                default_country_code=self._settings.whatsapp_default_country_code,
            )
            with get_tracer().start_as_current_span("cashback.queue.drain") as span:
                span.set_attribute("cashback.batch_size", size)
                result = await dispatcher.drain(size, time_budget_seconds=budget)
                span.set_attribute("cashback.processed", result.processed)
        except Exception as exc:
            summary = RunSummary(success=False, duration_ms=_elapsed_ms(started), error=str(exc))
            self._observability.record_run_failure("queue", str(exc))
            pipeline_logger("queue").exception("Cashback queue processing failed", batch_size=size)
            return summary

        summary = RunSummary(
            success=True,
            processed=result.processed,
            sent=result.sent,
            skipped=result.skipped,
            failed=result.failed,
            duration_ms=_elapsed_ms(started),
        )
        pipeline_logger("queue", summary=summary.queue_payload()).info("Cashback queue processed")
        return summary

    async def expire_lots(self, now: datetime | None = None) -> RunSummary:
        started = perf_counter()
        moment = now or _utcnow()

        try:
            with get_tracer().start_as_current_span("cashback.lots.expire") as span:
                result = await CashbackExpirationCoordinator(self._session_factory).expire_due(moment)
                span.set_attribute("cashback.expired_count", result.expired_count)
        except Exception as exc:
            summary = RunSummary(success=False, duration_ms=_elapsed_ms(started), error=str(exc))
            self._observability.record_run_failure("expiration", str(exc))
            pipeline_logger("expiration").exception("Cashback lot expiration failed")
            return summary

        summary = RunSummary(
            success=True,
            expired_count=result.expired_count,
            affected_customers=[str(customer_id) for customer_id in result.customer_ids],
            duration_ms=_elapsed_ms(started),
        )
        pipeline_logger("expiration", summary=summary.expiration_payload()).info("Cashback lots expired")
        return summary


def _elapsed_ms(started: float) -> int:
    return int((perf_counter() - started) * 1000)


__all__ = ["CashbackTriggerService", "GatewayFactory", "RunSummary"]
