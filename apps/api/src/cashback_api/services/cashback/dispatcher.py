"""Claim-and-dispatch engine for the cashback notification queue."""

from __future__ import annotations

import asyncio
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from time import monotonic
from typing import Any, Awaitable, Callable
from uuid import UUID

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from cashback_api.core.logging import pipeline_logger
from cashback_api.observability.cashback import get_cashback_store

from .errors import CashbackStoreError
from .gateway import DeliveryOutcome, MessagingGateway, is_valid_phone, normalize_phone
from .store import CashbackQueueStore, QueuedNotification

SessionFactory = Callable[[], AsyncSession] | Callable[[], Awaitable[AsyncSession]]
Clock = Callable[[], datetime]
logger = pipeline_logger("queue")

DEFAULT_STALE_AFTER_SECONDS = 600
DEFAULT_DISPATCH_CONCURRENCY = 5
DEFAULT_MAX_BATCH_SIZE = 50

SKIP_REASON_INVALID_PHONE = "Invalid or missing recipient phone"
SKIP_REASON_EMPTY_MESSAGE = "Empty message body"


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass
class DrainResult:
    """Counts for one drain invocation; ``processed`` equals the three outcomes summed."""

    sent: int = 0
    skipped: int = 0
    failed: int = 0
    claims_lost: int = 0
    stopped_early: bool = False

    @property
    def processed(self) -> int:
        return self.sent + self.skipped + self.failed

    def as_dict(self) -> dict[str, Any]:
        return {
            "processed": self.processed,
            "sent": self.sent,
            "skipped": self.skipped,
            "failed": self.failed,
            "claims_lost": self.claims_lost,
            "stopped_early": self.stopped_early,
        }


class CashbackQueueDispatcher:
    """Drain pending cashback notifications through the messaging gateway.

    Rows are claimed one at a time, oldest first, with a conditional update.
    A row is claimed only after one of ``concurrency`` dispatch slots frees
    up, so the time budget is checked before each send rather than once up
    front. Each resolution is written through its own session.
    """

    def __init__(
        self,
        session_factory: SessionFactory,
        gateway: MessagingGateway,
        *,
        stale_after_seconds: int = DEFAULT_STALE_AFTER_SECONDS,
        concurrency: int = DEFAULT_DISPATCH_CONCURRENCY,
        max_batch_size: int = DEFAULT_MAX_BATCH_SIZE,
        default_country_code: str = "55",
        clock: Clock | None = None,
    ) -> None:
        self._session_factory = session_factory
        self._gateway = gateway
        self._stale_after = timedelta(seconds=max(stale_after_seconds, 0))
        self._concurrency = max(concurrency, 1)
        self._max_batch_size = max(max_batch_size, 1)
        self._default_country_code = default_country_code
        self._clock = clock or _utcnow
        self._observability = get_cashback_store()

    async def drain(self, batch_size: int, *, time_budget_seconds: float | None = None) -> DrainResult:
        """Claim and resolve up to ``batch_size`` queue rows.

        Raises ``ValueError`` for a non-positive batch size and
        ``CashbackStoreError`` when the queue cannot be read or claimed.
        Rows claimed before a store failure stay ``processing`` until the
        staleness threshold makes them eligible again.
        """

        if batch_size <= 0:
            raise ValueError("batch_size must be a positive integer")
        limit = min(batch_size, self._max_batch_size)
        deadline = monotonic() + time_budget_seconds if time_budget_seconds else None

        result = DrainResult()
        semaphore = asyncio.Semaphore(self._concurrency)
        in_flight: list[asyncio.Task[str]] = []

        try:
            session = await self._acquire_session()
            async with session as managed_session:
                store = CashbackQueueStore(managed_session)
                now = self._clock()
                candidates = await store.fetch_eligible(limit=limit, stale_before=now - self._stale_after)
                if not candidates:
                    logger.debug("No cashback notifications eligible for dispatch")

                for candidate in candidates:
                    # Claim only while holding a dispatch slot; _dispatch releases it.
                    await semaphore.acquire()
                    if deadline is not None and monotonic() >= deadline:
                        semaphore.release()
                        result.stopped_early = True
                        logger.info(
                            "Cashback queue drain reached its time budget",
                            claimed=len(in_flight),
                            remaining=len(candidates) - len(in_flight) - result.claims_lost,
                        )
                        break

                    now = self._clock()
                    try:
                        token = await store.claim(candidate.id, now=now, stale_before=now - self._stale_after)
                    except BaseException:
                        semaphore.release()
                        raise
                    if token is None:
                        semaphore.release()
                        result.claims_lost += 1
                        self._observability.record_claim_lost()
                        logger.debug("Cashback notification claimed by another run", notification_id=str(candidate.id))
                        continue

                    self._observability.record_claim()
                    in_flight.append(asyncio.create_task(self._dispatch(candidate, token, semaphore)))
        except SQLAlchemyError as exc:
            raise CashbackStoreError(f"Cashback queue unavailable: {exc}") from exc
        finally:
            outcomes = await asyncio.gather(*in_flight, return_exceptions=True)

        store_failure: BaseException | None = None
        for outcome in outcomes:
            if isinstance(outcome, BaseException):
                store_failure = store_failure or outcome
                continue
            setattr(result, outcome, getattr(result, outcome) + 1)

        if store_failure is not None:
            if isinstance(store_failure, SQLAlchemyError):
                raise CashbackStoreError(f"Cashback queue unavailable: {store_failure}") from store_failure
            raise store_failure

        self._observability.record_queue_run(processed=result.processed)
        logger.bind(summary=result.as_dict()).info("Cashback queue drain finished")
        return result

    async def _dispatch(self, item: QueuedNotification, token: str, slot: asyncio.Semaphore) -> str:
        """Send one claimed row and record its outcome; releases ``slot`` when done."""

        try:
            phone = normalize_phone(item.recipient_phone, default_country_code=self._default_country_code)
            body = (item.message_body or "").strip()

            if not is_valid_phone(phone):
                return await self._resolve(item.id, token, "skipped", reason=SKIP_REASON_INVALID_PHONE)
            if not body:
                return await self._resolve(item.id, token, "skipped", reason=SKIP_REASON_EMPTY_MESSAGE)

            try:
                delivery = await self._gateway.send(phone, item.message_body)
            except Exception as exc:
                logger.exception("Messaging gateway raised while sending cashback notice", notification_id=str(item.id))
                delivery = DeliveryOutcome(delivered=False, reason=f"Gateway error: {exc}")

            if delivery.delivered:
                return await self._resolve(item.id, token, "sent")
            return await self._resolve(item.id, token, "failed", reason=delivery.reason or "Delivery failed")
        finally:
            slot.release()

    async def _resolve(self, notification_id: UUID, token: str, outcome: str, *, reason: str | None = None) -> str:
        now = self._clock()
        session = await self._acquire_session()
        async with session as managed_session:
            store = CashbackQueueStore(managed_session)
            if outcome == "sent":
                applied = await store.mark_sent(notification_id, token, now=now)
            elif outcome == "skipped":
                applied = await store.mark_skipped(notification_id, token, reason=reason or "", now=now)
            else:
                applied = await store.mark_failed(notification_id, token, reason=reason or "", now=now)

        if not applied:
            logger.warning(
                "Cashback notification claim was superseded before resolution",
                notification_id=str(notification_id),
                outcome=outcome,
            )
        else:
            logger.debug("Cashback notification resolved", notification_id=str(notification_id), outcome=outcome)
        self._observability.record_outcome(outcome)
        return outcome

    async def _acquire_session(self) -> AsyncSession:
        session_or_awaitable = self._session_factory()
        if asyncio.iscoroutine(session_or_awaitable):
            return await session_or_awaitable
        return session_or_awaitable


__all__ = [
    "CashbackQueueDispatcher",
    "DEFAULT_DISPATCH_CONCURRENCY",
    "DEFAULT_MAX_BATCH_SIZE",
    "DEFAULT_STALE_AFTER_SECONDS",
    "DrainResult",
    "SKIP_REASON_EMPTY_MESSAGE",
    "SKIP_REASON_INVALID_PHONE",
]
