"""Conditional reads and writes against the cashback notification queue."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from uuid import UUID, uuid4

from sqlalchemy import and_, func, or_, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from cashback_api.models.cashback import (
    CashbackNotification,
    CashbackNotificationStatus,
)

from .errors import NotificationNotFoundError, NotificationResetConflictError

RESETTABLE_STATUSES = frozenset({CashbackNotificationStatus.FAILED, CashbackNotificationStatus.SKIPPED})


@dataclass(frozen=True, slots=True)
class QueuedNotification:
    """Detached snapshot of a queue row selected for dispatch."""

    id: UUID
    customer_id: UUID | None
    recipient_phone: str | None
    message_body: str | None
    status: CashbackNotificationStatus
    created_at: datetime


def _claimable(stale_before: datetime):
    return or_(
        CashbackNotification.status == CashbackNotificationStatus.PENDING,
        and_(
            CashbackNotification.status == CashbackNotificationStatus.PROCESSING,
            CashbackNotification.updated_at <= stale_before,
        ),
    )


class CashbackQueueStore:
    """Repository for queue rows.

    Every state transition is a single ``UPDATE`` whose ``WHERE`` clause
    encodes the expected current state, and each write is committed
    immediately so that competing runs in other processes observe it.
    The affected-row count tells the caller whether it won the row.
    """

    def __init__(self, session: AsyncSession) -> None:
        self._db = session

    async def fetch_eligible(self, *, limit: int, stale_before: datetime) -> list[QueuedNotification]:
        """Return up to ``limit`` claimable rows, oldest first."""

        stmt = (
            select(
                CashbackNotification.id,
                CashbackNotification.customer_id,
                CashbackNotification.recipient_phone,
                CashbackNotification.message_body,
                CashbackNotification.status,
                CashbackNotification.created_at,
            )
            .where(_claimable(stale_before))
            .order_by(CashbackNotification.created_at.asc(), CashbackNotification.id.asc())
            .limit(limit)
        )
        result = await self._db.execute(stmt)
        rows = [QueuedNotification(*row) for row in result.all()]
        # The read must not hold a transaction open while the claims run.
        await self._db.commit()
        return rows

    async def claim(self, notification_id: UUID, *, now: datetime, stale_before: datetime) -> str | None:
        """Flip a row into ``processing``; returns the claim token or ``None`` if another run owns it."""

        token = str(uuid4())
        stmt = (
            update(CashbackNotification)
            .where(CashbackNotification.id == notification_id, _claimable(stale_before))
            .values(
                status=CashbackNotificationStatus.PROCESSING,
                claim_token=token,
                updated_at=now,
            )
            .execution_options(synchronize_session=False)
        )
        result = await self._db.execute(stmt)
        await self._db.commit()
        if result.rowcount != 1:
            return None
        return token

    async def mark_sent(self, notification_id: UUID, claim_token: str, *, now: datetime) -> bool:
        return await self._resolve(
            notification_id,
            claim_token,
            status=CashbackNotificationStatus.SENT,
            now=now,
            attempts=CashbackNotification.attempts + 1,
            last_attempt_at=now,
            sent_at=now,
            error_message=None,
        )

    async def mark_skipped(self, notification_id: UUID, claim_token: str, *, reason: str, now: datetime) -> bool:
        return await self._resolve(
            notification_id,
            claim_token,
            status=CashbackNotificationStatus.SKIPPED,
            now=now,
            error_message=reason,
        )

    async def mark_failed(self, notification_id: UUID, claim_token: str, *, reason: str, now: datetime) -> bool:
        return await self._resolve(
            notification_id,
            claim_token,
            status=CashbackNotificationStatus.FAILED,
            now=now,
            attempts=CashbackNotification.attempts + 1,
            last_attempt_at=now,
            error_message=reason,
        )

    async def _resolve(
        self,
        notification_id: UUID,
        claim_token: str,
        *,
        status: CashbackNotificationStatus,
        now: datetime,
        **values: object,
    ) -> bool:
        stmt = (
            update(CashbackNotification)
            .where(
                CashbackNotification.id == notification_id,
                CashbackNotification.status == CashbackNotificationStatus.PROCESSING,
                CashbackNotification.claim_token == claim_token,
            )
            .values(status=status, updated_at=now, **values)
            .execution_options(synchronize_session=False)
        )
        result = await self._db.execute(stmt)
        await self._db.commit()
        return result.rowcount == 1

    async def reset_to_pending(self, notification_id: UUID, *, now: datetime) -> CashbackNotification:
        """Operator reset of a terminal row so the next drain picks it up again."""

        stmt = (
            update(CashbackNotification)
            .where(
                CashbackNotification.id == notification_id,
                CashbackNotification.status.in_(sorted(RESETTABLE_STATUSES, key=lambda status: status.value)),
            )
            .values(
                status=CashbackNotificationStatus.PENDING,
                claim_token=None,
                error_message=None,
                updated_at=now,
            )
            .execution_options(synchronize_session=False)
        )
        result = await self._db.execute(stmt)
        await self._db.commit()

        notification = await self._db.get(CashbackNotification, notification_id, populate_existing=True)
        if notification is None:
            raise NotificationNotFoundError(str(notification_id))
        if result.rowcount != 1:
            raise NotificationResetConflictError(
                f"Notification {notification_id} is {notification.status.value}; "
                "only failed or skipped notifications can be reset"
            )
        return notification

    async def status_counts(self) -> dict[str, int]:
        stmt = select(CashbackNotification.status, func.count()).group_by(CashbackNotification.status)
        result = await self._db.execute(stmt)
        counts = {status.value: 0 for status in CashbackNotificationStatus}
        for status, count in result.all():
            key = status.value if isinstance(status, CashbackNotificationStatus) else str(status)
            counts[key] = int(count)
        return counts


__all__ = ["CashbackQueueStore", "QueuedNotification", "RESETTABLE_STATUSES"]
