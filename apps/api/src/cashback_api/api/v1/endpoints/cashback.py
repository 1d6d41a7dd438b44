"""Trigger and administration endpoints for the cashback pipeline."""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Dict, Optional
from uuid import UUID

from fastapi import APIRouter, Depends, HTTPException, Query, Response, status
from pydantic import BaseModel
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from cashback_api.api.dependencies.cashback import get_trigger_service
from cashback_api.db.session import get_session
from cashback_api.models.cashback import CashbackNotification
from cashback_api.services.cashback import (
    CashbackQueueStore,
    CashbackTriggerService,
    NotificationNotFoundError,
    NotificationResetConflictError,
)


router = APIRouter(prefix="/cashback", tags=["cashback"])


class QueueProcessResponse(BaseModel):
    success: bool
    processed: int
    sent: int
    skipped: int
    failed: int
    durationMs: int
    timestamp: datetime
    error: Optional[str] = None


class ExpirationResponse(BaseModel):
    success: bool
    expiredCount: int
    affectedCustomers: int
    durationMs: int
    timestamp: datetime
    error: Optional[str] = None


class QueueStatsResponse(BaseModel):
    counts: Dict[str, int]
    total: int
    generatedAt: datetime


class QueueItemResponse(BaseModel):
    id: UUID
    customerId: Optional[UUID]
    recipientPhone: Optional[str]
    status: str
    attempts: int
    errorMessage: Optional[str]
    createdAt: datetime
    updatedAt: datetime


@router.api_route(
    "/queue/process",
    methods=["GET", "POST"],
    response_model=QueueProcessResponse,
    summary="Drain the next batch of cashback notifications",
)
async def process_cashback_queue(
    response: Response,
    batch_size: Optional[int] = Query(default=None, alias="batchSize", gt=0),
    service: CashbackTriggerService = Depends(get_trigger_service),
) -> QueueProcessResponse:
    summary = await service.process_queue(batch_size)
    if not summary.success:
        response.status_code = status.HTTP_503_SERVICE_UNAVAILABLE
    return QueueProcessResponse(**summary.queue_payload())


@router.api_route(
    "/expire",
    methods=["GET", "POST"],
    response_model=ExpirationResponse,
    summary="Expire cashback lots past their expiry date",
)
async def expire_cashback_lots(
    response: Response,
    service: CashbackTriggerService = Depends(get_trigger_service),
) -> ExpirationResponse:
    summary = await service.expire_lots()
    if not summary.success:
        response.status_code = status.HTTP_503_SERVICE_UNAVAILABLE
    return ExpirationResponse(**summary.expiration_payload())


@router.get("/queue/stats", response_model=QueueStatsResponse)
async def cashback_queue_stats(db: AsyncSession = Depends(get_session)) -> QueueStatsResponse:
    try:
        counts = await CashbackQueueStore(db).status_counts()
    except SQLAlchemyError as exc:
        raise HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail="Cashback queue unavailable") from exc
    return QueueStatsResponse(counts=counts, total=sum(counts.values()), generatedAt=datetime.now(timezone.utc))


@router.post("/queue/{notification_id}/reset", response_model=QueueItemResponse)
async def reset_cashback_notification(
    notification_id: UUID,
    db: AsyncSession = Depends(get_session),
) -> QueueItemResponse:
    """Return a failed or skipped notification to the pending queue."""

    try:
        notification = await CashbackQueueStore(db).reset_to_pending(
            notification_id, now=datetime.now(timezone.utc)
        )
    except NotificationNotFoundError as exc:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Notification not found") from exc
    except NotificationResetConflictError as exc:
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail=str(exc)) from exc
    return _serialize_notification(notification)


def _serialize_notification(notification: CashbackNotification) -> QueueItemResponse:
    return QueueItemResponse(
        id=notification.id,
        customerId=notification.customer_id,
        recipientPhone=notification.recipient_phone,
        status=notification.status.value,
        attempts=notification.attempts,
        errorMessage=notification.error_message,
        createdAt=notification.created_at,
        updatedAt=notification.updated_at,
    )
