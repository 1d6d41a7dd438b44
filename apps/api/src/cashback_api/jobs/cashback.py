"""Scheduled cashback queue drain and lot expiration jobs."""

from __future__ import annotations

from typing import Any, Awaitable, Callable, Dict

from sqlalchemy.ext.asyncio import AsyncSession

from cashback_api.services.cashback import CashbackTriggerService
from cashback_api.services.cashback.triggers import GatewayFactory

SessionFactory = Callable[[], AsyncSession] | Callable[[], Awaitable[AsyncSession]]


async def drain_cashback_queue(
    *,
    session_factory: SessionFactory,
    batch_size: int | None = None,
    gateway_factory: GatewayFactory | None = None,
) -> Dict[str, Any]:
    """Send the next batch of queued cashback notices."""

    service = CashbackTriggerService(session_factory, gateway_factory=gateway_factory)
    summary = await service.process_queue(batch_size)
    return summary.queue_payload()


async def expire_cashback_lots(*, session_factory: SessionFactory) -> Dict[str, Any]:
    """Expire every cashback lot whose expiry date has passed."""

    summary = await CashbackTriggerService(session_factory).expire_lots()
    return summary.expiration_payload()


__all__ = ["drain_cashback_queue", "expire_cashback_lots"]
