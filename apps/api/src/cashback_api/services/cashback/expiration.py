"""Set-based expiration of cashback lots."""

from __future__ import annotations

import asyncio
from dataclasses import dataclass, field
from datetime import datetime, timezone
from decimal import Decimal
from typing import Any, Awaitable, Callable, List
from uuid import UUID

from sqlalchemy import update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from cashback_api.core.logging import pipeline_logger
from cashback_api.models.cashback import (
    CashbackLedgerEntry,
    CashbackLedgerEntryType,
    CashbackLot,
    CashbackLotState,
)
from cashback_api.observability.cashback import get_cashback_store

from .errors import CashbackStoreError

SessionFactory = Callable[[], AsyncSession] | Callable[[], Awaitable[AsyncSession]]

logger = pipeline_logger("expiration")


@dataclass
class ExpirationResult:
    expired_count: int = 0
    customer_ids: List[UUID] = field(default_factory=list)
    lot_ids: List[UUID] = field(default_factory=list)
    expired_amount: Decimal = Decimal("0")

    def as_dict(self) -> dict[str, Any]:
        return {
            "expired_count": self.expired_count,
            "affected_customers": len(self.customer_ids),
            "customer_ids": [str(customer_id) for customer_id in self.customer_ids],
            "expired_amount": str(self.expired_amount),
        }


class CashbackExpirationCoordinator:
    """Move due lots from ``active`` to ``expired`` exactly once.

    The transition is a single ``UPDATE ... RETURNING`` guarded by the
    ``active`` state, so two overlapping runs cannot both report the same
    lot. Ledger entries for the expired lots are written in the same
    transaction; on any failure nothing is committed.
    """

    def __init__(self, session_factory: SessionFactory) -> None:
        self._session_factory = session_factory
        self._observability = get_cashback_store()

    async def expire_due(self, now: datetime) -> ExpirationResult:
        if now.tzinfo is None or now.utcoffset() is None:
            raise ValueError("now must be timezone-aware")

        now = now.astimezone(timezone.utc)
        result = ExpirationResult()
        try:
            session = await self._acquire_session()
            async with session as managed_session:
                async with managed_session.begin():
                    stmt = (
                        update(CashbackLot)
                        .where(
                            CashbackLot.state == CashbackLotState.ACTIVE,
                            CashbackLot.expires_at <= now,
                        )
                        .values(state=CashbackLotState.EXPIRED, expired_at=now, updated_at=now)
                        .returning(CashbackLot.id, CashbackLot.customer_id, CashbackLot.amount)
                        .execution_options(synchronize_session=False)
                    )
                    rows = (await managed_session.execute(stmt)).all()

                    seen_customers: set[UUID] = set()
                    for lot_id, customer_id, amount in rows:
                        amount = Decimal(amount or 0)
                        managed_session.add(
                            CashbackLedgerEntry(
                                lot_id=lot_id,
                                customer_id=customer_id,
                                entry_type=CashbackLedgerEntryType.EXPIRE,
                                amount=-amount,
                                description="Cashback lot expired",
                                metadata_json={"expired_at": now.isoformat()},
                                occurred_at=now,
                            )
                        )
                        result.lot_ids.append(lot_id)
                        result.expired_amount += amount
                        if customer_id not in seen_customers:
                            seen_customers.add(customer_id)
                            result.customer_ids.append(customer_id)
                    result.expired_count = len(rows)
        except SQLAlchemyError as exc:
            raise CashbackStoreError(f"Cashback lot store unavailable: {exc}") from exc

        self._observability.record_expiration_run(
            expired_count=result.expired_count,
            affected_customers=len(result.customer_ids),
        )
        logger.bind(summary=result.as_dict()).info("Cashback lot expiration finished")
        return result

    async def _acquire_session(self) -> AsyncSession:
        session_or_awaitable = self._session_factory()
        if asyncio.iscoroutine(session_or_awaitable):
            return await session_or_awaitable
        return session_or_awaitable


__all__ = ["CashbackExpirationCoordinator", "ExpirationResult"]
