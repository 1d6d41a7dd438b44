"""Seed development cashback queue rows and lots into the API database."""

from __future__ import annotations

import asyncio
from datetime import datetime, timedelta, timezone
from decimal import Decimal
from typing import TypedDict
from uuid import NAMESPACE_URL, UUID, uuid5

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

from cashback_api.core.settings import settings
from cashback_api.models.cashback import CashbackLot, CashbackNotification


class SeedNotification(TypedDict):
    key: str
    phone: str | None
    body: str


class SeedLot(TypedDict):
    key: str
    amount: str
    expires_in_days: int


DEV_CUSTOMER_ID = uuid5(NAMESPACE_URL, "cashback-dev/customer")

DEV_NOTIFICATIONS: list[SeedNotification] = [
    {"key": "welcome", "phone": "(11) 98888-7777", "body": "Você ganhou R$ 15,00 de cashback!"},
    {"key": "reminder", "phone": "021 99999-0000", "body": "Seu cashback expira em 7 dias."},
    {"key": "no-phone", "phone": None, "body": "Cliente sem telefone cadastrado."},
]

DEV_LOTS: list[SeedLot] = [
    {"key": "due", "amount": "15.00", "expires_in_days": -1},
    {"key": "upcoming", "amount": "8.50", "expires_in_days": 7},
    {"key": "fresh", "amount": "22.00", "expires_in_days": 90},
]


def _seed_id(kind: str, key: str) -> UUID:
    return uuid5(NAMESPACE_URL, f"cashback-dev/{kind}/{key}")


async def seed_cashback(session: AsyncSession) -> None:
    now = datetime.now(timezone.utc)
    for offset, item in enumerate(DEV_NOTIFICATIONS):
        notification_id = _seed_id("notification", item["key"])
        if await session.get(CashbackNotification, notification_id) is not None:
            continue
        session.add(
            CashbackNotification(
                id=notification_id,
                customer_id=DEV_CUSTOMER_ID,
                recipient_phone=item["phone"],
                message_body=item["body"],
                created_at=now + timedelta(seconds=offset),
            )
        )

    for lot in DEV_LOTS:
        lot_id = _seed_id("lot", lot["key"])
        if await session.get(CashbackLot, lot_id) is not None:
            continue
        session.add(
            CashbackLot(
                id=lot_id,
                customer_id=DEV_CUSTOMER_ID,
                amount=Decimal(lot["amount"]),
                earned_at=now - timedelta(days=30),
                expires_at=now + timedelta(days=lot["expires_in_days"]),
            )
        )
    await session.commit()


async def main() -> None:
    engine = create_async_engine(settings.database_url, future=True)
    session_factory = async_sessionmaker(engine, expire_on_commit=False, class_=AsyncSession)

    try:
        async with session_factory() as session:
            await seed_cashback(session)
        print("Development cashback data ready")
    finally:
        await engine.dispose()


if __name__ == "__main__":
    asyncio.run(main())
