"""Cashback notification queue and balance lot models."""

from __future__ import annotations

from datetime import datetime, timezone
from enum import Enum
from uuid import uuid4

from sqlalchemy import (
    JSON,
    Column,
    Enum as SqlEnum,
    ForeignKey,
    Index,
    Integer,
    Numeric,
    String,
    Text,
    func,
)
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import relationship

from cashback_api.db.base import Base
from cashback_api.db.types import UTCDateTime


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _enum_values(enum_cls: type[Enum]) -> list[str]:
    return [member.value for member in enum_cls]


class CashbackNotificationStatus(str, Enum):
    """Lifecycle of a queued cashback notification."""

    PENDING = "pending"
    PROCESSING = "processing"
    SENT = "sent"
    SKIPPED = "skipped"
    FAILED = "failed"

    @property
    def is_terminal(self) -> bool:
        return self in TERMINAL_NOTIFICATION_STATUSES


TERMINAL_NOTIFICATION_STATUSES = frozenset(
    {
        CashbackNotificationStatus.SENT,
        CashbackNotificationStatus.SKIPPED,
        CashbackNotificationStatus.FAILED,
    }
)


class CashbackNotification(Base):
    """One WhatsApp notice waiting for (or resolved by) the queue dispatcher."""

    __tablename__ = "cashback_notification_queue"
    __table_args__ = (
        Index("ix_cashback_notification_queue_status_created_at", "status", "created_at"),
    )

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid4)
    customer_id = Column(UUID(as_uuid=True), nullable=True, index=True)
    recipient_phone = Column(String(32), nullable=True)
    message_body = Column(Text, nullable=True)
    status = Column(
        SqlEnum(
            CashbackNotificationStatus,
            name="cashback_notification_status",
            values_callable=_enum_values,
        ),
        nullable=False,
        default=CashbackNotificationStatus.PENDING,
        server_default=CashbackNotificationStatus.PENDING.value,
    )
    attempts = Column(Integer, nullable=False, default=0, server_default="0")
    error_message = Column(Text, nullable=True)
    claim_token = Column(String(36), nullable=True)
    last_attempt_at = Column(UTCDateTime(), nullable=True)
    sent_at = Column(UTCDateTime(), nullable=True)
    created_at = Column(UTCDateTime(), default=_utcnow, server_default=func.now(), nullable=False)
    updated_at = Column(
        UTCDateTime(),
        default=_utcnow,
        server_default=func.now(),
        onupdate=_utcnow,
        nullable=False,
    )


class CashbackLotState(str, Enum):
    """State of a dated cashback grant."""

    ACTIVE = "active"
    EXPIRED = "expired"
    REDEEMED = "redeemed"


class CashbackLot(Base):
    """A discrete cashback grant that expires independently of other lots."""

    __tablename__ = "cashback_lots"
    __table_args__ = (
        Index("ix_cashback_lots_state_expires_at", "state", "expires_at"),
    )

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid4)
    customer_id = Column(UUID(as_uuid=True), nullable=False, index=True)
    amount = Column(Numeric(12, 2), nullable=False)
    earned_at = Column(UTCDateTime(), nullable=False, default=_utcnow)
    expires_at = Column(UTCDateTime(), nullable=False)
    state = Column(
        SqlEnum(CashbackLotState, name="cashback_lot_state", values_callable=_enum_values),
        nullable=False,
        default=CashbackLotState.ACTIVE,
        server_default=CashbackLotState.ACTIVE.value,
    )
    expired_at = Column(UTCDateTime(), nullable=True)
    created_at = Column(UTCDateTime(), default=_utcnow, server_default=func.now(), nullable=False)
    updated_at = Column(
        UTCDateTime(),
        default=_utcnow,
        server_default=func.now(),
        onupdate=_utcnow,
        nullable=False,
    )

    ledger_entries = relationship("CashbackLedgerEntry", back_populates="lot")


class CashbackLedgerEntryType(str, Enum):
    """Ledger entry kinds for cashback balance movements."""

    EARN = "earn"
    REDEEM = "redeem"
    EXPIRE = "expire"


class CashbackLedgerEntry(Base):
    """Append-only record of cashback balance movements."""

    __tablename__ = "cashback_ledger_entries"

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid4)
    lot_id = Column(
        UUID(as_uuid=True),
        ForeignKey("cashback_lots.id", ondelete="SET NULL"),
        nullable=True,
        index=True,
    )
    customer_id = Column(UUID(as_uuid=True), nullable=False, index=True)
    entry_type = Column(
        SqlEnum(CashbackLedgerEntryType, name="cashback_ledger_entry_type", values_callable=_enum_values),
        nullable=False,
    )
    amount = Column(Numeric(12, 2), nullable=False)
    description = Column(String, nullable=True)
    metadata_json = Column("metadata", JSON, nullable=True)
    occurred_at = Column(UTCDateTime(), nullable=False, default=_utcnow)
    created_at = Column(UTCDateTime(), default=_utcnow, server_default=func.now(), nullable=False)

    lot = relationship("CashbackLot", back_populates="ledger_entries")


__all__ = [
    "CashbackLedgerEntry",
    "CashbackLedgerEntryType",
    "CashbackLot",
    "CashbackLotState",
    "CashbackNotification",
    "CashbackNotificationStatus",
    "TERMINAL_NOTIFICATION_STATUSES",
]
