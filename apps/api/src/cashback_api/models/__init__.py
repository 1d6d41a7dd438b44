"""SQLAlchemy models package."""

from .cashback import (  # noqa: F401
    TERMINAL_NOTIFICATION_STATUSES,
    CashbackLedgerEntry,
    CashbackLedgerEntryType,
    CashbackLot,
    CashbackLotState,
    CashbackNotification,
    CashbackNotificationStatus,
)
