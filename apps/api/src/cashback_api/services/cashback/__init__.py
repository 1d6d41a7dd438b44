"""Cashback notification queue and lot expiration services."""

from .dispatcher import CashbackQueueDispatcher, DrainResult  # noqa: F401
from .errors import (  # noqa: F401
    CashbackPipelineError,
    CashbackStoreError,
    GatewayConfigurationError,
    NotificationNotFoundError,
    NotificationResetConflictError,
)
from .expiration import CashbackExpirationCoordinator, ExpirationResult  # noqa: F401
from .gateway import (  # noqa: F401
    DeliveryOutcome,
    InMemoryMessagingGateway,
    MessagingGateway,
    WebhookWhatsAppGateway,
    build_messaging_gateway,
    is_valid_phone,
    normalize_phone,
)
from .store import CashbackQueueStore, QueuedNotification  # noqa: F401
from .triggers import CashbackTriggerService, RunSummary  # noqa: F401

__all__ = [
    "CashbackExpirationCoordinator",
    "CashbackPipelineError",
    "CashbackQueueDispatcher",
    "CashbackQueueStore",
    "CashbackStoreError",
    "CashbackTriggerService",
    "DeliveryOutcome",
    "DrainResult",
    "ExpirationResult",
    "GatewayConfigurationError",
    "InMemoryMessagingGateway",
    "MessagingGateway",
    "NotificationNotFoundError",
    "NotificationResetConflictError",
    "QueuedNotification",
    "RunSummary",
    "WebhookWhatsAppGateway",
    "build_messaging_gateway",
    "is_valid_phone",
    "normalize_phone",
]
