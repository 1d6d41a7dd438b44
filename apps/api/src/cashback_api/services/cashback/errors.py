"""Error taxonomy for the cashback pipeline."""

from __future__ import annotations


class CashbackPipelineError(RuntimeError):
    """Base class for failures that abort a whole pipeline run."""


class CashbackStoreError(CashbackPipelineError):
    """The record store could not be read or updated."""


class GatewayConfigurationError(CashbackPipelineError):
    """The messaging gateway is missing required configuration."""


class NotificationNotFoundError(LookupError):
    """No queue row exists for the requested identifier."""


class NotificationResetConflictError(ValueError):
    """The queue row is not in a status that can be reset to pending."""


__all__ = [
    "CashbackPipelineError",
    "CashbackStoreError",
    "GatewayConfigurationError",
    "NotificationNotFoundError",
    "NotificationResetConflictError",
]
