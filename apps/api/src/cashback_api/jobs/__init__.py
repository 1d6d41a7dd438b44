"""Cashback job exports."""

from .cashback import drain_cashback_queue, expire_cashback_lots  # noqa: F401

__all__ = ["drain_cashback_queue", "expire_cashback_lots"]
