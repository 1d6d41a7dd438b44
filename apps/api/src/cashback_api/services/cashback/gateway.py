"""Messaging gateway implementations for cashback WhatsApp notices."""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from typing import List, Optional, Protocol

import httpx
from loguru import logger

from cashback_api.core.settings import Settings

from .errors import GatewayConfigurationError

_NON_DIGITS = re.compile(r"\D")
MIN_PHONE_DIGITS = 10
MAX_PHONE_DIGITS = 15


@dataclass(frozen=True, slots=True)
class DeliveryOutcome:
    """Result of handing one message to the gateway."""

    delivered: bool
    reason: str | None = None
    provider_message_id: str | None = None


class MessagingGateway(Protocol):
    """Protocol for outbound WhatsApp delivery."""

    async def send(self, phone: str, body: str) -> DeliveryOutcome:
        ...


def normalize_phone(raw: str | None, *, default_country_code: str = "55") -> str | None:
    """Reduce a phone number to digits with the country code prefixed.

    Returns ``None`` when nothing usable remains.
    """

    if raw is None:
        return None
    cleaned = _NON_DIGITS.sub("", raw)
    if cleaned.startswith("0"):
        cleaned = cleaned[1:]
    if not cleaned:
        return None
    if not cleaned.startswith(default_country_code):
        cleaned = f"{default_country_code}{cleaned}"
    return cleaned


def is_valid_phone(normalized: str | None) -> bool:
    if not normalized:
        return False
    return MIN_PHONE_DIGITS <= len(normalized) <= MAX_PHONE_DIGITS


class WebhookWhatsAppGateway:
    """Deliver messages through an HTTP webhook fronting the WhatsApp provider."""

    def __init__(
        self,
        *,
        url: str,
        auth_token: str | None,
        site_slug: str,
        customer_id: str | None = None,
        timeout_seconds: float = 10.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self._url = url
        self._auth_token = auth_token
        self._site_slug = site_slug
        self._customer_id = customer_id
        self._timeout_seconds = timeout_seconds
        self._transport = transport

    async def send(self, phone: str, body: str) -> DeliveryOutcome:
        headers = {"Content-Type": "application/json"}
        if self._auth_token:
            headers["x-app-key"] = self._auth_token
        payload = {
            "siteSlug": self._site_slug,
            "customerId": self._customer_id,
            "phoneNumber": phone,
            "message": body,
        }

        try:
            async with httpx.AsyncClient(timeout=self._timeout_seconds, transport=self._transport) as client:
                response = await client.post(self._url, json=payload, headers=headers)
        except httpx.HTTPError as exc:
            logger.warning("WhatsApp webhook unreachable", error=str(exc))
            return DeliveryOutcome(delivered=False, reason=f"Gateway unreachable: {exc.__class__.__name__}")

        data = _safe_json(response)
        if response.is_success:
            message_id = data.get("id") or data.get("messageId") if isinstance(data, dict) else None
            return DeliveryOutcome(delivered=True, provider_message_id=str(message_id) if message_id else None)

        reason = None
        if isinstance(data, dict):
            reason = data.get("error") or data.get("message")
        if not reason:
            reason = f"HTTP {response.status_code}: {_preview(response.text)}"
        return DeliveryOutcome(delivered=False, reason=str(reason))


@dataclass
class InMemoryMessagingGateway:
    """Records outbound messages; optionally rejects configured phone numbers."""

    sent_messages: List[tuple[str, str]] = field(default_factory=list)
    reject_phones: set[str] = field(default_factory=set)
    reject_reason: str = "Recipient rejected by gateway"

    async def send(self, phone: str, body: str) -> DeliveryOutcome:
        if phone in self.reject_phones:
            return DeliveryOutcome(delivered=False, reason=self.reject_reason)
        self.sent_messages.append((phone, body))
        return DeliveryOutcome(delivered=True, provider_message_id=f"mem-{len(self.sent_messages)}")


def build_messaging_gateway(settings: Settings) -> MessagingGateway:
    """Construct the configured gateway or raise if the webhook is not set up."""

    if not settings.whatsapp_webhook_url:
        raise GatewayConfigurationError("WHATSAPP_WEBHOOK_URL is not configured")
    return WebhookWhatsAppGateway(
        url=settings.whatsapp_webhook_url,
        auth_token=settings.whatsapp_webhook_auth,
        site_slug=settings.whatsapp_site_slug,
        customer_id=settings.whatsapp_customer_id,
        timeout_seconds=settings.whatsapp_timeout_seconds,
    )


def _safe_json(response: httpx.Response) -> Optional[object]:
    try:
        return response.json()
    except ValueError:
        return None


def _preview(text: str) -> str:
    if len(text) > 200:
        return f"{text[:200]}..."
    return text


__all__ = [
    "DeliveryOutcome",
    "InMemoryMessagingGateway",
    "MessagingGateway",
    "WebhookWhatsAppGateway",
    "build_messaging_gateway",
    "is_valid_phone",
    "normalize_phone",
]
