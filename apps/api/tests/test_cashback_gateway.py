import json

import httpx
import pytest

from cashback_api.core.settings import Settings
from cashback_api.services.cashback import (
    GatewayConfigurationError,
    WebhookWhatsAppGateway,
    build_messaging_gateway,
    is_valid_phone,
    normalize_phone,
)


@pytest.mark.parametrize(
    ("raw", "expected"),
    [
        ("(11) 98888-7777", "5511988887777"),
        ("011 98888-7777", "5511988887777"),
        ("+55 11 98888-7777", "5511988887777"),
        ("", None),
        (None, None),
        ("---", None),
    ],
)
def test_normalize_phone(raw, expected) -> None:
    assert normalize_phone(raw) == expected


def test_is_valid_phone_bounds() -> None:
    assert is_valid_phone("5511988887777")
    assert not is_valid_phone("55123")
    assert not is_valid_phone("5" * 16)
    assert not is_valid_phone(None)


@pytest.mark.asyncio
async def test_webhook_gateway_posts_expected_payload() -> None:
    captured: dict = {}

    def handler(request: httpx.Request) -> httpx.Response:
        captured["url"] = str(request.url)
        captured["headers"] = request.headers
        captured["body"] = json.loads(request.content)
        return httpx.Response(200, json={"id": "wamid-1"})

    gateway = WebhookWhatsAppGateway(
        url="https://hooks.example.com/whatsapp",
        auth_token="secret-key",
        site_slug="loja",
        customer_id="tenant-9",
        transport=httpx.MockTransport(handler),
    )

    outcome = await gateway.send("5511988887777", "Seu cashback chegou")

    assert outcome.delivered is True
    assert outcome.provider_message_id == "wamid-1"
    assert captured["url"] == "https://hooks.example.com/whatsapp"
    assert captured["headers"]["x-app-key"] == "secret-key"
    assert captured["body"] == {
        "siteSlug": "loja",
        "customerId": "tenant-9",
        "phoneNumber": "5511988887777",
        "message": "Seu cashback chegou",
    }


@pytest.mark.asyncio
async def test_webhook_gateway_reports_rejection_reason() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(400, json={"error": "number not registered"})

    gateway = WebhookWhatsAppGateway(
        url="https://hooks.example.com/whatsapp",
        auth_token=None,
        site_slug="loja",
        transport=httpx.MockTransport(handler),
    )

    outcome = await gateway.send("5511988887777", "oi")

    assert outcome.delivered is False
    assert outcome.reason == "number not registered"


@pytest.mark.asyncio
async def test_webhook_gateway_converts_transport_errors() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectError("connection refused", request=request)

    gateway = WebhookWhatsAppGateway(
        url="https://hooks.example.com/whatsapp",
        auth_token=None,
        site_slug="loja",
        transport=httpx.MockTransport(handler),
    )

    outcome = await gateway.send("5511988887777", "oi")

    assert outcome.delivered is False
    assert outcome.reason == "Gateway unreachable: ConnectError"


def test_build_gateway_requires_webhook_url() -> None:
    with pytest.raises(GatewayConfigurationError):
        build_messaging_gateway(Settings(whatsapp_webhook_url=None))

    gateway = build_messaging_gateway(Settings(whatsapp_webhook_url="https://hooks.example.com/whatsapp"))
    assert isinstance(gateway, WebhookWhatsAppGateway)
