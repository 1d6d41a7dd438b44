"""HTTP trigger and queue administration endpoints."""

from __future__ import annotations

import datetime as dt
from decimal import Decimal
from uuid import uuid4

import pytest
from httpx import ASGITransport, AsyncClient

from cashback_api.api.dependencies.cashback import get_gateway_factory
from cashback_api.models.cashback import CashbackLot, CashbackNotification, CashbackNotificationStatus
from cashback_api.services.cashback import GatewayConfigurationError


def _client(app) -> AsyncClient:
    return AsyncClient(transport=ASGITransport(app=app), base_url="http://test")


async def _add_notification(session_factory, **overrides) -> CashbackNotification:
    values = {
        "customer_id": uuid4(),
        "recipient_phone": "11988887777",
        "message_body": "Cashback disponível",
        "created_at": dt.datetime.now(dt.timezone.utc) - dt.timedelta(minutes=1),
    }
    values.update(overrides)
    async with session_factory() as session:
        row = CashbackNotification(**values)
        session.add(row)
        await session.commit()
        return row


@pytest.mark.asyncio
@pytest.mark.parametrize("method", ["GET", "POST"])
async def test_queue_process_returns_summary(app_with_db, gateway, method) -> None:
    app, session_factory = app_with_db
    await _add_notification(session_factory)
    await _add_notification(session_factory, recipient_phone=None)

    async with _client(app) as client:
        response = await client.request(method, "/api/v1/cashback/queue/process")

    assert response.status_code == 200
    payload = response.json()
    assert payload["success"] is True
    assert (payload["processed"], payload["sent"], payload["skipped"], payload["failed"]) == (2, 1, 1, 0)
    assert payload["durationMs"] >= 0
    assert "timestamp" in payload
    assert len(gateway.sent_messages) == 1


@pytest.mark.asyncio
async def test_queue_process_reports_zero_progress(app_with_db) -> None:
    app, _ = app_with_db

    async with _client(app) as client:
        response = await client.post("/api/v1/cashback/queue/process")

    assert response.status_code == 200
    assert response.json()["processed"] == 0


@pytest.mark.asyncio
async def test_queue_process_rejects_non_positive_batch(app_with_db) -> None:
    app, _ = app_with_db

    async with _client(app) as client:
        response = await client.post("/api/v1/cashback/queue/process", params={"batchSize": 0})

    assert response.status_code == 422


@pytest.mark.asyncio
async def test_queue_process_unconfigured_gateway_returns_503(app_with_db) -> None:
    app, session_factory = app_with_db
    row = await _add_notification(session_factory)

    def _missing_gateway():
        raise GatewayConfigurationError("WHATSAPP_WEBHOOK_URL is not configured")

    app.dependency_overrides[get_gateway_factory] = lambda: _missing_gateway

    async with _client(app) as client:
        response = await client.post("/api/v1/cashback/queue/process")

    assert response.status_code == 503
    payload = response.json()
    assert payload["success"] is False
    assert payload["processed"] == 0
    assert "WHATSAPP_WEBHOOK_URL" in payload["error"]

    async with session_factory() as session:
        stored = await session.get(CashbackNotification, row.id)
    assert stored.status == CashbackNotificationStatus.PENDING


@pytest.mark.asyncio
async def test_expire_endpoint_is_idempotent(app_with_db) -> None:
    app, session_factory = app_with_db
    now = dt.datetime.now(dt.timezone.utc)
    customer = uuid4()
    async with session_factory() as session:
        session.add_all(
            [
                CashbackLot(
                    customer_id=customer,
                    amount=Decimal("3.00"),
                    earned_at=now - dt.timedelta(days=100),
                    expires_at=now - dt.timedelta(days=1),
                ),
                CashbackLot(
                    customer_id=customer,
                    amount=Decimal("4.00"),
                    earned_at=now - dt.timedelta(days=100),
                    expires_at=now - dt.timedelta(hours=1),
                ),
                CashbackLot(
                    customer_id=uuid4(),
                    amount=Decimal("9.00"),
                    earned_at=now,
                    expires_at=now + dt.timedelta(days=30),
                ),
            ]
        )
        await session.commit()

    async with _client(app) as client:
        first = await client.post("/api/v1/cashback/expire")
        second = await client.get("/api/v1/cashback/expire")

    assert first.status_code == 200
    assert first.json()["expiredCount"] == 2
    assert first.json()["affectedCustomers"] == 1
    assert second.json()["expiredCount"] == 0
    assert second.json()["success"] is True


@pytest.mark.asyncio
async def test_queue_stats_counts_rows_per_status(app_with_db) -> None:
    app, session_factory = app_with_db
    await _add_notification(session_factory)
    await _add_notification(session_factory, status=CashbackNotificationStatus.FAILED)
    await _add_notification(session_factory, status=CashbackNotificationStatus.FAILED)

    async with _client(app) as client:
        response = await client.get("/api/v1/cashback/queue/stats")

    assert response.status_code == 200
    payload = response.json()
    assert payload["counts"]["pending"] == 1
    assert payload["counts"]["failed"] == 2
    assert payload["counts"]["sent"] == 0
    assert payload["total"] == 3


@pytest.mark.asyncio
async def test_reset_returns_failed_row_to_pending(app_with_db) -> None:
    app, session_factory = app_with_db
    row = await _add_notification(
        session_factory,
        status=CashbackNotificationStatus.FAILED,
        error_message="timeout",
        claim_token="stale-token",
        attempts=1,
    )

    async with _client(app) as client:
        response = await client.post(f"/api/v1/cashback/queue/{row.id}/reset")

    assert response.status_code == 200
    payload = response.json()
    assert payload["status"] == "pending"
    assert payload["errorMessage"] is None
    assert payload["attempts"] == 1

    async with session_factory() as session:
        stored = await session.get(CashbackNotification, row.id)
    assert stored.claim_token is None


@pytest.mark.asyncio
async def test_reset_rejects_sent_row_and_unknown_id(app_with_db) -> None:
    app, session_factory = app_with_db
    row = await _add_notification(session_factory, status=CashbackNotificationStatus.SENT)

    async with _client(app) as client:
        conflict = await client.post(f"/api/v1/cashback/queue/{row.id}/reset")
        missing = await client.post(f"/api/v1/cashback/queue/{uuid4()}/reset")

    assert conflict.status_code == 409
    assert missing.status_code == 404


@pytest.mark.asyncio
async def test_observability_and_readiness(app_with_db) -> None:
    app, _ = app_with_db

    async with _client(app) as client:
        await client.post("/api/v1/cashback/queue/process")
        snapshot = await client.get("/api/v1/observability/cashback")
        ready = await client.get("/api/v1/readyz")
        health = await client.get("/healthz")

    assert snapshot.status_code == 200
    body = snapshot.json()
    assert body["cashback"]["runs"]["queue"] == 1
    assert "totals" in body["scheduler"]

    assert ready.status_code == 200
    components = ready.json()["components"]
    assert components["database"]["status"] == "ready"
    assert components["cashback_scheduler"]["status"] == "disabled"

    assert health.json()["status"] == "ok"


@pytest.mark.asyncio
async def test_readiness_degrades_until_failed_pipeline_recovers(app_with_db, gateway) -> None:
    app, session_factory = app_with_db
    await _add_notification(session_factory)

    def _missing_gateway():
        raise GatewayConfigurationError("WHATSAPP_WEBHOOK_URL is not configured")

    async with _client(app) as client:
        app.dependency_overrides[get_gateway_factory] = lambda: _missing_gateway
        failed = await client.post("/api/v1/cashback/queue/process")
        degraded = (await client.get("/api/v1/readyz")).json()

        expired = await client.post("/api/v1/cashback/expire")
        still_degraded = (await client.get("/api/v1/readyz")).json()

        app.dependency_overrides[get_gateway_factory] = lambda: (lambda: gateway)
        recovered_run = await client.post("/api/v1/cashback/queue/process")
        recovered = (await client.get("/api/v1/readyz")).json()

    assert failed.status_code == 503
    pipeline = degraded["components"]["cashback_pipeline"]
    assert pipeline["status"] == "degraded"
    assert "queue" in pipeline["detail"]
    assert "WHATSAPP_WEBHOOK_URL" in pipeline["detail"]
    assert degraded["status"] in {"degraded", "error"}

    assert expired.status_code == 200
    assert still_degraded["components"]["cashback_pipeline"]["status"] == "degraded"

    assert recovered_run.status_code == 200
    assert recovered["components"]["cashback_pipeline"]["status"] == "ready"
    assert recovered["components"]["cashback_pipeline"]["last_error_at"] is not None
