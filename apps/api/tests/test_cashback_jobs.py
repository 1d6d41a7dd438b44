"""Trigger service summaries and the scheduled cashback jobs."""

from __future__ import annotations

import datetime as dt
from decimal import Decimal
from pathlib import Path
from uuid import uuid4

import pytest
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

from cashback_api.core.settings import Settings
from cashback_api.jobs.cashback import drain_cashback_queue, expire_cashback_lots
from cashback_api.models.cashback import CashbackLot, CashbackNotification
from cashback_api.observability.cashback import get_cashback_store
from cashback_api.observability.scheduler import get_scheduler_store
from cashback_api.scheduling.config import JobDefinition, load_job_definitions
from cashback_api.scheduling.runner import CashbackJobScheduler
from cashback_api.services.cashback import CashbackTriggerService, InMemoryMessagingGateway


@pytest.mark.asyncio
async def test_trigger_service_never_raises_on_store_failure(tmp_path: Path) -> None:
    engine = create_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'absent' / 'db.sqlite'}", future=True)
    factory = async_sessionmaker(engine, expire_on_commit=False, class_=AsyncSession)
    service = CashbackTriggerService(factory, gateway_factory=InMemoryMessagingGateway, settings=Settings())

    try:
        queue_summary = await service.process_queue(5)
        expiration_summary = await service.expire_lots()
    finally:
        await engine.dispose()

    assert queue_summary.success is False
    assert queue_summary.processed == 0
    assert "unavailable" in queue_summary.error
    assert expiration_summary.success is False
    assert expiration_summary.expired_count == 0
    assert get_cashback_store().snapshot().runs["queue_failures"] == 1
    assert get_cashback_store().snapshot().runs["expiration_failures"] == 1


@pytest.mark.asyncio
async def test_trigger_service_uses_configured_batch_size(session_factory) -> None:
    async with session_factory() as session:
        for index in range(4):
            session.add(
                CashbackNotification(
                    recipient_phone="11988887777",
                    message_body=f"batch {index}",
                    created_at=dt.datetime.now(dt.timezone.utc) - dt.timedelta(minutes=10 - index),
                )
            )
        await session.commit()

    gateway = InMemoryMessagingGateway()
    service = CashbackTriggerService(
        session_factory,
        gateway_factory=lambda: gateway,
        settings=Settings(cashback_queue_batch_size=3),
    )

    summary = await service.process_queue()

    assert summary.success is True
    assert summary.processed == 3
    assert summary.queue_payload()["sent"] == 3


@pytest.mark.asyncio
async def test_drain_job_returns_queue_payload(session_factory) -> None:
    gateway = InMemoryMessagingGateway()
    async with session_factory() as session:
        session.add(CashbackNotification(recipient_phone="11988887777", message_body="job notice"))
        await session.commit()

    payload = await drain_cashback_queue(session_factory=session_factory, gateway_factory=lambda: gateway)

    assert payload["success"] is True
    assert payload["sent"] == 1
    assert gateway.sent_messages[0][1] == "job notice"


@pytest.mark.asyncio
async def test_expire_job_returns_expiration_payload(session_factory) -> None:
    async with session_factory() as session:
        session.add(
            CashbackLot(
                customer_id=uuid4(),
                amount=Decimal("7.25"),
                earned_at=dt.datetime.now(dt.timezone.utc) - dt.timedelta(days=200),
                expires_at=dt.datetime.now(dt.timezone.utc) - dt.timedelta(days=20),
            )
        )
        await session.commit()

    payload = await expire_cashback_lots(session_factory=session_factory)

    assert payload["success"] is True
    assert payload["expiredCount"] == 1
    assert payload["affectedCustomers"] == 1


def test_default_schedule_registers_both_jobs() -> None:
    config_path = Path(__file__).resolve().parents[1] / "config" / "schedules.toml"

    config = load_job_definitions(config_path)

    jobs = {job.id: job for job in config.jobs}
    assert jobs["cashback_queue_drain"].cron == "* * * * *"
    assert jobs["cashback_queue_drain"].task == "cashback_api.jobs.cashback.drain_cashback_queue"
    assert jobs["cashback_lot_expiration"].cron == "0 0 * * *"
    assert jobs["cashback_lot_expiration"].max_attempts == 3


def test_schedule_loader_skips_disabled_and_incomplete_entries(tmp_path: Path) -> None:
    config_path = tmp_path / "schedules.toml"
    config_path.write_text(
        """
timezone = "America/Sao_Paulo"

[jobs.active]
task = "cashback_api.jobs.cashback.expire_cashback_lots"
cron = "0 3 * * *"

[jobs.paused]
task = "cashback_api.jobs.cashback.drain_cashback_queue"
cron = "* * * * *"
enabled = false

[jobs.broken]
cron = "* * * * *"
"""
    )

    config = load_job_definitions(config_path)

    assert config.timezone == "America/Sao_Paulo"
    assert [job.id for job in config.jobs] == ["active"]


def _job(**overrides) -> JobDefinition:
    values = dict(
        id="cashback-job",
        task="tests.cashback_job",
        cron="* * * * *",
        kwargs={},
        max_attempts=2,
        base_backoff_seconds=0.0,
        backoff_multiplier=1.0,
        max_backoff_seconds=0.0,
        jitter_seconds=0.0,
    )
    values.update(overrides)
    return JobDefinition(**values)


@pytest.mark.asyncio
async def test_scheduler_retries_job_reporting_failure(tmp_path: Path) -> None:
    scheduler = CashbackJobScheduler(session_factory=lambda: None, config_path=tmp_path / "noop.toml")
    calls = 0

    async def flaky_job(*, session_factory) -> dict:
        nonlocal calls
        calls += 1
        if calls == 1:
            return {"success": False, "error": "store unavailable"}
        return {"success": True, "processed": 4}

    job = _job()
    await scheduler._wrap_callable(flaky_job, job)()

    snapshot = get_scheduler_store().snapshot()
    assert calls == 2
    assert snapshot.totals["runs"] == 1
    assert snapshot.totals["attempt_failures"] == 1
    assert snapshot.totals["retries"] == 1
    assert snapshot.totals["success"] == 1
    job_snapshot = snapshot.jobs[job.id]
    assert job_snapshot.last_result == {"success": True, "processed": 4}
    assert job_snapshot.last_error is None


@pytest.mark.asyncio
async def test_scheduler_records_final_failure(tmp_path: Path) -> None:
    scheduler = CashbackJobScheduler(session_factory=lambda: None, config_path=tmp_path / "noop.toml")

    async def failing_job(*, session_factory) -> None:
        raise RuntimeError("boom")

    job = _job(max_attempts=1)
    await scheduler._wrap_callable(failing_job, job)()

    job_snapshot = get_scheduler_store().snapshot().jobs[job.id]
    assert job_snapshot.totals["run_failures"] == 1
    assert job_snapshot.totals["consecutive_failures"] == 1
    assert job_snapshot.last_error == "boom"


@pytest.mark.asyncio
async def test_scheduler_start_and_stop(tmp_path: Path) -> None:
    config_path = Path(__file__).resolve().parents[1] / "config" / "schedules.toml"
    scheduler = CashbackJobScheduler(session_factory=lambda: None, config_path=config_path)

    scheduler.start()
    try:
        health = scheduler.health()
        assert health["running"] is True
        assert health["configured_jobs"] == 2
    finally:
        await scheduler.stop()

    assert scheduler.is_running is False


def test_scheduler_requires_schedule_file(tmp_path: Path) -> None:
    scheduler = CashbackJobScheduler(session_factory=lambda: None, config_path=tmp_path / "missing.toml")

    with pytest.raises(FileNotFoundError):
        scheduler.start()
