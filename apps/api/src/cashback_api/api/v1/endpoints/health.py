from __future__ import annotations

from typing import Dict, Literal

from fastapi import APIRouter, Depends, Request
from pydantic import BaseModel, Field
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from cashback_api.core.settings import settings
from cashback_api.db.session import get_session
from cashback_api.observability.cashback import get_cashback_store
from cashback_api.observability.scheduler import get_scheduler_store


router = APIRouter()

ComponentState = Literal["ready", "starting", "disabled", "error", "degraded"]


class ComponentStatus(BaseModel):
    status: ComponentState
    detail: str | None = Field(default=None, description="Human readable status detail")
    last_error_at: str | None = Field(default=None, description="ISO timestamp of most recent error")


class ReadinessPayload(BaseModel):
    status: Literal["ready", "degraded", "error"]
    components: Dict[str, ComponentStatus]


@router.get("/healthz", summary="Service health check")
async def service_health() -> dict[str, str]:
    return {"status": "ok"}


@router.get("/readyz", summary="Service readiness", response_model=ReadinessPayload)
async def service_readiness(
    request: Request,
    session: AsyncSession = Depends(get_session),
) -> ReadinessPayload:
    components: Dict[str, ComponentStatus] = {}
    status: Literal["ready", "degraded", "error"] = "ready"

    try:
        await session.execute(text("SELECT 1"))
    except SQLAlchemyError as exc:
        components["database"] = ComponentStatus(status="error", detail=f"Database unreachable ({exc.__class__.__name__})")
        status = "error"
    else:
        components["database"] = ComponentStatus(status="ready")

    if settings.whatsapp_webhook_url:
        components["messaging_gateway"] = ComponentStatus(status="ready")
    else:
        components["messaging_gateway"] = ComponentStatus(
            status="degraded",
            detail="WHATSAPP_WEBHOOK_URL not configured; queue processing will fail",
        )
        status = "degraded" if status != "error" else status

    scheduler = getattr(request.app.state, "cashback_job_scheduler", None)
    if settings.cashback_scheduler_enabled and scheduler is not None:
        running = bool(getattr(scheduler, "is_running", False))
        scheduler_status: ComponentState = "ready" if running else "starting"
        detail = None if running else "Cashback scheduler not running"
        failing_jobs = [
            job_id
            for job_id, job in get_scheduler_store().snapshot().jobs.items()
            if job.totals.get("consecutive_failures", 0) > 0
        ]
        if failing_jobs:
            scheduler_status = "error"
            detail = f"Jobs failing: {', '.join(sorted(failing_jobs))}"
            status = "error"
        elif not running:
            status = "degraded" if status != "error" else status
        components["cashback_scheduler"] = ComponentStatus(status=scheduler_status, detail=detail)
    else:
        components["cashback_scheduler"] = ComponentStatus(
            status="disabled",
            detail="Cashback scheduler disabled via settings; relying on external triggers",
        )

    pipeline = get_cashback_store().snapshot()
    if pipeline.failing_pipelines:
        components["cashback_pipeline"] = ComponentStatus(
            status="degraded",
            detail=f"Last run failed for: {', '.join(pipeline.failing_pipelines)} ({pipeline.last_error})",
            last_error_at=pipeline.last_error_at.isoformat() if pipeline.last_error_at else None,
        )
        status = "degraded" if status != "error" else status
    else:
        components["cashback_pipeline"] = ComponentStatus(
            status="ready",
            last_error_at=pipeline.last_error_at.isoformat() if pipeline.last_error_at else None,
        )

    return ReadinessPayload(status=status, components=components)
