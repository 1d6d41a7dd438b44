"""Observability snapshot for the cashback pipeline and its scheduler."""

from __future__ import annotations

from fastapi import APIRouter

from cashback_api.observability.cashback import get_cashback_store
from cashback_api.observability.scheduler import get_scheduler_store


router = APIRouter(prefix="/observability", tags=["Observability"])


@router.get("/cashback", summary="Cashback pipeline observability snapshot")
async def get_cashback_snapshot() -> dict[str, object]:
    return {
        "cashback": get_cashback_store().snapshot().as_dict(),
        "scheduler": get_scheduler_store().snapshot().as_dict(),
    }
