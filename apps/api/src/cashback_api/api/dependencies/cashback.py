"""Dependencies wiring the cashback trigger service into request handlers."""

from __future__ import annotations

from fastapi import Depends

from cashback_api.core.settings import Settings, get_settings
from cashback_api.db.session import async_session
from cashback_api.services.cashback import CashbackTriggerService, build_messaging_gateway
from cashback_api.services.cashback.triggers import GatewayFactory, SessionFactory


def get_session_factory() -> SessionFactory:
    return async_session


def get_gateway_factory(settings: Settings = Depends(get_settings)) -> GatewayFactory:
    return lambda: build_messaging_gateway(settings)


def get_trigger_service(
    session_factory: SessionFactory = Depends(get_session_factory),
    gateway_factory: GatewayFactory = Depends(get_gateway_factory),
    settings: Settings = Depends(get_settings),
) -> CashbackTriggerService:
    return CashbackTriggerService(session_factory, gateway_factory=gateway_factory, settings=settings)


__all__ = ["get_gateway_factory", "get_session_factory", "get_trigger_service"]
