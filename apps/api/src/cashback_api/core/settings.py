from functools import lru_cache
from typing import Literal

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8", extra="allow")

    environment: Literal["development", "staging", "production"] = "development"
    database_url: str = "sqlite+aiosqlite:///./cashback.db"

    # Cashback notification queue
    cashback_queue_batch_size: int = 10
    cashback_queue_max_batch_size: int = 50
    cashback_queue_stale_after_seconds: int = 10 * 60
    cashback_queue_dispatch_concurrency: int = 5
    cashback_queue_time_budget_seconds: float | None = 25.0

    @field_validator("cashback_queue_time_budget_seconds", mode="before")
    @classmethod
    def _parse_time_budget(cls, value: object) -> object:
        if value is None:
            return None
        if isinstance(value, str) and not value.strip():
            return None
        return value

    # WhatsApp webhook gateway
    whatsapp_webhook_url: str | None = None
    whatsapp_webhook_auth: str | None = None
    whatsapp_site_slug: str = "cashback"
    whatsapp_customer_id: str | None = None
    whatsapp_timeout_seconds: float = 10.0
    whatsapp_default_country_code: str = Field(default="55", pattern=r"^\d{1,3}$")

    # In-process scheduler
    cashback_scheduler_enabled: bool = False
    cashback_schedule_path: str = "config/schedules.toml"


@lru_cache
def get_settings() -> Settings:
    return Settings()  # type: ignore[arg-type]


settings = get_settings()
