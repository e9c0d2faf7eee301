"""Application configuration via pydantic-settings.

Reads from .env file or environment variables. All settings are validated
at startup: a malformed value fails fast with a clear error message.

Usage:
    from property_settlement.config import get_settings
    settings = get_settings()
    print(settings.cooling_off_business_days)
"""

from __future__ import annotations

from functools import lru_cache
from typing import Literal
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Central configuration for the settlement core."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # --- Application ---
    app_env: Literal["development", "staging", "production"] = "development"
    app_log_level: str = "INFO"

    # --- Database ---
    database_url: str = "sqlite+aiosqlite:///./property_settlement.db"
    db_pool_size: int = 10
    db_max_overflow: int = 20
    db_pool_timeout: int = 30
    db_echo_sql: bool = False

    # --- Offers ---
    offer_validity_days: int = Field(default=5, gt=0)
    default_currency: str = Field(default="AUD", min_length=3, max_length=3)

    # --- Transactions ---
    # NSW: 5 business days from exchange
    cooling_off_business_days: int = Field(default=5, ge=0)
    jurisdiction_timezone: str = "UTC"

    # --- Scheduler ---
    expiry_sweep_interval_seconds: int = Field(default=300, gt=0)

    @field_validator("jurisdiction_timezone")
    @classmethod
    def _known_timezone(cls, value: str) -> str:
        try:
            ZoneInfo(value)
        except (ZoneInfoNotFoundError, ValueError) as exc:
            raise ValueError(f"unknown timezone '{value}'") from exc
        return value

    @property
    def is_development(self) -> bool:
        return self.app_env == "development"

    @property
    def is_sqlite(self) -> bool:
        return self.database_url.startswith("sqlite")

    @property
    def jurisdiction_tz(self) -> ZoneInfo:
        return ZoneInfo(self.jurisdiction_timezone)


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Return a cached singleton of the application settings."""
    return Settings()
