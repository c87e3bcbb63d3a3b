"""Application configuration via pydantic-settings.

Reads from .env file or environment variables. All settings are validated
at startup — if a setting is malformed, the app fails fast with a clear
error message.

Usage:
    from creator_escrow.config import get_settings
    settings = get_settings()
    print(settings.database_url)
"""

from __future__ import annotations

from datetime import timedelta
from decimal import Decimal
from functools import lru_cache
from typing import Literal

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Central configuration for the creator escrow service."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # --- Application ---
    app_env: Literal["development", "staging", "production"] = "development"
    app_debug: bool = True
    app_log_level: str = "DEBUG"
    app_host: str = "0.0.0.0"
    app_port: int = 8000

    # --- Database (PostgreSQL) ---
    database_url: str = (
        "postgresql+asyncpg://escrow:escrow_dev"
        "@localhost:5432/creator_escrow"
    )
    db_pool_size: int = 10
    db_max_overflow: int = 20
    db_pool_timeout: int = 30
    db_echo_sql: bool = False

    # --- Redis ---
    redis_url: str = "redis://localhost:6379/0"
    redis_idempotency_ttl_seconds: int = 86400  # 24 hours
    redis_events_channel: str = "creator_escrow.events"

    # --- Fees (fraction of the gross booking amount kept by the platform) ---
    payout_fee_rate: Decimal = Field(default=Decimal("0.15"), ge=0, lt=1)
    dispute_refund_fee_rate: Decimal = Field(default=Decimal("0.15"), ge=0, lt=1)
    creator_rejection_fee_rate: Decimal = Field(default=Decimal("0.05"), ge=0, lt=1)

    # --- Escrow timing ---
    auto_release_delay_hours: int = Field(default=72, gt=0)
    dispute_window_hours: int = Field(default=48, gt=0)

    # --- Networks ---
    supported_networks: str = "ethereum,base,solana,bsc"
    default_currency: str = "USDC"

    # --- Concurrency ---
    # Total attempts for an operation that lost an optimistic update race.
    conflict_retry_attempts: int = Field(default=2, ge=1)

    # --- Auto-release sweep ---
    auto_release_sweep_enabled: bool = True
    auto_release_sweep_interval_minutes: int = Field(default=5, gt=0)

    @property
    def is_development(self) -> bool:
        return self.app_env == "development"

    @property
    def supported_network_list(self) -> list[str]:
        """Parse comma-separated networks into a list."""
        return [n.strip().lower() for n in self.supported_networks.split(",") if n.strip()]

    @property
    def auto_release_delay(self) -> timedelta:
        return timedelta(hours=self.auto_release_delay_hours)

    @property
    def dispute_window(self) -> timedelta:
        return timedelta(hours=self.dispute_window_hours)


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Return a cached singleton of the application settings."""
    return Settings()
