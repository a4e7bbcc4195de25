from datetime import date
from typing import Literal

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    app_name: str = "PTO Balances"
    app_version: str = "0.1.0"
    debug: bool = False
    environment: Literal["development", "staging", "production"] = "development"
    log_level: str = "INFO"
    storage_backend: Literal["memory", "sql"] = "sql"
    database_url: str = "postgresql+asyncpg://pto_balances:pto_balances@db:5432/pto_balances"
    cors_origins: list[str] = ["http://localhost:5173", "http://localhost:8000"]

    # Accrual policy
    accrual_rate_hours_per_month: float = 10.0
    part_time_rate_hours_per_month: float | None = 5.0
    accrual_effective_date: date = date(2000, 1, 1)
    accrual_cap_hours: float | None = None
    prorate_by_hire_date: bool = True
    split_cross_year_requests: bool = False
    carryover_enabled: bool = False
    carryover_cap_hours: float | None = None
    carryover_max_depth: int = 3

    # Notifications
    notify_threshold_hours: float | None = None


_settings: Settings | None = None


def get_settings() -> Settings:
    """Return cached settings instance."""
    global _settings
    if _settings is None:
        _settings = Settings()
    return _settings
