"""Application configuration."""

import os

from pydantic_settings import BaseSettings, SettingsConfigDict

_ENVIRONMENT = os.getenv("ENVIRONMENT", "local")


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    supabase_url: str
    supabase_service_key: str
    cron_secret: str
    render_service_url: str
    public_url: str
    sync_lookback_days: int = 7
    recording_page_size: int = 100
    recording_max_pages: int | None = None
    min_active_seconds: float = 5
    step_max_attempts: int = 3
    step_retry_delay_seconds: float = 1.0
    shutdown_grace_seconds: float = 30.0
    http_timeout_seconds: float = 15.0
    environment: str = _ENVIRONMENT

    model_config = SettingsConfigDict(
        env_file=(f".env.{_ENVIRONMENT}", ".env"),
        extra="ignore",
    )
