"""Application configuration."""

from functools import lru_cache
from typing import Literal

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Runtime configuration loaded from environment variables."""

    # Unset means every token-protected route answers 401.
    api_token: str | None = None
    webhook_secret: str | None = None

    retry_max_attempts: int = Field(default=3, ge=0)
    retry_base_delay_seconds: float = Field(default=5.0, gt=0)
    retry_max_delay_seconds: float = Field(default=300.0, gt=0)
    retry_jitter_seconds: float = Field(default=1.0, ge=0)
    retry_timers_enabled: bool = True

    replay_window_seconds: float = Field(default=300.0, gt=0)
    lease_seconds: float = Field(default=120.0, gt=0)
    stuck_processing_after_seconds: float = Field(default=600.0, ge=0)
    abandon_processing_after_seconds: float = Field(default=86400.0, gt=0)
    sweep_enabled: bool = False
    sweep_interval_seconds: float = Field(default=60.0, gt=0)

    backend_provider: Literal["http", "fake"] = "http"
    backend_url: str = "https://api.salad.com/api/public/organizations/default/inference-endpoints/transcribe"
    backend_api_key: str | None = None
    backend_timeout_seconds: float = Field(default=30.0, gt=0)
    public_webhook_url: str | None = None
    media_base_url: str | None = None

    notifier_webhook_url: str | None = None
    notifier_timeout_seconds: float = Field(default=10.0, gt=0)

    store_provider: Literal["memory", "sqlite"] = "memory"
    sqlite_path: str = "data/jobs.db"
    archive_dir: str | None = None

    model_config = SettingsConfigDict(env_prefix="TRANSCRIBE_", extra="ignore")


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    return Settings()
