from __future__ import annotations

from functools import lru_cache

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Runtime configuration loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_prefix="ERRORLOG_",
        case_sensitive=False,
    )

    # Design default: local async sqlite database.
    db_url: str = "sqlite+aiosqlite:///./data/errorlog.db"

    # Retention cap for the error log; 0 disables automatic trimming.
    max_number_error_items: int = 200

    # SMTP defaults; per-gallery settings override host/port when present.
    smtp_host: str = "localhost"
    smtp_port: int = 25
    smtp_timeout_s: float = 10.0
    email_subject_prefix: str = "Gallery error:"

    # Celery
    # Default dev behavior: run tasks inline unless explicitly disabled.
    celery_eager: bool = True
    redis_url: str | None = None

    # Admin API is disabled until a key is configured.
    admin_api_key: str | None = None

    cors_allow_origin: str = "http://localhost:3000"
    cors_allow_credentials: bool = True


@lru_cache
def get_settings() -> Settings:
    return Settings()
