from __future__ import annotations

import os
from pathlib import Path

from pydantic import field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", case_sensitive=False)
    """Application runtime configuration."""

    app_name: str = os.getenv("TT_APP_NAME", "TaskTrack")
    environment: str = os.getenv("TT_ENVIRONMENT", "development")
    host: str = os.getenv("TT_HOST", "127.0.0.1")
    port: int = int(os.getenv("TT_PORT", "8080"))

    storage_backend: str = os.getenv("TT_STORAGE", "sqlite")
    sqlite_path: Path = Path(os.getenv("TT_SQLITE_PATH", "./data/tasktrack.db"))

    timezone: str = os.getenv("TT_TIMEZONE", "UTC")
    log_level: str = os.getenv("TT_LOG_LEVEL", "INFO")

    report_title_prefix: str = os.getenv("TT_REPORT_TITLE_PREFIX", "TaskTrack")

    @field_validator("log_level", mode="before")
    @classmethod
    def _normalize_log_level(cls, value: str) -> str:
        return (value or "INFO").strip().upper()


settings = Settings()

settings.sqlite_path.parent.mkdir(parents=True, exist_ok=True)
