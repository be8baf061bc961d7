"""Core configuration and constants.

Uses environment variables for secrets and configuration. Follows PEP8 and Google style docstrings.
"""
from __future__ import annotations

from functools import lru_cache
from typing import Literal
import os

from pydantic import BaseModel


class Settings(BaseModel):
    """Application settings loaded from environment variables.

    Attributes:
        app_name: App display name.
        environment: Runtime environment.
        api_host: Host for FastAPI server.
        api_port: Port for FastAPI server.
        log_level: Logging level string.
        database_url: SQLAlchemy URL; empty means the bundled SQLite file.
        timezone: IANA zone used to read schedule windows and day keys.
        sync_interval_sec: Seconds between usage sync ticks.
        usage_source_url: Endpoint returning the measured usage report.
        untracked_usage_policy: What to do with usage of apps that are
            neither limited nor part of the wallet economy.
        visibility_threshold: Minimum landmark visibility to use a point.
    """

    app_name: str = os.getenv("APP_NAME", "LockIn Core")
    environment: Literal["dev", "prod", "test"] = os.getenv("ENVIRONMENT", "dev")  # type: ignore[assignment]

    api_host: str = os.getenv("API_HOST", "0.0.0.0")
    api_port: int = int(os.getenv("API_PORT", "8000"))

    log_level: str = os.getenv("LOG_LEVEL", "INFO")

    # Security & CORS
    api_key: str | None = os.getenv("API_KEY")
    exposed_origins: list[str] = (
        os.getenv("EXPOSED_ORIGINS", "*").split(",") if os.getenv("EXPOSED_ORIGINS") else ["*"]
    )

    # Persistence
    database_url: str = os.getenv("DATABASE_URL", "")
    history_limit: int = int(os.getenv("HISTORY_LIMIT", "100"))

    # Schedules / day keys
    timezone: str = os.getenv("TIMEZONE", "UTC")

    # Usage sync
    sync_interval_sec: int = int(os.getenv("SYNC_INTERVAL_SEC", "30"))
    usage_source_url: str | None = os.getenv("USAGE_SOURCE_URL")
    usage_source_timeout: float = float(os.getenv("USAGE_SOURCE_TIMEOUT", "10"))
    untracked_usage_policy: Literal["drop", "track"] = (
        "drop" if os.getenv("UNTRACKED_USAGE_POLICY", "track").strip().lower() == "drop" else "track"
    )

    # Vision / pose classification
    visibility_threshold: float = float(os.getenv("VISIBILITY_THRESHOLD", "0.5"))


@lru_cache
def get_settings() -> Settings:
    """Return cached settings instance."""

    return Settings()
