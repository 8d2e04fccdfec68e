"""
mailauth.settings - Centralized Configuration

Single source of truth for all mailauth configuration.
Loads from .env files and environment variables using pydantic-settings.

Usage:
    >>> from mailauth.settings import get_settings
    >>> settings = get_settings()
    >>> settings.database_url
    'postgresql+asyncpg://localhost/mailauth_dev'
"""

from __future__ import annotations

from functools import lru_cache

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class MailAuthSettings(BaseSettings):
    """Centralized mailauth configuration loaded from .env / environment variables.

    All MAILAUTH_* prefixed env vars are loaded automatically.
    The database URL also honours the standard DATABASE_URL name.
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        env_prefix="MAILAUTH_",
        extra="ignore",
        populate_by_name=True,
    )

    # -- Environment -----------------------------------------------------------
    env: str = "development"

    # -- Database --------------------------------------------------------------
    database_url: str = Field(
        default="postgresql+asyncpg://localhost/mailauth_dev",
        alias="DATABASE_URL",
    )

    # -- API Server ------------------------------------------------------------
    # Defaults to loopback; set MAILAUTH_API_HOST=0.0.0.0 for container use.
    api_host: str = "127.0.0.1"
    api_port: int = 8000
    cors_origins: list[str] = [
        "http://localhost:3000",
        "http://localhost:5173",
        "http://127.0.0.1:3000",
        "http://127.0.0.1:5173",
    ]

    # -- Logging ---------------------------------------------------------------
    log_level: str = "INFO"

    # -- Outbound provider calls -----------------------------------------------
    http_timeout_seconds: float = 30.0

    # -- OAuth callback rate limiting ------------------------------------------
    callback_rate_limit: int = 10
    callback_rate_window_seconds: int = 60

    # -- Validators ------------------------------------------------------------

    @field_validator("http_timeout_seconds")
    @classmethod
    def _positive_timeout(cls, value: float) -> float:
        """Reject non-positive timeouts; an unbounded provider call is never allowed."""
        if value <= 0:
            raise ValueError("http_timeout_seconds must be positive")
        return value

    @field_validator("log_level")
    @classmethod
    def _upper_log_level(cls, value: str) -> str:
        return value.upper()


# ---------------------------------------------------------------------------
# Singleton accessor
# ---------------------------------------------------------------------------


@lru_cache(maxsize=1)
def get_settings() -> MailAuthSettings:
    """Return the cached MailAuthSettings singleton."""
    return MailAuthSettings()


def clear_settings_cache() -> None:
    """Clear the settings cache (useful for tests)."""
    get_settings.cache_clear()
