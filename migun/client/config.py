"""
Client configuration — settings for the countdown engine.

Same pydantic-settings layer as the server, read from ``MIGUN_CLIENT_*``
environment variables so both can share one ``.env`` file.

Usage:
    from migun.client.config import client_settings
    print(client_settings.BASE_URL)
"""

from __future__ import annotations

from functools import lru_cache

from pydantic_settings import BaseSettings, SettingsConfigDict


class ClientSettings(BaseSettings):
    model_config = SettingsConfigDict(
        env_prefix="MIGUN_CLIENT_",
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=True,
        extra="ignore",
    )

    BASE_URL: str = "http://localhost:3001"
    POLL_INTERVAL_MS: int = 2000
    TICK_INTERVAL_MS: int = 100
    TIMEOUT_SECONDS: float = 5.0
    ENDED_DISPLAY_SECONDS: int = 120  # how long "you may exit" stays up
    CRITICAL_THRESHOLD_SECONDS: int = 30
    CRITICAL_REMINDER_SECONDS: int = 10
    NORMAL_REMINDER_SECONDS: int = 30


@lru_cache()
def get_client_settings() -> ClientSettings:
    """Cached client settings singleton."""
    return ClientSettings()


client_settings = get_client_settings()
