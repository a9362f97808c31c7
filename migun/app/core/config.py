"""
Environment configuration — single source of truth for server settings.

Uses pydantic-settings for type-safe config with .env file support.
All values have sensible defaults for local development.

Usage:
    from migun.app.core.config import settings
    print(settings.LIVE_FEED_URL)
"""

from __future__ import annotations

from functools import lru_cache
from typing import List

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """
    Application-wide settings loaded from environment variables or .env file.

    Precedence: env var > .env file > default value
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=True,
        extra="ignore",
    )

    # ── Application ──
    APP_NAME: str = "Migun Clock"
    APP_VERSION: str = "1.0.0"
    ENVIRONMENT: str = "development"  # development | staging | production
    DEBUG: bool = True
    LOG_LEVEL: str = "INFO"  # DEBUG | INFO | WARNING | ERROR | CRITICAL

    # ── Server ──
    HOST: str = "0.0.0.0"
    PORT: int = 3001

    # ── CORS ──
    CORS_ORIGINS: List[str] = [
        "http://localhost:3000",
        "http://localhost:5173",
    ]
    CORS_ALLOW_ALL: bool = True  # False in production

    # ── Upstream feeds ──
    LIVE_FEED_URL: str = "https://www.oref.org.il/WarningMessages/alert/alerts.json"
    HISTORY_FEED_URL: str = "https://www.oref.org.il/WarningMessages/History/AlertsHistory.json"
    FEED_REFERER: str = "https://www.oref.org.il/"
    FEED_TIMEOUT_SECONDS: float = 5.0
    FEED_TEST_MARKER: str = "בדיקה"  # area names containing this are drills
    FEED_POLLING_ENABLED: bool = True
    LIVE_POLL_INTERVAL_SECONDS: float = 2.0
    HISTORY_POLL_INTERVAL_SECONDS: float = 2.0
    HISTORY_MAX_AGE_SECONDS: int = 120  # older history entries are replays
    HISTORY_TIMEZONE: str = "Asia/Jerusalem"  # alertDate is upstream local time

    # ── Expiry ──
    GRACE_SECONDS: int = 30  # retention after migun_time elapses
    NOTICE_TTL_SECONDS: int = 600  # early-warning notice lifetime
    DEFAULT_MIGUN_TIME: int = 90  # for areas missing from the catalog

    # ── Reference data ──
    AREAS_PATH: str = "data/areas.json"
    CITIES_GEO_PATH: str = "data/cities_geo.json"

    @property
    def is_production(self) -> bool:
        return self.ENVIRONMENT == "production"

    @property
    def test_alerts_enabled(self) -> bool:
        """Synthetic injection is a dev tool; never reachable in production."""
        return not self.is_production


@lru_cache()
def get_settings() -> Settings:
    """Cached settings singleton."""
    return Settings()


settings = get_settings()
