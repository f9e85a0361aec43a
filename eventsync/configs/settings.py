"""Centralized settings management for eventsync."""

from __future__ import annotations

from functools import lru_cache
from pathlib import Path
from zoneinfo import ZoneInfo

from pydantic import Field, SecretStr, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict
from sqlalchemy import make_url


class Settings(BaseSettings):
    """
    Application settings powered by pydantic-settings.

    Loads configuration from environment variables and a .env file located
    at the project root.
    """

    # -------------------------------------------------------------------------
    # ENVIRONMENT
    # -------------------------------------------------------------------------
    ENV: str = "development"
    DEBUG: bool = False

    # -------------------------------------------------------------------------
    # DATABASE
    # -------------------------------------------------------------------------
    DATABASE_URL: str = Field("sqlite:///eventsync.db", min_length=1)

    # -------------------------------------------------------------------------
    # OWNERSHIP & TIME
    # -------------------------------------------------------------------------
    # Owner of calendars created for scraped sources without a calendar
    SYSTEM_OWNER_ID: str = "system"
    TIMEZONE: str = "America/Chicago"

    # -------------------------------------------------------------------------
    # SOURCE CREDENTIALS
    # -------------------------------------------------------------------------
    FIRECRAWL_API_KEY: SecretStr | None = None
    FIRECRAWL_API_URL: str = "https://api.firecrawl.dev/v1/scrape"
    GOOGLE_CLIENT_ID: str | None = None
    GOOGLE_CLIENT_SECRET: SecretStr | None = None

    # -------------------------------------------------------------------------
    # SCHEDULER
    # -------------------------------------------------------------------------
    SCHEDULER_WORKERS: int = 4
    SCHEDULER_MAX_STAGGER_S: float = 60.0
    RETRY_BASE_DELAY_S: float = 30.0
    RETRY_MAX_DELAY_S: float = 900.0
    DEDUP_AFTER_SWEEP: bool = False

    # -------------------------------------------------------------------------
    # LOGGING
    # -------------------------------------------------------------------------
    LOG_LEVEL: str = "INFO"
    JSON_LOGS: bool = False

    # -------------------------------------------------------------------------
    # PATHS
    # -------------------------------------------------------------------------
    # BASE_DIR points to the eventsync package
    BASE_DIR: Path = Path(__file__).resolve().parents[1]

    SOURCES_CONFIG_PATH: Path = BASE_DIR / "configs" / "sources.yaml"

    # -------------------------------------------------------------------------
    # CONFIGURATION
    # -------------------------------------------------------------------------
    model_config = SettingsConfigDict(
        env_file=str(Path(__file__).resolve().parents[2] / ".env"),
        env_file_encoding="utf-8",
        extra="ignore",
    )

    @field_validator("TIMEZONE")
    @classmethod
    def validate_timezone(cls, v: str) -> str:
        ZoneInfo(v)
        return v

    @property
    def tzinfo(self) -> ZoneInfo:
        """Timezone used to bucket events by calendar day."""
        return ZoneInfo(self.TIMEZONE)

    @property
    def is_sqlite(self) -> bool:
        """Whether DATABASE_URL points at a sqlite database."""
        return make_url(self.DATABASE_URL).get_backend_name() == "sqlite"


@lru_cache
def get_settings() -> Settings:
    """
    Get cached application settings.

    Returns
    -------
    Settings
        The singleton settings instance.
    """
    return Settings()
