"""Configuration management for SplitSettle."""

from datetime import timedelta
from pathlib import Path
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

    # Reporting
    reporting_currency: str | None = None  # None = report and settle per currency

    # Exchange rates
    rate_source: Literal["static", "http"] = "static"
    rates_api_url: str = "https://api.exchangerate.host"
    rates_api_key: str | None = None
    rate_cache_ttl_seconds: int = 3600
    rate_max_age_seconds: int | None = 86400  # None disables the freshness check

    # Database path
    database_path: Path = Path.home() / ".split_settle" / "split_settle.db"

    def __init__(self, **kwargs):
        """Initialize settings and create database directory if needed."""
        super().__init__(**kwargs)
        self.database_path.parent.mkdir(parents=True, exist_ok=True)

    @property
    def rate_max_age(self) -> timedelta | None:
        if self.rate_max_age_seconds is None:
            return None
        return timedelta(seconds=self.rate_max_age_seconds)


def load_settings() -> Settings:
    """Load application settings from environment variables."""
    try:
        return Settings()
    except Exception as e:
        raise ValueError(
            f"Failed to load settings. Check your .env file and environment "
            f"variables. See .env.example for reference.\n"
            f"Error: {e}"
        ) from e
