"""Configuration settings for the revenue reporting core."""

from datetime import date
from functools import lru_cache
from typing import Literal

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class FlatSettings(BaseSettings):
    """Flat settings read from environment variables or a local .env file."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # Revenue API (data provider + mutation service)
    iris_api_url: str = Field(
        default="http://localhost:3005/api", validation_alias="IRIS_API_URL"
    )
    iris_api_timeout: float = Field(default=30.0, validation_alias="IRIS_API_TIMEOUT")
    iris_api_max_retries: int = Field(default=3, validation_alias="IRIS_API_MAX_RETRIES")

    # Cache (0 disables age-based staleness)
    cache_max_age_seconds: float = Field(
        default=30 * 60, ge=0, validation_alias="CACHE_MAX_AGE_SECONDS"
    )

    # Report defaults
    default_year: int = Field(
        default_factory=lambda: date.today().year, validation_alias="DEFAULT_YEAR"
    )
    default_view_mode: Literal["hours", "revenue"] = Field(
        default="revenue", validation_alias="DEFAULT_VIEW_MODE"
    )
    currency_symbol: str = Field(default="€", validation_alias="CURRENCY_SYMBOL")

    # Logging
    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR"] = Field(
        default="INFO", validation_alias="LOG_LEVEL"
    )
    log_format: Literal["json", "console"] = Field(
        default="console", validation_alias="LOG_FORMAT"
    )


@lru_cache
def get_settings() -> FlatSettings:
    """Get cached settings instance."""
    return FlatSettings()
