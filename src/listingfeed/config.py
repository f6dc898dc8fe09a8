"""Configuration system for listingfeed.

Uses pydantic-settings to load process-wide configuration from environment
variables and .env files. Per-tenant feed configuration lives on the
Tenant model instead (see listingfeed.models.tenant).
"""

from pathlib import Path
from typing import Literal

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables.

    All settings can be overridden via environment variables or .env file.
    Environment variables are prefixed with LISTINGFEED_ (e.g.,
    LISTINGFEED_CACHE_BACKEND).
    """

    model_config = SettingsConfigDict(
        env_prefix="LISTINGFEED_",
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # Cache settings
    cache_scope: str = Field(
        default="listingfeed",
        description="Leading namespace of every cache key",
    )
    cache_backend: Literal["memory", "sqlite"] = Field(
        default="memory",
        description="Backing store used by CacheStore",
    )
    cache_dir: Path = Field(
        default=Path(".cache"),
        description="Directory for the SQLite cache database",
    )
    cache_db_name: str = Field(
        default="external_feed.db",
        description="SQLite cache database file name",
    )
    single_flight: bool = Field(
        default=True,
        description="Coalesce concurrent cache misses for the same key",
    )

    # Search defaults
    default_locale: str = Field(
        default="en",
        description="Locale used when neither request nor tenant sets one",
    )
    default_per_page: int = Field(
        default=24,
        ge=1,
        description="Results per page when the tenant does not override it",
    )

    # Upstream HTTP
    request_timeout: float = Field(
        default=30.0,
        gt=0,
        description="Read timeout in seconds for provider HTTP calls",
    )
    connect_timeout: float = Field(
        default=10.0,
        gt=0,
        description="Connect timeout in seconds for provider HTTP calls",
    )


# Singleton instance for easy import
config = Settings()
