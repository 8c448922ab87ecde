"""
Application settings and configuration management.

This module handles environment variables, search API keys, and the tuning
knobs of the research pipeline (batching, backoff, page limits, cache
validity) using Pydantic settings management for type safety and validation.
"""

from functools import lru_cache
from pathlib import Path
from typing import Literal, Optional

from pydantic import Field, SecretStr, field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

# Hard ceiling on queries per product, regardless of configuration
MAX_QUERIES_CEILING = 12


class Settings(BaseSettings):
    """
    Application settings loaded from environment variables.

    All sensitive values are stored as SecretStr to prevent accidental logging.
    Settings are validated on load and cached for performance.
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=True,
        extra="ignore",
        populate_by_name=True,
    )

    # Search API Keys
    google_api_key: Optional[SecretStr] = Field(default=None, alias="GOOGLE_API_KEY")
    google_search_engine_id: Optional[str] = Field(default=None, alias="GOOGLE_SEARCH_ENGINE_ID")
    serpapi_api_key: Optional[SecretStr] = Field(default=None, alias="SERPAPI_API_KEY")

    # Application Configuration
    app_env: Literal["development", "staging", "production"] = Field(
        default="development",
        alias="APP_ENV"
    )
    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR"] = Field(
        default="INFO",
        alias="LOG_LEVEL"
    )
    log_json: bool = Field(default=False, alias="LOG_JSON")

    # Research Cache
    database_url: str = Field(
        default="sqlite:///lifecycle_research.db",
        alias="DATABASE_URL"
    )
    cache_validity_days: int = Field(default=365, alias="CACHE_VALIDITY_DAYS")
    cache_confidence_boost: int = Field(default=2, alias="CACHE_CONFIDENCE_BOOST")

    # Search Orchestration
    search_batch_size: int = Field(default=3, alias="SEARCH_BATCH_SIZE")
    min_batch_interval_seconds: float = Field(default=0.5, alias="MIN_BATCH_INTERVAL_SECONDS")
    search_timeout_seconds: float = Field(default=8.0, alias="SEARCH_TIMEOUT_SECONDS")
    query_timeout_seconds: float = Field(default=180.0, alias="QUERY_TIMEOUT_SECONDS")
    results_per_query: int = Field(default=3, alias="RESULTS_PER_QUERY")
    max_queries_per_product: int = Field(default=MAX_QUERIES_CEILING, alias="MAX_QUERIES_PER_PRODUCT")

    # Search Retry / Backoff
    search_max_attempts: int = Field(default=5, alias="SEARCH_MAX_ATTEMPTS")
    rate_limit_backoff_base_seconds: float = Field(default=5.0, alias="RATE_LIMIT_BACKOFF_BASE_SECONDS")
    rate_limit_backoff_max_seconds: float = Field(default=120.0, alias="RATE_LIMIT_BACKOFF_MAX_SECONDS")
    server_error_backoff_step_seconds: float = Field(default=2.0, alias="SERVER_ERROR_BACKOFF_STEP_SECONDS")

    # Page Fetching
    page_fetch_timeout_seconds: float = Field(default=5.0, alias="PAGE_FETCH_TIMEOUT_SECONDS")
    page_max_bytes: int = Field(default=5 * 1024 * 1024, alias="PAGE_MAX_BYTES")
    page_cache_ttl_seconds: int = Field(default=24 * 3600, alias="PAGE_CACHE_TTL_SECONDS")
    page_cache_max_size: int = Field(default=500, alias="PAGE_CACHE_MAX_SIZE")

    # Estimation
    vendor_intervals_file: Optional[Path] = Field(default=None, alias="VENDOR_INTERVALS_FILE")

    @field_validator("max_queries_per_product")
    @classmethod
    def validate_max_queries(cls, v: int) -> int:
        """Keep the query plan within the hard ceiling."""
        if v < 1:
            raise ValueError("MAX_QUERIES_PER_PRODUCT must be at least 1")
        return min(v, MAX_QUERIES_CEILING)

    @field_validator("search_batch_size", "search_max_attempts", "results_per_query")
    @classmethod
    def validate_positive(cls, v: int) -> int:
        """Ensure counts are positive."""
        if v < 1:
            raise ValueError("Value must be at least 1")
        return v

    @field_validator("vendor_intervals_file", mode="before")
    @classmethod
    def validate_intervals_file(cls, v: str | Path | None) -> Optional[Path]:
        """Treat an empty path as unset."""
        if v in (None, ""):
            return None
        return Path(v)

    @model_validator(mode="after")
    def validate_google_pair(self) -> "Settings":
        """Google Custom Search needs both the key and the engine id."""
        if self.google_api_key and not self.google_search_engine_id:
            raise ValueError("GOOGLE_SEARCH_ENGINE_ID is required when GOOGLE_API_KEY is set")
        return self

    def get_search_provider(self) -> str:
        """Determine which search provider to use based on available keys."""
        if self.google_api_key and self.google_search_engine_id:
            return "google"
        elif self.serpapi_api_key:
            return "serpapi"
        return "none"


@lru_cache
def get_settings() -> Settings:
    """Get cached application settings."""
    return Settings()
