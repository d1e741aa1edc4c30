"""
Application settings loaded from environment variables.

Uses pydantic-settings for validation and type safety.
"""

from pydantic_settings import BaseSettings, SettingsConfigDict
from pydantic import Field
from functools import lru_cache
from typing import Optional


class Settings(BaseSettings):
    """
    Application settings.

    All values loaded from .env file or environment variables.
    Validation happens automatically on startup.
    """

    model_config = SettingsConfigDict(
        env_file=(".env", "../.env"),  # Check current dir, then parent
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore"  # Ignore extra env vars
    )

    # ===================
    # SUPABASE
    # ===================
    supabase_url: str = Field(
        ...,
        description="Supabase project URL"
    )
    supabase_key: str = Field(
        ...,
        description="Supabase anon/public key"
    )
    pricing_records_table: str = Field(
        default="pricing-records",
        description="Collection holding pricing records"
    )
    users_table: str = Field(
        default="users",
        description="Collection holding user profiles"
    )

    # ===================
    # API SECURITY
    # ===================
    api_key: Optional[str] = Field(
        None,
        description="Shared secret the identity gateway sends as X-API-Key"
    )

    # ===================
    # PRICING RECORDS
    # ===================
    default_currency: str = Field(
        default="USD",
        pattern="^[A-Z]{3}$",
        description="Currency stamped on ingested records"
    )

    # ===================
    # SEARCH LIMITS
    # ===================
    recent_page_size: int = Field(
        default=20,
        ge=1,
        le=500,
        description="Default page size for the most recently updated records"
    )
    exact_match_limit: int = Field(
        default=20,
        ge=1,
        le=500,
        description="Max results per exact-match probe (store ID, SKU)"
    )
    product_name_candidate_limit: int = Field(
        default=100,
        ge=1,
        le=1000,
        description="Recent records scanned by product-name search"
    )
    filter_result_limit: int = Field(
        default=50,
        ge=1,
        le=500,
        description="Max results for filtered queries"
    )

    # ===================
    # INGESTION
    # ===================
    ingest_batch_size: int = Field(
        default=200,
        ge=1,
        le=5000,
        description="Rows per lookup batch (cancellation is checked between batches)"
    )
    max_upload_bytes: int = Field(
        default=10 * 1024 * 1024,
        ge=1024,
        description="Largest accepted CSV upload in bytes"
    )

    # ===================
    # SNAPSHOT WATCH
    # ===================
    watch_poll_seconds: float = Field(
        default=5.0,
        gt=0,
        le=300,
        description="Seconds between polls when watching recent records"
    )
    watch_max_polls: int = Field(
        default=12,
        ge=1,
        le=1000,
        description="Polls per watch call before the stream ends"
    )

    # ===================
    # APP SETTINGS
    # ===================
    environment: str = Field(
        default="development",
        pattern="^(development|staging|production)$",
        description="Application environment"
    )
    debug: bool = Field(
        default=True,
        description="Enable debug mode"
    )
    log_level: str = Field(
        default="INFO",
        pattern="^(DEBUG|INFO|WARNING|ERROR|CRITICAL)$",
        description="Logging level"
    )
    api_host: str = Field(
        default="0.0.0.0",
        description="API host"
    )
    api_port: int = Field(
        default=8000,
        ge=1000,
        le=65535,
        description="API port"
    )
    cors_origins: list[str] = Field(
        default=[
            "http://localhost:3000",
            "http://localhost:5173",
        ],
        description="Origins allowed to call the API from a browser"
    )

    # ===================
    # COMPUTED PROPERTIES
    # ===================
    @property
    def is_production(self) -> bool:
        """Check if running in production."""
        return self.environment == "production"


@lru_cache()
def get_settings() -> Settings:
    """
    Get cached settings instance.

    Uses lru_cache to ensure settings are only loaded once.
    Call get_settings.cache_clear() to reload.

    Returns:
        Settings: Application settings

    Raises:
        ValidationError: If required env vars are missing or invalid
    """
    return Settings()


# For convenient imports: from config.settings import settings
settings = get_settings()
