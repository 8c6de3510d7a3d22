"""
Application settings loaded from environment variables.

Uses pydantic-settings for validation and type safety.
"""

from pydantic_settings import BaseSettings, SettingsConfigDict
from pydantic import Field
from functools import lru_cache


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
    # CATALOG API
    # ===================
    catalog_api_url: str = Field(
        default="http://localhost:8000",
        description="Base URL of the catalog API"
    )
    catalog_api_timeout_seconds: float = Field(
        default=10.0,
        gt=0,
        le=120,
        description="Timeout for a single catalog API request"
    )
    default_owner_id: str = Field(
        default="demo-user",
        min_length=1,
        description="Owner used by the catalog API when no X-User-Id header is sent"
    )

    # ===================
    # NAME VALIDATION
    # ===================
    name_check_debounce_ms: int = Field(
        default=500,
        ge=50,
        le=5000,
        description="Milliseconds a name must stay unchanged before it is checked"
    )

    # ===================
    # VIEW CACHE
    # ===================
    view_stale_seconds: float = Field(
        default=0,
        ge=0,
        description="Seconds a list/detail view stays fresh after a fetch"
    )
    reference_stale_seconds: float = Field(
        default=300,
        ge=0,
        description="Seconds side-loaded reference lists (categories) stay fresh"
    )
    query_retry_count: int = Field(
        default=3,
        ge=0,
        le=10,
        description="Retries for a failed view fetch"
    )
    query_retry_base_delay_seconds: float = Field(
        default=1.0,
        ge=0,
        le=30,
        description="Base delay for exponential fetch backoff (capped at 30s)"
    )
    list_page_size: int = Field(
        default=100,
        ge=1,
        le=500,
        description="Page size requested for list views"
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

    # ===================
    # COMPUTED PROPERTIES
    # ===================
    @property
    def is_production(self) -> bool:
        """Check if running in production."""
        return self.environment == "production"

    @property
    def name_check_debounce_seconds(self) -> float:
        return self.name_check_debounce_ms / 1000


@lru_cache()
def get_settings() -> Settings:
    """
    Get cached settings instance.

    Uses lru_cache to ensure settings are only loaded once.
    Call get_settings.cache_clear() to reload.

    Returns:
        Settings: Application settings

    Raises:
        ValidationError: If env vars are invalid
    """
    return Settings()


# For convenient imports: from config.settings import settings
settings = get_settings()
