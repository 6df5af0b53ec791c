# =============================================================================
# app/config.py - Application Settings
# =============================================================================
# This module loads configuration from environment variables using pydantic-settings.
# It provides a single Settings class with all configuration values.
#
# Usage:
#   from app.config import settings
#   print(settings.SUPABASE_URL)
#
# Environment variables are loaded from:
# 1. System environment variables
# 2. .env file in project root (if exists)
#
# The Settings class validates all values at startup, catching configuration
# errors early rather than at runtime.
# =============================================================================

from functools import lru_cache
from typing import Literal

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """
    Application settings loaded from environment variables.

    Uses pydantic-settings to:
    - Automatically load from .env file
    - Validate types and constraints
    - Provide sensible defaults for development

    All settings are accessed via the global `settings` instance.
    """

    # -------------------------------------------------------------------------
    # Supabase Configuration
    # -------------------------------------------------------------------------
    # Database, auth and object storage all live in the same Supabase project

    SUPABASE_URL: str = Field(
        ...,  # ... means required (no default)
        description="Supabase project URL (e.g., https://xxx.supabase.co)"
    )

    SUPABASE_ANON_KEY: str = Field(
        ...,
        description="Supabase anon/public API key"
    )

    SUPABASE_SERVICE_KEY: str = Field(
        ...,
        description="Supabase service_role key (bypasses RLS)"
    )

    SUPABASE_JWT_SECRET: str = Field(
        default="",
        description="Legacy HS256 JWT secret (ES256 tokens are verified via JWKS)"
    )

    # Empty string disables durable storage: writes degrade to inline data URLs
    STORAGE_BUCKET: str = Field(
        default="inventory-photos",
        description="Public Supabase Storage bucket for photos and AI images"
    )

    # -------------------------------------------------------------------------
    # OpenAI / Generative Inference Configuration
    # -------------------------------------------------------------------------

    OPENAI_API_KEY: str = Field(
        ...,
        description="OpenAI API key for image transforms and listing copy"
    )

    OPENAI_TEXT_MODEL: str = Field(
        default="gpt-4o-mini",
        description="Model for listing copy (must support JSON mode and web search)"
    )

    OPENAI_IMAGE_MODEL: str = Field(
        default="gpt-image-1",
        description="Model for catalogue-photo transforms (Images edit API)"
    )

    LISTING_TEMPERATURE: float = Field(
        default=0.6,
        ge=0.0,
        le=2.0,
        description="Temperature for listing copy generation"
    )

    # -------------------------------------------------------------------------
    # Pipeline Timeouts & Retries
    # -------------------------------------------------------------------------
    # Per-attempt timeouts in milliseconds. Every external call goes through
    # the ResilientInvoker with these values.

    IMAGE_FETCH_TIMEOUT_MS: int = Field(default=10_000, ge=100)
    IMAGE_FETCH_ATTEMPTS: int = Field(default=2, ge=1, le=5)

    IMAGE_TRANSFORM_TIMEOUT_MS: int = Field(default=20_000, ge=100)
    IMAGE_TRANSFORM_ATTEMPTS: int = Field(default=2, ge=1, le=5)

    AUGMENTED_LISTING_TIMEOUT_MS: int = Field(default=22_000, ge=100)
    AUGMENTED_LISTING_ATTEMPTS: int = Field(default=1, ge=1, le=5)

    QUICK_LISTING_TIMEOUT_MS: int = Field(default=10_000, ge=100)
    QUICK_LISTING_ATTEMPTS: int = Field(default=2, ge=1, le=5)

    # Storage writes fail fast: a degraded inline result beats a slow one
    STORAGE_WRITE_TIMEOUT_MS: int = Field(default=12_000, ge=100)
    STORAGE_WRITE_ATTEMPTS: int = Field(default=1, ge=1, le=5)

    UPLOAD_TIMEOUT_MS: int = Field(default=20_000, ge=100)
    UPLOAD_ATTEMPTS: int = Field(default=3, ge=1, le=10)

    RETRY_BASE_DELAY_MS: int = Field(default=400, ge=0)
    RETRY_BACKOFF_FACTOR: float = Field(default=2.0, ge=1.0)

    # -------------------------------------------------------------------------
    # Time Budgets
    # -------------------------------------------------------------------------
    # Hard per-endpoint ceilings, matching the hosting function limits

    IMAGE_BATCH_BUDGET_MS: int = Field(
        default=60_000,
        ge=1_000,
        description="Total budget for an image (or images + listing) request"
    )

    LISTING_BUDGET_MS: int = Field(
        default=30_000,
        ge=1_000,
        description="Total budget for a listing-only request"
    )

    MIN_IMAGE_ITEM_BUDGET_MS: int = Field(
        default=1_000,
        ge=0,
        description="Do not start another image unless at least this much budget remains"
    )

    MAX_IMAGES_PER_REQUEST: int = Field(
        default=6,
        ge=1,
        le=20,
        description="Upper bound on target photos per generation request"
    )

    # -------------------------------------------------------------------------
    # Application Settings
    # -------------------------------------------------------------------------

    ENVIRONMENT: Literal["development", "staging", "production"] = Field(
        default="development",
        description="Current environment"
    )

    DEBUG: bool = Field(
        default=False,
        description="Enable debug mode (verbose logging, auto-reload)"
    )

    API_HOST: str = Field(
        default="0.0.0.0",
        description="Host to bind the API server to"
    )

    API_PORT: int = Field(
        default=8000,
        ge=1,
        le=65535,
        description="Port for the API server"
    )

    # CORS origins (comma-separated string that gets parsed)
    CORS_ORIGINS: str = Field(
        default="http://localhost:3000",
        description="Allowed CORS origins (comma-separated)"
    )

    # -------------------------------------------------------------------------
    # Photo Upload Settings
    # -------------------------------------------------------------------------

    MAX_UPLOAD_SIZE_MB: int = Field(
        default=10,
        ge=1,
        le=100,
        description="Maximum photo size in MB"
    )

    ALLOWED_IMAGE_TYPES: str = Field(
        default="image/jpeg,image/png,image/webp,image/heic",
        description="Allowed photo content types (comma-separated)"
    )

    MAX_BATCH_SIZE: int = Field(
        default=20,
        ge=1,
        le=100,
        description="Maximum photos per upload batch"
    )

    UPLOAD_BATCH_IDLE_TTL_S: int = Field(
        default=3600,
        ge=1,
        description="Seconds a quiescent batch is kept before it is evicted"
    )

    # -------------------------------------------------------------------------
    # Pydantic Settings Configuration
    # -------------------------------------------------------------------------

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        # Don't fail if .env doesn't exist (useful for production where
        # env vars are set directly)
        env_ignore_empty=True,
        case_sensitive=True,
    )

    # -------------------------------------------------------------------------
    # Computed Properties
    # -------------------------------------------------------------------------

    @property
    def cors_origins_list(self) -> list[str]:
        """
        Parse CORS_ORIGINS string into a list.

        Example: "http://localhost:3000, https://myapp.com" -> ["http://localhost:3000", "https://myapp.com"]
        """
        return [origin.strip() for origin in self.CORS_ORIGINS.split(",")]

    @property
    def allowed_image_types_list(self) -> list[str]:
        """
        Parse ALLOWED_IMAGE_TYPES string into a list.

        Example: "image/jpeg, image/png" -> ["image/jpeg", "image/png"]
        """
        return [t.strip().lower() for t in self.ALLOWED_IMAGE_TYPES.split(",") if t.strip()]

    @property
    def max_upload_size_bytes(self) -> int:
        """Convert MB to bytes for file size validation."""
        return self.MAX_UPLOAD_SIZE_MB * 1024 * 1024

    @property
    def storage_configured(self) -> bool:
        """Durable storage is usable only with a bucket and a service key."""
        return bool(self.STORAGE_BUCKET and self.SUPABASE_SERVICE_KEY)

    @property
    def is_development(self) -> bool:
        """Check if running in development mode."""
        return self.ENVIRONMENT == "development"

    @property
    def is_production(self) -> bool:
        """Check if running in production mode."""
        return self.ENVIRONMENT == "production"


@lru_cache
def get_settings() -> Settings:
    """
    Get cached Settings instance.

    Using lru_cache ensures we only parse .env and validate once,
    not on every access.

    Returns:
        Settings: The application settings instance
    """
    return Settings()


# Global settings instance for easy importing
# Usage: from app.config import settings
settings = get_settings()
