"""
Gym Membership Service - Configuration Settings

This module handles all application configuration using Pydantic Settings.
Environment variables are loaded from .env file.
"""

from functools import lru_cache
from typing import List, Optional
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore"
    )

    # ===========================================
    # APPLICATION CONFIGURATION
    # ===========================================
    app_name: str = "Gym Membership Service"
    app_env: str = "development"
    debug: bool = True
    secret_key: str  # Required - must be set in .env
    api_version: str = "v1"
    base_url: str = "http://localhost:8000"

    # ===========================================
    # DATABASE CONFIGURATION
    # PostgreSQL (asyncpg) in production, SQLite (aiosqlite) for local runs
    # ===========================================
    database_url_async: str = "sqlite+aiosqlite:///./gym_membership.db"
    database_echo: bool = False
    database_pool_size: int = 5
    database_max_overflow: int = 10

    # ===========================================
    # JWT AUTHENTICATION
    # Tokens are issued by the auth service; this service only verifies them.
    # ===========================================
    jwt_secret_key: str  # Required - must be set in .env
    jwt_algorithm: str = "HS256"
    access_token_expire_minutes: int = 30

    # ===========================================
    # SUBSCRIPTION LIFECYCLE
    # ===========================================
    plan_change_ttl_minutes: int = 15  # Validity of a proration quote
    allowed_pause_durations: str = "15,30,90"  # Days
    currency: str = "USD"

    @property
    def allowed_pause_durations_list(self) -> List[int]:
        """Parse allowed pause durations into a sorted list of days."""
        return sorted(int(d.strip()) for d in self.allowed_pause_durations.split(",") if d.strip())

    # ===========================================
    # EXTERNAL PAYMENT CONFIRMATION
    # The gateway is an external collaborator. We only verify receipts.
    # ===========================================
    payment_verify_url: str = ""  # e.g. https://payments.example.com/api/receipts
    payment_checkout_url: str = ""  # e.g. https://payments.example.com/checkout
    payment_api_key: str = ""
    payment_timeout_seconds: int = 10

    # ===========================================
    # SEED DATA
    # ===========================================
    seed_default_plans: bool = True

    # ===========================================
    # CORS SETTINGS
    # ===========================================
    cors_origins: str = "http://localhost:3000,http://localhost:5173,http://127.0.0.1:3000"

    @property
    def cors_origins_list(self) -> List[str]:
        """Parse CORS origins string into list."""
        return [origin.strip() for origin in self.cors_origins.split(",")]

    @property
    def is_production(self) -> bool:
        """Check if running in production mode."""
        return self.app_env.lower() == "production"

    @property
    def is_development(self) -> bool:
        """Check if running in development mode."""
        return self.app_env.lower() == "development"

    @property
    def is_sqlite(self) -> bool:
        return self.database_url_async.startswith("sqlite")


@lru_cache()
def get_settings() -> Settings:
    """
    Get cached settings instance.
    Uses lru_cache to avoid reading .env file on every call.
    """
    return Settings()


# Export settings instance
settings = get_settings()
