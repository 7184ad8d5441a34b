"""Configuration settings for the VelvetHold backend."""

from pydantic_settings import BaseSettings
from functools import lru_cache


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    # Supabase
    supabase_url: str = ""
    supabase_key: str = ""
    supabase_service_key: str = ""

    # Stripe
    stripe_secret_key: str = ""
    stripe_webhook_secret: str = ""
    stripe_api_version: str = "2023-10-16"
    stripe_max_retries: int = 2

    # Scheduler trigger
    cron_secret: str = ""

    # Business Logic
    deposit_currency: str = "usd"
    request_expiry_hours: int = 48
    default_cancellation_policy: str = "moderate"

    log_level: str = "INFO"

    class Config:
        env_file = ".env"
        env_file_encoding = "utf-8"


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()
