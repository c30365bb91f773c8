"""Configuration settings for the TaskLynk core."""

from functools import lru_cache

from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """Core settings loaded from environment (``TASKLYNK_`` prefix)."""

    # Actor recorded on sweeps and timeouts. Required - there is no safe default.
    system_actor_id: int

    # Payments
    payment_timeout_seconds: float = 120.0
    payment_poll_interval_seconds: float = 2.0

    # Persistence
    database_path: str | None = None  # None -> in-memory storage

    # M-Pesa (Daraja)
    mpesa_environment: str = "sandbox"
    mpesa_consumer_key: str | None = None
    mpesa_consumer_secret: str | None = None
    mpesa_shortcode: str | None = None
    mpesa_passkey: str | None = None
    mpesa_callback_url: str | None = None
    mpesa_webhook_secret: str | None = None

    # Paystack
    paystack_secret_key: str | None = None
    paystack_callback_url: str | None = None

    # Gateway HTTP
    gateway_timeout_seconds: float = 30.0

    class Config:
        env_prefix = "TASKLYNK_"
        env_file = ".env"
        env_file_encoding = "utf-8"
        extra = "ignore"


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()
