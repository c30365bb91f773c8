"""Configuration settings for the TaskLynk API service."""

from functools import lru_cache

from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """API settings loaded from environment.

    Marketplace settings (payments, gateways, storage) are read separately by
    ``tasklynk.config`` under the ``TASKLYNK_`` prefix.
    """

    # JWT (actor tokens are issued by the account service)
    jwt_secret_key: str
    jwt_algorithm: str = "HS256"
    jwt_expire_minutes: int = 60 * 24 * 7  # 7 days

    # App
    debug: bool = False
    log_level: str = "INFO"

    # Rate limiting
    rate_limit_enabled: bool = True
    default_rate_limit: str = "120/minute"

    # Payments
    auto_poll_payments: bool = True  # background gateway polling after initiation

    # CORS: Allowed origins for cross-origin requests
    cors_origins: list[str] = [
        "http://localhost:3000",
        "http://127.0.0.1:3000",
    ]

    class Config:
        env_file = ".env"
        env_file_encoding = "utf-8"
        extra = "ignore"  # Ignore extra env vars not in model


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()
