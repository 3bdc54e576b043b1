"""Centralized application configuration using Pydantic settings."""
from functools import lru_cache
from typing import List, Literal

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Environment-driven configuration for the booking hub."""

    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8")

    database_url: str = Field(
        default="sqlite:///./roomhub.db",
        description="SQLAlchemy database URL. Defaults to local SQLite for development.",
    )
    run_db_migrations: bool = Field(
        default=True,
        description="Whether the API should create database tables on startup.",
    )
    store_backend: Literal["sql", "memory"] = Field(
        default="sql",
        description="Entity store implementation backing the API.",
    )
    seed_sample_rooms: bool = Field(default=False, description="Seed the demo rooms into an empty memory store")
    store_timeout_seconds: float = Field(default=5.0, description="Timeout (s) for acquiring a store connection")
    storage_failure_threshold: int = Field(default=5, description="Storage failures before the breaker opens")
    storage_recovery_timeout: int = Field(default=30, description="Seconds the storage breaker stays open")

    jwt_secret: str = Field(default="super-secret", description="JWT signing secret")
    jwt_algorithm: str = Field(default="HS256", description="JWT signing algorithm")
    access_token_expire_minutes: int = Field(default=60 * 24, description="Token lifetime in minutes")
    cors_origins: List[str] = Field(default_factory=lambda: ["*"], description="Allowed CORS origins")
    default_rate_limit: str = Field(default="60/minute", description="Global rate limiting rule")
    rate_limiting_enabled: bool = Field(default=True, description="Toggle to disable SlowAPI limits (useful in tests)")

    auto_confirm: bool = Field(default=True, description="New bookings start confirmed instead of pending")
    cancellation_policy: Literal["soft", "delete"] = Field(
        default="soft",
        description="Keep cancelled bookings with status=cancelled, or delete the row.",
    )
    room_delete_policy: Literal["deactivate", "delete"] = Field(
        default="deactivate",
        description="Deactivate rooms that still have bookings, or always delete them.",
    )
    dashboard_cache_ttl: int = Field(default=15, description="TTL (s) for cached dashboard statistics")
    recent_activity_limit: int = Field(default=10, description="Default number of recent activities returned")

    log_dir: str = Field(default="logs", description="Directory for per-service audit logs")
    metrics_enabled: bool = Field(default=True, description="Expose Prometheus metrics on /metrics")
    notification_buffer_size: int = Field(
        default=100,
        description="Frames buffered per notification client before it is dropped",
    )


@lru_cache
def get_settings() -> Settings:
    """Return a cached instance of the Settings object."""

    return Settings()


def reset_settings_cache() -> None:
    """Clear the cached Settings instance (useful for tests)."""

    get_settings.cache_clear()
