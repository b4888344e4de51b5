"""Application configuration management."""

from functools import lru_cache
from typing import Literal

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from shared.constants import (
    FEED_FETCH_TIMEOUT,
    JOB_PROGRESS_TTL,
    JOB_TERMINAL_GRACE,
    SYNC_BATCH_SIZE,
    SYNC_LOG_CAPACITY,
)


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # -------------------------------------------------------------------------
    # Application Settings
    # -------------------------------------------------------------------------
    app_name: str = "stock-sync-service"
    app_env: Literal["development", "staging", "production", "test"] = "development"
    debug: bool = False
    log_level: str = "INFO"

    # -------------------------------------------------------------------------
    # API Settings
    # -------------------------------------------------------------------------
    api_host: str = "0.0.0.0"
    api_port: int = 8000
    api_workers: int = 4
    cors_origins: list[str] = Field(default_factory=lambda: ["http://localhost:3000"])

    @field_validator("cors_origins", mode="before")
    @classmethod
    def parse_cors_origins(cls, v: str | list[str]) -> list[str]:
        if isinstance(v, str):
            return [origin.strip() for origin in v.split(",")]
        return v

    # -------------------------------------------------------------------------
    # CSV Feed
    # -------------------------------------------------------------------------
    feed_url: str = ""
    feed_sku_column: str = "sku"
    feed_stock_column: str = "stock"
    feed_verify_tls: bool = True
    feed_timeout_seconds: float = FEED_FETCH_TIMEOUT

    # -------------------------------------------------------------------------
    # Schedule
    # -------------------------------------------------------------------------
    sync_enabled: bool = False
    sync_interval_minutes: int = 60

    # -------------------------------------------------------------------------
    # Reconciliation Engine
    # -------------------------------------------------------------------------
    sync_batch_size: int = Field(default=SYNC_BATCH_SIZE, ge=1)
    log_failed_runs: bool = False

    # -------------------------------------------------------------------------
    # Job State
    # -------------------------------------------------------------------------
    job_progress_ttl_seconds: int = JOB_PROGRESS_TTL
    job_terminal_grace_seconds: int = JOB_TERMINAL_GRACE
    sync_log_capacity: int = Field(default=SYNC_LOG_CAPACITY, ge=1)
    state_key_prefix: str = "stock_sync"

    # -------------------------------------------------------------------------
    # PostgreSQL Database (catalog)
    # -------------------------------------------------------------------------
    postgres_host: str = "localhost"
    postgres_port: int = 5432
    postgres_user: str = "shop"
    postgres_password: str = ""
    postgres_db: str = "shop"
    db_pool_size: int = 5
    db_max_overflow: int = 10
    db_pool_recycle: int = 1800

    @property
    def database_url(self) -> str:
        """Construct PostgreSQL connection URL."""
        return (
            f"postgresql+asyncpg://{self.postgres_user}:{self.postgres_password}"
            f"@{self.postgres_host}:{self.postgres_port}/{self.postgres_db}"
        )

    # -------------------------------------------------------------------------
    # Redis
    # -------------------------------------------------------------------------
    redis_host: str = "localhost"
    redis_port: int = 6379
    redis_password: str = ""
    redis_db: int = 0

    @property
    def redis_url(self) -> str:
        """Construct Redis connection URL."""
        if self.redis_password:
            return f"redis://:{self.redis_password}@{self.redis_host}:{self.redis_port}/{self.redis_db}"
        return f"redis://{self.redis_host}:{self.redis_port}/{self.redis_db}"

    # -------------------------------------------------------------------------
    # Celery
    # -------------------------------------------------------------------------
    celery_broker_url: str = ""
    celery_result_backend: str = ""

    @property
    def celery_broker(self) -> str:
        """Get Celery broker URL, defaulting to Redis URL."""
        return self.celery_broker_url or self.redis_url

    @property
    def celery_backend(self) -> str:
        """Get Celery result backend URL, defaulting to Redis URL."""
        return self.celery_result_backend or self.redis_url


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()
