from pydantic import model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict
from typing import Optional

from .constants import (
    BACKFILL_CHUNK_SIZE,
    CACHE_INVALIDATION_CHANNEL,
    CHAIN_ID,
    DEFAULT_CONCURRENCY,
    DEFAULT_POLL_INTERVAL_MS,
    DEFAULT_RPC_URL,
    MAX_REORG_DEPTH,
    QUEUE_NAME,
)


class Settings(BaseSettings):
    # Database
    DB_USER: str = "analytics"
    DB_PASSWORD: str = "analytics_secret"
    DB_HOST: str = "localhost"
    DB_PORT: int = 5432
    DB_NAME: str = "chain_mirror"
    DATABASE_URL: Optional[str] = None
    DB_POOL_SIZE: int = 10

    @model_validator(mode="after")
    def assemble_db_connection(self) -> "Settings":
        if not self.DATABASE_URL:
            self.DATABASE_URL = (
                f"postgresql+psycopg2://{self.DB_USER}:{self.DB_PASSWORD}@"
                f"{self.DB_HOST}:{self.DB_PORT}/{self.DB_NAME}"
            )
        return self

    # Chain RPC
    CHAIN_RPC_URL: str = DEFAULT_RPC_URL
    CHAIN_ID: int = CHAIN_ID
    RPC_TIMEOUT: float = 30.0
    RPC_MAX_RETRIES: int = 3
    RPC_RETRY_DELAY: float = 1.0

    # Ingestion settings
    START_BLOCK: int = 0
    POLL_INTERVAL_MS: int = DEFAULT_POLL_INTERVAL_MS
    BACKFILL_CHUNK_SIZE: int = BACKFILL_CHUNK_SIZE
    MAX_REORG_DEPTH: int = MAX_REORG_DEPTH

    # Performance
    WORKER_CONCURRENCY: int = DEFAULT_CONCURRENCY
    RECEIPT_FETCH_CONCURRENCY: int = DEFAULT_CONCURRENCY

    # Job queue
    QUEUE_BACKEND: str = "redis"  # "redis" or "memory"
    QUEUE_NAME: str = QUEUE_NAME
    JOB_DEQUEUE_TIMEOUT: float = 1.0
    SHUTDOWN_DRAIN_TIMEOUT: float = 30.0

    # Error handling
    JOB_MAX_ATTEMPTS: int = 3
    JOB_RETRY_DELAY: float = 2.0

    # Redis
    REDIS_URL: str = "redis://localhost:6379/0"
    CACHE_INVALIDATION_CHANNEL: str = CACHE_INVALIDATION_CHANNEL

    # Monitoring
    LOG_LEVEL: str = "INFO"
    METRICS_LOG_INTERVAL: int = 100  # blocks between metrics log lines

    model_config = SettingsConfigDict(env_file=".env", extra="ignore")


settings = Settings()
