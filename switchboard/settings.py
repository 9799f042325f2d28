"""Application settings using Pydantic BaseSettings."""

import re

from pydantic_settings import BaseSettings, SettingsConfigDict


def get_async_database_url(url: str) -> str:
    """Get database URL converted for an async driver."""
    # Convert postgres:// to postgresql+asyncpg:// for SQLAlchemy async
    if url.startswith("postgres://"):
        url = url.replace("postgres://", "postgresql+asyncpg://", 1)
    elif url.startswith("postgresql://") and "+asyncpg" not in url:
        url = url.replace("postgresql://", "postgresql+asyncpg://", 1)
    # asyncpg doesn't support sslmode, it uses ssl parameter
    if "sslmode=" in url:
        url = re.sub(r"[?&]sslmode=[^&]*", "", url)
        url = url.rstrip("?&")
    return url


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    # Application
    environment: str = "development"
    log_level: str = "INFO"
    api_v1_prefix: str = "/api/v1"

    # Participant this process acts for (the signed-in device user)
    local_participant_id: str = "local"

    # Database (Postgres in production, SQLite for local runs)
    database_url: str = "sqlite+aiosqlite:///./switchboard.db"

    # Redis (optional, backs the redis signal transport)
    redis_url: str = "redis://localhost:6379/0"
    redis_enabled: bool = False

    # Signaling
    signal_transport: str = "memory"  # memory, redis
    signal_topic_prefix: str = "signals"
    typing_topic_prefix: str = "typing"

    # Message transport
    message_transport_url: str | None = None
    message_transport_timeout_seconds: float = 10.0

    # Call timeouts
    call_no_answer_timeout_seconds: float = 30.0
    call_reconnect_timeout_seconds: float = 10.0
    call_history_page_size: int = 50

    # Message retry policy
    retry_base_delay_ms: int = 1000
    retry_backoff_factor: float = 2.0
    retry_max_delay_ms: int = 30000
    retry_max_attempts: int = 5
    retry_jitter_ratio: float = 0.1
    flush_interval_ms: int = 100

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )


settings = Settings()
