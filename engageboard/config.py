"""engageboard configuration — loaded from .env via pydantic-settings."""

from pathlib import Path

from pydantic import Field
from pydantic_settings import BaseSettings


class BoardSettings(BaseSettings):
    """All engageboard configuration. Reads from .env file and environment variables."""

    # --- Document paths ---
    app_id: str = Field(
        default="default-app-id",
        description="Namespace segment of every document path",
    )

    # --- Remote document store ---
    store_backend: str = Field(
        default="redis",
        description="Document store backend: redis|memory",
    )
    redis_url: str = Field(
        default="redis://localhost:6379/0",
        description="Redis URL for documents + change notifications",
    )
    redis_namespace: str = Field(default="engageboard", description="Key prefix inside Redis")
    redis_timeout_seconds: float = Field(
        default=5.0,
        description="Socket timeout for every Redis call",
    )

    # --- Identity ---
    initial_auth_token: str = Field(
        default="",
        description="Pre-issued sign-in token. Anonymous sign-in when empty.",
    )
    identity_file: Path = Field(
        default=Path.home() / ".engageboard" / "identity",
        description="Where the anonymous user id is persisted",
    )

    # --- Gate windows ---
    cooldown_hours: float = Field(default=24.0, description="Hours between two submissions")
    freshness_hours: float = Field(
        default=24.0,
        description="Hours an engagement counts toward submission eligibility",
    )

    # --- Mutations ---
    write_retries: int = Field(default=2, description="Attempts per write phase")
    retry_delay_seconds: float = Field(default=0.2)
    default_reaction: str = Field(default="👍")

    # --- Notices ---
    notice_seconds: float = Field(default=3.0, description="Lifetime of a user-visible notice")

    # --- Logging ---
    log_level: str = Field(default="INFO", description="Log level")
    log_format: str = Field(
        default="console",
        description="Log format: 'console' for dev, 'json' for production",
    )

    model_config = {"env_file": ".env", "env_file_encoding": "utf-8", "extra": "ignore"}


# Singleton — import this everywhere
settings = BoardSettings()
