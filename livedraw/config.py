"""Centralized configuration for livedraw.

Uses Pydantic BaseSettings with environment variable loading and validation.
All LD_* environment variables are validated at import time.
"""

from __future__ import annotations

from datetime import time

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = {"env_prefix": "LD_", "case_sensitive": False, "extra": "ignore"}

    # Server
    host: str = Field(default="0.0.0.0", description="Server bind host")  # noqa: S104
    port: int = Field(default=4545, ge=1, le=65535, description="Server bind port")

    # Storage
    db_path: str = Field(default="livedraw.db", description="SQLite database path")

    # Auth
    auth_mode: str = Field(
        default="google",
        description="Chat token verification: google, jwt, or permissive (development only)",
    )
    google_client_id: str | None = Field(default=None, description="Google OAuth client ID")
    jwt_secret: str | None = Field(default=None, description="HS256 secret for auth_mode=jwt")
    jwt_audience: str | None = Field(default=None, description="Expected audience for auth_mode=jwt")
    api_keys: str = Field(
        default="", description="Comma-separated API keys for producer/admin routes (empty = dev mode)"
    )

    # Fan-out
    result_queue_size: int = Field(
        default=50, ge=1, description="Outbound queue capacity per ticker subscriber"
    )
    chat_queue_size: int = Field(
        default=256, ge=4, description="Outbound queue capacity per chat subscriber"
    )
    heartbeat_interval: float = Field(
        default=15.0, gt=0, description="Seconds of silence before an SSE heartbeat"
    )
    ws_heartbeat_interval: float = Field(
        default=30.0, gt=0, description="Seconds of silence before a WebSocket heartbeat"
    )
    broadcast_log_interval: float = Field(
        default=10.0, ge=0, description="Minimum seconds between fan-out summary log lines"
    )

    # History archiving
    history_timezone: str = Field(default="Asia/Yangon", description="Zone for the archive window")
    history_window_start: time = Field(
        default=time(16, 30), description="Local start of the evening archive window"
    )
    history_window_minutes: int = Field(
        default=5, ge=1, le=60, description="Length of the archive window in minutes"
    )

    # Logging
    log_format: str = Field(default="text", description="Log format: text or json")
    log_level: str = Field(default="INFO", description="Python log level")

    # CORS
    cors_origins: str = Field(default="*", description="Comma-separated CORS origins")

    # Rate limiting
    rate_limit: str = Field(
        default="600/minute",
        description="Default rate limit (e.g., 100/minute). Set to 'none' to disable.",
    )

    @field_validator("auth_mode")
    @classmethod
    def validate_auth_mode(cls, v: str) -> str:
        v = v.lower()
        if v not in ("google", "jwt", "permissive"):
            msg = f"LD_AUTH_MODE must be 'google', 'jwt' or 'permissive', got '{v}'"
            raise ValueError(msg)
        return v

    @field_validator("log_format")
    @classmethod
    def validate_log_format(cls, v: str) -> str:
        v = v.lower()
        if v not in ("text", "json"):
            msg = f"LD_LOG_FORMAT must be 'text' or 'json', got '{v}'"
            raise ValueError(msg)
        return v

    @field_validator("log_level")
    @classmethod
    def validate_log_level(cls, v: str) -> str:
        import logging

        v = v.upper()
        if not hasattr(logging, v):
            msg = f"LD_LOG_LEVEL must be a valid Python log level, got '{v}'"
            raise ValueError(msg)
        return v

    @property
    def cors_origin_list(self) -> list[str]:
        """Return parsed list of CORS origins."""
        return [o.strip() for o in self.cors_origins.split(",") if o.strip()]


# Singleton, validated at import time.
settings = Settings()
