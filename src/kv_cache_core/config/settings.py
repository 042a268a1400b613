"""Application settings using pydantic-settings."""

from __future__ import annotations

from pathlib import Path
from typing import Literal

from pydantic import Field, SecretStr, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from kv_cache_core.constants import DEFAULT_SCAN_COUNT


class Settings(BaseSettings):
    """Central configuration for kv-cache-facade."""

    model_config = SettingsConfigDict(env_prefix="KVC_", env_file=".env")

    # --- Store ---
    store_backend: Literal["redis", "disk", "db"] = Field(
        default="redis",
        description="Backing store: 'redis' for production, 'disk' or 'db' for zero-infra",
    )
    native_conditional_update: bool = Field(
        default=True,
        description="Use the store's atomic update-if-exists primitive when it has one",
    )
    keys_scan_count: int = Field(
        default=DEFAULT_SCAN_COUNT,
        gt=0,
        description="Batch size hint for key enumeration (Redis SCAN COUNT)",
    )

    # --- Redis ---
    redis_url: str = Field(
        default="redis://localhost:6379/0",
        description="Redis connection URL (rediss:// for TLS)",
    )
    redis_password: SecretStr | None = Field(
        default=None,
        description="Redis password, if not embedded in the URL",
    )
    redis_max_connections: int = Field(
        default=25,
        gt=0,
        description="Maximum pooled connections",
    )
    redis_pool_timeout_seconds: float = Field(
        default=0.5,
        description="Maximum wait for a free pooled connection before failing",
    )
    redis_socket_timeout_seconds: float = Field(
        default=2.0,
        gt=0,
        description="Command timeout in seconds",
    )
    redis_connect_timeout_seconds: float = Field(
        default=2.0,
        gt=0,
        description="TCP connect timeout in seconds",
    )
    redis_socket_keepalive: bool = Field(
        default=True,
        description="Enable TCP keepalive on pooled connections",
    )
    redis_health_check_interval_seconds: int = Field(
        default=30,
        ge=0,
        description="Ping idle connections older than this before reuse (0 disables)",
    )
    redis_protocol: int = Field(
        default=3,
        ge=2,
        le=3,
        description="RESP protocol version",
    )
    redis_retry_attempts: int = Field(
        default=1,
        ge=0,
        description="Reconnect attempts on connection errors before failing a command",
    )
    redis_ssl_ca_certs: Path | None = Field(
        default=None,
        description="PEM bundle used to verify the Redis server certificate",
    )

    # --- Local backends ---
    disk_cache_dir: Path = Field(
        default=Path("./.cache/kv_cache"),
        description="Directory for the diskcache-backed store",
    )
    database_url: str = Field(
        default="sqlite+aiosqlite:///./kv_cache.db",
        description="SQLAlchemy async URL for the database-backed store",
    )
    database_pool_timeout_seconds: float = Field(
        default=5.0,
        gt=0,
        description="Maximum wait for a pooled database connection",
    )

    # --- Observability ---
    log_level: str = Field(
        default="INFO",
        description="Root log level",
    )
    log_format: Literal["console", "json"] = Field(
        default="console",
        description="Log renderer",
    )
    otel_exporter: Literal["none", "console", "otlp"] = Field(
        default="none",
        description="OpenTelemetry span exporter",
    )
    otel_endpoint: str = Field(
        default="http://localhost:4317",
        description="OTLP collector endpoint",
    )
    otel_service_name: str = Field(
        default="kv-cache-facade",
        description="service.name resource attribute",
    )

    @model_validator(mode="after")
    def validate_pool_config(self) -> Settings:
        """Reject pool settings that would block callers indefinitely."""
        if self.redis_pool_timeout_seconds <= 0:
            msg = "redis_pool_timeout_seconds must be positive"
            raise ValueError(msg)
        return self

    @model_validator(mode="after")
    def validate_tls_config(self) -> Settings:
        """Require a rediss:// URL when a CA bundle is configured."""
        if self.redis_ssl_ca_certs is not None and not self.redis_url.startswith("rediss://"):
            msg = "redis_ssl_ca_certs requires a rediss:// redis_url"
            raise ValueError(msg)
        return self
