"""Courier settings - environment-driven configuration for the dispatch pipeline.

All tunables of the reliability pipeline live here: inline and
out-of-band retry budgets, backoff shape, dead-letter persistence,
dedupe window, token-bucket throughput and per-destination circuit
breaking.  Values are validated once at startup by pydantic.

Environment variables use the ``COURIER_`` prefix and ``__`` for nested
groups::

    COURIER_LOG_LEVEL=DEBUG
    COURIER_DISPATCH__RETRY_MAX=5
    COURIER_DISPATCH__DLQ_PATH=/var/lib/courier/dlq.db
    COURIER_DEDUPE__TTL_MS=60000
    COURIER_RATE_LIMIT__CAPACITY=20
    COURIER_CIRCUIT_BREAKER__ENABLED=true

Examples:
    >>> from courier.core.settings import get_settings
    >>> settings = get_settings()
    >>> settings.dispatch.retry_base_ms
    700

Tags:
    settings, configuration, pydantic, environment, courier
"""

from __future__ import annotations

from functools import lru_cache
from pathlib import Path
from typing import Any

from pydantic import BaseModel, Field, ValidationError, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from courier.core.errors import ConfigError

_LOG_LEVELS = ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL")


class DispatchSettings(BaseModel):
    """Retry, backoff and dead-letter options of the dispatch service.

    Fields
    ──────
    inline_retries      : Extra attempts made inside one ``send`` call
    retry_max           : Out-of-band requeue budget per message
    retry_base_ms       : First backoff delay
    retry_max_ms        : Backoff cap (before jitter)
    retry_jitter_ms     : Upper bound (exclusive) of the random jitter
    dlq_enabled         : Persist exhausted messages
    dlq_path            : SQLite file for dead letters (default under data_dir)
    consume_timeout_ms  : Consume loop poll timeout
    """

    inline_retries: int = Field(default=0, ge=0)
    retry_max: int = Field(default=3, ge=0)
    retry_base_ms: int = Field(default=700, ge=100)
    retry_max_ms: int = Field(default=25_000, ge=100)
    retry_jitter_ms: int = Field(default=250, ge=0)
    dlq_enabled: bool = True
    dlq_path: Path | None = None
    consume_timeout_ms: int = Field(default=2_000, ge=1)


class DedupeSettings(BaseModel):
    """Outbound dedupe window."""

    ttl_ms: int = Field(default=25_000, ge=1_000)
    max_size: int = Field(default=20_000, ge=500)


class RateLimitSettings(BaseModel):
    """Token bucket shared by every outbound send."""

    capacity: int = Field(default=30, ge=1)
    refill_rate: float = Field(default=1.0, gt=0)
    refill_interval_ms: int = Field(default=1_000, ge=1)


class CircuitBreakerSettings(BaseModel):
    """Per-destination circuit breaker; disabled unless switched on."""

    enabled: bool = False
    failure_threshold: int = Field(default=5, ge=1)
    reset_timeout_ms: int = Field(default=30_000, ge=0)
    half_open_max: int = Field(default=1, ge=1)


class CourierSettings(BaseSettings):
    """Top-level courier settings.

    Nested groups can be overridden individually through the environment
    (``COURIER_DISPATCH__INLINE_RETRIES=2``) or passed as keyword
    arguments / dicts when constructing the settings in code.
    """

    model_config = SettingsConfigDict(
        env_prefix="COURIER_",
        env_nested_delimiter="__",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # ── Observability ────────────────────────────────────────────
    log_level: str = "INFO"
    json_logs: bool | None = None

    # ── Storage ──────────────────────────────────────────────────
    data_dir: Path = Field(
        default_factory=lambda: Path.home() / ".courier",
        description="Persistent data directory (dead letters)",
    )

    # ── Pipeline ─────────────────────────────────────────────────
    dispatch: DispatchSettings = Field(default_factory=DispatchSettings)
    dedupe: DedupeSettings = Field(default_factory=DedupeSettings)
    rate_limit: RateLimitSettings = Field(default_factory=RateLimitSettings)
    circuit_breaker: CircuitBreakerSettings = Field(default_factory=CircuitBreakerSettings)

    @field_validator("log_level")
    @classmethod
    def validate_log_level(cls, v: str) -> str:
        """Normalize to an upper-case stdlib level name."""
        level = v.strip().upper()
        if level not in _LOG_LEVELS:
            raise ValueError(f"Unknown log level: {v!r}")
        return level

    @property
    def dlq_path(self) -> Path:
        """Resolved dead-letter database path."""
        if self.dispatch.dlq_path is not None:
            return self.dispatch.dlq_path
        return self.data_dir / "dlq" / "dlq.db"


def load_settings(**overrides: Any) -> CourierSettings:
    """Build settings from the environment plus explicit overrides.

    Raises:
        ConfigError: If any value fails validation.
    """
    try:
        return CourierSettings(**overrides)
    except ValidationError as e:
        raise ConfigError(f"Invalid courier settings: {e.error_count()} error(s)", cause=e) from e


@lru_cache(maxsize=1)
def get_settings() -> CourierSettings:
    """Process-wide settings, loaded once."""
    return load_settings()


def clear_settings_cache() -> None:
    """Forget cached settings (tests, reload)."""
    get_settings.cache_clear()


__all__ = [
    "CircuitBreakerSettings",
    "CourierSettings",
    "DedupeSettings",
    "DispatchSettings",
    "RateLimitSettings",
    "clear_settings_cache",
    "get_settings",
    "load_settings",
]
