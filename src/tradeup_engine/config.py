"""Configuration management service with Pydantic Settings.

This module provides centralized configuration management for the
trade-up engine, loading and validating environment variables at startup.
"""

from __future__ import annotations

import logging
from decimal import Decimal
from functools import lru_cache
from typing import Literal

from pydantic import Field, SecretStr, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

_ENV_FILE = ".env"
_ENV_FILE_ENCODING = "utf-8"


class DatabaseSettings(BaseSettings):
    """Database connection settings."""

    model_config = SettingsConfigDict(env_prefix="", extra="ignore")

    url: str = Field(
        alias="DATABASE_URL",
        description="PostgreSQL (or SQLite for local runs) connection string",
    )
    pool_size: int = Field(
        default=5,
        alias="DATABASE_POOL_SIZE",
        ge=1,
        le=100,
        description="Connection pool size",
    )

    @field_validator("url")
    @classmethod
    def validate_url(cls, v: str) -> str:
        """Validate database URL format."""
        if not v.startswith(("postgresql://", "postgresql+asyncpg://", "sqlite+aiosqlite://")):
            raise ValueError("DATABASE_URL must be a PostgreSQL or sqlite+aiosqlite connection string")
        return v


class RedisSettings(BaseSettings):
    """Redis connection settings."""

    model_config = SettingsConfigDict(env_prefix="", extra="ignore")

    url: str | None = Field(
        default=None,
        alias="REDIS_URL",
        description="Redis connection string; policy rule caching is disabled when unset",
    )

    @field_validator("url")
    @classmethod
    def validate_url(cls, v: str | None) -> str | None:
        """Validate Redis URL format."""
        if v is None:
            return v
        if not v.startswith(("redis://", "rediss://")):
            raise ValueError("REDIS_URL must start with redis:// or rediss://")
        return v


class PolicySettings(BaseSettings):
    """Policy guard settings."""

    model_config = SettingsConfigDict(env_prefix="POLICY_", extra="ignore")

    cache_ttl_seconds: int = Field(
        default=300,
        alias="POLICY_CACHE_TTL_SECONDS",
        ge=1,
        le=86_400,
        description="Redis TTL for cached policy rule lookups",
    )


class TaskProviderSettings(BaseSettings):
    """Human-task provider settings."""

    model_config = SettingsConfigDict(env_prefix="", extra="ignore")

    provider: Literal["rentahuman_stub", "rentahuman_api"] = Field(
        default="rentahuman_stub",
        alias="TASK_PROVIDER",
        description="Which task provider implementation to use",
    )
    base_url: str | None = Field(
        default=None,
        alias="RENTAHUMAN_BASE_URL",
        description="Base URL of the RentAHuman API",
    )
    api_key: SecretStr | None = Field(
        default=None,
        alias="RENTAHUMAN_API_KEY",
        description="Bearer token for the RentAHuman API",
    )
    timeout_seconds: float = Field(
        default=5.0,
        alias="TASK_PROVIDER_TIMEOUT_SECONDS",
        gt=0.0,
        le=120.0,
        description="Upper bound on a single provider call",
    )
    webhook_token: SecretStr = Field(
        default=SecretStr("dev-webhook-token"),
        alias="PROVIDER_WEBHOOK_TOKEN",
        description="Shared secret expected on provider status callbacks",
    )

    @field_validator("base_url")
    @classmethod
    def validate_base_url(cls, v: str | None) -> str | None:
        if v is None:
            return v
        if not v.startswith(("http://", "https://")):
            raise ValueError("RENTAHUMAN_BASE_URL must be an HTTP(S) endpoint")
        return v.rstrip("/")


class KpiSettings(BaseSettings):
    """KPI aggregation settings."""

    model_config = SettingsConfigDict(env_prefix="KPI_", extra="ignore")

    default_seed_cost_usd: Decimal = Field(
        default=Decimal("0.9"),
        alias="KPI_DEFAULT_SEED_COST_USD",
        description="Seed cost used for value multiple when callers do not pass one",
    )

    @field_validator("default_seed_cost_usd")
    @classmethod
    def validate_default_seed_cost_usd(cls, v: Decimal) -> Decimal:
        if v <= 0:
            raise ValueError("KPI_DEFAULT_SEED_COST_USD must be > 0")
        return v


class Settings(BaseSettings):
    """Main application settings.

    Loads configuration from environment variables with support for
    .env files via python-dotenv.

    Example:
        ```python
        from tradeup_engine.config import get_settings

        settings = get_settings()
        print(settings.database.url)
        print(settings.tasks.provider)
        ```
    """

    model_config = SettingsConfigDict(
        env_file=_ENV_FILE,
        env_file_encoding=_ENV_FILE_ENCODING,
        extra="ignore",
    )

    # NOTE: Each nested BaseSettings must be given the same env_file, otherwise it
    # will only read from the process environment (and ignore `.env`).
    database: DatabaseSettings = Field(
        default_factory=lambda: DatabaseSettings(
            _env_file=_ENV_FILE,
            _env_file_encoding=_ENV_FILE_ENCODING,
        )
    )
    redis: RedisSettings = Field(
        default_factory=lambda: RedisSettings(
            _env_file=_ENV_FILE,
            _env_file_encoding=_ENV_FILE_ENCODING,
        )
    )
    policy: PolicySettings = Field(
        default_factory=lambda: PolicySettings(
            _env_file=_ENV_FILE,
            _env_file_encoding=_ENV_FILE_ENCODING,
        )
    )
    tasks: TaskProviderSettings = Field(
        default_factory=lambda: TaskProviderSettings(
            _env_file=_ENV_FILE,
            _env_file_encoding=_ENV_FILE_ENCODING,
        )
    )
    kpi: KpiSettings = Field(
        default_factory=lambda: KpiSettings(
            _env_file=_ENV_FILE,
            _env_file_encoding=_ENV_FILE_ENCODING,
        )
    )

    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"] = Field(
        default="INFO",
        alias="LOG_LEVEL",
        description="Logging level",
    )

    def get_logging_level(self) -> int:
        """Get the numeric logging level."""
        level: int = getattr(logging, self.log_level)
        return level

    def redacted_summary(self) -> dict[str, str | dict[str, str]]:
        """Get a summary of settings with secrets redacted.

        Returns:
            Dictionary of settings with sensitive values masked.
        """
        return {
            "database_url": self._redact_url(self.database.url),
            "redis_url": self._redact_url(self.redis.url) if self.redis.url else "(not set)",
            "policy": {
                "cache_ttl_seconds": str(self.policy.cache_ttl_seconds),
            },
            "tasks": {
                "provider": self.tasks.provider,
                "base_url": self.tasks.base_url or "(not set)",
                "api_key": "(set)" if self.tasks.api_key else "(not set)",
                "timeout_seconds": str(self.tasks.timeout_seconds),
                "webhook_token": "(set)",
            },
            "kpi": {
                "default_seed_cost_usd": str(self.kpi.default_seed_cost_usd),
            },
            "log_level": self.log_level,
        }

    @staticmethod
    def _redact_url(url: str) -> str:
        """Redact password from URL if present."""
        if "@" in url and "://" in url:
            protocol_end = url.index("://") + 3
            at_pos = url.index("@")
            creds_part = url[protocol_end:at_pos]
            if ":" in creds_part:
                username = creds_part.split(":")[0]
                return f"{url[:protocol_end]}{username}:***@{url[at_pos + 1 :]}"
        return url


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Get the application settings singleton.

    Returns:
        The Settings instance.

    Raises:
        ValidationError: If required environment variables are missing
            or have invalid values.
    """
    return Settings()


def clear_settings_cache() -> None:
    """Clear the settings cache.

    Useful for testing when you need to reload settings with
    different environment variables.
    """
    get_settings.cache_clear()
