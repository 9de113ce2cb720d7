#!/usr/bin/env python3
"""
Centralized Configuration Module using Pydantic Settings

This module provides type-safe, environment-based configuration for the
caching and concurrency core. All tunables (cache TTLs, lock leases, the
rebuild pool size, Redis connection parameters, logging) live here so that
every component reads them from one place.

Architectural Decision: Pydantic Settings for type safety and validation
- Environment variable loading with .env support
- Type validation at startup (fail fast on misconfiguration)
- Easy testing with override mechanisms

Units follow the operational vocabulary of the shop backend:
cache and login TTLs are configured in minutes, lock leases in seconds.
The nested section views expose helpers returning seconds so callers never
convert units themselves.
"""

from typing import Literal

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class RedisSettings(BaseSettings):
    """
    Redis configuration for the KV adapter.

    The socket timeout is deliberately small: a cache call that takes longer
    than a couple of hundred milliseconds is treated as a transient failure
    and retried once by the adapter.
    """

    REDIS_HOST: str = Field(default="localhost", description="Redis server host")
    REDIS_PORT: int = Field(default=6379, description="Redis server port")
    REDIS_DB: int = Field(default=0, description="Redis database number")
    REDIS_PASSWORD: str | None = Field(default=None, description="Redis password (if required)")
    REDIS_MAX_CONNECTIONS: int = Field(default=100, description="Maximum pooled connections")
    REDIS_SOCKET_TIMEOUT: float = Field(default=0.2, description="Per-call socket timeout in seconds")
    REDIS_SOCKET_CONNECT_TIMEOUT: float = Field(default=2.0, description="Connection timeout in seconds")
    REDIS_HEALTH_CHECK_INTERVAL: int = Field(default=30, description="Health check interval in seconds")

    model_config = SettingsConfigDict(env_prefix="", case_sensitive=True)


class CacheSettings(BaseSettings):
    """
    Cache TTLs and mutex-mode retry policy.

    TTLs are in minutes; the *_seconds properties convert them.
    """

    CACHE_SHOP_TTL: int = Field(default=30, description="Shop cache TTL (minutes)")
    CACHE_NULL_TTL: int = Field(default=2, description="Negative cache marker TTL (minutes)")
    CACHE_SHOPTYPE_TTL: int = Field(default=30, description="Shop-type list cache TTL (minutes)")
    CACHE_MUTEX_RETRY_DELAY_MS: int = Field(default=50, description="Backoff between rebuild lock attempts (ms)")
    CACHE_MUTEX_MAX_RETRIES: int = Field(default=100, description="Rebuild lock attempts before giving up")

    model_config = SettingsConfigDict(env_prefix="", case_sensitive=True)

    @property
    def shop_ttl_seconds(self) -> int:
        return self.CACHE_SHOP_TTL * 60

    @property
    def null_ttl_seconds(self) -> int:
        return self.CACHE_NULL_TTL * 60

    @property
    def shoptype_ttl_seconds(self) -> int:
        return self.CACHE_SHOPTYPE_TTL * 60

    @property
    def mutex_retry_delay_seconds(self) -> float:
        return self.CACHE_MUTEX_RETRY_DELAY_MS / 1000.0


class LockSettings(BaseSettings):
    """Distributed lock leases (seconds)."""

    LOCK_SHOP_TTL: int = Field(default=10, description="Shop rebuild lock lease (seconds)")
    LOCK_ORDER_TTL: int = Field(default=1200, description="Per-user order lock lease (seconds)")

    model_config = SettingsConfigDict(env_prefix="", case_sensitive=True)


class LoginSettings(BaseSettings):
    """Login code and session TTLs (minutes)."""

    LOGIN_CODE_TTL: int = Field(default=2, description="Verification code TTL (minutes)")
    LOGIN_USER_TTL: int = Field(default=30, description="Sliding session TTL (minutes)")

    model_config = SettingsConfigDict(env_prefix="", case_sensitive=True)

    @property
    def code_ttl_seconds(self) -> int:
        return self.LOGIN_CODE_TTL * 60

    @property
    def user_ttl_seconds(self) -> int:
        return self.LOGIN_USER_TTL * 60


class RebuildSettings(BaseSettings):
    """Background cache rebuild worker pool."""

    REBUILD_POOL_SIZE: int = Field(default=10, description="Concurrent rebuild workers")

    model_config = SettingsConfigDict(env_prefix="", case_sensitive=True)


class LoggingSettings(BaseSettings):
    """
    Logging configuration for structured logging.

    Architectural Decision: structlog for production-grade logging
    """

    LOG_LEVEL: str = Field(default="INFO", description="Logging level")
    LOG_FORMAT: Literal["json", "console"] = Field(default="json", description="Log output format")

    @field_validator("LOG_LEVEL")
    @classmethod
    def validate_log_level(cls, v):
        """Validate log level."""
        valid_levels = ["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"]
        if v.upper() not in valid_levels:
            raise ValueError(f"LOG_LEVEL must be one of {valid_levels}")
        return v.upper()

    model_config = SettingsConfigDict(env_prefix="", case_sensitive=True)


class Settings(BaseSettings):
    """
    Main settings class that aggregates all configuration sections.

    Usage:
        from shopcache.core.config.settings import get_settings

        settings = get_settings()
        ttl = settings.cache.shop_ttl_seconds
        lease = settings.lock.LOCK_ORDER_TTL
    """

    # Redis settings
    REDIS_HOST: str = Field(default="localhost", description="Redis server host")
    REDIS_PORT: int = Field(default=6379, description="Redis server port")
    REDIS_DB: int = Field(default=0, description="Redis database number")
    REDIS_PASSWORD: str | None = Field(default=None, description="Redis password (if required)")
    REDIS_MAX_CONNECTIONS: int = Field(default=100, description="Maximum pooled connections")
    REDIS_SOCKET_TIMEOUT: float = Field(default=0.2, description="Per-call socket timeout in seconds")
    REDIS_SOCKET_CONNECT_TIMEOUT: float = Field(default=2.0, description="Connection timeout in seconds")
    REDIS_HEALTH_CHECK_INTERVAL: int = Field(default=30, description="Health check interval in seconds")

    # Cache settings
    CACHE_SHOP_TTL: int = Field(default=30, gt=0, description="Shop cache TTL (minutes)")
    CACHE_NULL_TTL: int = Field(default=2, gt=0, description="Negative cache marker TTL (minutes)")
    CACHE_SHOPTYPE_TTL: int = Field(default=30, gt=0, description="Shop-type list cache TTL (minutes)")
    CACHE_MUTEX_RETRY_DELAY_MS: int = Field(default=50, gt=0, description="Backoff between rebuild lock attempts (ms)")
    CACHE_MUTEX_MAX_RETRIES: int = Field(default=100, ge=0, description="Rebuild lock attempts before giving up")

    # Lock settings
    LOCK_SHOP_TTL: int = Field(default=10, gt=0, description="Shop rebuild lock lease (seconds)")
    LOCK_ORDER_TTL: int = Field(default=1200, gt=0, description="Per-user order lock lease (seconds)")

    # Login settings
    LOGIN_CODE_TTL: int = Field(default=2, gt=0, description="Verification code TTL (minutes)")
    LOGIN_USER_TTL: int = Field(default=30, gt=0, description="Sliding session TTL (minutes)")

    # Rebuild pool
    REBUILD_POOL_SIZE: int = Field(default=10, gt=0, description="Concurrent rebuild workers")

    # Logging settings
    LOG_LEVEL: str = Field(default="INFO", description="Logging level")
    LOG_FORMAT: Literal["json", "console"] = Field(default="json", description="Log output format")

    # Application settings
    ENVIRONMENT: Literal["development", "test", "staging", "production"] = Field(
        default="development",
        description="Application environment"
    )
    APP_NAME: str = Field(default="shopcache", description="Application name")

    @field_validator("LOG_LEVEL")
    @classmethod
    def validate_log_level(cls, v):
        """Validate log level."""
        valid_levels = ["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"]
        if v.upper() not in valid_levels:
            raise ValueError(f"LOG_LEVEL must be one of {valid_levels}")
        return v.upper()

    # Nested configuration views
    @property
    def redis(self) -> RedisSettings:
        """Get Redis settings."""
        return RedisSettings(
            REDIS_HOST=self.REDIS_HOST,
            REDIS_PORT=self.REDIS_PORT,
            REDIS_DB=self.REDIS_DB,
            REDIS_PASSWORD=self.REDIS_PASSWORD,
            REDIS_MAX_CONNECTIONS=self.REDIS_MAX_CONNECTIONS,
            REDIS_SOCKET_TIMEOUT=self.REDIS_SOCKET_TIMEOUT,
            REDIS_SOCKET_CONNECT_TIMEOUT=self.REDIS_SOCKET_CONNECT_TIMEOUT,
            REDIS_HEALTH_CHECK_INTERVAL=self.REDIS_HEALTH_CHECK_INTERVAL,
        )

    @property
    def cache(self) -> CacheSettings:
        """Get cache settings."""
        return CacheSettings(
            CACHE_SHOP_TTL=self.CACHE_SHOP_TTL,
            CACHE_NULL_TTL=self.CACHE_NULL_TTL,
            CACHE_SHOPTYPE_TTL=self.CACHE_SHOPTYPE_TTL,
            CACHE_MUTEX_RETRY_DELAY_MS=self.CACHE_MUTEX_RETRY_DELAY_MS,
            CACHE_MUTEX_MAX_RETRIES=self.CACHE_MUTEX_MAX_RETRIES,
        )

    @property
    def lock(self) -> LockSettings:
        """Get lock lease settings."""
        return LockSettings(
            LOCK_SHOP_TTL=self.LOCK_SHOP_TTL,
            LOCK_ORDER_TTL=self.LOCK_ORDER_TTL,
        )

    @property
    def login(self) -> LoginSettings:
        """Get login settings."""
        return LoginSettings(
            LOGIN_CODE_TTL=self.LOGIN_CODE_TTL,
            LOGIN_USER_TTL=self.LOGIN_USER_TTL,
        )

    @property
    def rebuild(self) -> RebuildSettings:
        """Get rebuild pool settings."""
        return RebuildSettings(REBUILD_POOL_SIZE=self.REBUILD_POOL_SIZE)

    @property
    def logging(self) -> LoggingSettings:
        """Get logging settings."""
        return LoggingSettings(
            LOG_LEVEL=self.LOG_LEVEL,
            LOG_FORMAT=self.LOG_FORMAT,
        )

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=True,
        extra="ignore"  # Ignore extra environment variables
    )


# Global settings instance (singleton pattern)
_settings: Settings | None = None


def get_settings() -> Settings:
    """
    Get the global settings instance (singleton).

    Returns:
        Settings: Global settings instance
    """
    global _settings

    if _settings is None:
        _settings = Settings()

    return _settings


def reload_settings() -> Settings:
    """
    Reload settings (useful for testing).

    Returns:
        Settings: New settings instance
    """
    global _settings
    _settings = Settings()
    return _settings
