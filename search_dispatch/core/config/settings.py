#!/usr/bin/env python3
"""
Centralized Configuration Module using Pydantic Settings

This module provides type-safe, environment-based configuration for the
search dispatch layer: backend registry, concurrency and queue limits,
rate limiting, retry defaults, health monitoring, load balancing and logging.

Architectural Decision: Pydantic Settings for type safety and validation
- Environment variable loading with .env support
- Type validation at startup (fail fast on misconfiguration)
- Backend registry parsed from a JSON environment variable (BACKENDS)
- Easy testing with override mechanisms

Author: System Architect
Date: 2025-12-14
"""

from typing import Literal

from pydantic import BaseModel, Field, field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from search_dispatch.core.config.constants import (
    DEFAULT_MAX_SOURCES,
    HEALTH_DEGRADED_CONSECUTIVE_ERRORS,
    HEALTH_FAILOVER_ERROR_RATE,
    HEALTH_MIN_SAMPLES,
    HEALTH_UNHEALTHY_CONSECUTIVE_ERRORS,
    MAX_CONCURRENT_REQUESTS,
    MAX_QUEUE_SIZE,
    MAX_RETRIES,
    QUEUE_REQUEST_TIMEOUT,
    RESULT_CACHE_MAX_SIZE,
    RESULT_CACHE_TTL,
    RETRY_BACKOFF_MULTIPLIER,
    RETRY_BASE_DELAY,
    RETRY_MAX_DELAY,
    SEARCH_DEADLINE,
    LoadBalancingStrategy,
)


class BackendSettings(BaseModel):
    """
    Configuration of one search backend.

    STAGE-0.1: Backend registry entry

    Only ``priority``, ``rate_limit``, ``timeout`` and ``retry_attempts`` are
    required by the dispatch core; the remaining fields are optional
    overrides of the global defaults.
    """

    enabled: bool = True
    priority: int = 1
    rate_limit: int = Field(default=60, ge=1, description="Requests per window")
    timeout: float = Field(default=10.0, gt=0, description="Per-attempt timeout in seconds")
    retry_attempts: int = Field(default=MAX_RETRIES, ge=0, description="Retries after the first attempt")

    window_seconds: float | None = Field(default=None, gt=0)
    burst_allowance: int | None = Field(default=None, ge=0)
    retry_base_delay: float | None = Field(default=None, ge=0)
    retry_max_delay: float | None = Field(default=None, ge=0)
    backoff_multiplier: float | None = Field(default=None, ge=1.0)
    retry_preset: str | None = None

    # Client construction
    kind: str = Field(default="http", description="Client implementation (http, fake)")
    base_url: str | None = None
    options: dict = Field(default_factory=dict, description="Client specific options")


class ConcurrencySettings(BaseSettings):
    """
    Global concurrency and queue limits.

    STAGE-Q: Concurrency queue configuration
    """

    MAX_CONCURRENT_REQUESTS: int = Field(default=MAX_CONCURRENT_REQUESTS, ge=1)
    MAX_QUEUE_SIZE: int = Field(default=MAX_QUEUE_SIZE, ge=0)
    QUEUE_REQUEST_TIMEOUT: float = Field(default=QUEUE_REQUEST_TIMEOUT, gt=0)
    TASK_EXECUTION_TIMEOUT: float | None = Field(default=None, gt=0)
    SEARCH_DEADLINE: float = Field(default=SEARCH_DEADLINE, gt=0)

    model_config = SettingsConfigDict(env_prefix="", case_sensitive=True)


class RateLimitSettings(BaseSettings):
    """
    Per-backend rate limiting defaults.

    STAGE-RL: Rate limiting thresholds

    Architectural Decision: in-process fixed window with adaptive multiplier
    - Loosens for reliable backends, tightens for flaky ones
    - Burst allowance absorbs short spikes
    """

    RATE_LIMIT_WINDOW_SECONDS: float = Field(default=60.0, gt=0)
    RATE_LIMIT_BURST_ALLOWANCE: int = Field(default=10, ge=0)
    RATE_LIMIT_ADAPTIVE_ENABLED: bool = Field(default=True)
    RATE_LIMIT_ADAPTIVE_THRESHOLD: float = Field(default=0.8, ge=0.0, le=1.0)

    model_config = SettingsConfigDict(env_prefix="", case_sensitive=True)


class RetrySettings(BaseSettings):
    """
    Retry defaults applied when a backend has no override.

    STAGE-R: Retry configuration
    """

    RETRY_MAX_ATTEMPTS: int = Field(default=MAX_RETRIES, ge=0)
    RETRY_BASE_DELAY: float = Field(default=RETRY_BASE_DELAY, ge=0)
    RETRY_MAX_DELAY: float = Field(default=RETRY_MAX_DELAY, ge=0)
    RETRY_BACKOFF_MULTIPLIER: float = Field(default=RETRY_BACKOFF_MULTIPLIER, ge=1.0)
    RETRY_JITTER: bool = Field(default=False)

    model_config = SettingsConfigDict(env_prefix="", case_sensitive=True)


class HealthSettings(BaseSettings):
    """
    Backend health classification thresholds.

    STAGE-HM: Health monitor configuration
    """

    HEALTH_CHECK_INTERVAL: float = Field(default=30.0, gt=0, description="Probe interval in seconds")
    HEALTH_DEGRADED_THRESHOLD: int = Field(default=HEALTH_DEGRADED_CONSECUTIVE_ERRORS, ge=1)
    HEALTH_UNHEALTHY_THRESHOLD: int = Field(default=HEALTH_UNHEALTHY_CONSECUTIVE_ERRORS, ge=1)
    HEALTH_FAILOVER_THRESHOLD: float = Field(default=HEALTH_FAILOVER_ERROR_RATE, ge=0.0, le=1.0)
    HEALTH_MIN_SAMPLES: int = Field(default=HEALTH_MIN_SAMPLES, ge=1)
    HEALTH_WINDOW_SECONDS: float = Field(default=60.0, gt=0)

    model_config = SettingsConfigDict(env_prefix="", case_sensitive=True)


class LoadBalancingSettings(BaseSettings):
    """
    Backend selection configuration.

    STAGE-LB: Load balancer configuration
    """

    LB_STRATEGY: LoadBalancingStrategy = Field(default=LoadBalancingStrategy.HEALTH_BASED)
    LB_SEED: int | None = Field(default=None, description="Seed for weighted selection")
    LB_MAX_SOURCES: int = Field(default=DEFAULT_MAX_SOURCES, ge=1)

    model_config = SettingsConfigDict(env_prefix="", case_sensitive=True)


class FallbackSettings(BaseSettings):
    """Failover to an alternate backend after retries are exhausted."""

    FALLBACK_ENABLED: bool = Field(default=True)
    FALLBACK_DELAY: float = Field(default=0.0, ge=0)

    model_config = SettingsConfigDict(env_prefix="", case_sensitive=True)


class CacheSettings(BaseSettings):
    """
    In-process result cache configuration.

    STAGE-2: Cache TTL configuration
    """

    CACHE_ENABLED: bool = Field(default=False)
    CACHE_TTL: int = Field(default=RESULT_CACHE_TTL, ge=1, description="Result cache TTL (seconds)")
    CACHE_MAX_SIZE: int = Field(default=RESULT_CACHE_MAX_SIZE, ge=1)

    model_config = SettingsConfigDict(env_prefix="", case_sensitive=True)


class LoggingSettings(BaseSettings):
    """
    Logging configuration for structured logging.

    STAGE-L: Logging configuration

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


class ApplicationSettings(BaseSettings):
    """
    General application settings.

    STAGE-0: Application initialization
    """

    ENVIRONMENT: Literal["development", "staging", "production"] = Field(
        default="development",
        description="Application environment"
    )
    APP_NAME: str = Field(default="Search Dispatch Service", description="Application name")
    APP_VERSION: str = Field(default="1.0.0", description="Application version")
    API_HOST: str = Field(default="0.0.0.0", description="API host")
    API_PORT: int = Field(default=8000, description="API port")

    model_config = SettingsConfigDict(env_prefix="", case_sensitive=True)


class Settings(BaseSettings):
    """
    Main settings class that aggregates all configuration sections.

    STAGE-0: Centralized configuration initialization

    Usage:
        from search_dispatch.core.config.settings import get_settings

        settings = get_settings()
        limit = settings.concurrency.MAX_CONCURRENT_REQUESTS
        backends = settings.BACKENDS

    Environment example:
        BACKENDS='{"wikipedia": {"priority": 10, "rate_limit": 100, "timeout": 5}}'
        LB_STRATEGY=health-based
        MAX_CONCURRENT_REQUESTS=10
    """

    # Backend registry
    BACKENDS: dict[str, BackendSettings] = Field(default_factory=dict)

    # Concurrency
    MAX_CONCURRENT_REQUESTS: int = Field(default=MAX_CONCURRENT_REQUESTS, ge=1)
    MAX_QUEUE_SIZE: int = Field(default=MAX_QUEUE_SIZE, ge=0)
    QUEUE_REQUEST_TIMEOUT: float = Field(default=QUEUE_REQUEST_TIMEOUT, gt=0)
    TASK_EXECUTION_TIMEOUT: float | None = Field(default=None, gt=0)
    SEARCH_DEADLINE: float = Field(default=SEARCH_DEADLINE, gt=0)

    # Rate limiting
    RATE_LIMIT_WINDOW_SECONDS: float = Field(default=60.0, gt=0)
    RATE_LIMIT_BURST_ALLOWANCE: int = Field(default=10, ge=0)
    RATE_LIMIT_ADAPTIVE_ENABLED: bool = Field(default=True)
    RATE_LIMIT_ADAPTIVE_THRESHOLD: float = Field(default=0.8, ge=0.0, le=1.0)

    # Retry
    RETRY_MAX_ATTEMPTS: int = Field(default=MAX_RETRIES, ge=0)
    RETRY_BASE_DELAY: float = Field(default=RETRY_BASE_DELAY, ge=0)
    RETRY_MAX_DELAY: float = Field(default=RETRY_MAX_DELAY, ge=0)
    RETRY_BACKOFF_MULTIPLIER: float = Field(default=RETRY_BACKOFF_MULTIPLIER, ge=1.0)
    RETRY_JITTER: bool = Field(default=False)

    # Health monitoring
    HEALTH_CHECK_INTERVAL: float = Field(default=30.0, gt=0)
    HEALTH_DEGRADED_THRESHOLD: int = Field(default=HEALTH_DEGRADED_CONSECUTIVE_ERRORS, ge=1)
    HEALTH_UNHEALTHY_THRESHOLD: int = Field(default=HEALTH_UNHEALTHY_CONSECUTIVE_ERRORS, ge=1)
    HEALTH_FAILOVER_THRESHOLD: float = Field(default=HEALTH_FAILOVER_ERROR_RATE, ge=0.0, le=1.0)
    HEALTH_MIN_SAMPLES: int = Field(default=HEALTH_MIN_SAMPLES, ge=1)
    HEALTH_WINDOW_SECONDS: float = Field(default=60.0, gt=0)

    # Load balancing
    LB_STRATEGY: LoadBalancingStrategy = Field(default=LoadBalancingStrategy.HEALTH_BASED)
    LB_SEED: int | None = Field(default=None)
    LB_MAX_SOURCES: int = Field(default=DEFAULT_MAX_SOURCES, ge=1)

    # Fallback
    FALLBACK_ENABLED: bool = Field(default=True)
    FALLBACK_DELAY: float = Field(default=0.0, ge=0)

    # Result cache
    CACHE_ENABLED: bool = Field(default=False)
    CACHE_TTL: int = Field(default=RESULT_CACHE_TTL, ge=1)
    CACHE_MAX_SIZE: int = Field(default=RESULT_CACHE_MAX_SIZE, ge=1)

    # Logging
    LOG_LEVEL: str = Field(default="INFO", description="Logging level")
    LOG_FORMAT: Literal["json", "console"] = Field(default="json", description="Log output format")

    # Application
    ENVIRONMENT: Literal["development", "staging", "production"] = Field(default="development")
    APP_NAME: str = Field(default="Search Dispatch Service")
    APP_VERSION: str = Field(default="1.0.0")
    API_HOST: str = Field(default="0.0.0.0")
    API_PORT: int = Field(default=8000)
    API_BASE_PATH: str = Field(default="/api/v1", description="Prefix for all API routes")

    @field_validator("LOG_LEVEL")
    @classmethod
    def validate_log_level(cls, v):
        """Validate log level."""
        valid_levels = ["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"]
        if v.upper() not in valid_levels:
            raise ValueError(f"LOG_LEVEL must be one of {valid_levels}")
        return v.upper()

    @model_validator(mode="after")
    def validate_health_thresholds(self):
        """Unhealthy must not trigger before Degraded."""
        if self.HEALTH_UNHEALTHY_THRESHOLD < self.HEALTH_DEGRADED_THRESHOLD:
            raise ValueError(
                "HEALTH_UNHEALTHY_THRESHOLD must be >= HEALTH_DEGRADED_THRESHOLD"
            )
        return self

    # Nested configuration views
    @property
    def concurrency(self) -> ConcurrencySettings:
        """Get concurrency settings."""
        return ConcurrencySettings(
            MAX_CONCURRENT_REQUESTS=self.MAX_CONCURRENT_REQUESTS,
            MAX_QUEUE_SIZE=self.MAX_QUEUE_SIZE,
            QUEUE_REQUEST_TIMEOUT=self.QUEUE_REQUEST_TIMEOUT,
            TASK_EXECUTION_TIMEOUT=self.TASK_EXECUTION_TIMEOUT,
            SEARCH_DEADLINE=self.SEARCH_DEADLINE,
        )

    @property
    def rate_limit(self) -> RateLimitSettings:
        """Get rate limit settings."""
        return RateLimitSettings(
            RATE_LIMIT_WINDOW_SECONDS=self.RATE_LIMIT_WINDOW_SECONDS,
            RATE_LIMIT_BURST_ALLOWANCE=self.RATE_LIMIT_BURST_ALLOWANCE,
            RATE_LIMIT_ADAPTIVE_ENABLED=self.RATE_LIMIT_ADAPTIVE_ENABLED,
            RATE_LIMIT_ADAPTIVE_THRESHOLD=self.RATE_LIMIT_ADAPTIVE_THRESHOLD,
        )

    @property
    def retry(self) -> RetrySettings:
        """Get retry settings."""
        return RetrySettings(
            RETRY_MAX_ATTEMPTS=self.RETRY_MAX_ATTEMPTS,
            RETRY_BASE_DELAY=self.RETRY_BASE_DELAY,
            RETRY_MAX_DELAY=self.RETRY_MAX_DELAY,
            RETRY_BACKOFF_MULTIPLIER=self.RETRY_BACKOFF_MULTIPLIER,
            RETRY_JITTER=self.RETRY_JITTER,
        )

    @property
    def health(self) -> HealthSettings:
        """Get health monitor settings."""
        return HealthSettings(
            HEALTH_CHECK_INTERVAL=self.HEALTH_CHECK_INTERVAL,
            HEALTH_DEGRADED_THRESHOLD=self.HEALTH_DEGRADED_THRESHOLD,
            HEALTH_UNHEALTHY_THRESHOLD=self.HEALTH_UNHEALTHY_THRESHOLD,
            HEALTH_FAILOVER_THRESHOLD=self.HEALTH_FAILOVER_THRESHOLD,
            HEALTH_MIN_SAMPLES=self.HEALTH_MIN_SAMPLES,
            HEALTH_WINDOW_SECONDS=self.HEALTH_WINDOW_SECONDS,
        )

    @property
    def load_balancing(self) -> LoadBalancingSettings:
        """Get load balancing settings."""
        return LoadBalancingSettings(
            LB_STRATEGY=self.LB_STRATEGY,
            LB_SEED=self.LB_SEED,
            LB_MAX_SOURCES=self.LB_MAX_SOURCES,
        )

    @property
    def fallback(self) -> FallbackSettings:
        """Get fallback settings."""
        return FallbackSettings(
            FALLBACK_ENABLED=self.FALLBACK_ENABLED,
            FALLBACK_DELAY=self.FALLBACK_DELAY,
        )

    @property
    def cache(self) -> CacheSettings:
        """Get cache settings."""
        return CacheSettings(
            CACHE_ENABLED=self.CACHE_ENABLED,
            CACHE_TTL=self.CACHE_TTL,
            CACHE_MAX_SIZE=self.CACHE_MAX_SIZE,
        )

    @property
    def logging(self) -> LoggingSettings:
        """Get logging settings."""
        return LoggingSettings(LOG_LEVEL=self.LOG_LEVEL, LOG_FORMAT=self.LOG_FORMAT)

    @property
    def app(self) -> ApplicationSettings:
        """Get application settings."""
        return ApplicationSettings(
            ENVIRONMENT=self.ENVIRONMENT,
            APP_NAME=self.APP_NAME,
            APP_VERSION=self.APP_VERSION,
            API_HOST=self.API_HOST,
            API_PORT=self.API_PORT,
        )

    def enabled_backends(self) -> dict[str, BackendSettings]:
        """Backends with ``enabled`` set, in declaration order."""
        return {name: cfg for name, cfg in self.BACKENDS.items() if cfg.enabled}

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=True,
        extra="ignore"  # Ignore extra environment variables
    )


# Global settings instance (lazily created)
_settings: Settings | None = None


def get_settings() -> Settings:
    """
    Get the process-wide settings instance.

    STAGE-0.3: Settings initialization

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
