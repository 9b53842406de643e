# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Application configuration settings using Pydantic Settings.

This module provides centralized configuration management for Pulseboard.
Settings are loaded from environment variables with sensible defaults.

The Settings class is the main entry point and aggregates all subsettings.
A singleton instance is provided via get_settings() for dependency injection.

Example:
    >>> from src.core.config.settings import get_settings
    >>> settings = get_settings()
    >>> settings.metrics.fast_ttl_minutes
    20
"""

from functools import lru_cache
from typing import Literal, Self

from pydantic import Field, SecretStr, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

DEFAULT_DB_PASSWORD = "pulseboard_password"


class DatabaseSettings(BaseSettings):
    """Analytics database configuration.

    The database holds the tenant activity records (events, entities,
    form submissions, insights) read by the metric calculators, and the
    cached_dashboard_metrics table owned by the metrics cache.

    Attributes:
        user: PostgreSQL username.
        password: PostgreSQL password.
        host: Database host address.
        port: Database port number.
        database: Database name.
        explicit_url: Full connection URL overriding the components.
        pool_size: Connection pool size.
        max_overflow: Maximum overflow connections.
    """

    model_config = SettingsConfigDict(
        env_prefix="DB_",
        extra="ignore",
    )

    user: str = "pulseboard"
    password: SecretStr = SecretStr(DEFAULT_DB_PASSWORD)
    host: str = "localhost"
    port: int = 5432
    database: str = "pulseboard"
    explicit_url: str | None = Field(default=None, validation_alias="DB_URL")
    pool_size: int = 10
    max_overflow: int = 20

    @property
    def url(self) -> str:
        """Build the async database URL from components."""
        if self.explicit_url:
            return self.explicit_url
        pwd = self.password.get_secret_value()
        return f"postgresql+asyncpg://{self.user}:{pwd}@{self.host}:{self.port}/{self.database}"


class RedisSettings(BaseSettings):
    """Redis configuration for the Dramatiq message broker.

    Attributes:
        host: Redis server host.
        port: Redis server port.
        password: Redis password.
        database: Redis database number.
    """

    model_config = SettingsConfigDict(
        env_prefix="REDIS_",
        extra="ignore",
    )

    host: str = "localhost"
    port: int = 6379
    password: SecretStr | None = None
    database: int = 0

    @property
    def url(self) -> str:
        """Build the Redis connection URL."""
        if self.password is not None and self.password.get_secret_value():
            pwd = self.password.get_secret_value()
            return f"redis://:{pwd}@{self.host}:{self.port}/{self.database}"
        return f"redis://{self.host}:{self.port}/{self.database}"


class MetricsSettings(BaseSettings):
    """Dashboard metrics cache and refresh tier configuration.

    Each tier has a cadence (how often the external trigger fires), a TTL
    for the rows it writes (slightly longer than the cadence so a late tick
    leaves no gap) and a per-calculator timeout.

    Attributes:
        fast_cadence_minutes: Fast tier trigger interval.
        fast_ttl_minutes: TTL of rows written by the fast tier.
        fast_timeout_seconds: Calculator timeout for fast tier metrics.
        medium_cadence_minutes: Medium tier trigger interval.
        medium_ttl_minutes: TTL of rows written by the medium tier.
        medium_timeout_seconds: Calculator timeout for medium tier metrics.
        slow_cadence_minutes: Slow tier trigger interval.
        slow_ttl_minutes: TTL of rows written by the slow tier.
        slow_timeout_seconds: Calculator timeout for slow tier metrics.
        purge_on_slow_tier: Run the expired-row janitor before slow tier work.
        max_concurrency: Maximum tenants processed at once in a tier run.
        popular_content_top_n: Number of content items in popular content.
        feedback_min_submissions: Submissions needed before themes are shown.
        feedback_window_days: Lookback window for feedback themes.
        consistency_window_weeks: Lookback window for consistency scoring.
        history_window_days: Lookback window for aha moments and pathways.
    """

    model_config = SettingsConfigDict(
        env_prefix="METRICS_",
        extra="ignore",
    )

    fast_cadence_minutes: int = Field(default=15, gt=0)
    fast_ttl_minutes: int = Field(default=20, gt=0)
    fast_timeout_seconds: float = Field(default=5.0, gt=0)

    medium_cadence_minutes: int = Field(default=60, gt=0)
    medium_ttl_minutes: int = Field(default=70, gt=0)
    medium_timeout_seconds: float = Field(default=30.0, gt=0)

    slow_cadence_minutes: int = Field(default=360, gt=0)
    slow_ttl_minutes: int = Field(default=360, gt=0)
    slow_timeout_seconds: float = Field(default=120.0, gt=0)

    purge_on_slow_tier: bool = True
    max_concurrency: int = Field(default=5, gt=0)

    popular_content_top_n: int = 10
    feedback_min_submissions: int = 5
    feedback_window_days: int = 7
    consistency_window_weeks: int = 8
    history_window_days: int = 90

    def tier_for(self, kind: str) -> str:
        """Get the name of the tier that owns a metric kind."""
        from src.domains.metrics.kinds import tier_for

        return tier_for(kind).value

    def ttl_for(self, kind: str) -> int:
        """Get the TTL in minutes for rows of a metric kind."""
        return getattr(self, f"{self.tier_for(kind)}_ttl_minutes")

    def timeout_for(self, kind: str) -> float:
        """Get the calculator timeout in seconds for a metric kind."""
        return getattr(self, f"{self.tier_for(kind)}_timeout_seconds")


class WorkerSettings(BaseSettings):
    """Background worker configuration.

    Attributes:
        processes: Number of worker processes.
        threads: Number of threads per process.
    """

    model_config = SettingsConfigDict(
        env_prefix="WORKER_",
        extra="ignore",
    )

    processes: int = 2
    threads: int = 4


class Settings(BaseSettings):
    """Main application settings aggregating all subsettings.

    Use get_settings() to obtain a cached singleton instance.

    Attributes:
        environment: Current environment (development, staging, production).
        debug: Enable debug mode.
        log_level: Logging level.
        database: Analytics database settings.
        redis: Redis broker settings.
        metrics: Metrics cache and tier settings.
        worker: Background worker settings.
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
        case_sensitive=False,
    )

    environment: Literal["development", "staging", "production"] = "development"
    debug: bool = True
    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"] = "DEBUG"

    database: DatabaseSettings = Field(default_factory=DatabaseSettings)
    redis: RedisSettings = Field(default_factory=RedisSettings)
    metrics: MetricsSettings = Field(default_factory=MetricsSettings)
    worker: WorkerSettings = Field(default_factory=WorkerSettings)

    @model_validator(mode="after")
    def validate_production_settings(self) -> Self:
        """Validate that production settings are properly configured.

        Raises:
            ValueError: If running in production with insecure defaults.
        """
        if self.environment == "production" and not self.database.explicit_url:
            if self.database.password.get_secret_value() == DEFAULT_DB_PASSWORD:
                raise ValueError(
                    "Database password must be changed from default in production. "
                    "Set DB_PASSWORD or DB_URL environment variable."
                )
        return self

    @property
    def is_development(self) -> bool:
        """Check if running in development environment."""
        return self.environment == "development"

    @property
    def is_production(self) -> bool:
        """Check if running in production environment."""
        return self.environment == "production"


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Get cached settings instance.

    Uses lru_cache to ensure settings are only loaded once.
    Call clear_settings_cache() if you need to reload settings.

    Returns:
        Cached Settings instance.
    """
    return Settings()


def clear_settings_cache() -> None:
    """Clear the settings cache.

    Call this if you need to reload settings from environment.
    Useful for testing or dynamic configuration updates.
    """
    get_settings.cache_clear()
