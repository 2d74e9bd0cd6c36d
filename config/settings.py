"""
Settings Module for KumaSync

Configuration management using Pydantic Settings.
Supports environment variables, .env files, and runtime configuration.
Includes validation, type checking, and sensible defaults.
"""

from __future__ import annotations

from functools import lru_cache
from pathlib import Path
from typing import Any, Dict, Optional
from enum import Enum

from pydantic import (
    Field,
    SecretStr,
    field_validator,
    model_validator,
)
from pydantic_settings import BaseSettings, SettingsConfigDict


class Environment(str, Enum):
    """Application environment enumeration."""
    DEVELOPMENT = "development"
    STAGING = "staging"
    PRODUCTION = "production"
    TESTING = "testing"


class LogLevel(str, Enum):
    """Logging level enumeration."""
    DEBUG = "DEBUG"
    INFO = "INFO"
    WARNING = "WARNING"
    ERROR = "ERROR"
    CRITICAL = "CRITICAL"


class DatabaseType(str, Enum):
    """Supported database types."""
    POSTGRESQL = "postgresql"
    SQLITE = "sqlite"


class BaseSettingsConfig(BaseSettings):
    """Base configuration class with common settings."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
        validate_default=True
    )


class DatabaseSettings(BaseSettingsConfig):
    """
    Database Configuration Settings

    Supports PostgreSQL (production) and SQLite (development).
    Includes connection pooling and timeout configuration.
    """

    model_config = SettingsConfigDict(
        env_prefix="DB_",
        env_file=".env",
        extra="ignore"
    )

    type: DatabaseType = Field(
        default=DatabaseType.SQLITE,
        description="Database type: postgresql or sqlite"
    )

    # PostgreSQL settings
    host: str = Field(
        default="localhost",
        description="Database host address"
    )
    port: int = Field(
        default=5432,
        ge=1,
        le=65535,
        description="Database port number"
    )
    name: str = Field(
        default="kumasync",
        min_length=1,
        max_length=64,
        description="Database name"
    )
    user: str = Field(
        default="postgres",
        min_length=1,
        max_length=64,
        description="Database username"
    )
    password: SecretStr = Field(
        default=SecretStr(""),
        description="Database password"
    )

    # SQLite settings
    sqlite_path: Path = Field(
        default=Path("data/kumasync.db"),
        description="Path to SQLite database file"
    )

    # Connection pool settings
    pool_size: int = Field(
        default=10,
        ge=1,
        le=100,
        description="Connection pool size"
    )
    max_overflow: int = Field(
        default=20,
        ge=0,
        le=100,
        description="Maximum overflow connections"
    )
    pool_timeout: int = Field(
        default=30,
        ge=1,
        le=300,
        description="Pool connection timeout in seconds"
    )
    pool_recycle: int = Field(
        default=1800,
        ge=60,
        le=7200,
        description="Connection recycle time in seconds"
    )
    pool_pre_ping: bool = Field(
        default=True,
        description="Enable connection health check before use"
    )

    echo: bool = Field(
        default=False,
        description="Echo SQL queries (debug mode)"
    )

    @property
    def url(self) -> str:
        """Generate database URL based on configuration."""
        if self.type == DatabaseType.SQLITE:
            self.sqlite_path.parent.mkdir(parents=True, exist_ok=True)
            return f"sqlite+aiosqlite:///{self.sqlite_path}"

        elif self.type == DatabaseType.POSTGRESQL:
            password = self.password.get_secret_value()
            return (
                f"postgresql+asyncpg://{self.user}:{password}"
                f"@{self.host}:{self.port}/{self.name}"
            )

        raise ValueError(f"Unsupported database type: {self.type}")

    @field_validator("sqlite_path")
    @classmethod
    def validate_sqlite_path(cls, v: Path) -> Path:
        """Validate and normalize SQLite path."""
        if not v.suffix:
            v = v.with_suffix(".db")
        return v


class SyncSettings(BaseSettingsConfig):
    """
    Sync Engine and Scheduler Settings

    Defaults for the scheduler configuration that is persisted in the
    settings table on first start, plus the fixed timing knobs of the
    scheduler loop.
    """

    model_config = SettingsConfigDict(
        env_prefix="SYNC_",
        env_file=".env",
        extra="ignore"
    )

    default_interval: int = Field(
        default=300,  # 5 minutes
        ge=30,
        le=86400,
        description="Default scheduler interval in seconds"
    )
    min_interval: int = Field(
        default=30,
        ge=1,
        le=3600,
        description="Minimum allowed scheduler interval in seconds"
    )
    warmup_seconds: float = Field(
        default=10.0,
        ge=0,
        le=600,
        description="Delay before the first scheduled run"
    )
    batch_pause_seconds: float = Field(
        default=1.0,
        ge=0,
        le=60,
        description="Pause between concurrent sync batches"
    )
    concurrent_syncs: int = Field(
        default=3,
        ge=1,
        le=50,
        description="Maximum sources synced concurrently"
    )

    timeout_ms: int = Field(
        default=30000,
        ge=1000,
        le=600000,
        description="Total deadline for a single remote request"
    )
    max_retries: int = Field(
        default=3,
        ge=1,
        le=10,
        description="Attempts per sync before giving up"
    )
    retry_base_delay: float = Field(
        default=1.0,
        ge=0,
        le=60,
        description="Base delay of the exponential retry backoff in seconds"
    )

    history_retention_days: int = Field(
        default=30,
        ge=1,
        le=365,
        description="Days of sync history kept by the purge job"
    )

    user_agent: str = Field(
        default="KumaSync/1.0 (Status Page Aggregator)",
        description="User agent string for HTTP requests"
    )

    @model_validator(mode="after")
    def validate_intervals(self) -> "SyncSettings":
        """Validate interval relationships."""
        if self.default_interval < self.min_interval:
            raise ValueError("default_interval cannot be lower than min_interval")
        return self


class CacheSettings(BaseSettingsConfig):
    """
    Caching Configuration Settings

    Two-level cache: in-process memory backed by the cache_entries table.
    """

    model_config = SettingsConfigDict(
        env_prefix="CACHE_",
        env_file=".env",
        extra="ignore"
    )

    default_ttl: float = Field(
        default=300.0,  # 5 minutes
        gt=0,
        le=86400,
        description="Default cache TTL in seconds"
    )
    heartbeat_ttl: float = Field(
        default=120.0,  # 2 minutes
        gt=0,
        le=86400,
        description="Heartbeat cache TTL in seconds"
    )
    sweep_interval: int = Field(
        default=60,
        ge=1,
        le=3600,
        description="Interval of the expired entry sweep in seconds"
    )


class MetricsSettings(BaseSettingsConfig):
    """Sync metrics aggregation settings."""

    model_config = SettingsConfigDict(
        env_prefix="METRICS_",
        env_file=".env",
        extra="ignore"
    )

    cache_ttl: float = Field(
        default=60.0,
        ge=0,
        le=3600,
        description="Lifetime of cached aggregates in seconds"
    )
    retention_days: int = Field(
        default=30,
        ge=1,
        le=365,
        description="Days of metrics samples kept by the purge job"
    )
    purge_interval: int = Field(
        default=86400,
        ge=60,
        le=604800,
        description="Interval of the history and metrics purge job"
    )


class LoggingSettings(BaseSettingsConfig):
    """
    Logging Configuration Settings

    Logging configuration with support for file logging,
    rotation, and structured output.
    """

    model_config = SettingsConfigDict(
        env_prefix="LOG_",
        env_file=".env",
        extra="ignore"
    )

    level: LogLevel = Field(
        default=LogLevel.INFO,
        description="Minimum logging level"
    )

    # Console logging
    console_enabled: bool = Field(
        default=True,
        description="Enable console logging"
    )
    console_colored: bool = Field(
        default=True,
        description="Enable colored console output"
    )

    # File logging
    file_enabled: bool = Field(
        default=False,
        description="Enable file logging"
    )
    file_path: Path = Field(
        default=Path("logs/kumasync.log"),
        description="Log file path"
    )
    file_rotation: str = Field(
        default="10 MB",
        description="Log rotation size (e.g., '10 MB', '1 day')"
    )
    file_retention: str = Field(
        default="30 days",
        description="Log retention period"
    )
    file_compression: str = Field(
        default="zip",
        description="Compression format for rotated logs"
    )

    # Error logging (separate file for errors)
    error_file_enabled: bool = Field(
        default=False,
        description="Enable separate error log file"
    )
    error_file_path: Path = Field(
        default=Path("logs/errors.log"),
        description="Error log file path"
    )

    json_enabled: bool = Field(
        default=False,
        description="Serialize file log records as JSON"
    )


class ServerSettings(BaseSettingsConfig):
    """Administrative HTTP surface settings."""

    model_config = SettingsConfigDict(
        env_prefix="SERVER_",
        env_file=".env",
        extra="ignore"
    )

    enabled: bool = Field(
        default=True,
        description="Serve the administrative HTTP surface"
    )
    host: str = Field(
        default="0.0.0.0",
        description="Web server host"
    )
    port: int = Field(
        default=8080,
        ge=1,
        le=65535,
        description="Web server port"
    )
    admin_token: Optional[SecretStr] = Field(
        default=None,
        description="Bearer token required by mutating routes (unset = open)"
    )

    @field_validator("admin_token", mode="before")
    @classmethod
    def empty_token_is_none(cls, v: Any) -> Any:
        """Treat an empty token as unset."""
        if isinstance(v, str) and not v.strip():
            return None
        return v


class Settings(BaseSettingsConfig):
    """
    Main Settings Class

    Aggregates all settings sections and provides the main
    configuration interface for the application.
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore"
    )

    environment: Environment = Field(
        default=Environment.DEVELOPMENT,
        description="Application environment"
    )
    debug: bool = Field(
        default=False,
        description="Enable debug mode"
    )

    app_name: str = Field(
        default="KumaSync",
        description="Application name"
    )
    app_version: str = Field(
        default="1.0.0",
        description="Application version"
    )

    # Nested settings
    database: DatabaseSettings = Field(
        default_factory=DatabaseSettings
    )
    sync: SyncSettings = Field(
        default_factory=SyncSettings
    )
    cache: CacheSettings = Field(
        default_factory=CacheSettings
    )
    metrics: MetricsSettings = Field(
        default_factory=MetricsSettings
    )
    logging: LoggingSettings = Field(
        default_factory=LoggingSettings
    )
    server: ServerSettings = Field(
        default_factory=ServerSettings
    )

    @property
    def is_production(self) -> bool:
        """Check if running in production environment."""
        return self.environment == Environment.PRODUCTION

    @property
    def is_development(self) -> bool:
        """Check if running in development environment."""
        return self.environment == Environment.DEVELOPMENT

    @property
    def is_testing(self) -> bool:
        """Check if running in testing environment."""
        return self.environment == Environment.TESTING

    @model_validator(mode="after")
    def configure_for_environment(self) -> "Settings":
        """Apply environment-specific configuration."""
        if self.is_production:
            self.debug = False
            self.database.echo = False

        elif self.is_development and self.debug:
            if self.logging.level == LogLevel.INFO:
                self.logging.level = LogLevel.DEBUG

        return self

    def to_dict(self, *, exclude_secrets: bool = True) -> Dict[str, Any]:
        """Convert settings to dictionary."""
        data = self.model_dump(mode="json")

        if exclude_secrets:
            def remove_secrets(obj: Any) -> Any:
                if isinstance(obj, dict):
                    return {
                        k: remove_secrets(v)
                        for k, v in obj.items()
                        if "password" not in k.lower()
                        and "secret" not in k.lower()
                        and "token" not in k.lower()
                    }
                elif isinstance(obj, list):
                    return [remove_secrets(item) for item in obj]
                return obj

            data = remove_secrets(data)

        return data


@lru_cache()
def get_settings() -> Settings:
    """
    Get cached settings instance.

    Cached so a single settings instance is used throughout
    the application lifecycle.

    Returns:
        Settings: Application settings instance
    """
    return Settings()
