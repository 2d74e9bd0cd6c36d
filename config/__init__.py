"""
Configuration Package for KumaSync

This package contains all configuration-related modules including:
- Settings management with environment variable support
- Constants and enums used throughout the application
"""

from config.settings import (
    Settings,
    DatabaseSettings,
    SyncSettings,
    CacheSettings,
    MetricsSettings,
    LoggingSettings,
    ServerSettings,
    get_settings,
)

from config.constants import (
    SyncRunStatus,
    HeartbeatStatus,
    HealthStatus,
    TimeRange,
    SchedulerAction,
    SettingsKeys,
    CachePrefixes,
    Limits,
    HealthThresholds,
)

__all__ = [
    # Settings
    "Settings",
    "DatabaseSettings",
    "SyncSettings",
    "CacheSettings",
    "MetricsSettings",
    "LoggingSettings",
    "ServerSettings",
    "get_settings",

    # Constants
    "SyncRunStatus",
    "HeartbeatStatus",
    "HealthStatus",
    "TimeRange",
    "SchedulerAction",
    "SettingsKeys",
    "CachePrefixes",
    "Limits",
    "HealthThresholds",
]
