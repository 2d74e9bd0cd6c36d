"""
Constants Module for KumaSync

Contains constant values and enumerations used throughout the application.
"""

from __future__ import annotations

from enum import Enum, IntEnum
from typing import Dict, Final


class SyncRunStatus(str, Enum):
    """
    Lifecycle of a single sync run.

    pending -> fetching-monitors -> updating-store -> fetching-heartbeats
    -> completed | failed
    """

    PENDING = "pending"
    FETCHING_MONITORS = "fetching-monitors"
    UPDATING_STORE = "updating-store"
    FETCHING_HEARTBEATS = "fetching-heartbeats"
    COMPLETED = "completed"
    FAILED = "failed"

    @property
    def is_terminal(self) -> bool:
        """Check whether the run has finished."""
        return self in (SyncRunStatus.COMPLETED, SyncRunStatus.FAILED)

    @property
    def progress(self) -> int:
        """Progress percentage published with this status."""
        return PROGRESS_BY_STATUS[self]


PROGRESS_BY_STATUS: Final[Dict[SyncRunStatus, int]] = {
    SyncRunStatus.PENDING: 0,
    SyncRunStatus.FETCHING_MONITORS: 25,
    SyncRunStatus.UPDATING_STORE: 50,
    SyncRunStatus.FETCHING_HEARTBEATS: 75,
    SyncRunStatus.COMPLETED: 100,
    SyncRunStatus.FAILED: 100,
}


class HeartbeatStatus(IntEnum):
    """Heartbeat status codes as published by the remote status page."""

    UNKNOWN = -1
    DOWN = 0
    UP = 1
    PENDING = 2
    MAINTENANCE = 3

    @classmethod
    def coerce(cls, value: object) -> "HeartbeatStatus":
        """Map any remote value onto a known status, UNKNOWN otherwise."""
        try:
            return cls(int(value))  # type: ignore[arg-type]
        except (TypeError, ValueError):
            return cls.UNKNOWN


class HealthStatus(str, Enum):
    """Overall health of the sync subsystem."""

    HEALTHY = "healthy"
    DEGRADED = "degraded"
    UNHEALTHY = "unhealthy"


class TimeRange(str, Enum):
    """Aggregation windows accepted by the metrics collector."""

    LAST_24H = "24h"
    LAST_7D = "7d"
    LAST_30D = "30d"

    @property
    def seconds(self) -> int:
        """Window length in seconds."""
        return {
            TimeRange.LAST_24H: 24 * 3600,
            TimeRange.LAST_7D: 7 * 24 * 3600,
            TimeRange.LAST_30D: 30 * 24 * 3600,
        }[self]


class SchedulerAction(str, Enum):
    """Actions accepted by the scheduler control route."""

    START = "start"
    STOP = "stop"
    STATUS = "status"
    UPDATE_CONFIG = "update-config"


class SettingsKeys:
    """Keys used in the settings key-value table."""

    SCHEDULER_CONFIG: Final[str] = "scheduler_config"
    AUTO_SYNC_ENABLED: Final[str] = "autoSyncEnabled"
    AUTO_SYNC_INTERVAL: Final[str] = "autoSyncInterval"
    LAST_SYNC_TIME: Final[str] = "last_sync_time"


class CachePrefixes:
    """Key prefixes of the persistent cache."""

    HEARTBEAT: Final[str] = "heartbeat"


class Limits:
    """Bounds applied by the read views."""

    SYNC_HISTORY_DEFAULT: Final[int] = 50
    SYNC_HISTORY_MAX: Final[int] = 500
    RECENT_HEARTBEATS: Final[int] = 24
    HEARTBEAT_QUERY_MAX: Final[int] = 1000
    HEARTBEAT_QUERY_HOURS: Final[int] = 24
    SOURCE_NAME_MAX: Final[int] = 255
    SLUG_MAX: Final[int] = 255


class HealthThresholds:
    """Thresholds of the sync health check."""

    MIN_SUCCESS_RATE: Final[float] = 0.9
    CRITICAL_SUCCESS_RATE: Final[float] = 0.5
    MAX_AVERAGE_DURATION_MS: Final[float] = 30000
    MAX_SILENCE_SECONDS: Final[int] = 3600
