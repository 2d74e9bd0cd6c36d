"""
Database Package for KumaSync

Provides database connectivity, models, and repository patterns
for data persistence using SQLAlchemy with async support.
"""

from database.manager import DatabaseManager

from database.models import (
    Base,
    Source,
    Monitor,
    Heartbeat,
    SyncHistory,
    SyncMetric,
    CacheEntry,
    Setting,
)

from database.repositories import (
    BaseRepository,
    SourceRepository,
    MonitorRepository,
    HeartbeatRepository,
    SyncHistoryRepository,
    SyncMetricRepository,
    CacheEntryRepository,
    SettingsRepository,
    MetricsAggregate,
)

__all__ = [
    # Connection
    "DatabaseManager",

    # Models
    "Base",
    "Source",
    "Monitor",
    "Heartbeat",
    "SyncHistory",
    "SyncMetric",
    "CacheEntry",
    "Setting",

    # Repositories
    "BaseRepository",
    "SourceRepository",
    "MonitorRepository",
    "HeartbeatRepository",
    "SyncHistoryRepository",
    "SyncMetricRepository",
    "CacheEntryRepository",
    "SettingsRepository",
    "MetricsAggregate",
]
