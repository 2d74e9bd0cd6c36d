"""
============================================================================
KUMASYNC - MONITORING PACKAGE
============================================================================
Runtime observability of the sync subsystem:
    • SyncMetricsCollector  — per-run samples, aggregates, health verdict
    • MonitorStatusService  — monitors enriched with heartbeat status
    • MaintenanceScheduler  — periodic housekeeping jobs

monitoring/
├── __init__.py          ← this file
├── metrics.py           ← SyncMetricsCollector + percentile/health helpers
├── status.py            ← MonitorStatusService
└── jobs.py              ← MaintenanceScheduler + built-in jobs
============================================================================
"""

from monitoring.metrics import SyncMetricsCollector, evaluate_health, percentile, performance_summary
from monitoring.status import MonitorStatusService, summarize_heartbeats
from monitoring.jobs import MaintenanceScheduler, ScheduledJob

__all__ = [
    # Metrics
    "SyncMetricsCollector",
    "evaluate_health",
    "percentile",
    "performance_summary",

    # Status views
    "MonitorStatusService",
    "summarize_heartbeats",

    # Housekeeping
    "MaintenanceScheduler",
    "ScheduledJob",
]
