"""
Sync Package for KumaSync

Fetches remote status pages, reconciles them into the local store and
schedules recurring syncs across all sources.
"""

from sync.client import StatusPageClient
from sync.models import ReconcileCounts, SyncOptions, SyncProgress, SyncResult
from sync.payloads import HeartbeatPayload, RemoteHeartbeat, RemoteMonitor, StatusPagePayload
from sync.retry import with_retry
from sync.reconciler import Reconciler
from sync.engine import SyncEngine
from sync.strategies import StrategyContext, StrategyKind, SyncStrategy, compute_delta, should_sync
from sync.scheduler import SchedulerConfig, SchedulerConfigUpdate, SyncScheduler

__all__ = [
    # Remote
    "StatusPageClient",
    "StatusPagePayload",
    "HeartbeatPayload",
    "RemoteMonitor",
    "RemoteHeartbeat",

    # Engine
    "SyncEngine",
    "SyncOptions",
    "SyncResult",
    "SyncProgress",
    "ReconcileCounts",
    "Reconciler",
    "with_retry",

    # Strategies
    "StrategyKind",
    "SyncStrategy",
    "StrategyContext",
    "should_sync",
    "compute_delta",

    # Scheduler
    "SyncScheduler",
    "SchedulerConfig",
    "SchedulerConfigUpdate",
]
