"""
Sync strategies.

A strategy decides, per source and per scheduled tick, whether the source
is synced at all. The set of strategies is closed: each ``StrategyKind``
maps to one frozen ``SyncStrategy`` carrying its parameters, and a single
``should_sync`` function holds every decision rule.

    full            always
    heartbeat-only  always
    incremental     first run, or monitors updated since the last run
    smart           first run, last run older than 5 minutes, or changes
    delta           first run, or remote monitors differ from stored ones
"""

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Callable, Dict, List, Optional

from database.models import Source
from database.repositories import MonitorRepository, SyncHistoryRepository
from exceptions.base import KumaSyncException
from sync.client import StatusPageClient
from sync.models import SyncOptions
from utils.helpers import TimeHelper
from utils.logger import get_logger


logger = get_logger(__name__)


class StrategyKind(str, Enum):
    FULL = "full"
    INCREMENTAL = "incremental"
    SMART = "smart"
    HEARTBEAT_ONLY = "heartbeat-only"
    DELTA = "delta"


@dataclass(frozen=True)
class SyncStrategy:
    kind: StrategyKind
    description: str
    incremental: bool = True
    min_interval_seconds: Optional[int] = None

    @classmethod
    def of(cls, kind) -> "SyncStrategy":
        return STRATEGIES[StrategyKind(kind)]

    def sync_options(self, base: Optional[SyncOptions] = None) -> SyncOptions:
        """Options of a run started by this strategy."""
        base = base or SyncOptions()
        return base.model_copy(update={"incremental": self.incremental, "include_heartbeats": True})


STRATEGIES: Dict[StrategyKind, SyncStrategy] = {
    StrategyKind.FULL: SyncStrategy(
        StrategyKind.FULL, "Always perform full sync of all monitors and heartbeats", incremental=False
    ),
    StrategyKind.INCREMENTAL: SyncStrategy(
        StrategyKind.INCREMENTAL, "Only sync if changes are detected since last sync"
    ),
    StrategyKind.SMART: SyncStrategy(
        StrategyKind.SMART, "Sync after 5 minutes of silence or when changes are detected",
        min_interval_seconds=300,
    ),
    StrategyKind.HEARTBEAT_ONLY: SyncStrategy(
        StrategyKind.HEARTBEAT_ONLY, "Only sync heartbeat data, skip monitor metadata"
    ),
    StrategyKind.DELTA: SyncStrategy(
        StrategyKind.DELTA, "Detect and sync only changed monitors"
    ),
}


@dataclass
class StrategyContext:
    """Everything the decision rules need to look at."""

    history: SyncHistoryRepository
    monitors: MonitorRepository
    client: StatusPageClient
    clock: Callable[[], datetime] = TimeHelper.utc_now
    timeout_ms: int = 30000


@dataclass
class DeltaResult:
    added: int = 0
    updated: int = 0
    removed: int = 0
    changed_ids: List[int] = field(default_factory=list)

    @property
    def has_changes(self) -> bool:
        return bool(self.added or self.updated or self.removed)


async def compute_delta(source: Source, ctx: StrategyContext) -> DeltaResult:
    """
    Compare the remote monitors of a source with the stored ones.

    Raises:
        RemoteError, SyncTimeoutError: The status page could not be fetched
    """
    stored = await ctx.monitors.get_snapshot(source.id)
    payload = await ctx.client.fetch_monitors(source, timeout_ms=ctx.timeout_ms)

    remote = {}
    for entry in payload.monitors():
        remote[entry.id] = {
            "name": entry.display_name,
            "url": entry.url,
            "type": entry.type,
            "interval": entry.interval,
        }

    added = [monitor_id for monitor_id in remote if monitor_id not in stored]
    updated = [
        monitor_id for monitor_id, fields in remote.items()
        if monitor_id in stored and stored[monitor_id] != fields
    ]
    removed = [monitor_id for monitor_id in stored if monitor_id not in remote]

    return DeltaResult(
        added=len(added),
        updated=len(updated),
        removed=len(removed),
        changed_ids=added + updated + removed,
    )


async def should_sync(strategy: SyncStrategy, source: Source, ctx: StrategyContext) -> bool:
    """Whether ``source`` is synced on this tick under ``strategy``."""
    if strategy.kind in (StrategyKind.FULL, StrategyKind.HEARTBEAT_ONLY):
        return True

    last_sync = await ctx.history.last_started_at(source.id)
    if last_sync is None:
        return True

    if strategy.kind == StrategyKind.SMART:
        elapsed = (ctx.clock() - last_sync).total_seconds()
        if elapsed > strategy.min_interval_seconds:
            return True
        return await ctx.monitors.changed_since(source.id, last_sync)

    if strategy.kind == StrategyKind.INCREMENTAL:
        return await ctx.monitors.changed_since(source.id, last_sync)

    # Delta: a failed remote fetch syncs anyway so the run records the failure
    try:
        delta = await compute_delta(source, ctx)
    except KumaSyncException as e:
        logger.warning(f"Delta detection for source {source.id} failed, syncing anyway: {e}")
        return True

    if delta.has_changes:
        logger.debug(
            f"Source {source.id} delta: +{delta.added} ~{delta.updated} -{delta.removed}"
        )
    return delta.has_changes
