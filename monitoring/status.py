"""
Monitor status views served by the admin API.

Monitors are enriched from the cached heartbeat list of their source. On a
cache miss the list is fetched from the remote heartbeat endpoint and
cached (read-through).
"""

from datetime import datetime
from typing import Any, Callable, Dict, List, Optional

from cache.heartbeat import HeartbeatCache, HeartbeatList
from config.constants import HeartbeatStatus, Limits
from database.models import Monitor, Source
from database.repositories import HeartbeatRepository, MonitorRepository, SourceRepository
from exceptions.base import KumaSyncException
from utils.helpers import TimeHelper
from utils.logger import get_logger


logger = get_logger(__name__)


def summarize_heartbeats(heartbeats: List[Dict[str, Any]]) -> Dict[str, Any]:
    """
    Status fields of a monitor from its heartbeats (oldest first).

    Uptime is the share of ``up`` heartbeats in percent; the remote list
    only spans recent history so the 30 day figure equals the 24 hour one.
    """
    summary: Dict[str, Any] = {
        "status": None,
        "last_heartbeat": None,
        "avg_ping": None,
        "uptime_24h": None,
        "uptime_30d": None,
        "recent_heartbeats": heartbeats[-Limits.RECENT_HEARTBEATS:],
    }
    if not heartbeats:
        return summary

    latest = heartbeats[-1]
    summary["status"] = latest.get("status")
    summary["last_heartbeat"] = latest.get("time")

    pings = [
        beat["ping"] for beat in heartbeats
        if isinstance(beat.get("ping"), (int, float)) and not isinstance(beat.get("ping"), bool)
    ]
    if pings:
        summary["avg_ping"] = sum(pings) / len(pings)

    up = sum(1 for beat in heartbeats if beat.get("status") == HeartbeatStatus.UP)
    summary["uptime_24h"] = up / len(heartbeats) * 100
    summary["uptime_30d"] = summary["uptime_24h"]
    return summary


class MonitorStatusService:
    """
    Read side of monitors and heartbeats.

    ``client`` is the status page client used for read-through fetches.
    """

    def __init__(
        self,
        sources: SourceRepository,
        monitors: MonitorRepository,
        heartbeats: HeartbeatRepository,
        heartbeat_cache: HeartbeatCache,
        client,
        timeout_ms: int = 30000,
        clock: Callable[[], datetime] = TimeHelper.utc_now,
    ):
        self.sources = sources
        self.monitors = monitors
        self.heartbeats = heartbeats
        self.heartbeat_cache = heartbeat_cache
        self.client = client
        self.timeout_ms = timeout_ms
        self.clock = clock

    async def _heartbeat_list(self, source: Source) -> HeartbeatList:
        cached = await self.heartbeat_cache.get_heartbeats(source.id)
        if cached is not None:
            return cached

        payload = await self.client.fetch_heartbeats(source, timeout_ms=self.timeout_ms)
        heartbeat_list = payload.to_cache()
        await self.heartbeat_cache.set_heartbeats(source.id, heartbeat_list)
        return heartbeat_list

    async def list_monitors(self, source_id: Optional[int] = None) -> List[Dict[str, Any]]:
        """Monitors with their latest status, average ping and uptime."""
        rows = await self.monitors.list_with_source(source_id)

        lists: Dict[int, HeartbeatList] = {}
        for monitor, _ in rows:
            if monitor.source_id in lists:
                continue
            lists[monitor.source_id] = await self._heartbeat_list_or_empty(monitor)

        enriched = []
        for monitor, source_name in rows:
            beats = lists[monitor.source_id].get(str(monitor.id), [])
            enriched.append(dict(
                monitor.to_dict(),
                source_name=source_name,
                **summarize_heartbeats(beats),
            ))
        return enriched

    async def _heartbeat_list_or_empty(self, monitor: Monitor) -> HeartbeatList:
        source = await self.sources.get(monitor.source_id)
        if source is None:
            return {}

        try:
            return await self._heartbeat_list(source)
        except KumaSyncException as e:
            logger.warning(f"Heartbeats of source {source.id} unavailable: {e}")
            return {}

    async def get_cached_heartbeats(self, monitor_id: int, source_id: int) -> List[Dict[str, Any]]:
        """
        Heartbeats of one monitor from the cached list of its source.

        Raises:
            NotFoundError: Unknown source
            RemoteException: The list was not cached and could not be fetched
        """
        source = await self.sources.get_or_raise(source_id)
        heartbeat_list = await self._heartbeat_list(source)
        return heartbeat_list.get(str(monitor_id), [])

    async def get_monitor_heartbeats(
        self,
        monitor_id: int,
        hours: int = Limits.HEARTBEAT_QUERY_HOURS,
        source_id: Optional[int] = None,
    ) -> List[Dict[str, Any]]:
        """Stored heartbeats of the last ``hours`` hours, newest first."""
        since = TimeHelper.window_start(self.clock(), hours * 3600)
        rows = await self.heartbeats.list_for_monitor(
            monitor_id,
            since,
            source_id=source_id,
            limit=Limits.HEARTBEAT_QUERY_MAX,
        )
        return [row.to_dict() for row in rows]
