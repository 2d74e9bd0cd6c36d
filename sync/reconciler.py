"""
Reconciler: merges fetched payloads into stored state.

Two separate operations, picked by the sync engine:

* ``reconcile_status_page`` runs on every sync. It upserts the monitors of
  the status page and inserts any heartbeats shipped inline with it into
  the durable heartbeat table (duplicates are ignored).
* ``cache_heartbeat_list`` runs only when ``include_heartbeats`` is set.
  The heartbeat endpoint's list goes to the heartbeat cache, keyed by
  source id, and is never written to the heartbeat table.
"""

from typing import Any, Dict, List

from sqlalchemy.exc import SQLAlchemyError

from cache.heartbeat import HeartbeatCache
from config.constants import HeartbeatStatus
from database.manager import DatabaseManager
from database.models import Source
from database.repositories import HeartbeatRepository, MonitorRepository
from exceptions.database import PersistenceError
from sync.models import ReconcileCounts
from sync.payloads import HeartbeatPayload, StatusPagePayload
from utils.helpers import TimeHelper
from utils.logger import get_logger


logger = get_logger(__name__)


class Reconciler:
    """Writes fetched status page data for one source."""

    def __init__(
        self,
        db_manager: DatabaseManager,
        monitors: MonitorRepository,
        heartbeats: HeartbeatRepository,
        heartbeat_cache: HeartbeatCache,
    ):
        self.db = db_manager
        self.monitors = monitors
        self.heartbeats = heartbeats
        self.heartbeat_cache = heartbeat_cache

    async def reconcile_status_page(self, source: Source, payload: StatusPagePayload) -> ReconcileCounts:
        """
        Upsert monitors and insert inline heartbeats of a status page.

        Every monitor entry counts toward ``monitors_updated`` whether it
        was inserted or updated. ``heartbeats_fetched`` is the number of
        inline heartbeat entries received.

        Raises:
            PersistenceError: The write failed; nothing was committed
        """
        entries = payload.monitors()

        # Later entries win when a monitor appears in several groups
        monitor_rows: Dict[int, Dict[str, Any]] = {}
        for entry in entries:
            monitor_rows[entry.id] = {
                "id": entry.id,
                "source_id": source.id,
                "name": entry.display_name,
                "url": entry.url,
                "type": entry.type,
                "interval": entry.interval,
            }

        heartbeat_rows, received = self._heartbeat_rows(source, payload) if payload.published else ([], 0)

        try:
            async with self.db.session() as session:
                await self.monitors.upsert_many(session, list(monitor_rows.values()))
                await self.heartbeats.insert_ignore_many(session, heartbeat_rows)
        except SQLAlchemyError as e:
            raise PersistenceError(
                f"Failed to store monitors of source {source.id}: {e}",
                operation="upsert",
                table="monitors",
                cause=e,
            )

        logger.debug(
            f"Source {source.id}: {len(entries)} monitors upserted, "
            f"{len(heartbeat_rows)}/{received} inline heartbeats stored"
        )
        return ReconcileCounts(monitors_updated=len(entries), heartbeats_fetched=received)

    def _heartbeat_rows(self, source: Source, payload: StatusPagePayload):
        rows: List[Dict[str, Any]] = []
        received = 0

        for monitor_key, beats in (payload.heartbeat_list or {}).items():
            received += len(beats)
            try:
                monitor_id = int(monitor_key)
            except ValueError:
                logger.warning(f"Source {source.id}: skipping heartbeats of non-numeric monitor id {monitor_key!r}")
                continue

            for beat in beats:
                timestamp = TimeHelper.parse_timestamp(beat.time)
                if timestamp is None:
                    logger.warning(f"Source {source.id}: skipping heartbeat with unparseable time {beat.time!r}")
                    continue

                rows.append({
                    "monitor_id": monitor_id,
                    "source_id": source.id,
                    "timestamp": timestamp,
                    "status": int(HeartbeatStatus.coerce(beat.status)),
                    "ping": beat.ping,
                    "msg": beat.msg,
                    "important": beat.important,
                    "duration": beat.duration,
                    "created_at": TimeHelper.utc_now(),
                })

        return rows, received

    async def cache_heartbeat_list(self, source: Source, payload: HeartbeatPayload) -> int:
        """
        Cache the heartbeat endpoint's list for a source.

        Returns:
            Number of monitors present in the heartbeat map
        """
        await self.heartbeat_cache.set_heartbeats(source.id, payload.to_cache())
        return len(payload.heartbeat_list)
