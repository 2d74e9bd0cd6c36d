"""
============================================================================
KUMASYNC - DATABASE REPOSITORIES
============================================================================
Repository classes wrapping every query the application issues.

Methods taking a ``session`` argument run inside the caller's transaction;
all others open their own session through the DatabaseManager.

Author: Professional Development Team
Version: 1.0.0
License: MIT
============================================================================
"""

from dataclasses import dataclass
from datetime import datetime
from typing import Any, Dict, Iterable, List, Optional, Sequence, Tuple

from sqlalchemy import case, delete, func, select
from sqlalchemy.dialects import postgresql, sqlite
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from database.manager import DatabaseManager
from database.models import (
    CacheEntry,
    Heartbeat,
    Monitor,
    Setting,
    Source,
    SyncHistory,
    SyncMetric,
)
from exceptions.database import ConflictError, NotFoundError, PersistenceError
from utils.helpers import DataHelper, TimeHelper
from utils.logger import get_logger


logger = get_logger(__name__)

# Rows per multi-value INSERT statement
UPSERT_CHUNK_SIZE = 500


# ============================================================================
# DATABASE REPOSITORY BASE CLASS
# ============================================================================

class BaseRepository:
    """
    Base repository class for database operations.
    """

    def __init__(self, db_manager: DatabaseManager):
        """
        Initialize repository.

        Args:
            db_manager: DatabaseManager instance
        """
        self.db = db_manager
        self.logger = get_logger(self.__class__.__name__)

    def _insert(self, model):
        """Dialect specific INSERT supporting ON CONFLICT clauses."""
        if self.db.dialect_name == "postgresql":
            return postgresql.insert(model)
        return sqlite.insert(model)

    async def count(self, model_class) -> int:
        """
        Count total records.

        Args:
            model_class: SQLAlchemy model class

        Returns:
            Total count
        """
        async with self.db.session() as session:
            result = await session.execute(select(func.count()).select_from(model_class))
            return result.scalar() or 0


# ============================================================================
# SOURCE REPOSITORY
# ============================================================================

class SourceRepository(BaseRepository):
    """Repository for Source operations."""

    CONFLICT_MESSAGE = "A source with this URL and slug combination already exists"

    async def list_all(self) -> List[Source]:
        """Get all sources ordered by name."""
        async with self.db.session() as session:
            result = await session.execute(select(Source).order_by(Source.name, Source.id))
            return list(result.scalars().all())

    async def get(self, source_id: int) -> Optional[Source]:
        """Get source by id."""
        async with self.db.session() as session:
            return await session.get(Source, source_id)

    async def get_or_raise(self, source_id: int) -> Source:
        """
        Get source by id.

        Raises:
            NotFoundError: No source with this id
        """
        source = await self.get(source_id)
        if source is None:
            raise NotFoundError(
                f"Source with ID {source_id} not found",
                entity_type="Source",
                entity_id=source_id,
            )
        return source

    async def create(self, name: str, url: str, slug: str) -> Source:
        """
        Create a new source.

        Raises:
            ConflictError: The (url, slug) pair is already registered
        """
        source = Source(name=name, url=url, slug=slug)
        try:
            async with self.db.session() as session:
                session.add(source)
                await session.flush()
        except IntegrityError as e:
            raise ConflictError(
                self.CONFLICT_MESSAGE,
                entity_type="Source",
                constraint="uq_source_url_slug",
                cause=e,
            )

        self.logger.info(f"Created source {source.id} ({source.url}, slug={source.slug})")
        return source

    async def update(self, source_id: int, **fields: Any) -> Source:
        """
        Update name/url/slug of a source.

        Raises:
            NotFoundError: No source with this id
            ConflictError: The new (url, slug) pair is already registered
        """
        try:
            async with self.db.session() as session:
                source = await session.get(Source, source_id)
                if source is None:
                    raise NotFoundError(
                        "Source not found",
                        entity_type="Source",
                        entity_id=source_id,
                    )

                for field in ("name", "url", "slug"):
                    if fields.get(field) is not None:
                        setattr(source, field, fields[field])
                source.updated_at = TimeHelper.utc_now()
                await session.flush()
        except IntegrityError as e:
            raise ConflictError(
                self.CONFLICT_MESSAGE,
                entity_type="Source",
                constraint="uq_source_url_slug",
                cause=e,
            )

        self.logger.info(f"Updated source {source_id}")
        return source

    async def delete(self, source_id: int) -> None:
        """
        Delete a source; monitors, heartbeats and bookkeeping rows cascade.

        Raises:
            NotFoundError: No source with this id
        """
        async with self.db.session() as session:
            result = await session.execute(delete(Source).where(Source.id == source_id))
            if result.rowcount == 0:
                raise NotFoundError(
                    "Source not found",
                    entity_type="Source",
                    entity_id=source_id,
                )

        self.logger.info(f"Deleted source {source_id}")


# ============================================================================
# MONITOR REPOSITORY
# ============================================================================

class MonitorRepository(BaseRepository):
    """Repository for Monitor operations."""

    async def upsert_many(self, session: AsyncSession, rows: Sequence[Dict[str, Any]]) -> int:
        """
        Insert monitors or overwrite name/url/type/interval of existing ones.

        Args:
            session: Session of the surrounding reconciliation
            rows: Dicts with id, source_id, name, url, type, interval

        Returns:
            Number of rows processed
        """
        if not rows:
            return 0

        now = TimeHelper.utc_now()
        for chunk in DataHelper.chunk_list(list(rows), UPSERT_CHUNK_SIZE):
            values = [dict(row, created_at=now, updated_at=now) for row in chunk]
            stmt = self._insert(Monitor).values(values)
            stmt = stmt.on_conflict_do_update(
                index_elements=[Monitor.id, Monitor.source_id],
                set_={
                    "name": stmt.excluded.name,
                    "url": stmt.excluded.url,
                    "type": stmt.excluded.type,
                    "interval": stmt.excluded.interval,
                    "updated_at": stmt.excluded.updated_at,
                },
            )
            await session.execute(stmt)

        return len(rows)

    async def list_with_source(self, source_id: Optional[int] = None) -> List[Tuple[Monitor, str]]:
        """Get monitors with their source name, optionally for one source."""
        async with self.db.session() as session:
            query = (
                select(Monitor, Source.name)
                .join(Source, Source.id == Monitor.source_id)
                .order_by(Source.name, Monitor.name, Monitor.id)
            )
            if source_id is not None:
                query = query.where(Monitor.source_id == source_id)

            result = await session.execute(query)
            return [(monitor, source_name) for monitor, source_name in result.all()]

    async def find_sources_for_monitor(self, monitor_id: int) -> List[int]:
        """Ids of sources defining a monitor with this id."""
        async with self.db.session() as session:
            result = await session.execute(
                select(Monitor.source_id).where(Monitor.id == monitor_id).order_by(Monitor.source_id)
            )
            return list(result.scalars().all())

    async def changed_since(self, source_id: int, since: datetime) -> bool:
        """Whether any monitor of the source was updated after ``since``."""
        async with self.db.session() as session:
            result = await session.execute(
                select(func.count())
                .select_from(Monitor)
                .where(Monitor.source_id == source_id, Monitor.updated_at > since)
            )
            return (result.scalar() or 0) > 0

    async def get_snapshot(self, source_id: int) -> Dict[int, Dict[str, Any]]:
        """Stored monitor fields of a source keyed by monitor id."""
        async with self.db.session() as session:
            result = await session.execute(select(Monitor).where(Monitor.source_id == source_id))
            return {
                monitor.id: {
                    "name": monitor.name,
                    "url": monitor.url,
                    "type": monitor.type,
                    "interval": monitor.interval,
                }
                for monitor in result.scalars().all()
            }


# ============================================================================
# HEARTBEAT REPOSITORY
# ============================================================================

class HeartbeatRepository(BaseRepository):
    """Repository for Heartbeat operations."""

    async def insert_ignore_many(self, session: AsyncSession, rows: Sequence[Dict[str, Any]]) -> int:
        """
        Insert heartbeats, silently skipping ones already stored.

        Returns:
            Number of rows submitted
        """
        if not rows:
            return 0

        for chunk in DataHelper.chunk_list(list(rows), UPSERT_CHUNK_SIZE):
            stmt = self._insert(Heartbeat).values(list(chunk))
            stmt = stmt.on_conflict_do_nothing(
                index_elements=[Heartbeat.monitor_id, Heartbeat.source_id, Heartbeat.timestamp]
            )
            await session.execute(stmt)

        return len(rows)

    async def list_for_monitor(
        self,
        monitor_id: int,
        since: datetime,
        source_id: Optional[int] = None,
        limit: int = 1000,
    ) -> List[Heartbeat]:
        """Heartbeats of a monitor newer than ``since``, newest first."""
        async with self.db.session() as session:
            query = (
                select(Heartbeat)
                .where(Heartbeat.monitor_id == monitor_id, Heartbeat.timestamp >= since)
                .order_by(Heartbeat.timestamp.desc())
                .limit(limit)
            )
            if source_id is not None:
                query = query.where(Heartbeat.source_id == source_id)

            result = await session.execute(query)
            return list(result.scalars().all())

    async def count_for_source(self, source_id: int) -> int:
        async with self.db.session() as session:
            result = await session.execute(
                select(func.count()).select_from(Heartbeat).where(Heartbeat.source_id == source_id)
            )
            return result.scalar() or 0


# ============================================================================
# SYNC HISTORY REPOSITORY
# ============================================================================

class SyncHistoryRepository(BaseRepository):
    """Repository for SyncHistory operations."""

    async def start_run(self, source_id: int, run_id: str, status: str, started_at: datetime) -> None:
        """Insert the row of a starting run."""
        try:
            async with self.db.session() as session:
                session.add(SyncHistory(
                    source_id=source_id,
                    run_id=run_id,
                    status=status,
                    started_at=started_at,
                ))
        except SQLAlchemyError as e:
            raise PersistenceError(f"Failed to record sync start: {e}", operation="insert", table="sync_history", cause=e)

    async def finish_run(
        self,
        run_id: str,
        status: str,
        monitors_updated: int,
        heartbeats_fetched: int,
        error_message: Optional[str],
        completed_at: datetime,
        duration_ms: int,
    ) -> None:
        """Finalize the row of a finished run."""
        try:
            async with self.db.session() as session:
                result = await session.execute(select(SyncHistory).where(SyncHistory.run_id == run_id))
                run = result.scalar_one_or_none()
                if run is None:
                    raise PersistenceError(f"Sync run {run_id} was never recorded", operation="update", table="sync_history")

                run.status = status
                run.monitors_updated = monitors_updated
                run.heartbeats_fetched = heartbeats_fetched
                run.error_message = error_message
                run.completed_at = completed_at
                run.duration_ms = duration_ms
        except SQLAlchemyError as e:
            raise PersistenceError(f"Failed to record sync result: {e}", operation="update", table="sync_history", cause=e)

    async def list_runs(self, source_id: Optional[int] = None, limit: int = 50) -> List[Dict[str, Any]]:
        """Sync runs joined with their source name, newest first."""
        async with self.db.session() as session:
            query = (
                select(SyncHistory, Source.name)
                .outerjoin(Source, Source.id == SyncHistory.source_id)
                .order_by(SyncHistory.started_at.desc(), SyncHistory.id.desc())
                .limit(limit)
            )
            if source_id is not None:
                query = query.where(SyncHistory.source_id == source_id)

            result = await session.execute(query)
            return [
                dict(run.to_dict(), source_name=source_name)
                for run, source_name in result.all()
            ]

    async def last_started_at(self, source_id: int) -> Optional[datetime]:
        """Start time of the last completed run of a source."""
        async with self.db.session() as session:
            result = await session.execute(
                select(func.max(SyncHistory.started_at))
                .where(SyncHistory.source_id == source_id, SyncHistory.status == "completed")
            )
            return result.scalar()

    async def purge_older_than(self, cutoff: datetime) -> int:
        async with self.db.session() as session:
            result = await session.execute(delete(SyncHistory).where(SyncHistory.started_at < cutoff))
            return result.rowcount or 0


# ============================================================================
# SYNC METRICS REPOSITORY
# ============================================================================

@dataclass
class MetricsAggregate:
    """Aggregated metrics over a window."""

    total: int
    successful: int
    failed: int
    average_duration_ms: float
    last_sync: Optional[datetime]
    last_success: Optional[datetime]


class SyncMetricRepository(BaseRepository):
    """Repository for SyncMetric operations."""

    async def add(
        self,
        source_id: int,
        run_id: str,
        duration_ms: int,
        success: bool,
        monitors_updated: int,
        heartbeats_fetched: int,
        error_message: Optional[str],
        timestamp: datetime,
    ) -> None:
        try:
            async with self.db.session() as session:
                session.add(SyncMetric(
                    source_id=source_id,
                    run_id=run_id,
                    duration_ms=duration_ms,
                    success=success,
                    monitors_updated=monitors_updated,
                    heartbeats_fetched=heartbeats_fetched,
                    error_message=error_message,
                    timestamp=timestamp,
                ))
        except SQLAlchemyError as e:
            raise PersistenceError(f"Failed to record sync metrics: {e}", operation="insert", table="sync_metrics", cause=e)

    async def aggregate(self, since: datetime, source_id: Optional[int] = None) -> MetricsAggregate:
        """Counts, average duration and last timestamps since ``since``."""
        async with self.db.session() as session:
            query = select(
                func.count(SyncMetric.id),
                func.sum(case((SyncMetric.success.is_(True), 1), else_=0)),
                func.avg(SyncMetric.duration_ms),
                func.max(SyncMetric.timestamp),
                func.max(case((SyncMetric.success.is_(True), SyncMetric.timestamp), else_=None)),
            ).where(SyncMetric.timestamp >= since)
            if source_id is not None:
                query = query.where(SyncMetric.source_id == source_id)

            total, successful, average, last_sync, last_success = (await session.execute(query)).one()

        total = total or 0
        successful = int(successful or 0)
        return MetricsAggregate(
            total=total,
            successful=successful,
            failed=total - successful,
            average_duration_ms=float(average or 0),
            last_sync=TimeHelper.parse_timestamp(last_sync),
            last_success=TimeHelper.parse_timestamp(last_success),
        )

    async def successful_durations(self, since: datetime, source_id: Optional[int] = None) -> List[int]:
        """Durations of successful runs since ``since``, ascending."""
        async with self.db.session() as session:
            query = (
                select(SyncMetric.duration_ms)
                .where(SyncMetric.timestamp >= since, SyncMetric.success.is_(True))
                .order_by(SyncMetric.duration_ms.asc())
            )
            if source_id is not None:
                query = query.where(SyncMetric.source_id == source_id)

            result = await session.execute(query)
            return list(result.scalars().all())

    async def error_breakdown(self, since: datetime) -> List[Dict[str, Any]]:
        """Failed runs grouped by error message, most frequent first."""
        async with self.db.session() as session:
            count = func.count(SyncMetric.id).label("count")
            result = await session.execute(
                select(SyncMetric.error_message, count)
                .where(SyncMetric.timestamp >= since, SyncMetric.success.is_(False))
                .group_by(SyncMetric.error_message)
                .order_by(count.desc())
            )
            return [
                {"error": error or "Unknown error", "count": n}
                for error, n in result.all()
            ]

    async def distinct_sources(self, since: datetime) -> int:
        async with self.db.session() as session:
            result = await session.execute(
                select(func.count(func.distinct(SyncMetric.source_id))).where(SyncMetric.timestamp >= since)
            )
            return result.scalar() or 0

    async def purge_older_than(self, cutoff: datetime) -> int:
        async with self.db.session() as session:
            result = await session.execute(delete(SyncMetric).where(SyncMetric.timestamp < cutoff))
            return result.rowcount or 0


# ============================================================================
# CACHE ENTRY REPOSITORY
# ============================================================================

class CacheEntryRepository(BaseRepository):
    """Repository for the durable cache layer."""

    @staticmethod
    def _prefix_pattern(prefix: str) -> str:
        escaped = prefix.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")
        return f"{escaped}:%"

    async def upsert(self, key: str, data: str, timestamp: float, ttl: float) -> None:
        async with self.db.session() as session:
            stmt = self._insert(CacheEntry).values(
                key=key,
                data=data,
                timestamp=timestamp,
                ttl=ttl,
                created_at=TimeHelper.utc_now(),
            )
            stmt = stmt.on_conflict_do_update(
                index_elements=[CacheEntry.key],
                set_={
                    "data": stmt.excluded.data,
                    "timestamp": stmt.excluded.timestamp,
                    "ttl": stmt.excluded.ttl,
                },
            )
            await session.execute(stmt)

    async def get(self, key: str) -> Optional[CacheEntry]:
        async with self.db.session() as session:
            return await session.get(CacheEntry, key)

    async def delete(self, key: str) -> None:
        async with self.db.session() as session:
            await session.execute(delete(CacheEntry).where(CacheEntry.key == key))

    async def delete_all(self, prefix: Optional[str] = None) -> int:
        """Delete every entry, or every entry under ``prefix``."""
        async with self.db.session() as session:
            stmt = delete(CacheEntry)
            if prefix:
                stmt = stmt.where(CacheEntry.key.like(self._prefix_pattern(prefix), escape="\\"))
            result = await session.execute(stmt)
            return result.rowcount or 0

    async def keys(self, prefix: Optional[str] = None) -> List[str]:
        async with self.db.session() as session:
            query = select(CacheEntry.key).order_by(CacheEntry.key)
            if prefix:
                query = query.where(CacheEntry.key.like(self._prefix_pattern(prefix), escape="\\"))
            result = await session.execute(query)
            return list(result.scalars().all())

    async def delete_expired(self, now: float) -> int:
        async with self.db.session() as session:
            result = await session.execute(
                delete(CacheEntry).where(CacheEntry.timestamp + CacheEntry.ttl < now)
            )
            return result.rowcount or 0


# ============================================================================
# SETTINGS REPOSITORY
# ============================================================================

class SettingsRepository(BaseRepository):
    """Repository for the settings key-value store."""

    async def get(self, key: str) -> Optional[str]:
        async with self.db.session() as session:
            setting = await session.get(Setting, key)
            return setting.value if setting is not None else None

    async def get_many(self, keys: Iterable[str]) -> Dict[str, Optional[str]]:
        keys = list(keys)
        async with self.db.session() as session:
            result = await session.execute(select(Setting).where(Setting.key.in_(keys)))
            found = {setting.key: setting.value for setting in result.scalars().all()}
        return {key: found.get(key) for key in keys}

    async def set(self, key: str, value: Optional[str]) -> None:
        try:
            async with self.db.session() as session:
                stmt = self._insert(Setting).values(key=key, value=value, updated_at=TimeHelper.utc_now())
                stmt = stmt.on_conflict_do_update(
                    index_elements=[Setting.key],
                    set_={"value": stmt.excluded.value, "updated_at": stmt.excluded.updated_at},
                )
                await session.execute(stmt)
        except SQLAlchemyError as e:
            raise PersistenceError(f"Failed to save setting {key}: {e}", operation="upsert", table="settings", cause=e)
