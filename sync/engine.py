"""
============================================================================
KUMASYNC - SYNC ENGINE
============================================================================
Runs one sync of one source:

    pending -> fetching-monitors -> updating-store -> fetching-heartbeats
            -> completed | failed

The fetch + reconcile sequence is wrapped by the retry policy. A run never
raises: exhausted retries produce a failed SyncResult, a failed history
row and a failure metrics sample. History and metrics bookkeeping errors
are logged and swallowed so they cannot change the outcome of a run.

Author: Professional Development Team
Version: 1.0.0
License: MIT
============================================================================
"""

import asyncio
import time
from typing import Any, Awaitable, Callable, Dict, List, Optional

from sqlalchemy.exc import SQLAlchemyError

from config.constants import SyncRunStatus
from database.models import Source
from database.repositories import SyncHistoryRepository
from exceptions.database import DatabaseException
from monitoring.metrics import SyncMetricsCollector
from sync.client import StatusPageClient
from sync.models import ReconcileCounts, SyncOptions, SyncProgress, SyncResult
from sync.reconciler import Reconciler
from sync.retry import with_retry
from utils.helpers import StringHelper, TimeHelper
from utils.logger import get_logger


logger = get_logger(__name__)

BOOKKEEPING_ERRORS = (SQLAlchemyError, DatabaseException)

ProgressCallback = Callable[[SyncProgress], None]


class SyncEngine:
    """
    Sync engine for status page sources.

    Parameters
    ----------
    client : StatusPageClient
        Remote status client.
    reconciler : Reconciler
        Writes fetched payloads.
    history : SyncHistoryRepository
        Sync run bookkeeping.
    metrics : SyncMetricsCollector
        Receives one sample per finished run.
    retry_base_delay : float
        Delay before the first retry in seconds.
    sleep : callable
        Sleep coroutine used between retries.
    """

    def __init__(
        self,
        client: StatusPageClient,
        reconciler: Reconciler,
        history: SyncHistoryRepository,
        metrics: SyncMetricsCollector,
        retry_base_delay: float = 1.0,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
    ):
        self.client = client
        self.reconciler = reconciler
        self.history = history
        self.metrics = metrics
        self.retry_base_delay = retry_base_delay
        self.sleep = sleep

        self._subscribers: List[ProgressCallback] = []
        self._active_runs: Dict[str, SyncProgress] = {}
        self._source_locks: Dict[int, asyncio.Lock] = {}

    # ========================================================================
    # PROGRESS EVENTS
    # ========================================================================

    def on_progress(self, callback: ProgressCallback) -> Callable[[], None]:
        """
        Subscribe to progress events.

        Returns:
            Function removing the subscription
        """
        self._subscribers.append(callback)

        def unsubscribe() -> None:
            if callback in self._subscribers:
                self._subscribers.remove(callback)

        return unsubscribe

    def _publish(
        self,
        source_id: int,
        run_id: str,
        status: SyncRunStatus,
        current_step: str,
        error: Optional[str] = None,
    ) -> None:
        event = SyncProgress(
            source_id=source_id,
            run_id=run_id,
            status=status,
            current_step=current_step,
            error=error,
        )

        if status.is_terminal:
            self._active_runs.pop(run_id, None)
        else:
            self._active_runs[run_id] = event

        for callback in list(self._subscribers):
            try:
                callback(event)
            except Exception:
                logger.exception(f"Progress subscriber failed for run {run_id}")

    # ========================================================================
    # SYNC
    # ========================================================================

    @staticmethod
    def generate_run_id() -> str:
        return f"sync_{int(time.time() * 1000)}_{StringHelper.generate_random_string(9)}"

    def _lock_for(self, source_id: int) -> asyncio.Lock:
        lock = self._source_locks.get(source_id)
        if lock is None:
            lock = asyncio.Lock()
            self._source_locks[source_id] = lock
        return lock

    async def sync_source(
        self,
        source: Source,
        options: Optional[SyncOptions] = None,
        on_start: Optional[Callable[[], None]] = None,
    ) -> SyncResult:
        """
        Sync one source.

        A second call for a source that is already syncing waits for the
        running one to finish. ``on_start`` is called once the source lock
        is held, right before the run begins.

        Returns:
            SyncResult, ``success=False`` when every attempt failed
        """
        options = options or SyncOptions()

        async with self._lock_for(source.id):
            if on_start is not None:
                on_start()
            return await self._run(source, options)

    async def _run(self, source: Source, options: SyncOptions) -> SyncResult:
        run_id = self.generate_run_id()
        started_at = TimeHelper.utc_now()
        started = time.monotonic()

        logger.info(f"Starting sync {run_id} for source {source.id} ({source.name})")
        self._publish(source.id, run_id, SyncRunStatus.PENDING, "Starting sync")
        await self._bookkeep("start", self.history.start_run(
            source.id, run_id, SyncRunStatus.PENDING.value, started_at
        ))

        async def attempt() -> ReconcileCounts:
            return await self._fetch_and_store(source, run_id, options)

        try:
            counts = await with_retry(
                attempt,
                options.max_retries,
                base_delay=self.retry_base_delay,
                sleep=self.sleep,
                label=f"sync {run_id}",
            )
        except Exception as e:
            return await self._finish_failed(source, run_id, started, e)

        duration_ms = int((time.monotonic() - started) * 1000)
        result = SyncResult(
            source_id=source.id,
            success=True,
            monitors_updated=counts.monitors_updated,
            heartbeats_fetched=counts.heartbeats_fetched,
            duration_ms=duration_ms,
            run_id=run_id,
        )

        await self._bookkeep("finish", self.history.finish_run(
            run_id,
            SyncRunStatus.COMPLETED.value,
            result.monitors_updated,
            result.heartbeats_fetched,
            None,
            result.timestamp,
            duration_ms,
        ))
        await self._record(result)
        self._publish(source.id, run_id, SyncRunStatus.COMPLETED, "Sync completed")

        logger.success(
            f"Sync {run_id} for source {source.id} completed in {duration_ms}ms: "
            f"{result.monitors_updated} monitors, {result.heartbeats_fetched} heartbeats"
        )
        return result

    async def _fetch_and_store(self, source: Source, run_id: str, options: SyncOptions) -> ReconcileCounts:
        self._publish(source.id, run_id, SyncRunStatus.FETCHING_MONITORS, "Fetching monitors")
        payload = await self.client.fetch_monitors(source, timeout_ms=options.timeout_ms)

        self._publish(source.id, run_id, SyncRunStatus.UPDATING_STORE, "Updating monitors")
        counts = await self.reconciler.reconcile_status_page(source, payload)

        if options.include_heartbeats:
            self._publish(source.id, run_id, SyncRunStatus.FETCHING_HEARTBEATS, "Fetching heartbeats")
            # The endpoint's monitor count replaces the inline count; on failure the inline count stands
            try:
                heartbeats = await self.client.fetch_heartbeats(source, timeout_ms=options.timeout_ms)
                counts.heartbeats_fetched = await self.reconciler.cache_heartbeat_list(source, heartbeats)
            except Exception as e:
                logger.warning(f"Sync {run_id}: heartbeat fetch for source {source.id} failed: {e}")

        return counts

    async def _finish_failed(self, source: Source, run_id: str, started: float, error: Exception) -> SyncResult:
        duration_ms = int((time.monotonic() - started) * 1000)
        message = str(error) or error.__class__.__name__
        result = SyncResult(
            source_id=source.id,
            success=False,
            error=message,
            duration_ms=duration_ms,
            run_id=run_id,
        )

        await self._bookkeep("finish", self.history.finish_run(
            run_id,
            SyncRunStatus.FAILED.value,
            0,
            0,
            message,
            result.timestamp,
            duration_ms,
        ))
        await self._record(result)
        self._publish(source.id, run_id, SyncRunStatus.FAILED, "Sync failed", error=message)

        logger.error(f"Sync {run_id} for source {source.id} failed after {duration_ms}ms: {message}")
        return result

    async def _record(self, result: SyncResult) -> None:
        await self._bookkeep("metrics", self.metrics.record_sync_metrics(
            source_id=result.source_id,
            run_id=result.run_id,
            duration_ms=result.duration_ms,
            success=result.success,
            monitors_updated=result.monitors_updated,
            heartbeats_fetched=result.heartbeats_fetched,
            error_message=result.error,
            timestamp=result.timestamp,
        ))

    @staticmethod
    async def _bookkeep(what: str, operation: Awaitable[Any]) -> None:
        try:
            await operation
        except BOOKKEEPING_ERRORS as e:
            logger.warning(f"Sync bookkeeping ({what}) failed: {e}")

    # ========================================================================
    # QUERIES
    # ========================================================================

    def get_sync_status(self) -> Dict[str, Any]:
        """Active runs and their current state."""
        runs = [event.to_dict() for event in self._active_runs.values()]
        return {
            "is_syncing": bool(runs),
            "current_sync_id": runs[-1]["run_id"] if runs else None,
            "active_runs": runs,
        }

    async def get_sync_history(self, source_id: Optional[int] = None, limit: int = 50) -> List[Dict[str, Any]]:
        """Sync runs joined with the source name, newest first."""
        return await self.history.list_runs(source_id=source_id, limit=limit)
