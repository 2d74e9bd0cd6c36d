"""
============================================================================
KUMASYNC - MAINTENANCE JOB SCHEDULER
============================================================================
A lightweight, asyncio-native runner for periodic housekeeping jobs. It
runs in the same event loop as the sync scheduler and is independent of
it: stopping sync scheduling never stops housekeeping.

Registered Jobs
---------------
1.  cache_sweep         (every 60 s)
    Drops expired cache entries from memory and from the database.

2.  history_purge       (every 24 h)
    Deletes sync history rows and metrics samples past their retention.

3.  health_heartbeat    (every 10 min)
    Writes a liveness entry to the log, with the database state.

Author: Professional Development Team
Version: 1.0.0
License: MIT
============================================================================
"""

import asyncio
import time
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Optional, Set

from cache.persistent import PersistentCache
from config.settings import Settings
from database.manager import DatabaseManager
from database.repositories import SyncHistoryRepository
from monitoring.metrics import SyncMetricsCollector
from utils.helpers import TimeHelper
from utils.logger import get_logger


logger = get_logger("Maintenance")


# ============================================================================
# JOB DEFINITION
# ============================================================================

@dataclass
class ScheduledJob:
    """
    A single periodic background job.

    Attributes
    ----------
    name : str
        Identifier used in logs.
    interval_seconds : int
        How often the job runs.
    coroutine_factory : Callable
        Async callable without arguments doing the work.
    enabled : bool
        Can be toggled at runtime.
    last_run : Optional[float]
        Epoch timestamp of the last successful execution.
    next_run : float
        Epoch timestamp of the next execution.
    run_count : int
        Successful executions since startup.
    error_count : int
        Failed executions since startup.
    """
    name: str
    interval_seconds: int
    coroutine_factory: Callable
    enabled: bool = True
    last_run: Optional[float] = None
    next_run: float = field(default_factory=time.time)
    run_count: int = 0
    error_count: int = 0


# ============================================================================
# SCHEDULER
# ============================================================================

class MaintenanceScheduler:
    """
    Asyncio-based periodic job scheduler.

    Usage
    -----
        jobs = MaintenanceScheduler(db_manager, cache, history, metrics, settings)
        await jobs.start()
        # ... later ...
        await jobs.stop()
    """

    def __init__(
        self,
        db_manager: DatabaseManager,
        cache: PersistentCache,
        history: SyncHistoryRepository,
        metrics: SyncMetricsCollector,
        settings: Settings,
        tick_interval: float = 2.0,
    ):
        self.settings = settings
        self.db_manager = db_manager
        self.cache = cache
        self.history = history
        self.metrics = metrics

        self._jobs: Dict[str, ScheduledJob] = {}
        self._running = False
        self._loop_task: Optional[asyncio.Task] = None
        self._job_tasks: Set[asyncio.Task] = set()
        self._tick_interval = tick_interval

        self._register_builtin_jobs()

        logger.info(f"Maintenance scheduler created with {len(self._jobs)} built-in jobs")

    # ------------------------------------------------------------------
    # JOB REGISTRATION
    # ------------------------------------------------------------------

    def register_job(
        self,
        name: str,
        interval_seconds: int,
        coroutine_factory: Callable,
        enabled: bool = True,
    ) -> None:
        """Register a periodic job; it first runs on the next tick."""
        if name in self._jobs:
            logger.warning(f"Job '{name}' already registered, overwriting")

        self._jobs[name] = ScheduledJob(
            name=name,
            interval_seconds=interval_seconds,
            coroutine_factory=coroutine_factory,
            enabled=enabled,
            next_run=time.time(),
        )
        logger.debug(f"Registered job '{name}' (interval={interval_seconds}s)")

    def disable_job(self, name: str) -> bool:
        """Disable a job by name. Returns True if found."""
        if name in self._jobs:
            self._jobs[name].enabled = False
            return True
        return False

    # ------------------------------------------------------------------
    # LIFECYCLE
    # ------------------------------------------------------------------

    async def start(self) -> None:
        if self._running:
            logger.warning("Maintenance scheduler is already running")
            return
        self._running = True
        self._loop_task = asyncio.create_task(self._main_loop())
        logger.info("✓ Maintenance scheduler started")

    async def stop(self) -> None:
        self._running = False
        if self._loop_task:
            self._loop_task.cancel()
            try:
                await self._loop_task
            except asyncio.CancelledError:
                pass
            self._loop_task = None

        if self._job_tasks:
            await asyncio.gather(*self._job_tasks, return_exceptions=True)
        logger.info("✓ Maintenance scheduler stopped")

    # ------------------------------------------------------------------
    # MAIN LOOP
    # ------------------------------------------------------------------

    async def _main_loop(self) -> None:
        """
        Wake up every ``_tick_interval`` seconds and launch every enabled
        job whose ``next_run`` has arrived.
        """
        while self._running:
            now = time.time()
            for job in self._jobs.values():
                if job.enabled and now >= job.next_run:
                    task = asyncio.create_task(self._execute_job(job))
                    self._job_tasks.add(task)
                    task.add_done_callback(self._job_tasks.discard)
                    # Advance now so the job is not re-triggered while running
                    job.next_run = now + job.interval_seconds

            await asyncio.sleep(self._tick_interval)

    async def run_job(self, name: str) -> bool:
        """Run a registered job immediately. Returns False if unknown."""
        job = self._jobs.get(name)
        if job is None:
            return False
        await self._execute_job(job)
        return True

    async def _execute_job(self, job: ScheduledJob) -> None:
        start_time = time.time()
        try:
            await job.coroutine_factory()
            elapsed = time.time() - start_time

            job.run_count += 1
            job.last_run = time.time()
            logger.debug(f"Job '{job.name}' completed in {elapsed:.2f}s (run #{job.run_count})")

        except Exception as e:
            job.error_count += 1
            elapsed = time.time() - start_time
            logger.exception(f"Job '{job.name}' FAILED after {elapsed:.2f}s: {e}")

    # ------------------------------------------------------------------
    # DIAGNOSTICS
    # ------------------------------------------------------------------

    def get_job_stats(self) -> List[Dict[str, Any]]:
        """Status of every registered job."""
        return [
            {
                "name": job.name,
                "interval_seconds": job.interval_seconds,
                "enabled": job.enabled,
                "run_count": job.run_count,
                "error_count": job.error_count,
                "last_run": TimeHelper.to_iso(TimeHelper.from_epoch(job.last_run)) if job.last_run else None,
                "next_run": TimeHelper.to_iso(TimeHelper.from_epoch(job.next_run)),
            }
            for job in self._jobs.values()
        ]

    # ==================================================================
    # BUILT-IN JOBS
    # ==================================================================

    def _register_builtin_jobs(self) -> None:
        self.register_job(
            "cache_sweep",
            interval_seconds=self.settings.cache.sweep_interval,
            coroutine_factory=self._job_cache_sweep,
        )
        self.register_job(
            "history_purge",
            interval_seconds=self.settings.metrics.purge_interval,
            coroutine_factory=self._job_history_purge,
        )
        self.register_job(
            "health_heartbeat",
            interval_seconds=600,
            coroutine_factory=self._job_health_heartbeat,
        )

    async def _job_cache_sweep(self) -> None:
        removed = await self.cache.cleanup_expired_entries()
        if removed:
            logger.debug(f"[CacheSweep] Removed {removed} expired cache entries")

    async def _job_history_purge(self) -> None:
        retention_days = self.settings.sync.history_retention_days
        cutoff = TimeHelper.window_start(TimeHelper.utc_now(), retention_days * 86400)
        deleted_runs = await self.history.purge_older_than(cutoff)
        deleted_samples = await self.metrics.clear_old_metrics(self.settings.metrics.retention_days)
        logger.info(
            f"[HistoryPurge] Deleted {deleted_runs} sync runs and {deleted_samples} metric samples"
        )

    async def _job_health_heartbeat(self) -> None:
        is_alive = await self.db_manager.check_connection()
        logger.info(
            f"[Heartbeat] ✓ KumaSync alive, db={'OK' if is_alive else 'FAIL'}, "
            f"time={TimeHelper.format_datetime(TimeHelper.utc_now())} UTC"
        )
