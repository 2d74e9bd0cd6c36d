"""
============================================================================
KUMASYNC - SYNC SCHEDULER
============================================================================
Owns the recurring execution of syncs across every configured source.

Timeline of a started scheduler
-------------------------------
    start() ── warm-up delay ── tick ── interval ── tick ── interval ── ...

*   A tick is a no-op while ``enabled`` is false; the flag is read at fire
    time, so toggling it never needs a restart.
*   A tick awaits its run before the next interval starts, so at most one
    scheduled run is in flight.
*   ``stop()`` only cancels the timer task. A run that is already in
    flight is shielded and finishes on its own; a restarted timer skips
    its ticks until that run has settled.

Sources are synced in batches of ``concurrent_syncs``; batch N+1 is only
dispatched once every sync of batch N has settled, with a short pause in
between.

The configuration lives in the settings table under ``scheduler_config``.

Author: Professional Development Team
Version: 1.0.0
License: MIT
============================================================================
"""

import asyncio
import itertools
import json
from datetime import datetime, timedelta
from typing import Any, Awaitable, Callable, Dict, List, Optional, Tuple, Union

from pydantic import BaseModel, ConfigDict, Field, ValidationError
from sqlalchemy.exc import SQLAlchemyError

from config.constants import SettingsKeys
from config.settings import SyncSettings
from database.models import Source
from database.repositories import SettingsRepository, SourceRepository
from exceptions.database import DatabaseException
from sync.engine import SyncEngine
from sync.models import SyncOptions, SyncResult
from sync.strategies import StrategyContext, StrategyKind, SyncStrategy, should_sync
from utils.helpers import BatchProcessor, TimeHelper
from utils.logger import get_logger


logger = get_logger("Scheduler")

SETTINGS_ERRORS = (SQLAlchemyError, DatabaseException)


# ============================================================================
# CONFIGURATION MODELS
# ============================================================================

class SchedulerConfig(BaseModel):
    """Persisted scheduler configuration."""

    model_config = ConfigDict(extra="ignore")

    interval_seconds: int = 300
    enabled: bool = False
    concurrent_syncs: int = Field(default=3, ge=1)
    strategy: StrategyKind = StrategyKind.FULL
    sync_options: SyncOptions = Field(default_factory=SyncOptions)


class SchedulerConfigUpdate(BaseModel):
    """Partial configuration; only the fields that were set are merged."""

    model_config = ConfigDict(extra="ignore")

    interval_seconds: Optional[int] = None
    enabled: Optional[bool] = None
    concurrent_syncs: Optional[int] = Field(default=None, ge=1)
    strategy: Optional[StrategyKind] = None
    sync_options: Optional[Dict[str, Any]] = None


ConfigUpdate = Union[SchedulerConfigUpdate, Dict[str, Any]]


# ============================================================================
# SCHEDULER
# ============================================================================

class SyncScheduler:
    """
    Recurring sync scheduler.

    Usage
    -----
        scheduler = SyncScheduler(engine, sources, settings_repo, strategy_ctx)
        await scheduler.bootstrap()
        # ... later ...
        await scheduler.stop()
    """

    def __init__(
        self,
        engine: SyncEngine,
        sources: SourceRepository,
        settings_repo: SettingsRepository,
        strategy_context: StrategyContext,
        sync_settings: Optional[SyncSettings] = None,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
        clock: Callable[[], datetime] = TimeHelper.utc_now,
    ):
        self.sync_settings = sync_settings or SyncSettings()
        self.engine = engine
        self.sources = sources
        self.settings_repo = settings_repo
        self.strategy_context = strategy_context
        self.sleep = sleep
        self.clock = clock

        self.min_interval = self.sync_settings.min_interval
        self.warmup_seconds = self.sync_settings.warmup_seconds
        self.batch_pause_seconds = self.sync_settings.batch_pause_seconds

        self.config = SchedulerConfig(
            interval_seconds=self.sync_settings.default_interval,
            concurrent_syncs=self.sync_settings.concurrent_syncs,
            sync_options=SyncOptions(
                timeout_ms=self.sync_settings.timeout_ms,
                max_retries=self.sync_settings.max_retries,
            ),
        )

        self.running = False
        self.last_run: Optional[datetime] = None

        self._timer_task: Optional[asyncio.Task] = None
        self._inflight: Optional[asyncio.Future] = None
        self._jobs: Dict[int, Tuple[Source, datetime]] = {}
        self._job_ids = itertools.count(1)

    # ------------------------------------------------------------------
    # CONFIGURATION
    # ------------------------------------------------------------------

    async def load_config(self) -> SchedulerConfig:
        """Merge the persisted configuration over the defaults."""
        try:
            raw = await self.settings_repo.get(SettingsKeys.SCHEDULER_CONFIG)
        except SETTINGS_ERRORS as e:
            logger.error(f"Failed to load scheduler config: {e}")
            return self.config

        if raw:
            try:
                stored = json.loads(raw)
                merged = self.config.model_dump()
                merged.update(stored)
                self.config = SchedulerConfig.model_validate(merged)
            except (ValueError, ValidationError) as e:
                logger.error(f"Ignoring invalid stored scheduler config: {e}")

        return self.config

    async def save_config(self) -> None:
        try:
            await self.settings_repo.set(SettingsKeys.SCHEDULER_CONFIG, self.config.model_dump_json())
        except SETTINGS_ERRORS as e:
            logger.error(f"Failed to save scheduler config: {e}")

    def _merge(self, update: Optional[ConfigUpdate]) -> None:
        if update is None:
            changes: Dict[str, Any] = {}
        elif isinstance(update, SchedulerConfigUpdate):
            changes = update.model_dump(exclude_unset=True)
        else:
            changes = SchedulerConfigUpdate.model_validate(update).model_dump(exclude_unset=True)

        # Explicit nulls mean "leave unchanged"
        changes = {key: value for key, value in changes.items() if value is not None}

        merged = self.config.model_dump()
        if "sync_options" in changes:
            changes["sync_options"] = dict(merged["sync_options"], **changes["sync_options"])
        merged.update(changes)
        self.config = SchedulerConfig.model_validate(merged)

        if self.config.interval_seconds < self.min_interval:
            logger.warning(
                f"Sync interval {self.config.interval_seconds}s is below the minimum, "
                f"using {self.min_interval}s"
            )
            self.config.interval_seconds = self.min_interval

    async def update_config(self, update: ConfigUpdate) -> SchedulerConfig:
        """Merge and persist; a running scheduler restarts when the interval changed."""
        old_interval = self.config.interval_seconds
        self._merge(update)
        await self.save_config()

        if self.running and self.config.interval_seconds != old_interval:
            logger.info(f"Sync interval changed {old_interval}s -> {self.config.interval_seconds}s, restarting")
            await self.stop()
            await self.start()

        return self.config

    @property
    def strategy(self) -> SyncStrategy:
        return SyncStrategy.of(self.config.strategy)

    # ------------------------------------------------------------------
    # LIFECYCLE
    # ------------------------------------------------------------------

    async def start(self, overrides: Optional[ConfigUpdate] = None) -> None:
        """Arm the warm-up delay and the recurring timer."""
        if self.running or self._timer_task is not None:
            await self.stop()

        self._merge(overrides)
        await self.save_config()

        self.running = True
        self._timer_task = asyncio.create_task(self._timer_loop())
        logger.info(
            f"✓ Scheduler started (interval={self.config.interval_seconds}s, "
            f"enabled={self.config.enabled}, strategy={self.config.strategy.value})"
        )

    async def stop(self) -> None:
        """Cancel the timers. Safe to call when not running."""
        task, self._timer_task = self._timer_task, None
        was_running, self.running = self.running, False

        if task is not None:
            task.cancel()
            try:
                await task
            except asyncio.CancelledError:
                pass

        if was_running:
            logger.info("✓ Scheduler stopped")

    async def bootstrap(self) -> None:
        """
        Load the stored configuration and honour the auto-sync settings.

        With ``autoSyncEnabled`` set to ``true`` and the scheduler idle, it
        is started enabled with the ``autoSyncInterval`` cadence.
        """
        await self.load_config()

        try:
            values = await self.settings_repo.get_many([
                SettingsKeys.AUTO_SYNC_ENABLED,
                SettingsKeys.AUTO_SYNC_INTERVAL,
            ])
        except SETTINGS_ERRORS as e:
            logger.error(f"Failed to read auto-sync settings: {e}")
            return

        if (values.get(SettingsKeys.AUTO_SYNC_ENABLED) or "").lower() != "true" or self.running:
            return

        interval = self.config.interval_seconds
        raw_interval = values.get(SettingsKeys.AUTO_SYNC_INTERVAL)
        if raw_interval:
            try:
                interval = int(raw_interval)
            except ValueError:
                logger.warning(f"Ignoring invalid autoSyncInterval {raw_interval!r}")

        await self.start(SchedulerConfigUpdate(enabled=True, interval_seconds=interval))

    async def _timer_loop(self) -> None:
        await self.sleep(self.warmup_seconds)
        while True:
            if self._inflight is not None and not self._inflight.done():
                logger.info("Previous scheduled sync still in progress, skipping tick")
            else:
                self._inflight = asyncio.ensure_future(self._scheduled_tick())
            await asyncio.shield(self._inflight)
            await self.sleep(self.config.interval_seconds)

    async def _scheduled_tick(self) -> None:
        if not self.config.enabled:
            return

        self.last_run = self.clock()
        try:
            sources = await self._filter_by_strategy(await self.sources.list_all())
            options = self.strategy.sync_options(self.config.sync_options)
            results = await self.sync_all_sources(sources, options=options)
            failed = sum(1 for result in results if not result.success)
            logger.info(f"Scheduled sync finished: {len(results)} sources, {failed} failed")
        except Exception:
            logger.exception("Scheduled sync failed")

    async def _filter_by_strategy(self, sources: List[Source]) -> List[Source]:
        strategy = self.strategy
        selected = []
        for source in sources:
            try:
                if await should_sync(strategy, source, self.strategy_context):
                    selected.append(source)
            except SETTINGS_ERRORS as e:
                logger.warning(f"Strategy check for source {source.id} failed, syncing anyway: {e}")
                selected.append(source)

        skipped = len(sources) - len(selected)
        if skipped:
            logger.debug(f"Strategy '{strategy.kind.value}' skipped {skipped} source(s)")
        return selected

    # ------------------------------------------------------------------
    # SYNC
    # ------------------------------------------------------------------

    async def sync_all_sources(
        self,
        sources: Optional[List[Source]] = None,
        options: Optional[SyncOptions] = None,
    ) -> List[SyncResult]:
        """
        Sync sources in batches of ``concurrent_syncs``.

        Returns:
            One result per source, in source order
        """
        if sources is None:
            sources = await self.sources.list_all()
        options = options or self.config.sync_options

        async def run_batch(batch: List[Source]) -> List[SyncResult]:
            outcomes = await asyncio.gather(
                *(self._sync_tracked(source, options) for source in batch),
                return_exceptions=True,
            )
            results = []
            for source, outcome in zip(batch, outcomes):
                if isinstance(outcome, BaseException):
                    logger.error(f"Sync of source {source.id} raised: {outcome}")
                    outcome = SyncResult(source_id=source.id, success=False, error=str(outcome))
                results.append(outcome)
            return results

        results = await BatchProcessor.process_in_batches(
            sources,
            self.config.concurrent_syncs,
            run_batch,
            delay_between_batches=self.batch_pause_seconds,
            sleep=self.sleep,
        )

        await self._record_last_sync_time()
        return results

    async def _sync_tracked(self, source: Source, options: SyncOptions) -> SyncResult:
        token = next(self._job_ids)

        def mark_started() -> None:
            self._jobs[token] = (source, self.clock())

        try:
            return await self.engine.sync_source(source, options, on_start=mark_started)
        finally:
            self._jobs.pop(token, None)

    async def _record_last_sync_time(self) -> None:
        try:
            await self.settings_repo.set(SettingsKeys.LAST_SYNC_TIME, TimeHelper.to_iso(self.clock()))
        except SETTINGS_ERRORS as e:
            logger.warning(f"Failed to record last sync time: {e}")

    async def sync_source_now(self, source_id: int) -> SyncResult:
        """
        Sync one source immediately.

        Raises:
            NotFoundError: Unknown source id
        """
        source = await self.sources.get_or_raise(source_id)
        self.last_run = self.clock()
        return await self._sync_tracked(source, self.config.sync_options)

    async def sync_all_sources_now(self) -> List[SyncResult]:
        """Sync every source immediately, outside the timer cadence."""
        self.last_run = self.clock()
        return await self.sync_all_sources()

    # ------------------------------------------------------------------
    # STATUS
    # ------------------------------------------------------------------

    def get_status(self) -> Dict[str, Any]:
        next_run = None
        if self.last_run is not None:
            next_run = self.last_run + timedelta(seconds=self.config.interval_seconds)

        return {
            "running": self.running,
            "last_run": TimeHelper.to_iso(self.last_run),
            "next_run": TimeHelper.to_iso(next_run),
            "current_jobs": [
                {
                    "source_id": source.id,
                    "source_name": source.name,
                    "started_at": TimeHelper.to_iso(started_at),
                }
                for source, started_at in self._jobs.values()
            ],
            "config": self.config.model_dump(mode="json"),
        }
