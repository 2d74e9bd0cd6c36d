"""
============================================================================
KUMASYNC - SYNC METRICS & HEALTH
============================================================================
Records one sample per finished sync run and aggregates samples into
rolling statistics, duration percentiles and a health verdict.

Aggregates are cached per (query kind, window) for a short interval and
the whole cache is dropped whenever a new sample is recorded.

Author: Professional Development Team
Version: 1.0.0
License: MIT
============================================================================
"""

import math
import time
from datetime import datetime
from typing import Any, Awaitable, Callable, Dict, List, Optional, Sequence, Tuple, Union

from config.constants import HealthStatus, HealthThresholds, TimeRange
from database.models import Monitor, Source
from database.repositories import SourceRepository, SyncMetricRepository
from exceptions.validation import InvalidFormatError
from utils.helpers import TimeHelper
from utils.logger import get_logger


logger = get_logger(__name__)


# ============================================================================
# PURE AGGREGATION HELPERS
# ============================================================================

def percentile(sorted_values: Sequence[float], p: float) -> float:
    """
    Nearest-rank percentile of an ascending sequence.

    Index is ``ceil(n * p) - 1`` clamped to ``[0, n - 1]``; no interpolation.
    Returns 0 for an empty sequence.
    """
    n = len(sorted_values)
    if n == 0:
        return 0
    index = min(max(math.ceil(n * p) - 1, 0), n - 1)
    return sorted_values[index]


def performance_summary(durations: Sequence[float]) -> Dict[str, Any]:
    """Percentiles, min, max and rounded average of durations."""
    values = sorted(durations)
    if not values:
        return {
            "p50": 0, "p90": 0, "p95": 0, "p99": 0,
            "min": 0, "max": 0, "average": 0, "sample_size": 0,
        }

    return {
        "p50": percentile(values, 0.50),
        "p90": percentile(values, 0.90),
        "p95": percentile(values, 0.95),
        "p99": percentile(values, 0.99),
        "min": values[0],
        "max": values[-1],
        "average": round(sum(values) / len(values)),
        "sample_size": len(values),
    }


def evaluate_health(
    total: int,
    successful: int,
    average_duration_ms: float,
    last_success: Optional[datetime],
    now: datetime,
) -> Tuple[HealthStatus, List[str], float]:
    """
    Health verdict of the sync subsystem.

    Any issue leaves ``healthy``; with issues the verdict is ``unhealthy``
    when the success rate is below 50% and ``degraded`` otherwise.

    Returns:
        (status, issues, success_rate)
    """
    success_rate = successful / total if total else 1.0
    issues: List[str] = []

    if total == 0:
        issues.append("No syncs recorded")
    else:
        if success_rate < HealthThresholds.MIN_SUCCESS_RATE:
            issues.append(f"Low sync success rate: {success_rate * 100:.1f}%")

        if last_success is None or (now - last_success).total_seconds() > HealthThresholds.MAX_SILENCE_SECONDS:
            issues.append("No successful syncs in the last hour")

        if average_duration_ms > HealthThresholds.MAX_AVERAGE_DURATION_MS:
            issues.append(f"High average sync duration: {round(average_duration_ms)}ms")

    if not issues:
        status = HealthStatus.HEALTHY
    elif success_rate < HealthThresholds.CRITICAL_SUCCESS_RATE:
        status = HealthStatus.UNHEALTHY
    else:
        status = HealthStatus.DEGRADED

    return status, issues, success_rate


# ============================================================================
# METRICS COLLECTOR
# ============================================================================

class SyncMetricsCollector:
    """
    Sync metrics recorder and aggregator.

    Parameters
    ----------
    metrics : SyncMetricRepository
        Storage of the samples.
    sources : SourceRepository
        Used for the source and monitor totals.
    cache_ttl : float
        Lifetime of cached aggregates in seconds.
    clock : callable
        Returns the current naive UTC datetime.
    monotonic : callable
        Monotonic seconds used for aggregate cache expiry.
    """

    def __init__(
        self,
        metrics: SyncMetricRepository,
        sources: SourceRepository,
        cache_ttl: float = 60.0,
        clock: Callable[[], datetime] = TimeHelper.utc_now,
        monotonic: Callable[[], float] = time.monotonic,
    ):
        self.metrics = metrics
        self.sources = sources
        self.cache_ttl = cache_ttl
        self.clock = clock
        self.monotonic = monotonic

        self._cache: Dict[Tuple[str, str], Tuple[float, Any]] = {}

    @staticmethod
    def parse_range(time_range: Union[TimeRange, str]) -> TimeRange:
        try:
            return TimeRange(time_range)
        except ValueError:
            raise InvalidFormatError(
                f"Invalid time range {time_range!r}, expected one of 24h, 7d, 30d",
                field="range",
                expected="24h|7d|30d",
            )

    def _since(self, window: TimeRange) -> datetime:
        return TimeHelper.window_start(self.clock(), window.seconds)

    async def _cached(self, kind: str, window: str, compute: Callable[[], Awaitable[Any]]) -> Any:
        key = (kind, window)
        now = self.monotonic()

        cached = self._cache.get(key)
        if cached is not None and now - cached[0] < self.cache_ttl:
            return cached[1]

        value = await compute()
        self._cache[key] = (now, value)
        return value

    def invalidate(self) -> None:
        """Drop every cached aggregate."""
        self._cache.clear()

    async def record_sync_metrics(
        self,
        source_id: int,
        run_id: str,
        duration_ms: int,
        success: bool,
        monitors_updated: int = 0,
        heartbeats_fetched: int = 0,
        error_message: Optional[str] = None,
        timestamp: Optional[datetime] = None,
    ) -> None:
        """
        Record the sample of a finished run.

        Raises:
            PersistenceError: The sample could not be stored
        """
        try:
            await self.metrics.add(
                source_id=source_id,
                run_id=run_id,
                duration_ms=duration_ms,
                success=success,
                monitors_updated=monitors_updated,
                heartbeats_fetched=heartbeats_fetched,
                error_message=error_message,
                timestamp=timestamp or self.clock(),
            )
        finally:
            self.invalidate()

    async def get_overall_metrics(self, time_range: Union[TimeRange, str] = TimeRange.LAST_24H) -> Dict[str, Any]:
        """Run totals, average duration and last run over a window."""
        window = self.parse_range(time_range)

        async def compute() -> Dict[str, Any]:
            aggregate = await self.metrics.aggregate(self._since(window))
            sources_count = await self.sources.count(Source)
            monitors_count = await self.sources.count(Monitor)
            success_rate = aggregate.successful / aggregate.total if aggregate.total else 0.0

            return {
                "time_range": window.value,
                "total_syncs": aggregate.total,
                "successful_syncs": aggregate.successful,
                "failed_syncs": aggregate.failed,
                "success_rate": success_rate,
                "average_duration_ms": round(aggregate.average_duration_ms),
                "last_sync": TimeHelper.to_iso(aggregate.last_sync),
                "last_successful_sync": TimeHelper.to_iso(aggregate.last_success),
                "sources_count": sources_count,
                "monitors_count": monitors_count,
            }

        return await self._cached("overall", window.value, compute)

    async def get_source_metrics(
        self,
        source_id: int,
        time_range: Union[TimeRange, str] = TimeRange.LAST_24H,
    ) -> Dict[str, Any]:
        """Same totals as :meth:`get_overall_metrics` for a single source."""
        window = self.parse_range(time_range)

        async def compute() -> Dict[str, Any]:
            aggregate = await self.metrics.aggregate(self._since(window), source_id=source_id)
            success_rate = aggregate.successful / aggregate.total if aggregate.total else 0.0

            return {
                "source_id": source_id,
                "time_range": window.value,
                "total_syncs": aggregate.total,
                "successful_syncs": aggregate.successful,
                "failed_syncs": aggregate.failed,
                "success_rate": success_rate,
                "average_duration_ms": round(aggregate.average_duration_ms),
                "last_sync": TimeHelper.to_iso(aggregate.last_sync),
                "last_successful_sync": TimeHelper.to_iso(aggregate.last_success),
                "sources_count": 1,
            }

        return await self._cached(f"source:{source_id}", window.value, compute)

    async def get_performance_metrics(self, time_range: Union[TimeRange, str] = TimeRange.LAST_24H) -> Dict[str, Any]:
        """Duration percentiles over successful runs of a window."""
        window = self.parse_range(time_range)

        async def compute() -> Dict[str, Any]:
            durations = await self.metrics.successful_durations(self._since(window))
            return dict(performance_summary(durations), time_range=window.value)

        return await self._cached("performance", window.value, compute)

    async def get_error_breakdown(self, time_range: Union[TimeRange, str] = TimeRange.LAST_24H) -> List[Dict[str, Any]]:
        """Failed runs of a window grouped by error message."""
        window = self.parse_range(time_range)

        async def compute() -> List[Dict[str, Any]]:
            return await self.metrics.error_breakdown(self._since(window))

        return await self._cached("errors", window.value, compute)

    async def get_health_check(self) -> Dict[str, Any]:
        """Health verdict computed over the last 24 hours."""

        async def compute() -> Dict[str, Any]:
            now = self.clock()
            aggregate = await self.metrics.aggregate(TimeHelper.window_start(now, TimeRange.LAST_24H.seconds))
            status, issues, success_rate = evaluate_health(
                total=aggregate.total,
                successful=aggregate.successful,
                average_duration_ms=aggregate.average_duration_ms,
                last_success=aggregate.last_success,
                now=now,
            )

            return {
                "status": status.value,
                "issues": issues,
                "success_rate": success_rate,
                "total_syncs": aggregate.total,
                "average_duration_ms": round(aggregate.average_duration_ms),
                "last_sync": TimeHelper.to_iso(aggregate.last_sync),
                "last_successful_sync": TimeHelper.to_iso(aggregate.last_success),
                "checked_at": TimeHelper.to_iso(now),
            }

        return await self._cached("health", TimeRange.LAST_24H.value, compute)

    async def clear_old_metrics(self, retention_days: int = 30) -> int:
        """
        Delete samples older than ``retention_days``.

        Returns:
            Number of deleted samples
        """
        cutoff = TimeHelper.window_start(self.clock(), retention_days * 86400)
        deleted = await self.metrics.purge_older_than(cutoff)
        self.invalidate()

        if deleted:
            logger.info(f"Deleted {deleted} sync metric samples older than {retention_days} days")
        return deleted
