from datetime import timedelta

import pytest
import pytest_asyncio

from sync.models import SyncOptions
from sync.strategies import (
    STRATEGIES,
    StrategyContext,
    StrategyKind,
    SyncStrategy,
    compute_delta,
    should_sync,
)
from utils.helpers import TimeHelper
from tests.conftest import WEB_MONITOR, status_page_body


STATUS_PATH = "/api/status-page/main"


@pytest_asyncio.fixture
async def kuma(stack):
    return await stack.sources.create("Example", "https://ex.com", "main")


def context(stack, now=None):
    if now is None:
        return StrategyContext(history=stack.history, monitors=stack.monitors, client=stack.client)
    return StrategyContext(
        history=stack.history, monitors=stack.monitors, client=stack.client, clock=lambda: now
    )


async def synced_in_the_past(stack, kuma):
    """Store WEB_MONITOR, then record a completed run started after the write."""
    stack.remote.routes[STATUS_PATH] = (200, status_page_body([WEB_MONITOR]))
    await stack.engine.sync_source(kuma, SyncOptions(include_heartbeats=False))

    started = TimeHelper.utc_now() + timedelta(minutes=1)
    await stack.history.start_run(kuma.id, "sync_later", "pending", started)
    await stack.history.finish_run("sync_later", "completed", 1, 0, None, started, 10)
    return started


def test_strategy_catalogue():
    assert set(STRATEGIES) == set(StrategyKind)
    assert SyncStrategy.of("smart").min_interval_seconds == 300

    options = SyncStrategy.of(StrategyKind.FULL).sync_options(SyncOptions(include_heartbeats=False, timeout_ms=5000))
    assert options.incremental is False
    assert options.include_heartbeats is True
    assert options.timeout_ms == 5000
    assert SyncStrategy.of("incremental").sync_options().incremental is True


@pytest.mark.asyncio
@pytest.mark.parametrize("kind", [StrategyKind.FULL, StrategyKind.HEARTBEAT_ONLY])
async def test_unconditional_strategies(stack, kuma, kind):
    await synced_in_the_past(stack, kuma)
    assert await should_sync(SyncStrategy.of(kind), kuma, context(stack))


@pytest.mark.asyncio
@pytest.mark.parametrize("kind", [StrategyKind.INCREMENTAL, StrategyKind.SMART, StrategyKind.DELTA])
async def test_first_run_always_syncs(stack, kuma, kind):
    assert await should_sync(SyncStrategy.of(kind), kuma, context(stack))


@pytest.mark.asyncio
async def test_incremental_skips_unchanged_source(stack, kuma):
    await synced_in_the_past(stack, kuma)

    assert not await should_sync(SyncStrategy.of("incremental"), kuma, context(stack))


@pytest.mark.asyncio
async def test_incremental_syncs_after_monitor_update(stack, kuma):
    stack.remote.routes[STATUS_PATH] = (200, status_page_body([WEB_MONITOR]))
    await stack.engine.sync_source(kuma, SyncOptions(include_heartbeats=False))

    # The run's own upsert happens after its start
    assert await should_sync(SyncStrategy.of("incremental"), kuma, context(stack))


@pytest.mark.asyncio
async def test_smart_respects_silence_window(stack, kuma):
    started = await synced_in_the_past(stack, kuma)
    smart = SyncStrategy.of("smart")

    assert not await should_sync(smart, kuma, context(stack, now=started + timedelta(minutes=2)))
    assert await should_sync(smart, kuma, context(stack, now=started + timedelta(minutes=6)))


@pytest.mark.asyncio
async def test_delta_detects_remote_changes(stack, kuma):
    await synced_in_the_past(stack, kuma)
    delta = SyncStrategy.of("delta")

    assert not await should_sync(delta, kuma, context(stack))

    renamed = dict(WEB_MONITOR, name="web-renamed")
    extra = {"id": 9, "name": "api", "url": "https://api.ex.com/", "type": "http", "interval": 60}
    stack.remote.routes[STATUS_PATH] = (200, status_page_body([renamed, extra]))

    result = await compute_delta(kuma, context(stack))
    assert (result.added, result.updated, result.removed) == (1, 1, 0)
    assert sorted(result.changed_ids) == [7, 9]
    assert await should_sync(delta, kuma, context(stack))


@pytest.mark.asyncio
async def test_delta_counts_removed_monitors(stack, kuma):
    await synced_in_the_past(stack, kuma)
    stack.remote.routes[STATUS_PATH] = (200, status_page_body([]))

    result = await compute_delta(kuma, context(stack))

    assert (result.added, result.updated, result.removed) == (0, 0, 1)
    assert result.has_changes


@pytest.mark.asyncio
async def test_delta_fetch_failure_syncs_anyway(stack, kuma):
    await synced_in_the_past(stack, kuma)
    stack.remote.routes[STATUS_PATH] = (500, {})

    assert await should_sync(SyncStrategy.of("delta"), kuma, context(stack))
