import asyncio
import re

import httpx
import pytest
import pytest_asyncio

from config.constants import SyncRunStatus
from database.models import Heartbeat, Monitor
from sync.models import SyncOptions
from tests.conftest import WEB_MONITOR, status_page_body


STATUS_PATH = "/api/status-page/main"
HEARTBEAT_PATH = "/api/status-page/heartbeat/main"


@pytest_asyncio.fixture
async def kuma(stack):
    return await stack.sources.create("Example", "https://ex.com", "main")


@pytest.mark.asyncio
async def test_heartbeat_failure_does_not_fail_run(stack, kuma):
    stack.remote.routes[STATUS_PATH] = (200, status_page_body([WEB_MONITOR]))
    stack.remote.routes[HEARTBEAT_PATH] = httpx.ConnectError("connection refused")

    result = await stack.engine.sync_source(kuma)

    assert result.success is True
    assert result.monitors_updated == 1
    assert result.heartbeats_fetched == 0
    rows = await stack.monitors.list_with_source(kuma.id)
    assert [(monitor.id, monitor.source_id) for monitor, _ in rows] == [(7, kuma.id)]
    assert stack.sleep.delays == []


@pytest.mark.asyncio
async def test_exhausted_retries_record_failure(stack, kuma):
    stack.remote.routes[STATUS_PATH] = (503, {"msg": "down"})

    result = await stack.engine.sync_source(kuma)

    assert result.success is False
    assert '"main"' in result.error
    assert stack.sleep.delays == [1.0, 2.0]
    assert stack.remote.hits(STATUS_PATH) == 3

    history = await stack.engine.get_sync_history(kuma.id)
    assert len(history) == 1
    assert history[0]["status"] == "failed"
    assert history[0]["error_message"] == result.error
    assert history[0]["source_name"] == "Example"

    overall = await stack.metrics.get_overall_metrics("24h")
    assert overall["failed_syncs"] == 1
    assert overall["successful_syncs"] == 0


@pytest.mark.asyncio
async def test_success_counts_heartbeat_monitors(stack, kuma):
    inline = {"7": [{"status": 1, "time": "2024-01-01 00:00:00"}]}
    stack.remote.routes[STATUS_PATH] = (200, status_page_body([WEB_MONITOR], heartbeat_list=inline))
    stack.remote.routes[HEARTBEAT_PATH] = (200, {"heartbeatList": {"7": [], "8": []}})

    result = await stack.engine.sync_source(kuma)

    assert result.success is True
    assert result.heartbeats_fetched == 2
    assert re.fullmatch(r"sync_\d+_[a-z0-9]{9}", result.run_id)
    assert await stack.heartbeat_cache.get_heartbeats(kuma.id) == {"7": [], "8": []}

    history = await stack.engine.get_sync_history()
    assert history[0]["status"] == "completed"
    assert history[0]["run_id"] == result.run_id


@pytest.mark.asyncio
async def test_progress_events_in_order(stack, kuma):
    stack.remote.routes[STATUS_PATH] = (200, status_page_body([WEB_MONITOR]))
    stack.remote.routes[HEARTBEAT_PATH] = (200, {"heartbeatList": {}})

    def broken(event):
        raise RuntimeError("subscriber bug")

    stack.engine.on_progress(broken)
    result = await stack.engine.sync_source(kuma)

    assert result.success is True
    assert [event.status for event in stack.events] == [
        SyncRunStatus.PENDING,
        SyncRunStatus.FETCHING_MONITORS,
        SyncRunStatus.UPDATING_STORE,
        SyncRunStatus.FETCHING_HEARTBEATS,
        SyncRunStatus.COMPLETED,
    ]
    assert [event.progress for event in stack.events] == [0, 25, 50, 75, 100]
    assert {event.run_id for event in stack.events} == {result.run_id}
    assert stack.engine.get_sync_status() == {
        "is_syncing": False,
        "current_sync_id": None,
        "active_runs": [],
    }


@pytest.mark.asyncio
async def test_unsubscribe_stops_events(stack, kuma):
    stack.remote.routes[STATUS_PATH] = (200, status_page_body([]))
    received = []
    unsubscribe = stack.engine.on_progress(received.append)
    unsubscribe()

    await stack.engine.sync_source(kuma, SyncOptions(include_heartbeats=False))

    assert received == []
    assert stack.events


@pytest.mark.asyncio
async def test_failed_run_publishes_failure(stack, kuma):
    stack.remote.routes[STATUS_PATH] = (500, {})

    result = await stack.engine.sync_source(kuma, SyncOptions(max_retries=1))

    assert stack.events[-1].status == SyncRunStatus.FAILED
    assert stack.events[-1].error == result.error
    assert stack.sleep.delays == []


@pytest.mark.asyncio
async def test_repeated_sync_is_idempotent(stack, kuma):
    inline = {"7": [{"status": 1, "time": "2024-01-01 00:00:00"}]}
    stack.remote.routes[STATUS_PATH] = (200, status_page_body([WEB_MONITOR], heartbeat_list=inline))
    options = SyncOptions(include_heartbeats=False)

    await stack.engine.sync_source(kuma, options)
    await stack.engine.sync_source(kuma, options)

    assert await stack.sources.count(Monitor) == 1
    assert await stack.sources.count(Heartbeat) == 1
    assert len(await stack.engine.get_sync_history(kuma.id)) == 2


@pytest.mark.asyncio
async def test_same_source_runs_are_serialized(stack, kuma):
    active = 0
    peak = 0

    async def slow_page(request):
        nonlocal active, peak
        active += 1
        peak = max(peak, active)
        await asyncio.sleep(0.05)
        active -= 1
        return httpx.Response(200, json=status_page_body([WEB_MONITOR]))

    stack.remote.routes[STATUS_PATH] = slow_page
    options = SyncOptions(include_heartbeats=False)

    first, second = await asyncio.gather(
        stack.engine.sync_source(kuma, options),
        stack.engine.sync_source(kuma, options),
    )

    assert first.success and second.success
    assert first.run_id != second.run_id
    assert peak == 1


@pytest.mark.asyncio
async def test_inline_count_stands_when_heartbeat_endpoint_fails(stack, kuma):
    inline = {"7": [{"status": 1, "time": "2024-01-01 00:00:00"}]}
    stack.remote.routes[STATUS_PATH] = (200, status_page_body([WEB_MONITOR], heartbeat_list=inline))
    stack.remote.routes[HEARTBEAT_PATH] = (500, {})

    result = await stack.engine.sync_source(kuma)

    assert result.success is True
    assert result.heartbeats_fetched == 1


@pytest.mark.asyncio
async def test_unexpected_heartbeat_cache_error_is_not_retried(stack, kuma, monkeypatch):
    stack.remote.routes[STATUS_PATH] = (200, status_page_body([WEB_MONITOR]))
    stack.remote.routes[HEARTBEAT_PATH] = (200, {"heartbeatList": {"7": []}})

    async def broken_cache(source, payload):
        raise RuntimeError("cache exploded")

    monkeypatch.setattr(stack.engine.reconciler, "cache_heartbeat_list", broken_cache)

    result = await stack.engine.sync_source(kuma)

    assert result.success is True
    assert result.heartbeats_fetched == 0
    assert stack.remote.hits(STATUS_PATH) == 1
    assert stack.sleep.delays == []


@pytest.mark.asyncio
async def test_null_group_list_syncs_nothing(stack, kuma):
    stack.remote.routes[STATUS_PATH] = (200, {"config": {"published": True}, "publicGroupList": None})
    stack.remote.routes[HEARTBEAT_PATH] = (200, {"heartbeatList": None})

    result = await stack.engine.sync_source(kuma)

    assert result.success is True
    assert result.monitors_updated == 0
    assert result.heartbeats_fetched == 0
    assert stack.sleep.delays == []
