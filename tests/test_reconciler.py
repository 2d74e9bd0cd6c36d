from datetime import datetime

import pytest
import pytest_asyncio

from cache.heartbeat import HeartbeatCache
from cache.persistent import PersistentCache
from sync.payloads import HeartbeatPayload, StatusPagePayload
from sync.reconciler import Reconciler
from tests.conftest import WEB_MONITOR, status_page_body


@pytest_asyncio.fixture
async def heartbeat_cache(cache_repo):
    return HeartbeatCache(PersistentCache(cache_repo))


@pytest.fixture
def reconciler(db_manager, monitors_repo, heartbeats_repo, heartbeat_cache):
    return Reconciler(db_manager, monitors_repo, heartbeats_repo, heartbeat_cache)


def payload(monitors, **kwargs):
    return StatusPagePayload.model_validate(status_page_body(monitors, **kwargs))


@pytest.mark.asyncio
async def test_monitor_in_two_groups_is_stored_once(reconciler, monitors_repo, source):
    body = status_page_body([WEB_MONITOR])
    body["publicGroupList"].append({"name": "Again", "monitorList": [dict(WEB_MONITOR, name="web-2")]})

    counts = await reconciler.reconcile_status_page(source, StatusPagePayload.model_validate(body))

    rows = await monitors_repo.list_with_source(source.id)
    assert counts.monitors_updated == 2
    assert len(rows) == 1
    assert rows[0][0].name == "web-2"


@pytest.mark.asyncio
async def test_inline_heartbeats_are_stored(reconciler, heartbeats_repo, source):
    beats = {"7": [
        {"status": 1, "time": "2024-01-01 00:00:00", "ping": 12, "msg": ""},
        {"status": 0, "time": "2024-01-01 00:01:00", "ping": None, "msg": "timeout"},
    ]}

    counts = await reconciler.reconcile_status_page(source, payload([WEB_MONITOR], heartbeat_list=beats))
    again = await reconciler.reconcile_status_page(source, payload([WEB_MONITOR], heartbeat_list=beats))

    stored = await heartbeats_repo.list_for_monitor(7, datetime(2023, 1, 1), source_id=source.id)
    assert counts.heartbeats_fetched == 2
    assert again.heartbeats_fetched == 2
    assert [hb.status for hb in stored] == [0, 1]
    assert stored[0].msg == "timeout"


@pytest.mark.asyncio
async def test_bad_heartbeat_entries_are_skipped(reconciler, heartbeats_repo, source):
    beats = {
        "7": [{"status": 1, "time": "yesterday"}, {"status": "weird", "time": "2024-01-01 00:00:00"}],
        "abc": [{"status": 1, "time": "2024-01-01 00:00:00"}],
    }

    counts = await reconciler.reconcile_status_page(source, payload([WEB_MONITOR], heartbeat_list=beats))

    stored = await heartbeats_repo.list_for_monitor(7, datetime(2023, 1, 1), source_id=source.id)
    assert counts.heartbeats_fetched == 3
    assert [hb.status for hb in stored] == [-1]


@pytest.mark.asyncio
async def test_unpublished_page_stores_nothing(reconciler, monitors_repo, heartbeats_repo, source):
    beats = {"7": [{"status": 1, "time": "2024-01-01 00:00:00"}]}

    counts = await reconciler.reconcile_status_page(
        source, payload([WEB_MONITOR], published=False, heartbeat_list=beats)
    )

    assert counts.monitors_updated == 0
    assert counts.heartbeats_fetched == 0
    assert await monitors_repo.list_with_source(source.id) == []
    assert await heartbeats_repo.count_for_source(source.id) == 0


@pytest.mark.asyncio
async def test_heartbeat_list_goes_to_cache_only(reconciler, heartbeat_cache, heartbeats_repo, source):
    heartbeats = HeartbeatPayload.model_validate({"heartbeatList": {
        "7": [{"status": 1, "time": "2024-01-01 00:00:00"}],
        "8": [],
    }})

    monitors_seen = await reconciler.cache_heartbeat_list(source, heartbeats)

    assert monitors_seen == 2
    cached = await heartbeat_cache.get_heartbeats(source.id)
    assert cached["7"][0]["time"] == "2024-01-01 00:00:00"
    assert await heartbeats_repo.count_for_source(source.id) == 0
