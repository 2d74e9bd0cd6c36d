"""
Shared fixtures: a temp-file SQLite database, repositories, a stubbed
remote status page served through httpx.MockTransport, and a fully wired
sync stack on top of them.
"""

import asyncio
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Callable, Dict, List, Optional

import httpx
import pytest
import pytest_asyncio

from cache.heartbeat import HeartbeatCache
from cache.persistent import PersistentCache
from config.settings import DatabaseSettings, SyncSettings
from database.manager import DatabaseManager
from database.repositories import (
    CacheEntryRepository,
    HeartbeatRepository,
    MonitorRepository,
    SettingsRepository,
    SourceRepository,
    SyncHistoryRepository,
    SyncMetricRepository,
)
from monitoring.metrics import SyncMetricsCollector
from monitoring.status import MonitorStatusService
from sync.client import StatusPageClient
from sync.engine import SyncEngine
from sync.reconciler import Reconciler
from sync.scheduler import SyncScheduler
from sync.strategies import StrategyContext


# ============================================================================
# TEST DOUBLES
# ============================================================================

class FakeClock:
    """Epoch seconds that only move when told to."""

    def __init__(self, now: float = 1_700_000_000.0):
        self.now = now

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class RecordingSleep:
    """Sleep replacement recording requested delays without waiting."""

    def __init__(self):
        self.delays: List[float] = []

    async def __call__(self, delay: float) -> None:
        self.delays.append(delay)
        await asyncio.sleep(0)


class RemoteStub:
    """
    Remote status page keyed by URL path.

    A route maps to a ``(status, json_body)`` tuple, an ``httpx.Response``,
    an exception to raise, or a callable taking the request.
    """

    def __init__(self):
        self.routes: Dict[str, Any] = {}
        self.requests: List[httpx.Request] = []

    def handler(self, request: httpx.Request):
        self.requests.append(request)
        route = self.routes.get(request.url.path)

        if route is None:
            return httpx.Response(404)
        if isinstance(route, Exception):
            raise route
        if isinstance(route, httpx.Response):
            return route
        if isinstance(route, tuple):
            status, body = route
            return httpx.Response(status, json=body)
        return route(request)

    def transport(self) -> httpx.MockTransport:
        return httpx.MockTransport(self.handler)

    def hits(self, path: str) -> int:
        return sum(1 for request in self.requests if request.url.path == path)


def status_page_body(
    monitors: List[Dict[str, Any]],
    published: bool = True,
    heartbeat_list: Optional[Dict[str, List[Dict[str, Any]]]] = None,
) -> Dict[str, Any]:
    body: Dict[str, Any] = {
        "config": {"slug": "main", "title": "Main", "published": published},
        "publicGroupList": [{"name": "Services", "monitorList": monitors}],
    }
    if heartbeat_list is not None:
        body["heartbeatList"] = heartbeat_list
    return body


WEB_MONITOR = {"id": 7, "name": "web", "url": "https://ex.com/", "type": "http", "interval": 60}


# ============================================================================
# DATABASE FIXTURES
# ============================================================================

@pytest_asyncio.fixture
async def db_manager(tmp_path):
    manager = DatabaseManager(DatabaseSettings(type="sqlite", sqlite_path=tmp_path / "kumasync.db"))
    await manager.initialize()
    yield manager
    await manager.close()


@pytest.fixture
def sources_repo(db_manager):
    return SourceRepository(db_manager)


@pytest.fixture
def monitors_repo(db_manager):
    return MonitorRepository(db_manager)


@pytest.fixture
def heartbeats_repo(db_manager):
    return HeartbeatRepository(db_manager)


@pytest.fixture
def history_repo(db_manager):
    return SyncHistoryRepository(db_manager)


@pytest.fixture
def metric_repo(db_manager):
    return SyncMetricRepository(db_manager)


@pytest.fixture
def cache_repo(db_manager):
    return CacheEntryRepository(db_manager)


@pytest.fixture
def settings_repo(db_manager):
    return SettingsRepository(db_manager)


@pytest_asyncio.fixture
async def source(sources_repo):
    return await sources_repo.create("Example", "https://ex.com", "main")


# ============================================================================
# SYNC STACK
# ============================================================================

@dataclass
class SyncStack:
    db: DatabaseManager
    remote: RemoteStub
    sleep: RecordingSleep
    sources: SourceRepository
    monitors: MonitorRepository
    heartbeats: HeartbeatRepository
    history: SyncHistoryRepository
    settings_repo: SettingsRepository
    cache: PersistentCache
    heartbeat_cache: HeartbeatCache
    metrics: SyncMetricsCollector
    client: StatusPageClient
    engine: SyncEngine
    scheduler: SyncScheduler
    status_service: MonitorStatusService
    events: List[Any] = field(default_factory=list)


@pytest_asyncio.fixture
async def stack(db_manager):
    remote = RemoteStub()
    sleep = RecordingSleep()

    sources = SourceRepository(db_manager)
    monitors = MonitorRepository(db_manager)
    heartbeats = HeartbeatRepository(db_manager)
    history = SyncHistoryRepository(db_manager)
    settings_repo = SettingsRepository(db_manager)

    cache = PersistentCache(CacheEntryRepository(db_manager))
    heartbeat_cache = HeartbeatCache(cache)
    metrics = SyncMetricsCollector(SyncMetricRepository(db_manager), sources)

    client = StatusPageClient(transport=remote.transport())
    reconciler = Reconciler(db_manager, monitors, heartbeats, heartbeat_cache)
    engine = SyncEngine(client, reconciler, history, metrics, retry_base_delay=1.0, sleep=sleep)

    scheduler = SyncScheduler(
        engine,
        sources,
        settings_repo,
        StrategyContext(history=history, monitors=monitors, client=client),
        sync_settings=SyncSettings(warmup_seconds=600, batch_pause_seconds=0),
    )
    status_service = MonitorStatusService(sources, monitors, heartbeats, heartbeat_cache, client)

    built = SyncStack(
        db=db_manager,
        remote=remote,
        sleep=sleep,
        sources=sources,
        monitors=monitors,
        heartbeats=heartbeats,
        history=history,
        settings_repo=settings_repo,
        cache=cache,
        heartbeat_cache=heartbeat_cache,
        metrics=metrics,
        client=client,
        engine=engine,
        scheduler=scheduler,
        status_service=status_service,
    )
    engine.on_progress(built.events.append)

    yield built
    await scheduler.stop()


def fixed_clock(value: datetime) -> Callable[[], datetime]:
    return lambda: value
