import asyncio
from datetime import timedelta

import pytest

from config.settings import Settings
from exceptions.database import NotFoundError
from exceptions.remote import RemoteError
from monitoring.jobs import MaintenanceScheduler
from monitoring.status import summarize_heartbeats
from utils.helpers import TimeHelper
from tests.conftest import WEB_MONITOR, status_page_body


HEARTBEAT_PATH = "/api/status-page/heartbeat/main"


class TestSummarizeHeartbeats:
    def test_empty(self):
        summary = summarize_heartbeats([])

        assert summary["status"] is None
        assert summary["uptime_24h"] is None
        assert summary["recent_heartbeats"] == []

    def test_latest_status_ping_and_uptime(self):
        beats = [
            {"status": 1, "time": "t1", "ping": 10},
            {"status": 1, "time": "t2", "ping": None},
            {"status": 0, "time": "t3", "ping": 30},
            {"status": 1, "time": "t4", "ping": 20},
        ]

        summary = summarize_heartbeats(beats)

        assert summary["status"] == 1
        assert summary["last_heartbeat"] == "t4"
        assert summary["avg_ping"] == 20
        assert summary["uptime_24h"] == 75
        assert summary["uptime_30d"] == summary["uptime_24h"]

    def test_recent_window(self):
        beats = [{"status": 1, "time": str(i)} for i in range(30)]

        recent = summarize_heartbeats(beats)["recent_heartbeats"]

        assert len(recent) == 24
        assert recent[-1]["time"] == "29"


class TestMonitorStatusService:
    @pytest.mark.asyncio
    async def test_cache_miss_reads_through(self, stack):
        kuma = await stack.sources.create("Example", "https://ex.com", "main")
        stack.remote.routes[HEARTBEAT_PATH] = (200, {"heartbeatList": {"7": [{"status": 1, "time": "t"}]}})

        first = await stack.status_service.get_cached_heartbeats(7, kuma.id)
        second = await stack.status_service.get_cached_heartbeats(7, kuma.id)

        assert first == second
        assert first[0]["status"] == 1
        assert stack.remote.hits(HEARTBEAT_PATH) == 1
        assert await stack.status_service.get_cached_heartbeats(99, kuma.id) == []

    @pytest.mark.asyncio
    async def test_unknown_source(self, stack):
        with pytest.raises(NotFoundError):
            await stack.status_service.get_cached_heartbeats(7, 404)

    @pytest.mark.asyncio
    async def test_remote_failure_propagates(self, stack):
        kuma = await stack.sources.create("Example", "https://ex.com", "main")

        with pytest.raises(RemoteError):
            await stack.status_service.get_cached_heartbeats(7, kuma.id)

    @pytest.mark.asyncio
    async def test_list_monitors_survives_remote_failure(self, stack):
        kuma = await stack.sources.create("Example", "https://ex.com", "main")
        stack.remote.routes["/api/status-page/main"] = (200, status_page_body([WEB_MONITOR]))
        await stack.engine.sync_source(kuma)
        await stack.heartbeat_cache.clear_heartbeats()

        monitors = await stack.status_service.list_monitors(kuma.id)

        assert len(monitors) == 1
        assert monitors[0]["name"] == "web"
        assert monitors[0]["status"] is None


class TestMaintenanceScheduler:
    @pytest.mark.asyncio
    async def test_builtin_jobs(self, stack):
        jobs = MaintenanceScheduler(stack.db, stack.cache, stack.history, stack.metrics, Settings())

        names = [job["name"] for job in jobs.get_job_stats()]
        assert names == ["cache_sweep", "history_purge", "health_heartbeat"]
        assert await jobs.run_job("missing") is False

    @pytest.mark.asyncio
    async def test_history_purge_job(self, stack):
        kuma = await stack.sources.create("Example", "https://ex.com", "main")
        old = TimeHelper.utc_now() - timedelta(days=90)
        await stack.history.start_run(kuma.id, "sync_old", "completed", old)
        await stack.history.start_run(kuma.id, "sync_new", "completed", TimeHelper.utc_now())
        jobs = MaintenanceScheduler(stack.db, stack.cache, stack.history, stack.metrics, Settings())

        assert await jobs.run_job("history_purge") is True

        runs = await stack.history.list_runs()
        assert [run["run_id"] for run in runs] == ["sync_new"]
        stats = {job["name"]: job for job in jobs.get_job_stats()}
        assert stats["history_purge"]["run_count"] == 1
        assert stats["history_purge"]["last_run"] is not None

    @pytest.mark.asyncio
    async def test_failing_job_is_counted(self, stack):
        jobs = MaintenanceScheduler(stack.db, stack.cache, stack.history, stack.metrics, Settings())

        async def broken():
            raise RuntimeError("nope")

        jobs.register_job("broken", 60, broken)
        await jobs.run_job("broken")

        stats = {job["name"]: job for job in jobs.get_job_stats()}
        assert stats["broken"]["error_count"] == 1
        assert stats["broken"]["run_count"] == 0

    @pytest.mark.asyncio
    async def test_start_runs_due_jobs_and_stops(self, stack):
        jobs = MaintenanceScheduler(stack.db, stack.cache, stack.history, stack.metrics, Settings(), tick_interval=0.01)
        ran = []

        async def tick_job():
            ran.append(True)

        for name in ("cache_sweep", "history_purge", "health_heartbeat"):
            jobs.disable_job(name)
        jobs.register_job("tick_job", 3600, tick_job)

        await jobs.start()
        for _ in range(100):
            if ran:
                break
            await asyncio.sleep(0.01)
        await jobs.stop()

        assert ran == [True]
