from datetime import datetime, timedelta

import pytest

from database.models import Heartbeat, Monitor, Source, SyncHistory
from exceptions.database import ConflictError, NotFoundError
from utils.helpers import TimeHelper


def monitor_row(source_id, monitor_id=7, name="web"):
    return {
        "id": monitor_id,
        "source_id": source_id,
        "name": name,
        "url": "https://ex.com/",
        "type": "http",
        "interval": 60,
    }


class TestSourceRepository:
    @pytest.mark.asyncio
    async def test_create_and_list(self, sources_repo, source):
        listed = await sources_repo.list_all()

        assert [s.id for s in listed] == [source.id]
        assert listed[0].to_dict()["slug"] == "main"

    @pytest.mark.asyncio
    async def test_duplicate_url_slug_conflicts(self, sources_repo, source):
        with pytest.raises(ConflictError) as exc_info:
            await sources_repo.create("Other", "https://ex.com", "main")

        assert exc_info.value.message == "A source with this URL and slug combination already exists"
        assert exc_info.value.http_status == 409

    @pytest.mark.asyncio
    async def test_same_url_other_slug_is_allowed(self, sources_repo, source):
        other = await sources_repo.create("Other", "https://ex.com", "second")
        assert other.id != source.id

    @pytest.mark.asyncio
    async def test_partial_update(self, sources_repo, source):
        updated = await sources_repo.update(source.id, name="Renamed")

        assert updated.name == "Renamed"
        assert updated.slug == "main"

    @pytest.mark.asyncio
    async def test_missing_source(self, sources_repo):
        with pytest.raises(NotFoundError):
            await sources_repo.get_or_raise(999)
        with pytest.raises(NotFoundError):
            await sources_repo.update(999, name="x")
        with pytest.raises(NotFoundError):
            await sources_repo.delete(999)

    @pytest.mark.asyncio
    async def test_delete_cascades(self, db_manager, sources_repo, monitors_repo, heartbeats_repo, history_repo, source):
        async with db_manager.session() as session:
            await monitors_repo.upsert_many(session, [monitor_row(source.id)])
            await heartbeats_repo.insert_ignore_many(session, [{
                "monitor_id": 7,
                "source_id": source.id,
                "timestamp": datetime(2024, 1, 1),
                "status": 1,
            }])
        await history_repo.start_run(source.id, "sync_1_abc", "pending", TimeHelper.utc_now())

        await sources_repo.delete(source.id)

        assert await sources_repo.count(Monitor) == 0
        assert await sources_repo.count(Heartbeat) == 0
        assert await sources_repo.count(SyncHistory) == 0
        assert await sources_repo.count(Source) == 0


class TestMonitorRepository:
    @pytest.mark.asyncio
    async def test_upsert_overwrites_fields(self, db_manager, monitors_repo, source):
        async with db_manager.session() as session:
            await monitors_repo.upsert_many(session, [monitor_row(source.id)])
        async with db_manager.session() as session:
            await monitors_repo.upsert_many(session, [monitor_row(source.id, name="web-renamed")])

        rows = await monitors_repo.list_with_source(source.id)

        assert len(rows) == 1
        monitor, source_name = rows[0]
        assert monitor.name == "web-renamed"
        assert source_name == "Example"

    @pytest.mark.asyncio
    async def test_same_monitor_id_in_two_sources(self, db_manager, sources_repo, monitors_repo, source):
        other = await sources_repo.create("Other", "https://other.com", "main")
        async with db_manager.session() as session:
            await monitors_repo.upsert_many(session, [monitor_row(source.id), monitor_row(other.id)])

        assert await monitors_repo.find_sources_for_monitor(7) == [source.id, other.id]

    @pytest.mark.asyncio
    async def test_changed_since_and_snapshot(self, db_manager, monitors_repo, source):
        before = TimeHelper.utc_now() - timedelta(seconds=1)
        async with db_manager.session() as session:
            await monitors_repo.upsert_many(session, [monitor_row(source.id)])

        assert await monitors_repo.changed_since(source.id, before)
        assert not await monitors_repo.changed_since(source.id, TimeHelper.utc_now() + timedelta(hours=1))
        assert (await monitors_repo.get_snapshot(source.id))[7]["url"] == "https://ex.com/"


class TestHeartbeatRepository:
    @pytest.mark.asyncio
    async def test_duplicates_are_ignored(self, db_manager, heartbeats_repo, source):
        beat = {"monitor_id": 7, "source_id": source.id, "timestamp": datetime(2024, 1, 1), "status": 1}

        async with db_manager.session() as session:
            await heartbeats_repo.insert_ignore_many(session, [beat])
        async with db_manager.session() as session:
            await heartbeats_repo.insert_ignore_many(session, [dict(beat, status=0)])

        stored = await heartbeats_repo.list_for_monitor(7, datetime(2023, 12, 31), source_id=source.id)
        assert [hb.status for hb in stored] == [1]
        assert await heartbeats_repo.count_for_source(source.id) == 1


class TestSyncHistoryRepository:
    @pytest.mark.asyncio
    async def test_runs_carry_source_name(self, history_repo, source):
        started = TimeHelper.utc_now()
        await history_repo.start_run(source.id, "sync_1_abc", "pending", started)
        await history_repo.finish_run("sync_1_abc", "completed", 3, 5, None, started, 120)

        runs = await history_repo.list_runs()

        assert runs[0]["source_name"] == "Example"
        assert runs[0]["status"] == "completed"
        assert runs[0]["monitors_updated"] == 3
        assert await history_repo.last_started_at(source.id) == started

    @pytest.mark.asyncio
    async def test_last_started_ignores_failed_runs(self, history_repo, source):
        await history_repo.start_run(source.id, "sync_1_abc", "pending", TimeHelper.utc_now())
        await history_repo.finish_run("sync_1_abc", "failed", 0, 0, "boom", TimeHelper.utc_now(), 5)

        assert await history_repo.last_started_at(source.id) is None

    @pytest.mark.asyncio
    async def test_purge(self, history_repo, source):
        await history_repo.start_run(source.id, "old", "pending", datetime(2020, 1, 1))
        await history_repo.start_run(source.id, "new", "pending", TimeHelper.utc_now())

        assert await history_repo.purge_older_than(datetime(2021, 1, 1)) == 1
        assert [run["run_id"] for run in await history_repo.list_runs()] == ["new"]


class TestSettingsRepository:
    @pytest.mark.asyncio
    async def test_set_overwrites(self, settings_repo):
        await settings_repo.set("autoSyncEnabled", "false")
        await settings_repo.set("autoSyncEnabled", "true")

        assert await settings_repo.get("autoSyncEnabled") == "true"
        assert await settings_repo.get_many(["autoSyncEnabled", "missing"]) == {
            "autoSyncEnabled": "true",
            "missing": None,
        }
