"""
============================================================================
KUMASYNC - ADMIN HTTP SERVER
============================================================================
aiohttp server exposing the administrative JSON surface:

    GET    /health                          process liveness + uptime
    GET    /api/sync-status                 scheduler, engine and health state
    POST   /api/sync                        sync one source or all sources now
    POST   /api/scheduler                   start | stop | status | update-config
    GET    /api/metrics                     aggregates over 24h | 7d | 30d
    GET    /api/sync-history                recent sync runs
    GET    /api/sources                     list sources
    POST   /api/sources                     create a source
    GET    /api/sources/{id}                one source
    PUT    /api/sources/{id}                update a source
    DELETE /api/sources/{id}                delete a source and its monitors
    GET    /api/monitors                    monitors with heartbeat status
    GET    /api/heartbeats                  cached heartbeats of one monitor
    GET    /api/monitors/{id}/heartbeats    stored heartbeats of one monitor

Every error response is ``{"success": false, "error": "<message>"}``.
When an admin token is configured, mutating routes require the header
``Authorization: Bearer <token>``.

Author: Professional Development Team
Version: 1.0.0
License: MIT
============================================================================
"""

import hmac
import time
from typing import Any, Dict, Optional

from aiohttp import web

from cache.heartbeat import HeartbeatCache
from config.constants import Limits, SchedulerAction, TimeRange
from config.settings import Settings
from database.manager import DatabaseManager
from database.repositories import SourceRepository
from exceptions.base import KumaSyncException, UnauthorizedError
from exceptions.validation import InvalidFormatError, MissingFieldError
from monitoring.metrics import SyncMetricsCollector
from monitoring.status import MonitorStatusService
from sync.engine import SyncEngine
from sync.scheduler import SchedulerConfigUpdate, SyncScheduler
from sync.strategies import StrategyKind
from utils.helpers import TimeHelper
from utils.logger import get_logger
from utils.validators import DataValidator, SourceValidator


logger = get_logger("AdminServer")

MAX_HEARTBEAT_HOURS = 24 * 30


def error_response(message: str, status: int) -> web.Response:
    return web.json_response({"success": False, "error": message}, status=status)


@web.middleware
async def error_middleware(request: web.Request, handler) -> web.StreamResponse:
    """Turn every failure into the structured JSON error."""
    try:
        return await handler(request)
    except web.HTTPException as e:
        if e.status < 400:
            raise
        return error_response(e.reason, e.status)
    except KumaSyncException as e:
        if e.http_status >= 500:
            logger.error(f"{request.method} {request.path} failed: {e.log_format()}")
        else:
            logger.debug(f"{request.method} {request.path} rejected ({e.http_status}): {e}")
        return error_response(str(e), e.http_status)
    except Exception as e:
        logger.exception(f"Unhandled error on {request.method} {request.path}: {e}")
        return error_response("Internal server error", 500)


class AdminServer:
    """
    Administrative HTTP server.

    Attributes
    ----------
    app : aiohttp.web.Application
    _runner : aiohttp.web.AppRunner
    _site : aiohttp.web.TCPSite
    _start_time : float          — epoch seconds when the server was created
    """

    def __init__(
        self,
        settings: Settings,
        scheduler: SyncScheduler,
        engine: SyncEngine,
        metrics: SyncMetricsCollector,
        sources: SourceRepository,
        status_service: MonitorStatusService,
        heartbeat_cache: HeartbeatCache,
        db_manager: Optional[DatabaseManager] = None,
    ):
        self.settings = settings
        self.scheduler = scheduler
        self.engine = engine
        self.metrics = metrics
        self.sources = sources
        self.status_service = status_service
        self.heartbeat_cache = heartbeat_cache
        self.db_manager = db_manager

        self._runner: Optional[web.AppRunner] = None
        self._site: Optional[web.TCPSite] = None
        self._start_time = time.time()

        self.app = web.Application(middlewares=[error_middleware])
        self._register_routes()

    def _register_routes(self) -> None:
        router = self.app.router
        router.add_get("/health", self._handle_health)
        router.add_get("/api/sync-status", self._handle_sync_status)
        router.add_post("/api/sync", self._handle_sync)
        router.add_post("/api/scheduler", self._handle_scheduler)
        router.add_get("/api/metrics", self._handle_metrics)
        router.add_get("/api/sync-history", self._handle_sync_history)
        router.add_get("/api/sources", self._handle_list_sources)
        router.add_post("/api/sources", self._handle_create_source)
        router.add_get("/api/sources/{id}", self._handle_get_source)
        router.add_put("/api/sources/{id}", self._handle_update_source)
        router.add_delete("/api/sources/{id}", self._handle_delete_source)
        router.add_get("/api/monitors", self._handle_monitors)
        router.add_get("/api/heartbeats", self._handle_cached_heartbeats)
        router.add_get("/api/monitors/{id}/heartbeats", self._handle_monitor_heartbeats)

    # ------------------------------------------------------------------
    # LIFECYCLE
    # ------------------------------------------------------------------

    async def start(self) -> None:
        """Bind and start serving."""
        host, port = self.settings.server.host, self.settings.server.port
        self._start_time = time.time()
        self._runner = web.AppRunner(self.app)
        await self._runner.setup()
        self._site = web.TCPSite(self._runner, host, port)
        await self._site.start()
        logger.info(f"✓ Admin server listening on {host}:{port}")

    async def stop(self) -> None:
        """Gracefully shut down the server."""
        if self._runner:
            await self._runner.cleanup()
            self._runner = None
            self._site = None
            logger.info("✓ Admin server stopped")

    # ------------------------------------------------------------------
    # REQUEST HELPERS
    # ------------------------------------------------------------------

    def _require_admin(self, request: web.Request) -> None:
        token = self.settings.server.admin_token
        if token is None:
            return

        expected = f"Bearer {token.get_secret_value()}"
        provided = request.headers.get("Authorization", "")
        if not hmac.compare_digest(provided.encode(), expected.encode()):
            raise UnauthorizedError(action=f"{request.method} {request.path}")

    @staticmethod
    async def _read_json(request: web.Request) -> Dict[str, Any]:
        if not request.body_exists:
            return {}

        try:
            body = await request.json()
        except ValueError:
            raise InvalidFormatError("Request body must be valid JSON", expected="object")

        if body is None:
            return {}
        if not isinstance(body, dict):
            raise InvalidFormatError("Request body must be a JSON object", expected="object")
        return body

    @staticmethod
    def _path_id(request: web.Request) -> int:
        return DataValidator.parse_int(request.match_info["id"], "id")

    # ------------------------------------------------------------------
    # STATUS ROUTES
    # ------------------------------------------------------------------

    async def _handle_health(self, request: web.Request) -> web.Response:
        """GET /health — process liveness."""
        uptime_seconds = time.time() - self._start_time
        health = {
            "status": "ok",
            "uptime_seconds": round(uptime_seconds, 1),
            "uptime_human": TimeHelper.seconds_to_human_readable(int(uptime_seconds)),
            "timestamp": TimeHelper.to_iso(TimeHelper.utc_now()),
            "app_name": self.settings.app_name,
            "version": self.settings.app_version,
        }
        if self.db_manager is not None:
            health["database"] = await self.db_manager.check_connection()
        return web.json_response(health)

    async def _handle_sync_status(self, request: web.Request) -> web.Response:
        return web.json_response({
            "success": True,
            "scheduler": self.scheduler.get_status(),
            "sync_engine": self.engine.get_sync_status(),
            "health": await self.metrics.get_health_check(),
            "timestamp": TimeHelper.to_iso(TimeHelper.utc_now()),
        })

    async def _handle_metrics(self, request: web.Request) -> web.Response:
        time_range = request.query.get("range", TimeRange.LAST_24H.value)
        source_id = DataValidator.parse_int(request.query.get("source_id"), "source_id")

        payload: Dict[str, Any] = {
            "success": True,
            "time_range": self.metrics.parse_range(time_range).value,
            "overall": await self.metrics.get_overall_metrics(time_range),
            "performance": await self.metrics.get_performance_metrics(time_range),
            "errors": await self.metrics.get_error_breakdown(time_range),
        }
        if source_id is not None:
            payload["source"] = await self.metrics.get_source_metrics(source_id, time_range)
        return web.json_response(payload)

    async def _handle_sync_history(self, request: web.Request) -> web.Response:
        source_id = DataValidator.parse_int(request.query.get("source_id"), "source_id")
        limit = DataValidator.parse_int(request.query.get("limit"), "limit", Limits.SYNC_HISTORY_DEFAULT)
        limit = min(max(limit, 1), Limits.SYNC_HISTORY_MAX)

        history = await self.engine.get_sync_history(source_id=source_id, limit=limit)
        return web.json_response({"success": True, "history": history})

    # ------------------------------------------------------------------
    # SYNC & SCHEDULER ROUTES
    # ------------------------------------------------------------------

    async def _handle_sync(self, request: web.Request) -> web.Response:
        """POST /api/sync — ``{source_id?}``."""
        self._require_admin(request)
        body = await self._read_json(request)
        source_id = DataValidator.parse_int(body.get("source_id"), "source_id")

        if source_id is not None:
            results = [await self.scheduler.sync_source_now(source_id)]
        else:
            results = await self.scheduler.sync_all_sources_now()

        return web.json_response({
            "success": True,
            "results": [result.to_dict() for result in results],
        })

    async def _handle_scheduler(self, request: web.Request) -> web.Response:
        """POST /api/scheduler — ``{action, interval?, enabled?, concurrent_syncs?, strategy?}``."""
        body = await self._read_json(request)

        try:
            action = SchedulerAction(body.get("action"))
        except ValueError:
            raise InvalidFormatError("Invalid action", field="action", expected="start|stop|status|update-config")

        if action == SchedulerAction.STATUS:
            return web.json_response({"success": True, "status": self.scheduler.get_status()})

        self._require_admin(request)

        if action == SchedulerAction.STOP:
            await self.scheduler.stop()
            message = "Scheduler stopped"
        elif action == SchedulerAction.START:
            if body.get("interval") in (None, 0, ""):
                body["interval"] = self.scheduler.sync_settings.default_interval
            await self.scheduler.start(self._config_update(body))
            message = "Scheduler started"
        else:
            await self.scheduler.update_config(self._config_update(body))
            message = "Configuration updated"

        return web.json_response({
            "success": True,
            "message": message,
            "status": self.scheduler.get_status(),
        })

    def _config_update(self, body: Dict[str, Any]) -> SchedulerConfigUpdate:
        fields: Dict[str, Any] = {}

        if body.get("interval") is not None:
            fields["interval_seconds"] = DataValidator.require_interval(
                body["interval"], self.scheduler.min_interval
            )

        if body.get("enabled") is not None:
            if not isinstance(body["enabled"], bool):
                raise InvalidFormatError("enabled must be a boolean", field="enabled", expected="boolean")
            fields["enabled"] = body["enabled"]

        concurrent = DataValidator.parse_int(body.get("concurrent_syncs"), "concurrent_syncs")
        if concurrent is not None:
            if concurrent < 1:
                raise InvalidFormatError(
                    "concurrent_syncs must be at least 1", field="concurrent_syncs", expected="integer >= 1"
                )
            fields["concurrent_syncs"] = concurrent

        if body.get("strategy") is not None:
            try:
                fields["strategy"] = StrategyKind(body["strategy"])
            except ValueError:
                raise InvalidFormatError(
                    f"Unknown sync strategy {body['strategy']!r}",
                    field="strategy",
                    expected="|".join(kind.value for kind in StrategyKind),
                )

        return SchedulerConfigUpdate(**fields)

    # ------------------------------------------------------------------
    # SOURCE ROUTES
    # ------------------------------------------------------------------

    async def _handle_list_sources(self, request: web.Request) -> web.Response:
        sources = await self.sources.list_all()
        return web.json_response({"success": True, "sources": [source.to_dict() for source in sources]})

    async def _handle_create_source(self, request: web.Request) -> web.Response:
        self._require_admin(request)
        data = SourceValidator.validate_source(await self._read_json(request))

        source = await self.sources.create(data["name"], data["url"], data["slug"])
        return web.json_response({"success": True, "source": source.to_dict()}, status=201)

    async def _handle_get_source(self, request: web.Request) -> web.Response:
        source = await self.sources.get_or_raise(self._path_id(request))
        return web.json_response({"success": True, "source": source.to_dict()})

    async def _handle_update_source(self, request: web.Request) -> web.Response:
        self._require_admin(request)
        source_id = self._path_id(request)
        data = SourceValidator.validate_source(await self._read_json(request), partial=True)

        source = await self.sources.update(source_id, **data)
        await self.heartbeat_cache.clear_heartbeats(source_id)
        return web.json_response({"success": True, "source": source.to_dict()})

    async def _handle_delete_source(self, request: web.Request) -> web.Response:
        self._require_admin(request)
        source_id = self._path_id(request)

        await self.sources.delete(source_id)
        await self.heartbeat_cache.clear_heartbeats(source_id)
        return web.json_response({"success": True})

    # ------------------------------------------------------------------
    # MONITOR & HEARTBEAT ROUTES
    # ------------------------------------------------------------------

    async def _handle_monitors(self, request: web.Request) -> web.Response:
        source_id = DataValidator.parse_int(request.query.get("source_id"), "source_id")
        monitors = await self.status_service.list_monitors(source_id)
        return web.json_response({"success": True, "monitors": monitors})

    async def _handle_cached_heartbeats(self, request: web.Request) -> web.Response:
        monitor_id = DataValidator.parse_int(request.query.get("monitor_id"), "monitor_id")
        source_id = DataValidator.parse_int(request.query.get("source_id"), "source_id")
        if monitor_id is None or source_id is None:
            raise MissingFieldError(
                "monitor_id and source_id are required",
                fields=[name for name, value in (("monitor_id", monitor_id), ("source_id", source_id)) if value is None],
            )

        heartbeats = await self.status_service.get_cached_heartbeats(monitor_id, source_id)
        return web.json_response({"success": True, "heartbeats": heartbeats})

    async def _handle_monitor_heartbeats(self, request: web.Request) -> web.Response:
        monitor_id = self._path_id(request)
        source_id = DataValidator.parse_int(request.query.get("source_id"), "source_id")
        hours = DataValidator.parse_int(request.query.get("hours"), "hours", Limits.HEARTBEAT_QUERY_HOURS)
        hours = min(max(hours, 1), MAX_HEARTBEAT_HOURS)

        heartbeats = await self.status_service.get_monitor_heartbeats(monitor_id, hours=hours, source_id=source_id)
        return web.json_response({"success": True, "heartbeats": heartbeats})
