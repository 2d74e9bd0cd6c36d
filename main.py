"""
============================================================================
KUMASYNC - MAIN APPLICATION
============================================================================
Integrates every layer of the sync service:

    Layer 1 — Core & Database
        • Settings (pydantic-settings)
        • SQLAlchemy async engine + models
        • DatabaseManager + Repositories
        • Logging, Validators, Helpers

    Layer 2 — Sync
        • StatusPageClient   — httpx client for the status page protocol
        • Reconciler         — monitor upserts, heartbeat inserts, heartbeat cache
        • SyncEngine         — retrying per-source sync runs
        • SyncScheduler      — batched recurring syncs across all sources

    Layer 3 — Monitoring & Infra
        • SyncMetricsCollector  — run samples, aggregates, health verdict
        • MaintenanceScheduler  — cache sweep, history purge, liveness log
        • AdminServer           — aiohttp administrative JSON API

Startup Order
-------------
1.  Load settings & configure logging
2.  Initialize DatabaseManager (create tables if needed)
3.  Wire up cache, repositories and the sync layer
4.  Start MaintenanceScheduler
5.  Bootstrap SyncScheduler from stored configuration / auto-sync settings
6.  Start AdminServer
7.  Wait for SIGINT / SIGTERM

Shutdown Order (reverse)
-------------------------
    stop admin server → stop sync scheduler → stop maintenance jobs →
    close DB → exit

Author: Professional Development Team
Version: 1.0.0
License: MIT
============================================================================
"""

import asyncio
import signal
import sys
from pathlib import Path
from typing import Optional

# ---------------------------------------------------------------------------
# Path setup: ensure the project root is importable regardless of CWD
# ---------------------------------------------------------------------------
sys.path.insert(0, str(Path(__file__).parent))

from api.server import AdminServer
from cache.heartbeat import HeartbeatCache
from cache.persistent import PersistentCache
from config.settings import get_settings
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
from exceptions.base import KumaSyncException
from monitoring.jobs import MaintenanceScheduler
from monitoring.metrics import SyncMetricsCollector
from monitoring.status import MonitorStatusService
from sync.client import StatusPageClient
from sync.engine import SyncEngine
from sync.reconciler import Reconciler
from sync.scheduler import SyncScheduler
from sync.strategies import StrategyContext
from utils.logger import get_logger, setup_logging


logger = get_logger("Main")


# ============================================================================
# APPLICATION CLASS
# ============================================================================

class KumaSyncApplication:
    """
    Top-level application orchestrator.

    Owns every subsystem and is the single place that knows the startup /
    shutdown order. Subsystems receive their collaborators from here; the
    only cached global is Settings.
    """

    def __init__(self):
        self.settings = get_settings()

        # --- subsystems (populated during startup) ---
        self.db_manager: Optional[DatabaseManager] = None
        self.cache: Optional[PersistentCache] = None
        self.heartbeat_cache: Optional[HeartbeatCache] = None
        self.metrics: Optional[SyncMetricsCollector] = None
        self.engine: Optional[SyncEngine] = None
        self.scheduler: Optional[SyncScheduler] = None
        self.maintenance: Optional[MaintenanceScheduler] = None
        self.admin_server: Optional[AdminServer] = None

        self._stop_event = asyncio.Event()
        self._shutdown_done = False

        self._print_banner()

    # ------------------------------------------------------------------
    # BANNER
    # ------------------------------------------------------------------

    def _print_banner(self) -> None:
        banner = f"""
╔══════════════════════════════════════════════════════════════════════════╗
║                                                                          ║
║          🔄  KUMASYNC STATUS PAGE AGGREGATOR  v{self.settings.app_version:<20}      ║
║                                                                          ║
║   Sync Engine  •  Scheduler  •  Metrics  •  Admin API                    ║
║                                                                          ║
║   Database : {self.settings.database.type.value:<10}   Port : {self.settings.server.port:<8}                          ║
║                                                                          ║
╚══════════════════════════════════════════════════════════════════════════╝
"""
        logger.info(banner)

    # ==================================================================
    # PHASE 1: DATABASE
    # ==================================================================

    async def _init_database(self) -> bool:
        """Initialize the database manager and verify connectivity."""
        logger.info("── Phase 1: Database ─────────────────────────────")
        try:
            self.db_manager = DatabaseManager(self.settings.database)
            await self.db_manager.initialize()

            if not await self.db_manager.check_connection():
                logger.error("✗ Database connection check failed")
                return False

            db_info = await self.db_manager.get_database_info()
            logger.info(
                f"  ✓ Connected to {self.settings.database.type.value}: "
                f"sources={db_info.get('sources', 0)}, "
                f"monitors={db_info.get('monitors', 0)}, "
                f"sync_runs={db_info.get('sync_runs', 0)}"
            )
            return True

        except KumaSyncException as e:
            logger.error(f"  ✗ Database init failed: {e.full_message}")
            return False

    # ==================================================================
    # PHASE 2: SYNC LAYER
    # ==================================================================

    def _init_sync(self) -> None:
        """Wire repositories, cache, engine, metrics and scheduler."""
        logger.info("── Phase 2: Sync Layer ───────────────────────────")
        settings = self.settings
        db = self.db_manager

        sources = SourceRepository(db)
        monitors = MonitorRepository(db)
        heartbeats = HeartbeatRepository(db)
        history = SyncHistoryRepository(db)
        settings_repo = SettingsRepository(db)

        self.cache = PersistentCache(CacheEntryRepository(db), default_ttl=settings.cache.default_ttl)
        self.heartbeat_cache = HeartbeatCache(self.cache, ttl=settings.cache.heartbeat_ttl)

        self.metrics = SyncMetricsCollector(
            SyncMetricRepository(db),
            sources,
            cache_ttl=settings.metrics.cache_ttl,
        )

        client = StatusPageClient(user_agent=settings.sync.user_agent)
        reconciler = Reconciler(db, monitors, heartbeats, self.heartbeat_cache)

        self.engine = SyncEngine(
            client,
            reconciler,
            history,
            self.metrics,
            retry_base_delay=settings.sync.retry_base_delay,
        )
        self.scheduler = SyncScheduler(
            self.engine,
            sources,
            settings_repo,
            StrategyContext(history=history, monitors=monitors, client=client, timeout_ms=settings.sync.timeout_ms),
            sync_settings=settings.sync,
        )
        self.maintenance = MaintenanceScheduler(db, self.cache, history, self.metrics, settings)

        if settings.server.enabled:
            status_service = MonitorStatusService(
                sources,
                monitors,
                heartbeats,
                self.heartbeat_cache,
                client,
                timeout_ms=settings.sync.timeout_ms,
            )
            self.admin_server = AdminServer(
                settings,
                self.scheduler,
                self.engine,
                self.metrics,
                sources,
                status_service,
                self.heartbeat_cache,
                db_manager=db,
            )

        logger.info("  ✓ Engine, SyncScheduler, metrics and maintenance jobs created")

    # ==================================================================
    # FULL STARTUP SEQUENCE
    # ==================================================================

    async def startup(self) -> bool:
        """
        Execute the complete startup sequence.
        Returns False (and logs errors) if any critical phase fails.
        """
        logger.info("=" * 74)
        logger.info("  STARTING UP …")
        logger.info("=" * 74)

        if not await self._init_database():
            return False

        self._init_sync()

        logger.info("── Starting background services ───────────────────")
        await self.maintenance.start()
        await self.scheduler.bootstrap()

        if self.admin_server:
            await self.admin_server.start()

        logger.info("=" * 74)
        logger.info("  ✓ ALL SYSTEMS OPERATIONAL")
        logger.info("=" * 74)
        logger.info(f"  {self.settings.app_name} v{self.settings.app_version}")
        if self.admin_server:
            logger.info(
                f"  Admin API: http://{self.settings.server.host}:{self.settings.server.port}/health"
            )
        scheduler_status = self.scheduler.get_status()
        logger.info(
            f"  Scheduler: running={scheduler_status['running']}, "
            f"interval={scheduler_status['config']['interval_seconds']}s"
        )
        logger.info("=" * 74)

        return True

    # ==================================================================
    # SHUTDOWN SEQUENCE
    # ==================================================================

    async def shutdown(self) -> None:
        """
        Graceful shutdown in reverse order.
        Each step is wrapped so a failure in one subsystem doesn't prevent
        the others from cleaning up.
        """
        if self._shutdown_done:
            return
        self._shutdown_done = True

        logger.info("=" * 74)
        logger.info("  SHUTTING DOWN …")
        logger.info("=" * 74)

        steps = [
            ("AdminServer", self.admin_server.stop if self.admin_server else None),
            ("SyncScheduler", self.scheduler.stop if self.scheduler else None),
            ("MaintenanceScheduler", self.maintenance.stop if self.maintenance else None),
            ("Database", self.db_manager.close if self.db_manager else None),
        ]

        for name, stop in steps:
            if stop is None:
                continue
            try:
                await stop()
                logger.info(f"  ✓ {name} stopped")
            except Exception as e:
                logger.error(f"  ✗ {name} stop error: {e}")

        logger.info("=" * 74)
        logger.info("  ✓ SHUTDOWN COMPLETE")
        logger.info("=" * 74)

    # ==================================================================
    # RUN
    # ==================================================================

    def request_stop(self) -> None:
        self._stop_event.set()

    async def run(self) -> None:
        """Block until a stop is requested."""
        await self._stop_event.wait()


# ============================================================================
# SIGNAL HANDLER SETUP
# ============================================================================

def _install_signal_handlers(loop: asyncio.AbstractEventLoop, app: KumaSyncApplication) -> None:
    """
    Install SIGTERM / SIGINT handlers so the service shuts down gracefully
    even when killed by the OS.
    """
    def _handle_signal() -> None:
        logger.info("  ⚡ Signal received — initiating graceful shutdown…")
        app.request_stop()

    for sig in (signal.SIGTERM, signal.SIGINT):
        try:
            loop.add_signal_handler(sig, _handle_signal)
        except (NotImplementedError, OSError):
            # Not supported on Windows; KeyboardInterrupt still applies
            pass


# ============================================================================
# MAIN ENTRY POINT
# ============================================================================

async def main() -> None:
    """
    Async main — creates the app, starts it, and runs until shutdown.
    """
    setup_logging(get_settings().logging)

    app = KumaSyncApplication()
    _install_signal_handlers(asyncio.get_running_loop(), app)

    try:
        if not await app.startup():
            logger.error("  ✗ Startup failed — exiting")
            await app.shutdown()
            sys.exit(1)

        await app.run()
    finally:
        await app.shutdown()


# ============================================================================
# SCRIPT ENTRY POINT
# ============================================================================

def _run() -> None:
    try:
        asyncio.run(main())
    except KeyboardInterrupt:
        pass


if __name__ == "__main__":
    _run()
