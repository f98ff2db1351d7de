"""
Orchestrator - Runtime.

============================================================
RESPONSIBILITY
============================================================
Composition root of the pipeline process.

- Builds every component once from AppSettings
  (engine, sessions, clock, key pool, HTTP clients, schedulers,
  publisher)
- Starts the feed schedulers and the publisher poller
- Handles signals (SIGINT, SIGTERM)
- Shuts down cleanly: cancels every task handle, closes the
  broadcaster and HTTP client, disposes the engine

============================================================
"""

import asyncio
import json
import logging
import signal
import sys
from typing import Any, Dict, List, Optional

import httpx
from sqlalchemy.engine import Engine

from core.clock import ClockProtocol, SystemClock
from core.config import AppSettings
from data_ingestion.ingestion_service import IngestionService
from data_ingestion.key_rotator import ApiKeyRotator
from monitoring.notifications.telegram import TelegramBroadcaster
from publishing.poller import PublisherPoller
from storage.database import (
    create_all_tables,
    create_database_engine,
    create_session_factory,
    verify_database_connection,
)


# ============================================================
# LOGGING SETUP
# ============================================================

def setup_logging(
    level: str = "INFO",
    log_format: str = "json",
) -> logging.Logger:
    """
    Set up structured logging.

    Args:
        level: Log level
        log_format: Output format (json or text)

    Returns:
        Configured runtime logger
    """
    log_level = getattr(logging, level.upper(), logging.INFO)

    if log_format == "json":
        formatter = logging.Formatter(
            json.dumps({
                "timestamp": "%(asctime)s",
                "level": "%(levelname)s",
                "logger": "%(name)s",
                "message": "%(message)s",
            })
        )
    else:
        formatter = logging.Formatter(
            "%(asctime)s | %(levelname)-8s | %(name)s | %(message)s"
        )

    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(formatter)

    root_logger = logging.getLogger()
    root_logger.setLevel(log_level)
    root_logger.handlers = [handler]

    # httpx logs every request URL at INFO
    logging.getLogger("httpx").setLevel(max(log_level, logging.WARNING))

    return logging.getLogger("runtime")


# ============================================================
# RUNTIME
# ============================================================

class Runtime:
    """
    Owns every long-lived component of the process.

    Usage:
        runtime = Runtime(settings)
        await runtime.run_forever()
    """

    def __init__(
        self,
        settings: AppSettings,
        clock: Optional[ClockProtocol] = None,
        engine: Optional[Engine] = None,
        http_client: Optional[httpx.AsyncClient] = None,
        broadcaster: Optional[TelegramBroadcaster] = None,
    ) -> None:
        self._settings = settings
        self._logger = logging.getLogger("runtime")

        self._clock = clock or SystemClock()
        self._engine = engine or create_database_engine(settings.database)
        self._session_factory = create_session_factory(self._engine)
        self._rotator = ApiKeyRotator(settings.provider.api_keys)
        self._http_client = http_client or httpx.AsyncClient(
            timeout=settings.provider.timeout_seconds
        )
        self._broadcaster = broadcaster or TelegramBroadcaster(settings.telegram)

        self._ingestion = IngestionService(
            settings=settings,
            session_factory=self._session_factory,
            rotator=self._rotator,
            clock=self._clock,
            client=self._http_client,
        )
        self._publisher = PublisherPoller(
            session_factory=self._session_factory,
            broadcaster=self._broadcaster,
            clock=self._clock,
            config=settings.publisher,
        )

        self._handles: List[asyncio.Task] = []
        self._shutdown_event: Optional[asyncio.Event] = None
        self._running = False
        self._closed = False

    @property
    def ingestion(self) -> IngestionService:
        return self._ingestion

    @property
    def publisher(self) -> PublisherPoller:
        return self._publisher

    @property
    def broadcaster(self) -> TelegramBroadcaster:
        return self._broadcaster

    @property
    def session_factory(self):
        return self._session_factory

    @property
    def clock(self) -> ClockProtocol:
        return self._clock

    @property
    def is_running(self) -> bool:
        return self._running

    # --------------------------------------------------------
    # Database
    # --------------------------------------------------------

    def initialize_database(self) -> None:
        """Verify connectivity and create missing tables."""
        verify_database_connection(self._engine)
        create_all_tables(self._engine)

    # --------------------------------------------------------
    # Lifecycle
    # --------------------------------------------------------

    def start(self) -> List[asyncio.Task]:
        """
        Start the schedulers and the publisher.

        Returns:
            Every task handle started
        """
        if self._running:
            self._logger.warning("Runtime already running")
            return list(self._handles)

        self._logger.info("=== RUNTIME STARTUP ===")
        if self._rotator.key_count == 0:
            self._logger.error("No API keys configured, every feed tick will fail")

        self._handles = self._ingestion.start_all()
        if self._settings.publisher.enabled:
            self._handles.append(self._publisher.start())
        else:
            self._logger.info("Publisher disabled")

        self._running = True
        self._logger.info(f"=== RUNTIME STARTED ({len(self._handles)} tasks) ===")
        return list(self._handles)

    async def stop(self) -> None:
        """Cancel all tasks and release resources. Safe to call twice."""
        if self._closed:
            return
        self._closed = True

        self._logger.info("=== RUNTIME SHUTDOWN ===")
        await self._ingestion.stop_all()
        await self._publisher.stop()

        for handle in self._handles:
            if not handle.done():
                handle.cancel()
        await asyncio.gather(*self._handles, return_exceptions=True)
        self._handles = []

        await self._broadcaster.close()
        await self._http_client.aclose()
        self._engine.dispose()

        self._running = False
        if self._shutdown_event is not None:
            self._shutdown_event.set()
        self._logger.info("=== RUNTIME SHUTDOWN COMPLETE ===")

    def request_shutdown(self) -> None:
        if self._shutdown_event is not None:
            self._shutdown_event.set()

    async def run_forever(self) -> None:
        """Start, wait for SIGINT/SIGTERM, then stop."""
        self._shutdown_event = asyncio.Event()
        self._install_signal_handlers()
        try:
            self.start()
            await self._shutdown_event.wait()
        finally:
            self._restore_signal_handlers()
            await self.stop()

    # --------------------------------------------------------
    # Signal Handlers
    # --------------------------------------------------------

    def _install_signal_handlers(self) -> None:
        """Install signal handlers for graceful shutdown."""
        if sys.platform == "win32":
            signal.signal(signal.SIGINT, self._signal_handler)
            return

        loop = asyncio.get_running_loop()
        for sig in (signal.SIGTERM, signal.SIGINT):
            loop.add_signal_handler(sig, self._on_signal, sig)

    def _restore_signal_handlers(self) -> None:
        if sys.platform == "win32":
            return
        loop = asyncio.get_running_loop()
        for sig in (signal.SIGTERM, signal.SIGINT):
            loop.remove_signal_handler(sig)

    def _on_signal(self, sig: signal.Signals) -> None:
        self._logger.info(f"Received signal {sig.name}")
        self.request_shutdown()

    def _signal_handler(self, signum: int, frame: Any) -> None:
        """Synchronous signal handler (Windows)."""
        self._logger.info(f"Received signal {signum}")
        loop = asyncio.get_event_loop()
        loop.call_soon_threadsafe(self.request_shutdown)

    def get_status(self) -> Dict[str, Any]:
        return {
            "running": self._running,
            "api_keys": self._rotator.key_count,
            "ingestion": self._ingestion.get_status(),
            "publisher": self._publisher.get_status(),
            "telegram": self._broadcaster.get_status(),
        }
