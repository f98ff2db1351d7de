"""
Data Ingestion - Ingestion Service.

============================================================
RESPONSIBILITY
============================================================
Owns the three feed schedulers.

- Builds one collector + scheduler per enabled feed
- Starts and stops them together
- Administrative force-update of a single feed
- Reports per-feed status (watermark, last result, metrics)

============================================================
DESIGN PRINCIPLES
============================================================
- Every collaborator is injected (no module singletons)
- Failure isolation between feeds: each runs on its own timer
- No cross-feed transactions

============================================================
"""

import asyncio
import logging
from typing import Any, Dict, List, Optional

import httpx

from core.clock import ClockProtocol
from core.config import AppSettings
from data_ingestion.collectors import COLLECTOR_CLASSES
from data_ingestion.key_rotator import ApiKeyRotator
from data_ingestion.scheduler import FeedScheduler
from data_ingestion.types import FeedKind, IngestionResult
from storage.database import SessionFactory
from storage.repositories.update_gate import UpdateGate


class UnknownFeedError(KeyError):
    """Raised for a feed id that is not configured."""
    pass


class IngestionService:
    """
    Supervises the feed schedulers.

    ============================================================
    USAGE
    ============================================================
    ```python
    service = IngestionService(settings, session_factory, rotator, clock, client)
    service.start_all()
    ...
    result = await service.force_update("fear_greed_index")
    ...
    await service.stop_all()
    ```

    ============================================================
    """

    def __init__(
        self,
        settings: AppSettings,
        session_factory: SessionFactory,
        rotator: ApiKeyRotator,
        clock: ClockProtocol,
        client: Optional[httpx.AsyncClient] = None,
    ) -> None:
        """
        Initialize the ingestion service.

        Args:
            settings: Application settings
            session_factory: Factory to create database sessions
            rotator: Shared API key pool
            clock: Time source
            client: Shared provider HTTP client
        """
        self._settings = settings
        self._clock = clock
        self._gate = UpdateGate(session_factory, clock)
        self._logger = logging.getLogger("ingestion_service")

        self._schedulers: Dict[str, FeedScheduler] = {}
        for feed_config in settings.feeds:
            if not feed_config.enabled:
                self._logger.info(f"Feed {feed_config.feed_id} disabled, not scheduling")
                continue

            try:
                kind = FeedKind(feed_config.feed_id)
            except ValueError:
                self._logger.warning(f"Unknown feed in settings: {feed_config.feed_id}")
                continue

            collector = COLLECTOR_CLASSES[kind](
                feed_config=feed_config,
                provider_config=settings.provider,
                rotator=rotator,
                gate=self._gate,
                session_factory=session_factory,
                clock=clock,
                client=client,
            )
            self._schedulers[kind.value] = FeedScheduler(
                collector,
                poll_seconds=feed_config.poll_seconds,
                clock=clock,
            )

    @property
    def gate(self) -> UpdateGate:
        return self._gate

    def get_feed_ids(self) -> List[str]:
        return list(self._schedulers.keys())

    def get_scheduler(self, feed_id: str) -> FeedScheduler:
        try:
            return self._schedulers[feed_id]
        except KeyError:
            raise UnknownFeedError(
                f"Unknown or disabled feed {feed_id!r}; "
                f"expected one of {', '.join(self._schedulers) or 'none'}"
            )

    # =========================================================
    # LIFECYCLE
    # =========================================================

    def start_all(self) -> List[asyncio.Task]:
        """Start every scheduler and return their cancellation handles."""
        handles = [scheduler.start() for scheduler in self._schedulers.values()]
        self._logger.info(f"Started {len(handles)} feed scheduler(s)")
        return handles

    async def stop_all(self) -> None:
        for scheduler in self._schedulers.values():
            await scheduler.stop()
        await asyncio.gather(
            *(scheduler.collector.close() for scheduler in self._schedulers.values())
        )
        self._logger.info("All feed schedulers stopped")

    # =========================================================
    # ADMIN
    # =========================================================

    async def force_update(self, feed_id: str) -> IngestionResult:
        """
        Refresh one feed now, ignoring its watermark.

        Raises:
            UnknownFeedError: For an unknown feed id
            IngestionError: When the cycle fails
        """
        self._logger.info(f"Forced update requested for {feed_id}")
        return await self.get_scheduler(feed_id).force_update()

    async def run_once(self) -> List[Optional[IngestionResult]]:
        """One scheduled tick for every feed, concurrently."""
        return list(await asyncio.gather(
            *(scheduler.run_tick() for scheduler in self._schedulers.values())
        ))

    def get_status(self) -> Dict[str, Any]:
        feeds = {}
        for feed_id, scheduler in self._schedulers.items():
            status = scheduler.get_status()
            status["collector"] = scheduler.collector.get_health_status()
            status["watermark"] = self._gate.get_watermark(feed_id)
            feeds[feed_id] = status

        return {
            "running": any(s.is_running for s in self._schedulers.values()),
            "feeds": feeds,
        }
