"""
Publishing - Publisher Poller.

============================================================
RESPONSIBILITY
============================================================
Forwards newly processed content to the broadcast sink.

Each cycle:
1. Touch last_check_time (even when idle)
2. Load processed content with id > cursor, ascending,
   at most batch_size rows
3. Format and broadcast each row; one row failing never aborts
   the cycle
4. Advance the cursor to the highest id seen

============================================================
CURSOR POLICY
============================================================
The cursor is the high-water mark of ATTEMPTED ids, not of
delivered ones. Rows without a summary and rows no chat
accepted are logged and left behind. Only force_publish
requires a successful delivery before moving the cursor.

============================================================
"""

import asyncio
import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, List, Optional

from core.clock import ClockProtocol
from core.config import PublisherConfig
from monitoring.notifications.telegram import TelegramBroadcaster
from publishing.formatter import ContentMessageFormatter
from storage.database import SessionFactory, session_scope
from storage.repositories.content import ProcessedContentRepository, PublishableContent
from storage.repositories.publication import PublicationCursorRepository


@dataclass
class PublishCycleResult:
    """Outcome of one poll cycle."""
    checked_at: datetime
    cursor_before: int
    cursor_after: int
    fetched: int = 0
    delivered_ids: List[int] = field(default_factory=list)
    skipped_ids: List[int] = field(default_factory=list)
    failed_ids: List[int] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "checked_at": self.checked_at.isoformat(),
            "cursor_before": self.cursor_before,
            "cursor_after": self.cursor_after,
            "fetched": self.fetched,
            "delivered": len(self.delivered_ids),
            "skipped": self.skipped_ids,
            "failed": self.failed_ids,
        }


class PublisherPoller:
    """
    Cursor-driven publisher.

    Example:
        poller = PublisherPoller(session_factory, broadcaster, clock, config)
        handle = poller.start()
        ...
        await poller.stop()
    """

    def __init__(
        self,
        session_factory: SessionFactory,
        broadcaster: TelegramBroadcaster,
        clock: ClockProtocol,
        config: Optional[PublisherConfig] = None,
        formatter: Optional[ContentMessageFormatter] = None,
    ) -> None:
        self._session_factory = session_factory
        self._broadcaster = broadcaster
        self._clock = clock
        self._config = config or PublisherConfig()
        self._formatter = formatter or ContentMessageFormatter()
        self._logger = logging.getLogger("publisher")

        self._cursor: Optional[int] = None
        self._interval_seconds = self._config.interval_seconds
        self._cycle_lock = asyncio.Lock()
        self._task: Optional[asyncio.Task] = None
        self._last_result: Optional[PublishCycleResult] = None

    @property
    def is_running(self) -> bool:
        return self._task is not None and not self._task.done()

    @property
    def cursor(self) -> Optional[int]:
        return self._cursor

    @property
    def last_result(self) -> Optional[PublishCycleResult]:
        return self._last_result

    # =========================================================
    # CURSOR
    # =========================================================

    def initialize_cursor(self) -> int:
        """Load the persisted cursor, creating it at 0 when absent."""
        with session_scope(self._session_factory) as session:
            self._cursor = PublicationCursorRepository(session).bootstrap(self._clock.now())
        self._logger.info(f"Initialized last published id: {self._cursor}")
        return self._cursor

    def _advance_cursor(self, new_id: int) -> None:
        with session_scope(self._session_factory) as session:
            PublicationCursorRepository(session).advance(new_id, self._clock.now())
        self._cursor = max(self._cursor or 0, new_id)

    # =========================================================
    # CYCLE
    # =========================================================

    async def _publish_item(self, item: PublishableContent) -> Optional[bool]:
        """
        Broadcast one item.

        Returns:
            True if at least one chat accepted it, False if none did,
            None if it has nothing to publish
        """
        message = self._formatter.format_content(item)
        if message is None:
            return None

        result = await self._broadcaster.broadcast(message)
        return result.delivered

    async def check_and_publish(self) -> PublishCycleResult:
        """
        Run one poll cycle.

        Raises:
            RepositoryException: If the cursor or content query fails
        """
        async with self._cycle_lock:
            if self._cursor is None:
                self.initialize_cursor()

            now = self._clock.now()
            with session_scope(self._session_factory) as session:
                PublicationCursorRepository(session).touch_check_time(now)
                items = ProcessedContentRepository(session).list_after(
                    self._cursor, self._config.batch_size
                )

            result = PublishCycleResult(
                checked_at=now,
                cursor_before=self._cursor,
                cursor_after=self._cursor,
                fetched=len(items),
            )
            if not items:
                self._logger.debug("No new content found for publishing")
                self._last_result = result
                return result

            self._logger.info(f"Found {len(items)} new content item(s) to publish")

            highest_id_seen = self._cursor
            for item in items:
                highest_id_seen = max(highest_id_seen, item.id)
                try:
                    delivered = await self._publish_item(item)
                except Exception:
                    self._logger.exception(f"Error publishing content id {item.id}")
                    result.failed_ids.append(item.id)
                    continue

                if delivered is None:
                    self._logger.warning(f"Content id {item.id} has no summary, skipped")
                    result.skipped_ids.append(item.id)
                elif delivered:
                    self._logger.info(f"Published content id {item.id}")
                    result.delivered_ids.append(item.id)
                else:
                    self._logger.warning(f"Failed to publish content id {item.id} to any chat")
                    result.failed_ids.append(item.id)

            if highest_id_seen > self._cursor:
                self._advance_cursor(highest_id_seen)

            result.cursor_after = self._cursor
            if result.failed_ids or result.skipped_ids:
                self._logger.warning(
                    f"Cursor moved past undelivered content ids "
                    f"{sorted(result.failed_ids + result.skipped_ids)}"
                )
            self._logger.info(
                f"Published {len(result.delivered_ids)} of {len(items)} item(s), "
                f"cursor {result.cursor_before} -> {result.cursor_after}"
            )
            self._last_result = result
            return result

    async def check_now(self) -> PublishCycleResult:
        """Run one cycle immediately, outside the timer."""
        return await self.check_and_publish()

    async def force_publish(self, content_id: int) -> bool:
        """
        Publish one item regardless of the cursor.

        The cursor moves only when the id is newer and at least one
        chat accepted the message.

        Returns:
            True if the item was delivered
        """
        async with self._cycle_lock:
            if self._cursor is None:
                self.initialize_cursor()

            with session_scope(self._session_factory) as session:
                item = ProcessedContentRepository(session).get_publishable(content_id)

            if item is None:
                self._logger.warning(f"Content id {content_id} not found")
                return False

            delivered = await self._publish_item(item)
            if not delivered:
                self._logger.warning(f"Failed to force publish content id {content_id}")
                return False

            if item.id > self._cursor:
                self._advance_cursor(item.id)
            self._logger.info(f"Force published content id {content_id}")
            return True

    # =========================================================
    # TIMER
    # =========================================================

    async def _run_loop(self) -> None:
        try:
            self.initialize_cursor()
        except Exception:
            # check_and_publish retries the bootstrap on the next cycle
            self._logger.exception("Error initializing publication cursor")

        while True:
            await asyncio.sleep(self._interval_seconds)
            try:
                await self.check_and_publish()
            except Exception:
                self._logger.exception("Error in publisher polling cycle")

    def start(self, interval_seconds: Optional[float] = None) -> asyncio.Task:
        """
        Start polling.

        Args:
            interval_seconds: Override the configured period

        Returns:
            The polling task, usable as a cancellation handle
        """
        if self.is_running:
            self._logger.info("Publisher is already running")
            return self._task

        if interval_seconds is not None:
            self._interval_seconds = interval_seconds

        self._logger.info(f"Starting publisher with {self._interval_seconds}s interval")
        self._task = asyncio.create_task(self._run_loop(), name="publisher")
        return self._task

    async def stop(self) -> None:
        if self._task is None:
            return

        self._task.cancel()
        try:
            await self._task
        except asyncio.CancelledError:
            pass
        except Exception:
            self._logger.exception("Publisher task ended with an error")
        self._task = None
        self._logger.info("Publisher stopped")

    def get_status(self) -> Dict[str, Any]:
        with session_scope(self._session_factory) as session:
            tracking = PublicationCursorRepository(session).get_tracking()

        return {
            "running": self.is_running,
            "interval_seconds": self._interval_seconds,
            "last_published_id": self._cursor,
            "tracking": tracking,
            "last_cycle": self._last_result.to_dict() if self._last_result else None,
        }
