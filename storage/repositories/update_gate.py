"""
Feed Watermark Repository and Update Gate.

============================================================
PURPOSE
============================================================
Decides whether a feed is due for a refresh and records the
next-update watermark after a successful cycle.

============================================================
RULES
============================================================
- Due when no watermark exists or now >= next_update_at
- The due check fails OPEN: a read error means "due"
- advance() is only called after fetch and save succeeded
- next_update_at must be in the future at advance time

============================================================
"""

import logging
from datetime import datetime
from typing import Any, Dict, Optional

from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from core.clock import ClockProtocol, ensure_utc
from storage.database import SessionFactory, session_scope
from storage.models.tracking import FeedWatermark
from storage.repositories.base import BaseRepository
from storage.repositories.exceptions import RepositoryException, ValidationError


class FeedWatermarkRepository(BaseRepository[FeedWatermark]):
    """Reads and upserts rows of feed_watermarks."""

    def __init__(self, session: Session) -> None:
        super().__init__(session, FeedWatermark, "FeedWatermarkRepository")

    def get(self, feed_id: str) -> Optional[FeedWatermark]:
        stmt = select(FeedWatermark).where(FeedWatermark.feed_id == feed_id)
        return self._execute_scalar(stmt)

    def upsert(
        self,
        feed_id: str,
        last_updated_at: datetime,
        next_update_at: datetime,
    ) -> None:
        """Insert or replace the watermark of ``feed_id`` and commit."""
        stmt = self._upsert_insert(FeedWatermark).values(
            feed_id=feed_id,
            last_updated_at=last_updated_at,
            next_update_at=next_update_at,
        )
        stmt = stmt.on_conflict_do_update(
            index_elements=[FeedWatermark.feed_id],
            set_={
                "last_updated_at": stmt.excluded.last_updated_at,
                "next_update_at": stmt.excluded.next_update_at,
            },
        )
        self._execute(stmt, "upsert")
        self._commit()


class UpdateGate:
    """
    Due-check and watermark advance for the feed schedulers.

    Each call opens its own short-lived session.
    """

    def __init__(self, session_factory: SessionFactory, clock: ClockProtocol) -> None:
        self._session_factory = session_factory
        self._clock = clock
        self._logger = logging.getLogger("update_gate")

    def is_due(self, feed_id: str) -> bool:
        """
        Whether ``feed_id`` should be refreshed now.

        Returns True when no watermark exists, when the watermark has
        passed, or when the watermark cannot be read.
        """
        try:
            with session_scope(self._session_factory) as session:
                watermark = FeedWatermarkRepository(session).get(feed_id)
                if watermark is None:
                    self._logger.info(f"No watermark for {feed_id}, update due")
                    return True

                next_update_at = ensure_utc(watermark.next_update_at)
        except (RepositoryException, SQLAlchemyError) as e:
            self._logger.error(f"Watermark read failed for {feed_id}, treating as due: {e}")
            return True

        now = self._clock.now()
        due = now >= next_update_at
        if not due:
            self._logger.debug(
                f"{feed_id} not due until {next_update_at.isoformat()}"
            )
        return due

    def advance(self, feed_id: str, next_update_at: datetime) -> None:
        """
        Record a successful cycle.

        Raises:
            ValidationError: If next_update_at is not after now
            RepositoryException: If the upsert fails
        """
        now = self._clock.now()
        next_update_at = ensure_utc(next_update_at)
        if next_update_at <= now:
            raise ValidationError(
                repository_name="FeedWatermarkRepository",
                operation="advance",
                field="next_update_at",
                reason=f"{next_update_at.isoformat()} is not after {now.isoformat()}",
            )

        with session_scope(self._session_factory) as session:
            FeedWatermarkRepository(session).upsert(feed_id, now, next_update_at)

        self._logger.info(
            f"Advanced {feed_id} watermark, next update at {next_update_at.isoformat()}"
        )

    def get_watermark(self, feed_id: str) -> Optional[Dict[str, Any]]:
        """Watermark of ``feed_id`` for status output, or None."""
        with session_scope(self._session_factory) as session:
            watermark = FeedWatermarkRepository(session).get(feed_id)
            if watermark is None:
                return None
            return {
                "feed_id": watermark.feed_id,
                "last_updated_at": ensure_utc(watermark.last_updated_at).isoformat(),
                "next_update_at": ensure_utc(watermark.next_update_at).isoformat(),
            }
