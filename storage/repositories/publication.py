"""
Publication Cursor Repository.

============================================================
PURPOSE
============================================================
Durable high-water mark of processed content already attempted
by the publisher (singleton row id = 1).

============================================================
RULES
============================================================
- The cursor never moves backward: advance() is a conditional
  UPDATE ... WHERE last_published_id < :new_id
- Repeating an advance with the same id is a no-op
- touch_check_time() runs on every poll, even idle ones

============================================================
"""

from datetime import datetime
from typing import Any, Dict, Optional

from sqlalchemy import select, update
from sqlalchemy.orm import Session

from core.clock import ensure_utc
from storage.models.tracking import PublicationCursor
from storage.repositories.base import BaseRepository
from storage.repositories.exceptions import RepositoryException


class PublicationCursorRepository(BaseRepository[PublicationCursor]):
    """Reads and advances the publisher's cursor."""

    def __init__(self, session: Session) -> None:
        super().__init__(session, PublicationCursor, "PublicationCursorRepository")

    def bootstrap(self, now: datetime) -> int:
        """
        Create the singleton row at 0 when absent.

        Returns:
            The persisted cursor value
        """
        stmt = (
            self._upsert_insert(PublicationCursor)
            .values(
                id=PublicationCursor.SINGLETON_ID,
                last_published_id=0,
                last_check_time=now,
                updated_at=now,
            )
            .on_conflict_do_nothing(index_elements=["id"])
        )
        try:
            if self._execute(stmt, "bootstrap").rowcount > 0:
                self._logger.info("Created publication cursor at 0")
            self._commit()
        except RepositoryException:
            self._rollback()
            raise
        return self.read()

    def read(self) -> int:
        """Current cursor value (0 when the row does not exist yet)."""
        stmt = select(PublicationCursor.last_published_id).where(
            PublicationCursor.id == PublicationCursor.SINGLETON_ID
        )
        value = self._execute_scalar(stmt)
        return int(value) if value is not None else 0

    def get_tracking(self) -> Optional[Dict[str, Any]]:
        cursor = self._get_by_id(PublicationCursor.SINGLETON_ID)
        if cursor is None:
            return None
        return {
            "last_published_id": cursor.last_published_id,
            "last_check_time": (
                ensure_utc(cursor.last_check_time).isoformat() if cursor.last_check_time else None
            ),
            "updated_at": ensure_utc(cursor.updated_at).isoformat(),
        }

    def advance(self, new_id: int, now: datetime) -> bool:
        """
        Move the cursor forward to ``new_id``.

        Returns:
            True if the row changed, False if the cursor was already
            at or past ``new_id``
        """
        stmt = (
            update(PublicationCursor)
            .where(PublicationCursor.id == PublicationCursor.SINGLETON_ID)
            .where(PublicationCursor.last_published_id < new_id)
            .values(last_published_id=new_id, updated_at=now)
        )
        try:
            changed = self._execute(stmt, "advance").rowcount > 0
            self._commit()
        except RepositoryException:
            self._rollback()
            raise

        if changed:
            self._logger.info(f"Publication cursor advanced to {new_id}")
        return changed

    def touch_check_time(self, now: datetime) -> None:
        stmt = (
            update(PublicationCursor)
            .where(PublicationCursor.id == PublicationCursor.SINGLETON_ID)
            .values(last_check_time=now, updated_at=now)
        )
        try:
            self._execute(stmt, "touch_check_time")
            self._commit()
        except RepositoryException:
            self._rollback()
            raise
