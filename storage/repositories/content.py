"""
Processed Content Repository (read side).

============================================================
PURPOSE
============================================================
Selects processed content joined with its raw post, entity and
source, in ascending id order, for the publisher.

Writes to these tables belong to the content ingestion path.

============================================================
"""

from dataclasses import dataclass
from datetime import datetime
from typing import List, Optional

from sqlalchemy import select
from sqlalchemy.orm import Session

from storage.models.content import Entity, ProcessedContent, RawContent, Source
from storage.repositories.base import BaseRepository


@dataclass(frozen=True)
class PublishableContent:
    """Flattened processed-content row with everything the formatter needs."""
    id: int
    summary: Optional[str]
    sentiment_score: Optional[float]
    impact_score: Optional[float]
    categories: tuple
    keywords: tuple
    content: str
    external_id: str
    content_type: str
    published_at: Optional[datetime]
    entity_name: str
    entity_username: Optional[str]
    source_name: str
    source_type: str


class ProcessedContentRepository(BaseRepository[ProcessedContent]):
    """Read-only access to processed content for publication."""

    def __init__(self, session: Session) -> None:
        super().__init__(session, ProcessedContent, "ProcessedContentRepository")

    def _base_query(self):
        return (
            select(ProcessedContent, RawContent, Entity, Source)
            .join(RawContent, ProcessedContent.raw_content_id == RawContent.id)
            .join(Entity, RawContent.entity_id == Entity.id)
            .join(Source, Entity.source_id == Source.id)
        )

    @staticmethod
    def _to_publishable(processed, raw, entity, source) -> PublishableContent:
        return PublishableContent(
            id=processed.id,
            summary=processed.summary,
            sentiment_score=processed.sentiment_score,
            impact_score=processed.impact_score,
            categories=tuple(processed.categories or ()),
            keywords=tuple(processed.keywords or ()),
            content=raw.content,
            external_id=raw.external_id,
            content_type=raw.content_type,
            published_at=raw.published_at,
            entity_name=entity.name,
            entity_username=entity.username,
            source_name=source.name,
            source_type=source.type,
        )

    def list_after(self, cursor: int, limit: int) -> List[PublishableContent]:
        """Rows with id > cursor, ascending, at most ``limit``."""
        stmt = (
            self._base_query()
            .where(ProcessedContent.id > cursor)
            .order_by(ProcessedContent.id.asc())
            .limit(limit)
        )
        rows = self._execute(stmt, "list_after").all()
        return [self._to_publishable(*row) for row in rows]

    def get_publishable(self, content_id: int) -> Optional[PublishableContent]:
        """A single row regardless of the cursor, or None."""
        stmt = self._base_query().where(ProcessedContent.id == content_id)
        row = self._execute(stmt, "get_publishable").first()
        if row is None:
            return None
        return self._to_publishable(*row)
