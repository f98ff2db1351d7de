"""
Content Domain ORM Models.

============================================================
PURPOSE
============================================================
Sources, their entities (accounts/channels), raw posts and the
processed (summarised, scored) content the publisher reads.

Rows are written by the content ingestion path; the publisher
only reads them, ordered by processed_content.id.

============================================================
"""

from datetime import datetime
from typing import List, Optional

from sqlalchemy import (
    Boolean,
    DateTime,
    Float,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    UniqueConstraint,
    func,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from storage.models.base import Base, JSONType, TimestampMixin


class Source(Base, TimestampMixin):
    """Content platform (e.g. twitter, telegram)."""

    __tablename__ = "sources"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    name: Mapped[str] = mapped_column(String(100), nullable=False)
    type: Mapped[str] = mapped_column(String(50), nullable=False)
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)

    entities: Mapped[List["Entity"]] = relationship(back_populates="source")


class Entity(Base, TimestampMixin):
    """Account or channel on a source."""

    __tablename__ = "entities"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    source_id: Mapped[int] = mapped_column(
        Integer,
        ForeignKey("sources.id", ondelete="CASCADE"),
        nullable=False,
    )
    entity_external_id: Mapped[str] = mapped_column(String(100), nullable=False)
    name: Mapped[str] = mapped_column(String(100), nullable=False)
    username: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)
    description: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    source: Mapped[Source] = relationship(back_populates="entities")

    __table_args__ = (
        UniqueConstraint("source_id", "entity_external_id", name="uq_entities_source_external"),
    )


class RawContent(Base):
    """Unmodified post as collected from a source."""

    __tablename__ = "raw_content"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    entity_id: Mapped[int] = mapped_column(
        Integer,
        ForeignKey("entities.id", ondelete="CASCADE"),
        nullable=False,
    )
    external_id: Mapped[str] = mapped_column(String(100), nullable=False)
    content_type: Mapped[str] = mapped_column(String(50), nullable=False)
    content: Mapped[str] = mapped_column(Text, nullable=False)
    published_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    collected_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        server_default=func.now(),
    )

    entity: Mapped[Entity] = relationship()

    __table_args__ = (
        UniqueConstraint("entity_id", "external_id", name="uq_raw_content_entity_external"),
    )


class ProcessedContent(Base):
    """Summarised and scored content; the publisher's input."""

    __tablename__ = "processed_content"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    raw_content_id: Mapped[int] = mapped_column(
        Integer,
        ForeignKey("raw_content.id", ondelete="CASCADE"),
        nullable=False,
    )
    sentiment_score: Mapped[Optional[float]] = mapped_column(Float, nullable=True)
    impact_score: Mapped[Optional[float]] = mapped_column(Float, nullable=True)
    categories: Mapped[Optional[list]] = mapped_column(JSONType, nullable=True)
    keywords: Mapped[Optional[list]] = mapped_column(JSONType, nullable=True)
    entities_mentioned: Mapped[Optional[list]] = mapped_column(JSONType, nullable=True)
    summary: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    processed_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        server_default=func.now(),
    )

    raw_content: Mapped[RawContent] = relationship()

    __table_args__ = (
        Index("idx_processed_content_raw_content_id", "raw_content_id"),
    )
