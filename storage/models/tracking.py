"""
Pipeline Tracking ORM Models.

============================================================
PURPOSE
============================================================
Durable progress markers of the pipeline.

- FeedWatermark: "next update" per feed, read by the update
  gate and advanced only after a successful fetch+save
- PublicationCursor: singleton high-water mark of processed
  content ids already attempted by the publisher

============================================================
"""

from datetime import datetime
from typing import Optional

from sqlalchemy import DateTime, Integer, String, func
from sqlalchemy.orm import Mapped, mapped_column

from storage.models.base import Base


class FeedWatermark(Base):
    """
    Next-update watermark of one feed.

    A feed is due when no row exists or now >= next_update_at.
    Rows are created on the first successful cycle and never deleted.
    """

    __tablename__ = "feed_watermarks"

    feed_id: Mapped[str] = mapped_column(
        String(50),
        primary_key=True,
        comment="Stable feed identifier"
    )

    last_updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        comment="When the last successful cycle finished"
    )

    next_update_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        comment="Earliest time the feed is due again"
    )

    def __repr__(self) -> str:
        return f"<FeedWatermark {self.feed_id} next={self.next_update_at}>"


class PublicationCursor(Base):
    """Singleton row (id = 1) tracking publisher progress."""

    __tablename__ = "publication_cursor"

    SINGLETON_ID = 1

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=False)

    last_published_id: Mapped[int] = mapped_column(
        Integer,
        nullable=False,
        default=0,
        comment="Highest processed_content.id already attempted"
    )

    last_check_time: Mapped[Optional[datetime]] = mapped_column(
        DateTime(timezone=True),
        nullable=True,
    )

    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        server_default=func.now(),
    )
