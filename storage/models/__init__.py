"""
Storage Models Package.

All ORM models of the signal pipeline, organized by domain.

============================================================
MODEL ORGANIZATION
============================================================

Market data (market_data.py)
- Cryptocurrency
- CryptocurrencyPrice
- CryptocurrencyTag
- FearGreedIndex
- AltcoinSeasonIndex

Pipeline tracking (tracking.py)
- FeedWatermark
- PublicationCursor

Content (content.py)
- Source
- Entity
- RawContent
- ProcessedContent

============================================================
"""

from storage.models.base import Base, CreatedAtMixin, TimestampMixin
from storage.models.content import Entity, ProcessedContent, RawContent, Source
from storage.models.market_data import (
    AltcoinSeasonIndex,
    Cryptocurrency,
    CryptocurrencyPrice,
    CryptocurrencyTag,
    FearGreedIndex,
)
from storage.models.tracking import FeedWatermark, PublicationCursor


__all__ = [
    "Base",
    "CreatedAtMixin",
    "TimestampMixin",
    "Cryptocurrency",
    "CryptocurrencyPrice",
    "CryptocurrencyTag",
    "FearGreedIndex",
    "AltcoinSeasonIndex",
    "FeedWatermark",
    "PublicationCursor",
    "Source",
    "Entity",
    "RawContent",
    "ProcessedContent",
]
