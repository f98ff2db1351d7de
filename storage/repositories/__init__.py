"""
Repository Layer Package.

============================================================
PURPOSE
============================================================
The only gateway to persistent storage. Sessions are injected,
database errors are wrapped in repository exceptions.

============================================================
REPOSITORY GROUPS
============================================================

FEED DATA
---------
- CryptocurrencyListingsRepository: cryptocurrencies, prices, tags
- FearGreedRepository: fear_greed_index
- AltcoinSeasonRepository: altcoin_season_index

PIPELINE TRACKING
-----------------
- FeedWatermarkRepository / UpdateGate: per-feed watermarks
- PublicationCursorRepository: publisher high-water mark

CONTENT (read side)
-------------------
- ProcessedContentRepository: publishable processed content

============================================================
"""

from storage.repositories.base import BaseRepository
from storage.repositories.content import ProcessedContentRepository, PublishableContent
from storage.repositories.exceptions import (
    ConnectionError,
    DuplicateRecordError,
    IntegrityError,
    QueryError,
    RepositoryException,
    TransactionError,
    ValidationError,
)
from storage.repositories.market_data import (
    AltcoinSeasonRepository,
    CryptocurrencyListingsRepository,
    FearGreedRepository,
)
from storage.repositories.publication import PublicationCursorRepository
from storage.repositories.update_gate import FeedWatermarkRepository, UpdateGate


__all__ = [
    "BaseRepository",
    "RepositoryException",
    "DuplicateRecordError",
    "IntegrityError",
    "ConnectionError",
    "QueryError",
    "TransactionError",
    "ValidationError",
    "CryptocurrencyListingsRepository",
    "FearGreedRepository",
    "AltcoinSeasonRepository",
    "FeedWatermarkRepository",
    "UpdateGate",
    "PublicationCursorRepository",
    "ProcessedContentRepository",
    "PublishableContent",
]
