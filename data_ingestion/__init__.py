"""
Data Ingestion Package.

Scheduled acquisition of provider feeds. No business logic,
only fetch, map, persist and advance.

Sub-packages / modules:
- collectors: One collector per provider feed
- key_rotator: Round-robin provider credentials
- scheduler: Per-feed timer with re-entrancy guard
- ingestion_service: Wires and supervises the feed schedulers
- analysis: Derived statistics over stored index data
"""

from data_ingestion.types import (
    AllCredentialsExhausted,
    AltcoinSeasonPoint,
    FearGreedPoint,
    FeedKind,
    FeedRow,
    FetchError,
    IngestionError,
    IngestionMetrics,
    IngestionResult,
    IngestionStatus,
    InvalidProviderResponse,
    ListingRow,
    NoCredentialsConfigured,
    PersistenceError,
    RateLimited,
    SaveResult,
    TagInsertError,
)


__all__ = [
    "FeedKind",
    "IngestionStatus",
    "ListingRow",
    "FearGreedPoint",
    "AltcoinSeasonPoint",
    "FeedRow",
    "SaveResult",
    "IngestionResult",
    "IngestionMetrics",
    "IngestionError",
    "NoCredentialsConfigured",
    "RateLimited",
    "AllCredentialsExhausted",
    "InvalidProviderResponse",
    "FetchError",
    "PersistenceError",
    "TagInsertError",
]
