"""
Data Ingestion - Type Definitions.

============================================================
PURPOSE
============================================================
Shared types for the feed ingestion layer.

- Feed identifiers
- Typed provider rows (one variant per feed)
- Save / ingestion result types
- Error taxonomy

============================================================
DESIGN PRINCIPLES
============================================================
- Provider JSON is mapped into typed rows before persistence;
  an unrecognised shape is rejected, never half-read
- Immutable data structures where possible
- Serializable results for logging and status output

============================================================
"""

from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal
from enum import Enum
from typing import Any, Dict, List, Optional, Tuple, Union
from uuid import UUID, uuid4


# =============================================================
# ENUMS
# =============================================================

class FeedKind(str, Enum):
    """Stable identifiers of the provider feeds (also watermark keys)."""
    CRYPTOCURRENCY_LISTINGS = "cryptocurrency_listings"
    FEAR_GREED_INDEX = "fear_greed_index"
    ALTCOIN_SEASON_INDEX = "altcoin_season_index"


class IngestionStatus(str, Enum):
    """Outcome of one feed tick."""
    SUCCESS = "success"
    FAILED = "failed"
    SKIPPED = "skipped"


# =============================================================
# TYPED PROVIDER ROWS
# =============================================================

@dataclass(frozen=True)
class ListingRow:
    """One entry of the latest listings snapshot, quoted in USD."""
    cmc_id: int
    name: str
    symbol: str
    slug: str
    timestamp: datetime

    max_supply: Optional[int] = None
    infinite_supply: Optional[bool] = None
    date_added: Optional[datetime] = None
    tags: Tuple[str, ...] = ()

    price_usd: Optional[float] = None
    volume_24h: Optional[float] = None
    volume_change_24h: Optional[float] = None
    percent_change_1h: Optional[float] = None
    percent_change_24h: Optional[float] = None
    percent_change_7d: Optional[float] = None
    market_cap: Optional[float] = None
    market_cap_dominance: Optional[float] = None
    fully_diluted_market_cap: Optional[float] = None
    circulating_supply: Optional[float] = None
    total_supply: Optional[float] = None
    cmc_rank: Optional[int] = None
    num_market_pairs: Optional[int] = None


@dataclass(frozen=True)
class FearGreedPoint:
    """Daily fear-and-greed reading."""
    timestamp: datetime
    value: int
    value_classification: str


@dataclass(frozen=True)
class AltcoinSeasonPoint:
    """Altcoin-season index point."""
    timestamp: datetime
    altcoin_index: Decimal
    altcoin_marketcap: Decimal


FeedRow = Union[ListingRow, FearGreedPoint, AltcoinSeasonPoint]


# =============================================================
# RESULT TYPES
# =============================================================

@dataclass
class SaveResult:
    """Result of one batch transaction."""
    inserted_count: int = 0
    duration_seconds: float = 0.0
    details: Dict[str, int] = field(default_factory=dict)


@dataclass
class IngestionResult:
    """Result of a single feed tick."""
    batch_id: UUID = field(default_factory=uuid4)
    feed_id: str = ""
    status: IngestionStatus = IngestionStatus.SUCCESS

    records_fetched: int = 0
    records_stored: int = 0

    started_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None
    duration_seconds: float = 0.0
    next_update_at: Optional[datetime] = None

    errors: List[str] = field(default_factory=list)
    metadata: Dict[str, Any] = field(default_factory=dict)

    def mark_complete(self, completed_at: datetime) -> None:
        """Mark the tick as complete and calculate duration."""
        self.completed_at = completed_at
        if self.started_at:
            delta = completed_at - self.started_at
            self.duration_seconds = delta.total_seconds()

    def mark_failed(self, error: str) -> None:
        """Mark the tick as failed."""
        self.status = IngestionStatus.FAILED
        self.errors.append(error)

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for logging/status output."""
        return {
            "batch_id": str(self.batch_id),
            "feed_id": self.feed_id,
            "status": self.status.value,
            "records_fetched": self.records_fetched,
            "records_stored": self.records_stored,
            "duration_seconds": self.duration_seconds,
            "next_update_at": self.next_update_at.isoformat() if self.next_update_at else None,
            "errors": self.errors[:5],
            **self.metadata,
        }


@dataclass
class IngestionMetrics:
    """Aggregated per-feed tick counters."""
    total_runs: int = 0
    successful_runs: int = 0
    failed_runs: int = 0
    skipped_runs: int = 0
    overlapping_ticks: int = 0
    total_records_stored: int = 0

    last_run_at: Optional[datetime] = None
    last_success_at: Optional[datetime] = None
    last_failure_at: Optional[datetime] = None
    last_error: Optional[str] = None

    def record_result(self, result: IngestionResult) -> None:
        """Record the outcome of one tick."""
        self.total_runs += 1
        self.last_run_at = result.completed_at

        if result.status == IngestionStatus.SUCCESS:
            self.successful_runs += 1
            self.total_records_stored += result.records_stored
            self.last_success_at = result.completed_at
        elif result.status == IngestionStatus.SKIPPED:
            self.skipped_runs += 1
        else:
            self.failed_runs += 1
            self.last_failure_at = result.completed_at
            self.last_error = result.errors[-1] if result.errors else None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "total_runs": self.total_runs,
            "successful_runs": self.successful_runs,
            "failed_runs": self.failed_runs,
            "skipped_runs": self.skipped_runs,
            "overlapping_ticks": self.overlapping_ticks,
            "total_records_stored": self.total_records_stored,
            "last_success_at": self.last_success_at.isoformat() if self.last_success_at else None,
            "last_failure_at": self.last_failure_at.isoformat() if self.last_failure_at else None,
            "last_error": self.last_error,
        }


# =============================================================
# ERROR TYPES
# =============================================================

class IngestionError(Exception):
    """Base exception for ingestion errors."""

    def __init__(
        self,
        message: str,
        source: str,
        recoverable: bool = True,
        details: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(message)
        self.source = source
        self.recoverable = recoverable
        self.details = details or {}


class NoCredentialsConfigured(IngestionError):
    """No provider API key is configured."""

    def __init__(self, source: str = "key_rotator"):
        super().__init__(
            "No API keys configured",
            source=source,
            recoverable=False,
        )


class RateLimited(IngestionError):
    """Provider answered HTTP 429 for the current key."""
    pass


class AllCredentialsExhausted(IngestionError):
    """Every configured key was rate limited within one tick."""
    pass


class InvalidProviderResponse(IngestionError):
    """Non-2xx status, non-JSON body or payload missing its data field."""
    pass


class FetchError(IngestionError):
    """Network or timeout error talking to the provider."""
    pass


class PersistenceError(IngestionError):
    """Batch transaction failed and was rolled back."""
    pass


class TagInsertError(IngestionError):
    """A single tag could not be stored; the batch continues."""
    pass
