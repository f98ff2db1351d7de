"""
Market Data Repositories.

============================================================
PURPOSE
============================================================
Batch upserters and read queries for the three provider feeds.

============================================================
WRITE RULES
============================================================
- One transaction per save_batch call: commit on success,
  rollback and raise on any row-level database error
- Time-series points: INSERT ... ON CONFLICT DO NOTHING,
  inserted_count counts rows that were actually new
- cryptocurrencies: INSERT ... ON CONFLICT DO UPDATE
- cryptocurrency_tags: one SAVEPOINT per tag; a failing tag
  is logged and skipped without touching the batch

============================================================
"""

import time
from datetime import datetime
from typing import Any, Dict, List, Optional, Sequence

from sqlalchemy import func, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from data_ingestion.types import (
    AltcoinSeasonPoint,
    FearGreedPoint,
    ListingRow,
    SaveResult,
    TagInsertError,
)
from storage.models.market_data import (
    AltcoinSeasonIndex,
    Cryptocurrency,
    CryptocurrencyPrice,
    CryptocurrencyTag,
    FearGreedIndex,
)
from storage.repositories.base import BaseRepository
from storage.repositories.exceptions import RepositoryException


PRICE_FIELDS = (
    "price_usd",
    "volume_24h",
    "volume_change_24h",
    "percent_change_1h",
    "percent_change_24h",
    "percent_change_7d",
    "market_cap",
    "market_cap_dominance",
    "fully_diluted_market_cap",
    "circulating_supply",
    "total_supply",
    "cmc_rank",
    "num_market_pairs",
)


# =============================================================
# LISTINGS
# =============================================================

class CryptocurrencyListingsRepository(BaseRepository[Cryptocurrency]):
    """
    Repository for cryptocurrencies, their price snapshots and tags.

    ============================================================
    WIRING
    ============================================================
    Feed: cryptocurrency_listings
    Tables: cryptocurrencies, cryptocurrency_prices,
            cryptocurrency_tags

    ============================================================
    """

    def __init__(self, session: Session) -> None:
        super().__init__(session, Cryptocurrency, "CryptocurrencyListingsRepository")

    def save_batch(self, rows: Sequence[ListingRow]) -> SaveResult:
        """
        Persist a listings snapshot in one transaction.

        Args:
            rows: Typed listing rows

        Returns:
            SaveResult whose inserted_count is the number of new
            price snapshots; details break down every table

        Raises:
            RepositoryException: After rolling back the batch
        """
        started = time.monotonic()
        upserted_cryptos = 0
        inserted_prices = 0
        inserted_tags = 0
        skipped_tags = 0

        try:
            for row in rows:
                self._upsert_cryptocurrency(row)
                upserted_cryptos += 1

                if self._insert_price(row):
                    inserted_prices += 1

                for tag in row.tags:
                    try:
                        if self._insert_tag(row.cmc_id, tag):
                            inserted_tags += 1
                    except TagInsertError as e:
                        skipped_tags += 1
                        self._logger.warning(f"Skipping tag: {e}")

            self._commit()
        except RepositoryException:
            self._rollback()
            raise

        duration = time.monotonic() - started
        self._logger.info(
            f"Saved listings batch: {upserted_cryptos} cryptocurrencies, "
            f"{inserted_prices} new prices, {inserted_tags} new tags "
            f"in {duration:.3f}s"
        )
        return SaveResult(
            inserted_count=inserted_prices,
            duration_seconds=duration,
            details={
                "cryptocurrencies": upserted_cryptos,
                "prices": inserted_prices,
                "tags": inserted_tags,
                "tags_skipped": skipped_tags,
            },
        )

    def _upsert_cryptocurrency(self, row: ListingRow) -> None:
        stmt = self._upsert_insert(Cryptocurrency).values(
            cmc_id=row.cmc_id,
            name=row.name,
            symbol=row.symbol,
            slug=row.slug,
            max_supply=row.max_supply,
            infinite_supply=row.infinite_supply,
            date_added=row.date_added,
            updated_at=func.now(),
        )
        stmt = stmt.on_conflict_do_update(
            index_elements=[Cryptocurrency.cmc_id],
            set_={
                "name": stmt.excluded.name,
                "symbol": stmt.excluded.symbol,
                "slug": stmt.excluded.slug,
                "max_supply": stmt.excluded.max_supply,
                "infinite_supply": stmt.excluded.infinite_supply,
                "updated_at": func.now(),
            },
        )
        self._execute(stmt, "upsert_cryptocurrency")

    def _insert_price(self, row: ListingRow) -> bool:
        values: Dict[str, Any] = {name: getattr(row, name) for name in PRICE_FIELDS}
        stmt = (
            self._upsert_insert(CryptocurrencyPrice)
            .values(cmc_id=row.cmc_id, timestamp=row.timestamp, **values)
            .on_conflict_do_nothing(index_elements=["cmc_id", "timestamp"])
        )
        result = self._execute(stmt, "insert_price")
        return result.rowcount > 0

    def _insert_tag(self, cmc_id: int, tag: str) -> bool:
        """
        Insert one tag inside a savepoint.

        Raises:
            TagInsertError: If the tag insert fails
        """
        stmt = (
            self._upsert_insert(CryptocurrencyTag)
            .values(cmc_id=cmc_id, tag=tag)
            .on_conflict_do_nothing(index_elements=["cmc_id", "tag"])
        )
        try:
            with self._session.begin_nested():
                result = self._session.execute(stmt)
        except SQLAlchemyError as e:
            raise TagInsertError(
                f"tag {tag!r} for cmc_id {cmc_id}: {e}",
                source=self.repository_name,
                details={"cmc_id": cmc_id, "tag": tag},
            ) from e
        return result.rowcount > 0

    # =========================================================
    # READ QUERIES
    # =========================================================

    def get_top_cryptocurrencies(self, limit: int = 10, offset: int = 0) -> List[Dict[str, Any]]:
        """Top cryptocurrencies by market cap at the latest snapshot."""
        latest = self._execute_scalar(select(func.max(CryptocurrencyPrice.timestamp)))
        if latest is None:
            return []

        stmt = (
            select(Cryptocurrency, CryptocurrencyPrice)
            .join(CryptocurrencyPrice, CryptocurrencyPrice.cmc_id == Cryptocurrency.cmc_id)
            .where(CryptocurrencyPrice.timestamp == latest)
            .order_by(CryptocurrencyPrice.market_cap.desc().nulls_last())
            .limit(limit)
            .offset(offset)
        )
        rows = self._execute(stmt, "get_top_cryptocurrencies").all()
        return [
            {
                "cmc_id": crypto.cmc_id,
                "name": crypto.name,
                "symbol": crypto.symbol,
                "slug": crypto.slug,
                "price_usd": price.price_usd,
                "market_cap": price.market_cap,
                "percent_change_24h": price.percent_change_24h,
                "percent_change_7d": price.percent_change_7d,
                "circulating_supply": price.circulating_supply,
                "cmc_rank": price.cmc_rank,
                "timestamp": price.timestamp,
            }
            for crypto, price in rows
        ]

    def get_by_symbol(self, symbol: str) -> Optional[Dict[str, Any]]:
        """Cryptocurrency with its latest price snapshot and tags."""
        crypto = self._execute(
            select(Cryptocurrency).where(Cryptocurrency.symbol == symbol.upper()).limit(1),
            "get_by_symbol",
        ).scalars().first()
        if crypto is None:
            return None

        latest_price = self._execute_scalar(
            select(CryptocurrencyPrice)
            .where(CryptocurrencyPrice.cmc_id == crypto.cmc_id)
            .order_by(CryptocurrencyPrice.timestamp.desc())
            .limit(1)
        )
        tags = self._execute(
            select(CryptocurrencyTag.tag).where(CryptocurrencyTag.cmc_id == crypto.cmc_id),
            "get_tags",
        ).scalars().all()

        result: Dict[str, Any] = {
            "cmc_id": crypto.cmc_id,
            "name": crypto.name,
            "symbol": crypto.symbol,
            "slug": crypto.slug,
            "max_supply": crypto.max_supply,
            "infinite_supply": crypto.infinite_supply,
            "date_added": crypto.date_added,
            "tags": sorted(tags),
        }
        if latest_price is not None:
            result["price_data"] = {
                "timestamp": latest_price.timestamp,
                **{name: getattr(latest_price, name) for name in PRICE_FIELDS},
            }
        return result

    def get_historical_prices(self, cmc_id: int, since: datetime) -> List[CryptocurrencyPrice]:
        """Price snapshots of ``cmc_id`` at or after ``since``, oldest first."""
        stmt = (
            select(CryptocurrencyPrice)
            .where(CryptocurrencyPrice.cmc_id == cmc_id)
            .where(CryptocurrencyPrice.timestamp >= since)
            .order_by(CryptocurrencyPrice.timestamp.asc())
        )
        return self._execute_query(stmt)


# =============================================================
# FEAR AND GREED
# =============================================================

class FearGreedRepository(BaseRepository[FearGreedIndex]):
    """Repository for the fear_greed_index time series."""

    def __init__(self, session: Session) -> None:
        super().__init__(session, FearGreedIndex, "FearGreedRepository")

    def save_batch(self, points: Sequence[FearGreedPoint]) -> SaveResult:
        """
        Insert-if-absent every point in one transaction.

        Raises:
            RepositoryException: After rolling back the batch
        """
        started = time.monotonic()
        inserted = 0
        try:
            for point in points:
                stmt = (
                    self._upsert_insert(FearGreedIndex)
                    .values(
                        timestamp=point.timestamp,
                        value=point.value,
                        value_classification=point.value_classification,
                    )
                    .on_conflict_do_nothing(index_elements=["timestamp"])
                )
                if self._execute(stmt, "insert_point").rowcount > 0:
                    inserted += 1
            self._commit()
        except RepositoryException:
            self._rollback()
            raise

        duration = time.monotonic() - started
        self._logger.info(
            f"Saved {inserted} new fear/greed points of {len(points)} in {duration:.3f}s"
        )
        return SaveResult(inserted_count=inserted, duration_seconds=duration)

    def get_latest(self) -> Optional[FearGreedIndex]:
        stmt = select(FearGreedIndex).order_by(FearGreedIndex.timestamp.desc()).limit(1)
        return self._execute_scalar(stmt)

    def get_historical(self, since: datetime) -> List[FearGreedIndex]:
        """Points at or after ``since``, newest first."""
        stmt = (
            select(FearGreedIndex)
            .where(FearGreedIndex.timestamp >= since)
            .order_by(FearGreedIndex.timestamp.desc())
        )
        return self._execute_query(stmt)


# =============================================================
# ALTCOIN SEASON
# =============================================================

class AltcoinSeasonRepository(BaseRepository[AltcoinSeasonIndex]):
    """Repository for the altcoin_season_index time series."""

    def __init__(self, session: Session) -> None:
        super().__init__(session, AltcoinSeasonIndex, "AltcoinSeasonRepository")

    def save_batch(self, points: Sequence[AltcoinSeasonPoint]) -> SaveResult:
        """
        Insert-if-absent every point in one transaction.

        Raises:
            RepositoryException: After rolling back the batch
        """
        started = time.monotonic()
        inserted = 0
        try:
            for point in points:
                stmt = (
                    self._upsert_insert(AltcoinSeasonIndex)
                    .values(
                        timestamp=point.timestamp,
                        altcoin_index=point.altcoin_index,
                        altcoin_marketcap=point.altcoin_marketcap,
                    )
                    .on_conflict_do_nothing(index_elements=["timestamp"])
                )
                if self._execute(stmt, "insert_point").rowcount > 0:
                    inserted += 1
            self._commit()
        except RepositoryException:
            self._rollback()
            raise

        duration = time.monotonic() - started
        self._logger.info(
            f"Saved {inserted} new altcoin season points of {len(points)} in {duration:.3f}s"
        )
        return SaveResult(inserted_count=inserted, duration_seconds=duration)

    def get_latest(self) -> Optional[AltcoinSeasonIndex]:
        stmt = select(AltcoinSeasonIndex).order_by(AltcoinSeasonIndex.timestamp.desc()).limit(1)
        return self._execute_scalar(stmt)

    def get_historical(self, since: datetime) -> List[AltcoinSeasonIndex]:
        """Points at or after ``since``, oldest first."""
        stmt = (
            select(AltcoinSeasonIndex)
            .where(AltcoinSeasonIndex.timestamp >= since)
            .order_by(AltcoinSeasonIndex.timestamp.asc())
        )
        return self._execute_query(stmt)
