"""
Tests for the market data repositories.

TEST PRINCIPLES:
- Upserts are idempotent
- A failing tag is skipped, a failing row rolls back the batch
- Read queries return the latest snapshot
"""

from datetime import datetime, timedelta, timezone
from decimal import Decimal

import pytest
from sqlalchemy import func, select

from data_ingestion.types import AltcoinSeasonPoint, FearGreedPoint, ListingRow
from storage.models import (
    AltcoinSeasonIndex,
    Cryptocurrency,
    CryptocurrencyPrice,
    CryptocurrencyTag,
    FearGreedIndex,
)
from storage.repositories.exceptions import RepositoryException
from storage.repositories.market_data import (
    AltcoinSeasonRepository,
    CryptocurrencyListingsRepository,
    FearGreedRepository,
)


T0 = datetime(2025, 3, 1, 11, 0, tzinfo=timezone.utc)


def listing(cmc_id, symbol, timestamp=T0, market_cap=1000.0, tags=(), name=None, **overrides):
    return ListingRow(
        cmc_id=cmc_id,
        name=name if name is not None else symbol.title(),
        symbol=symbol,
        slug=symbol.lower(),
        timestamp=timestamp,
        tags=tuple(tags),
        price_usd=10.0,
        market_cap=market_cap,
        percent_change_24h=1.0,
        percent_change_7d=2.0,
        cmc_rank=cmc_id,
        **overrides,
    )


def count(session, model) -> int:
    return session.execute(select(func.count()).select_from(model)).scalar()


# ============================================================
# LISTINGS
# ============================================================

class TestListingsSaveBatch:
    """Batch upsert of the listings snapshot."""

    def test_save_and_repeat_is_idempotent(self, session):
        repo = CryptocurrencyListingsRepository(session)
        rows = [listing(1, "BTC", tags=("pow",)), listing(1027, "ETH", tags=("pos", "defi"))]

        first = repo.save_batch(rows)
        second = repo.save_batch(rows)

        assert first.inserted_count == 2
        assert first.details == {"cryptocurrencies": 2, "prices": 2, "tags": 3, "tags_skipped": 0}
        assert second.inserted_count == 0
        assert second.details["tags"] == 0
        assert count(session, Cryptocurrency) == 2
        assert count(session, CryptocurrencyPrice) == 2
        assert count(session, CryptocurrencyTag) == 3

    def test_entity_row_replaced(self, session):
        repo = CryptocurrencyListingsRepository(session)
        repo.save_batch([listing(1, "BTC", name="Bitcoin")])
        repo.save_batch([listing(1, "BTC", timestamp=T0 + timedelta(hours=1), name="Bitcoin Core")])

        crypto = session.get(Cryptocurrency, 1)
        session.refresh(crypto)
        assert crypto.name == "Bitcoin Core"
        assert count(session, CryptocurrencyPrice) == 2

    def test_failing_tag_is_skipped(self, session):
        repo = CryptocurrencyListingsRepository(session)

        result = repo.save_batch([listing(1, "BTC", tags=("pow", None, "store-of-value"))])

        assert result.inserted_count == 1
        assert result.details["tags"] == 2
        assert result.details["tags_skipped"] == 1
        assert count(session, CryptocurrencyTag) == 2

    def test_failing_row_rolls_back_batch(self, session):
        repo = CryptocurrencyListingsRepository(session)
        rows = [
            listing(1, "BTC"),
            ListingRow(cmc_id=2, name=None, symbol="BAD", slug="bad", timestamp=T0),
        ]

        with pytest.raises(RepositoryException):
            repo.save_batch(rows)

        assert count(session, Cryptocurrency) == 0
        assert count(session, CryptocurrencyPrice) == 0


class TestListingsReads:
    """Read queries over stored snapshots."""

    @pytest.fixture
    def repo(self, session):
        repo = CryptocurrencyListingsRepository(session)
        repo.save_batch([
            listing(1, "BTC", market_cap=1000.0, tags=("pow",)),
            listing(1027, "ETH", market_cap=400.0),
            listing(5426, "SOL", market_cap=None),
        ])
        repo.save_batch([
            listing(1, "BTC", timestamp=T0 + timedelta(hours=1), market_cap=1100.0),
            listing(1027, "ETH", timestamp=T0 + timedelta(hours=1), market_cap=500.0),
        ])
        return repo

    def test_top_uses_latest_snapshot_ordered_by_market_cap(self, repo):
        top = repo.get_top_cryptocurrencies(limit=10)

        assert [c["symbol"] for c in top] == ["BTC", "ETH"]
        assert top[0]["market_cap"] == 1100.0

    def test_top_limit_offset(self, repo):
        assert [c["symbol"] for c in repo.get_top_cryptocurrencies(limit=1, offset=1)] == ["ETH"]

    def test_by_symbol_with_tags_and_latest_price(self, repo):
        btc = repo.get_by_symbol("btc")

        assert btc["cmc_id"] == 1
        assert btc["tags"] == ["pow"]
        assert btc["price_data"]["market_cap"] == 1100.0

    def test_by_symbol_missing(self, repo):
        assert repo.get_by_symbol("DOGE") is None

    def test_historical_prices_oldest_first(self, repo):
        prices = repo.get_historical_prices(1, since=T0 - timedelta(days=1))
        assert [p.market_cap for p in prices] == [1000.0, 1100.0]

    def test_empty_database(self, session):
        assert CryptocurrencyListingsRepository(session).get_top_cryptocurrencies() == []


# ============================================================
# INDEX FEEDS
# ============================================================

class TestIndexRepositories:
    """Insert-if-absent time series."""

    def test_fear_greed_idempotent_and_reads(self, session):
        repo = FearGreedRepository(session)
        points = [
            FearGreedPoint(T0 - timedelta(days=i), 50 + i, "Neutral") for i in range(3)
        ]

        assert repo.save_batch(points).inserted_count == 3
        assert repo.save_batch(points).inserted_count == 0
        assert count(session, FearGreedIndex) == 3

        assert repo.get_latest().value == 50
        historical = repo.get_historical(since=T0 - timedelta(days=1))
        assert [p.value for p in historical] == [50, 51]

    def test_altcoin_season_idempotent_and_reads(self, session):
        repo = AltcoinSeasonRepository(session)
        points = [
            AltcoinSeasonPoint(T0 + timedelta(days=i), Decimal("30.25") + i, Decimal("1000.50"))
            for i in range(4)
        ]

        assert repo.save_batch(points).inserted_count == 4
        assert repo.save_batch(points[:2] + [
            AltcoinSeasonPoint(T0 + timedelta(days=9), Decimal("70"), Decimal("1")),
        ]).inserted_count == 1
        assert count(session, AltcoinSeasonIndex) == 5

        assert float(repo.get_latest().altcoin_index) == 70.0
        historical = repo.get_historical(since=T0 + timedelta(days=2))
        assert [float(p.altcoin_index) for p in historical] == [32.25, 33.25, 70.0]
