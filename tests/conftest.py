"""
Shared test fixtures.

- In-memory SQLite engine (StaticPool) with every table created
- Session factory bound to it
- MockClock pinned to a fixed instant
- Settings with three API keys and short feed timings
"""

from datetime import datetime, timezone

import pytest

from core.clock import MockClock
from core.config import (
    AppSettings,
    DatabaseConfig,
    FeedConfig,
    ProviderConfig,
    PublisherConfig,
    TelegramConfig,
)
from storage.database import create_all_tables, create_database_engine, create_session_factory
from storage.models import Entity, ProcessedContent, RawContent, Source


FIXED_NOW = datetime(2025, 3, 1, 12, 0, 0, tzinfo=timezone.utc)


# ============================================================
# FIXTURES
# ============================================================

@pytest.fixture
def clock():
    """Clock pinned to FIXED_NOW."""
    return MockClock(FIXED_NOW)


@pytest.fixture
def engine():
    """Fresh in-memory database per test."""
    engine = create_database_engine(DatabaseConfig(url="sqlite://"))
    create_all_tables(engine)
    yield engine
    engine.dispose()


@pytest.fixture
def session_factory(engine):
    return create_session_factory(engine)


@pytest.fixture
def session(session_factory):
    """A single session; close it before running code that opens its own."""
    session = session_factory()
    yield session
    session.close()


@pytest.fixture
def provider_config():
    return ProviderConfig(
        api_keys=("key-a", "key-b", "key-c"),
        pro_base_url="https://pro-api.test",
        data_api_base_url="https://data-api.test",
        timeout_seconds=5.0,
        listings_limit=200,
        index_window_days=30,
    )


@pytest.fixture
def settings(provider_config):
    return AppSettings(
        database=DatabaseConfig(url="sqlite://"),
        provider=provider_config,
        feeds=(
            FeedConfig("cryptocurrency_listings", poll_seconds=900, interval_seconds=3600),
            FeedConfig("fear_greed_index", poll_seconds=3600, interval_seconds=86400),
            FeedConfig("altcoin_season_index", poll_seconds=3600, interval_seconds=86400),
        ),
        publisher=PublisherConfig(enabled=True, interval_seconds=60.0, batch_size=10),
        telegram=TelegramConfig(bot_token="123:abc", chat_ids=("-100", "-200", "-300")),
        log_level="DEBUG",
        log_format="text",
    )


@pytest.fixture
def seed_content(session_factory):
    """
    Factory inserting processed content rows with explicit ids.

    Usage:
        seed_content(43, summary="...")
    """
    state = {}

    def _seed(content_id, summary="Summary", content_type="tweet", external_id=None,
              username="whale_alert", sentiment_score=0.5):
        with session_factory() as session:
            if "entity_id" not in state:
                source = Source(name="Twitter", type="twitter")
                session.add(source)
                session.flush()
                entity = Entity(
                    source_id=source.id,
                    entity_external_id="e-1",
                    name="Whale Alert",
                    username=username,
                )
                session.add(entity)
                session.flush()
                state["entity_id"] = entity.id

            raw = RawContent(
                entity_id=state["entity_id"],
                external_id=external_id or str(1000 + content_id),
                content_type=content_type,
                content=f"raw text {content_id}",
                published_at=FIXED_NOW,
            )
            session.add(raw)
            session.flush()
            session.add(ProcessedContent(
                id=content_id,
                raw_content_id=raw.id,
                sentiment_score=sentiment_score,
                impact_score=0.2,
                categories=["markets"],
                keywords=["btc"],
                summary=summary,
            ))
            session.commit()

    return _seed
