"""
Tests for the update gate (feed watermarks).
"""

from datetime import timedelta

import pytest

from storage.models import FeedWatermark
from storage.repositories.exceptions import ValidationError
from storage.repositories.update_gate import FeedWatermarkRepository, UpdateGate


FEED = "altcoin_season_index"


@pytest.fixture
def gate(session_factory, clock):
    return UpdateGate(session_factory, clock)


class TestIsDue:
    """Due-check against the stored watermark."""

    def test_absent_watermark_is_due(self, gate):
        assert gate.is_due(FEED) is True

    def test_future_watermark_not_due(self, gate, clock):
        gate.advance(FEED, clock.now() + timedelta(days=1))
        assert gate.is_due(FEED) is False

    def test_due_exactly_at_next_update(self, gate, clock):
        gate.advance(FEED, clock.now() + timedelta(hours=1))

        clock.advance(minutes=59)
        assert gate.is_due(FEED) is False

        clock.advance(minutes=1)
        assert gate.is_due(FEED) is True

    def test_feeds_are_independent(self, gate, clock):
        gate.advance(FEED, clock.now() + timedelta(days=1))
        assert gate.is_due("fear_greed_index") is True

    def test_read_error_fails_open(self, gate, engine):
        FeedWatermark.__table__.drop(engine)
        assert gate.is_due(FEED) is True


class TestAdvance:
    """Watermark writes."""

    def test_advance_records_now_and_next(self, gate, clock):
        next_update = clock.now() + timedelta(days=1)
        gate.advance(FEED, next_update)

        watermark = gate.get_watermark(FEED)
        assert watermark == {
            "feed_id": FEED,
            "last_updated_at": clock.now().isoformat(),
            "next_update_at": next_update.isoformat(),
        }

    def test_advance_replaces_previous_row(self, gate, clock, session_factory):
        gate.advance(FEED, clock.now() + timedelta(hours=1))
        clock.advance(hours=2)
        gate.advance(FEED, clock.now() + timedelta(hours=1))

        with session_factory() as session:
            rows = session.query(FeedWatermark).all()
        assert len(rows) == 1
        assert gate.get_watermark(FEED)["last_updated_at"] == clock.now().isoformat()

    @pytest.mark.parametrize("offset", [timedelta(0), timedelta(seconds=-1)])
    def test_rejects_next_update_not_in_future(self, gate, clock, offset):
        with pytest.raises(ValidationError):
            gate.advance(FEED, clock.now() + offset)
        assert gate.get_watermark(FEED) is None

    def test_repository_get_missing(self, session):
        assert FeedWatermarkRepository(session).get("missing") is None
