"""
Tests for the publication cursor and processed content repositories.
"""

from storage.repositories.content import ProcessedContentRepository
from storage.repositories.publication import PublicationCursorRepository


# ============================================================
# CURSOR
# ============================================================

class TestPublicationCursor:
    """Singleton cursor row."""

    def test_read_before_bootstrap(self, session):
        repo = PublicationCursorRepository(session)
        assert repo.read() == 0
        assert repo.get_tracking() is None

    def test_bootstrap_creates_once(self, session, clock):
        repo = PublicationCursorRepository(session)

        assert repo.bootstrap(clock.now()) == 0
        repo.advance(42, clock.now())
        assert repo.bootstrap(clock.now()) == 42

    def test_advance_never_moves_backward(self, session, clock):
        repo = PublicationCursorRepository(session)
        repo.bootstrap(clock.now())

        assert repo.advance(45, clock.now()) is True
        assert repo.advance(45, clock.now()) is False
        assert repo.advance(43, clock.now()) is False
        assert repo.read() == 45

    def test_touch_check_time(self, session, clock):
        repo = PublicationCursorRepository(session)
        repo.bootstrap(clock.now())

        clock.advance(minutes=5)
        repo.touch_check_time(clock.now())

        tracking = repo.get_tracking()
        assert tracking["last_published_id"] == 0
        assert tracking["last_check_time"] == clock.now().isoformat()


# ============================================================
# PROCESSED CONTENT
# ============================================================

class TestProcessedContentRepository:
    """Joined reads for the publisher."""

    def test_list_after_cursor_ascending_with_limit(self, session_factory, seed_content):
        for content_id in (5, 3, 9, 7):
            seed_content(content_id)

        with session_factory() as session:
            repo = ProcessedContentRepository(session)
            assert [item.id for item in repo.list_after(3, limit=2)] == [5, 7]
            assert [item.id for item in repo.list_after(9, limit=10)] == []

    def test_publishable_fields(self, session_factory, seed_content):
        seed_content(12, summary="Big transfer", external_id="177")

        with session_factory() as session:
            item = ProcessedContentRepository(session).get_publishable(12)

        assert item.summary == "Big transfer"
        assert item.external_id == "177"
        assert item.content_type == "tweet"
        assert item.entity_name == "Whale Alert"
        assert item.entity_username == "whale_alert"
        assert item.source_type == "twitter"
        assert item.categories == ("markets",)
        assert item.keywords == ("btc",)

    def test_get_publishable_missing(self, session):
        assert ProcessedContentRepository(session).get_publishable(999) is None
