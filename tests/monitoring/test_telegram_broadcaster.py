"""
Tests for the Telegram broadcast sink.
"""

import asyncio
from unittest.mock import AsyncMock, MagicMock, patch

import aiohttp
import pytest

from core.config import TelegramConfig
from monitoring.notifications.telegram import (
    MAX_MESSAGE_LENGTH,
    BroadcastResult,
    TelegramBroadcaster,
    truncate_message,
)


def make_response(status=200, body="ok"):
    response = MagicMock()
    response.status = status
    response.text = AsyncMock(return_value=body)

    context = MagicMock()
    context.__aenter__ = AsyncMock(return_value=response)
    context.__aexit__ = AsyncMock(return_value=False)
    return context


def make_session(*responses):
    session = MagicMock()
    session.closed = False
    session.post = MagicMock(side_effect=list(responses))
    session.close = AsyncMock()
    return session


@pytest.fixture
def config():
    return TelegramConfig(bot_token="123:abc", chat_ids=("-100", "-200", "-300"))


# ============================================================
# BROADCAST
# ============================================================

class TestBroadcast:

    @pytest.mark.asyncio
    async def test_one_failing_chat_still_delivered(self, config):
        broadcaster = TelegramBroadcaster(config)

        with patch.object(
            broadcaster, "_send_message", AsyncMock(side_effect=[True, False, True])
        ) as send:
            result = await broadcaster.broadcast("hello")

        assert result == BroadcastResult(success_count=2, failure_count=1)
        assert result.delivered is True
        assert result.to_dict() == {"success": 2, "failure": 1}
        assert [call.args[0] for call in send.await_args_list] == ["-100", "-200", "-300"]

    @pytest.mark.asyncio
    async def test_no_destinations(self):
        broadcaster = TelegramBroadcaster(TelegramConfig(bot_token="123:abc"))

        result = await broadcaster.broadcast("hello")

        assert result == BroadcastResult(0, 0)
        assert result.delivered is False

    @pytest.mark.asyncio
    async def test_payload_and_url(self, config):
        session = make_session(make_response(), make_response(), make_response())
        broadcaster = TelegramBroadcaster(config, session=session)

        await broadcaster.broadcast("<b>hi</b>")

        url = session.post.call_args_list[0].args[0]
        payload = session.post.call_args_list[0].kwargs["json"]
        assert url == "https://api.telegram.org/bot123:abc/sendMessage"
        assert payload == {
            "chat_id": "-100",
            "text": "<b>hi</b>",
            "parse_mode": "HTML",
            "disable_web_page_preview": True,
        }

    @pytest.mark.asyncio
    async def test_http_errors_and_exceptions_count_as_failures(self, config):
        failing = MagicMock()
        failing.__aenter__ = AsyncMock(side_effect=aiohttp.ClientConnectionError("down"))
        failing.__aexit__ = AsyncMock(return_value=False)
        session = make_session(make_response(), make_response(status=403, body="Forbidden"), failing)
        broadcaster = TelegramBroadcaster(config, session=session)

        result = await broadcaster.broadcast("hello")

        assert result == BroadcastResult(success_count=1, failure_count=2)

    @pytest.mark.asyncio
    async def test_timeout_counts_as_failure(self):
        timing_out = MagicMock()
        timing_out.__aenter__ = AsyncMock(side_effect=asyncio.TimeoutError())
        timing_out.__aexit__ = AsyncMock(return_value=False)
        broadcaster = TelegramBroadcaster(
            TelegramConfig(bot_token="t", chat_ids=("1",)), session=make_session(timing_out)
        )

        assert await broadcaster._send_message("1", "hello") is False

    @pytest.mark.asyncio
    async def test_long_message_truncated(self, config):
        broadcaster = TelegramBroadcaster(config)

        with patch.object(broadcaster, "_send_message", AsyncMock(return_value=True)) as send:
            await broadcaster.broadcast("x" * 5000)

        text = send.await_args.args[1]
        assert len(text) == MAX_MESSAGE_LENGTH
        assert text.endswith("...")


class TestTruncateMessage:

    def test_short_message_unchanged(self):
        assert truncate_message("abc", limit=3) == "abc"

    def test_cut_with_marker(self):
        assert truncate_message("abcdefgh", limit=6) == "abc..."

    def test_cut_never_splits_entity(self):
        text = truncate_message("<b>X</b>\n\n" + "&amp;" * 2000)

        assert len(text) <= MAX_MESSAGE_LENGTH
        assert text.endswith("&amp;...")

    def test_cut_never_splits_tag(self):
        assert truncate_message('abc<a href="x">link</a>', limit=10) == "abc..."


# ============================================================
# DESTINATIONS AND LIFECYCLE
# ============================================================

class TestDestinations:

    def test_initial_ids_deduplicated(self):
        broadcaster = TelegramBroadcaster(TelegramConfig(bot_token="t", chat_ids=("1", "2", "1")))
        assert broadcaster.get_registered_chat_ids() == ["1", "2"]

    def test_register_and_unregister(self, config):
        broadcaster = TelegramBroadcaster(config)

        assert broadcaster.register_chat_id("-400") is True
        assert broadcaster.register_chat_id("-400") is False
        assert broadcaster.register_chat_id("  ") is False
        assert broadcaster.unregister_chat_id("-100") is True
        assert broadcaster.unregister_chat_id("-100") is False
        assert broadcaster.get_registered_chat_ids() == ["-200", "-300", "-400"]
        assert broadcaster.get_status() == {"configured": True, "chat_count": 3}


class TestLifecycle:

    @pytest.mark.asyncio
    async def test_injected_session_not_closed(self, config):
        session = make_session()
        broadcaster = TelegramBroadcaster(config, session=session)

        await broadcaster.close()

        session.close.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_owned_session_closed(self, config):
        broadcaster = TelegramBroadcaster(config)
        session = await broadcaster._get_session()

        await broadcaster.close()

        assert session.closed
