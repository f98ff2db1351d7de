"""
Telegram Broadcast Sink.

============================================================
PURPOSE
============================================================
Deliver one HTML message to every registered Telegram chat.

PRINCIPLES:
- Each destination is attempted independently
- One failing chat never aborts the others
- Delivery outcome is reported as counts, never raised
- The bot token is never logged

============================================================
"""

import asyncio
import logging
from dataclasses import dataclass
from typing import Any, Dict, List, Optional

import aiohttp

from core.config import TelegramConfig


logger = logging.getLogger("telegram")


# Telegram rejects longer message texts
MAX_MESSAGE_LENGTH = 4096


@dataclass(frozen=True)
class BroadcastResult:
    """Per-message delivery outcome across all destinations."""
    success_count: int = 0
    failure_count: int = 0

    @property
    def delivered(self) -> bool:
        return self.success_count > 0

    def to_dict(self) -> Dict[str, int]:
        return {"success": self.success_count, "failure": self.failure_count}


def truncate_message(message: str, limit: int = MAX_MESSAGE_LENGTH) -> str:
    """
    Cut an HTML message to Telegram's ceiling, marking the cut.

    The cut never ends inside an entity (``&amp;``) or a tag
    (``<a href=...>``); Telegram rejects such text outright.
    """
    if len(message) <= limit:
        return message

    cut = message[: limit - 3]
    amp = cut.rfind("&")
    if amp > cut.rfind(";"):
        cut = cut[:amp]
    lt = cut.rfind("<")
    if lt > cut.rfind(">"):
        cut = cut[:lt]
    return cut + "..."


# ============================================================
# TELEGRAM BROADCASTER
# ============================================================

class TelegramBroadcaster:
    """
    Sends messages to every registered Telegram chat.

    Destinations start from TELEGRAM_CHAT_IDS and can be changed at
    runtime with register_chat_id / unregister_chat_id.
    """

    BASE_URL = "https://api.telegram.org/bot"

    def __init__(
        self,
        config: TelegramConfig,
        session: Optional[aiohttp.ClientSession] = None,
    ):
        """
        Initialize the broadcaster.

        Args:
            config: Bot token, initial chat ids and request timeout
            session: Optional shared aiohttp session (created lazily if None)
        """
        self._config = config
        self._bot_token = config.bot_token
        self._chat_ids: List[str] = list(dict.fromkeys(config.chat_ids))
        self._session = session
        self._owns_session = session is None

        if self._config.is_configured and self._chat_ids:
            logger.info(f"TelegramBroadcaster enabled with {len(self._chat_ids)} chat(s)")
        else:
            logger.warning(
                "TelegramBroadcaster NOT fully configured - check TELEGRAM_BOT_TOKEN and TELEGRAM_CHAT_IDS"
            )

    async def _get_session(self) -> aiohttp.ClientSession:
        """Get or create HTTP session."""
        if self._session is None or self._session.closed:
            self._session = aiohttp.ClientSession(
                timeout=aiohttp.ClientTimeout(total=self._config.timeout_seconds)
            )
            self._owns_session = True
        return self._session

    async def close(self) -> None:
        """Close an owned HTTP session."""
        if self._owns_session and self._session and not self._session.closed:
            await self._session.close()
        self._session = None

    # =========================================================
    # DESTINATIONS
    # =========================================================

    def register_chat_id(self, chat_id: str) -> bool:
        """Add a destination. Returns False if it was already registered."""
        chat_id = str(chat_id).strip()
        if not chat_id or chat_id in self._chat_ids:
            return False
        self._chat_ids.append(chat_id)
        logger.info(f"Registered Telegram chat {chat_id}")
        return True

    def unregister_chat_id(self, chat_id: str) -> bool:
        """Remove a destination. Returns False if it was not registered."""
        chat_id = str(chat_id).strip()
        if chat_id not in self._chat_ids:
            return False
        self._chat_ids.remove(chat_id)
        logger.info(f"Unregistered Telegram chat {chat_id}")
        return True

    def get_registered_chat_ids(self) -> List[str]:
        return list(self._chat_ids)

    # =========================================================
    # DELIVERY
    # =========================================================

    async def broadcast(self, message: str) -> BroadcastResult:
        """
        Send ``message`` to every registered chat.

        Returns:
            BroadcastResult with success and failure counts;
            (0, 0) when no destination is registered
        """
        chat_ids = list(self._chat_ids)
        if not chat_ids:
            logger.warning("No Telegram chats registered, message not sent")
            return BroadcastResult()

        text = truncate_message(message)
        outcomes = [await self._send_message(chat_id, text) for chat_id in chat_ids]
        result = BroadcastResult(
            success_count=sum(1 for ok in outcomes if ok),
            failure_count=sum(1 for ok in outcomes if not ok),
        )

        if result.failure_count:
            logger.warning(
                f"Broadcast partially failed: {result.success_count} sent, "
                f"{result.failure_count} failed"
            )
        return result

    async def _send_message(
        self,
        chat_id: str,
        message: str,
        parse_mode: str = "HTML",
    ) -> bool:
        """Send message to a specific chat."""
        try:
            session = await self._get_session()

            url = f"{self.BASE_URL}{self._bot_token}/sendMessage"

            payload = {
                "chat_id": chat_id,
                "text": message,
                "parse_mode": parse_mode,
                "disable_web_page_preview": True,
            }

            async with session.post(url, json=payload) as response:
                if response.status == 200:
                    return True
                else:
                    body = await response.text()
                    logger.error(
                        f"Telegram API error for chat {chat_id}: {response.status} - {body[:200]}"
                    )
                    return False

        except (aiohttp.ClientError, asyncio.TimeoutError) as e:
            logger.error(f"Error sending Telegram message to chat {chat_id}: {type(e).__name__}: {e}")
            return False

    def get_status(self) -> Dict[str, Any]:
        return {
            "configured": self._config.is_configured,
            "chat_count": len(self._chat_ids),
        }
