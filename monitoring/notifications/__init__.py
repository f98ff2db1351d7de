"""
Notifications Package.

Outbound delivery channels for published content.
"""

from .telegram import (
    MAX_MESSAGE_LENGTH,
    BroadcastResult,
    TelegramBroadcaster,
    truncate_message,
)


__all__ = [
    "MAX_MESSAGE_LENGTH",
    "BroadcastResult",
    "TelegramBroadcaster",
    "truncate_message",
]
