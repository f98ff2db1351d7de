"""
Publishing - Message Formatter.

============================================================
PURPOSE
============================================================
Render one processed content item as a Telegram HTML message.

Layout:
    <b><a href="https://t.me/{username}">{entity name}</a></b>

    {summary}

    [Sentiment: {label} ({score})]
    <a href="{source url}">View source</a>

- Items without a summary produce no message
- All user text is HTML-escaped
- Over-long summaries are cut before escaping so the whole
  message fits Telegram's limit
- The source link is omitted when no URL can be derived

============================================================
"""

import html
from typing import Optional

from monitoring.notifications.telegram import MAX_MESSAGE_LENGTH
from storage.repositories.content import PublishableContent


TWEET_CONTENT_TYPES = ("twitter", "tweet")


def get_sentiment_label(score: float) -> str:
    """Label for a sentiment score in [-1, 1]."""
    if score >= 0.7:
        return "Very Positive"
    if score >= 0.3:
        return "Positive"
    if score >= -0.3:
        return "Neutral"
    if score >= -0.7:
        return "Negative"
    return "Very Negative"


def build_source_link(content_type: Optional[str], external_id: Optional[str]) -> Optional[str]:
    """
    Derive a public URL for the original post.

    Returns:
        The URL, or None when the external id cannot be linked
    """
    if not external_id:
        return None

    if content_type in TWEET_CONTENT_TYPES:
        return f"https://twitter.com/i/status/{external_id}"
    if content_type == "telegram":
        if external_id.startswith("https://"):
            return external_id
        return f"https://t.me/c/{external_id}"
    if external_id.startswith("http"):
        return external_id
    return None


def escape_within(text: str, budget: int) -> str:
    """
    HTML-escape ``text`` so the result is at most ``budget`` characters.

    Text that does not fit is cut on the plain side, before escaping,
    and marked with "...".
    """
    escaped = html.escape(text)
    if len(escaped) <= budget:
        return escaped

    pieces = []
    used = 0
    for char in text:
        piece = html.escape(char)
        if used + len(piece) > budget - 3:
            break
        pieces.append(piece)
        used += len(piece)
    return "".join(pieces) + "..."


class ContentMessageFormatter:
    """Formats PublishableContent for Telegram (parse_mode=HTML)."""

    def __init__(self, include_sentiment: bool = False, max_length: int = MAX_MESSAGE_LENGTH):
        self._include_sentiment = include_sentiment
        self._max_length = max_length

    def format_header(self, item: PublishableContent) -> str:
        name = html.escape(item.entity_name or item.source_name or "Unknown")
        if item.entity_username:
            username = html.escape(item.entity_username, quote=True)
            return f'<b><a href="https://t.me/{username}">{name}</a></b>'
        return f"<b>{name}</b>"

    def format_content(self, item: PublishableContent) -> Optional[str]:
        """
        Build the message for ``item``.

        Returns:
            HTML message, or None when the item has no summary
        """
        summary = (item.summary or "").strip()
        if not summary:
            return None

        header = self.format_header(item)

        footer = []
        if self._include_sentiment and item.sentiment_score is not None:
            label = get_sentiment_label(item.sentiment_score)
            footer.append(f"Sentiment: {label} ({item.sentiment_score:.2f})")

        url = build_source_link(item.content_type, item.external_id)
        if url:
            footer.append(f'<a href="{html.escape(url, quote=True)}">View source</a>')

        footer_text = ("\n\n" + "\n".join(footer)) if footer else ""
        budget = self._max_length - len(header) - 2 - len(footer_text)

        return f"{header}\n\n{escape_within(summary, budget)}{footer_text}"
