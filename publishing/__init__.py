"""
Publishing Package.

============================================================
PURPOSE
============================================================
Forward newly processed content to Telegram.

- formatter: PublishableContent -> HTML message
- poller: cursor-driven polling loop and force-publish

============================================================
"""

from publishing.formatter import ContentMessageFormatter, build_source_link, get_sentiment_label
from publishing.poller import PublishCycleResult, PublisherPoller


__all__ = [
    "ContentMessageFormatter",
    "build_source_link",
    "get_sentiment_label",
    "PublishCycleResult",
    "PublisherPoller",
]
