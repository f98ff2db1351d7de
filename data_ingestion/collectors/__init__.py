"""
Data Ingestion - Collectors Package.

One collector per provider feed.

Collectors:
- listings: Latest cryptocurrency listings snapshot
- fear_greed: Fear-and-greed index history
- altcoin_season: Altcoin-season index chart
"""

from data_ingestion.collectors.altcoin_season import AltcoinSeasonCollector
from data_ingestion.collectors.base import BaseFeedCollector
from data_ingestion.collectors.fear_greed import FearGreedCollector
from data_ingestion.collectors.listings import ListingsCollector
from data_ingestion.types import FeedKind


COLLECTOR_CLASSES = {
    FeedKind.CRYPTOCURRENCY_LISTINGS: ListingsCollector,
    FeedKind.FEAR_GREED_INDEX: FearGreedCollector,
    FeedKind.ALTCOIN_SEASON_INDEX: AltcoinSeasonCollector,
}


__all__ = [
    "BaseFeedCollector",
    "ListingsCollector",
    "FearGreedCollector",
    "AltcoinSeasonCollector",
    "COLLECTOR_CLASSES",
]
