"""
Data Ingestion - Altcoin Season Collector.

============================================================
RESPONSIBILITY
============================================================
Collects the altcoin-season index chart for a rolling window.

- GET /data-api/v3/altcoin-season/chart (start, end, convertId)
- Window: [now - window days, now] in epoch seconds
- Points live under data.points
- Default cadence: polled hourly, refreshed every 24h

============================================================
"""

from datetime import timedelta
from decimal import Decimal, InvalidOperation
from typing import Any, Dict, List, Tuple

from sqlalchemy.orm import Session

from core.clock import from_epoch_seconds
from data_ingestion.collectors.base import BaseFeedCollector
from data_ingestion.types import AltcoinSeasonPoint, FeedKind, InvalidProviderResponse, SaveResult
from storage.repositories.market_data import AltcoinSeasonRepository


# USD
CONVERT_ID = 2781


class AltcoinSeasonCollector(BaseFeedCollector):
    """Collector for the altcoin-season index."""

    feed_kind = FeedKind.ALTCOIN_SEASON_INDEX

    def build_request(self) -> Tuple[str, Dict[str, Any]]:
        end = self._clock.epoch_seconds()
        start = end - int(timedelta(days=self._provider.index_window_days).total_seconds())
        url = f"{self._provider.data_api_base_url}/data-api/v3/altcoin-season/chart"
        return url, {"start": start, "end": end, "convertId": CONVERT_ID}

    def extra_headers(self) -> Dict[str, str]:
        return {"platform": "web", "Referer": "https://coinmarketcap.com/"}

    def extract_items(self, body: Any) -> List[Dict[str, Any]]:
        data = body.get("data") if isinstance(body, dict) else None
        points = data.get("points") if isinstance(data, dict) else None
        if not isinstance(points, list):
            raise InvalidProviderResponse(
                message="Altcoin season response has no data.points list",
                source=self.feed_id,
            )
        return points

    def parse_item(self, raw: Dict[str, Any]) -> AltcoinSeasonPoint:
        try:
            return AltcoinSeasonPoint(
                timestamp=from_epoch_seconds(raw["timestamp"]),
                altcoin_index=Decimal(str(raw["altcoinIndex"])),
                altcoin_marketcap=Decimal(str(raw["altcoinMarketcap"])),
            )
        except (KeyError, TypeError, ValueError, InvalidOperation, OverflowError) as e:
            raise InvalidProviderResponse(
                message=f"Unrecognised altcoin season point: {e!r}",
                source=self.feed_id,
            ) from e

    def save_rows(self, session: Session, rows: List[AltcoinSeasonPoint]) -> SaveResult:
        return AltcoinSeasonRepository(session).save_batch(rows)
