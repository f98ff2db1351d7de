"""
Data Ingestion - Fear and Greed Collector.

============================================================
RESPONSIBILITY
============================================================
Collects the daily fear-and-greed history.

- GET /v3/fear-and-greed/historical (count = window days)
- Items: {timestamp (epoch seconds), value, value_classification}
- Default cadence: polled hourly, refreshed every 24h

============================================================
"""

from typing import Any, Dict, List, Tuple

from sqlalchemy.orm import Session

from core.clock import from_epoch_seconds
from data_ingestion.collectors.base import BaseFeedCollector
from data_ingestion.types import FearGreedPoint, FeedKind, InvalidProviderResponse, SaveResult
from storage.repositories.market_data import FearGreedRepository


class FearGreedCollector(BaseFeedCollector):
    """Collector for the fear-and-greed index history."""

    feed_kind = FeedKind.FEAR_GREED_INDEX

    def build_request(self) -> Tuple[str, Dict[str, Any]]:
        url = f"{self._provider.pro_base_url}/v3/fear-and-greed/historical"
        return url, {"count": self._provider.index_window_days, "format": "json"}

    def extract_items(self, body: Any) -> List[Dict[str, Any]]:
        data = body.get("data") if isinstance(body, dict) else None
        if not isinstance(data, list):
            raise InvalidProviderResponse(
                message="Fear and greed response has no data list",
                source=self.feed_id,
            )
        return data

    def parse_item(self, raw: Dict[str, Any]) -> FearGreedPoint:
        try:
            return FearGreedPoint(
                timestamp=from_epoch_seconds(raw["timestamp"]),
                value=int(raw["value"]),
                value_classification=str(raw["value_classification"]),
            )
        except (KeyError, TypeError, ValueError, OverflowError) as e:
            raise InvalidProviderResponse(
                message=f"Unrecognised fear and greed item: {e!r}",
                source=self.feed_id,
            ) from e

    def save_rows(self, session: Session, rows: List[FearGreedPoint]) -> SaveResult:
        return FearGreedRepository(session).save_batch(rows)
