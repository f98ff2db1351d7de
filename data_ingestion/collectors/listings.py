"""
Data Ingestion - Cryptocurrency Listings Collector.

============================================================
RESPONSIBILITY
============================================================
Collects the latest top-N cryptocurrency listings snapshot.

- GET /v1/cryptocurrency/listings/latest (limit, convert=USD)
- Upserts cryptocurrencies, inserts price snapshots, tags
- Default cadence: polled every 15 min, refreshed hourly

============================================================
"""

from typing import Any, Dict, List, Optional, Tuple

from sqlalchemy.orm import Session

from core.clock import from_iso8601
from data_ingestion.collectors.base import BaseFeedCollector
from data_ingestion.types import FeedKind, InvalidProviderResponse, ListingRow, SaveResult
from storage.repositories.market_data import CryptocurrencyListingsRepository


def _optional_float(value: Any) -> Optional[float]:
    return float(value) if value is not None else None


def _optional_int(value: Any) -> Optional[int]:
    return int(value) if value is not None else None


class ListingsCollector(BaseFeedCollector):
    """
    Collector for the listings snapshot.

    ============================================================
    WIRING
    ============================================================
    Source: CoinMarketCap Pro API (REST)
    Repository: CryptocurrencyListingsRepository
    Watermark key: cryptocurrency_listings

    ============================================================
    """

    feed_kind = FeedKind.CRYPTOCURRENCY_LISTINGS

    def build_request(self) -> Tuple[str, Dict[str, Any]]:
        url = f"{self._provider.pro_base_url}/v1/cryptocurrency/listings/latest"
        return url, {"limit": self._provider.listings_limit, "convert": "USD"}

    def extract_items(self, body: Any) -> List[Dict[str, Any]]:
        data = body.get("data") if isinstance(body, dict) else None
        if not isinstance(data, list):
            raise InvalidProviderResponse(
                message="Listings response has no data list",
                source=self.feed_id,
            )
        return data

    def parse_item(self, raw: Dict[str, Any]) -> ListingRow:
        try:
            usd = raw["quote"]["USD"]
            tags = tuple(str(tag) for tag in (raw.get("tags") or ()))
            date_added = raw.get("date_added")

            return ListingRow(
                cmc_id=int(raw["id"]),
                name=str(raw["name"]),
                symbol=str(raw["symbol"]),
                slug=str(raw["slug"]),
                timestamp=from_iso8601(raw["last_updated"]),
                max_supply=_optional_int(raw.get("max_supply")),
                infinite_supply=raw.get("infinite_supply"),
                date_added=from_iso8601(date_added) if date_added else None,
                tags=tags,
                price_usd=_optional_float(usd.get("price")),
                volume_24h=_optional_float(usd.get("volume_24h")),
                volume_change_24h=_optional_float(usd.get("volume_change_24h")),
                percent_change_1h=_optional_float(usd.get("percent_change_1h")),
                percent_change_24h=_optional_float(usd.get("percent_change_24h")),
                percent_change_7d=_optional_float(usd.get("percent_change_7d")),
                market_cap=_optional_float(usd.get("market_cap")),
                market_cap_dominance=_optional_float(usd.get("market_cap_dominance")),
                fully_diluted_market_cap=_optional_float(usd.get("fully_diluted_market_cap")),
                circulating_supply=_optional_float(raw.get("circulating_supply")),
                total_supply=_optional_float(raw.get("total_supply")),
                cmc_rank=_optional_int(raw.get("cmc_rank")),
                num_market_pairs=_optional_int(raw.get("num_market_pairs")),
            )
        except (KeyError, TypeError, ValueError, AttributeError) as e:
            raise InvalidProviderResponse(
                message=f"Unrecognised listing item: {e!r}",
                source=self.feed_id,
                details={"id": raw.get("id") if isinstance(raw, dict) else None},
            ) from e

    def save_rows(self, session: Session, rows: List[ListingRow]) -> SaveResult:
        return CryptocurrencyListingsRepository(session).save_batch(rows)
