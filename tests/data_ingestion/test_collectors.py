"""
Tests for the feed collectors.

============================================================
PURPOSE
============================================================
Full gate -> fetch -> map -> save -> advance cycles against an
httpx.MockTransport provider and an in-memory database.

- Watermark absent / in the future
- 429 rotation and exhaustion
- Malformed payloads leave the watermark untouched
- Re-running a cycle inserts nothing new

============================================================
"""

from datetime import timedelta
from typing import Callable, List

import httpx
import pytest
from sqlalchemy import func, select

from core.config import FeedConfig
from data_ingestion.collectors import (
    AltcoinSeasonCollector,
    FearGreedCollector,
    ListingsCollector,
)
from data_ingestion.collectors.base import API_KEY_HEADER
from data_ingestion.key_rotator import ApiKeyRotator
from data_ingestion.scheduler import FeedScheduler
from data_ingestion.types import (
    AllCredentialsExhausted,
    FetchError,
    IngestionStatus,
    InvalidProviderResponse,
    NoCredentialsConfigured,
    PersistenceError,
)
from storage.models import (
    AltcoinSeasonIndex,
    CryptocurrencyPrice,
    CryptocurrencyTag,
    FearGreedIndex,
)
from storage.repositories.update_gate import UpdateGate


DAY = 24 * 60 * 60


# ============================================================
# HELPERS
# ============================================================

class RecordingProvider:
    """MockTransport handler replaying canned responses in order."""

    def __init__(self, responses: List[httpx.Response]):
        self._responses = list(responses)
        self.requests: List[httpx.Request] = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        if len(self._responses) > 1:
            return self._responses.pop(0)
        return self._responses[0]

    @property
    def keys_used(self) -> List[str]:
        return [r.headers[API_KEY_HEADER] for r in self.requests]


def make_collector(
    collector_class,
    handler: Callable,
    provider_config,
    session_factory,
    clock,
    interval_seconds: int = DAY,
    rotator: ApiKeyRotator = None,
):
    client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
    return collector_class(
        feed_config=FeedConfig(collector_class.feed_kind.value, 3600, interval_seconds),
        provider_config=provider_config,
        rotator=rotator or ApiKeyRotator(provider_config.api_keys),
        gate=UpdateGate(session_factory, clock),
        session_factory=session_factory,
        clock=clock,
        client=client,
    )


def count_rows(session_factory, model) -> int:
    with session_factory() as session:
        return session.execute(select(func.count()).select_from(model)).scalar()


def altcoin_body(count: int = 5) -> dict:
    base = 1735689600
    return {
        "data": {
            "points": [
                {
                    "timestamp": str(base + i * DAY),
                    "altcoinIndex": 40 + i,
                    "altcoinMarketcap": 1_000_000.5 + i,
                }
                for i in range(count)
            ]
        },
        "status": {"error_code": "0"},
    }


def fear_greed_body() -> dict:
    return {
        "data": [
            {"timestamp": "1735689600", "value": 72, "value_classification": "Greed"},
            {"timestamp": "1735776000", "value": 45, "value_classification": "Neutral"},
        ]
    }


def listing_item(cmc_id: int, symbol: str, tags=("mineable",)) -> dict:
    return {
        "id": cmc_id,
        "name": symbol.title(),
        "symbol": symbol,
        "slug": symbol.lower(),
        "cmc_rank": cmc_id,
        "num_market_pairs": 100,
        "circulating_supply": 19_000_000,
        "total_supply": 19_000_000,
        "max_supply": 21_000_000,
        "infinite_supply": False,
        "date_added": "2013-04-28T00:00:00.000Z",
        "last_updated": "2025-03-01T11:55:00.000Z",
        "tags": list(tags),
        "quote": {
            "USD": {
                "price": 90000.5,
                "volume_24h": 1e10,
                "percent_change_1h": 0.1,
                "percent_change_24h": 1.5,
                "percent_change_7d": -2.0,
                "market_cap": 1.7e12,
                "market_cap_dominance": 58.1,
                "fully_diluted_market_cap": 1.9e12,
            }
        },
    }


# ============================================================
# ALTCOIN SEASON
# ============================================================

class TestAltcoinSeasonCollector:
    """Full cycles of the altcoin-season feed."""

    @pytest.mark.asyncio
    async def test_absent_watermark_fetches_saves_and_advances(
        self, provider_config, session_factory, clock
    ):
        provider = RecordingProvider([httpx.Response(200, json=altcoin_body(5))])
        collector = make_collector(
            AltcoinSeasonCollector, provider, provider_config, session_factory, clock
        )

        result = await collector.collect()

        assert result.status == IngestionStatus.SUCCESS
        assert result.records_fetched == 5
        assert result.records_stored == 5
        assert result.next_update_at == clock.now() + timedelta(days=1)
        assert count_rows(session_factory, AltcoinSeasonIndex) == 5

        watermark = collector._gate.get_watermark("altcoin_season_index")
        assert watermark["next_update_at"] == (clock.now() + timedelta(days=1)).isoformat()

        request = provider.requests[0]
        assert request.url.path == "/data-api/v3/altcoin-season/chart"
        assert request.url.params["convertId"] == "2781"
        end = int(request.url.params["end"])
        start = int(request.url.params["start"])
        assert end == clock.epoch_seconds()
        assert end - start == 30 * DAY

    @pytest.mark.asyncio
    async def test_future_watermark_skips_without_fetch(
        self, provider_config, session_factory, clock
    ):
        gate = UpdateGate(session_factory, clock)
        gate.advance("altcoin_season_index", clock.now() + timedelta(days=1))

        provider = RecordingProvider([httpx.Response(200, json=altcoin_body())])
        collector = make_collector(
            AltcoinSeasonCollector, provider, provider_config, session_factory, clock
        )

        result = await collector.collect()

        assert result.status == IngestionStatus.SKIPPED
        assert provider.requests == []
        assert count_rows(session_factory, AltcoinSeasonIndex) == 0

    @pytest.mark.asyncio
    async def test_force_bypasses_watermark(self, provider_config, session_factory, clock):
        UpdateGate(session_factory, clock).advance(
            "altcoin_season_index", clock.now() + timedelta(hours=5)
        )
        provider = RecordingProvider([httpx.Response(200, json=altcoin_body(2))])
        collector = make_collector(
            AltcoinSeasonCollector, provider, provider_config, session_factory, clock
        )

        result = await collector.collect(force=True)

        assert result.status == IngestionStatus.SUCCESS
        assert len(provider.requests) == 1

    @pytest.mark.asyncio
    async def test_rerun_inserts_nothing_new(self, provider_config, session_factory, clock):
        provider = RecordingProvider([httpx.Response(200, json=altcoin_body(5))])
        collector = make_collector(
            AltcoinSeasonCollector, provider, provider_config, session_factory, clock
        )

        await collector.collect()
        clock.advance(days=2)
        second = await collector.collect()

        assert second.records_fetched == 5
        assert second.records_stored == 0
        assert count_rows(session_factory, AltcoinSeasonIndex) == 5

    @pytest.mark.asyncio
    async def test_missing_points_rejected_and_watermark_untouched(
        self, provider_config, session_factory, clock
    ):
        provider = RecordingProvider([httpx.Response(200, json={"data": {}})])
        collector = make_collector(
            AltcoinSeasonCollector, provider, provider_config, session_factory, clock
        )

        with pytest.raises(InvalidProviderResponse):
            await collector.collect()

        assert collector._gate.get_watermark("altcoin_season_index") is None
        assert collector._gate.is_due("altcoin_season_index") is True

    @pytest.mark.asyncio
    async def test_save_failure_leaves_watermark_untouched(
        self, provider_config, engine, session_factory, clock
    ):
        provider = RecordingProvider([httpx.Response(200, json=altcoin_body())])
        collector = make_collector(
            AltcoinSeasonCollector, provider, provider_config, session_factory, clock
        )
        AltcoinSeasonIndex.__table__.drop(engine)

        with pytest.raises(PersistenceError) as exc_info:
            await collector.collect()

        assert exc_info.value.source == "altcoin_season_index"
        assert collector._gate.get_watermark("altcoin_season_index") is None

    @pytest.mark.asyncio
    async def test_save_failure_recorded_by_scheduler_tick(
        self, provider_config, engine, session_factory, clock
    ):
        provider = RecordingProvider([httpx.Response(200, json=altcoin_body())])
        collector = make_collector(
            AltcoinSeasonCollector, provider, provider_config, session_factory, clock
        )
        scheduler = FeedScheduler(collector, poll_seconds=3600, clock=clock)
        AltcoinSeasonIndex.__table__.drop(engine)

        result = await scheduler.run_tick()

        assert result.status == IngestionStatus.FAILED
        assert "PersistenceError" in result.errors[0]
        assert scheduler.metrics.failed_runs == 1
        assert collector._gate.is_due("altcoin_season_index") is True


# ============================================================
# FETCH / KEY ROTATION
# ============================================================

class TestFetchKeyRotation:
    """429 handling shared by all collectors."""

    @pytest.mark.asyncio
    async def test_rate_limit_then_success_uses_next_key(
        self, provider_config, session_factory, clock
    ):
        provider = RecordingProvider([
            httpx.Response(429, json={"status": {"error_code": 1008}}),
            httpx.Response(200, json=fear_greed_body()),
        ])
        collector = make_collector(
            FearGreedCollector, provider, provider_config, session_factory, clock
        )

        result = await collector.collect()

        assert result.status == IngestionStatus.SUCCESS
        assert provider.keys_used == ["key-a", "key-b"]
        assert count_rows(session_factory, FearGreedIndex) == 2

    @pytest.mark.asyncio
    async def test_all_keys_rate_limited(self, provider_config, session_factory, clock):
        provider = RecordingProvider([httpx.Response(429)])
        collector = make_collector(
            FearGreedCollector, provider, provider_config, session_factory, clock
        )

        with pytest.raises(AllCredentialsExhausted):
            await collector.collect()

        assert provider.keys_used == ["key-a", "key-b", "key-c"]
        assert collector._gate.get_watermark("fear_greed_index") is None

    @pytest.mark.asyncio
    async def test_no_keys_configured(self, provider_config, session_factory, clock):
        provider = RecordingProvider([httpx.Response(200, json=fear_greed_body())])
        collector = make_collector(
            FearGreedCollector, provider, provider_config, session_factory, clock,
            rotator=ApiKeyRotator([]),
        )

        with pytest.raises(NoCredentialsConfigured):
            await collector.collect()
        assert provider.requests == []

    @pytest.mark.asyncio
    async def test_server_error_is_invalid_response(self, provider_config, session_factory, clock):
        provider = RecordingProvider([httpx.Response(500, text="boom")])
        collector = make_collector(
            FearGreedCollector, provider, provider_config, session_factory, clock
        )

        with pytest.raises(InvalidProviderResponse) as exc_info:
            await collector.fetch()
        assert exc_info.value.details["status_code"] == 500
        assert len(provider.requests) == 1

    @pytest.mark.asyncio
    async def test_non_json_body(self, provider_config, session_factory, clock):
        provider = RecordingProvider([httpx.Response(200, text="<html>")])
        collector = make_collector(
            FearGreedCollector, provider, provider_config, session_factory, clock
        )

        with pytest.raises(InvalidProviderResponse):
            await collector.fetch()

    @pytest.mark.asyncio
    async def test_network_error_not_retried(self, provider_config, session_factory, clock):
        calls = []

        def handler(request):
            calls.append(request)
            raise httpx.ConnectError("connection refused", request=request)

        collector = make_collector(
            FearGreedCollector, handler, provider_config, session_factory, clock
        )

        with pytest.raises(FetchError):
            await collector.collect()
        assert len(calls) == 1


# ============================================================
# FEAR AND GREED
# ============================================================

class TestFearGreedCollector:
    """Mapping of the fear-and-greed payload."""

    def test_request_params(self, provider_config, session_factory, clock):
        collector = make_collector(
            FearGreedCollector, RecordingProvider([]), provider_config, session_factory, clock
        )
        url, params = collector.build_request()

        assert url == "https://pro-api.test/v3/fear-and-greed/historical"
        assert params == {"count": 30, "format": "json"}

    @pytest.mark.asyncio
    async def test_unrecognised_item_rejects_whole_batch(
        self, provider_config, session_factory, clock
    ):
        body = fear_greed_body()
        del body["data"][1]["value"]
        provider = RecordingProvider([httpx.Response(200, json=body)])
        collector = make_collector(
            FearGreedCollector, provider, provider_config, session_factory, clock
        )

        with pytest.raises(InvalidProviderResponse):
            await collector.collect()
        assert count_rows(session_factory, FearGreedIndex) == 0


# ============================================================
# LISTINGS
# ============================================================

class TestListingsCollector:
    """Mapping and persistence of the listings snapshot."""

    @pytest.mark.asyncio
    async def test_snapshot_saved_with_tags(self, provider_config, session_factory, clock):
        body = {"data": [
            listing_item(1, "BTC", tags=("mineable", "pow")),
            listing_item(1027, "ETH", tags=("smart-contracts",)),
        ]}
        provider = RecordingProvider([httpx.Response(200, json=body)])
        collector = make_collector(
            ListingsCollector, provider, provider_config, session_factory, clock,
            interval_seconds=3600,
        )

        result = await collector.collect()

        assert result.records_stored == 2
        assert result.metadata["tags"] == 3
        assert result.next_update_at == clock.now() + timedelta(hours=1)
        assert count_rows(session_factory, CryptocurrencyPrice) == 2
        assert count_rows(session_factory, CryptocurrencyTag) == 3

        request = provider.requests[0]
        assert request.url.path == "/v1/cryptocurrency/listings/latest"
        assert request.url.params["limit"] == "200"
        assert request.url.params["convert"] == "USD"

    def test_missing_quote_rejected(self, provider_config, session_factory, clock):
        collector = make_collector(
            ListingsCollector, RecordingProvider([]), provider_config, session_factory, clock
        )
        item = listing_item(1, "BTC")
        del item["quote"]

        with pytest.raises(InvalidProviderResponse):
            collector.parse_item(item)

    def test_missing_data_rejected(self, provider_config, session_factory, clock):
        collector = make_collector(
            ListingsCollector, RecordingProvider([]), provider_config, session_factory, clock
        )
        with pytest.raises(InvalidProviderResponse):
            collector.parse_payload({"status": {"error_code": 0}})
