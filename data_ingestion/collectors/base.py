"""
Data Ingestion - Base Feed Collector.

============================================================
PURPOSE
============================================================
Abstract base class for the provider feed collectors.

============================================================
CYCLE
============================================================
1. Update gate: skip unless the feed is due (or forced)
2. Fetch: GET with a rotated API key, retry on 429
3. Map: provider JSON -> typed rows, reject unknown shapes
4. Save: one transaction via the feed's repository
5. Advance: watermark = now + feed interval

Any failure in 2-5 leaves the watermark untouched, so the next
tick retries the full window.

============================================================
DESIGN PRINCIPLES
============================================================
- No business logic, collection only
- Errors are raised to the scheduler tick boundary
- Bounded 429 retry: one pass through the key pool

============================================================
"""

import logging
from abc import ABC, abstractmethod
from datetime import timedelta
from typing import Any, Dict, List, Optional, Tuple

import httpx
from sqlalchemy.orm import Session

from core.clock import ClockProtocol
from core.config import FeedConfig, ProviderConfig
from data_ingestion.key_rotator import ApiKeyRotator
from data_ingestion.types import (
    AllCredentialsExhausted,
    FeedKind,
    FeedRow,
    FetchError,
    IngestionResult,
    IngestionStatus,
    InvalidProviderResponse,
    PersistenceError,
    RateLimited,
    SaveResult,
)
from storage.database import SessionFactory, session_scope
from storage.repositories.exceptions import RepositoryException
from storage.repositories.update_gate import UpdateGate


API_KEY_HEADER = "X-CMC_PRO_API_KEY"


class BaseFeedCollector(ABC):
    """
    Abstract base class for feed collectors.

    ============================================================
    LIFECYCLE
    ============================================================
    1. Initialize with configs and injected collaborators
    2. Call collect() once per scheduler tick
    3. close() releases an owned HTTP client

    ============================================================
    """

    feed_kind: FeedKind

    def __init__(
        self,
        feed_config: FeedConfig,
        provider_config: ProviderConfig,
        rotator: ApiKeyRotator,
        gate: UpdateGate,
        session_factory: SessionFactory,
        clock: ClockProtocol,
        client: Optional[httpx.AsyncClient] = None,
    ) -> None:
        """
        Initialize the collector.

        Args:
            feed_config: Poll period / update interval of this feed
            provider_config: Provider URLs, limits and timeout
            rotator: Shared API key pool
            gate: Watermark due-check / advance
            session_factory: Creates sessions for the batch save
            clock: Time source
            client: Shared HTTP client (an owned one is created if None)
        """
        self._feed_config = feed_config
        self._provider = provider_config
        self._rotator = rotator
        self._gate = gate
        self._session_factory = session_factory
        self._clock = clock
        self._client = client
        self._owns_client = client is None
        self._logger = logging.getLogger(f"collector.{self.feed_id}")

    @property
    def feed_id(self) -> str:
        return self.feed_kind.value

    @property
    def update_interval(self) -> timedelta:
        return timedelta(seconds=self._feed_config.interval_seconds)

    # =========================================================
    # ABSTRACT METHODS - Must be implemented by subclasses
    # =========================================================

    @abstractmethod
    def build_request(self) -> Tuple[str, Dict[str, Any]]:
        """Return (url, query params) for the current window."""
        pass

    @abstractmethod
    def extract_items(self, body: Any) -> List[Dict[str, Any]]:
        """
        Return the list of raw items from a provider body.

        Raises:
            InvalidProviderResponse: If the data field is missing
        """
        pass

    @abstractmethod
    def parse_item(self, raw: Dict[str, Any]) -> FeedRow:
        """
        Map one raw provider item to its typed row.

        Raises:
            InvalidProviderResponse: On an unrecognised shape
        """
        pass

    @abstractmethod
    def save_rows(self, session: Session, rows: List[FeedRow]) -> SaveResult:
        """Persist rows through the feed's repository."""
        pass

    def extra_headers(self) -> Dict[str, str]:
        return {}

    # =========================================================
    # FETCH
    # =========================================================

    def _get_client(self) -> httpx.AsyncClient:
        if self._client is None:
            self._client = httpx.AsyncClient(timeout=self._provider.timeout_seconds)
        return self._client

    async def close(self) -> None:
        if self._owns_client and self._client is not None:
            await self._client.aclose()
            self._client = None

    async def fetch(self) -> Any:
        """
        GET the feed endpoint with key rotation.

        Each attempt takes the next key. A 429 moves on to the next
        key immediately; after one pass through the pool the call
        gives up.

        Returns:
            Decoded JSON body

        Raises:
            NoCredentialsConfigured: If no key is configured
            AllCredentialsExhausted: If every attempt was rate limited
            InvalidProviderResponse: On non-2xx or non-JSON responses
            FetchError: On network errors and timeouts
        """
        url, params = self.build_request()
        attempts = max(1, self._rotator.key_count)
        client = self._get_client()

        for attempt in range(1, attempts + 1):
            key_index = self._rotator.current_index
            headers = {
                API_KEY_HEADER: self._rotator.next_key(),
                "Accept": "application/json",
                **self.extra_headers(),
            }

            try:
                response = await client.get(
                    url,
                    params=params,
                    headers=headers,
                    timeout=self._provider.timeout_seconds,
                )
            except httpx.TimeoutException as e:
                raise FetchError(
                    message=f"Request timeout: {e}",
                    source=self.feed_id,
                ) from e
            except httpx.RequestError as e:
                raise FetchError(
                    message=f"Request error: {e}",
                    source=self.feed_id,
                ) from e

            try:
                return self._decode_response(response)
            except RateLimited:
                self._logger.warning(
                    f"Rate limited with key index {key_index} "
                    f"(attempt {attempt}/{attempts}), rotating key"
                )

        raise AllCredentialsExhausted(
            message=f"All {attempts} API key(s) rate limited",
            source=self.feed_id,
            details={"attempts": attempts},
        )

    def _decode_response(self, response: httpx.Response) -> Any:
        if response.status_code == 429:
            raise RateLimited(
                message="HTTP 429",
                source=self.feed_id,
                details={"status_code": 429},
            )

        if not response.is_success:
            raise InvalidProviderResponse(
                message=f"HTTP {response.status_code}: {response.text[:200]}",
                source=self.feed_id,
                details={"status_code": response.status_code},
            )

        try:
            return response.json()
        except ValueError as e:
            raise InvalidProviderResponse(
                message=f"Response is not JSON: {e}",
                source=self.feed_id,
            ) from e

    # =========================================================
    # MAP / SAVE
    # =========================================================

    def parse_payload(self, body: Any) -> List[FeedRow]:
        """Map a provider body to typed rows (all or nothing)."""
        return [self.parse_item(raw) for raw in self.extract_items(body)]

    def save_batch(self, rows: List[FeedRow]) -> SaveResult:
        """
        Persist rows in a single transaction.

        Raises:
            PersistenceError: If the batch was rolled back
        """
        try:
            with session_scope(self._session_factory) as session:
                return self.save_rows(session, rows)
        except RepositoryException as e:
            raise PersistenceError(
                message=f"Batch save failed: {e}",
                source=self.feed_id,
                details=e.details,
            ) from e

    # =========================================================
    # COLLECTION WORKFLOW
    # =========================================================

    async def collect(self, force: bool = False) -> IngestionResult:
        """
        Run one gate -> fetch -> map -> save -> advance cycle.

        Args:
            force: Skip the due check (administrative trigger)

        Returns:
            IngestionResult with SUCCESS or SKIPPED status

        Raises:
            IngestionError: On any failure; the watermark is untouched
        """
        result = IngestionResult(feed_id=self.feed_id, started_at=self._clock.now())

        if not force and not self._gate.is_due(self.feed_id):
            result.status = IngestionStatus.SKIPPED
            result.mark_complete(self._clock.now())
            self._logger.info(f"Skipping {self.feed_id} update, not due yet")
            return result

        self._logger.info(f"Starting {'forced ' if force else ''}update for {self.feed_id}")

        body = await self.fetch()
        rows = self.parse_payload(body)
        result.records_fetched = len(rows)

        saved = self.save_batch(rows)
        result.records_stored = saved.inserted_count
        result.metadata.update(saved.details)

        next_update_at = self._clock.now() + self.update_interval
        try:
            self._gate.advance(self.feed_id, next_update_at)
        except RepositoryException as e:
            raise PersistenceError(
                message=f"Watermark advance failed: {e}",
                source=self.feed_id,
            ) from e

        result.next_update_at = next_update_at
        result.status = IngestionStatus.SUCCESS
        result.mark_complete(self._clock.now())
        self._logger.info(f"Update complete: {result.to_dict()}")
        return result

    def get_health_status(self) -> Dict[str, Any]:
        return {
            "feed_id": self.feed_id,
            "enabled": self._feed_config.enabled,
            "poll_seconds": self._feed_config.poll_seconds,
            "interval_seconds": self._feed_config.interval_seconds,
            "api_keys": self._rotator.key_count,
        }
