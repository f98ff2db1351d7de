"""
Data Ingestion - API Key Rotator.

============================================================
PURPOSE
============================================================
Hands out provider API keys round-robin so a rate-limited key
is followed by a different one on the next call.

The key pool is the primary COINMARKETCAP_API_KEY followed by
the indexed fallbacks COINMARKETCAP_API_KEY_1..100.

============================================================
"""

import logging
import os
from typing import Iterable, List, Mapping, Optional

from core.config import load_api_keys
from data_ingestion.types import NoCredentialsConfigured


logger = logging.getLogger("collector.key_rotator")


class ApiKeyRotator:
    """
    Round-robin credential pool shared by all feeds.

    Calling next_key() N * key_count times hands out every key
    exactly N times. Keys themselves are never logged.

    Not thread-safe: every feed scheduler shares it on the single
    event loop thread, and next_key() never awaits.
    """

    def __init__(self, keys: Iterable[str]) -> None:
        self._keys: List[str] = [key for key in keys if key]
        self._index = 0

        if self._keys:
            logger.info(f"Loaded {len(self._keys)} API key(s) for rotation")
        else:
            logger.error("No API keys configured; provider calls will fail")

    @classmethod
    def from_env(cls, env: Optional[Mapping[str, str]] = None) -> "ApiKeyRotator":
        """Build the pool from environment variables."""
        return cls(load_api_keys(env if env is not None else os.environ))

    @property
    def key_count(self) -> int:
        return len(self._keys)

    @property
    def current_index(self) -> int:
        """Index of the key the next call will return."""
        return self._index

    def next_key(self) -> str:
        """
        Return the next key and advance the cursor.

        Raises:
            NoCredentialsConfigured: If the pool is empty
        """
        if not self._keys:
            raise NoCredentialsConfigured()
        key = self._keys[self._index]
        used_index = self._index
        self._index = (self._index + 1) % len(self._keys)

        logger.debug(f"Using API key index {used_index}")
        return key
