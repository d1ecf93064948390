"""TTL cache for ranked search results.

Keys are SearchCriteria.cache_key() strings. Entries expire a fixed TTL
after they were written; nothing else evicts them. Concurrent misses on
the same key are not coalesced, so N identical in-flight searches make
N upstream fetches.
"""

from __future__ import annotations

import time
from collections.abc import Callable
from typing import Protocol

import structlog

from trialfinder.schema import SearchResult

logger = structlog.get_logger()

DEFAULT_TTL_SECONDS = 300.0


class CacheBackend(Protocol):
    """Storage behind SearchCache. May raise CacheUnavailable."""

    def get(self, key: str) -> tuple[float, SearchResult] | None: ...

    def set(self, key: str, stored_at: float, value: SearchResult) -> None: ...

    def delete(self, key: str) -> None: ...


class InMemoryBackend:
    """Process-local dict store. Unbounded."""

    def __init__(self):
        self._entries: dict[str, tuple[float, SearchResult]] = {}

    def get(self, key: str) -> tuple[float, SearchResult] | None:
        return self._entries.get(key)

    def set(self, key: str, stored_at: float, value: SearchResult) -> None:
        self._entries[key] = (stored_at, value)

    def delete(self, key: str) -> None:
        self._entries.pop(key, None)

    def __len__(self) -> int:
        return len(self._entries)


class SearchCache:
    """Fixed-TTL memo of SearchResult by query key."""

    def __init__(
        self,
        backend: CacheBackend | None = None,
        ttl_seconds: float = DEFAULT_TTL_SECONDS,
        clock: Callable[[], float] = time.monotonic,
    ):
        self._backend = backend if backend is not None else InMemoryBackend()
        self._ttl = ttl_seconds
        self._clock = clock

    @property
    def ttl_seconds(self) -> float:
        return self._ttl

    def get(self, key: str) -> SearchResult | None:
        """Return the live entry for key, or None on miss or expiry."""
        entry = self._backend.get(key)
        if entry is None:
            return None
        stored_at, value = entry
        if self._clock() - stored_at >= self._ttl:
            logger.debug("search_cache_expired", key=key)
            self._backend.delete(key)
            return None
        return value

    def set(self, key: str, value: SearchResult) -> None:
        self._backend.set(key, self._clock(), value)
