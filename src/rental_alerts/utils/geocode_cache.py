"""Geocode result caches.

The resolver only depends on the :class:`GeocodeCache` protocol, so a shared
store (SQLite, Redis, ...) can replace the in-memory default without touching
resolver code.
"""

import asyncio
import time
from collections import OrderedDict
from collections.abc import Callable
from typing import Protocol

from rental_alerts.models import GeocodeResult


def normalize_address(address: str) -> str:
    """Build the cache key for an address: trimmed, single-spaced, case-folded."""
    return " ".join(address.split()).casefold()


class GeocodeCache(Protocol):
    """Async key/value store for geocode results."""

    async def get(self, key: str) -> GeocodeResult | None: ...

    async def set(self, key: str, value: GeocodeResult) -> None: ...


class InMemoryGeocodeCache:
    """Process-local LRU cache with optional entry lifetime.

    Args:
        max_entries: Evict least-recently-used entries beyond this size (0 = unbounded).
        ttl_seconds: Entry lifetime in seconds (0 = never expire).
        clock: Monotonic time source, injectable for tests.
    """

    def __init__(
        self,
        *,
        max_entries: int = 0,
        ttl_seconds: float = 0,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.max_entries = max_entries
        self.ttl_seconds = ttl_seconds
        self._clock = clock
        self._entries: OrderedDict[str, tuple[float, GeocodeResult]] = OrderedDict()
        self._lock = asyncio.Lock()

    def __len__(self) -> int:
        return len(self._entries)

    async def get(self, key: str) -> GeocodeResult | None:
        async with self._lock:
            entry = self._entries.get(key)
            if entry is None:
                return None
            stored_at, value = entry
            if self.ttl_seconds and self._clock() - stored_at >= self.ttl_seconds:
                del self._entries[key]
                return None
            self._entries.move_to_end(key)
            return value

    async def set(self, key: str, value: GeocodeResult) -> None:
        async with self._lock:
            self._entries[key] = (self._clock(), value)
            self._entries.move_to_end(key)
            if self.max_entries:
                while len(self._entries) > self.max_entries:
                    self._entries.popitem(last=False)
