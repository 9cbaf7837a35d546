"""
Bounded geocode cache.

LRU eviction plus a per-entry TTL. The clock is injectable so tests can
expire entries without sleeping.
"""

import time
from collections import OrderedDict
from typing import Callable, Optional


class GeocodeCache:
    """
    Maps coordinate keys to resolved location names.

    Writes to the same key are idempotent overwrites, so concurrent runs
    racing on one key need no locking.
    """

    def __init__(
        self,
        max_entries: int = 1024,
        ttl_seconds: float = 86400,
        clock: Callable[[], float] = time.monotonic,
    ):
        """
        Args:
            max_entries: Maximum number of entries (least recently used are dropped)
            ttl_seconds: Lifetime of an entry
            clock: Monotonic time source in seconds
        """
        if max_entries < 1:
            raise ValueError("max_entries must be at least 1")
        self.max_entries = max_entries
        self.ttl_seconds = ttl_seconds
        self._clock = clock
        self._store: OrderedDict[str, tuple[float, str]] = OrderedDict()
        self.evictions = 0

    @staticmethod
    def key(lat: float, lng: float) -> str:
        """Cache key for a coordinate (6 decimal places)."""
        return f"{lat:.6f},{lng:.6f}"

    def get(self, key: str) -> Optional[str]:
        entry = self._store.get(key)
        if entry is None:
            return None

        expires_at, value = entry
        if self._clock() >= expires_at:
            del self._store[key]
            return None

        self._store.move_to_end(key)
        return value

    def set(self, key: str, value: str) -> None:
        self._store[key] = (self._clock() + self.ttl_seconds, value)
        self._store.move_to_end(key)

        while len(self._store) > self.max_entries:
            self._store.popitem(last=False)
            self.evictions += 1

    def __contains__(self, key: str) -> bool:
        return self.get(key) is not None

    def __len__(self) -> int:
        return len(self._store)

    def clear(self) -> None:
        """Clear all entries (useful for testing)."""
        self._store.clear()
