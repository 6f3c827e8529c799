"""In-memory TTL key-value store.

Notes:
- Per-process only: running multiple workers gives each worker its own counters.
- Thread-safe: uses a lock around shared state (TestClient drives the app
  from a separate thread).
"""

from __future__ import annotations

import logging
import threading
from collections import OrderedDict
from dataclasses import dataclass

from app.adapters.kv_store.base import AbstractKeyValueStore
from app.utils.clock import Clock, system_clock

logger = logging.getLogger(__name__)


@dataclass
class StoreItem:
    """Stored value with an optional expiration (epoch milliseconds)."""

    value: str
    expires_at_ms: int | None


class InMemoryKeyValueStore(AbstractKeyValueStore):
    """Thread-safe, in-memory TTL store with LRU eviction.

    Expired entries are dropped lazily on read. A full sweep runs at most once
    per ``sweep_interval_seconds``, or when a write would exceed capacity, so
    writes stay O(1) in the common case.

    Attributes:
        max_entries: Maximum number of stored keys (None for unlimited).
        sweep_interval_seconds: Minimum time between full expiry sweeps.
    """

    backend_name = "memory"

    def __init__(
        self,
        *,
        max_entries: int | None = 100_000,
        sweep_interval_seconds: int = 60,
        clock: Clock = system_clock,
    ) -> None:
        self._max_entries = max_entries
        self._sweep_interval_ms = sweep_interval_seconds * 1000
        self._clock = clock
        self._items: OrderedDict[str, StoreItem] = OrderedDict()
        self._lock = threading.RLock()
        self._evictions = 0
        self._last_sweep_ms = clock()

    def __repr__(self) -> str:  # pragma: no cover - representation only
        return (
            f"InMemoryKeyValueStore(max_entries={self._max_entries}, "
            f"size={len(self._items)}, evictions={self._evictions})"
        )

    async def get(self, key: str) -> str | None:
        with self._lock:
            item = self._items.get(key)
            if item is None:
                return None
            if self._is_expired(item):
                self._evict_single(key)
                return None
            self._items.move_to_end(key)
            return item.value

    async def put(self, key: str, value: str, *, ttl_seconds: int | None = None) -> None:
        expires_at = None
        if ttl_seconds is not None:
            expires_at = self._clock() + ttl_seconds * 1000

        with self._lock:
            over_capacity = (
                self._max_entries is not None
                and key not in self._items
                and len(self._items) >= self._max_entries
            )
            if over_capacity or self._clock() - self._last_sweep_ms >= self._sweep_interval_ms:
                self._evict_expired_locked()
            self._items[key] = StoreItem(value=value, expires_at_ms=expires_at)
            self._items.move_to_end(key)
            self._evict_if_over_capacity_locked()

    async def delete(self, key: str) -> None:
        with self._lock:
            self._items.pop(key, None)

    def clear(self) -> None:
        """Remove all entries."""

        with self._lock:
            self._items.clear()
            self._evictions = 0

    def stats(self) -> dict[str, int | None]:
        """Return lightweight store metrics without exposing values."""

        with self._lock:
            return {
                "max_entries": self._max_entries,
                "entries": len(self._items),
                "evictions": self._evictions,
            }

    def _evict_single(self, key: str) -> None:
        if key in self._items:
            self._items.pop(key, None)
            self._evictions += 1

    def _evict_expired_locked(self) -> None:
        now = self._clock()
        self._last_sweep_ms = now
        expired_keys = [
            k
            for k, item in self._items.items()
            if item.expires_at_ms is not None and item.expires_at_ms <= now
        ]
        for key in expired_keys:
            self._evict_single(key)

    def _evict_if_over_capacity_locked(self) -> None:
        if self._max_entries is None:
            return

        while len(self._items) > self._max_entries:
            # popitem(last=False) removes the least recently used entry
            key, _ = self._items.popitem(last=False)
            self._evictions += 1
            logger.debug("kv_store.evicted", extra={"reason": "capacity", "size": len(self._items)})

    def _is_expired(self, item: StoreItem) -> bool:
        return item.expires_at_ms is not None and self._clock() >= item.expires_at_ms
