"""
STRATEGY-NLP Bounded TTL Cache

### ARCHITECTURAL CONTEXT
Node ID: utils.ttl_cache

Memoises pattern-library lookups (5 minutes) and knowledge-base queries
(10 minutes). Keys are canonical JSON of the query so that reordered inputs
share a single entry.

### CRITICAL INVARIANTS
1. Size never exceeds max_entries; the least recently used entry is evicted.
2. An entry older than ttl_seconds is never returned.
3. Expiry is lazy (checked on access and on insert), no timers.
4. Thread-safe: every operation holds the cache lock.
"""

from __future__ import annotations

import json
import threading
import time
from collections import OrderedDict
from typing import Any, Callable, Generic, TypeVar

V = TypeVar("V")


def make_cache_key(**parts: Any) -> str:
    """
    Build a canonical JSON cache key.

    Lists, tuples and sets are sorted and dict keys are sorted, so the same
    query in a different order yields the same key.

    Usage:
        make_cache_key(keywords=["rsi", "oversold"], options={"min_confidence": 0.3})
    """
    return json.dumps(_canonicalize(parts), sort_keys=True, separators=(",", ":"), default=str)


def _canonicalize(value: Any) -> Any:
    if isinstance(value, dict):
        return {str(k): _canonicalize(v) for k, v in value.items() if v is not None}
    if isinstance(value, (list, tuple, set, frozenset)):
        items = [_canonicalize(v) for v in value]
        return sorted(items, key=lambda v: json.dumps(v, sort_keys=True, default=str))
    return value


class TTLCache(Generic[V]):
    """
    LRU cache whose entries expire after a fixed time-to-live.

    Args:
        ttl_seconds: Lifetime of an entry.
        max_entries: LRU bound.
        clock: Monotonic time source (injectable for tests).
    """

    def __init__(
        self,
        ttl_seconds: float,
        max_entries: int = 256,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        if ttl_seconds <= 0:
            raise ValueError("ttl_seconds must be positive")
        if max_entries < 1:
            raise ValueError("max_entries must be at least 1")
        self._ttl = ttl_seconds
        self._max_entries = max_entries
        self._clock = clock
        self._data: OrderedDict[str, tuple[float, V]] = OrderedDict()
        self._lock = threading.Lock()
        self.hits = 0
        self.misses = 0
        self.evictions = 0

    @property
    def ttl_seconds(self) -> float:
        return self._ttl

    @property
    def max_entries(self) -> int:
        return self._max_entries

    def get(self, key: str) -> V | None:
        """Return the live value for key, or None on miss/expiry."""
        with self._lock:
            entry = self._data.get(key)
            if entry is None:
                self.misses += 1
                return None
            stored_at, value = entry
            if self._clock() - stored_at >= self._ttl:
                del self._data[key]
                self.misses += 1
                return None
            self._data.move_to_end(key)
            self.hits += 1
            return value

    def set(self, key: str, value: V) -> None:
        """Insert or refresh key, evicting expired then least-recent entries."""
        with self._lock:
            now = self._clock()
            self._data[key] = (now, value)
            self._data.move_to_end(key)
            self._purge_expired(now)
            while len(self._data) > self._max_entries:
                self._data.popitem(last=False)
                self.evictions += 1

    def clear(self) -> None:
        with self._lock:
            self._data.clear()

    def __len__(self) -> int:
        with self._lock:
            self._purge_expired(self._clock())
            return len(self._data)

    def __contains__(self, key: object) -> bool:
        if not isinstance(key, str):
            return False
        with self._lock:
            entry = self._data.get(key)
            return entry is not None and self._clock() - entry[0] < self._ttl

    def stats(self) -> dict[str, int]:
        """Hit/miss/eviction counters plus current size."""
        return {
            "size": len(self),
            "hits": self.hits,
            "misses": self.misses,
            "evictions": self.evictions,
        }

    def _purge_expired(self, now: float) -> None:
        expired = [k for k, (stored_at, _) in self._data.items() if now - stored_at >= self._ttl]
        for k in expired:
            del self._data[k]
