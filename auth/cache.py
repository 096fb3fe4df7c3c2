"""Fixed-capacity least-recently-used cache.

Used for the session lookaside, pending login codes, and rate limiter
counters. Thread-safe: every operation takes a single lock, and callers
never perform I/O while it is held.

Optional ttl_seconds gives entries a hard lifetime, checked lazily on access.
Without it, entries leave only through LRU eviction or explicit delete.
"""

import threading
import time
from collections import OrderedDict
from typing import Callable, Generic, Hashable, TypeVar

K = TypeVar("K", bound=Hashable)
V = TypeVar("V")


class LRUCache(Generic[K, V]):
    """
    Bounded recency cache.

    Usage:
        cache = LRUCache(capacity=1000)
        cache.put("k", value)
        cache.get("k")  # promotes "k" to most recently used
    """

    def __init__(
        self,
        capacity: int,
        ttl_seconds: float | None = None,
        clock: Callable[[], float] = time.monotonic,
    ):
        if capacity < 1:
            raise ValueError("capacity must be at least 1")
        if ttl_seconds is not None and ttl_seconds <= 0:
            raise ValueError("ttl_seconds must be positive")
        self.capacity = capacity
        self._ttl = ttl_seconds
        self._clock = clock
        # key -> (stored_at, value); order is least to most recently used
        self._entries: "OrderedDict[K, tuple[float, V]]" = OrderedDict()
        self._lock = threading.Lock()

    def _expired(self, stored_at: float) -> bool:
        return self._ttl is not None and self._clock() - stored_at >= self._ttl

    def _live_entry(self, key: K) -> tuple[float, V] | None:
        """Return entry if present and unexpired. Caller holds the lock."""
        entry = self._entries.get(key)
        if entry is None:
            return None
        if self._expired(entry[0]):
            del self._entries[key]
            return None
        return entry

    def get(self, key: K) -> V | None:
        """Return value for key (promoting it), or None if absent or expired."""
        with self._lock:
            entry = self._live_entry(key)
            if entry is None:
                return None
            self._entries.move_to_end(key)
            return entry[1]

    def put(self, key: K, value: V) -> None:
        """Insert or replace key as most recently used, evicting the LRU entry if full."""
        with self._lock:
            if key in self._entries:
                del self._entries[key]
            elif len(self._entries) >= self.capacity:
                self._entries.popitem(last=False)
            self._entries[key] = (self._clock(), value)

    def delete(self, key: K) -> bool:
        """Remove key. Returns True if it was present."""
        with self._lock:
            return self._entries.pop(key, None) is not None

    def pop_if(self, key: K, predicate: Callable[[V], bool]) -> V | None:
        """
        Atomically remove and return the value for key if predicate(value) holds.

        The entry is left untouched (and not promoted) when the predicate fails.
        Predicate runs under the lock, so it must be cheap and side-effect free.
        """
        with self._lock:
            entry = self._live_entry(key)
            if entry is None or not predicate(entry[1]):
                return None
            del self._entries[key]
            return entry[1]

    def clear(self) -> None:
        with self._lock:
            self._entries.clear()

    def __contains__(self, key: object) -> bool:
        with self._lock:
            return self._live_entry(key) is not None

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)
