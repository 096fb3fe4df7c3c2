"""Rate limiting for login-code requests.

Decaying counter per key: every hit adds 1, and the counter halves every
half_life seconds without hits. A hit is rejected once the counter exceeds
the threshold. Rejected hits still count, so hammering extends the lockout.

Counters live in memory in an LRUCache, so the number of tracked keys is
bounded. One instance is keyed by IP, another by email.
"""

import math
import threading
import time
from typing import Callable

from auth.cache import LRUCache
from auth.exceptions import RateLimitedError


class DecayLimiter:
    """Decaying-counter admission control."""

    def __init__(
        self,
        threshold: float,
        half_life_seconds: float,
        capacity: int = 100000,
        normalize: Callable[[str], str] | None = None,
        clock: Callable[[], float] = time.monotonic,
    ):
        if threshold <= 0:
            raise ValueError("threshold must be positive")
        if half_life_seconds <= 0:
            raise ValueError("half_life_seconds must be positive")
        self.threshold = threshold
        self.half_life_seconds = half_life_seconds
        self._normalize = normalize
        self._clock = clock
        # key -> (counter, last_updated)
        self._counters: LRUCache[str, tuple[float, float]] = LRUCache(capacity)
        self._lock = threading.Lock()

    def _key(self, key: str) -> str:
        return self._normalize(key) if self._normalize else key

    def _decayed(self, key: str, now: float) -> float:
        """Current counter value for key. Caller holds the lock."""
        entry = self._counters.get(key)
        if entry is None:
            return 0.0
        counter, last = entry
        elapsed = max(now - last, 0.0)
        return counter * math.pow(2.0, -elapsed / self.half_life_seconds)

    def hit(self, key: str) -> bool:
        """Record a hit for key. Returns False if the key is over its limit."""
        key = self._key(key)
        with self._lock:
            now = self._clock()
            counter = self._decayed(key, now) + 1
            self._counters.put(key, (counter, now))
        return counter <= self.threshold

    def check(self, key: str) -> None:
        """Record a hit for key.

        Raises:
            RateLimitedError: If key is over its limit.
        """
        if not self.hit(key):
            raise RateLimitedError(retry_after_seconds=self.retry_after(key))

    def retry_after(self, key: str) -> int:
        """Seconds until the next hit for key would be admitted (at least 1)."""
        key = self._key(key)
        with self._lock:
            counter = self._decayed(key, self._clock())
        # Admitted when counter + 1 <= threshold
        target = self.threshold - 1
        if counter <= target:
            return 1
        if target <= 0:
            # Threshold below one admits nothing until the counter is ~0
            target = 0.01
        seconds = self.half_life_seconds * math.log2(counter / target)
        return max(math.ceil(seconds), 1)

    def remaining(self, key: str) -> int:
        """Hits left before key is rejected."""
        key = self._key(key)
        with self._lock:
            counter = self._decayed(key, self._clock())
        return max(math.floor(self.threshold - counter), 0)

    def reset(self, key: str) -> None:
        """Forget key's counter (after successful login)."""
        self._counters.delete(self._key(key))
