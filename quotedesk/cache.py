"""
In-memory expiring caches for slowly-changing reference data.
"""

import threading
import time
from typing import Any, Callable, Dict, Hashable, Optional


class ExpiringCache:
    """
    Holds at most one value, valid for a fixed duration.

    A stored value is fresh only while ``now - stored_at < expiry``. Once
    expired it reads as absent, even though it stays in memory until it is
    overwritten or cleared. ``None`` is the absent sentinel, so ``None`` itself
    cannot be cached.
    """

    def __init__(self, expiry: float = 120.0, clock: Callable[[], float] = time.monotonic):
        """
        Initialize cache.

        Args:
            expiry: Time-to-live in seconds. Zero makes every value stale on read.
            clock: Monotonic time source in seconds
        """
        self.expiry = expiry
        self._clock = clock
        self._lock = threading.Lock()
        self._value: Optional[Any] = None
        self._stored_at = 0.0

    def get(self) -> Optional[Any]:
        """
        Get cached value if not expired.

        Returns:
            Cached value or None if empty/expired
        """
        with self._lock:
            if self._is_valid():
                return self._value
            return None

    def set(self, value: Any):
        """
        Store a value with the current timestamp, replacing any previous one.

        Args:
            value: Value to cache
        """
        with self._lock:
            self._value = value
            self._stored_at = self._clock()

    def is_valid(self) -> bool:
        """Whether a value is present and younger than the expiry."""
        with self._lock:
            return self._is_valid()

    def clear(self):
        """Reset to the empty state."""
        with self._lock:
            self._value = None
            self._stored_at = 0.0

    def _is_valid(self) -> bool:
        return self._value is not None and (self._clock() - self._stored_at) < self.expiry


class KeyedExpiringCache:
    """
    One ExpiringCache per key.

    Used for lookups such as "item by id" where each entry expires on its own.
    Entries exist only for keys that were set. Expired entries are dropped when
    read, and every ``set`` sweeps the rest, so keys that are never read again
    do not pile up. ``max_entries`` bounds the map; the oldest entries go first.
    """

    def __init__(
        self,
        expiry: float = 120.0,
        clock: Callable[[], float] = time.monotonic,
        max_entries: Optional[int] = None,
    ):
        """
        Initialize cache.

        Args:
            expiry: Time-to-live of each entry in seconds
            clock: Monotonic time source in seconds
            max_entries: Upper bound on stored keys; None for no bound
        """
        self.expiry = expiry
        self.max_entries = max_entries
        self._clock = clock
        self._lock = threading.Lock()
        # Insertion order is storage order, oldest first
        self._caches: Dict[Hashable, ExpiringCache] = {}

    def __len__(self) -> int:
        with self._lock:
            return len(self._caches)

    def get(self, key: Hashable) -> Optional[Any]:
        """
        Get the value for a key if present and not expired.

        Args:
            key: Cache key

        Returns:
            Cached value or None
        """
        with self._lock:
            cache = self._caches.get(key)
            if cache is None:
                return None
            value = cache.get()
            if value is None:
                del self._caches[key]
            return value

    def set(self, key: Hashable, value: Any):
        """
        Store a value for a key and drop expired entries.

        Args:
            key: Cache key
            value: Value to cache
        """
        with self._lock:
            self._caches.pop(key, None)
            self._purge()
            cache = ExpiringCache(self.expiry, self._clock)
            cache.set(value)
            self._caches[key] = cache
            if self.max_entries is not None:
                while len(self._caches) > self.max_entries:
                    del self._caches[next(iter(self._caches))]

    def reclaim(self) -> int:
        """
        Drop every expired entry.

        Returns:
            Number of entries removed
        """
        with self._lock:
            return self._purge()

    def clear(self, key: Optional[Hashable] = None):
        """
        Clear one key, or every key when none is given.

        Args:
            key: Key to clear; None clears all entries
        """
        with self._lock:
            if key is None:
                self._caches.clear()
            else:
                self._caches.pop(key, None)

    def _purge(self) -> int:
        expired = [key for key, cache in self._caches.items() if not cache.is_valid()]
        for key in expired:
            del self._caches[key]
        return len(expired)
