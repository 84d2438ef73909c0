"""
Cooldown-based rate limiter for repeated submissions.
"""

import logging
import threading
import time
from typing import Callable, Dict, Optional

logger = logging.getLogger(__name__)


class RateLimiter:
    """
    Per-key cooldown limiter with periodic reclamation of stale entries.

    Each key remembers the time of its last accepted action. Checking and
    recording happen in one step: a check that finds the key free records the
    current time before returning.

    The reclamation pass runs on its own schedule and drops entries older than
    the retention window, which is configured separately from the per-call
    cooldown.
    """

    def __init__(
        self,
        cooldown: float = 120.0,
        retention: Optional[float] = None,
        sweep_interval: float = 60.0,
        clock: Callable[[], float] = time.monotonic,
    ):
        """
        Initialize rate limiter.

        Args:
            cooldown: Default minimum seconds between two accepted actions per key
            retention: Seconds an untouched entry is kept before reclamation.
                       Defaults to the cooldown.
            sweep_interval: Seconds between background reclamation passes
            clock: Monotonic time source in seconds
        """
        self.cooldown = cooldown
        self.retention = cooldown if retention is None else retention
        self.sweep_interval = sweep_interval
        self._clock = clock
        self._lock = threading.Lock()
        self._last_seen: Dict[str, float] = {}
        self._stop_event = threading.Event()
        self._thread: Optional[threading.Thread] = None

    def is_rate_limited(self, key: str, cooldown: Optional[float] = None) -> bool:
        """
        Check a key and record the attempt if it is allowed.

        Args:
            key: Identifier of the actor, e.g. an email address (case-insensitive)
            cooldown: Override for the default cooldown in seconds

        Returns:
            True if the key acted less than ``cooldown`` seconds ago. A limited
            call does not refresh the key's timestamp.
        """
        if not key:
            return False

        limit = self.cooldown if cooldown is None else cooldown
        normalized_key = key.lower()

        with self._lock:
            now = self._clock()
            last = self._last_seen.get(normalized_key)
            if last is not None and now - last < limit:
                return True
            self._last_seen[normalized_key] = now
            return False

    def reclaim(self) -> int:
        """
        Drop entries older than the retention window.

        Returns:
            Number of entries removed
        """
        with self._lock:
            now = self._clock()
            expired = [k for k, ts in self._last_seen.items() if now - ts > self.retention]
            for k in expired:
                del self._last_seen[k]

        if expired:
            logger.debug("Reclaimed %d rate limit entries", len(expired))
        return len(expired)

    def clear(self):
        """Forget every key."""
        with self._lock:
            self._last_seen.clear()

    def __len__(self) -> int:
        with self._lock:
            return len(self._last_seen)

    def start(self):
        """Start the background reclamation thread. No-op if already running."""
        if self._thread is not None and self._thread.is_alive():
            return

        self._stop_event.clear()
        self._thread = threading.Thread(
            target=self._reclaim_loop,
            name="rate-limiter-reclaim",
            daemon=True,
        )
        self._thread.start()

    def stop(self):
        """Stop the background reclamation thread and wait for it to exit."""
        thread = self._thread
        if thread is None:
            return

        self._stop_event.set()
        thread.join()
        self._thread = None

    @property
    def running(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    def _reclaim_loop(self):
        # Event.wait returns True once stop() is called
        while not self._stop_event.wait(self.sweep_interval):
            self.reclaim()

    def __enter__(self) -> "RateLimiter":
        self.start()
        return self

    def __exit__(self, *exc_info):
        self.stop()
