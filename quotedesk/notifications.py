"""
Transient, dismissible notifications for reporting recoverable failures.
"""

import itertools
import threading
import time
from dataclasses import dataclass
from typing import Callable, Dict, List


@dataclass
class Notification:
    """A single notification shown to the user."""
    id: int
    title: str
    description: str
    variant: str
    created_at: float


class NotificationCenter:
    """
    Keeps notifications until they are dismissed or outlive their duration.
    """

    def __init__(self, duration: float = 5.0, clock: Callable[[], float] = time.monotonic):
        self.duration = duration
        self._clock = clock
        self._lock = threading.Lock()
        self._ids = itertools.count(1)
        self._items: Dict[int, Notification] = {}

    def push(self, title: str, description: str = "", variant: str = "default") -> Notification:
        notification = Notification(
            id=next(self._ids),
            title=title,
            description=description,
            variant=variant,
            created_at=self._clock(),
        )
        with self._lock:
            self._items[notification.id] = notification
        return notification

    def error(self, title: str, description: str = "") -> Notification:
        """Push a destructive notification."""
        return self.push(title, description, variant="destructive")

    def dismiss(self, notification_id: int) -> bool:
        with self._lock:
            return self._items.pop(notification_id, None) is not None

    def active(self) -> List[Notification]:
        """Notifications that are neither dismissed nor expired, oldest first."""
        now = self._clock()
        with self._lock:
            expired = [n.id for n in self._items.values() if now - n.created_at >= self.duration]
            for notification_id in expired:
                del self._items[notification_id]
            return sorted(self._items.values(), key=lambda n: n.id)
