"""
Toast notifications.

Toasts are transient messages shown at the bottom of the screen. The queue
only tracks whether an expiry tick is pending; scheduling the tick itself is
the controller's job so the queue stays free of timers.
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import List


DEFAULT_TOAST_TTL = 4.0
TOAST_TICK_INTERVAL = 0.5
MAX_VISIBLE_TOASTS = 3


class ToastLevel(str, Enum):
    INFO = "info"
    SUCCESS = "success"
    ERROR = "error"


@dataclass
class Toast:
    message: str
    level: ToastLevel
    expires_at: float

    def is_expired(self, now: float) -> bool:
        return self.expires_at <= now


@dataclass
class ToastQueue:
    """Newest-first list of live toasts."""

    ttl: float = DEFAULT_TOAST_TTL
    toasts: List[Toast] = field(default_factory=list)
    timer_scheduled: bool = False

    def add(self, message: str, level: ToastLevel, now: float) -> bool:
        """Insert a toast at the head.

        Returns:
            True if the caller must schedule an expiry tick
        """
        self.toasts.insert(0, Toast(message, level, now + self.ttl))
        if self.timer_scheduled:
            return False
        self.timer_scheduled = True
        return True

    def tick(self, now: float) -> bool:
        """Drop expired toasts.

        Returns:
            True if toasts remain and another tick must be scheduled
        """
        self.toasts = [t for t in self.toasts if not t.is_expired(now)]
        self.timer_scheduled = bool(self.toasts)
        return self.timer_scheduled

    def visible(self) -> List[Toast]:
        return self.toasts[:MAX_VISIBLE_TOASTS]

    def __len__(self) -> int:
        return len(self.toasts)

    def copy(self) -> "ToastQueue":
        return ToastQueue(ttl=self.ttl, toasts=list(self.toasts), timer_scheduled=self.timer_scheduled)
