"""
Toast surfacing for new notifications, plus payment redirect countdowns.

Each surfaced toast owns its own auto-dismiss timer. A notification id is
surfaced at most once until reset(), which models a client reload.
"""

import functools
import logging
from threading import Lock
from typing import Callable, Iterable, Optional

from patientflow.store.types import Notification

from .router import newest_first_key
from .scheduling import ScheduledCallbacks

logger = logging.getLogger(__name__)


class ToastDispatcher:

    def __init__(
        self,
        router,
        callbacks: Optional[ScheduledCallbacks] = None,
        limit: int = 3,
        dismiss_seconds: float = 2.0,
        department: Optional[str] = None,
    ):
        self.router = router
        self.callbacks = callbacks or ScheduledCallbacks()
        self.limit = limit
        self.dismiss_seconds = dismiss_seconds
        self.department = department
        self._processed: set[str] = set()
        self._visible: dict[str, Notification] = {}
        self._lock = Lock()

    @staticmethod
    def _key(notification_id: str) -> str:
        return f"toast:{notification_id}"

    def sync(self, notifications: Optional[Iterable[Notification]] = None) -> list[Notification]:
        """
        Surface never-surfaced notifications among the ``limit`` newest unread.

        Older unread notifications never toast, even after the newer ones
        expire. At most ``limit`` toasts are visible at once. Returns the ones
        surfaced by this call.
        """
        if notifications is None:
            notifications = self.router.feed(self.department)

        recent = sorted(
            (n for n in notifications if not n.read),
            key=newest_first_key,
            reverse=True,
        )[:self.limit]

        with self._lock:
            candidates = [
                n for n in recent
                if n.id not in self._processed and n.id not in self._visible
            ]
            room = max(0, self.limit - len(self._visible))
            surfaced = candidates[:room]
            for n in surfaced:
                self._processed.add(n.id)
                self._visible[n.id] = n

        for n in surfaced:
            self.callbacks.schedule(
                self._key(n.id),
                self.dismiss_seconds,
                functools.partial(self._expire, n.id),
            )
        if surfaced:
            logger.debug("Surfaced %d toasts", len(surfaced))
        return surfaced

    def _expire(self, notification_id: str) -> None:
        with self._lock:
            self._visible.pop(notification_id, None)

    def dismiss(self, notification_id: str) -> bool:
        """Hide one toast and cancel only its own timer."""
        self.callbacks.cancel(self._key(notification_id))
        with self._lock:
            return self._visible.pop(notification_id, None) is not None

    def acknowledge(self, notification_id: str) -> Notification:
        notification = self.router.mark_read(notification_id)
        self.dismiss(notification_id)
        return notification

    def visible(self) -> list[Notification]:
        with self._lock:
            return sorted(self._visible.values(), key=newest_first_key, reverse=True)

    def reset(self) -> None:
        self.callbacks.cancel_all()
        with self._lock:
            self._processed.clear()
            self._visible.clear()


class PaymentRedirects:
    """Countdown from a payment success screen back to the workflow."""

    def __init__(self, callbacks: Optional[ScheduledCallbacks] = None, seconds: float = 5.0):
        self.callbacks = callbacks or ScheduledCallbacks()
        self.seconds = seconds

    def start(self, session_id: str, redirect: Callable[[], None], seconds: Optional[float] = None):
        return self.callbacks.schedule(
            f"payment-redirect:{session_id}",
            self.seconds if seconds is None else seconds,
            redirect,
        )

    def cancel(self, session_id: str) -> bool:
        return self.callbacks.cancel(f"payment-redirect:{session_id}")
