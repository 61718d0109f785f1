"""
Cancellable delayed callbacks.

Toast auto-dismiss and payment-success redirect countdowns each own one
ScheduledTask; cancelling one never affects another.
"""

import logging
import threading
from typing import Callable, Optional

logger = logging.getLogger(__name__)


class ScheduledTask:
    """Handle for a callback that will run once after a delay unless cancelled."""

    def __init__(self, delay: float, callback: Callable[[], None]):
        self.delay = delay
        self._callback = callback
        self._timer = threading.Timer(delay, self._run)
        self._timer.daemon = True
        self._cancelled = False
        self._done = False

    def start(self) -> 'ScheduledTask':
        self._timer.start()
        return self

    def _run(self):
        if self._cancelled:
            return
        self._done = True
        try:
            self._callback()
        except Exception:
            logger.exception("Scheduled callback failed")

    def cancel(self) -> None:
        self._cancelled = True
        self._timer.cancel()

    @property
    def active(self) -> bool:
        return not (self._cancelled or self._done)


class Scheduler:
    """Creates ScheduledTask handles. Tests swap in a manually-driven scheduler."""

    def schedule(self, delay: float, callback: Callable[[], None]) -> ScheduledTask:
        return ScheduledTask(delay, callback).start()


class ScheduledCallbacks:
    """Keyed registry of pending ScheduledTask handles."""

    def __init__(self, scheduler: Optional[Scheduler] = None):
        self.scheduler = scheduler or Scheduler()
        self._tasks: dict[str, ScheduledTask] = {}
        self._lock = threading.Lock()

    def schedule(self, key: str, delay: float, callback: Callable[[], None]) -> ScheduledTask:
        """Schedule ``callback`` under ``key``, replacing any task already pending there."""

        def fire():
            with self._lock:
                if self._tasks.get(key) is task:
                    del self._tasks[key]
            callback()

        with self._lock:
            previous = self._tasks.pop(key, None)
            if previous is not None:
                previous.cancel()
            task = self.scheduler.schedule(delay, fire)
            self._tasks[key] = task
        return task

    def cancel(self, key: str) -> bool:
        with self._lock:
            task = self._tasks.pop(key, None)
        if task is None:
            return False
        task.cancel()
        return True

    def cancel_all(self) -> None:
        with self._lock:
            tasks = list(self._tasks.values())
            self._tasks.clear()
        for task in tasks:
            task.cancel()

    def pending(self) -> list[str]:
        with self._lock:
            return list(self._tasks)
