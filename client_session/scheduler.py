"""
One-shot deferred calls for the renewal timer.
ThreadingScheduler uses daemon threading.Timer so a pending renewal never blocks shutdown.
"""
import logging
import threading
from typing import Callable, Protocol

logger = logging.getLogger(__name__)


class TimerHandle(Protocol):
    def cancel(self) -> None: ...


class Scheduler(Protocol):
    def call_later(self, delay: float, fn: Callable[[], None]) -> TimerHandle: ...


class ThreadingScheduler:
    def call_later(self, delay: float, fn: Callable[[], None]) -> TimerHandle:
        timer = threading.Timer(delay, fn)
        timer.daemon = True
        timer.start()
        logger.debug("Timer armed: fires in %.1fs", delay)
        return timer
