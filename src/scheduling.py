import logging
import threading
import time
from abc import ABC, abstractmethod
from typing import Callable

logger = logging.getLogger(__name__)


class Clock(ABC):
    @abstractmethod
    def now_ms(self) -> int:
        """Current wall-clock time in epoch milliseconds."""


class SystemClock(Clock):
    def now_ms(self) -> int:
        return int(time.time() * 1000)


class Scheduler(ABC):
    """Creates cancelable one-shot timers; handles expose ``cancel()``."""

    @abstractmethod
    def call_later(self, delay_seconds: float, callback: Callable[[], None]):
        ...


class ThreadingScheduler(Scheduler):
    """Runs each callback on a daemon ``threading.Timer``."""

    def __init__(self, name: str = "EditScopeTimer") -> None:
        self.name = name

    def call_later(self, delay_seconds: float, callback: Callable[[], None]) -> threading.Timer:
        timer = threading.Timer(max(delay_seconds, 0.0), self._run, args=(callback,))
        timer.name = self.name
        timer.daemon = True
        timer.start()
        return timer

    @staticmethod
    def _run(callback: Callable[[], None]) -> None:
        try:
            callback()
        except Exception as exc:
            logger.exception("Timer callback failed: %s", exc)
