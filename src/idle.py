import logging
import threading
from typing import Callable, Optional

from scheduling import Clock, Scheduler

logger = logging.getLogger(__name__)


class IdleDetector:
    """
    Tracks user activity and fires ``on_idle`` after a quiet period.

    Every mark resets the idle countdown, but "last active" only moves when the
    previous effective mark is at least ``min_interval_seconds`` old. The timer
    is re-armed for the remaining time instead of being recreated on each mark.
    """

    def __init__(
        self,
        clock: Clock,
        scheduler: Scheduler,
        on_idle: Callable[[], None],
        *,
        idle_timeout_seconds: float = 60.0,
        min_interval_seconds: float = 2.0,
    ) -> None:
        if idle_timeout_seconds <= 0:
            raise ValueError("idle_timeout_seconds must be positive.")
        if min_interval_seconds < 0:
            raise ValueError("min_interval_seconds must be non-negative.")
        self.clock = clock
        self.scheduler = scheduler
        self.on_idle = on_idle
        self.idle_timeout_ms = int(idle_timeout_seconds * 1000)
        self.min_interval_ms = int(min_interval_seconds * 1000)

        self._lock = threading.Lock()
        self._last_active_ms: Optional[int] = None
        self._last_seen_ms: Optional[int] = None
        self._timer = None
        self._stopped = False

    @property
    def last_active_ms(self) -> Optional[int]:
        with self._lock:
            return self._last_active_ms

    @property
    def last_seen_ms(self) -> Optional[int]:
        with self._lock:
            return self._last_seen_ms

    def is_active_within(self, window_seconds: float) -> bool:
        with self._lock:
            if self._last_seen_ms is None:
                return False
            return self.clock.now_ms() - self._last_seen_ms <= int(window_seconds * 1000)

    def mark_activity(self) -> bool:
        """Record activity; returns True when the mark moved "last active"."""
        now = self.clock.now_ms()
        with self._lock:
            if self._stopped:
                return False
            self._last_seen_ms = now
            if self._timer is None:
                self._arm(self.idle_timeout_ms)
            if self._last_active_ms is not None and now - self._last_active_ms < self.min_interval_ms:
                return False
            self._last_active_ms = now
            return True

    def stop(self) -> None:
        with self._lock:
            self._stopped = True
            if self._timer is not None:
                self._timer.cancel()
                self._timer = None

    def _arm(self, delay_ms: int) -> None:
        self._timer = self.scheduler.call_later(delay_ms / 1000.0, self._on_timer)

    def _on_timer(self) -> None:
        with self._lock:
            self._timer = None
            if self._stopped or self._last_seen_ms is None:
                return
            remaining = self.idle_timeout_ms - (self.clock.now_ms() - self._last_seen_ms)
            if remaining > 0:
                self._arm(remaining)
                return
        logger.debug("Idle timeout reached; flushing open sessions.")
        self.on_idle()
