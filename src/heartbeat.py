import logging
import threading
from dataclasses import dataclass
from typing import Callable, Optional

from activity_schema import Heartbeat
from delivery import DeliveryAdapter, DeliveryError
from scheduling import Clock, Scheduler

logger = logging.getLogger(__name__)


@dataclass
class ActiveDocument:
    entity_key: str
    project: str
    line_count: int = 0
    cursor_offset: int = 0
    language: Optional[str] = None


class HeartbeatEmitter:
    """Emits liveness samples for the active document on a fixed cadence."""

    def __init__(
        self,
        delivery: DeliveryAdapter,
        clock: Clock,
        scheduler: Scheduler,
        is_recently_active: Callable[[float], bool],
        *,
        app_name: str,
        period_seconds: float = 2.0,
        min_interval_seconds: float = 2.0,
    ) -> None:
        if period_seconds <= 0:
            raise ValueError("period_seconds must be positive.")
        self.delivery = delivery
        self.clock = clock
        self.scheduler = scheduler
        self.is_recently_active = is_recently_active
        self.app_name = app_name
        self.period_seconds = period_seconds
        self.min_interval_ms = int(min_interval_seconds * 1000)

        self._lock = threading.Lock()
        self._document: Optional[ActiveDocument] = None
        self._last_emitted_ms: Optional[int] = None
        self._timer = None
        self._running = False

    @property
    def document(self) -> Optional[ActiveDocument]:
        with self._lock:
            return self._document

    def set_document(self, document: Optional[ActiveDocument]) -> None:
        with self._lock:
            self._document = document

    def start(self) -> None:
        with self._lock:
            if self._running:
                logger.warning("HeartbeatEmitter already running.")
                return
            self._running = True
            self._timer = self.scheduler.call_later(self.period_seconds, self._tick)
        logger.info("HeartbeatEmitter started with %ss period.", self.period_seconds)

    def stop(self) -> None:
        with self._lock:
            self._running = False
            if self._timer is not None:
                self._timer.cancel()
                self._timer = None

    def is_running(self) -> bool:
        with self._lock:
            return self._running

    def emit(self, *, is_write: bool = False) -> bool:
        """Send a heartbeat now; edit heartbeats are rate-limited, writes never are."""
        now = self.clock.now_ms()
        with self._lock:
            if not is_write and self._last_emitted_ms is not None:
                if now - self._last_emitted_ms < self.min_interval_ms:
                    return False
            document = self._claim(now)
        return self._send(document, now, is_write)

    def _tick(self) -> None:
        try:
            if self.is_recently_active(self.period_seconds):
                now = self.clock.now_ms()
                with self._lock:
                    document = self._claim(now)
                self._send(document, now, False)
        finally:
            with self._lock:
                if self._running:
                    self._timer = self.scheduler.call_later(self.period_seconds, self._tick)

    def _claim(self, now_ms: int) -> Optional[ActiveDocument]:
        # Caller holds the lock; the stamp must land with the rate-limit check.
        if self._document is not None:
            self._last_emitted_ms = now_ms
        return self._document

    def _send(self, document: Optional[ActiveDocument], now_ms: int, is_write: bool) -> bool:
        if document is None:
            return False
        heartbeat = Heartbeat(
            project=document.project,
            timestamp=now_ms // 1000,
            entity=document.entity_key,
            app=self.app_name,
            lines=document.line_count,
            cursor_offset=document.cursor_offset,
            is_write=is_write,
            language=document.language,
        )
        try:
            self.delivery.deliver_heartbeat(heartbeat)
        except DeliveryError as exc:
            logger.warning("Heartbeat failed for %s: %s", document.entity_key, exc)
            return False
        except Exception as exc:
            logger.exception("Unexpected heartbeat error for %s: %s", document.entity_key, exc)
            return False
        logger.debug("Heartbeat sent for %s (write=%s)", document.entity_key, is_write)
        return True


__all__ = ["ActiveDocument", "HeartbeatEmitter"]
