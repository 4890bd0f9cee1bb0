import itertools
import logging
import threading
from functools import partial
from typing import Dict, Optional, Set, Tuple

from activity_schema import ActivityEvent
from delivery import DeliveryAdapter, DeliveryError
from entities import normalize_entity_key
from scheduling import Clock, Scheduler
from session_store import SessionStore

logger = logging.getLogger(__name__)


class FlushCoordinator:
    """
    Turns open sessions into delivered activity events.

    Non-forced closes wait out a short debounce window and a newer request for
    the same entity replaces the pending one. While a delivery for an entity is
    outstanding, any further close of that entity is a no-op. Sessions leave the
    store once their delivery attempt finishes, whatever the outcome.
    """

    def __init__(
        self,
        store: SessionStore,
        delivery: DeliveryAdapter,
        clock: Clock,
        scheduler: Scheduler,
        *,
        app_name: str,
        source: str,
        debounce_seconds: float = 0.15,
    ) -> None:
        if debounce_seconds < 0:
            raise ValueError("debounce_seconds must be non-negative.")
        self.store = store
        self.delivery = delivery
        self.clock = clock
        self.scheduler = scheduler
        self.app_name = app_name
        self.source = source
        self.debounce_seconds = debounce_seconds

        self._pending: Dict[str, Tuple[int, object]] = {}
        self._flushing: Set[str] = set()
        self._drained = threading.Condition(store.lock)
        self._tokens = itertools.count()

    def close_and_deliver(self, entity_key: str, *, force: bool = False) -> None:
        key = normalize_entity_key(entity_key)
        with self.store.lock:
            if key not in self.store:
                return
            if key in self._flushing:
                logger.debug("Close of %s ignored; a delivery is outstanding.", key)
                return
            self._cancel_pending(key)
            if not force:
                token = next(self._tokens)
                handle = self.scheduler.call_later(
                    self.debounce_seconds, partial(self._run_pending, key, token)
                )
                self._pending[key] = (token, handle)
                return
        self._flush(key)

    def flush_all(self, *, force: bool = False) -> None:
        for key in self.store.keys():
            self.close_and_deliver(key, force=force)

    def cancel_pending(self) -> None:
        with self.store.lock:
            for key in list(self._pending):
                self._cancel_pending(key)

    def is_flushing(self, entity_key: str) -> bool:
        with self.store.lock:
            return normalize_entity_key(entity_key) in self._flushing

    def has_pending(self, entity_key: str) -> bool:
        with self.store.lock:
            return normalize_entity_key(entity_key) in self._pending

    def wait_for_deliveries(self, timeout: Optional[float] = None) -> bool:
        """Block until no delivery is outstanding; False if ``timeout`` ran out first."""
        with self._drained:
            return self._drained.wait_for(lambda: not self._flushing, timeout)

    # Internal helpers ----------------------------------------------------

    def _cancel_pending(self, key: str) -> None:
        pending = self._pending.pop(key, None)
        if pending:
            pending[1].cancel()

    def _run_pending(self, key: str, token: int) -> None:
        with self.store.lock:
            pending = self._pending.get(key)
            # A timer that already fired cannot be canceled; the token tells it apart.
            if not pending or pending[0] != token:
                return
            del self._pending[key]
        self._flush(key)

    def _flush(self, key: str) -> bool:
        with self.store.lock:
            session = self.store.get(key)
            if session is None:
                return False
            if key in self._flushing:
                logger.debug("Flush already in progress for %s; skipping.", key)
                return False
            self._flushing.add(key)

            end_ms = self.clock.now_ms()
            duration = session.duration_seconds(end_ms)
            event: Optional[ActivityEvent] = None
            if duration > 0 and session.project:
                event = ActivityEvent(
                    start=session.start_ms // 1000,
                    end=end_ms // 1000,
                    category=session.category,
                    app=self.app_name,
                    entity=key,
                    duration=duration,
                    source=self.source,
                    project=session.project,
                )

        try:
            if event is None:
                logger.debug("Discarding session for %s (duration=%ss project=%s)", key, duration, session.project)
                return False
            self.delivery.deliver_event(event)
            logger.info("Flushed event for %s [%s] (%ss)", key, event.category.value, event.duration)
            return True
        except DeliveryError as exc:
            logger.warning("Flush failed for %s: %s", key, exc)
            return False
        except Exception as exc:
            logger.exception("Unexpected delivery error for %s: %s", key, exc)
            return False
        finally:
            with self.store.lock:
                self.store.discard(key, session)
                self._flushing.discard(key)
                if not self._flushing:
                    self._drained.notify_all()


__all__ = ["FlushCoordinator"]
