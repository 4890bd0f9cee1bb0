import logging
from typing import List, Optional

from activity_schema import Category, DocumentState
from delivery import DeliveryAdapter
from entities import normalize_entity_key
from flush import FlushCoordinator
from heartbeat import ActiveDocument, HeartbeatEmitter
from idle import IdleDetector
from scheduling import Clock, Scheduler, SystemClock, ThreadingScheduler
from session import TrackedSession
from session_store import SessionStore
from settings_store import TrackerSettings

logger = logging.getLogger(__name__)

DRAIN_TIMEOUT_SECONDS = 15.0


class ActivityTracker:
    """
    Aggregates editor activity into per-entity sessions and heartbeats.

    One instance owns all session state for the process lifetime: construct it
    at startup, call ``start()``, feed it signals, and ``shutdown()`` to drain.
    """

    def __init__(
        self,
        delivery: DeliveryAdapter,
        settings: Optional[TrackerSettings] = None,
        *,
        clock: Optional[Clock] = None,
        scheduler: Optional[Scheduler] = None,
    ) -> None:
        self.settings = settings or TrackerSettings()
        self.delivery = delivery
        self.clock = clock or SystemClock()
        self.scheduler = scheduler or ThreadingScheduler()

        self._store = SessionStore()
        self._flusher = FlushCoordinator(
            self._store,
            delivery,
            self.clock,
            self.scheduler,
            app_name=self.settings.app_name,
            source=self.settings.source,
            debounce_seconds=self.settings.flush_debounce_seconds,
        )
        self._idle = IdleDetector(
            self.clock,
            self.scheduler,
            self._on_idle,
            idle_timeout_seconds=self.settings.idle_timeout_seconds,
            min_interval_seconds=self.settings.min_activity_interval_seconds,
        )
        self._heartbeats = HeartbeatEmitter(
            delivery,
            self.clock,
            self.scheduler,
            self._idle.is_active_within,
            app_name=self.settings.app_name,
            period_seconds=self.settings.heartbeat_period_seconds,
            min_interval_seconds=self.settings.min_activity_interval_seconds,
        )
        self._shut_down = False

    # Lifecycle -------------------------------------------------------------

    def start(self) -> None:
        self._heartbeats.start()
        logger.info("ActivityTracker started.")

    def shutdown(self, timeout: Optional[float] = DRAIN_TIMEOUT_SECONDS) -> None:
        """
        Stop timers, then force-close and deliver every open session.

        Returns once deliveries already running on other threads have finished,
        or after ``timeout`` seconds.
        """
        if self._shut_down:
            return
        self._shut_down = True
        self._idle.stop()
        self._heartbeats.stop()
        self._flusher.cancel_pending()
        open_count = len(self._store)
        self._flusher.flush_all(force=True)
        if not self._flusher.wait_for_deliveries(timeout):
            logger.warning("Shutdown timed out waiting for outstanding deliveries.")
        # Sessions reopened by signals that raced the drain.
        self._flusher.flush_all(force=True)
        with self._store.lock:
            self._store.current_entity = None
        logger.info("ActivityTracker stopped; drained %s open session(s).", open_count)

    # Signal contracts ------------------------------------------------------

    def record_activity(
        self,
        category: Category,
        entity_key: str,
        project: Optional[str],
        *,
        document: Optional[DocumentState] = None,
        is_write: bool = False,
    ) -> bool:
        """Open, continue or switch the session for ``entity_key``; False when skipped."""
        key = normalize_entity_key(entity_key)
        if not key or not project:
            logger.warning("Skipping activity: unknown project for %s", key or entity_key)
            return False
        if self._shut_down:
            logger.debug("Tracker shut down; ignoring activity for %s", key)
            return False

        self._idle.mark_activity()
        now = self.clock.now_ms()

        with self._store.lock:
            existing = self._live_session(key)
            current = self._store.current_entity
            switching = current is not None and current != key
            category_changed = existing is not None and existing.category != category
            superseded: List[str] = []
            if switching or category_changed:
                superseded = [other for other in self._store.keys() if other != key]
            if category_changed:
                superseded.append(key)

        for other in superseded:
            self._flusher.close_and_deliver(other, force=True)

        with self._store.lock:
            existing = self._live_session(key)
            if existing is None or existing.category != category:
                self._store.open(key, category, project, now)
                logger.debug("Opened %s session for %s", category.value, key)
            elif existing.project != project:
                existing.project = project
            self._store.current_entity = key

        self._heartbeats.set_document(self._active_document(key, project, document))
        self._heartbeats.emit(is_write=is_write)
        return True

    def close_and_deliver(self, entity_key: str, *, force: bool = False) -> None:
        self._flusher.close_and_deliver(entity_key, force=force)

    def flush_all(self, *, force: bool = False) -> None:
        self._flusher.flush_all(force=force)

    def mark_activity(self) -> None:
        self._idle.mark_activity()

    def release_entity(self, entity_key: Optional[str] = None) -> None:
        """Clear the current-entity pointer, or only if it points at ``entity_key``."""
        key = normalize_entity_key(entity_key) if entity_key is not None else None
        with self._store.lock:
            if key is None or self._store.current_entity == key:
                self._store.current_entity = None
                self._heartbeats.set_document(None)

    # Read-only views -------------------------------------------------------

    @property
    def current_entity(self) -> Optional[str]:
        with self._store.lock:
            return self._store.current_entity

    def has_open_session(self, entity_key: str) -> bool:
        return normalize_entity_key(entity_key) in self._store

    def open_entities(self) -> List[str]:
        return self._store.keys()

    def session_category(self, entity_key: str) -> Optional[Category]:
        session = self._store.get(normalize_entity_key(entity_key))
        return session.category if session else None

    # Internal helpers ----------------------------------------------------

    def _live_session(self, key: str) -> Optional[TrackedSession]:
        """The open session for ``key``, ignoring one whose delivery is already underway."""
        if self._flusher.is_flushing(key):
            return None
        return self._store.get(key)

    def _on_idle(self) -> None:
        self._flusher.flush_all(force=True)

    def _active_document(
        self, key: str, project: str, document: Optional[DocumentState]
    ) -> ActiveDocument:
        previous = self._heartbeats.document
        if document is None and previous is not None and previous.entity_key == key:
            return ActiveDocument(
                entity_key=key,
                project=project,
                line_count=previous.line_count,
                cursor_offset=previous.cursor_offset,
                language=previous.language,
            )
        document = document or DocumentState()
        return ActiveDocument(
            entity_key=key,
            project=project,
            line_count=document.line_count,
            cursor_offset=document.cursor_offset,
            language=document.content_type,
        )


__all__ = ["ActivityTracker"]
