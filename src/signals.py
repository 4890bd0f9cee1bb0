import logging
import threading
from dataclasses import dataclass
from functools import partial
from typing import Dict, Optional

from activity_schema import DocumentState, SignalKind
from classifier import classify_signal
from entities import WorkspaceRegistry, normalize_entity_key
from scheduling import Scheduler
from tracker import ActivityTracker

logger = logging.getLogger(__name__)

_RECORD_SIGNALS = frozenset(
    {
        SignalKind.DOCUMENT_CHANGED,
        SignalKind.SELECTION_CHANGED,
        SignalKind.DOCUMENT_OPENED,
        SignalKind.DOCUMENT_SAVED,
        SignalKind.DEBUG_STARTED,
        SignalKind.DEBUG_CHANGED,
        SignalKind.BREAKPOINTS_CHANGED,
        SignalKind.TASK_STARTED,
        SignalKind.NOTEBOOK_OPENED,
        SignalKind.NOTEBOOK_SAVED,
    }
)


@dataclass
class EditorSignal:
    """
    One notification from the host editor.

    ``resource`` is the affected document, or the active editor's document for
    debug and task signals; None when no document is focused.
    """

    kind: SignalKind
    resource: Optional[str] = None
    content_type: Optional[str] = None
    task_name: Optional[str] = None
    line_count: int = 0
    cursor_offset: int = 0
    executed: bool = False

    def document(self) -> DocumentState:
        return DocumentState(
            line_count=self.line_count,
            cursor_offset=self.cursor_offset,
            content_type=self.content_type,
        )


class SignalRouter:
    """Translates editor signals into tracker calls. Never raises to the caller."""

    def __init__(
        self,
        tracker: ActivityTracker,
        workspace: WorkspaceRegistry,
        scheduler: Scheduler,
        *,
        notebook_edit_debounce_seconds: float = 3.0,
    ) -> None:
        self.tracker = tracker
        self.workspace = workspace
        self.scheduler = scheduler
        self.notebook_edit_debounce_seconds = notebook_edit_debounce_seconds
        self._lock = threading.Lock()
        self._notebook_timers: Dict[str, object] = {}

    def dispatch(self, signal: EditorSignal) -> None:
        try:
            self._dispatch(signal)
        except Exception as exc:
            logger.exception("Failed to handle %s signal: %s", signal.kind.value, exc)

    def close(self) -> None:
        with self._lock:
            timers = list(self._notebook_timers.values())
            self._notebook_timers.clear()
        for timer in timers:
            timer.cancel()

    # Internal helpers ----------------------------------------------------

    def _dispatch(self, signal: EditorSignal) -> None:
        kind = signal.kind
        if kind is SignalKind.VISIBLE_RANGE_CHANGED:
            self.tracker.mark_activity()
            return

        if kind is SignalKind.EDITOR_FOCUS_CHANGED:
            self.tracker.flush_all()
            if signal.resource:
                self._record(signal)
            else:
                self.tracker.release_entity()
            return

        if not signal.resource:
            logger.debug("Ignoring %s without an active document.", kind.value)
            return

        if kind is SignalKind.DOCUMENT_CLOSED:
            key = normalize_entity_key(signal.resource)
            logger.debug("Document closed: %s", key)
            self.tracker.close_and_deliver(key, force=True)
            self.tracker.release_entity(key)
        elif kind is SignalKind.DEBUG_TERMINATED:
            self.tracker.close_and_deliver(signal.resource)
        elif kind is SignalKind.TASK_ENDED:
            if self._record(signal):
                self.tracker.close_and_deliver(signal.resource)
        elif kind is SignalKind.NOTEBOOK_CHANGED:
            self._notebook_changed(signal)
        elif kind in _RECORD_SIGNALS:
            self._record(signal)

    def _record(self, signal: EditorSignal) -> bool:
        category = classify_signal(
            signal.kind, signal.content_type, signal.task_name, executed=signal.executed
        )
        if category is None:
            return False
        key = normalize_entity_key(signal.resource)
        project = self.workspace.resolve_project(key)
        return self.tracker.record_activity(
            category,
            key,
            project,
            document=signal.document(),
            is_write=signal.kind in (SignalKind.DOCUMENT_SAVED, SignalKind.NOTEBOOK_SAVED),
        )

    def _notebook_changed(self, signal: EditorSignal) -> None:
        key = normalize_entity_key(signal.resource)
        if signal.executed:
            self._cancel_notebook_timer(key)
            self._record(signal)
            return
        with self._lock:
            previous = self._notebook_timers.pop(key, None)
            if previous is not None:
                previous.cancel()
            self._notebook_timers[key] = self.scheduler.call_later(
                self.notebook_edit_debounce_seconds, partial(self._notebook_settled, key, signal)
            )

    def _notebook_settled(self, key: str, signal: EditorSignal) -> None:
        with self._lock:
            self._notebook_timers.pop(key, None)
        self._record_safely(signal)

    def _record_safely(self, signal: EditorSignal) -> None:
        try:
            self._record(signal)
        except Exception as exc:
            logger.exception("Failed to record notebook edit for %s: %s", signal.resource, exc)

    def _cancel_notebook_timer(self, key: str) -> None:
        with self._lock:
            timer = self._notebook_timers.pop(key, None)
        if timer is not None:
            timer.cancel()


__all__ = ["EditorSignal", "SignalRouter"]
