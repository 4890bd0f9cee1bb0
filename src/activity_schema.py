from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict, List, Optional


class Category(str, Enum):
    CODING = "Coding"
    DEBUGGING = "Debugging"
    COMPILING = "Compiling"
    WRITING_DOCS = "Writing Docs"
    CODE_REVIEWING = "Code Reviewing"
    TESTING = "Testing"


class EntityType(str, Enum):
    FILE = "File"
    APP = "App"
    URL = "Url"


class SignalKind(str, Enum):
    DOCUMENT_CHANGED = "document_changed"
    SELECTION_CHANGED = "selection_changed"
    DOCUMENT_OPENED = "document_opened"
    DOCUMENT_SAVED = "document_saved"
    DOCUMENT_CLOSED = "document_closed"
    EDITOR_FOCUS_CHANGED = "editor_focus_changed"
    VISIBLE_RANGE_CHANGED = "visible_range_changed"
    DEBUG_STARTED = "debug_started"
    DEBUG_CHANGED = "debug_changed"
    DEBUG_TERMINATED = "debug_terminated"
    BREAKPOINTS_CHANGED = "breakpoints_changed"
    TASK_STARTED = "task_started"
    TASK_ENDED = "task_ended"
    NOTEBOOK_OPENED = "notebook_opened"
    NOTEBOOK_CHANGED = "notebook_changed"
    NOTEBOOK_SAVED = "notebook_saved"


@dataclass
class DocumentState:
    """Document facts carried by a signal and echoed into heartbeats."""

    line_count: int = 0
    cursor_offset: int = 0
    content_type: Optional[str] = None


@dataclass
class ActivityEvent:
    """
    A finished span of time on one entity, ready for the delivery sink.

    Timestamps and duration are whole seconds; the duration is never negative.
    """

    start: int
    end: int
    category: Category
    app: str
    entity: str
    duration: int
    source: str
    project: str
    entity_type: EntityType = EntityType.FILE

    def to_payload(self) -> Dict[str, Any]:
        return {
            "timestamp": self.start,
            "end_timestamp": self.end,
            "category": self.category.value,
            "app": self.app,
            "entity": self.entity,
            "entity_type": self.entity_type.value,
            "duration": self.duration,
            "source": self.source,
            "project": self.project,
        }

    def to_cli_args(self) -> List[str]:
        return [
            "event",
            "--timestamp", str(self.start),
            "--end-timestamp", str(self.end),
            "--category", self.category.value,
            "--app", self.app,
            "--entity", self.entity,
            "--entity-type", self.entity_type.value,
            "--duration", str(self.duration),
            "--source", self.source,
            "--project", self.project,
        ]


@dataclass
class Heartbeat:
    """Point-in-time liveness sample for the active document."""

    project: str
    timestamp: int
    entity: str
    app: str
    lines: int
    cursor_offset: int
    is_write: bool = False
    language: Optional[str] = None
    entity_type: EntityType = EntityType.FILE

    def to_payload(self) -> Dict[str, Any]:
        payload: Dict[str, Any] = {
            "project": self.project,
            "timestamp": self.timestamp,
            "entity": self.entity,
            "entity_type": self.entity_type.value,
            "app": self.app,
            "lines": self.lines,
            "cursor_offset": self.cursor_offset,
            "is_write": self.is_write,
            "language": self.language,
        }
        # Drop unset optional keys to keep documents lean.
        return {k: v for k, v in payload.items() if v is not None}

    def to_cli_args(self) -> List[str]:
        args = [
            "heartbeat",
            "--project", self.project,
            "--timestamp", str(self.timestamp),
            "--entity", self.entity,
            "--entity-type", self.entity_type.value,
            "--app", self.app,
            "--lines", str(self.lines),
            "--cursorpos", str(self.cursor_offset),
        ]
        if self.language:
            args.extend(["--language", self.language])
        if self.is_write:
            args.append("--is-write")
        return args


__all__ = [
    "ActivityEvent",
    "Category",
    "DocumentState",
    "EntityType",
    "Heartbeat",
    "SignalKind",
]
