import logging
from pathlib import Path
from typing import Callable, Optional

from watchdog.events import FileSystemEvent, FileSystemEventHandler
from watchdog.observers import Observer

from activity_schema import SignalKind
from entities import WorkspaceRegistry
from signals import EditorSignal, SignalRouter

logger = logging.getLogger(__name__)

IGNORED_DIRS = frozenset({".git", ".hg", ".svn", "__pycache__", "node_modules", ".venv", "venv", ".mypy_cache"})

CONTENT_TYPES = {
    ".md": "markdown",
    ".markdown": "markdown",
    ".txt": "plaintext",
    ".py": "python",
    ".js": "javascript",
    ".ts": "typescript",
    ".ipynb": "jupyter",
}


def content_type_for(path: Path) -> str:
    suffix = path.suffix.lower()
    return CONTENT_TYPES.get(suffix, suffix.lstrip(".") or "unknown")


class WorkspaceWatcher(FileSystemEventHandler):
    """Watches workspace roots on disk and feeds file changes to the signal router."""

    def __init__(
        self,
        workspace: WorkspaceRegistry,
        router: SignalRouter,
        status_callback: Optional[Callable[[str], None]] = None,
    ):
        self.workspace = workspace
        self.router = router
        self.status_callback = status_callback
        self.observer = Observer()

    def start(self) -> None:
        roots = self.workspace.roots
        if not roots:
            raise ValueError("No workspace roots to watch.")
        for root in roots:
            if not Path(root).is_dir():
                raise FileNotFoundError(f"Cannot find workspace {root}")
            self.observer.schedule(self, root, recursive=True)
        self.observer.start()
        self._status("Watching %d workspace root(s)" % len(roots))

    def stop(self) -> None:
        self.observer.stop()
        self.observer.join(timeout=5)
        self._status("Workspace watcher stopped.")

    def on_created(self, event: FileSystemEvent) -> None:
        self._emit(SignalKind.DOCUMENT_OPENED, event.src_path, event)

    def on_modified(self, event: FileSystemEvent) -> None:
        self._emit(SignalKind.DOCUMENT_SAVED, event.src_path, event)

    def on_deleted(self, event: FileSystemEvent) -> None:
        self._emit(SignalKind.DOCUMENT_CLOSED, event.src_path, event)

    def on_moved(self, event: FileSystemEvent) -> None:
        self._emit(SignalKind.DOCUMENT_CLOSED, event.src_path, event)
        self._emit(SignalKind.DOCUMENT_SAVED, event.dest_path, event)

    def _emit(self, kind: SignalKind, raw_path, event: FileSystemEvent) -> None:
        if event.is_directory:
            return
        path = Path(raw_path.decode() if isinstance(raw_path, bytes) else raw_path)
        if self._should_ignore(path):
            return
        line_count = self._count_lines(path) if kind is not SignalKind.DOCUMENT_CLOSED else 0
        self.router.dispatch(
            EditorSignal(
                kind=kind,
                resource=str(path),
                content_type=content_type_for(path),
                line_count=line_count,
            )
        )

    @staticmethod
    def _should_ignore(path: Path) -> bool:
        return any(part in IGNORED_DIRS for part in path.parts)

    @staticmethod
    def _count_lines(path: Path) -> int:
        try:
            with path.open("rb") as file:
                return sum(1 for _ in file)
        except OSError as exc:
            logger.debug("Failed to count lines in %s: %s", path, exc)
            return 0

    def _status(self, message: str) -> None:
        logger.info(message)
        if self.status_callback:
            self.status_callback(message)
