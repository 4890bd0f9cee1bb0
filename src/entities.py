import logging
import re
import threading
from pathlib import Path
from typing import Iterable, List, Optional
from urllib.parse import unquote, urlparse

logger = logging.getLogger(__name__)

_VCS_SUFFIX = re.compile(r"\.git$")
_URI_SCHEME = re.compile(r"^[A-Za-z][A-Za-z0-9+.-]+:")
_WINDOWS_DRIVE = re.compile(r"^[A-Za-z]:[\\/]")


def normalize_entity_key(raw: Optional[str]) -> str:
    """
    Map a raw resource identifier to its canonical tracking key.

    file:// URIs collapse to their filesystem path so that the editor's URI and
    path spellings of one document share a key. Other URI schemes are kept as-is.
    """
    text = (raw or "").strip()
    if text.startswith("file://"):
        text = unquote(urlparse(text).path)
        if _WINDOWS_DRIVE.match(text.lstrip("/")):
            text = text.lstrip("/")
    return _VCS_SUFFIX.sub("", text)


def _is_foreign_uri(key: str) -> bool:
    return bool(_URI_SCHEME.match(key)) and not _WINDOWS_DRIVE.match(key)


class WorkspaceRegistry:
    """Open workspace roots, used to attribute entities to a project."""

    def __init__(self, roots: Iterable[str] = ()) -> None:
        self._lock = threading.Lock()
        self._roots: List[Path] = []
        for root in roots:
            self.add_root(root)

    @property
    def roots(self) -> List[str]:
        with self._lock:
            return [str(root) for root in self._roots]

    def add_root(self, root: str) -> None:
        path = Path(root).expanduser().absolute()
        with self._lock:
            if path in self._roots:
                return
            self._roots.append(path)
            # Deepest roots first so nested workspaces win.
            self._roots.sort(key=lambda p: len(p.parts), reverse=True)
        logger.info("Workspace root added: %s", path)

    def remove_root(self, root: str) -> None:
        path = Path(root).expanduser().absolute()
        with self._lock:
            if path not in self._roots:
                return
            self._roots.remove(path)
        logger.info("Workspace root removed: %s", path)

    def resolve_project(self, entity_key: str) -> Optional[str]:
        if not entity_key or _is_foreign_uri(entity_key):
            return None
        path = Path(entity_key)
        if not path.is_absolute():
            return None
        with self._lock:
            roots = list(self._roots)
        for root in roots:
            try:
                path.relative_to(root)
            except ValueError:
                continue
            return str(root)
        return None
