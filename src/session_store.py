import threading
from typing import Dict, List, Optional

from activity_schema import Category
from session import TrackedSession


class SessionStore:
    """
    In-memory map of entity key to its open TrackedSession.

    The store also carries the "current entity" pointer. Its re-entrant lock is
    shared with the flush coordinator so both see one consistent view.
    """

    def __init__(self) -> None:
        self.lock = threading.RLock()
        self._sessions: Dict[str, TrackedSession] = {}
        self.current_entity: Optional[str] = None

    def get(self, entity_key: str) -> Optional[TrackedSession]:
        with self.lock:
            return self._sessions.get(entity_key)

    def open(self, entity_key: str, category: Category, project: str, start_ms: int) -> TrackedSession:
        session = TrackedSession(start_ms=start_ms, category=category, project=project)
        with self.lock:
            self._sessions[entity_key] = session
        return session

    def discard(self, entity_key: str, session: TrackedSession) -> bool:
        """Remove ``session`` only if it is still the one stored under ``entity_key``."""
        with self.lock:
            if self._sessions.get(entity_key) is not session:
                return False
            del self._sessions[entity_key]
            return True

    def keys(self) -> List[str]:
        with self.lock:
            return list(self._sessions)

    def __contains__(self, entity_key: object) -> bool:
        with self.lock:
            return entity_key in self._sessions

    def __len__(self) -> int:
        with self.lock:
            return len(self._sessions)
