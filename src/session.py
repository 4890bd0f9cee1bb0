from __future__ import annotations

from dataclasses import dataclass

from activity_schema import Category


@dataclass
class TrackedSession:
    """One open, uncommitted span of activity on one entity."""

    start_ms: int
    category: Category
    project: str

    def __setattr__(self, name, value) -> None:
        if name == "start_ms" and "start_ms" in self.__dict__:
            raise AttributeError("start_ms is fixed for the lifetime of a session.")
        super().__setattr__(name, value)

    def duration_seconds(self, end_ms: int) -> int:
        return (end_ms - self.start_ms) // 1000
