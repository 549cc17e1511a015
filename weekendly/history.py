from __future__ import annotations

from typing import List, Optional

from weekendly.schemas import Activity

Snapshot = List[Activity]


class ScheduleHistory:
    """Undo/redo stacks of full activity-list snapshots."""

    def __init__(self, limit: int = 50):
        self.limit = limit
        self._past: list[Snapshot] = []
        self._future: list[Snapshot] = []

    @property
    def can_undo(self) -> bool:
        return bool(self._past)

    @property
    def can_redo(self) -> bool:
        return bool(self._future)

    def record(self, previous: Snapshot) -> None:
        self._past.append(list(previous))
        if len(self._past) > self.limit:
            self._past = self._past[-self.limit :]
        self._future.clear()

    def undo(self, current: Snapshot) -> Optional[Snapshot]:
        if not self._past:
            return None
        self._future.insert(0, list(current))
        return self._past.pop()

    def redo(self, current: Snapshot) -> Optional[Snapshot]:
        if not self._future:
            return None
        self._past.append(list(current))
        return self._future.pop(0)

    def clear(self) -> None:
        self._past.clear()
        self._future.clear()
