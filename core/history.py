"""
LINEAGE HISTORY - Linear undo / redo over graph snapshots

A bounded list of immutable snapshots plus a cursor:
- push_state truncates any redo future, appends and advances
- undo / redo move the cursor and hand back a copy of the snapshot
- while restoring() is active, pushes are ignored so that replaying a
  snapshot never records itself
"""
from contextlib import contextmanager
from typing import Iterator, List, Optional

from core.schemas import GraphState, clone_state

DEFAULT_HISTORY_CAPACITY = 50


class HistoryManager:
    """
    Snapshot history with a movable cursor.

    Usage:
        history = HistoryManager(capacity=50)
        history.push_state(state)
        previous = history.undo()
    """

    def __init__(self, capacity: int = DEFAULT_HISTORY_CAPACITY):
        if capacity < 1:
            raise ValueError(f"History capacity must be positive, got {capacity}")
        self.capacity = capacity
        self._entries: List[GraphState] = []
        self._cursor = -1
        self._restoring = False

    def __len__(self) -> int:
        return len(self._entries)

    @property
    def cursor(self) -> int:
        return self._cursor

    @property
    def can_undo(self) -> bool:
        return self._cursor > 0

    @property
    def can_redo(self) -> bool:
        return self._cursor < len(self._entries) - 1

    @property
    def is_restoring(self) -> bool:
        return self._restoring

    @contextmanager
    def restoring(self) -> Iterator[None]:
        """Suppress push_state while a snapshot is being applied."""
        previous = self._restoring
        self._restoring = True
        try:
            yield
        finally:
            self._restoring = previous

    def push_state(self, state: GraphState) -> bool:
        """
        Record a snapshot after the cursor.

        Returns:
            False if the push was suppressed by an active restore
        """
        if self._restoring:
            return False

        del self._entries[self._cursor + 1:]
        self._entries.append(clone_state(state))
        self._cursor = len(self._entries) - 1

        # Evict oldest; cursor keeps pointing at the same snapshot
        overflow = len(self._entries) - self.capacity
        if overflow > 0:
            del self._entries[:overflow]
            self._cursor -= overflow
        return True

    def undo(self) -> Optional[GraphState]:
        if not self.can_undo:
            return None
        self._cursor -= 1
        return clone_state(self._entries[self._cursor])

    def redo(self) -> Optional[GraphState]:
        if not self.can_redo:
            return None
        self._cursor += 1
        return clone_state(self._entries[self._cursor])

    def current(self) -> Optional[GraphState]:
        if self._cursor < 0:
            return None
        return clone_state(self._entries[self._cursor])

    def clear(self) -> None:
        self._entries.clear()
        self._cursor = -1
