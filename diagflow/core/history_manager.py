"""Bounded linear undo/redo over graph snapshots."""

from typing import List, Optional, Union

from ..models.core import GraphSnapshot
from .graph_model import GraphModel
from .logging import get_logger

logger = get_logger(__name__)

DEFAULT_HISTORY_CAPACITY = 50


class HistoryManager:
    """Undo/redo stack of GraphSnapshots for one authoring session.

    ``cursor`` points at the active snapshot. Recording a new snapshot drops
    everything after the cursor; once more than ``capacity`` snapshots are
    held the oldest ones are evicted and the cursor shifts with them.
    Not safe for concurrent writers.
    """

    def __init__(
        self,
        initial: Optional[Union[GraphSnapshot, GraphModel]] = None,
        capacity: int = DEFAULT_HISTORY_CAPACITY,
    ):
        if capacity < 1:
            raise ValueError("History capacity must be at least 1")
        self.capacity = capacity
        self._snapshots: List[GraphSnapshot] = []
        self._cursor = -1
        if initial is not None:
            self.record(initial)

    @property
    def cursor(self) -> int:
        return self._cursor

    @property
    def snapshots(self) -> List[GraphSnapshot]:
        return list(self._snapshots)

    @property
    def current(self) -> Optional[GraphSnapshot]:
        if self._cursor < 0:
            return None
        return self._snapshots[self._cursor]

    @property
    def can_undo(self) -> bool:
        return self._cursor > 0

    @property
    def can_redo(self) -> bool:
        return 0 <= self._cursor < len(self._snapshots) - 1

    def record(self, state: Union[GraphSnapshot, GraphModel]) -> GraphSnapshot:
        """
        Append a deep copy of ``state`` after the cursor.

        Call once per committed edit, not per keystroke.

        Args:
            state: Graph or snapshot to record

        Returns:
            The stored snapshot
        """
        if isinstance(state, GraphModel):
            snapshot = state.snapshot()
        else:
            snapshot = state.model_copy(deep=True)

        del self._snapshots[self._cursor + 1:]
        self._snapshots.append(snapshot)
        self._cursor = len(self._snapshots) - 1

        overflow = len(self._snapshots) - self.capacity
        if overflow > 0:
            del self._snapshots[:overflow]
            self._cursor -= overflow
            logger.debug(f"Evicted {overflow} oldest history snapshot(s)")

        return snapshot

    def undo(self) -> Optional[GraphSnapshot]:
        """Step back one snapshot; returns None when already at the oldest."""
        if not self.can_undo:
            return None
        self._cursor -= 1
        return self._snapshots[self._cursor]

    def redo(self) -> Optional[GraphSnapshot]:
        """Step forward one snapshot; returns None when already at the newest."""
        if not self.can_redo:
            return None
        self._cursor += 1
        return self._snapshots[self._cursor]

    def clear(self, initial: Optional[Union[GraphSnapshot, GraphModel]] = None) -> None:
        """Drop all snapshots, optionally seeding a new initial one."""
        self._snapshots = []
        self._cursor = -1
        if initial is not None:
            self.record(initial)

    def __len__(self) -> int:
        return len(self._snapshots)
