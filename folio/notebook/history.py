"""Bounded undo/redo stacks of full document snapshots."""

from __future__ import annotations

from collections import deque

from folio.notebook.document import Document

DEFAULT_MAX_DEPTH = 100


class History:
    """Two stacks of snapshots.

    Each stack keeps at most ``max_depth`` snapshots; pushing past the bound
    drops the oldest one.
    """

    def __init__(self, max_depth: int = DEFAULT_MAX_DEPTH) -> None:
        if max_depth < 1:
            raise ValueError("max_depth must be at least 1")
        self.max_depth = max_depth
        self._undo: deque[Document] = deque(maxlen=max_depth)
        self._redo: deque[Document] = deque(maxlen=max_depth)

    @property
    def can_undo(self) -> bool:
        return bool(self._undo)

    @property
    def can_redo(self) -> bool:
        return bool(self._redo)

    @property
    def undo_depth(self) -> int:
        return len(self._undo)

    @property
    def redo_depth(self) -> int:
        return len(self._redo)

    def record(self, before: Document) -> None:
        """Record the pre-mutation snapshot of a new edit; invalidates redo."""
        self._undo.append(before)
        self._redo.clear()

    def undo(self, current: Document) -> Document | None:
        """Return the state to restore, or None when there is nothing to undo."""
        if not self._undo:
            return None
        previous = self._undo.pop()
        self._redo.append(current)
        return previous

    def redo(self, current: Document) -> Document | None:
        if not self._redo:
            return None
        following = self._redo.pop()
        self._undo.append(current)
        return following

    def clear(self) -> None:
        self._undo.clear()
        self._redo.clear()
