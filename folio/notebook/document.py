"""Document model: the ordered cells of one notebook page.

The primitives here keep positions equal to list order (0..n-1) after every
change. They do no locking and record no history; the edit controller is the
only caller that mutates a live document.
"""

from __future__ import annotations

import uuid
from datetime import UTC, datetime

from pydantic import BaseModel, Field

from folio.notebook.cell import Cell


def generate_document_id() -> str:
    """Generate a document ID: 'doc_' + 12 hex chars from uuid4."""
    return "doc_" + uuid.uuid4().hex[:12]


class Document(BaseModel):
    id: str = Field(default_factory=generate_document_id)
    project_id: str = ""
    page_id: str = ""
    title: str = "Untitled"
    cells: list[Cell] = Field(default_factory=list)
    cursor: int | None = None
    created_at: str = Field(default_factory=lambda: datetime.now(UTC).isoformat())
    updated_at: str = Field(default_factory=lambda: datetime.now(UTC).isoformat())

    def index_of(self, cell_id: str) -> int:
        """Index of a cell, -1 if not found."""
        return next((i for i, c in enumerate(self.cells) if c.id == cell_id), -1)

    def get_cell(self, cell_id: str) -> Cell | None:
        return next((c for c in self.cells if c.id == cell_id), None)

    @property
    def selected_cell(self) -> Cell | None:
        """The cell at the cursor, e.g. the one an insert just created."""
        if self.cursor is None or not 0 <= self.cursor < len(self.cells):
            return None
        return self.cells[self.cursor]

    def renumber(self) -> None:
        for i, cell in enumerate(self.cells):
            cell.position = i

    def insert_cell(self, cell: Cell, position: int | None = None) -> int:
        """Insert at position (clamped to [0, n]; None appends), return the index used."""
        index = len(self.cells) if position is None else max(0, min(position, len(self.cells)))
        self.cells.insert(index, cell)
        self.renumber()
        self._touch()
        return index

    def set_content(self, cell_id: str, content: str) -> Cell | None:
        cell = self.get_cell(cell_id)
        if cell is None:
            return None
        cell.content = content
        cell.touch()
        self._touch()
        return cell

    def remove_cell(self, cell_id: str) -> Cell | None:
        index = self.index_of(cell_id)
        if index < 0:
            return None
        cell = self.cells.pop(index)
        self.renumber()
        self._touch()
        return cell

    def move_cell(self, cell_id: str, new_position: int) -> bool:
        """Move a cell to new_position (clamped to [0, n-1]).

        Returns False when the cell is missing or already there.
        """
        index = self.index_of(cell_id)
        if index < 0:
            return False
        target = max(0, min(new_position, len(self.cells) - 1))
        if target == index:
            return False
        cell = self.cells.pop(index)
        self.cells.insert(target, cell)
        self.renumber()
        self._touch()
        return True

    def positions_contiguous(self) -> bool:
        return [c.position for c in self.cells] == list(range(len(self.cells)))

    def snapshot(self) -> Document:
        """Full deep copy, safe to hand out or keep in history."""
        return self.model_copy(deep=True)

    def _touch(self) -> None:
        self.updated_at = datetime.now(UTC).isoformat()
