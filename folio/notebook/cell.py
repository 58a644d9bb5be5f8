"""Canonical cell model for the notebook.

A Cell is one addressable unit of content: markdown text, code, an image, a
chart, or the output produced by running a code cell.
"""

from __future__ import annotations

import uuid
from datetime import UTC, datetime
from enum import StrEnum
from typing import Any

from pydantic import BaseModel, Field

from folio.sandbox.outcome import ExecutionOutcome

DEFAULT_LANGUAGE = "python"


class CellKind(StrEnum):
    MARKDOWN = "markdown"
    CODE = "code"
    OUTPUT = "output"
    IMAGE = "image"
    CHART = "chart"


DEFAULT_CONTENT: dict[CellKind, str] = {
    CellKind.MARKDOWN: "# New Cell",
    CellKind.CODE: "# Your code here",
    CellKind.OUTPUT: "",
    CellKind.IMAGE: "",
    CellKind.CHART: "{}",
}


def generate_cell_id() -> str:
    """Generate a cell ID: 'cell_' + 8 hex chars from uuid4."""
    return "cell_" + uuid.uuid4().hex[:8]


def _now() -> str:
    return datetime.now(UTC).isoformat()


class Cell(BaseModel):
    id: str = Field(default_factory=generate_cell_id)
    kind: CellKind = CellKind.MARKDOWN
    content: str = ""
    output: ExecutionOutcome | None = None
    metadata: dict[str, Any] = Field(default_factory=dict)
    position: int = 0
    created_at: str = Field(default_factory=_now)
    updated_at: str = Field(default_factory=_now)

    @property
    def language(self) -> str:
        return str(self.metadata.get("language", DEFAULT_LANGUAGE))

    @property
    def source_cell_id(self) -> str | None:
        return self.metadata.get("sourceCellId")

    def touch(self) -> None:
        self.updated_at = _now()


def new_cell(kind: CellKind, *, cell_id: str | None = None) -> Cell:
    """Create a cell with the default content for its kind."""
    cell = Cell(kind=kind, content=DEFAULT_CONTENT[kind])
    if cell_id is not None:
        cell.id = cell_id
    if kind == CellKind.CODE:
        cell.metadata["language"] = DEFAULT_LANGUAGE
    return cell
