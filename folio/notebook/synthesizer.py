"""Turns an execution outcome into an Output cell placed after its source cell."""

from __future__ import annotations

import json
import logging
from collections.abc import Callable

from folio.notebook.activity import ActivityEvent, ActivityType
from folio.notebook.cell import Cell, CellKind, new_cell
from folio.notebook.document import Document
from folio.notebook.protocols import ActivityLog
from folio.sandbox.outcome import ErrorKind, ErrorOutcome, ExecutionOutcome

logger = logging.getLogger("folio.notebook")


def render_outcome(outcome: ExecutionOutcome) -> str:
    """Pretty-printed JSON rendering used as the Output cell's content."""
    return json.dumps(outcome.model_dump(mode="json"), indent=2, default=str)


class OutputSynthesizer:
    def __init__(
        self,
        activity_log: ActivityLog | None = None,
        *,
        project_id: str = "",
        page_id: str = "",
        id_factory: Callable[[], str] | None = None,
    ) -> None:
        self._activity_log = activity_log
        self._project_id = project_id
        self._page_id = page_id
        self._id_factory = id_factory

    def attach(self, document: Document, source: Cell, outcome: ExecutionOutcome) -> Cell:
        """Insert an Output cell for outcome right after source and record the activity.

        If source is no longer in the document the Output cell is appended.
        """
        cell_id = self._id_factory() if self._id_factory else None
        output_cell = new_cell(CellKind.OUTPUT, cell_id=cell_id)
        output_cell.metadata["sourceCellId"] = source.id
        output_cell.output = outcome

        index = document.index_of(source.id)
        if index < 0:
            logger.warning("Source cell %s vanished while running; appending output", source.id)
            position = None
        else:
            position = index + 1
        document.insert_cell(output_cell, position)
        document.set_content(output_cell.id, render_outcome(outcome))

        self._record(source, outcome)
        return output_cell

    def _record(self, source: Cell, outcome: ExecutionOutcome) -> None:
        if self._activity_log is None:
            return
        validation_error = isinstance(outcome, ErrorOutcome) and outcome.error_kind == ErrorKind.VALIDATION
        event = ActivityEvent(
            type=ActivityType.CELL_EXECUTED,
            project_id=self._project_id,
            page_id=self._page_id,
            metadata={
                "cellId": source.id,
                "language": source.language,
                "outcome": outcome.kind,
                "validationError": validation_error,
            },
        )
        try:
            self._activity_log.record(event)
        except Exception:
            logger.exception("Activity log rejected %s event", event.type)
