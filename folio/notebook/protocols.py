"""Interfaces of the collaborators the notebook engine consumes."""

from __future__ import annotations

from typing import Protocol

from folio.core import Result
from folio.notebook.activity import ActivityEvent
from folio.notebook.document import Document


class PersistenceStore(Protocol):
    def save(self, project_id: str, page_id: str, document: Document) -> Result[None]: ...


class ActivityLog(Protocol):
    def record(self, event: ActivityEvent) -> None:
        """Fire-and-forget; implementations must not block the caller."""
        ...
