"""Persistent page store. Saves to {pages_dir}/{project_id}/{page_id}.json."""

from __future__ import annotations

import json
import logging
from pathlib import Path

from folio.core import Result
from folio.notebook.document import Document

logger = logging.getLogger("folio.notebook")


class PageStore:
    """File-backed persistence for document snapshots."""

    def __init__(self, pages_dir: Path) -> None:
        self._pages_dir = pages_dir
        self._pages_dir.mkdir(parents=True, exist_ok=True)

    def path_for(self, project_id: str, page_id: str) -> Path:
        return self._pages_dir / project_id / f"{page_id}.json"

    def save(self, project_id: str, page_id: str, document: Document) -> Result[None]:
        """Atomic write: write to .tmp, then rename."""
        result: Result[None] = Result()
        path = self.path_for(project_id, page_id)
        tmp_path = path.with_suffix(".json.tmp")
        try:
            path.parent.mkdir(parents=True, exist_ok=True)
            data = document.model_dump(mode="json", exclude_none=True)
            tmp_path.write_text(json.dumps(data, indent=2, default=str) + "\n")
            tmp_path.replace(path)
        except OSError as e:
            result.error("SAVE_ERROR", f"Failed to save page {project_id}/{page_id}: {e}")
            return result
        logger.info("Saved page %s/%s (%d cells)", project_id, page_id, len(document.cells))
        return result

    def load(self, project_id: str, page_id: str) -> Result[Document]:
        """Load a page from disk."""
        result: Result[Document] = Result()
        path = self.path_for(project_id, page_id)
        if not path.exists():
            result.error("NOT_FOUND", f"Page {project_id}/{page_id} not found")
            return result
        try:
            data = json.loads(path.read_text())
            result.data = Document.model_validate(data)
        except Exception as e:  # noqa: BLE001
            result.error("LOAD_ERROR", f"Failed to load page: {e}")
        return result

    def list_pages(self, project_id: str) -> list[str]:
        """Page ids stored for a project, sorted."""
        project_dir = self._pages_dir / project_id
        if not project_dir.exists():
            return []
        return sorted(p.stem for p in project_dir.glob("*.json"))
