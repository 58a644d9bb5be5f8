"""Debounced background persistence of the current document snapshot."""

from __future__ import annotations

import asyncio
import logging

from folio.notebook.document import Document
from folio.notebook.protocols import PersistenceStore

logger = logging.getLogger("folio.autosave")

DEFAULT_IDLE_SECONDS = 3.0


class AutosaveScheduler:
    """Saves once after mutations settle.

    Every ``notify`` restarts the idle timer, so a burst of mutations produces
    a single save of the latest snapshot once ``idle_seconds`` pass quietly.
    """

    def __init__(
        self,
        store: PersistenceStore,
        project_id: str,
        page_id: str,
        *,
        idle_seconds: float = DEFAULT_IDLE_SECONDS,
    ) -> None:
        self._store = store
        self._project_id = project_id
        self._page_id = page_id
        self.idle_seconds = idle_seconds
        self._latest: Document | None = None
        self._handle: asyncio.TimerHandle | None = None
        self.save_count = 0

    @property
    def pending(self) -> bool:
        return self._handle is not None

    def notify(self, snapshot: Document) -> None:
        """Observe a mutation; (re)arms the idle timer."""
        self._latest = snapshot
        if self._handle is not None:
            self._handle.cancel()
        loop = asyncio.get_running_loop()
        self._handle = loop.call_later(self.idle_seconds, self._fire)

    def flush(self) -> bool:
        """Save now if a mutation is waiting. Returns True if a save happened."""
        if self._handle is None:
            return False
        self._fire()
        return True

    def cancel(self) -> None:
        """Drop the pending save, if any."""
        if self._handle is not None:
            self._handle.cancel()
            self._handle = None
        self._latest = None

    def _fire(self) -> None:
        if self._handle is not None:
            self._handle.cancel()
            self._handle = None
        snapshot, self._latest = self._latest, None
        if snapshot is None:
            return
        self.save_count += 1
        try:
            result = self._store.save(self._project_id, self._page_id, snapshot)
        except Exception:
            logger.exception("Autosave of %s/%s raised", self._project_id, self._page_id)
            return
        if result.ok:
            logger.debug("Autosaved %s/%s", self._project_id, self._page_id)
        else:
            logger.warning("Autosave failed: %s", result.diagnostics)
