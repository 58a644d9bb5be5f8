"""The single mutation gateway for a notebook document.

Every write to the document happens under one asyncio lock, pushes the
pre-mutation snapshot onto the undo stack (except undo/redo themselves) and
notifies listeners with the new snapshot. Execution runs outside the lock;
only the resulting Output cell insertion re-enters it.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import AsyncIterator, Callable

from folio.config import FolioConfig
from folio.core import DispatchError, Result
from folio.notebook.activity import ActivityEvent, ActivityType, InMemoryActivityLog
from folio.notebook.autosave import AutosaveScheduler
from folio.notebook.cell import DEFAULT_LANGUAGE, Cell, CellKind, generate_cell_id, new_cell
from folio.notebook.document import Document
from folio.notebook.history import DEFAULT_MAX_DEPTH, History
from folio.notebook.protocols import ActivityLog, PersistenceStore
from folio.notebook.synthesizer import OutputSynthesizer
from folio.sandbox.broker import ExecutionBroker
from folio.sandbox.outcome import ErrorKind, ErrorOutcome, ExecutionOutcome, validation_failure
from folio.sandbox.validator import MAX_SOURCE_LENGTH, validate_source

logger = logging.getLogger("folio.controller")

Listener = Callable[[Document], None]


class EditController:
    """Owns one Document and its undo/redo history."""

    def __init__(
        self,
        document: Document,
        *,
        broker: ExecutionBroker | None = None,
        store: PersistenceStore | None = None,
        activity_log: ActivityLog | None = None,
        history_depth: int = DEFAULT_MAX_DEPTH,
        max_source_length: int = MAX_SOURCE_LENGTH,
        language: str = DEFAULT_LANGUAGE,
    ) -> None:
        self._document = document.snapshot()
        self._document.renumber()
        self._history = History(history_depth)
        self._lock = asyncio.Lock()
        self._broker = broker or ExecutionBroker()
        self._store = store
        self._activity_log = activity_log
        self._max_source_length = max_source_length
        self._language = language
        self._issued_ids: set[str] = {c.id for c in self._document.cells}
        self._running: dict[str, asyncio.Task[Result[ExecutionOutcome]]] = {}
        self._listeners: list[Listener] = []
        self._subscribers: set[asyncio.Queue[Document]] = set()
        self._autosave: AutosaveScheduler | None = None
        self._synthesizer = OutputSynthesizer(
            activity_log,
            project_id=self.project_id,
            page_id=self.page_id,
            id_factory=self._new_id,
        )

    # --- read side ---

    @property
    def project_id(self) -> str:
        return self._document.project_id

    @property
    def page_id(self) -> str:
        return self._document.page_id

    def snapshot(self) -> Document:
        return self._document.snapshot()

    @property
    def can_undo(self) -> bool:
        return self._history.can_undo

    @property
    def can_redo(self) -> bool:
        return self._history.can_redo

    def is_running(self, cell_id: str) -> bool:
        return cell_id in self._running

    # --- change notification ---

    def add_listener(self, listener: Listener) -> None:
        self._listeners.append(listener)

    def remove_listener(self, listener: Listener) -> None:
        self._listeners.remove(listener)

    def subscribe(self) -> asyncio.Queue[Document]:
        """Queue receiving every committed snapshot from now on."""
        queue: asyncio.Queue[Document] = asyncio.Queue()
        self._subscribers.add(queue)
        return queue

    def unsubscribe(self, queue: asyncio.Queue[Document]) -> None:
        self._subscribers.discard(queue)

    async def changes(self) -> AsyncIterator[Document]:
        queue = self.subscribe()
        try:
            while True:
                yield await queue.get()
        finally:
            self.unsubscribe(queue)

    def attach_autosave(self, scheduler: AutosaveScheduler) -> None:
        self._autosave = scheduler
        self.add_listener(scheduler.notify)

    # --- mutations ---

    async def insert(self, kind: CellKind | str, position: int | None = None) -> Result[Document]:
        """Create a cell with default content at position (None appends)."""
        result: Result[Document] = Result()
        try:
            kind = CellKind(kind)
        except ValueError:
            result.error("INVALID_KIND", f"Unknown cell kind: {kind}")
            return result
        if kind == CellKind.OUTPUT:
            result.error("INVALID_KIND", "Output cells are only created by execution")
            return result

        async with self._lock:
            cell = new_cell(kind, cell_id=self._new_id())
            self._checkpoint()
            index = self._document.insert_cell(cell, position)
            self._document.cursor = index
            result.data = self._commit()
        logger.debug("Inserted %s cell %s at %d", kind, cell.id, index)
        return result

    async def update_content(self, cell_id: str, content: str) -> Result[Document]:
        result: Result[Document] = Result()
        async with self._lock:
            cell = self._document.get_cell(cell_id)
            if cell is None:
                result.error("NOT_FOUND", f"Cell {cell_id} not found")
                return result
            if cell.kind == CellKind.OUTPUT:
                result.error("READ_ONLY", f"Cell {cell_id} is an output cell and cannot be edited")
                return result
            self._checkpoint()
            self._document.set_content(cell_id, content)
            result.data = self._commit()
        return result

    async def set_language(self, cell_id: str, language: str) -> Result[Document]:
        result: Result[Document] = Result()
        async with self._lock:
            cell = self._document.get_cell(cell_id)
            if cell is None:
                result.error("NOT_FOUND", f"Cell {cell_id} not found")
                return result
            if cell.kind != CellKind.CODE:
                result.error("NOT_CODE", f"Cell {cell_id} is a {cell.kind} cell")
                return result
            self._checkpoint()
            cell.metadata["language"] = language
            cell.touch()
            result.data = self._commit()
        return result

    async def delete(self, cell_id: str) -> Result[Document]:
        result: Result[Document] = Result()
        async with self._lock:
            if self._document.index_of(cell_id) < 0:
                result.error("NOT_FOUND", f"Cell {cell_id} not found")
                return result
            self._checkpoint()
            self._document.remove_cell(cell_id)
            self._document.cursor = None
            result.data = self._commit()
        return result

    async def move(self, cell_id: str, new_position: int) -> Result[Document]:
        """Move a cell to new_position, clamped to [0, n-1].

        Moving a cell onto its own position is reported as UNCHANGED and
        leaves history untouched.
        """
        result: Result[Document] = Result()
        async with self._lock:
            index = self._document.index_of(cell_id)
            if index < 0:
                result.error("NOT_FOUND", f"Cell {cell_id} not found")
                return result
            target = max(0, min(new_position, len(self._document.cells) - 1))
            if target == index:
                result.info("UNCHANGED", f"Cell {cell_id} is already at position {index}")
                result.data = self._document.snapshot()
                return result
            self._checkpoint()
            self._document.move_cell(cell_id, target)
            self._document.cursor = target
            result.data = self._commit()
        return result

    def select(self, cell_id: str) -> Result[Document]:
        """Move the UI cursor. Not a mutation: no history, no notification."""
        result: Result[Document] = Result()
        index = self._document.index_of(cell_id)
        if index < 0:
            result.error("NOT_FOUND", f"Cell {cell_id} not found")
            return result
        self._document.cursor = index
        result.data = self._document.snapshot()
        return result

    async def undo(self) -> Result[Document]:
        result: Result[Document] = Result()
        async with self._lock:
            previous = self._history.undo(self._document)
            if previous is None:
                result.info("NOTHING_TO_UNDO", "Undo stack is empty")
                result.data = self._document.snapshot()
                return result
            self._document = previous
            result.data = self._commit()
        return result

    async def redo(self) -> Result[Document]:
        result: Result[Document] = Result()
        async with self._lock:
            following = self._history.redo(self._document)
            if following is None:
                result.info("NOTHING_TO_REDO", "Redo stack is empty")
                result.data = self._document.snapshot()
                return result
            self._document = following
            result.data = self._commit()
        return result

    # --- execution ---

    def start_execution(self, cell_id: str) -> Result[asyncio.Task[Result[ExecutionOutcome]]]:
        """Dispatch a code cell and return immediately.

        The returned task resolves exactly once with the outcome, after the
        Output cell has been inserted.
        """
        result: Result[asyncio.Task[Result[ExecutionOutcome]]] = Result()
        cell = self._document.get_cell(cell_id)
        if cell is None:
            result.error("NOT_FOUND", f"Cell {cell_id} not found")
            return result
        if cell.kind != CellKind.CODE:
            result.error("NOT_CODE", f"Cell {cell_id} is a {cell.kind} cell and cannot be executed")
            return result
        if cell_id in self._running:
            result.error("BUSY", f"Cell {cell_id} is already running", hint="Wait for the pending outcome")
            return result

        source = cell.model_copy(deep=True)
        task = asyncio.create_task(self._run(source), name=f"execute-{cell_id}")
        self._running[cell_id] = task
        task.add_done_callback(lambda t: self._forget(cell_id, t))
        result.data = task
        return result

    def _forget(self, cell_id: str, task: asyncio.Task[Result[ExecutionOutcome]]) -> None:
        if self._running.get(cell_id) is task:
            del self._running[cell_id]

    async def execute(self, cell_id: str) -> Result[ExecutionOutcome]:
        started = self.start_execution(cell_id)
        if started.data is None:
            failed: Result[ExecutionOutcome] = Result(diagnostics=started.diagnostics)
            return failed
        return await started.data

    async def _run(self, source: Cell) -> Result[ExecutionOutcome]:
        result: Result[ExecutionOutcome] = Result()
        try:
            try:
                outcome = await self._outcome_for(source)
            except DispatchError as e:
                logger.error("Could not dispatch cell %s: %s", source.id, e)
                result.error("DISPATCH_ERROR", str(e))
                return result

            async with self._lock:
                self._checkpoint()
                self._synthesizer.attach(self._document, source, outcome)
                self._commit()
            result.data = outcome
            return result
        finally:
            current = asyncio.current_task()
            if current is not None:
                self._forget(source.id, current)

    async def _outcome_for(self, source: Cell) -> ExecutionOutcome:
        if source.language != self._language:
            return ErrorOutcome(
                message=f"Language '{source.language}' is not supported (only {self._language})",
                error_kind=ErrorKind.VALIDATION,
            )
        validation = validate_source(source.content, max_length=self._max_source_length)
        if not validation.ok:
            logger.info("Cell %s rejected: %d violation(s)", source.id, len(validation.diagnostics))
            return validation_failure(validation.messages)
        return await self._broker.execute(source.content)

    # --- persistence ---

    def save(self) -> Result[None]:
        """Forward the current snapshot to the persistence store."""
        result: Result[None] = Result()
        if self._store is None:
            result.error("NO_STORE", "No persistence store configured")
            return result
        snapshot = self._document.snapshot()
        if self._autosave is not None:
            self._autosave.cancel()
        saved = self._store.save(self.project_id, self.page_id, snapshot)
        result.diagnostics.extend(saved.diagnostics)
        if saved.ok:
            self._record(ActivityType.PAGE_SAVED, {"cellCount": len(snapshot.cells)})
        return result

    async def aclose(self) -> None:
        """Wait for in-flight executions, then flush any pending autosave."""
        if self._running:
            await asyncio.gather(*self._running.values(), return_exceptions=True)
        if self._autosave is not None:
            self._autosave.flush()

    # --- internals ---

    def _new_id(self) -> str:
        cell_id = generate_cell_id()
        while cell_id in self._issued_ids:
            cell_id = generate_cell_id()
        self._issued_ids.add(cell_id)
        return cell_id

    def _checkpoint(self) -> None:
        self._history.record(self._document.snapshot())

    def _commit(self) -> Document:
        snapshot = self._document.snapshot()
        for listener in list(self._listeners):
            try:
                listener(snapshot)
            except Exception:
                logger.exception("Change listener %r failed", listener)
        for queue in self._subscribers:
            queue.put_nowait(snapshot)
        return snapshot

    def _record(self, activity_type: ActivityType, metadata: dict[str, object]) -> None:
        if self._activity_log is None:
            return
        event = ActivityEvent(type=activity_type, project_id=self.project_id, page_id=self.page_id, metadata=metadata)
        try:
            self._activity_log.record(event)
        except Exception:
            logger.exception("Activity log rejected %s event", activity_type)


def create_controller(
    config: FolioConfig,
    document: Document,
    *,
    store: PersistenceStore | None = None,
    activity_log: ActivityLog | None = None,
    broker: ExecutionBroker | None = None,
) -> EditController:
    """Wire a controller, broker and autosave scheduler from configuration.

    Must be called from within a running event loop when autosave is enabled.
    """
    execution = config.execution
    if broker is None:
        broker = ExecutionBroker(
            timeout_seconds=execution.timeout_seconds,
            memory_limit_mb=execution.memory_limit_mb,
        )
    if activity_log is None:
        activity_log = InMemoryActivityLog(config.activity.max_records)
    controller = EditController(
        document,
        broker=broker,
        store=store,
        activity_log=activity_log,
        history_depth=config.history.max_depth,
        max_source_length=execution.max_source_length,
        language=execution.language,
    )
    if store is not None and config.autosave.enabled:
        scheduler = AutosaveScheduler(
            store,
            controller.project_id,
            controller.page_id,
            idle_seconds=config.autosave.idle_seconds,
        )
        controller.attach_autosave(scheduler)
    return controller
