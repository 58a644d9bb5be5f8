"""Tests for running code cells through the controller."""

from __future__ import annotations

import asyncio
from typing import Any

import pytest

from folio.notebook.activity import ActivityType, InMemoryActivityLog
from folio.notebook.cell import CellKind
from folio.notebook.controller import EditController
from folio.notebook.document import Document
from folio.sandbox.broker import ExecutionBroker
from folio.sandbox.outcome import ConsoleRecord, ErrorOutcome, SuccessOutcome, TimeoutOutcome


def _setup(document: Document, factory: Any, **broker_kwargs: Any) -> tuple[EditController, InMemoryActivityLog]:
    activity = InMemoryActivityLog()
    broker = ExecutionBroker(factory, **broker_kwargs)
    return EditController(document, broker=broker, activity_log=activity), activity


async def _code_cell(controller: EditController, content: str, position: int | None = None) -> str:
    inserted = await controller.insert(CellKind.CODE, position)
    assert inserted.data is not None and inserted.data.selected_cell is not None
    cell_id = inserted.data.selected_cell.id
    await controller.update_content(cell_id, content)
    return cell_id


@pytest.mark.asyncio
async def test_output_cell_inserted_after_source(make_factory: Any, document_factory: Any) -> None:
    factory = make_factory(value=2)
    controller, activity = _setup(document_factory(CellKind.MARKDOWN), factory)
    cell_id = await _code_cell(controller, "1 + 1")
    await controller.insert(CellKind.MARKDOWN)

    result = await controller.execute(cell_id)
    assert isinstance(result.data, SuccessOutcome)
    assert result.data.return_value == 2

    doc = controller.snapshot()
    assert [c.kind for c in doc.cells] == ["markdown", "code", "output", "markdown"]
    output = doc.cells[2]
    assert output.source_cell_id == cell_id
    assert isinstance(output.output, SuccessOutcome)
    assert '"return_value": 2' in output.content
    assert doc.positions_contiguous()
    assert factory.contexts[0].requests[0].source_code == "1 + 1"
    assert factory.contexts[0].terminated

    events = activity.events(ActivityType.CELL_EXECUTED)
    assert len(events) == 1
    assert events[0].metadata == {
        "cellId": cell_id,
        "language": "python",
        "outcome": "success",
        "validationError": False,
    }


@pytest.mark.asyncio
async def test_console_records_reach_output(make_factory: Any) -> None:
    console = [ConsoleRecord(level="log", args=["Hello"]), ConsoleRecord(level="warn", args=["careful", 3])]
    controller, _ = _setup(Document(), make_factory(value=None, console=console))
    cell_id = await _code_cell(controller, 'console.log("Hello")')
    result = await controller.execute(cell_id)
    assert isinstance(result.data, SuccessOutcome)
    assert [r.level for r in result.data.console] == ["log", "warn"]
    assert result.data.console[1].args == ["careful", 3]


@pytest.mark.asyncio
async def test_runtime_error_becomes_output(make_factory: Any) -> None:
    factory = make_factory(status="error", error_message="ZeroDivisionError: division by zero")
    controller, _ = _setup(Document(), factory)
    cell_id = await _code_cell(controller, "1 / 0")
    result = await controller.execute(cell_id)
    assert isinstance(result.data, ErrorOutcome)
    assert result.data.error_kind == "runtime"
    assert controller.snapshot().cells[1].kind == CellKind.OUTPUT


@pytest.mark.asyncio
async def test_validation_rejection_creates_no_context(make_factory: Any) -> None:
    factory = make_factory(value=1)
    controller, activity = _setup(Document(), factory)
    cell_id = await _code_cell(controller, 'fetch("https://x")\nwith open("f") as fh:\n    pass')

    result = await controller.execute(cell_id)
    outcome = result.data
    assert isinstance(outcome, ErrorOutcome)
    assert outcome.error_kind == "validation"
    assert outcome.message.startswith("Code validation failed: ")
    assert "network request" in outcome.message
    assert "persistent storage access" in outcome.message
    assert factory.contexts == []

    doc = controller.snapshot()
    assert doc.cells[1].kind == CellKind.OUTPUT
    assert activity.events()[0].metadata["validationError"] is True


@pytest.mark.asyncio
async def test_fetch_rejected_without_context(make_factory: Any) -> None:
    factory = make_factory(value=1)
    controller, _ = _setup(Document(), factory)
    cell_id = await _code_cell(controller, "fetch(x)", 0)

    result = await controller.execute(cell_id)
    assert isinstance(result.data, ErrorOutcome)
    assert result.data.error_kind == "validation"
    assert "network request" in result.data.message
    assert factory.contexts == []
    doc = controller.snapshot()
    assert [c.kind for c in doc.cells] == ["code", "output"]
    assert isinstance(doc.cells[1].output, ErrorOutcome)


@pytest.mark.asyncio
async def test_unsupported_language_is_rejected(make_factory: Any) -> None:
    factory = make_factory(value=1)
    controller, _ = _setup(Document(), factory)
    cell_id = await _code_cell(controller, "1")
    await controller.set_language(cell_id, "javascript")
    result = await controller.execute(cell_id)
    assert isinstance(result.data, ErrorOutcome)
    assert result.data.error_kind == "validation"
    assert factory.contexts == []


@pytest.mark.asyncio
async def test_busy_while_running(make_factory: Any) -> None:
    factory = make_factory(value=1, delay=0.05)
    controller, _ = _setup(Document(), factory)
    cell_id = await _code_cell(controller, "1")

    first = controller.start_execution(cell_id)
    assert first.data is not None
    assert controller.is_running(cell_id)
    second = controller.start_execution(cell_id)
    assert second.has_code("BUSY")

    await first.data
    assert not controller.is_running(cell_id)
    assert len(factory.contexts) == 1
    outputs = [c for c in controller.snapshot().cells if c.kind == CellKind.OUTPUT]
    assert len(outputs) == 1


@pytest.mark.asyncio
async def test_cell_can_run_again_after_outcome(make_factory: Any) -> None:
    factory = make_factory(value=1)
    controller, _ = _setup(Document(), factory)
    cell_id = await _code_cell(controller, "1")
    await controller.execute(cell_id)
    again = await controller.execute(cell_id)
    assert again.ok
    assert len(factory.contexts) == 2
    kinds = [c.kind for c in controller.snapshot().cells]
    assert kinds == ["code", "output", "output"]


@pytest.mark.asyncio
async def test_two_cells_run_concurrently(make_factory: Any) -> None:
    factory = make_factory(value=1, delay=0.2)
    controller, _ = _setup(Document(), factory)
    first = await _code_cell(controller, "1")
    second = await _code_cell(controller, "2")

    loop = asyncio.get_running_loop()
    started = loop.time()
    results = await asyncio.gather(controller.execute(first), controller.execute(second))
    elapsed = loop.time() - started

    assert all(isinstance(r.data, SuccessOutcome) for r in results)
    assert elapsed < 0.35
    doc = controller.snapshot()
    assert [c.kind for c in doc.cells] == ["code", "output", "code", "output"]
    assert doc.cells[1].source_cell_id == first
    assert doc.cells[3].source_cell_id == second


@pytest.mark.asyncio
async def test_edits_allowed_while_running(make_factory: Any) -> None:
    factory = make_factory(value=1, delay=0.05)
    controller, _ = _setup(Document(), factory)
    cell_id = await _code_cell(controller, "1")
    task = controller.start_execution(cell_id).data
    assert task is not None
    edited = await controller.insert(CellKind.MARKDOWN, 0)
    assert edited.ok
    await task
    assert [c.kind for c in controller.snapshot().cells] == ["markdown", "code", "output"]


@pytest.mark.asyncio
async def test_output_appended_when_source_deleted(make_factory: Any) -> None:
    factory = make_factory(value=1, delay=0.05)
    controller, _ = _setup(Document(), factory)
    cell_id = await _code_cell(controller, "1")
    await controller.insert(CellKind.MARKDOWN)
    task = controller.start_execution(cell_id).data
    assert task is not None
    await controller.delete(cell_id)
    await task
    doc = controller.snapshot()
    assert [c.kind for c in doc.cells] == ["markdown", "output"]
    assert doc.cells[1].source_cell_id == cell_id


@pytest.mark.asyncio
async def test_timeout_outcome(make_factory: Any) -> None:
    factory = make_factory(reply=False)
    controller, _ = _setup(Document(), factory, timeout_seconds=0.05)
    cell_id = await _code_cell(controller, "x = 1")
    result = await controller.execute(cell_id)
    assert isinstance(result.data, TimeoutOutcome)
    assert result.data.timeout_seconds == 0.05
    assert factory.contexts[0].terminated


@pytest.mark.asyncio
async def test_dispatch_failure_leaves_document_unchanged(make_factory: Any) -> None:
    factory = make_factory(fail_start=True)
    controller, activity = _setup(Document(), factory)
    cell_id = await _code_cell(controller, "1")
    before = controller.snapshot()
    result = await controller.execute(cell_id)
    assert result.has_code("DISPATCH_ERROR")
    assert result.data is None
    assert controller.snapshot() == before
    assert len(activity) == 0
    assert not controller.is_running(cell_id)


@pytest.mark.asyncio
async def test_execute_missing_or_non_code(document_factory: Any, make_factory: Any) -> None:
    controller, _ = _setup(document_factory(CellKind.MARKDOWN), make_factory())
    md_id = controller.snapshot().cells[0].id
    assert (await controller.execute("cell_nope")).has_code("NOT_FOUND")
    assert (await controller.execute(md_id)).has_code("NOT_CODE")


@pytest.mark.asyncio
async def test_output_insertion_is_undoable(make_factory: Any) -> None:
    controller, _ = _setup(Document(), make_factory(value=1))
    cell_id = await _code_cell(controller, "1")
    await controller.execute(cell_id)
    assert len(controller.snapshot().cells) == 2
    await controller.undo()
    assert len(controller.snapshot().cells) == 1


@pytest.mark.asyncio
async def test_aclose_waits_for_running(make_factory: Any) -> None:
    controller, _ = _setup(Document(), make_factory(value=1, delay=0.05))
    cell_id = await _code_cell(controller, "1")
    controller.start_execution(cell_id)
    await controller.aclose()
    assert not controller.is_running(cell_id)
    assert len(controller.snapshot().cells) == 2


@pytest.mark.asyncio
async def test_unreadable_reply_still_inserts_one_output(make_factory: Any) -> None:
    factory = make_factory(receive_error=ValueError("chunk exceed the limit"))
    controller, _ = _setup(Document(), factory)
    cell_id = await _code_cell(controller, '"x" * 5_000_000')
    result = await controller.execute(cell_id)
    assert isinstance(result.data, ErrorOutcome)
    assert result.data.error_kind == "channel"
    assert [c.kind for c in controller.snapshot().cells] == ["code", "output"]
    assert factory.contexts[0].terminated
