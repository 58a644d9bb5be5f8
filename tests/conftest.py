"""Shared test fixtures for folio tests."""

from __future__ import annotations

import asyncio
from typing import Any

import pytest

from folio.core import DispatchError, Result
from folio.notebook.cell import CellKind, new_cell
from folio.notebook.document import Document
from folio.sandbox.outcome import ConsoleRecord
from folio.sandbox.protocol import ExecutionRequest, ExecutionResponse


class FakeContext:
    """In-process stand-in for an isolated context.

    Replies once with ``value`` after ``delay`` seconds, or misbehaves as asked.
    """

    def __init__(
        self,
        *,
        value: Any = None,
        status: str = "success",
        error_message: str | None = None,
        console: list[ConsoleRecord] | None = None,
        delay: float = 0.0,
        reply: bool = True,
        crash: bool = False,
        raw: str | None = None,
        fail_start: bool = False,
        fail_send: bool = False,
        receive_error: Exception | None = None,
    ) -> None:
        self.value = value
        self.status = status
        self.error_message = error_message
        self.console = console or []
        self.delay = delay
        self.reply = reply
        self.crash = crash
        self.raw = raw
        self.fail_start = fail_start
        self.fail_send = fail_send
        self.receive_error = receive_error
        self.requests: list[ExecutionRequest] = []
        self.started = False
        self.terminated = False
        self._replied = False

    async def start(self) -> None:
        if self.fail_start:
            raise DispatchError("cannot start context")
        self.started = True

    async def send(self, request: ExecutionRequest) -> None:
        if self.fail_send:
            raise DispatchError("context closed its input")
        self.requests.append(request)

    async def receive(self) -> str | None:
        if self._replied or not self.reply:
            await asyncio.Event().wait()
        self._replied = True
        if self.delay:
            await asyncio.sleep(self.delay)
        if self.receive_error is not None:
            raise self.receive_error
        if self.crash:
            return None
        if self.raw is not None:
            return self.raw
        response = ExecutionResponse(
            request_id=self.requests[-1].request_id,
            status=self.status,  # type: ignore[arg-type]
            value=self.value,
            error_message=self.error_message,
            console=self.console,
            timestamp="2026-01-01T00:00:00+00:00",
        )
        return response.to_wire()

    async def terminate(self) -> None:
        self.terminated = True


class FakeContextFactory:
    """Creates a FakeContext per call and keeps every one it made."""

    def __init__(self, **behaviour: Any) -> None:
        self.behaviour = behaviour
        self.contexts: list[FakeContext] = []

    def __call__(self) -> FakeContext:
        context = FakeContext(**self.behaviour)
        self.contexts.append(context)
        return context


class RecordingStore:
    """PersistenceStore that keeps every snapshot it was asked to save."""

    def __init__(self, *, fail: bool = False) -> None:
        self.fail = fail
        self.saves: list[tuple[str, str, Document]] = []

    def save(self, project_id: str, page_id: str, document: Document) -> Result[None]:
        result: Result[None] = Result()
        self.saves.append((project_id, page_id, document))
        if self.fail:
            result.error("SAVE_ERROR", "disk full")
        return result


@pytest.fixture
def make_factory() -> type[FakeContextFactory]:
    return FakeContextFactory


@pytest.fixture
def make_store() -> type[RecordingStore]:
    return RecordingStore


def make_document(*kinds: CellKind, project_id: str = "proj", page_id: str = "page") -> Document:
    document = Document(project_id=project_id, page_id=page_id, cells=[new_cell(k) for k in kinds])
    document.renumber()
    return document


@pytest.fixture
def document_factory() -> Any:
    return make_document
