"""Dispatches validated code to isolated contexts and resolves one outcome per request.

Each request moves through IDLE -> DISPATCHED -> COMPLETED | FAILED | TIMED_OUT.
Whichever of reply, channel failure or timeout happens first resolves the
request; anything arriving afterwards for the same requestId is discarded.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable
from dataclasses import dataclass, field
from enum import StrEnum

from folio.core import DispatchError, ProtocolError
from folio.sandbox.context import ExecutionContext, SubprocessContext
from folio.sandbox.outcome import ErrorKind, ErrorOutcome, ExecutionOutcome, TimeoutOutcome
from folio.sandbox.protocol import ExecutionRequest, ExecutionResponse, parse_response

logger = logging.getLogger("folio.sandbox")

DEFAULT_TIMEOUT_SECONDS = 5.0

ContextFactory = Callable[[], ExecutionContext]


class ExecutionState(StrEnum):
    IDLE = "idle"
    DISPATCHED = "dispatched"
    COMPLETED = "completed"
    FAILED = "failed"
    TIMED_OUT = "timed_out"


@dataclass
class _Pending:
    request: ExecutionRequest
    future: asyncio.Future[ExecutionOutcome]
    state: ExecutionState = ExecutionState.DISPATCHED
    timer: asyncio.TimerHandle | None = field(default=None, repr=False)


class ExecutionBroker:
    """Run source code in a fresh context per call, bounded by a timeout."""

    def __init__(
        self,
        context_factory: ContextFactory | None = None,
        *,
        timeout_seconds: float = DEFAULT_TIMEOUT_SECONDS,
        memory_limit_mb: int | None = None,
    ) -> None:
        self.timeout_seconds = timeout_seconds
        self.memory_limit_mb = memory_limit_mb
        self._context_factory = context_factory or self._subprocess_context
        self._pending: dict[str, _Pending] = {}
        self.discarded_replies = 0

    def _subprocess_context(self) -> ExecutionContext:
        return SubprocessContext(timeout_seconds=self.timeout_seconds, memory_limit_mb=self.memory_limit_mb)

    @property
    def in_flight(self) -> int:
        return len(self._pending)

    def state_of(self, request_id: str) -> ExecutionState:
        pending = self._pending.get(request_id)
        return pending.state if pending else ExecutionState.IDLE

    async def execute(self, source_code: str) -> ExecutionOutcome:
        """Evaluate source_code in a new context and return its single outcome.

        Raises DispatchError if the context could not be started or sent the
        request; in that case nothing ran.
        """
        loop = asyncio.get_running_loop()
        request = ExecutionRequest(source_code=source_code)
        context = self._context_factory()
        await context.start()

        pending = _Pending(request=request, future=loop.create_future())
        self._pending[request.request_id] = pending
        reader: asyncio.Task[None] | None = None
        try:
            await context.send(request)
            logger.info("Dispatched %s (%d chars)", request.request_id, len(source_code))
            pending.timer = loop.call_later(self.timeout_seconds, self._expire, request.request_id)
            reader = asyncio.create_task(self._pump(context, request.request_id))
            return await pending.future
        finally:
            if pending.timer is not None:
                pending.timer.cancel()
            self._pending.pop(request.request_id, None)
            try:
                if reader is not None:
                    await self._stop_reader(reader, request.request_id)
            finally:
                await context.terminate()

    async def _stop_reader(self, reader: asyncio.Task[None], request_id: str) -> None:
        reader.cancel()
        try:
            await reader
        except asyncio.CancelledError:
            pass
        except Exception:  # noqa: BLE001 - the outcome is already resolved
            logger.exception("Reader for %s failed", request_id)

    def handle_reply(self, response: ExecutionResponse) -> bool:
        """Resolve the pending request a reply belongs to.

        Returns False when the reply is unsolicited or late (its request was
        already resolved), in which case it is dropped.
        """
        pending = self._pending.get(response.request_id)
        if pending is None or pending.future.done():
            self.discarded_replies += 1
            logger.debug("Discarded reply for %s (not pending)", response.request_id)
            return False
        outcome = response.to_outcome()
        state = ExecutionState.COMPLETED if response.status == "success" else ExecutionState.FAILED
        self._resolve(pending, state, outcome)
        return True

    async def _pump(self, context: ExecutionContext, request_id: str) -> None:
        while True:
            try:
                line = await context.receive()
            except (DispatchError, ValueError, asyncio.LimitOverrunError, OSError) as e:
                # readline() raises ValueError for a line over the stream limit
                self._channel_failed(request_id, f"Reply could not be read: {e}")
                return
            if line is None:
                self._channel_failed(request_id, "Context exited without replying")
                return
            if not line.strip():
                continue
            try:
                response = parse_response(line)
            except ProtocolError as e:
                self._channel_failed(request_id, str(e))
                return
            self.handle_reply(response)

    def _expire(self, request_id: str) -> None:
        pending = self._pending.get(request_id)
        if pending is None or pending.future.done():
            return
        logger.warning("Request %s timed out after %.1fs", request_id, self.timeout_seconds)
        self._resolve(pending, ExecutionState.TIMED_OUT, TimeoutOutcome(timeout_seconds=self.timeout_seconds))

    def _channel_failed(self, request_id: str, reason: str) -> None:
        pending = self._pending.get(request_id)
        if pending is None or pending.future.done():
            return
        logger.error("Channel failure for %s: %s", request_id, reason)
        outcome = ErrorOutcome(message=f"Execution context failed: {reason}", error_kind=ErrorKind.CHANNEL)
        self._resolve(pending, ExecutionState.FAILED, outcome)

    def _resolve(self, pending: _Pending, state: ExecutionState, outcome: ExecutionOutcome) -> None:
        pending.state = state
        if pending.timer is not None:
            pending.timer.cancel()
        pending.future.set_result(outcome)
        logger.info("Request %s -> %s", pending.request.request_id, state)

