"""Wire messages exchanged between the broker and an isolated context.

One JSON object per line in each direction:

    request:  {"requestId", "sourceCode"}
    response: {"requestId", "status", "value"?, "errorMessage"?, "console", "timestamp"}
"""

from __future__ import annotations

import uuid
from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field, ValidationError
from pydantic.alias_generators import to_camel

from folio.core import ProtocolError
from folio.sandbox.outcome import ConsoleRecord, ErrorKind, ErrorOutcome, ExecutionOutcome, SuccessOutcome


def generate_request_id() -> str:
    """Generate a request ID: 'req_' + 12 hex chars from uuid4."""
    return "req_" + uuid.uuid4().hex[:12]


class _WireModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    def to_wire(self) -> str:
        return self.model_dump_json(by_alias=True, exclude_none=True)


class ExecutionRequest(_WireModel):
    request_id: str = Field(default_factory=generate_request_id)
    source_code: str


class ExecutionResponse(_WireModel):
    request_id: str
    status: Literal["success", "error"]
    value: Any = None
    error_message: str | None = None
    console: list[ConsoleRecord] = Field(default_factory=list)
    timestamp: str

    def to_outcome(self) -> ExecutionOutcome:
        if self.status == "success":
            return SuccessOutcome(return_value=self.value, console=self.console)
        return ErrorOutcome(
            message=self.error_message or "Unknown error",
            error_kind=ErrorKind.RUNTIME,
            console=self.console,
        )


def parse_response(line: str) -> ExecutionResponse:
    """Parse one response line, raising ProtocolError on malformed input."""
    try:
        return ExecutionResponse.model_validate_json(line)
    except ValidationError as e:
        raise ProtocolError(f"Malformed context response: {e.error_count()} error(s)") from e
