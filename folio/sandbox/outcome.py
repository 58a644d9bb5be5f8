"""Execution outcomes: the tagged result of running one code cell."""

from __future__ import annotations

from enum import StrEnum
from typing import Annotated, Any, Literal

from pydantic import BaseModel, Field


class ConsoleLevel(StrEnum):
    LOG = "log"
    WARN = "warn"
    ERROR = "error"
    INFO = "info"


class ErrorKind(StrEnum):
    VALIDATION = "validation"  # rejected before running
    RUNTIME = "runtime"  # raised while running
    CHANNEL = "channel"  # context crashed or never replied


class ConsoleRecord(BaseModel):
    level: ConsoleLevel = ConsoleLevel.LOG
    args: list[Any] = Field(default_factory=list)


class SuccessOutcome(BaseModel):
    kind: Literal["success"] = "success"
    return_value: Any = None
    console: list[ConsoleRecord] = Field(default_factory=list)


class ErrorOutcome(BaseModel):
    kind: Literal["error"] = "error"
    message: str
    error_kind: ErrorKind = ErrorKind.RUNTIME
    console: list[ConsoleRecord] = Field(default_factory=list)


class TimeoutOutcome(BaseModel):
    kind: Literal["timeout"] = "timeout"
    timeout_seconds: float = 0.0


ExecutionOutcome = Annotated[SuccessOutcome | ErrorOutcome | TimeoutOutcome, Field(discriminator="kind")]


def validation_failure(violations: list[str]) -> ErrorOutcome:
    """Build the outcome reported for source the validator rejected."""
    return ErrorOutcome(
        message="Code validation failed: " + ", ".join(violations),
        error_kind=ErrorKind.VALIDATION,
    )
