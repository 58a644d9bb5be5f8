"""Shared result and error types for the notebook engine.

Edits and validation report problems as ``Result`` diagnostics; the
exceptions below are kept for sandbox dispatch and channel faults.
"""

from enum import StrEnum
from typing import Generic, TypeVar

from pydantic import BaseModel, Field

T = TypeVar("T")


class Severity(StrEnum):
    ERROR = "error"
    WARNING = "warning"
    INFO = "info"


class Diag(BaseModel):
    """One problem found by the controller, validator or a store, keyed by code (e.g. NOT_FOUND)."""

    severity: Severity
    code: str
    message: str
    hint: str | None = None


class Result(BaseModel, Generic[T]):  # noqa: UP046 - pydantic requires a Generic[T] subclass
    """A document snapshot, outcome or source, plus the diagnostics behind it.

    EditController mutations and validate_source report a rejected edit or
    denied source here instead of raising.
    """

    data: T | None = None
    diagnostics: list[Diag] = Field(default_factory=list)

    @property
    def has_errors(self) -> bool:
        return any(d.severity == Severity.ERROR for d in self.diagnostics)

    @property
    def ok(self) -> bool:
        return not self.has_errors

    @property
    def messages(self) -> list[str]:
        return [d.message for d in self.diagnostics]

    def has_code(self, code: str) -> bool:
        return any(d.code == code for d in self.diagnostics)

    def error(self, code: str, message: str, *, hint: str | None = None) -> None:
        self.diagnostics.append(Diag(severity=Severity.ERROR, code=code, message=message, hint=hint))

    def warning(self, code: str, message: str, *, hint: str | None = None) -> None:
        self.diagnostics.append(Diag(severity=Severity.WARNING, code=code, message=message, hint=hint))

    def info(self, code: str, message: str, *, hint: str | None = None) -> None:
        self.diagnostics.append(Diag(severity=Severity.INFO, code=code, message=message, hint=hint))


class FolioError(Exception):
    """Base class for infrastructure faults that cannot be reported as a Result."""


class DispatchError(FolioError):
    """An isolated context could not be started, so nothing was executed."""


class ProtocolError(FolioError):
    """A message on the broker/context channel did not match the wire format."""
