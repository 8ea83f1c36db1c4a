from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Generic, Optional, TypeVar

from pydantic import ValidationError

T = TypeVar("T")


class ErrorKind(str, Enum):
    validation = "validation"
    authentication = "authentication"
    unauthorized = "unauthorized"
    forbidden = "forbidden"
    not_found = "not_found"
    store = "store"


STATUS_CODES: dict[ErrorKind, int] = {
    ErrorKind.validation: 400,
    ErrorKind.authentication: 400,
    ErrorKind.unauthorized: 401,
    ErrorKind.forbidden: 403,
    ErrorKind.not_found: 404,
    ErrorKind.store: 500,
}


@dataclass(frozen=True)
class LedgerError:
    kind: ErrorKind
    message: str
    # Underlying driver/exception text; only exposed in development mode.
    detail: Optional[str] = None

    @property
    def status_code(self) -> int:
        return STATUS_CODES[self.kind]


@dataclass(frozen=True)
class Outcome(Generic[T]):
    """Result of a ledger operation: exactly one of ``value`` or ``error``."""

    value: Optional[T] = None
    error: Optional[LedgerError] = None

    @property
    def ok(self) -> bool:
        return self.error is None

    @classmethod
    def success(cls, value: T) -> "Outcome[T]":
        return cls(value=value)

    @classmethod
    def failure(
        cls, kind: ErrorKind, message: str, detail: Optional[str] = None
    ) -> "Outcome[T]":
        return cls(error=LedgerError(kind=kind, message=message, detail=detail))

    @classmethod
    def from_error(cls, error: LedgerError) -> "Outcome[T]":
        return cls(error=error)


def describe_validation_error(exc: ValidationError) -> str:
    parts = []
    for err in exc.errors():
        location = ".".join(str(item) for item in err.get("loc", ()) if item != "body")
        message = err.get("msg", "Invalid value")
        parts.append(f"{location}: {message}" if location else message)
    return "; ".join(parts) or "Invalid input"


def invalid(exc: ValidationError) -> Outcome:
    return Outcome.failure(ErrorKind.validation, describe_validation_error(exc))
