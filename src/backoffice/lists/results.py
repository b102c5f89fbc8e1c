"""Discriminated outcome type returned by every ListController operation.

Callers branch on ``result.ok`` and, for failures, on ``result.kind``::

    result = await controller.update(2, {"name": "B2"})
    if not result.ok and result.kind is ErrorKind.VALIDATION:
        show_field_error(result.field, result.message)
"""

from __future__ import annotations

import enum
from dataclasses import dataclass
from typing import Any, Generic, TypeAlias, TypeVar

from pydantic import ValidationError

T = TypeVar("T")


class ErrorKind(enum.StrEnum):
    """Failure categories surfaced to the presentation layer."""

    VALIDATION = "validation"
    NETWORK = "network"
    SERVER = "server"
    MALFORMED_RESPONSE = "malformed_response"
    BLOCKED = "blocked"
    NOT_FOUND = "not_found"


@dataclass(frozen=True)
class Ok(Generic[T]):
    """Successful outcome carrying *value*."""

    value: T
    warning: str | None = None

    @property
    def ok(self) -> bool:
        return True


@dataclass(frozen=True)
class Err:
    """Failed outcome with a human-readable *message*.

    ``field`` is set for validation failures scoped to one input field.
    ``status_code`` is the HTTP status for server failures, when known.
    """

    kind: ErrorKind
    message: str
    field: str | None = None
    status_code: int | None = None

    @property
    def ok(self) -> bool:
        return False


Result: TypeAlias = Ok[T] | Err


def err_from_exception(exc: Any, fallback_message: str) -> Err:
    """Build an :class:`Err` from a transport exception.

    Exceptions exposing ``kind``/``message``/``status_code`` (see
    ``backoffice.lists.transport``) keep their kind.  Only server errors
    carry their own text to the user; everything else, and server errors
    without a payload message, get *fallback_message*.
    """
    kind = getattr(exc, "kind", ErrorKind.NETWORK)
    message = getattr(exc, "message", None) if kind is ErrorKind.SERVER else None
    return Err(
        kind=kind,
        message=message or fallback_message,
        status_code=getattr(exc, "status_code", None),
    )


def err_from_validation(exc: ValidationError) -> Err:
    """Turn the first pydantic error into a field-scoped validation :class:`Err`."""
    first = exc.errors()[0]
    field_name = ".".join(str(part) for part in first.get("loc", ())) or None
    message = str(first.get("msg", "Invalid value"))
    if first.get("type") == "value_error":
        message = message.removeprefix("Value error, ")
    elif field_name:
        message = f"{field_name}: {message}"
    return Err(ErrorKind.VALIDATION, message, field=field_name)
