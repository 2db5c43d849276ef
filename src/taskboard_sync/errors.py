"""Failure types shared by the remote client and the mutation coordinator."""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Any, Generic, Optional, TypeVar

T = TypeVar("T")


class FailureKind(str, Enum):
    VALIDATION = "validation"  # rejected before any network call
    UNAUTHENTICATED = "unauthenticated"
    NOT_FOUND = "not_found"
    SERVER = "server"  # non-success response
    TRANSPORT = "transport"  # network exception, timeout, undecodable body


class TaskServiceError(Exception):
    """Raised by the remote client for every unsuccessful call.

    ``message`` is the human-readable text from the structured failure
    payload, or an empty string when the server did not provide one.
    """

    def __init__(
        self,
        kind: FailureKind,
        message: str = "",
        *,
        status_code: Optional[int] = None,
        payload: Any = None,
    ) -> None:
        super().__init__(message or kind.value)
        self.kind = kind
        self.message = message
        self.status_code = status_code
        self.payload = payload


def extract_message(payload: Any, default: str = "") -> str:
    """Pull a human-readable message out of an error body."""
    if isinstance(payload, dict):
        for key in ("message", "detail", "error"):
            value = payload.get(key)
            if isinstance(value, str) and value.strip():
                return value.strip()
    elif isinstance(payload, str) and payload.strip():
        return payload.strip()
    return default


@dataclass(frozen=True)
class Failure:
    kind: FailureKind
    message: str


@dataclass(frozen=True)
class OperationResult(Generic[T]):
    """Outcome of one coordinator operation.

    Truthy on success, so callers that only care whether to keep a form open
    can treat it as the success boolean.
    """

    value: Optional[T] = None
    failure: Optional[Failure] = None

    @property
    def ok(self) -> bool:
        return self.failure is None

    def __bool__(self) -> bool:
        return self.ok

    @classmethod
    def success(cls, value: Optional[T] = None) -> "OperationResult[T]":
        return cls(value=value)

    @classmethod
    def failed(cls, kind: FailureKind, message: str) -> "OperationResult[T]":
        return cls(failure=Failure(kind=kind, message=message))
