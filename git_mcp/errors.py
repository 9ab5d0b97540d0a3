"""Error taxonomy and explicit result types shared by all tool layers."""

from __future__ import annotations

from dataclasses import asdict, dataclass
from enum import StrEnum
from typing import Any, Generic, TypeVar

T = TypeVar("T")


class ErrorKind(StrEnum):
    """Stable failure kinds reported to tool callers."""

    VALIDATION = "validation_error"
    NOT_FOUND = "not_found"
    AUTH = "auth_error"
    RATE_LIMITED = "rate_limited"
    NETWORK = "network_error"
    INTERNAL = "internal_error"


RETRYABLE_KINDS = frozenset({ErrorKind.NETWORK})


@dataclass(frozen=True, slots=True)
class ToolError:
    """Failure descriptor carried by a failed result."""

    kind: ErrorKind
    message: str
    status_code: int | None = None
    endpoint: str | None = None
    reset_at: float | None = None
    retry_after_seconds: float | None = None

    @property
    def retryable(self) -> bool:
        """Return whether the client may retry this failure on its own."""
        return self.kind in RETRYABLE_KINDS

    def to_payload(self) -> dict[str, Any]:
        """Serialize to a JSON-compatible mapping without empty fields."""
        payload = {key: value for key, value in asdict(self).items() if value is not None}
        payload["kind"] = str(self.kind)
        return payload


@dataclass(frozen=True, slots=True)
class Success(Generic[T]):
    """Successful result wrapper."""

    value: T


@dataclass(frozen=True, slots=True)
class Failure:
    """Failed result wrapper."""

    error: ToolError


Result = Success[T] | Failure


def validation_failure(message: str) -> Failure:
    """Build a validation failure."""
    return Failure(ToolError(kind=ErrorKind.VALIDATION, message=message))


def malformed_response_failure(message: str, *, endpoint: str) -> Failure:
    """Build a network failure for a payload that does not match the expected shape."""
    return Failure(
        ToolError(
            kind=ErrorKind.NETWORK,
            message=f"Malformed upstream response: {message}",
            endpoint=endpoint,
        )
    )


class MalformedResponseError(ValueError):
    """Raised by payload readers when a required field is absent or mistyped."""

    def __init__(self, message: str, *, endpoint: str) -> None:
        super().__init__(message)
        self.endpoint = endpoint

    def to_failure(self) -> Failure:
        """Convert into the explicit failure result."""
        return malformed_response_failure(str(self), endpoint=self.endpoint)


class ConfigError(ValueError):
    """Raised at startup when environment configuration is invalid."""
