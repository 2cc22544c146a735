"""Error taxonomy and result types shared by the services."""

from dataclasses import dataclass
from enum import StrEnum
from typing import Generic, TypeVar

T = TypeVar("T")

_NON_RETRYABLE_MARKERS = ("Auth session missing", "Invalid JWT")


class ErrorKind(StrEnum):
    """Classification of failures surfaced by the services."""

    TIMEOUT = "timeout"
    NETWORK_ERROR = "network_error"
    NOT_FOUND = "not_found"
    INVALID_INPUT = "invalid_input"
    INVALID_JOIN_CODE = "invalid_join_code"
    INVALID_CREDENTIALS = "invalid_credentials"
    QUOTA_EXCEEDED = "quota_exceeded"
    STORAGE_WRITE_FAILED = "storage_write_failed"
    URL_RESOLUTION_FAILED = "url_resolution_failed"
    METADATA_WRITE_FAILED = "metadata_write_failed"
    PROVISION_FAILED = "provision_failed"
    RETRY_EXHAUSTED = "retry_exhausted"
    UNEXPECTED = "unexpected"


class HeadshotsError(Exception):
    """Base class for errors raised inside the core."""

    kind: ErrorKind = ErrorKind.UNEXPECTED


class OperationTimeoutError(HeadshotsError):
    """An attempt lost its race against the deadline."""

    kind = ErrorKind.TIMEOUT


class NetworkError(HeadshotsError):
    """A remote call failed in transit."""

    kind = ErrorKind.NETWORK_ERROR


class NonRetryableError(HeadshotsError):
    """Errors that retrying cannot fix."""


class NoActiveSessionError(NonRetryableError):
    """The identity provider has no session for this client."""

    kind = ErrorKind.INVALID_CREDENTIALS


class InvalidCredentialsError(NonRetryableError):
    """Sign-in was rejected by the identity provider."""

    kind = ErrorKind.INVALID_CREDENTIALS


class InvalidInputError(NonRetryableError):
    """Caller supplied empty or malformed input."""

    kind = ErrorKind.INVALID_INPUT


class AuthFlowError(NonRetryableError):
    """A federated-login exchange produced no usable session."""

    kind = ErrorKind.INVALID_CREDENTIALS


@dataclass(frozen=True)
class RetryAttempt:
    """One failed attempt inside a single retry run."""

    attempt_number: int
    last_error: BaseException
    next_delay: float | None


class RetryExhaustedError(HeadshotsError):
    """Every attempt of a retried operation failed."""

    kind = ErrorKind.RETRY_EXHAUSTED

    def __init__(self, name: str, attempts: list[RetryAttempt]) -> None:
        self.name = name
        self.attempts = attempts
        last = attempts[-1].last_error if attempts else None
        super().__init__(f"{name} failed after {len(attempts)} attempt(s): {last}")

    @property
    def last_error(self) -> BaseException | None:
        return self.attempts[-1].last_error if self.attempts else None

    @property
    def timed_out(self) -> bool:
        """True when the final attempt failed on its deadline."""
        return isinstance(self.last_error, OperationTimeoutError)


def is_retryable(error: BaseException) -> bool:
    """Return False for errors that should short-circuit a retry loop."""
    if isinstance(error, NonRetryableError):
        return False
    message = str(error)
    return not any(marker in message for marker in _NON_RETRYABLE_MARKERS)


def is_timeout(error: BaseException) -> bool:
    """Return True when an error (or the error it wraps) is a deadline miss."""
    if isinstance(error, OperationTimeoutError):
        return True
    if isinstance(error, RetryExhaustedError):
        return error.timed_out
    return "timeout" in str(error).lower()


def describe_database_error(error: BaseException | None, operation: str) -> str:
    """Translate common PostgREST/Postgres error codes to user-facing text."""
    code = getattr(error, "code", None)
    if code == "PGRST116":
        return "Database table not found. Please check your database setup."
    if code == "23505":
        return "This email is already registered."
    if code == "23503":
        return "Invalid organization code."
    message = getattr(error, "message", None) or (str(error) if error else "")
    return message or f"Failed to {operation}. Please try again."


@dataclass(frozen=True)
class ServiceError:
    """Error half of a service result."""

    kind: ErrorKind
    message: str
    cause: BaseException | None = None


@dataclass(frozen=True)
class Result(Generic[T]):
    """Discriminated success/error result returned across service boundaries."""

    value: T | None = None
    error: ServiceError | None = None

    @property
    def ok(self) -> bool:
        return self.error is None

    @classmethod
    def success(cls, value: T | None = None) -> "Result[T]":
        return cls(value=value)

    @classmethod
    def failure(
        cls,
        kind: ErrorKind,
        message: str,
        cause: BaseException | None = None,
    ) -> "Result[T]":
        return cls(error=ServiceError(kind=kind, message=message, cause=cause))
