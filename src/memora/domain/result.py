"""
Success/failure result type shared by every fallible domain operation.

Domain code reports expected failures (validation, missing arguments) as a
failed ``Result`` instead of raising, so callers decide whether to retry,
surface the message or fall back to a manual override.
"""

from dataclasses import dataclass
from typing import Generic, TypeVar

T = TypeVar("T")


class ValidationError(ValueError):
    """Raised when a value object is constructed outside its invariants."""


class ConcurrencyConflictError(RuntimeError):
    """Raised when a schedule was modified by another writer since it was loaded."""


class NotFoundError(LookupError):
    """A requested aggregate does not exist."""


class AccessDeniedError(PermissionError):
    """The caller does not own the aggregate it tried to change."""


@dataclass(frozen=True)
class Result(Generic[T]):
    """
    Outcome of a fallible operation.

    Attributes:
        ok: True on success.
        value: Payload on success (may be None for void operations).
        error: Human-readable message on failure.
        cause: Original exception, when the failure wraps one.
    """

    ok: bool
    value: T | None = None
    error: str | None = None
    cause: BaseException | None = None

    @classmethod
    def success(cls, value: T | None = None) -> "Result[T]":
        return cls(ok=True, value=value)

    @classmethod
    def fail(cls, error: str, cause: BaseException | None = None) -> "Result[T]":
        return cls(ok=False, error=error, cause=cause)

    @property
    def is_failure(self) -> bool:
        return not self.ok

    def unwrap(self) -> T:
        """Return the payload or raise ``ValidationError`` with the failure message."""
        if not self.ok:
            raise ValidationError(self.error or "operation failed")
        return self.value  # type: ignore[return-value]


def guard_required(**arguments: object) -> Result[None]:
    """Fail on the first argument that is None (or an empty string)."""
    for name, value in arguments.items():
        if value is None or (isinstance(value, str) and not value.strip()):
            return Result.fail(f"{name} is required")
    return Result.success()
