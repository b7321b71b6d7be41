"""Exceptions raised by the lock client."""

from __future__ import annotations

from collections.abc import Iterator

from .attributes import format_duration

_CONDITIONAL_CHECK_FAILED = "ConditionalCheckFailedException"


class DynamoLockError(Exception):
    """Base class for every error raised by this package."""


class _FixedMessageError(DynamoLockError):
    default_message = ""

    def __init__(self, message: str | None = None) -> None:
        super().__init__(message if message is not None else self.default_message)


class ClientClosedError(_FixedMessageError):
    """The client cannot be used because it is already closed."""

    default_message = "client already closed"


class SessionMonitorNotSetError(_FixedMessageError):
    """The lock was acquired without a session monitor."""

    default_message = "session monitor is not set"


class LockAlreadyReleasedError(_FixedMessageError):
    """The lock is released or its lease has expired."""

    default_message = "lock is already released"


class CannotReleaseNullLockError(_FixedMessageError):
    """There is no lock to release."""

    default_message = "cannot release null lock item"


class OwnerMismatchedError(_FixedMessageError):
    """The lock belongs to another owner than this client."""

    default_message = "lock owner mismatched"


class LockTimeoutError(DynamoLockError):
    """The client gave up acquiring the lock after ``age`` seconds."""

    def __init__(self, age: float) -> None:
        super().__init__(age)
        self.age = age

    def __str__(self) -> str:
        return f"timeout: {format_duration(self.age)}"


class LockNotGrantedError(DynamoLockError):
    """The lock could not be established because of its lifecycle state."""

    def __init__(self, msg: str, cause: BaseException | None = None) -> None:
        super().__init__(msg)
        self.msg = msg
        self.cause = cause
        if cause is not None:
            self.__cause__ = cause

    def __str__(self) -> str:
        if self.cause is None:
            return self.msg
        return f"{self.msg}: {self.cause}"


class ConditionalCheckFailedError(DynamoLockError):
    """A conditional write was rejected by the table."""

    def __init__(self, message: str | None = None) -> None:
        super().__init__(message or "conditional check failed")
        self.message = message


def _chain(err: BaseException) -> Iterator[BaseException]:
    seen: set[int] = set()
    current: BaseException | None = err
    while current is not None and id(current) not in seen:
        seen.add(id(current))
        yield current
        current = current.__cause__ or current.__context__


def _is_conditional_check_failure(err: BaseException) -> bool:
    if isinstance(err, ConditionalCheckFailedError):
        return True
    if type(err).__name__ == _CONDITIONAL_CHECK_FAILED:
        return True
    response = getattr(err, "response", None)
    if isinstance(response, dict):
        error = response.get("Error")
        if isinstance(error, dict) and error.get("Code") == _CONDITIONAL_CHECK_FAILED:
            return True
    return False


def parse_dynamodb_error(err: BaseException, msg: str) -> BaseException:
    """Turn a failed conditional write into LockNotGrantedError; return other errors unchanged."""
    for exc in _chain(err):
        if _is_conditional_check_failure(exc):
            return LockNotGrantedError(msg, exc)
    return err