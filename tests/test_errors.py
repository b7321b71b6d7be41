import pytest

from dynalock.errors import (
    CannotReleaseNullLockError,
    ClientClosedError,
    ConditionalCheckFailedError,
    DynamoLockError,
    LockAlreadyReleasedError,
    LockNotGrantedError,
    LockTimeoutError,
    OwnerMismatchedError,
    SessionMonitorNotSetError,
    parse_dynamodb_error,
)


def test_simply_not_granted():
    not_granted = LockNotGrantedError("not granted")
    assert isinstance(not_granted, LockNotGrantedError)
    assert str(not_granted) == "not granted"
    assert not_granted.cause is None


def test_vanilla_error_is_not_not_granted():
    original = ValueError("vanilla error")
    vanilla = parse_dynamodb_error(original, "msg")
    assert vanilla is original
    assert str(vanilla) == "vanilla error"


def test_not_granted_with_cause_keeps_age():
    expected_age = 5 * 60
    not_granted = LockNotGrantedError("not granted with cause", LockTimeoutError(expected_age))
    assert isinstance(not_granted.cause, LockTimeoutError)
    assert not_granted.cause.age == expected_age
    assert not_granted.__cause__ is not_granted.cause
    assert str(not_granted) == "not granted with cause: timeout: 5m0s"


def test_timeout_error_message():
    assert str(LockTimeoutError(20)) == "timeout: 20s"


def test_parse_vanilla_error_is_returned_unchanged():
    vanilla = RuntimeError("root error")
    assert parse_dynamodb_error(vanilla, "") is vanilla


def test_parse_wrapped_conditional_check_failure():
    cce = ConditionalCheckFailedError("conditional check failed")
    envelope = RuntimeError("envelope")
    envelope.__cause__ = cce
    err = parse_dynamodb_error(envelope, "")
    assert isinstance(err, LockNotGrantedError)
    assert err.cause is cce


def test_parse_direct_conditional_check_failure_message():
    cce = ConditionalCheckFailedError("conditional check failed")
    err = parse_dynamodb_error(cce, "already acquired lock, stopping heartbeats")
    assert isinstance(err, LockNotGrantedError)
    assert str(err) == "already acquired lock, stopping heartbeats: conditional check failed"


class _FakeClientError(Exception):
    def __init__(self, code):
        super().__init__(code)
        self.response = {"Error": {"Code": code, "Message": "m"}}


class ConditionalCheckFailedException(Exception):
    pass


def test_parse_client_error_with_response_code():
    original = _FakeClientError("ConditionalCheckFailedException")
    err = parse_dynamodb_error(original, "x")
    assert isinstance(err, LockNotGrantedError)
    assert err.cause is original
    assert str(err).startswith("x: ")


def test_parse_client_error_with_other_code_unchanged():
    original = _FakeClientError("ProvisionedThroughputExceededException")
    assert parse_dynamodb_error(original, "x") is original


def test_parse_exception_named_like_service_error():
    original = ConditionalCheckFailedException("nope")
    err = parse_dynamodb_error(original, "x")
    assert isinstance(err, LockNotGrantedError)
    assert err.cause is original


def test_parse_result_can_be_raised():
    cce = ConditionalCheckFailedError("failed")
    with pytest.raises(LockNotGrantedError) as info:
        raise parse_dynamodb_error(cce, "msg")
    assert str(info.value) == "msg: failed"
    assert info.value.cause is cce


@pytest.mark.parametrize(
    "error_class, message",
    [
        (ClientClosedError, "client already closed"),
        (SessionMonitorNotSetError, "session monitor is not set"),
        (LockAlreadyReleasedError, "lock is already released"),
        (CannotReleaseNullLockError, "cannot release null lock item"),
        (OwnerMismatchedError, "lock owner mismatched"),
    ],
)
def test_fixed_messages(error_class, message):
    err = error_class()
    assert str(err) == message
    assert isinstance(err, DynamoLockError)