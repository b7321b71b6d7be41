import time

import pytest

from dynalock.errors import (
    CannotReleaseNullLockError,
    LockAlreadyReleasedError,
    SessionMonitorNotSetError,
)
from dynalock.lock import Lock, SessionMonitor


class _RecordingClient:
    def __init__(self):
        self.released = []

    def release_lock(self, lock):
        self.released.append(lock)
        return True


def _live_lock(**kwargs):
    kwargs.setdefault("lookup_time", time.monotonic())
    kwargs.setdefault("lease_duration", 60.0)
    return Lock(**kwargs)


def test_empty_lock_has_no_data():
    assert Lock().data() is None


def test_empty_lock_is_expired():
    assert Lock().is_expired() is True


def test_empty_lock_has_no_owner():
    assert Lock().owner_name() == ""


def test_empty_lock_reports_missing_session_monitor():
    with pytest.raises(SessionMonitorNotSetError):
        Lock().is_almost_expired()


def test_empty_lock_cannot_be_closed():
    with pytest.raises(CannotReleaseNullLockError):
        Lock().close()


def test_fresh_lock_is_not_expired():
    assert _live_lock().is_expired() is False


def test_released_lock_is_expired():
    assert _live_lock(is_released=True).is_expired() is True


def test_lease_in_the_past_is_expired():
    lock = Lock(lookup_time=time.monotonic() - 10.0, lease_duration=1.0)
    assert lock.is_expired() is True


def test_data_and_owner_are_returned():
    lock = _live_lock(data=b"some content a", owner_name="owner-1")
    assert lock.data() == b"some content a"
    assert lock.owner_name() == "owner-1"


def test_additional_attributes_are_a_copy():
    lock = _live_lock(additional_attributes={"extra": {"S": "value"}})
    attrs = lock.additional_attributes()
    attrs["other"] = {"S": "x"}
    assert lock.additional_attributes() == {"extra": {"S": "value"}}


def test_not_almost_expired_with_long_safe_time():
    lock = _live_lock(session_monitor=SessionMonitor(safe_time=30.0))
    assert lock.is_almost_expired() is False


def test_almost_expired_once_safe_time_passed():
    lock = Lock(
        lookup_time=time.monotonic() - 2.0,
        lease_duration=3.0,
        session_monitor=SessionMonitor(safe_time=1.0),
    )
    assert lock.is_almost_expired() is True


def test_expired_lock_with_monitor_reports_already_released():
    lock = Lock(
        lookup_time=time.monotonic() - 4.0,
        lease_duration=3.0,
        session_monitor=SessionMonitor(safe_time=1.0),
    )
    with pytest.raises(LockAlreadyReleasedError):
        lock.is_almost_expired()


def test_session_monitor_time_until_danger_zone_bounds():
    monitor = SessionMonitor(safe_time=5.0)
    remaining = monitor.time_until_danger_zone(time.monotonic())
    assert 0 < remaining <= 5.0


def test_session_monitor_past_danger_zone_is_negative():
    monitor = SessionMonitor(safe_time=1.0)
    assert monitor.time_until_danger_zone(time.monotonic() - 5.0) < 0


def test_close_releases_through_client():
    client = _RecordingClient()
    lock = _live_lock(client=client)
    lock.close()
    assert client.released == [lock]


def test_close_of_expired_lock_raises():
    client = _RecordingClient()
    lock = _live_lock(client=client, is_released=True)
    with pytest.raises(LockAlreadyReleasedError):
        lock.close()
    assert client.released == []


def test_context_manager_releases_on_exit():
    client = _RecordingClient()
    lock = _live_lock(client=client)
    with lock as held:
        assert held is lock
    assert client.released == [lock]


def test_update_rvn_refreshes_lease():
    lock = Lock()
    lock._update_rvn("abc", time.monotonic(), 10.0)
    assert lock.record_version_number == "abc"
    assert lock.is_expired() is False