"""Lock items and the session monitor that watches their lease."""

from __future__ import annotations

import threading
import time
from collections.abc import Callable, Mapping
from dataclasses import dataclass
from typing import Any

from .errors import (
    CannotReleaseNullLockError,
    LockAlreadyReleasedError,
    SessionMonitorNotSetError,
)


@dataclass(frozen=True)
class SessionMonitor:
    """Runs ``callback`` once the lock has gone ``safe_time`` seconds without a refresh."""

    safe_time: float
    callback: Callable[[], Any] | None = None

    def time_until_danger_zone(self, last_update: float) -> float:
        """Seconds left before the lease last refreshed at ``last_update`` enters the danger zone.

        ``last_update`` is a ``time.monotonic()`` reading.
        """
        return last_update + self.safe_time - time.monotonic()


class Lock:
    """A lock item held, or looked up, by a client.

    ``lookup_time`` is a ``time.monotonic()`` reading taken when the lease was
    last known to be refreshed; ``lease_duration`` is in seconds.
    """

    def __init__(
        self,
        *,
        client: Any = None,
        partition_key: str = "",
        data: bytes | None = None,
        owner_name: str = "",
        delete_lock_on_release: bool = False,
        is_released: bool = False,
        session_monitor: SessionMonitor | None = None,
        lookup_time: float = float("-inf"),
        record_version_number: str = "",
        lease_duration: float = 0.0,
        additional_attributes: Mapping[str, Any] | None = None,
    ) -> None:
        self._semaphore = threading.Lock()
        self.client = client
        self.partition_key = partition_key
        self._data = data
        self._owner_name = owner_name
        self.delete_lock_on_release = delete_lock_on_release
        self.is_released = is_released
        self.session_monitor = session_monitor
        self.lookup_time = lookup_time
        self.record_version_number = record_version_number
        self.lease_duration = lease_duration
        self._additional_attributes: dict[str, Any] = dict(additional_attributes or {})

    def __repr__(self) -> str:
        return (
            f"Lock(partition_key={self.partition_key!r}, owner_name={self._owner_name!r}, "
            f"record_version_number={self.record_version_number!r}, "
            f"is_released={self.is_released!r})"
        )

    def data(self) -> bytes | None:
        """The content stored in the lock, if any."""
        return self._data

    def owner_name(self) -> str:
        """The name of the lock's owner."""
        return self._owner_name

    def additional_attributes(self) -> dict[str, Any]:
        """A copy of the extra attributes stored with the lock."""
        return dict(self._additional_attributes)

    def close(self) -> None:
        """Release the lock through the client that holds it."""
        if self.client is None:
            raise CannotReleaseNullLockError()
        if self.is_expired():
            raise LockAlreadyReleasedError()
        self.client.release_lock(self)

    def is_expired(self) -> bool:
        """Whether the lock is released or its lease has run out."""
        with self._semaphore:
            return self._check_expired()

    def is_almost_expired(self) -> bool:
        """Whether the lock's lease has entered the danger zone."""
        return self._time_until_danger_zone_entered() <= 0

    def __enter__(self) -> Lock:
        return self

    def __exit__(self, exc_type: Any, exc: Any, tb: Any) -> None:
        self.close()

    @property
    def _unique_identifier(self) -> str:
        return self.partition_key

    def _check_expired(self) -> bool:
        if self.is_released:
            return True
        return time.monotonic() - self.lookup_time > self.lease_duration

    def _update_rvn(self, rvn: str, last_update: float, lease_duration: float) -> None:
        self.record_version_number = rvn
        self.lookup_time = last_update
        self.lease_duration = lease_duration

    def _time_until_danger_zone_entered(self) -> float:
        if self.session_monitor is None:
            raise SessionMonitorNotSetError()
        if self.is_expired():
            raise LockAlreadyReleasedError()
        return self.session_monitor.time_until_danger_zone(self.lookup_time)