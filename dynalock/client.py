"""Distributed lock client backed by a DynamoDB table."""

from __future__ import annotations

import logging
import threading
import time
from collections.abc import Iterator, Mapping
from contextlib import contextmanager
from dataclasses import dataclass, field
from typing import Any

from .attributes import (
    bytes_attr,
    format_duration,
    parse_duration,
    random_string,
    read_bytes_attr,
    read_string_attr,
    string_attr,
)
from .errors import (
    CannotReleaseNullLockError,
    ClientClosedError,
    DynamoLockError,
    LockNotGrantedError,
    LockTimeoutError,
    OwnerMismatchedError,
    parse_dynamodb_error,
)
from .expressions import (
    ATTR_DATA,
    ATTR_IS_RELEASED,
    ATTR_LEASE_DURATION,
    ATTR_OWNER_NAME,
    ATTR_RECORD_VERSION_NUMBER,
    Expression,
    expired_lock_condition,
    heartbeat_update,
    new_or_released_condition,
    ownership_condition,
    release_update,
)
from .lock import Lock, SessionMonitor
from .table import DEFAULT_PARTITION_KEY_NAME, build_create_table_input

DEFAULT_LEASE_DURATION = 20.0
DEFAULT_HEARTBEAT_PERIOD = 5.0
_DEFAULT_BUFFER = 1.0
_OWNER_NAME_LENGTH = 32


class _ReadWriteLock:
    """A readers-writer lock in which a waiting writer holds off new readers."""

    def __init__(self) -> None:
        self._cond = threading.Condition()
        self._readers = 0
        self._writer = False
        self._writers_waiting = 0

    @contextmanager
    def read(self) -> Iterator[None]:
        with self._cond:
            while self._writer or self._writers_waiting:
                self._cond.wait()
            self._readers += 1
        try:
            yield
        finally:
            with self._cond:
                self._readers -= 1
                if not self._readers:
                    self._cond.notify_all()

    @contextmanager
    def write(self) -> Iterator[None]:
        with self._cond:
            self._writers_waiting += 1
            try:
                while self._writer or self._readers:
                    self._cond.wait()
            finally:
                self._writers_waiting -= 1
            self._writer = True
        try:
            yield
        finally:
            with self._cond:
                self._writer = False
                self._cond.notify_all()


@dataclass
class _Attempt:
    key: str
    data: bytes | None
    replace_data: bool
    delete_lock_on_release: bool
    fail_if_locked: bool
    session_monitor: SessionMonitor | None
    additional_attributes: dict[str, Any]
    wait: float
    refresh_period: float
    start: float = field(default_factory=time.monotonic)
    lock_trying_to_be_acquired: Lock | None = None
    already_slept_once: bool = False


class Client:
    """Acquires, refreshes and releases locks stored in a DynamoDB table.

    ``dynamodb`` is a low-level DynamoDB client offering ``get_item``,
    ``put_item``, ``update_item``, ``delete_item`` and ``create_table`` with
    keyword arguments. Durations are in seconds; a ``heartbeat_period`` of zero
    disables the background heartbeat.
    """

    def __init__(
        self,
        dynamodb: Any,
        table_name: str,
        *,
        partition_key_name: str = DEFAULT_PARTITION_KEY_NAME,
        owner_name: str | None = None,
        lease_duration: float = DEFAULT_LEASE_DURATION,
        heartbeat_period: float = DEFAULT_HEARTBEAT_PERIOD,
        logger: logging.Logger | None = None,
    ) -> None:
        if lease_duration < 2 * heartbeat_period:
            raise ValueError(
                "heartbeat period must be no more than half the length of the Lease Duration, "
                "or locks might expire due to the heartbeat thread taking too long to update "
                "them (recommendation is to make it much greater, for example 4+ times greater)"
            )
        self._dynamodb = dynamodb
        self._table_name = table_name
        self._partition_key_name = partition_key_name
        self._owner_name = owner_name if owner_name is not None else random_string(_OWNER_NAME_LENGTH)
        self._lease_duration = lease_duration
        self._heartbeat_period = heartbeat_period
        self._logger = logger if logger is not None else logging.getLogger("dynalock")

        self._locks: dict[str, Lock] = {}
        self._locks_guard = threading.Lock()
        self._monitors: dict[str, threading.Event] = {}
        self._monitors_guard = threading.Lock()

        self._rw = _ReadWriteLock()
        self._closed = False
        self._close_started = False
        self._close_guard = threading.Lock()

        self._stop_heartbeat = threading.Event()
        if heartbeat_period > 0:
            threading.Thread(
                target=self._heartbeat, name="dynalock-heartbeat", daemon=True
            ).start()

    # -- acquisition -------------------------------------------------------

    def acquire_lock(
        self,
        key: str,
        *,
        data: bytes | None = None,
        replace_data: bool = False,
        fail_if_locked: bool = False,
        delete_lock_on_release: bool = False,
        refresh_period: float | None = None,
        additional_time_to_wait_for_lock: float | None = None,
        additional_attributes: Mapping[str, Any] | None = None,
        session_monitor: SessionMonitor | None = None,
    ) -> Lock:
        """Acquire the lock named ``key``, waiting for its current holder if needed."""
        self._ensure_open()
        attempt = _Attempt(
            key=key,
            data=data,
            replace_data=replace_data,
            delete_lock_on_release=delete_lock_on_release,
            fail_if_locked=fail_if_locked,
            session_monitor=session_monitor,
            additional_attributes=dict(additional_attributes or {}),
            wait=(
                additional_time_to_wait_for_lock
                if additional_time_to_wait_for_lock and additional_time_to_wait_for_lock > 0
                else _DEFAULT_BUFFER
            ),
            refresh_period=(
                refresh_period if refresh_period and refresh_period > 0 else _DEFAULT_BUFFER
            ),
        )
        with self._rw.read():
            if self._closed:
                raise ClientClosedError()
            reserved = (
                self._partition_key_name,
                ATTR_OWNER_NAME,
                ATTR_LEASE_DURATION,
                ATTR_RECORD_VERSION_NUMBER,
                ATTR_DATA,
            )
            if any(name in attempt.additional_attributes for name in reserved):
                raise ValueError(
                    "additional attribute cannot be one of the following types: "
                    + ", ".join(reserved)
                )
            attempt.start = time.monotonic()
            while True:
                lock = self._store_lock(attempt)
                if lock is not None:
                    return lock
                self._logger.debug(
                    "Sleeping for a refresh period of %s", format_duration(attempt.refresh_period)
                )
                time.sleep(attempt.refresh_period)

    def _store_lock(self, attempt: _Attempt) -> Lock | None:
        self._logger.debug(
            "Call GetItem to see if the lock for %s = %s exists in the table",
            self._partition_key_name,
            attempt.key,
        )
        existing = self._get_lock_from_dynamodb(attempt.key, attempt.delete_lock_on_release)

        if attempt.replace_data:
            new_data = attempt.data
        elif existing is not None:
            new_data = existing.data()
        else:
            new_data = None
        if new_data is None:
            new_data = attempt.data

        merged = existing.additional_attributes() if existing is not None else {}
        merged.update(attempt.additional_attributes)
        attempt.additional_attributes = merged

        rvn = random_string(_OWNER_NAME_LENGTH)
        item: dict[str, Any] = dict(merged)
        item[self._partition_key_name] = string_attr(attempt.key)
        item[ATTR_OWNER_NAME] = string_attr(self._owner_name)
        item[ATTR_LEASE_DURATION] = string_attr(format_duration(self._lease_duration))
        item[ATTR_RECORD_VERSION_NUMBER] = string_attr(rvn)
        if new_data is not None:
            item[ATTR_DATA] = bytes_attr(new_data)

        if existing is None or existing.is_released:
            self._logger.debug(
                "Acquiring a new lock or an existing yet released lock on %s=%s",
                self._partition_key_name,
                attempt.key,
            )
            return self._try_put(
                attempt, new_or_released_condition(self._partition_key_name), item, new_data, rvn
            )

        trying = attempt.lock_trying_to_be_acquired
        if trying is None:
            if attempt.fail_if_locked:
                raise LockNotGrantedError(
                    "Didn't acquire lock because it is locked and request is configured not to retry."
                )
            attempt.lock_trying_to_be_acquired = existing
            if not attempt.already_slept_once:
                attempt.already_slept_once = True
                attempt.wait += existing.lease_duration
        elif (
            trying.record_version_number == existing.record_version_number
            and trying._check_expired()
        ):
            self._logger.debug(
                "Acquiring an existing lock whose revisionVersionNumber did not change for %s "
                "partitionKeyName=%s",
                self._partition_key_name,
                attempt.key,
            )
            return self._try_put(
                attempt,
                expired_lock_condition(self._partition_key_name, existing.record_version_number),
                item,
                new_data,
                rvn,
            )
        elif trying.record_version_number != existing.record_version_number:
            attempt.lock_trying_to_be_acquired = existing

        elapsed = time.monotonic() - attempt.start
        if elapsed > attempt.wait:
            raise LockNotGrantedError(
                "Didn't acquire lock after sleeping", LockTimeoutError(elapsed)
            )
        return None

    def _try_put(
        self,
        attempt: _Attempt,
        condition: Expression,
        item: dict[str, Any],
        new_data: bytes | None,
        rvn: str,
    ) -> Lock | None:
        request = {"TableName": self._table_name, "Item": item, **condition.as_request()}
        last_update = time.monotonic()
        try:
            self._dynamodb.put_item(**request)
        except Exception as exc:
            parsed = parse_dynamodb_error(
                exc, "cannot store lock item: lock already acquired by other client"
            )
            if isinstance(parsed, LockNotGrantedError):
                return None
            raise
        lock = Lock(
            client=self,
            partition_key=attempt.key,
            data=new_data,
            delete_lock_on_release=attempt.delete_lock_on_release,
            owner_name=self._owner_name,
            lease_duration=self._lease_duration,
            lookup_time=last_update,
            record_version_number=rvn,
            additional_attributes=attempt.additional_attributes,
            session_monitor=attempt.session_monitor,
        )
        with self._locks_guard:
            self._locks[lock._unique_identifier] = lock
        self._try_add_session_monitor(lock._unique_identifier, lock)
        return lock

    # -- reading -----------------------------------------------------------

    def _item_key(self, key: str) -> dict[str, Any]:
        return {self._partition_key_name: string_attr(key)}

    def _get_lock_from_dynamodb(self, key: str, delete_lock_on_release: bool) -> Lock | None:
        response = self._dynamodb.get_item(
            TableName=self._table_name, Key=self._item_key(key), ConsistentRead=True
        )
        item = (response or {}).get("Item")
        if item is None:
            return None
        return self._create_lock_item(key, delete_lock_on_release, item)

    def _create_lock_item(
        self, key: str, delete_lock_on_release: bool, item: Mapping[str, Any]
    ) -> Lock:
        attrs = dict(item)
        data = read_bytes_attr(attrs.pop(ATTR_DATA)) if ATTR_DATA in attrs else None
        owner_name = read_string_attr(attrs.pop(ATTR_OWNER_NAME, None))
        lease_text = read_string_attr(attrs.pop(ATTR_LEASE_DURATION, None))
        rvn = read_string_attr(attrs.pop(ATTR_RECORD_VERSION_NUMBER, None))
        is_released = ATTR_IS_RELEASED in attrs
        attrs.pop(ATTR_IS_RELEASED, None)
        attrs.pop(self._partition_key_name, None)

        lookup_time = time.monotonic()
        lease_duration = 0.0
        if lease_text:
            try:
                lease_duration = parse_duration(lease_text)
            except ValueError as exc:
                raise ValueError(f"cannot parse lease duration: {exc}") from exc

        return Lock(
            client=self,
            partition_key=key,
            data=data,
            delete_lock_on_release=delete_lock_on_release,
            owner_name=owner_name,
            lease_duration=lease_duration,
            lookup_time=lookup_time,
            record_version_number=rvn,
            is_released=is_released,
            additional_attributes=attrs,
        )

    def get(self, key: str) -> Lock:
        """Return who holds ``key`` without acquiring it.

        A lock held by this client is returned as is; otherwise the stored item is
        returned as an expired lock, or an empty lock if there is none.
        """
        self._ensure_open()
        with self._locks_guard:
            held = self._locks.get(key)
        if held is not None:
            return held
        lock = self._get_lock_from_dynamodb(key, False)
        if lock is None:
            return Lock()
        lock._update_rvn("", float("-inf"), lock.lease_duration)
        return lock

    # -- release -----------------------------------------------------------

    def release_lock(
        self, lock: Lock | None, *, delete_lock: bool | None = None, data: bytes | None = None
    ) -> bool:
        """Release ``lock`` if this client still holds it; return True on success.

        ``delete_lock`` defaults to the lock's own setting; ``data`` replaces the
        stored content when the item is kept.
        """
        self._ensure_open()
        self._release_lock(lock, delete_lock=delete_lock, data=data)
        return True

    def _release_lock(
        self, lock: Lock | None, *, delete_lock: bool | None = None, data: bytes | None = None
    ) -> None:
        if lock is None:
            raise CannotReleaseNullLockError()
        if delete_lock is None:
            delete_lock = lock.delete_lock_on_release
        if lock.owner_name() != self._owner_name:
            raise OwnerMismatchedError()

        with lock._semaphore:
            lock.is_released = True
            self._forget(lock)
            condition = ownership_condition(
                self._partition_key_name, lock.record_version_number, lock.owner_name()
            )
            request = {"TableName": self._table_name, "Key": self._item_key(lock.partition_key)}
            if delete_lock:
                self._dynamodb.delete_item(**request, **condition.as_request())
            else:
                self._dynamodb.update_item(**request, **release_update(condition, data).as_request())
        self._remove_session_monitor(lock._unique_identifier)

    def _forget(self, lock: Lock) -> None:
        with self._locks_guard:
            if self._locks.get(lock._unique_identifier) is lock:
                del self._locks[lock._unique_identifier]

    # -- heartbeats --------------------------------------------------------

    def send_heartbeat(
        self, lock: Lock, *, data: bytes | None = None, delete_data: bool = False
    ) -> None:
        """Refresh the lease of ``lock``, optionally replacing or removing its data."""
        self._ensure_open()
        lease_duration = self._lease_duration
        with lock._semaphore:
            if (
                lock._check_expired()
                or lock.owner_name() != self._owner_name
                or lock.is_released
            ):
                self._forget(lock)
                raise LockNotGrantedError("cannot send heartbeat because lock is not granted")

            new_rvn = random_string(_OWNER_NAME_LENGTH)
            condition = ownership_condition(
                self._partition_key_name, lock.record_version_number, lock.owner_name()
            )
            update = heartbeat_update(condition, lease_duration, new_rvn, data, delete_data)
            request = {
                "TableName": self._table_name,
                "Key": self._item_key(lock.partition_key),
                **update.as_request(),
            }
            last_update = time.monotonic()
            try:
                self._dynamodb.update_item(**request)
            except Exception as exc:
                parsed = parse_dynamodb_error(exc, "already acquired lock, stopping heartbeats")
                if isinstance(parsed, LockNotGrantedError):
                    self._forget(lock)
                if parsed is exc:
                    raise
                raise parsed from exc
            lock._update_rvn(new_rvn, last_update, lease_duration)

    def _heartbeat(self) -> None:
        self._logger.debug("starting heartbeats")
        while not self._stop_heartbeat.wait(self._heartbeat_period):
            with self._locks_guard:
                held = list(self._locks.values())
            for lock in held:
                try:
                    self.send_heartbeat(lock)
                except Exception as exc:  # noqa: BLE001 - one failing lock must not stop the rest
                    self._logger.debug(
                        "error sending heartbeat to %s : %s", lock.partition_key, exc
                    )
        self._logger.debug("client closed, stopping heartbeat")

    # -- session monitors --------------------------------------------------

    def _try_add_session_monitor(self, name: str, lock: Lock) -> None:
        monitor = lock.session_monitor
        if monitor is None or monitor.callback is None:
            return
        cancelled = threading.Event()
        with self._monitors_guard:
            self._monitors[name] = cancelled
        threading.Thread(
            target=self._watch_session,
            args=(name, lock, cancelled),
            name=f"dynalock-monitor-{name}",
            daemon=True,
        ).start()

    def _watch_session(self, name: str, lock: Lock, cancelled: threading.Event) -> None:
        try:
            while not cancelled.is_set():
                try:
                    remaining = lock._time_until_danger_zone_entered()
                except DynamoLockError as exc:
                    self._logger.debug("cannot run session monitor because %s", exc)
                    return
                if remaining <= 0:
                    callback = lock.session_monitor.callback  # type: ignore[union-attr]
                    threading.Thread(target=callback, daemon=True).start()
                    return
                cancelled.wait(remaining)
        finally:
            with self._monitors_guard:
                if self._monitors.get(name) is cancelled:
                    del self._monitors[name]

    def _remove_session_monitor(self, name: str) -> None:
        with self._monitors_guard:
            cancelled = self._monitors.get(name)
        if cancelled is not None:
            cancelled.set()

    # -- table -------------------------------------------------------------

    def create_table(
        self,
        table_name: str,
        *,
        partition_key_name: str = DEFAULT_PARTITION_KEY_NAME,
        provisioned_throughput: Mapping[str, Any] | None = None,
        tags: list[Mapping[str, Any]] | None = None,
    ) -> Any:
        """Create a table with the schema this client expects."""
        self._ensure_open()
        request = build_create_table_input(
            table_name, partition_key_name, provisioned_throughput, tags
        )
        return self._dynamodb.create_table(**request)

    # -- lifecycle ---------------------------------------------------------

    def _is_closed(self) -> bool:
        with self._rw.read():
            return self._closed

    def _ensure_open(self) -> None:
        if self._is_closed():
            raise ClientClosedError()

    def close(self) -> None:
        """Release every held lock and stop heartbeats; a second call raises ClientClosedError."""
        with self._close_guard:
            if self._close_started:
                raise ClientClosedError()
            self._close_started = True
        with self._rw.write():
            try:
                with self._locks_guard:
                    held = list(self._locks.values())
                for lock in held:
                    self._release_lock(lock)
            finally:
                self._stop_heartbeat.set()
                self._closed = True

    def __enter__(self) -> Client:
        return self

    def __exit__(self, exc_type: Any, exc: Any, tb: Any) -> None:
        with self._close_guard:
            started = self._close_started
        if not started:
            self.close()