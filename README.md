# dynalock

Distributed locks backed by a DynamoDB table. Each lock is one item in the
table, written with conditional requests so that only one owner holds it at a
time. Held locks carry a lease that is kept fresh by heartbeats; a lock whose
lease has run out may be taken over by another client.

## Installation

```
pip install dynalock
```

The package has no runtime dependencies. You pass in any object offering the
DynamoDB methods `get_item`, `put_item`, `update_item`, `delete_item` and
`create_table` with keyword arguments and attribute values in the low-level
form (`{"S": ...}`, `{"B": ...}`), such as a boto3 DynamoDB client.

## Usage

```python
from dynalock.client import Client

with Client(dynamodb, "locks", lease_duration=3.0, heartbeat_period=1.0) as client:
    client.create_table("locks")
    # wait until DynamoDB has finished creating the table

    lock = client.acquire_lock("spock", data=b"some content", replace_data=True)
    print(lock.data())
    client.release_lock(lock)
```

Durations are given in seconds. By default the lease lasts 20 seconds and a
background thread sends heartbeats every 5 seconds for every lock the client
holds. The lease duration must be at least twice the heartbeat period, or the
constructor raises `ValueError`. Set `heartbeat_period=0` to turn automatic
heartbeats off and call `client.send_heartbeat(lock)` yourself.

Other constructor options are `partition_key_name` (default `"key"`),
`owner_name` (a random 32-character name when not given) and `logger` (a
`logging.Logger`; by default the `"dynalock"` logger, which receives debug
messages).

Leaving a `with Client(...)` block closes the client unless it was already
closed. A `Lock` is a context manager too, and releases itself on exit:

```python
with client.acquire_lock("kirk", fail_if_locked=True) as lock:
    ...
```

### Acquiring

`Client.acquire_lock(key, ...)` takes these keyword arguments:

- `data`, `replace_data`: content to store with the lock, and whether to
  overwrite content already stored in the item.
- `fail_if_locked`: raise `LockNotGrantedError` at once when another owner
  holds the lock, instead of waiting.
- `delete_lock_on_release`: delete the item on release instead of marking it
  released.
- `refresh_period`: seconds between attempts (default 1).
- `additional_time_to_wait_for_lock`: seconds to wait on top of the current
  holder's lease (default 1). When it runs out, `LockNotGrantedError` is raised
  with a `LockTimeoutError` as its cause, whose `age` is the time spent waiting.
- `additional_attributes`: extra DynamoDB attribute values stored in the item.
  Using the partition key name or `ownerName`, `leaseDuration`,
  `recordVersionNumber` or `data` raises `ValueError`.
- `session_monitor`: a `dynalock.lock.SessionMonitor(safe_time, callback)`.
  Once the lock has gone `safe_time` seconds without a refresh, the callback
  runs once in a background thread. Releasing the lock cancels it.

### Locks

A `dynalock.lock.Lock` offers `data()`, `owner_name()`,
`additional_attributes()`, `is_expired()`, `is_almost_expired()` and `close()`.
`is_almost_expired()` raises `SessionMonitorNotSetError` when the lock has no
session monitor and `LockAlreadyReleasedError` when it is expired or released.
`close()` raises `LockAlreadyReleasedError` for an expired lock and
`CannotReleaseNullLockError` for a lock not tied to a client.

### Other operations

- `Client.get(key)` reads the current holder without acquiring. A lock this
  client holds is returned as is; a lock read from the table is returned as
  already expired; a missing item gives an empty `Lock`.
- `Client.send_heartbeat(lock, data=..., delete_data=...)` renews the lease and
  may replace or remove the stored data. It raises `LockNotGrantedError` when
  the lock is expired, released, owned by someone else, or was taken over.
- `Client.release_lock(lock, delete_lock=..., data=...)` releases a held lock
  and returns `True`; `delete_lock` defaults to the lock's own setting, and
  `data` replaces the stored content when the item is kept. Releasing a lock of
  another owner raises `OwnerMismatchedError`.
- `Client.create_table(table_name, partition_key_name=..., provisioned_throughput=..., tags=...)`
  creates a table with a string hash key. It is billed per request unless
  `provisioned_throughput` is given. `dynalock.table.build_create_table_input`
  builds the same request without sending it.
- `Client.close()` releases every held lock and stops heartbeats. After that,
  every operation raises `ClientClosedError`, as does a second `close()`.

Errors are defined in `dynalock.errors`; all derive from `DynamoLockError`.
`parse_dynamodb_error` recognises a conditional check failure (a
`ConditionalCheckFailedError`, an exception named
`ConditionalCheckFailedException`, or a botocore-style error response with that
code) and turns it into `LockNotGrantedError`.

## What it does not do

The package is a library only: it has no command-line tool and runs no server.
It does not create a DynamoDB connection itself and does not wait for a new
table to become active; both are left to the caller.