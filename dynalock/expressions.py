"""Condition and update expressions for lock items."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any

from .attributes import bytes_attr, format_duration, string_attr

ATTR_DATA = "data"
ATTR_OWNER_NAME = "ownerName"
ATTR_LEASE_DURATION = "leaseDuration"
ATTR_RECORD_VERSION_NUMBER = "recordVersionNumber"
ATTR_IS_RELEASED = "isReleased"

IS_RELEASED_VALUE = "1"


class _Aliases:
    """Hands out ``#n`` and ``:n`` placeholders while an expression is rendered."""

    def __init__(self) -> None:
        self.names: dict[str, str] = {}
        self.values: dict[str, dict[str, Any]] = {}
        self._by_name: dict[str, str] = {}

    def name(self, attribute: str) -> str:
        alias = self._by_name.get(attribute)
        if alias is None:
            alias = f"#{len(self.names)}"
            self.names[alias] = attribute
            self._by_name[attribute] = alias
        return alias

    def value(self, attr_value: dict[str, Any]) -> str:
        alias = f":{len(self.values)}"
        self.values[alias] = attr_value
        return alias


def _attr_value(value: str | bytes) -> dict[str, Any]:
    if isinstance(value, str):
        return string_attr(value)
    return bytes_attr(value)


@dataclass(frozen=True)
class _Exists:
    name: str

    def render(self, aliases: _Aliases) -> str:
        return f"attribute_exists ({aliases.name(self.name)})"


@dataclass(frozen=True)
class _NotExists:
    name: str

    def render(self, aliases: _Aliases) -> str:
        return f"attribute_not_exists ({aliases.name(self.name)})"


@dataclass(frozen=True)
class _Equal:
    name: str
    value: str | bytes

    def render(self, aliases: _Aliases) -> str:
        return f"{aliases.name(self.name)} = {aliases.value(_attr_value(self.value))}"


@dataclass(frozen=True)
class _Junction:
    operator: str
    left: Any
    right: Any

    def render(self, aliases: _Aliases) -> str:
        left = self.left.render(aliases)
        right = self.right.render(aliases)
        return f"({left}) {self.operator} ({right})"


def _and(left: Any, right: Any) -> _Junction:
    return _Junction("AND", left, right)


def _or(left: Any, right: Any) -> _Junction:
    return _Junction("OR", left, right)


@dataclass(frozen=True)
class _Set:
    name: str
    value: str | bytes


@dataclass(frozen=True)
class _Remove:
    name: str


def _render_update(actions: tuple[_Set | _Remove, ...], aliases: _Aliases) -> str:
    sets = [
        f"{aliases.name(a.name)} = {aliases.value(_attr_value(a.value))}"
        for a in actions
        if isinstance(a, _Set)
    ]
    removes = [aliases.name(a.name) for a in actions if isinstance(a, _Remove)]
    clauses = []
    if sets:
        clauses.append("SET " + ", ".join(sets))
    if removes:
        clauses.append("REMOVE " + ", ".join(removes))
    return "\n".join(clauses)


@dataclass(frozen=True)
class Expression:
    """A condition, optionally with update actions, ready for a table request."""

    condition: Any = None
    update: tuple[_Set | _Remove, ...] = field(default_factory=tuple)

    def as_request(self) -> dict[str, Any]:
        """Return the expression fields of a PutItem, UpdateItem or DeleteItem request."""
        aliases = _Aliases()
        request: dict[str, Any] = {}
        if self.condition is not None:
            request["ConditionExpression"] = self.condition.render(aliases)
        if self.update:
            request["UpdateExpression"] = _render_update(self.update, aliases)
        if aliases.names:
            request["ExpressionAttributeNames"] = dict(aliases.names)
        if aliases.values:
            request["ExpressionAttributeValues"] = dict(aliases.values)
        return request


def ownership_condition(
    partition_key_name: str, record_version_number: str, owner_name: str
) -> Expression:
    """The item exists, and holds this version number and owner."""
    return Expression(
        condition=_and(
            _and(
                _Exists(partition_key_name),
                _Equal(ATTR_RECORD_VERSION_NUMBER, record_version_number),
            ),
            _Equal(ATTR_OWNER_NAME, owner_name),
        )
    )


def new_or_released_condition(partition_key_name: str) -> Expression:
    """The item does not exist, or exists and is marked released."""
    return Expression(
        condition=_or(
            _NotExists(partition_key_name),
            _and(
                _Exists(partition_key_name),
                _Equal(ATTR_IS_RELEASED, IS_RELEASED_VALUE),
            ),
        )
    )


def expired_lock_condition(
    partition_key_name: str, record_version_number: str
) -> Expression:
    """The item exists and still holds the given version number."""
    return Expression(
        condition=_and(
            _Exists(partition_key_name),
            _Equal(ATTR_RECORD_VERSION_NUMBER, record_version_number),
        )
    )


def release_update(condition: Expression, data: bytes | None = None) -> Expression:
    """Mark the lock released, storing new data when some is given."""
    actions: list[_Set | _Remove] = [_Set(ATTR_IS_RELEASED, IS_RELEASED_VALUE)]
    if data:
        actions.append(_Set(ATTR_DATA, bytes(data)))
    return Expression(condition=condition.condition, update=tuple(actions))


def heartbeat_update(
    condition: Expression,
    lease_duration: float,
    record_version_number: str,
    data: bytes | None = None,
    delete_data: bool = False,
) -> Expression:
    """Refresh the lease and version number, removing or replacing the data."""
    actions: list[_Set | _Remove] = [
        _Set(ATTR_LEASE_DURATION, format_duration(lease_duration)),
        _Set(ATTR_RECORD_VERSION_NUMBER, record_version_number),
    ]
    if delete_data:
        actions.append(_Remove(ATTR_DATA))
    elif data:
        actions.append(_Set(ATTR_DATA, bytes(data)))
    return Expression(condition=condition.condition, update=tuple(actions))