"""Attribute value helpers, identifiers and lease duration text."""

from __future__ import annotations

import re
import secrets
from decimal import Decimal, InvalidOperation
from typing import Any

_LETTERS = "1234567890abcdefghijklmnopqrstuvwxyzABCDEFGHIJKLMNOPQRSTUVWXYZ"

_NANOS_PER_UNIT = {
    "ns": 1,
    "us": 1_000,
    "\u00b5s": 1_000,
    "\u03bcs": 1_000,
    "ms": 1_000_000,
    "s": 1_000_000_000,
    "m": 60 * 1_000_000_000,
    "h": 3600 * 1_000_000_000,
}

_COMPONENT = re.compile(r"(\d+\.?\d*|\.\d+)(ns|us|\u00b5s|\u03bcs|ms|s|m|h)")


def string_attr(value: str) -> dict[str, Any]:
    """Wrap a string as a DynamoDB attribute value."""
    return {"S": value}


def bytes_attr(value: bytes) -> dict[str, Any]:
    """Wrap binary data as a DynamoDB attribute value."""
    return {"B": bytes(value)}


def read_string_attr(attr: Any) -> str:
    """Return the string held by an attribute value, or an empty string."""
    if isinstance(attr, dict):
        value = attr.get("S")
        if isinstance(value, str):
            return value
    return ""


def read_bytes_attr(attr: Any) -> bytes | None:
    """Return the binary data held by an attribute value, or None."""
    if isinstance(attr, dict):
        value = attr.get("B")
        if isinstance(value, (bytes, bytearray, memoryview)):
            return bytes(value)
    return None


def random_string(n: int) -> str:
    """Return ``n`` random letters and digits from a secure source."""
    if n < 0:
        raise ValueError("length must not be negative")
    return "".join(secrets.choice(_LETTERS) for _ in range(n))


def _fraction(value: int, precision: int) -> tuple[str, int]:
    scale = 10**precision
    digits = f"{value % scale:0{precision}d}".rstrip("0")
    return (f".{digits}" if digits else ""), value // scale


def format_duration(seconds: float) -> str:
    """Format a duration in seconds in the compact ``1h2m3.5s`` notation."""
    nanos = round(seconds * 1_000_000_000)
    sign = "-" if nanos < 0 else ""
    nanos = abs(nanos)
    if nanos == 0:
        return "0s"
    if nanos < 1_000:
        return f"{sign}{nanos}ns"
    if nanos < 1_000_000:
        frac, whole = _fraction(nanos, 3)
        return f"{sign}{whole}{frac}\u00b5s"
    if nanos < 1_000_000_000:
        frac, whole = _fraction(nanos, 6)
        return f"{sign}{whole}{frac}ms"
    frac, total_seconds = _fraction(nanos, 9)
    text = f"{total_seconds % 60}{frac}s"
    if total_seconds >= 60:
        text = f"{(total_seconds // 60) % 60}m{text}"
    if total_seconds >= 3600:
        text = f"{total_seconds // 3600}h{text}"
    return sign + text


def parse_duration(text: str) -> float:
    """Parse a duration such as ``300ms`` or ``1h30m`` into seconds."""
    error = ValueError(f'time: invalid duration "{text}"')
    rest = text
    sign = 1
    if rest and rest[0] in "+-":
        sign = -1 if rest[0] == "-" else 1
        rest = rest[1:]
    if rest == "0":
        return 0.0
    if not rest:
        raise error
    total = Decimal(0)
    pos = 0
    while pos < len(rest):
        match = _COMPONENT.match(rest, pos)
        if match is None:
            raise error
        try:
            total += Decimal(match.group(1)) * _NANOS_PER_UNIT[match.group(2)]
        except InvalidOperation as exc:
            raise error from exc
        pos = match.end()
    return sign * int(total) / 1_000_000_000