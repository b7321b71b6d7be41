import string

import pytest

from dynalock.attributes import (
    bytes_attr,
    format_duration,
    parse_duration,
    random_string,
    read_bytes_attr,
    read_string_attr,
    string_attr,
)


def test_string_attr_wire_form():
    assert string_attr("spock") == {"S": "spock"}


def test_bytes_attr_wire_form():
    assert bytes_attr(b"some content a") == {"B": b"some content a"}


def test_string_round_trip():
    assert read_string_attr(string_attr("kirk")) == "kirk"


def test_bytes_round_trip_from_bytearray():
    assert read_bytes_attr(bytes_attr(bytearray(b"uhura"))) == b"uhura"


def test_read_string_of_other_kinds_is_empty():
    assert read_string_attr(bytes_attr(b"x")) == ""
    assert read_string_attr(None) == ""


def test_read_bytes_of_other_kinds_is_none():
    assert read_bytes_attr(string_attr("x")) is None
    assert read_bytes_attr(None) is None


@pytest.mark.parametrize("length", [0, 1, 32, 100])
def test_random_string_length_and_alphabet(length):
    value = random_string(length)
    assert len(value) == length
    assert set(value) <= set(string.ascii_letters + string.digits)


def test_random_strings_differ():
    assert random_string(32) != random_string(32)
    assert len({random_string(32) for _ in range(20)}) == 20


def test_random_string_negative_length():
    with pytest.raises(ValueError):
        random_string(-1)


def test_format_default_lease_duration():
    assert format_duration(20) == "20s"


def test_format_zero():
    assert format_duration(0) == "0s"


def test_format_minutes():
    assert format_duration(300) == "5m0s"


def test_format_negative_mirrors_positive():
    assert format_duration(-2.5) == "-" + format_duration(2.5)


@pytest.mark.parametrize(
    "seconds",
    [1e-9, 1.5e-6, 0.001, 0.1, 0.5, 1.5, 3, 20, 59.999, 60, 61.25, 3600, 5400.25, 90061, -2.5],
)
def test_format_parse_round_trip(seconds):
    assert parse_duration(format_duration(seconds)) == pytest.approx(seconds)


@pytest.mark.parametrize("text", ["1ns", "1.5\u00b5s", "100ms", "3s", "3m0s", "1h0m0s", "1h2m3.5s"])
def test_parse_format_round_trip(text):
    assert format_duration(parse_duration(text)) == text


def test_parse_plain_seconds():
    assert parse_duration("3s") == 3


def test_parse_equivalent_spellings():
    assert parse_duration("1h30m") == parse_duration("90m")
    assert parse_duration("1.5s") == parse_duration("1500ms")
    assert parse_duration("1\u00b5s") == parse_duration("1us") == parse_duration("1000ns")
    assert parse_duration("1\u03bcs") == parse_duration("1us")
    assert parse_duration(".5s") == parse_duration("500ms")


def test_parse_signs():
    assert parse_duration("+3s") == parse_duration("3s")
    assert parse_duration("-3s") == -parse_duration("3s")


def test_parse_bare_zero():
    assert parse_duration("0") == 0
    assert parse_duration("-0") == 0


@pytest.mark.parametrize("text", ["", "bad duration", "5", "1x", "-", "+", ".s", "1s junk", "s"])
def test_parse_invalid(text):
    with pytest.raises(ValueError):
        parse_duration(text)