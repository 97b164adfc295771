from __future__ import annotations

import json
from datetime import date, datetime, time, timezone
from decimal import Decimal

from bq_agent.normalize import MAX_SAFE_INTEGER, normalize_row, normalize_value


class Wrapped:
    def __init__(self, value) -> None:
        self.value = value


class Opaque:
    def __init__(self) -> None:
        self.kind = "point"


def test_null_and_plain_scalars_pass_through() -> None:
    assert normalize_value(None) is None
    for value in ("inbound", True, False, 7, 3.5, -MAX_SAFE_INTEGER):
        assert normalize_value(value) == value
        assert type(normalize_value(value)) is type(value)


def test_wide_integers_become_floats() -> None:
    big = MAX_SAFE_INTEGER + 10
    assert normalize_value(big) == float(big)
    assert isinstance(normalize_value(big), float)


def test_decimals_prefer_int_when_integral_and_safe() -> None:
    assert normalize_value(Decimal("12")) == 12
    assert isinstance(normalize_value(Decimal("12")), int)
    assert normalize_value(Decimal("12.25")) == 12.25
    assert isinstance(normalize_value(Decimal("1e30")), float)


def test_dates_become_iso_strings() -> None:
    ts = datetime(2024, 3, 4, 5, 6, 7, tzinfo=timezone.utc)
    assert normalize_value(ts) == "2024-03-04T05:06:07+00:00"
    assert normalize_value(date(2024, 3, 4)) == "2024-03-04"
    assert normalize_value(time(9, 30)) == "09:30:00"


def test_value_wrappers_are_unwrapped() -> None:
    assert normalize_value(Wrapped("POINT(1 2)")) == "POINT(1 2)"
    assert normalize_value(Wrapped(None)) is None
    assert normalize_value(Wrapped(date(2024, 1, 1))) == "2024-01-01"
    assert normalize_value(Wrapped({"lat": 1})) == '{"lat":1}'


def test_composites_become_canonical_json() -> None:
    assert normalize_value({"b": 1, "a": [1, 2]}) == '{"a":[1,2],"b":1}'
    assert normalize_value([date(2024, 1, 1), Decimal("1.5")]) == '["2024-01-01",1.5]'
    assert json.loads(normalize_value(Opaque())).startswith("<")


def test_bytes_become_base64() -> None:
    assert normalize_value(b"hello") == "aGVsbG8="


def test_normalized_values_survive_json_transport() -> None:
    row = {
        "direction": "inbound",
        "answered": True,
        "duration": 12.5,
        "count": 3,
        "missing": None,
        "day": date(2024, 5, 1),
    }
    normalized = normalize_row(row)
    assert json.loads(json.dumps(normalized)) == normalized
    assert normalized["day"] == "2024-05-01"
