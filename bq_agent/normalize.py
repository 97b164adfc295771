"""Convert BigQuery row values into JSON-portable scalars.

Checks run in a fixed order and a value takes the first rule that applies:
null, wide numerics, dates, ``.value`` wrappers, bytes, other composites,
then plain scalars unchanged.
"""

from __future__ import annotations

import base64
from datetime import date, datetime, time
from decimal import Decimal
from typing import Any, Mapping

from .utils import json_dumps


# integers beyond this lose precision in JSON consumers; accepted limitation
MAX_SAFE_INTEGER = 2**53 - 1

_PLAIN_SCALARS = (str, bool, int, float)


def _normalize_numeric(value: int | Decimal) -> int | float:
    if isinstance(value, Decimal):
        if value.is_finite() and value == value.to_integral_value() and abs(value) <= MAX_SAFE_INTEGER:
            return int(value)
        return float(value)
    return float(value)


def _is_wide_numeric(value: Any) -> bool:
    if isinstance(value, bool):
        return False
    if isinstance(value, Decimal):
        return True
    return isinstance(value, int) and abs(value) > MAX_SAFE_INTEGER


def normalize_value(value: Any) -> Any:
    if value is None:
        return None
    if _is_wide_numeric(value):
        return _normalize_numeric(value)
    if isinstance(value, (datetime, date, time)):
        return value.isoformat()
    if not isinstance(value, (_PLAIN_SCALARS, bytes, bytearray, Mapping, list, tuple)) and hasattr(
        value, "value"
    ):
        return normalize_value(value.value)
    if isinstance(value, (bytes, bytearray)):
        return base64.b64encode(bytes(value)).decode("ascii")
    if not isinstance(value, _PLAIN_SCALARS):
        return json_dumps(value)
    return value


def normalize_row(row: Mapping[str, Any]) -> dict[str, Any]:
    return {key: normalize_value(value) for key, value in row.items()}
