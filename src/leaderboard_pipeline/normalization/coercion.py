"""
Total conversion helpers for loosely-typed upstream values.

Nothing here raises: anything that cannot be converted falls back.
"""

from __future__ import annotations

import math
import re
from typing import Any

_NON_NUMERIC = re.compile(r"[^0-9.\-]")


def coerce_number(value: Any, fallback: Any = 0.0) -> Any:
    """
    Turn numbers and numeric-looking strings into a finite float.

    Strings keep only digits, '.' and '-' before parsing, so "$1,234.56 USD"
    becomes 1234.56. Booleans, None, containers, NaN/inf and unparseable
    strings all return `fallback` unchanged.
    """
    if isinstance(value, bool):
        return fallback

    if isinstance(value, (int, float)):
        try:
            number = float(value)
        except OverflowError:
            return fallback
        return number if math.isfinite(number) else fallback

    if isinstance(value, str):
        cleaned = _NON_NUMERIC.sub("", value)
        if not cleaned:
            return fallback
        try:
            number = float(cleaned)
        except ValueError:
            return fallback
        return number if math.isfinite(number) else fallback

    return fallback


def coerce_string(value: Any) -> str:
    """Trimmed string for str input, stringified finite numbers, else ""."""
    if isinstance(value, str):
        return value.strip()

    if isinstance(value, bool):
        return ""

    if isinstance(value, int):
        return str(value)

    if isinstance(value, float):
        if not math.isfinite(value):
            return ""
        return str(int(value)) if value.is_integer() else repr(value)

    return ""
