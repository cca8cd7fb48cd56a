"""Normalization helpers.

Centralizes defensive parsing of loosely typed inputs (query strings,
environment variables, client-supplied JSON numbers).
"""

from __future__ import annotations

import math
from typing import Any


def safe_float(value: Any) -> float | None:
    if value is None or value == "":
        return None
    if isinstance(value, bool):
        return None
    try:
        result = float(value)
    except (TypeError, ValueError):
        return None
    if math.isnan(result) or math.isinf(result):
        return None
    return result


def safe_int(value: Any) -> int | None:
    parsed = safe_float(value)
    if parsed is None:
        return None
    return int(parsed)



def safe_integral(value: Any) -> int | None:
    """Like :func:`safe_int` but rejects values with a fractional part."""
    parsed = safe_float(value)
    if parsed is None or not parsed.is_integer():
        return None
    return int(parsed)


def is_clean_id(value: Any) -> bool:
    """True for a non-empty string without surrounding whitespace."""
    return isinstance(value, str) and bool(value) and value == value.strip()
