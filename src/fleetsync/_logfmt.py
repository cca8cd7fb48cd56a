"""Helpers for compact debug logging.

Telemetry payloads carry full location histories (up to the history cap per
device, for every device in a snapshot). This module shrinks such values
before they are emitted in DEBUG logs.
"""

from __future__ import annotations

from collections.abc import Mapping, Sequence
from typing import Any

_COLLAPSED_KEYS: frozenset[str] = frozenset({"locations", "devices"})


def compact_for_log(value: Any, *, max_items: int = 3, max_string: int = 256, _depth: int = 0) -> Any:
    """Return a shortened copy of *value* suitable for debug logs."""
    if _depth > 10:
        return "<max-depth>"

    if value is None or isinstance(value, (int, float, bool)):
        return value

    if isinstance(value, str):
        if len(value) > max_string:
            return f"{value[:max_string]}…<truncated>"
        return value

    if isinstance(value, bytes):
        return f"<bytes:{len(value)}b>"

    if isinstance(value, Mapping):
        compacted: dict[str, Any] = {}
        for k, v in value.items():
            key = str(k)
            if key in _COLLAPSED_KEYS and isinstance(v, Sequence) and not isinstance(v, (str, bytes)):
                compacted[key] = f"<{len(v)} {key}>"
            else:
                compacted[key] = compact_for_log(v, max_items=max_items, max_string=max_string, _depth=_depth + 1)
        return compacted

    if isinstance(value, Sequence) and not isinstance(value, (str, bytes, bytearray)):
        head = [compact_for_log(v, max_items=max_items, max_string=max_string, _depth=_depth + 1) for v in value[:max_items]]
        if len(value) > max_items:
            head.append(f"…<{len(value) - max_items} more>")
        return head

    return repr(value)
