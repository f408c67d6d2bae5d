"""Helpers for safe debug logging.

State values and service results can hold credentials (API tokens,
passwords) or arbitrarily large objects. This module provides a small
utility to redact sensitive fields and shorten values before emitting
DEBUG logs.
"""

from __future__ import annotations

from collections.abc import Mapping, Sequence
from typing import Any

_SENSITIVE_VALUE_KEYS: frozenset[str] = frozenset(
    {
        "password",
        "secret",
        "token",
        "accesstoken",
        "refreshtoken",
        "apikey",
        "api_key",
        "authorization",
        "cookie",
        "credentials",
    }
)

_MAX_ITEMS = 20


def redact_for_log(value: Any, *, max_string: int = 200, _depth: int = 0) -> Any:
    """Return a redacted copy of *value* suitable for debug logs."""
    if _depth > 8:
        return "<max-depth>"

    if value is None:
        return None

    if isinstance(value, str):
        if len(value) > max_string:
            return f"{value[:max_string]}…<truncated>"
        return value

    if isinstance(value, (int, float, bool)):
        return value

    if isinstance(value, bytes):
        return f"<bytes:{len(value)}b>"

    if isinstance(value, Mapping):
        redacted: dict[str, Any] = {}
        for index, (k, v) in enumerate(value.items()):
            if index >= _MAX_ITEMS:
                redacted["…"] = f"<{len(value) - _MAX_ITEMS} more>"
                break
            key = str(k)
            if key.lower() in _SENSITIVE_VALUE_KEYS:
                redacted[key] = "<redacted>"
            else:
                redacted[key] = redact_for_log(v, max_string=max_string, _depth=_depth + 1)
        return redacted

    if isinstance(value, Sequence) and not isinstance(value, (str, bytes, bytearray)):
        items = [redact_for_log(v, max_string=max_string, _depth=_depth + 1) for v in list(value)[:_MAX_ITEMS]]
        if len(value) > _MAX_ITEMS:
            items.append(f"<{len(value) - _MAX_ITEMS} more>")
        return items

    # Service instances and other objects: repr only, shortened.
    text = repr(value)
    if len(text) > max_string:
        return f"{text[:max_string]}…<truncated>"
    return text
