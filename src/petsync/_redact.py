"""Bounded, redacted copies of bridge payloads and feed snapshots for DEBUG logs."""

from __future__ import annotations

from typing import Any

_REDACTED_KEYS = frozenset({"token", "sessiontoken", "authorization", "cookie"})

_MAX_ITEMS = 20
_MAX_STRING = 256


def redact_for_log(value: Any) -> Any:
    """Mask session credentials and cap long strings and lists in decoded JSON."""
    if isinstance(value, dict):
        return {
            key: "<redacted>" if str(key).lower() in _REDACTED_KEYS else redact_for_log(item)
            for key, item in value.items()
        }
    if isinstance(value, list):
        head = [redact_for_log(item) for item in value[:_MAX_ITEMS]]
        if len(value) > _MAX_ITEMS:
            head.append(f"<+{len(value) - _MAX_ITEMS} more>")
        return head
    if isinstance(value, str) and len(value) > _MAX_STRING:
        return f"{value[:_MAX_STRING]}<truncated>"
    return value
