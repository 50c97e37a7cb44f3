"""
PURPOSE: Normalize inbound Chartink webhook payloads.

Chartink posts its fields at the top level, but some relays wrap the signal
in a `payload` object. Only that one nesting level is unwrapped.

CALLED BY:
    - api/routes_webhook.py (before the event is persisted)
"""

from typing import Any

from tradehook.config.constants import BLOCKED_HEADERS, DIRECT_SIGNAL_KEYS


def normalize_payload(payload: Any) -> Any:
    """
    PURPOSE: Return the signal object carried by a webhook body.

    Args:
        payload: Parsed webhook body (dict, list, str, or anything else).

    Returns:
        Any: The input itself when it already carries a direct signal key or
            is not a wrapper, otherwise the nested `payload` dict.
    """
    if not isinstance(payload, dict):
        return payload
    if any(key in payload for key in DIRECT_SIGNAL_KEYS):
        return payload
    nested = payload.get("payload")
    if isinstance(nested, dict):
        return nested
    return payload


def sanitize_headers(headers: Any) -> dict:
    """Lowercase header names and drop credentials before persisting."""
    return {
        str(name).lower(): value
        for name, value in dict(headers or {}).items()
        if str(name).lower() not in BLOCKED_HEADERS
    }
