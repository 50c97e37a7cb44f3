"""
PURPOSE: Value coercion helpers shared by payload-reading code.

Webhook payloads and strategy configs arrive as loosely-typed JSON (numbers,
strings, booleans, blanks). These helpers give every reader the same rules:
blank strings count as missing, truthiness accepts "true"/"1"/"yes", and
codes are uppercased.
"""

from typing import Any, Iterable, Mapping, Optional


def normalize_string(value: Any) -> str:
    """Return value as a stripped string; None and False become "", lists are comma-joined."""
    if value is None or value is False:
        return ""
    if isinstance(value, (list, tuple)):
        return ",".join(normalize_string(item) for item in value).strip()
    return str(value).strip()


def to_upper(value: Any) -> str:
    """Return the stripped, uppercased string form of value."""
    return normalize_string(value).upper()


def is_truthy(value: Any) -> bool:
    """
    PURPOSE: Interpret a loosely-typed flag.

    Args:
        value: bool, None, or any value whose string form may be "true", "1" or "yes".

    Returns:
        bool: True only for True or the accepted truthy spellings.
    """
    if value is True:
        return True
    if value is False or value is None:
        return False
    return str(value).strip().lower() in ("true", "1", "yes")


def read_payload_value(payload: Optional[Mapping[str, Any]], key: Optional[str]) -> Any:
    """
    PURPOSE: Read a single payload field, treating None and blank strings as missing.

    Args:
        payload: Normalized webhook payload.
        key: Field name.

    Returns:
        Any: Stripped string, the raw non-string value, or None when missing.
    """
    if not isinstance(payload, Mapping) or not key:
        return None
    value = payload.get(key)
    if value is None:
        return None
    if isinstance(value, str):
        trimmed = value.strip()
        return trimmed or None
    return value


def read_first_payload_value(payload: Optional[Mapping[str, Any]], keys: Iterable[str]) -> Any:
    """Return the first non-missing value among keys, or None."""
    for key in keys:
        value = read_payload_value(payload, key)
        if value is not None:
            return value
    return None


def split_symbols(value: Any) -> list[str]:
    """Split a comma-separated symbol list, dropping blank entries."""
    raw = normalize_string(value)
    if not raw:
        return []
    return [part.strip() for part in raw.split(",") if part.strip()]
