"""
PURPOSE: Time utilities for trade windows and daily quota boundaries.

Trade windows are configured as local "HH:mm" strings. All comparisons are
done in minutes-of-day in the configured trading timezone, and the daily
quota uses the local calendar day converted back to a naive UTC range for
database queries.
"""

import re
from datetime import datetime, time, timedelta, timezone
from typing import Optional, Tuple
from zoneinfo import ZoneInfo

_HHMM_RE = re.compile(r"^([01]\d|2[0-3]):([0-5]\d)$")


def get_utc_now() -> datetime:
    """
    PURPOSE: Return the current UTC time as a timezone-aware datetime object.

    Returns:
        datetime: Current UTC time with timezone info.
    """
    return datetime.now(timezone.utc)


def to_naive_utc(dt: datetime) -> datetime:
    """
    PURPOSE: Convert a datetime to naive UTC for storage.

    Naive inputs are assumed to already be UTC.

    Args:
        dt: Datetime to convert.

    Returns:
        datetime: Naive datetime in UTC.
    """
    if dt.tzinfo is None:
        return dt
    return dt.astimezone(timezone.utc).replace(tzinfo=None)


def isoformat_utc(dt: datetime) -> str:
    """
    PURPOSE: Render a datetime as an ISO-8601 UTC string with millisecond precision.

    Args:
        dt: Aware or naive-UTC datetime.

    Returns:
        str: e.g. "2024-02-19T09:30:00.000Z"
    """
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    dt = dt.astimezone(timezone.utc)
    return dt.strftime("%Y-%m-%dT%H:%M:%S.") + f"{dt.microsecond // 1000:03d}Z"


def is_valid_hhmm(value: Optional[str]) -> bool:
    """Return True when value is a 24h "HH:mm" string."""
    return bool(value) and _HHMM_RE.match(str(value).strip()) is not None


def parse_hhmm(value: Optional[str]) -> Optional[int]:
    """
    PURPOSE: Parse an "HH:mm" string into minutes after midnight.

    Args:
        value: Time string such as "09:15". Blank or malformed values yield None.

    Returns:
        Optional[int]: Minutes after midnight, or None.
    """
    raw = str(value or "").strip()
    match = _HHMM_RE.match(raw)
    if not match:
        return None
    return int(match.group(1)) * 60 + int(match.group(2))


def local_minutes(moment: datetime, tz_name: str) -> int:
    """
    PURPOSE: Return the minutes-of-day of moment in the given timezone.

    Args:
        moment: Aware datetime (naive values are treated as UTC).
        tz_name: IANA timezone name, e.g. "Asia/Kolkata".

    Returns:
        int: Minutes after local midnight.
    """
    if moment.tzinfo is None:
        moment = moment.replace(tzinfo=timezone.utc)
    local = moment.astimezone(ZoneInfo(tz_name))
    return local.hour * 60 + local.minute


def local_day_range_utc(moment: datetime, tz_name: str) -> Tuple[datetime, datetime]:
    """
    PURPOSE: Compute the naive-UTC [start, end) range of the local day containing moment.

    CALLED BY: TradeGate.remaining_quota

    Args:
        moment: Aware datetime (naive values are treated as UTC).
        tz_name: IANA timezone name.

    Returns:
        Tuple[datetime, datetime]: Naive UTC start (inclusive) and end (exclusive).
    """
    tz = ZoneInfo(tz_name)
    if moment.tzinfo is None:
        moment = moment.replace(tzinfo=timezone.utc)
    local_date = moment.astimezone(tz).date()
    start_local = datetime.combine(local_date, time.min, tzinfo=tz)
    end_local = datetime.combine(local_date + timedelta(days=1), time.min, tzinfo=tz)
    return to_naive_utc(start_local), to_naive_utc(end_local)
