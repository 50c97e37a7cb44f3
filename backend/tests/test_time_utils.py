"""
PURPOSE: Tests for time utility functions.

Tests trade-window timekeeping:
- HH:mm parsing and validation
- Local minutes-of-day in the trading timezone
- Local calendar day converted to a naive UTC range
- ISO rendering with millisecond precision
"""

from datetime import datetime, timezone

import pytest

from tradehook.utils.time_utils import (
    get_utc_now,
    is_valid_hhmm,
    isoformat_utc,
    local_day_range_utc,
    local_minutes,
    parse_hhmm,
    to_naive_utc,
)


class TestParseHHMM:
    """Test HH:mm parsing."""

    def test_parse_valid(self):
        assert parse_hhmm("09:15") == 555
        assert parse_hhmm("00:00") == 0
        assert parse_hhmm("23:59") == 1439

    @pytest.mark.parametrize("value", [None, "", "9:15", "24:00", "12:60", "noon"])
    def test_parse_invalid(self, value):
        assert parse_hhmm(value) is None

    def test_is_valid_hhmm(self):
        assert is_valid_hhmm("15:30")
        assert not is_valid_hhmm("15.30")
        assert not is_valid_hhmm("")


class TestLocalTime:
    """Test trading-timezone conversions."""

    def test_local_minutes_kolkata(self):
        """03:45 UTC is 09:15 IST."""
        moment = datetime(2024, 2, 19, 3, 45, tzinfo=timezone.utc)
        assert local_minutes(moment, "Asia/Kolkata") == 9 * 60 + 15

    def test_naive_moment_treated_as_utc(self):
        assert local_minutes(datetime(2024, 2, 19, 3, 45), "Asia/Kolkata") == 555

    def test_local_day_range(self):
        """The IST day of 2024-02-19 spans 2024-02-18T18:30Z to 2024-02-19T18:30Z."""
        moment = datetime(2024, 2, 19, 10, 0, tzinfo=timezone.utc)
        start, end = local_day_range_utc(moment, "Asia/Kolkata")
        assert start == datetime(2024, 2, 18, 18, 30)
        assert end == datetime(2024, 2, 19, 18, 30)
        assert start.tzinfo is None

    def test_local_day_range_after_local_midnight(self):
        """20:00 UTC is already the next IST day."""
        moment = datetime(2024, 2, 19, 20, 0, tzinfo=timezone.utc)
        start, _ = local_day_range_utc(moment, "Asia/Kolkata")
        assert start == datetime(2024, 2, 19, 18, 30)


class TestFormatting:
    """Test UTC helpers."""

    def test_get_utc_now_is_aware(self):
        assert get_utc_now().tzinfo is not None

    def test_to_naive_utc(self):
        aware = datetime(2024, 2, 19, 9, 0, tzinfo=timezone.utc)
        assert to_naive_utc(aware) == datetime(2024, 2, 19, 9, 0)

    def test_isoformat_utc_milliseconds(self):
        moment = datetime(2024, 2, 19, 9, 30, 0, 123456, tzinfo=timezone.utc)
        assert isoformat_utc(moment) == "2024-02-19T09:30:00.123Z"
        assert isoformat_utc(datetime(2024, 2, 19, 9, 30)) == "2024-02-19T09:30:00.000Z"
