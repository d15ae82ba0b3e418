"""
Tests for export timestamp parsing.
Run: python -m pytest watch_history/test_timestamps.py -v
"""

from datetime import datetime, timezone

import pytest

from .errors import TimestampError
from .timestamps import (
    TZ_ABBREVIATIONS, parse_export_timestamp, parse_iso_timestamp, resolve_timezone
)


def utc(*args) -> datetime:
    return datetime(*args, tzinfo=timezone.utc)


class TestExportTimestamp:
    """HTML export timestamps."""

    def test_us_layout(self):
        assert parse_export_timestamp("Jun 29, 2021, 4:49:36 PM EDT") == utc(2021, 6, 29, 20, 49, 36)

    def test_single_digit_day(self):
        assert parse_export_timestamp("Aug 9, 2019, 4:26:40 PM EDT") == utc(2019, 8, 9, 20, 26, 40)

    def test_narrow_no_break_space_before_meridiem(self):
        text = "Jan 1, 2024, 3:04:05\u202fPM PST"
        assert parse_export_timestamp(text) == utc(2024, 1, 1, 23, 4, 5)

    def test_morning_crosses_date_line(self):
        assert parse_export_timestamp("Jun 4, 2023, 12:07:59 AM EDT") == utc(2023, 6, 4, 4, 7, 59)

    def test_gb_layout(self):
        assert parse_export_timestamp("29 Jun 2021, 16:49:36 BST") == utc(2021, 6, 29, 15, 49, 36)

    def test_gmt_offset_token(self):
        assert parse_export_timestamp("Aug 9, 2019, 4:26:40 PM GMT+02:00") == utc(2019, 8, 9, 14, 26, 40)
        assert parse_export_timestamp("Aug 9, 2019, 4:26:40 PM GMT-3") == utc(2019, 8, 9, 19, 26, 40)

    def test_result_is_utc(self):
        parsed = parse_export_timestamp("Jun 29, 2021, 4:49:36 PM CEST")
        assert parsed.utcoffset().total_seconds() == 0

    def test_extra_zone_hours(self):
        parsed = parse_export_timestamp("Jan 1, 2024, 3:04:05 PM ART", {"ART": -3})
        assert parsed == utc(2024, 1, 1, 18, 4, 5)

    def test_extra_zone_iana_name(self):
        parsed = parse_export_timestamp("Jan 1, 2024, 3:04:05 PM WIB", {"WIB": "Asia/Jakarta"})
        assert parsed == utc(2024, 1, 1, 8, 4, 5)

    def test_extra_zone_overrides_table(self):
        parsed = parse_export_timestamp("Jan 1, 2024, 3:04:05 PM IST", {"IST": 0})
        assert parsed == utc(2024, 1, 1, 15, 4, 5)

    def test_zone_known_to_dateutil(self):
        parsed = parse_export_timestamp("Jan 1, 2024, 3:04:05 PM MET")
        assert parsed == utc(2024, 1, 1, 14, 4, 5)

    @pytest.mark.parametrize("text", [
        "",
        "yesterday",
        "Jun 29, 2021, 4:49:36 PM XYZ",
        "sometime last week",
        "2021-06-29 16:49:36 UTC",
    ])
    def test_unrecognized(self, text):
        with pytest.raises(TimestampError):
            parse_export_timestamp(text)

    def test_non_string(self):
        with pytest.raises(TimestampError):
            parse_export_timestamp(None)


class TestResolveTimezone:

    def test_table_is_consistent(self):
        for name, hours in TZ_ABBREVIATIONS.items():
            zone = resolve_timezone(name)
            assert zone.utcoffset(datetime(2024, 1, 1)).total_seconds() == hours * 3600

    def test_unknown_configured_zone(self):
        with pytest.raises(TimestampError):
            resolve_timezone("ZZT", {"ZZT": "Not/A_Zone"})

    def test_dateutil_fallback(self):
        zone = resolve_timezone("EET")
        assert zone.utcoffset(datetime(2024, 1, 1)).total_seconds() == 2 * 3600


class TestIsoTimestamp:
    """JSON export timestamps."""

    def test_zulu_with_millis(self):
        assert parse_iso_timestamp("2023-06-04T04:07:59.107Z") == utc(2023, 6, 4, 4, 7, 59, 107000)

    def test_offset_normalized(self):
        assert parse_iso_timestamp("2023-06-04T06:07:59+02:00") == utc(2023, 6, 4, 4, 7, 59)

    def test_naive_taken_as_utc(self):
        assert parse_iso_timestamp("2023-06-04T04:07:59") == utc(2023, 6, 4, 4, 7, 59)

    @pytest.mark.parametrize("value", ["", "   ", "garbage", "2023-13-45T99:00:00Z", None, 1685851679])
    def test_invalid(self, value):
        with pytest.raises(TimestampError):
            parse_iso_timestamp(value)
