"""
Timestamp parsing for both export formats.

JSON exports carry ISO-8601 strings:
    2023-06-04T04:07:59.107Z

HTML exports carry locale-formatted strings with a timezone abbreviation:
    Jun 29, 2021, 4:49:36 PM EDT        (en-US, U+202F before PM on newer exports)
    29 Jun 2021, 16:49:36 BST           (en-GB)
    Aug 9, 2019, 4:26:40 PM GMT+02:00

New locale layouts go in EXPORT_LAYOUTS, new abbreviations in
TZ_ABBREVIATIONS. Everything returned is tz-aware UTC.
"""

import re
from datetime import datetime, timedelta, timezone, tzinfo
from typing import Dict, Mapping, Optional, Union

from dateutil import parser as date_parser
from dateutil import tz

from .errors import TimestampError


# strptime layouts for the HTML export, without the timezone token
EXPORT_LAYOUTS = (
    "%b %d, %Y, %I:%M:%S %p",
    "%d %b %Y, %H:%M:%S",
)

# Abbreviation -> UTC offset in hours. Ambiguous abbreviations resolve to the
# zone Takeout uses them for (CST = US Central, IST = India).
TZ_ABBREVIATIONS: Dict[str, float] = {
    "UTC": 0, "GMT": 0, "WET": 0, "WEST": 1,
    "BST": 1, "CET": 1, "CEST": 2, "EET": 2, "EEST": 3, "MSK": 3,
    "IST": 5.5, "SGT": 8, "HKT": 8, "AWST": 8, "JST": 9, "KST": 9,
    "ACST": 9.5, "ACDT": 10.5, "AEST": 10, "AEDT": 11,
    "NZST": 12, "NZDT": 13,
    "NST": -3.5, "NDT": -2.5, "AST": -4, "ADT": -3,
    "EST": -5, "EDT": -4, "CST": -6, "CDT": -5,
    "MST": -7, "MDT": -6, "PST": -8, "PDT": -7,
    "AKST": -9, "AKDT": -8, "HST": -10,
}

_OFFSET_ZONE = re.compile(r"^(?:GMT|UTC)([+-])(\d{1,2})(?::?(\d{2}))?$")

ZoneSpec = Union[float, int, str]


def _zone_from_spec(name: str, spec: ZoneSpec) -> tzinfo:
    """Hours offset or IANA zone name -> tzinfo."""
    if isinstance(spec, (int, float)):
        return tz.tzoffset(name, int(spec * 3600))
    zone = tz.gettz(spec)
    if zone is None:
        raise TimestampError(f"Unknown timezone {spec!r} configured for {name!r}")
    return zone


def resolve_timezone(
    abbreviation: str,
    extra_zones: Optional[Mapping[str, ZoneSpec]] = None,
) -> tzinfo:
    """
    Resolve a timezone token from the HTML export.

    Lookup order: configured extra zones, built-in table, GMT+hh:mm form,
    then whatever dateutil knows by that name (e.g. MET).
    """
    if extra_zones and abbreviation in extra_zones:
        return _zone_from_spec(abbreviation, extra_zones[abbreviation])

    if abbreviation in TZ_ABBREVIATIONS:
        return tz.tzoffset(abbreviation, int(TZ_ABBREVIATIONS[abbreviation] * 3600))

    match = _OFFSET_ZONE.match(abbreviation)
    if match:
        sign, hours, minutes = match.groups()
        offset = timedelta(hours=int(hours), minutes=int(minutes or 0))
        if sign == "-":
            offset = -offset
        return tz.tzoffset(abbreviation, offset)

    zone = tz.gettz(abbreviation)
    if zone is not None:
        return zone

    raise TimestampError(f"Unknown timezone abbreviation: {abbreviation!r}")


def parse_export_timestamp(
    text: str,
    extra_zones: Optional[Mapping[str, ZoneSpec]] = None,
) -> datetime:
    """
    Parse an HTML export timestamp into a UTC datetime.

    Args:
        text: e.g. "Jun 29, 2021, 4:49:36 PM EDT"
        extra_zones: abbreviation -> hours offset or IANA name, checked
                     before the built-in table

    Raises:
        TimestampError: layout or timezone not recognized
    """
    if not isinstance(text, str):
        raise TimestampError(f"Expected timestamp string, got {type(text).__name__}")

    # U+202F / U+00A0 become plain spaces
    normalized = " ".join(text.split())
    if " " not in normalized:
        raise TimestampError(f"Unrecognized timestamp: {text!r}")

    body, zone_token = normalized.rsplit(" ", 1)
    zone = resolve_timezone(zone_token, extra_zones)

    for layout in EXPORT_LAYOUTS:
        try:
            naive = datetime.strptime(body, layout)
        except ValueError:
            continue
        return naive.replace(tzinfo=zone).astimezone(timezone.utc)

    raise TimestampError(f"Unrecognized timestamp: {text!r}")


def parse_iso_timestamp(text: str) -> datetime:
    """
    Parse a JSON export timestamp (ISO-8601) into a UTC datetime.

    Naive values are taken as UTC.
    """
    if not isinstance(text, str) or not text.strip():
        raise TimestampError(f"Expected timestamp string, got {text!r}")
    try:
        parsed = date_parser.isoparse(text.strip())
    except (ValueError, OverflowError) as e:
        raise TimestampError(f"Unrecognized timestamp: {text!r} ({e})") from e

    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed.astimezone(timezone.utc)
