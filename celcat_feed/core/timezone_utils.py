"""Time and timezone helpers for celcat_feed."""

from __future__ import annotations

import datetime
import logging
import os
import zoneinfo
from functools import lru_cache
from typing import Optional

from dateutil import parser as date_parser

logger = logging.getLogger(__name__)

DEFAULT_CALENDAR_TIMEZONE = "Europe/Paris"

# The academic year starts on August 1st
ACADEMIC_YEAR_START_MONTH = 8


def now_utc() -> datetime.datetime:
    """Return current UTC time with tzinfo.

    Can be overridden for testing via the CELCAT_FEED_TEST_TIME environment
    variable (ISO 8601, e.g. "2024-10-01T08:00:00+02:00").
    """
    test_time = os.environ.get("CELCAT_FEED_TEST_TIME")
    if test_time:
        try:
            dt = date_parser.isoparse(test_time)
            if dt.tzinfo is None:
                dt = dt.replace(tzinfo=datetime.timezone.utc)
            return dt.astimezone(datetime.timezone.utc)
        except ValueError:
            logger.warning("Invalid CELCAT_FEED_TEST_TIME=%r; using real time", test_time)
    return datetime.datetime.now(datetime.timezone.utc)


@lru_cache(maxsize=16)
def get_zone(tz_name: str) -> datetime.tzinfo:
    """Resolve an IANA zone name, falling back to the default calendar zone."""
    try:
        return zoneinfo.ZoneInfo(tz_name)
    except (zoneinfo.ZoneInfoNotFoundError, ValueError):
        logger.warning("Unknown timezone %r, using %s", tz_name, DEFAULT_CALENDAR_TIMEZONE)
        return zoneinfo.ZoneInfo(DEFAULT_CALENDAR_TIMEZONE)


def parse_upstream_datetime(value: object, tz_name: str) -> Optional[datetime.datetime]:
    """Parse a CELCAT timestamp string.

    Naive timestamps are local wall-clock times in ``tz_name``.

    Returns:
        Aware datetime, or None when the value is missing or unparseable
    """
    if not isinstance(value, str) or not value.strip():
        return None
    try:
        dt = date_parser.isoparse(value.strip())
    except (ValueError, OverflowError):
        try:
            dt = date_parser.parse(value.strip())
        except (ValueError, OverflowError):
            return None
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=get_zone(tz_name))
    return dt


def _to_zone(dt: datetime.datetime, zone: datetime.tzinfo) -> datetime.datetime:
    return dt.astimezone(zone) if dt.tzinfo is not None else dt


def academic_start_year(now: datetime.datetime) -> int:
    """Year Y of the academic year (Aug 1 Y .. Jul 31 Y+1) containing ``now``."""
    if now.month >= ACADEMIC_YEAR_START_MONTH:
        return now.year
    return now.year - 1


def academic_year_bounds(
    now: datetime.datetime, tz_name: str = DEFAULT_CALENDAR_TIMEZONE
) -> tuple[datetime.datetime, datetime.datetime]:
    """Return the half-open window [Aug 1 Y, Aug 1 Y+1) for the current academic year.

    Y is decided from the wall-clock date in ``tz_name``, not in UTC.
    """
    zone = get_zone(tz_name)
    year = academic_start_year(_to_zone(now, zone))
    start = datetime.datetime(year, ACADEMIC_YEAR_START_MONTH, 1, tzinfo=zone)
    end = datetime.datetime(year + 1, ACADEMIC_YEAR_START_MONTH, 1, tzinfo=zone)
    return start, end


def full_academic_year_range(
    now: datetime.datetime, tz_name: str = DEFAULT_CALENDAR_TIMEZONE
) -> tuple[str, str]:
    """Date range requested from CELCAT: Aug 1 Y through Aug 31 Y+1 (YYYY-MM-DD)."""
    year = academic_start_year(_to_zone(now, get_zone(tz_name)))
    return f"{year}-08-01", f"{year + 1}-08-31"


def serialize_iso(dt: Optional[datetime.datetime]) -> Optional[str]:
    """Serialize a datetime as ISO 8601, using 'Z' for UTC."""
    if dt is None:
        return None
    text = dt.isoformat()
    if text.endswith("+00:00"):
        text = text[:-6] + "Z"
    return text
