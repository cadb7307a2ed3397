"""Clock and timezone helpers for timebox_sync.

Every timestamp the engine publishes is a naive wall-clock datetime in the
display timezone. Outliner text carries no zone, so feed timestamps are converted
into the display zone and then stripped of tzinfo.
"""

from __future__ import annotations

import datetime
import logging
import os
import zoneinfo
from functools import lru_cache

logger = logging.getLogger(__name__)

DEFAULT_DISPLAY_TIMEZONE = "UTC"
TEST_TIME_ENV = "TIMEBOX_TEST_TIME"


@lru_cache(maxsize=32)
def get_zone(tz_name: str | None) -> datetime.tzinfo:
    """Resolve an IANA timezone name, falling back to UTC on unknown names."""
    if not tz_name:
        return datetime.UTC
    try:
        return zoneinfo.ZoneInfo(tz_name)
    except (zoneinfo.ZoneInfoNotFoundError, ValueError):
        logger.warning("Unknown timezone %r, falling back to UTC", tz_name)
        return datetime.UTC


def now_utc() -> datetime.datetime:
    """Return current UTC time with tzinfo.

    Can be overridden for testing via the TIMEBOX_TEST_TIME environment variable
    (ISO 8601, e.g. "2024-01-10T08:00:00+00:00"; naive values are taken as UTC).
    """
    test_time = os.environ.get(TEST_TIME_ENV)
    if test_time:
        try:
            from dateutil import parser as date_parser

            dt = date_parser.isoparse(test_time)
            if dt.tzinfo is None:
                return dt.replace(tzinfo=datetime.UTC)
            return dt.astimezone(datetime.UTC)
        except (ValueError, OverflowError) as e:
            logger.warning("Invalid %s=%r, using real clock: %s", TEST_TIME_ENV, test_time, e)
    return datetime.datetime.now(datetime.UTC)


def now_local(tz_name: str | None = DEFAULT_DISPLAY_TIMEZONE) -> datetime.datetime:
    """Current naive wall-clock time in the display timezone."""
    return now_utc().astimezone(get_zone(tz_name)).replace(tzinfo=None)


def to_wall_clock(value: datetime.datetime, tz_name: str | None) -> datetime.datetime:
    """Convert an aware datetime into naive display-zone wall time.

    Naive inputs are treated as already being wall-clock ("floating") times.
    """
    if value.tzinfo is None:
        return value
    return value.astimezone(get_zone(tz_name)).replace(tzinfo=None)


def start_of_day(value: datetime.date) -> datetime.datetime:
    """Midnight (naive) of the given date."""
    return datetime.datetime.combine(value, datetime.time.min)
