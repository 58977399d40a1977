"""
Date and Time utilities

This module handles XMLTV timestamp parsing and local calendar-day boundaries.
Centralizes all date parsing logic to maintain consistency across the application.
"""
from datetime import date, datetime, time, timedelta
import logging

logger = logging.getLogger(__name__)

XMLTV_FORMAT_WITH_OFFSET = "%Y%m%d%H%M%S %z"
XMLTV_FORMAT_LOCAL = "%Y%m%d%H%M%S"


def parse_xmltv_timestamp(value: str) -> int | None:
    """
    Parse an XMLTV timestamp into Unix seconds

    The primary form carries a numeric offset ('20080715003000 -0600').
    Without an offset the value is read as system local time.
    Only numeric directives are used, so the ambient locale has no effect.

    Args:
        value: XMLTV time string

    Returns:
        Unix timestamp in seconds, or None when neither format matches
    """
    text = value.strip()
    try:
        return int(datetime.strptime(text, XMLTV_FORMAT_WITH_OFFSET).timestamp())
    except ValueError:
        pass

    try:
        # Naive datetime: timestamp() interprets it in the local zone
        return int(datetime.strptime(text, XMLTV_FORMAT_LOCAL).timestamp())
    except (ValueError, OverflowError, OSError):
        return None


def to_local_date(day: date | datetime) -> date:
    """Reduce a date or datetime to the local calendar date it falls on"""
    if isinstance(day, datetime):
        if day.tzinfo is not None:
            return day.astimezone().date()
        return day.date()
    return day


def local_day_bounds(day: date | datetime) -> tuple[int, int]:
    """
    Unix timestamps for the start of a local calendar day and of the day after

    Computed from local midnights, so DST transition days are 23 or 25 hours long.
    """
    local_date = to_local_date(day)
    start_of_day = datetime.combine(local_date, time.min)
    start_of_next_day = datetime.combine(local_date + timedelta(days=1), time.min)
    return int(start_of_day.timestamp()), int(start_of_next_day.timestamp())
