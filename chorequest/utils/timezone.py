"""
Timezone helpers for family-local calendar arithmetic.

All persisted datetimes are naive UTC; these helpers convert to a
family's local calendar and back.
"""

from datetime import datetime, timedelta
from typing import Optional

import pytz
import structlog

logger = structlog.get_logger(__name__)


def get_timezone(name: Optional[str]):
    """pytz timezone for ``name``, UTC when missing or unknown."""
    if not name:
        return pytz.utc
    try:
        return pytz.timezone(name)
    except pytz.UnknownTimeZoneError:
        logger.warning("Unknown timezone, falling back to UTC", timezone=name)
        return pytz.utc


def to_local(utc_naive: datetime, tz_name: Optional[str]) -> datetime:
    """Naive UTC -> aware datetime in the given timezone."""
    return pytz.utc.localize(utc_naive).astimezone(get_timezone(tz_name))


def local_to_utc_naive(local_naive: datetime, tz_name: Optional[str]) -> datetime:
    """Naive wall-clock time in ``tz_name`` -> naive UTC."""
    tz = get_timezone(tz_name)
    return tz.localize(local_naive).astimezone(pytz.utc).replace(tzinfo=None)


def start_of_local_day(utc_naive: datetime, tz_name: Optional[str]) -> datetime:
    """Local midnight of the day containing ``utc_naive``, as a naive local datetime."""
    local = to_local(utc_naive, tz_name)
    return datetime(local.year, local.month, local.day)


def days_between_in_timezone(first: datetime, second: datetime, tz_name: Optional[str]) -> int:
    """Whole calendar days between two naive UTC instants in a family's timezone."""
    day_one = start_of_local_day(first, tz_name)
    day_two = start_of_local_day(second, tz_name)
    return abs((day_two - day_one).days)
