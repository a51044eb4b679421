"""
Standardized app-timezone utilities for the EcoTrack backend.
Daily logs, streaks and challenge progress are all keyed by a calendar date in
this timezone, so every "what day is it" question goes through here.
"""

import os
import datetime
import pytz
from typing import Union

# App timezone, configurable per deployment
APP_TZ = pytz.timezone(os.environ.get('APP_TIMEZONE', 'Asia/Kolkata'))

DATE_FORMAT = "%Y-%m-%d"

def get_current_datetime() -> datetime.datetime:
    """
    Get current datetime in the app timezone.

    Returns:
        datetime.datetime: Current datetime in the app timezone
    """
    return datetime.datetime.now(APP_TZ)

def get_current_date() -> datetime.date:
    """
    Get current date in the app timezone.

    Returns:
        datetime.date: Current date in the app timezone
    """
    return get_current_datetime().date()

def convert_to_app_tz(dt: Union[datetime.datetime, datetime.date]) -> datetime.datetime:
    """
    Convert a datetime or date to the app timezone.
    Naive values are assumed to already be app-local.
    """
    if isinstance(dt, datetime.date) and not isinstance(dt, datetime.datetime):
        dt = datetime.datetime.combine(dt, datetime.time.min)

    if dt.tzinfo is None:
        dt = APP_TZ.localize(dt)
    else:
        dt = dt.astimezone(APP_TZ)

    return dt

def parse_log_date(value: Union[str, datetime.date, datetime.datetime]) -> datetime.date:
    """
    Normalize a log date given as 'YYYY-MM-DD', date or datetime into a date.

    Raises:
        ValueError: if the string is not a valid ISO calendar date
    """
    if isinstance(value, datetime.datetime):
        return convert_to_app_tz(value).date()
    if isinstance(value, datetime.date):
        return value
    return datetime.datetime.strptime(value, DATE_FORMAT).date()

def format_log_date(value: datetime.date) -> str:
    return value.strftime(DATE_FORMAT)

def days_between(earlier: datetime.date, later: datetime.date) -> int:
    """Whole calendar days from `earlier` to `later` (negative if reversed)."""
    return (later - earlier).days

def get_utc_now() -> datetime.datetime:
    return datetime.datetime.now(datetime.timezone.utc)

__all__ = [
    'APP_TZ',
    'DATE_FORMAT',
    'get_current_datetime',
    'get_current_date',
    'convert_to_app_tz',
    'parse_log_date',
    'format_log_date',
    'days_between',
    'get_utc_now',
]
