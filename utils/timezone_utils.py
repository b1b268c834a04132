"""Timezone utilities for the ledger engine.

Ledger events and stock transactions are dated in the investor's home
timezone. This module resolves "today" in that timezone, normalizes the
date-like values accepted by the models and guards against future-dated
entries.
"""

from datetime import date, datetime, timedelta
from typing import Optional, Union

import pandas as pd
import pytz

from config.constants import DEFAULT_HOME_TIMEZONE, FUTURE_DATE_TOLERANCE_DAYS

DateLike = Union[date, datetime, str, pd.Timestamp]


def get_home_timezone(name: Optional[str] = None) -> pytz.BaseTzInfo:
    """Get the configured home timezone object.

    Args:
        name: Optional explicit timezone name; defaults to the configured one

    Returns:
        pytz timezone for the investor's home market
    """
    if name is None:
        from config.settings import get_settings
        name = get_settings().get_timezone_name()
    return pytz.timezone(name or DEFAULT_HOME_TIMEZONE)


def get_current_home_time(name: Optional[str] = None) -> datetime:
    """Get the current time in the home timezone."""
    return datetime.now(get_home_timezone(name))


def today_in_home_timezone(name: Optional[str] = None) -> date:
    return get_current_home_time(name).date()


def to_home_date(value: datetime, name: Optional[str] = None) -> date:
    """Convert a datetime to the calendar date it falls on in the home timezone.

    Naive datetimes are assumed to already be in home time.
    """
    if value.tzinfo is None:
        return value.date()
    return value.astimezone(get_home_timezone(name)).date()


def parse_date(value: DateLike) -> date:
    """Normalize a date-like value to a ``date``.

    Args:
        value: A date, datetime, pandas Timestamp or ISO-8601 string

    Returns:
        The calendar date

    Raises:
        ValueError: If the value cannot be interpreted as a date
    """
    if isinstance(value, pd.Timestamp):
        value = value.to_pydatetime()
    if isinstance(value, datetime):
        return to_home_date(value, DEFAULT_HOME_TIMEZONE) if value.tzinfo else value.date()
    if isinstance(value, date):
        return value
    if isinstance(value, str):
        text = value.strip()
        try:
            return date.fromisoformat(text[:10])
        except ValueError as e:
            raise ValueError(f"Invalid date string: {value!r}") from e
    raise ValueError(f"Unsupported date value: {value!r}")


def is_future_date(value: date, tolerance_days: int = FUTURE_DATE_TOLERANCE_DAYS,
                   today: Optional[date] = None) -> bool:
    """Check whether a date lies beyond today (plus tolerance) in home time.

    The tolerance absorbs entries made late in the evening abroad, which are
    already "tomorrow" in the home timezone.
    """
    reference = today or today_in_home_timezone()
    return value > reference + timedelta(days=tolerance_days)
