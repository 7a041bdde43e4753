import datetime
from collections.abc import Callable
from functools import wraps
from typing import overload

import pytz
from pytz.tzinfo import BaseTzInfo

END_OF_DAY = datetime.time(23, 59, 59, 999000)
"""
The last instant of a local day, as stored for all-day openings.

Due dates are kept with millisecond precision, so this is 23:59:59.999.
"""


def _wrapper[T, **P](func: Callable[P, T]) -> Callable[P, T]:
    @wraps(func)
    def wrapper(*args: P.args, **kwargs: P.kwargs) -> T:
        kwargs["tzinfo"] = pytz.UTC
        return func(*args, **kwargs)

    return wrapper


datetime_utc = _wrapper(datetime.datetime)
"""
Return a datetime object but with UTC information from pytz.
"""


def from_timestamp(ts: float) -> datetime.datetime:
    """Return a UTC datetime object from a timestamp.

    :return: datetime object
    """
    return datetime.datetime.fromtimestamp(ts, tz=pytz.UTC)


def utc_now() -> datetime.datetime:
    """Get the current time in UTC.

    :return: datetime object
    """
    return datetime.datetime.now(tz=pytz.UTC)


@overload
def to_utc(dt: datetime.datetime) -> datetime.datetime: ...


@overload
def to_utc(dt: datetime.datetime | None) -> datetime.datetime | None: ...


def to_utc(dt: datetime.datetime | None) -> datetime.datetime | None:
    """This converts a naive datetime object that represents UTC into
    an aware datetime object.

    :return: datetime object, or None if `dt` was None.
    """
    if dt is None:
        return None
    if dt.tzinfo is None:
        return dt.replace(tzinfo=pytz.UTC)
    if dt.tzinfo == pytz.UTC:
        # Already UTC.
        return dt
    return dt.astimezone(pytz.UTC)


def get_timezone(name: str) -> BaseTzInfo:
    """Look up a timezone by its IANA name.

    :raise pytz.UnknownTimeZoneError: If there is no such timezone.
    """
    return pytz.timezone(name)


def to_local(dt: datetime.datetime, tz: BaseTzInfo) -> datetime.datetime:
    """Express an instant in the given timezone. Naive datetimes are taken to be UTC."""
    return to_utc(dt).astimezone(tz)


def local_datetime(
    date: datetime.date, time: datetime.time, tz: BaseTzInfo
) -> datetime.datetime:
    """Build an aware datetime from a local wall-clock date and time.

    Ambiguous wall-clock times (the repeated hour when clocks go back) resolve
    to standard time, and non-existent ones (the skipped hour when clocks go
    forward) are shifted by the DST offset by `normalize`.
    """
    naive = datetime.datetime.combine(date, time)
    return tz.normalize(tz.localize(naive, is_dst=False))
