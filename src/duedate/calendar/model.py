from __future__ import annotations

import datetime
from collections.abc import Iterator, Sequence
from functools import cached_property

import pytz
from frozendict import frozendict
from pydantic import Field, ValidationError, field_validator, model_validator
from pydantic_core import PydanticCustomError
from pytz.tzinfo import BaseTzInfo

from duedate.calendar.exceptions import InvalidCalendar
from duedate.core.exceptions import BaseDueDateException
from duedate.util.datetime_helpers import (
    END_OF_DAY,
    get_timezone,
    local_datetime,
    to_local,
)
from duedate.util.pydantic import FrozenModel, validation_error_message


class _CalendarModel(FrozenModel):
    @classmethod
    def _validation_exception(cls, error: ValidationError) -> BaseDueDateException:
        return InvalidCalendar(
            f"Invalid {cls.__name__}: {validation_error_message(error)}"
        )


class OpeningHour(_CalendarModel):
    """One stretch of opening hours within a day, in the service point's local time."""

    start_time: datetime.time = Field(alias="startTime")
    end_time: datetime.time = Field(alias="endTime")

    @model_validator(mode="after")
    def validate_order(self) -> OpeningHour:
        if self.start_time >= self.end_time:
            raise PydanticCustomError(
                "invalid_calendar",
                "Opening hours must end after they start ({start} - {end}).",
                {"start": self.start_time.isoformat(), "end": self.end_time.isoformat()},
            )
        return self

    def contains(self, time: datetime.time) -> bool:
        return self.start_time <= time <= self.end_time


class OpeningDay(_CalendarModel):
    """The opening hours of a service point on one date.

    A day is either closed, open all day (midnight to midnight), or open
    during one or more increasing, non-overlapping stretches of hours.
    """

    date: datetime.date
    is_open: bool = Field(alias="open")
    all_day: bool = Field(default=False, alias="allDay")
    hours: tuple[OpeningHour, ...] = Field(default=(), alias="openingHour")

    @model_validator(mode="after")
    def validate_hours(self) -> OpeningDay:
        if self.all_day and self.hours:
            raise PydanticCustomError(
                "invalid_calendar",
                "Opening day {date} is open all day but also lists opening hours.",
                {"date": self.date.isoformat()},
            )
        if not self.is_open and self.hours:
            raise PydanticCustomError(
                "invalid_calendar",
                "Opening day {date} is closed but lists opening hours.",
                {"date": self.date.isoformat()},
            )
        for previous, current in zip(self.hours, self.hours[1:]):
            if current.start_time < previous.end_time:
                raise PydanticCustomError(
                    "invalid_calendar",
                    "Opening hours of {date} overlap or are out of order.",
                    {"date": self.date.isoformat()},
                )
        return self

    @classmethod
    def closed(cls, date: datetime.date) -> OpeningDay:
        return cls(date=date, is_open=False)

    @classmethod
    def open_all_day(cls, date: datetime.date) -> OpeningDay:
        return cls(date=date, is_open=True, all_day=True)

    @classmethod
    def open_during(
        cls, date: datetime.date, *hours: tuple[datetime.time, datetime.time]
    ) -> OpeningDay:
        return cls(
            date=date,
            is_open=True,
            hours=tuple(
                OpeningHour(start_time=start, end_time=end) for start, end in hours
            ),
        )

    @property
    def is_all_day(self) -> bool:
        """Open from midnight to midnight.

        An open day without any listed hours counts as open all day.
        """
        return self.is_open and (self.all_day or not self.hours)

    @property
    def opening_time(self) -> datetime.time | None:
        if not self.is_open:
            return None
        return datetime.time.min if self.is_all_day else self.hours[0].start_time

    @property
    def closing_time(self) -> datetime.time | None:
        if not self.is_open:
            return None
        return END_OF_DAY if self.is_all_day else self.hours[-1].end_time

    def opens_at(self, tz: BaseTzInfo) -> datetime.datetime | None:
        """The first moment the service point is open on this day."""
        time = self.opening_time
        return local_datetime(self.date, time, tz) if time is not None else None

    def closes_at(self, tz: BaseTzInfo) -> datetime.datetime | None:
        """The last moment the service point is open on this day."""
        time = self.closing_time
        return local_datetime(self.date, time, tz) if time is not None else None

    def next_opening(self, time: datetime.time) -> datetime.time | None:
        """Where a loan ending at `time` on this day should be moved to.

        Before any stretch of opening hours starts, that is the start of the
        next stretch. A time past the start of one stretch but before the start
        of the following one also moves on to that following start, even if
        the earlier stretch is still open. Only inside the last stretch of the
        day, or exactly at the start of a stretch, does `time` stay where it is.
        None once the last stretch has closed.
        """
        if not self.is_open:
            return None
        if self.is_all_day:
            return time
        for hour, following in zip(self.hours, self.hours[1:]):
            if time <= hour.start_time:
                return hour.start_time
            if time < following.start_time:
                return following.start_time
        last = self.hours[-1]
        if time < last.start_time:
            return last.start_time
        return time if last.contains(time) else None


class OpeningHoursCalendar(_CalendarModel):
    """The opening days of one service point between `start_date` and `end_date`.

    Dates inside that window without an opening day of their own are closed.
    Dates outside the window are unknown, and any search through the calendar
    stops at its edges.
    """

    service_point_id: str | None = Field(default=None, alias="servicePointId")
    timezone: str = "UTC"
    start_date: datetime.date = Field(alias="startDate")
    end_date: datetime.date = Field(alias="endDate")
    opening_days: tuple[OpeningDay, ...] = Field(default=(), alias="openingDays")

    @field_validator("timezone")
    @classmethod
    def validate_timezone(cls, value: str) -> str:
        try:
            get_timezone(value)
        except pytz.UnknownTimeZoneError:
            raise PydanticCustomError(
                "invalid_calendar",
                "Unknown timezone '{timezone}'.",
                {"timezone": value},
            ) from None
        return value

    @field_validator("opening_days")
    @classmethod
    def sort_opening_days(cls, value: Sequence[OpeningDay]) -> tuple[OpeningDay, ...]:
        days = tuple(sorted(value, key=lambda day: day.date))
        for previous, current in zip(days, days[1:]):
            if previous.date == current.date:
                raise PydanticCustomError(
                    "invalid_calendar",
                    "The calendar has more than one opening day for {date}.",
                    {"date": current.date.isoformat()},
                )
        return days

    @model_validator(mode="after")
    def validate_window(self) -> OpeningHoursCalendar:
        if self.start_date > self.end_date:
            raise PydanticCustomError(
                "invalid_calendar",
                "The calendar window starts ({start}) after it ends ({end}).",
                {"start": self.start_date.isoformat(), "end": self.end_date.isoformat()},
            )
        for day in self.opening_days:
            if not self.start_date <= day.date <= self.end_date:
                raise PydanticCustomError(
                    "invalid_calendar",
                    "Opening day {date} is outside of the calendar window.",
                    {"date": day.date.isoformat()},
                )
        return self

    @cached_property
    def tz(self) -> BaseTzInfo:
        return get_timezone(self.timezone)

    @cached_property
    def days_by_date(self) -> frozendict[datetime.date, OpeningDay]:
        return frozendict({day.date: day for day in self.opening_days})

    @property
    def is_empty(self) -> bool:
        return not self.opening_days

    def covers(self, date: datetime.date) -> bool:
        return self.start_date <= date <= self.end_date

    def local_date(self, instant: datetime.datetime) -> datetime.date:
        """The date of `instant` on the service point's wall clock."""
        return to_local(instant, self.tz).date()

    def day(self, date: datetime.date) -> OpeningDay | None:
        """The opening day for `date`, or None if the date is outside the calendar."""
        if not self.covers(date):
            return None
        return self.days_by_date.get(date) or OpeningDay.closed(date)

    def day_containing(self, instant: datetime.datetime) -> OpeningDay | None:
        return self.day(self.local_date(instant))

    def previous_day(self, date: datetime.date) -> OpeningDay | None:
        return self.day(date - datetime.timedelta(days=1))

    def next_day(self, date: datetime.date) -> OpeningDay | None:
        return self.day(date + datetime.timedelta(days=1))

    def _walk(
        self, date: datetime.date, step: int, max_days: int | None
    ) -> Iterator[OpeningDay]:
        steps = 0
        current = date + datetime.timedelta(days=step)
        while self.covers(current) and (max_days is None or steps < max_days):
            yield self.day(current) or OpeningDay.closed(current)
            steps += 1
            current += datetime.timedelta(days=step)

    def previous_open_day(
        self, date: datetime.date, max_days: int | None = None
    ) -> OpeningDay | None:
        """The nearest open day before `date`, looking back at most `max_days` days."""
        return next((day for day in self._walk(date, -1, max_days) if day.is_open), None)

    def next_open_day(
        self, date: datetime.date, max_days: int | None = None
    ) -> OpeningDay | None:
        """The nearest open day after `date`, looking ahead at most `max_days` days."""
        return next((day for day in self._walk(date, 1, max_days) if day.is_open), None)
