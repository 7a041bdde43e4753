from __future__ import annotations

import datetime
from enum import StrEnum
from typing import Any

from dateutil.relativedelta import relativedelta
from pydantic import Field, ValidationError, field_validator
from pydantic_core import PydanticCustomError

from duedate.core.exceptions import BaseDueDateException
from duedate.policy.exceptions import InvalidPeriod
from duedate.util.datetime_helpers import to_utc
from duedate.util.pydantic import FrozenModel, validation_error_message


class PeriodInterval(StrEnum):
    """The unit of a loan period, valued as the `intervalId` the circulation
    service stores on loan policies."""

    MINUTES = "Minutes"
    HOURS = "Hours"
    DAYS = "Days"
    WEEKS = "Weeks"
    MONTHS = "Months"

    @classmethod
    def _missing_(cls, value: object) -> PeriodInterval | None:
        # Accept "hours", "HOURS", "Hours" alike.
        if isinstance(value, str):
            normalized = value.strip().upper()
            for member in cls:
                if member.name == normalized:
                    return member
        return None

    @property
    def is_short_term(self) -> bool:
        """Hour and minute periods are short-term; everything else is long-term."""
        return self in (PeriodInterval.MINUTES, PeriodInterval.HOURS)


def _delta(
    interval: PeriodInterval, duration: int
) -> relativedelta | datetime.timedelta:
    match interval:
        case PeriodInterval.MONTHS:
            return relativedelta(months=duration)
        case PeriodInterval.WEEKS:
            return relativedelta(weeks=duration)
        case PeriodInterval.DAYS:
            return relativedelta(days=duration)
        case PeriodInterval.HOURS:
            return datetime.timedelta(hours=duration)
        case PeriodInterval.MINUTES:
            return datetime.timedelta(minutes=duration)
    raise InvalidPeriod(f"Unrecognized loan period interval: {interval!r}.")


class Period(FrozenModel):
    """A loan period: a positive number of minutes, hours, days, weeks or months."""

    duration: int
    interval: PeriodInterval = Field(alias="intervalId")

    @field_validator("duration")
    @classmethod
    def validate_duration(cls, value: int) -> int:
        if value <= 0:
            raise PydanticCustomError(
                "invalid_period",
                "Loan period duration must be a positive integer, not {duration}.",
                {"duration": value},
            )
        return value

    @field_validator("interval", mode="before")
    @classmethod
    def validate_interval(cls, value: Any) -> Any:
        try:
            return PeriodInterval(value)
        except ValueError:
            raise PydanticCustomError(
                "invalid_period",
                "Unrecognized loan period interval: '{interval}'.",
                {"interval": value},
            ) from None

    @classmethod
    def _validation_exception(cls, error: ValidationError) -> BaseDueDateException:
        return InvalidPeriod(f"Invalid loan period: {validation_error_message(error)}")

    @classmethod
    def minutes(cls, duration: int) -> Period:
        return cls(duration=duration, interval=PeriodInterval.MINUTES)

    @classmethod
    def hours(cls, duration: int) -> Period:
        return cls(duration=duration, interval=PeriodInterval.HOURS)

    @classmethod
    def days(cls, duration: int) -> Period:
        return cls(duration=duration, interval=PeriodInterval.DAYS)

    @classmethod
    def weeks(cls, duration: int) -> Period:
        return cls(duration=duration, interval=PeriodInterval.WEEKS)

    @classmethod
    def months(cls, duration: int) -> Period:
        return cls(duration=duration, interval=PeriodInterval.MONTHS)

    @property
    def is_short_term(self) -> bool:
        return PeriodInterval(self.interval).is_short_term

    def add_to(self, instant: datetime.datetime) -> datetime.datetime:
        return add_period(instant, self)

    def __str__(self) -> str:
        return f"{self.duration} {self.interval}"


def add_period(instant: datetime.datetime, period: Period) -> datetime.datetime:
    """Add a loan period to an instant.

    Months, weeks and days are added on the calendar (adding a month to
    January 31st gives the last day of February), hours and minutes as
    elapsed time. The addition is done in UTC, so the result does not depend
    on daylight saving transitions of the service point's timezone. Naive
    instants are taken to be UTC.

    :raise InvalidPeriod: If the duration is not positive or the interval is unknown.
    """
    duration = period.duration
    if isinstance(duration, bool) or not isinstance(duration, int) or duration <= 0:
        raise InvalidPeriod(
            f"Loan period duration must be a positive integer, not {duration!r}."
        )
    try:
        interval = PeriodInterval(period.interval)
    except ValueError:
        raise InvalidPeriod(
            f"Unrecognized loan period interval: {period.interval!r}."
        ) from None

    return to_utc(instant) + _delta(interval, duration)
