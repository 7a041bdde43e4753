from __future__ import annotations

from duedate.core.exceptions import DueDateValueError, IntegrationException


class InvalidCalendar(DueDateValueError):
    """An opening day or calendar breaks one of its rules, for example
    an all-day opening that also lists opening hours."""


class CalendarUnavailable(IntegrationException):
    """The calendar for a service point could not be retrieved or understood.

    Due date calculation never fails because of this, it falls back to the
    unadjusted due date instead.
    """
