"""Move a candidate due date so that it falls when the service point is open.

Which way it moves is decided by the loan policy's closed library due date
management strategy. Day-level strategies look at whole opening days and
only apply to long-term loans, while the service point hours strategies
look at opening hours and only apply to short-term loans.

Comparisons happen on the service point's wall clock, adjusted due dates
are always returned in UTC.
"""

from __future__ import annotations

import datetime

from duedate.calendar.model import OpeningDay, OpeningHoursCalendar
from duedate.core.exceptions import DueDateValueError
from duedate.policy.loan_policy import DueDateManagement
from duedate.service.configuration.due_date import DEFAULT_MAX_SEARCH_DAYS
from duedate.service.logging.configuration import LogLevel
from duedate.util.datetime_helpers import local_datetime, to_local, to_utc
from duedate.util.log import LoggerMixin, log_elapsed_time


class DueDateAdjuster(LoggerMixin):
    def __init__(self, max_search_days: int = DEFAULT_MAX_SEARCH_DAYS) -> None:
        self.max_search_days = max_search_days

    @log_elapsed_time(
        log_level=LogLevel.debug, message_prefix="Adjust due date", skip_start=True
    )
    def adjust(
        self,
        candidate: datetime.datetime,
        loan_start: datetime.datetime,
        calendar: OpeningHoursCalendar | None,
        strategy: DueDateManagement,
        is_short_term: bool,
    ) -> datetime.datetime:
        """Apply `strategy` to `candidate`.

        The candidate comes back unchanged when the strategy keeps due dates
        as they are, when it doesn't apply to loans of this granularity,
        when there is no calendar, or when the calendar doesn't reach far
        enough to find an open day.
        """
        candidate = to_utc(candidate)
        loan_start = to_utc(loan_start)

        if strategy.keeps_due_date:
            return candidate

        if not strategy.applies_to(is_short_term):
            self.log.warning(
                f"Strategy {strategy.name} does not apply to "
                f"{'short' if is_short_term else 'long'}-term loans, "
                f"keeping due date {candidate.isoformat()}."
            )
            return candidate

        if calendar is None or calendar.is_empty:
            self.log.warning(
                f"No calendar available, keeping due date {candidate.isoformat()}."
            )
            return candidate

        adjusted: datetime.datetime | None
        match strategy:
            case DueDateManagement.MOVE_TO_THE_END_OF_THE_PREVIOUS_OPEN_DAY:
                adjusted = self._end_of_previous_open_day(candidate, calendar)
            case DueDateManagement.MOVE_TO_THE_END_OF_THE_NEXT_OPEN_DAY:
                adjusted = self._end_of_next_open_day(candidate, calendar)
            case DueDateManagement.MOVE_TO_THE_END_OF_THE_CURRENT_DAY:
                adjusted = self._end_of_current_day(candidate, calendar)
            case DueDateManagement.MOVE_TO_END_OF_CURRENT_SERVICE_POINT_HOURS:
                adjusted = self._end_of_current_hours(loan_start, calendar)
            case DueDateManagement.MOVE_TO_BEGINNING_OF_NEXT_OPEN_SERVICE_POINT_HOURS:
                adjusted = self._beginning_of_next_hours(
                    candidate, loan_start, calendar
                )
            case _:
                raise DueDateValueError(
                    f"Unhandled due date management strategy: {strategy}"
                )

        if adjusted is None:
            self.log.warning(
                f"No suitable opening found in the calendar of service point "
                f"{calendar.service_point_id} ({calendar.start_date} to "
                f"{calendar.end_date}) for strategy {strategy.name}, "
                f"keeping due date {candidate.isoformat()}."
            )
            return candidate

        adjusted = to_utc(adjusted)
        if adjusted != candidate:
            self.log.debug(
                f"Moved due date from {candidate.isoformat()} to "
                f"{adjusted.isoformat()} ({strategy.name})."
            )
        return adjusted

    def _end_of_previous_open_day(
        self, candidate: datetime.datetime, calendar: OpeningHoursCalendar
    ) -> datetime.datetime | None:
        day = calendar.day_containing(candidate)
        if day is None:
            return None
        if day.is_open:
            return candidate
        return self._closing_of(
            calendar.previous_open_day(day.date, self.max_search_days), calendar
        )

    def _end_of_next_open_day(
        self, candidate: datetime.datetime, calendar: OpeningHoursCalendar
    ) -> datetime.datetime | None:
        day = calendar.day_containing(candidate)
        if day is None:
            return None
        if day.is_open:
            return candidate
        return self._closing_of(
            calendar.next_open_day(day.date, self.max_search_days), calendar
        )

    def _end_of_current_day(
        self, candidate: datetime.datetime, calendar: OpeningHoursCalendar
    ) -> datetime.datetime | None:
        day = calendar.day_containing(candidate)
        if day is None:
            return None
        if day.is_open:
            return day.closes_at(calendar.tz)
        return self._closing_of(
            calendar.previous_open_day(day.date, self.max_search_days), calendar
        )

    def _end_of_current_hours(
        self, loan_start: datetime.datetime, calendar: OpeningHoursCalendar
    ) -> datetime.datetime | None:
        # The day the loan starts on, not the day the candidate falls on.
        closing = self._closing_of(calendar.day_containing(loan_start), calendar)
        if closing is None or closing <= loan_start:
            # Already closed for the day when the loan started.
            return None
        return closing

    def _beginning_of_next_hours(
        self,
        candidate: datetime.datetime,
        loan_start: datetime.datetime,
        calendar: OpeningHoursCalendar,
    ) -> datetime.datetime | None:
        current_date = calendar.local_date(loan_start)
        current = calendar.day(current_date)
        if current is None:
            return None
        if current.is_all_day:
            return candidate

        offset = to_local(candidate, calendar.tz)
        if current.is_open and offset.date() == current_date:
            opening = current.next_opening(offset.time())
            if opening == offset.time():
                return candidate
            if opening is not None:
                return local_datetime(current_date, opening, calendar.tz)

        # The offset is past the last closing of the current day, crossed
        # midnight, or the current day is closed: roll over to the next open day.
        search_from = max(current_date + datetime.timedelta(days=1), offset.date())
        next_day = calendar.next_open_day(
            search_from - datetime.timedelta(days=1), self.max_search_days
        )
        return next_day.opens_at(calendar.tz) if next_day is not None else None

    @staticmethod
    def _closing_of(
        day: OpeningDay | None, calendar: OpeningHoursCalendar
    ) -> datetime.datetime | None:
        if day is None:
            return None
        return day.closes_at(calendar.tz)
