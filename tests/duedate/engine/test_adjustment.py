import datetime

import pytest
from pytest import LogCaptureFixture

from duedate.calendar.model import OpeningHoursCalendar
from duedate.engine.adjustment import DueDateAdjuster
from duedate.policy.loan_policy import DueDateManagement
from duedate.util.datetime_helpers import END_OF_DAY, datetime_utc
from tests.fixtures.calendar import CalendarFixture

MONDAY = datetime.date(2024, 3, 4)
WEDNESDAY = datetime.date(2024, 3, 6)
THURSDAY = datetime.date(2024, 3, 7)
FRIDAY = datetime.date(2024, 3, 8)
SATURDAY = datetime.date(2024, 3, 9)

# Open Wednesday to Friday, 09:00 to 18:00, for two weeks.
WEEKDAYS_CLOSED = (0, 1, 5, 6)

PREVIOUS = DueDateManagement.MOVE_TO_THE_END_OF_THE_PREVIOUS_OPEN_DAY
NEXT = DueDateManagement.MOVE_TO_THE_END_OF_THE_NEXT_OPEN_DAY
END_OF_DAY_STRATEGY = DueDateManagement.MOVE_TO_THE_END_OF_THE_CURRENT_DAY
END_OF_HOURS = DueDateManagement.MOVE_TO_END_OF_CURRENT_SERVICE_POINT_HOURS
NEXT_HOURS = DueDateManagement.MOVE_TO_BEGINNING_OF_NEXT_OPEN_SERVICE_POINT_HOURS


class AdjustmentFixture:
    def __init__(self, calendar_fixture: CalendarFixture) -> None:
        self.calendars = calendar_fixture
        self.adjuster = DueDateAdjuster()
        self.calendar = calendar_fixture.week(
            MONDAY, "09:00-18:00", closed_weekdays=WEEKDAYS_CLOSED, days=14
        )

    def adjust(
        self,
        candidate: datetime.datetime,
        strategy: DueDateManagement,
        *,
        loan_start: datetime.datetime | None = None,
        calendar: OpeningHoursCalendar | None = None,
        is_short_term: bool = False,
    ) -> datetime.datetime:
        return self.adjuster.adjust(
            candidate,
            loan_start or candidate - datetime.timedelta(days=21),
            calendar or self.calendar,
            strategy,
            is_short_term,
        )

    def short_term(
        self,
        loan_start: datetime.datetime,
        duration: datetime.timedelta,
        strategy: DueDateManagement,
        calendar: OpeningHoursCalendar,
    ) -> datetime.datetime:
        return self.adjuster.adjust(
            loan_start + duration, loan_start, calendar, strategy, True
        )


@pytest.fixture
def adjustment_fixture(calendar_fixture: CalendarFixture) -> AdjustmentFixture:
    return AdjustmentFixture(calendar_fixture)


class TestKeepStrategies:
    @pytest.mark.parametrize(
        "strategy",
        [
            DueDateManagement.KEEP_THE_CURRENT_DUE_DATE,
            DueDateManagement.KEEP_THE_CURRENT_DUE_DATE_TIME,
        ],
    )
    @pytest.mark.parametrize("is_short_term", [True, False])
    def test_unchanged(
        self,
        adjustment_fixture: AdjustmentFixture,
        strategy: DueDateManagement,
        is_short_term: bool,
    ) -> None:
        # Saturday is closed.
        candidate = datetime_utc(2024, 3, 9, 12)
        assert (
            adjustment_fixture.adjust(candidate, strategy, is_short_term=is_short_term)
            == candidate
        )


class TestFallbacks:
    @pytest.mark.parametrize("strategy", list(DueDateManagement))
    def test_no_calendar(
        self,
        adjustment_fixture: AdjustmentFixture,
        strategy: DueDateManagement,
        caplog: LogCaptureFixture,
    ) -> None:
        candidate = datetime_utc(2024, 3, 9, 12)
        loan_start = datetime_utc(2024, 3, 9, 10)
        for is_short_term in (True, False):
            result = adjustment_fixture.adjuster.adjust(
                candidate, loan_start, None, strategy, is_short_term
            )
            assert result == candidate

    def test_no_calendar_is_logged(
        self, adjustment_fixture: AdjustmentFixture, caplog: LogCaptureFixture
    ) -> None:
        candidate = datetime_utc(2024, 3, 9, 12)
        adjustment_fixture.adjuster.adjust(
            candidate, candidate, None, PREVIOUS, False
        )
        assert "No calendar available" in caplog.text

    def test_empty_calendar(self, adjustment_fixture: AdjustmentFixture) -> None:
        empty = OpeningHoursCalendar(start_date=MONDAY, end_date=SATURDAY)
        candidate = datetime_utc(2024, 3, 9, 12)
        assert adjustment_fixture.adjuster.adjust(
            candidate, candidate, empty, PREVIOUS, False
        ) == candidate

    @pytest.mark.parametrize(
        "strategy, is_short_term",
        [
            (PREVIOUS, True),
            (NEXT, True),
            (END_OF_DAY_STRATEGY, True),
            (END_OF_HOURS, False),
            (NEXT_HOURS, False),
        ],
    )
    def test_not_applicable(
        self,
        adjustment_fixture: AdjustmentFixture,
        strategy: DueDateManagement,
        is_short_term: bool,
        caplog: LogCaptureFixture,
    ) -> None:
        candidate = datetime_utc(2024, 3, 9, 12)
        result = adjustment_fixture.adjust(
            candidate,
            strategy,
            loan_start=datetime_utc(2024, 3, 9, 10),
            is_short_term=is_short_term,
        )
        assert result == candidate
        assert f"Strategy {strategy.name} does not apply" in caplog.text

    def test_outside_calendar(
        self, adjustment_fixture: AdjustmentFixture, caplog: LogCaptureFixture
    ) -> None:
        candidate = datetime_utc(2024, 4, 20, 12)
        assert adjustment_fixture.adjust(candidate, PREVIOUS) == candidate
        assert "No suitable opening found" in caplog.text

    def test_search_exhausted(
        self, adjustment_fixture: AdjustmentFixture, calendar_fixture: CalendarFixture
    ) -> None:
        calendar = calendar_fixture.calendar(
            calendar_fixture.closed(FRIDAY),
            calendar_fixture.closed(SATURDAY),
        )
        candidate = datetime_utc(2024, 3, 9, 12)
        assert adjustment_fixture.adjust(candidate, PREVIOUS, calendar=calendar) == candidate
        assert adjustment_fixture.adjust(candidate, NEXT, calendar=calendar) == candidate

    def test_max_search_days(self, adjustment_fixture: AdjustmentFixture) -> None:
        # Sunday to Friday is two days back, one day is not enough.
        candidate = datetime_utc(2024, 3, 10, 12)
        adjuster = DueDateAdjuster(max_search_days=1)
        assert (
            adjuster.adjust(
                candidate, candidate, adjustment_fixture.calendar, PREVIOUS, False
            )
            == candidate
        )
        adjuster = DueDateAdjuster(max_search_days=2)
        assert adjuster.adjust(
            candidate, candidate, adjustment_fixture.calendar, PREVIOUS, False
        ) == datetime_utc(2024, 3, 8, 18)


class TestDayStrategies:
    def test_previous_open_day(self, adjustment_fixture: AdjustmentFixture) -> None:
        # Saturday and Sunday move back to Friday's closing time.
        assert adjustment_fixture.adjust(
            datetime_utc(2024, 3, 9, 23, 59, 59), PREVIOUS
        ) == datetime_utc(2024, 3, 8, 18)
        assert adjustment_fixture.adjust(
            datetime_utc(2024, 3, 10, 0, 0), PREVIOUS
        ) == datetime_utc(2024, 3, 8, 18)

        # Tuesday moves back across the weekend and Monday.
        assert adjustment_fixture.adjust(
            datetime_utc(2024, 3, 12, 12), PREVIOUS
        ) == datetime_utc(2024, 3, 8, 18)

    def test_previous_open_day_when_open(
        self, adjustment_fixture: AdjustmentFixture
    ) -> None:
        candidate = datetime_utc(2024, 3, 7, 23, 59, 59)
        assert adjustment_fixture.adjust(candidate, PREVIOUS) == candidate

    def test_previous_open_day_all_day(
        self, adjustment_fixture: AdjustmentFixture, calendar_fixture: CalendarFixture
    ) -> None:
        calendar = calendar_fixture.calendar(
            calendar_fixture.all_day(FRIDAY), calendar_fixture.closed(SATURDAY)
        )
        result = adjustment_fixture.adjust(
            datetime_utc(2024, 3, 9, 12), PREVIOUS, calendar=calendar
        )
        assert result == datetime.datetime.combine(FRIDAY, END_OF_DAY, result.tzinfo)
        assert result.time() == datetime.time(23, 59, 59, 999000)

    def test_next_open_day(self, adjustment_fixture: AdjustmentFixture) -> None:
        # Saturday moves forward to next Wednesday.
        assert adjustment_fixture.adjust(
            datetime_utc(2024, 3, 9, 12), NEXT
        ) == datetime_utc(2024, 3, 13, 18)

        candidate = datetime_utc(2024, 3, 8, 23, 59, 59)
        assert adjustment_fixture.adjust(candidate, NEXT) == candidate

    def test_end_of_current_day(self, adjustment_fixture: AdjustmentFixture) -> None:
        # Open days are truncated to their closing time, even inside opening hours.
        assert adjustment_fixture.adjust(
            datetime_utc(2024, 3, 7, 10), END_OF_DAY_STRATEGY
        ) == datetime_utc(2024, 3, 7, 18)
        assert adjustment_fixture.adjust(
            datetime_utc(2024, 3, 7, 20), END_OF_DAY_STRATEGY
        ) == datetime_utc(2024, 3, 7, 18)

        # Closed days fall back to the previous open day.
        assert adjustment_fixture.adjust(
            datetime_utc(2024, 3, 9, 10), END_OF_DAY_STRATEGY
        ) == datetime_utc(2024, 3, 8, 18)

    def test_service_point_timezone(
        self, adjustment_fixture: AdjustmentFixture, calendar_fixture: CalendarFixture
    ) -> None:
        calendar = calendar_fixture.week(
            MONDAY,
            "09:00-18:00",
            closed_weekdays=WEEKDAYS_CLOSED,
            timezone="America/New_York",
        )
        # 02:00 UTC on Saturday is still Friday evening in New York, and Friday is open.
        candidate = datetime_utc(2024, 3, 9, 2)
        assert adjustment_fixture.adjust(candidate, PREVIOUS, calendar=calendar) == candidate

        # Saturday noon in New York moves back to Friday 18:00 EST, 23:00 UTC.
        result = adjustment_fixture.adjust(
            datetime_utc(2024, 3, 9, 17), PREVIOUS, calendar=calendar
        )
        assert result == datetime_utc(2024, 3, 8, 23)
        assert result.utcoffset() == datetime.timedelta(0)

    def test_deterministic(self, adjustment_fixture: AdjustmentFixture) -> None:
        candidate = datetime_utc(2024, 3, 9, 12)
        results = {adjustment_fixture.adjust(candidate, NEXT) for _ in range(3)}
        assert results == {datetime_utc(2024, 3, 13, 18)}


class TestEndOfCurrentServicePointHours:
    def test_closing_time_of_loan_day(
        self, adjustment_fixture: AdjustmentFixture
    ) -> None:
        result = adjustment_fixture.short_term(
            datetime_utc(2024, 3, 7, 10),
            datetime.timedelta(hours=2),
            END_OF_HOURS,
            adjustment_fixture.calendar,
        )
        assert result == datetime_utc(2024, 3, 7, 18)

    def test_all_day(
        self, adjustment_fixture: AdjustmentFixture, calendar_fixture: CalendarFixture
    ) -> None:
        calendar = calendar_fixture.week(MONDAY)
        result = adjustment_fixture.short_term(
            datetime_utc(2024, 3, 7, 10),
            datetime.timedelta(hours=2),
            END_OF_HOURS,
            calendar,
        )
        assert result == datetime.datetime.combine(THURSDAY, END_OF_DAY, result.tzinfo)

    def test_loan_day_closed(self, adjustment_fixture: AdjustmentFixture) -> None:
        loan_start = datetime_utc(2024, 3, 9, 10)
        result = adjustment_fixture.short_term(
            loan_start,
            datetime.timedelta(hours=2),
            END_OF_HOURS,
            adjustment_fixture.calendar,
        )
        assert result == loan_start + datetime.timedelta(hours=2)

    def test_loan_day_already_closed(
        self, adjustment_fixture: AdjustmentFixture, caplog: LogCaptureFixture
    ) -> None:
        # Thursday closes at 18:00, before the loan starts.
        loan_start = datetime_utc(2024, 3, 7, 20)
        result = adjustment_fixture.short_term(
            loan_start,
            datetime.timedelta(hours=2),
            END_OF_HOURS,
            adjustment_fixture.calendar,
        )
        assert result == datetime_utc(2024, 3, 7, 22)
        assert result > loan_start
        assert "No suitable opening found" in caplog.text

    def test_closing_at_loan_start(self, adjustment_fixture: AdjustmentFixture) -> None:
        loan_start = datetime_utc(2024, 3, 7, 18)
        result = adjustment_fixture.short_term(
            loan_start,
            datetime.timedelta(minutes=30),
            END_OF_HOURS,
            adjustment_fixture.calendar,
        )
        assert result == loan_start + datetime.timedelta(minutes=30)


class TestBeginningOfNextServicePointHours:
    @pytest.fixture
    def split_hours(self, calendar_fixture: CalendarFixture) -> OpeningHoursCalendar:
        return calendar_fixture.calendar(
            calendar_fixture.hours(WEDNESDAY, "09:00-13:00", "14:00-18:00"),
            calendar_fixture.hours(THURSDAY, "09:00-13:00", "14:00-18:00"),
            calendar_fixture.hours(FRIDAY, "10:00-13:00", "14:00-18:00"),
            calendar_fixture.closed(SATURDAY),
        )

    @pytest.mark.parametrize(
        "start, duration, expected",
        [
            pytest.param(
                datetime_utc(2024, 3, 7, 10),
                datetime.timedelta(hours=1),
                datetime_utc(2024, 3, 7, 14),
                id="inside hours moves to next hours",
            ),
            pytest.param(
                datetime_utc(2024, 3, 7, 12),
                datetime.timedelta(hours=1),
                datetime_utc(2024, 3, 7, 14),
                id="at the end of hours",
            ),
            pytest.param(
                datetime_utc(2024, 3, 7, 12),
                datetime.timedelta(minutes=90),
                datetime_utc(2024, 3, 7, 14),
                id="between hours",
            ),
            pytest.param(
                datetime_utc(2024, 3, 7, 12),
                datetime.timedelta(hours=2),
                datetime_utc(2024, 3, 7, 14),
                id="at the start of hours",
            ),
            pytest.param(
                datetime_utc(2024, 3, 7, 15),
                datetime.timedelta(hours=1),
                datetime_utc(2024, 3, 7, 16),
                id="inside last hours",
            ),
            pytest.param(
                datetime_utc(2024, 3, 7, 14),
                datetime.timedelta(hours=4),
                datetime_utc(2024, 3, 7, 18),
                id="at the end of last hours",
            ),
            pytest.param(
                datetime_utc(2024, 3, 7, 7),
                datetime.timedelta(hours=1),
                datetime_utc(2024, 3, 7, 9),
                id="before opening",
            ),
            pytest.param(
                datetime_utc(2024, 3, 7, 16),
                datetime.timedelta(hours=5),
                datetime_utc(2024, 3, 8, 10),
                id="after closing rolls over",
            ),
            pytest.param(
                datetime_utc(2024, 3, 6, 17),
                datetime.timedelta(hours=10),
                datetime_utc(2024, 3, 7, 9),
                id="across midnight rolls over",
            ),
        ],
    )
    def test_adjust(
        self,
        adjustment_fixture: AdjustmentFixture,
        split_hours: OpeningHoursCalendar,
        start: datetime.datetime,
        duration: datetime.timedelta,
        expected: datetime.datetime,
    ) -> None:
        assert (
            adjustment_fixture.short_term(start, duration, NEXT_HOURS, split_hours)
            == expected
        )

    def test_touching_hours(
        self, adjustment_fixture: AdjustmentFixture, calendar_fixture: CalendarFixture
    ) -> None:
        calendar = calendar_fixture.calendar(
            calendar_fixture.hours(THURSDAY, "09:00-12:00", "12:00-17:00")
        )
        result = adjustment_fixture.short_term(
            datetime_utc(2024, 3, 7, 11), datetime.timedelta(hours=1), NEXT_HOURS, calendar
        )
        assert result == datetime_utc(2024, 3, 7, 12)

    def test_all_day_current_day(
        self, adjustment_fixture: AdjustmentFixture, calendar_fixture: CalendarFixture
    ) -> None:
        # Open all day: elapsed time is added without looking at hours, even
        # across midnight.
        calendar = calendar_fixture.calendar(
            calendar_fixture.all_day(THURSDAY), calendar_fixture.closed(FRIDAY)
        )
        result = adjustment_fixture.short_term(
            datetime_utc(2024, 3, 7, 23, 50),
            datetime.timedelta(minutes=30),
            NEXT_HOURS,
            calendar,
        )
        assert result == datetime_utc(2024, 3, 8, 0, 20)

    def test_current_day_closed(
        self, adjustment_fixture: AdjustmentFixture, calendar_fixture: CalendarFixture
    ) -> None:
        calendar = calendar_fixture.calendar(
            calendar_fixture.closed(SATURDAY),
            calendar_fixture.closed(datetime.date(2024, 3, 10)),
            calendar_fixture.hours(datetime.date(2024, 3, 11), "08:30-17:00"),
        )
        result = adjustment_fixture.short_term(
            datetime_utc(2024, 3, 9, 10), datetime.timedelta(hours=2), NEXT_HOURS, calendar
        )
        assert result == datetime_utc(2024, 3, 11, 8, 30)

    def test_rolls_over_to_all_day(
        self, adjustment_fixture: AdjustmentFixture, calendar_fixture: CalendarFixture
    ) -> None:
        calendar = calendar_fixture.calendar(
            calendar_fixture.hours(THURSDAY, "09:00-17:00"),
            calendar_fixture.all_day(FRIDAY),
        )
        result = adjustment_fixture.short_term(
            datetime_utc(2024, 3, 7, 16), datetime.timedelta(hours=3), NEXT_HOURS, calendar
        )
        assert result == datetime_utc(2024, 3, 8, 0, 0)

    def test_no_open_day_to_roll_over_to(
        self, adjustment_fixture: AdjustmentFixture, calendar_fixture: CalendarFixture
    ) -> None:
        calendar = calendar_fixture.calendar(
            calendar_fixture.hours(THURSDAY, "09:00-17:00"),
            calendar_fixture.closed(FRIDAY),
        )
        start = datetime_utc(2024, 3, 7, 16)
        result = adjustment_fixture.short_term(
            start, datetime.timedelta(hours=3), NEXT_HOURS, calendar
        )
        assert result == start + datetime.timedelta(hours=3)

    def test_service_point_timezone(
        self, adjustment_fixture: AdjustmentFixture, calendar_fixture: CalendarFixture
    ) -> None:
        calendar = calendar_fixture.calendar(
            calendar_fixture.hours(THURSDAY, "09:00-17:00"),
            calendar_fixture.hours(FRIDAY, "09:00-17:00"),
            timezone="Europe/Paris",
        )
        # 15:00 in Paris (CET, UTC+1) plus three hours is after closing, so
        # the loan is due when Friday opens, 09:00 CET.
        result = adjustment_fixture.short_term(
            datetime_utc(2024, 3, 7, 14), datetime.timedelta(hours=3), NEXT_HOURS, calendar
        )
        assert result == datetime_utc(2024, 3, 8, 8)
