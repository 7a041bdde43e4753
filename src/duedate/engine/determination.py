"""Work out the due date of a loan, at checkout or at renewal.

The nominal due date comes from the loan policy: a rolling period added to
the loan date, or the due date of a fixed schedule. It is then limited by
the policy's due date limit, if it has one, and finally moved by the closed
library strategy so that it doesn't fall when the service point is closed.
"""

from __future__ import annotations

import datetime
from dataclasses import dataclass
from typing import Protocol

from duedate.calendar.exceptions import InvalidCalendar
from duedate.calendar.model import OpeningHoursCalendar
from duedate.calendar.provider import CalendarProvider
from duedate.core.exceptions import IntegrationException
from duedate.engine.adjustment import DueDateAdjuster
from duedate.policy.exceptions import (
    FixedDueDateScheduleNotFound,
    InvalidPeriod,
    LoanPolicyConfigurationError,
    LoanPolicyNotFound,
)
from duedate.policy.fixed_schedule import FixedDueDateSchedule
from duedate.policy.loan_policy import DueDateManagement, LoanPolicy, RenewFromOption
from duedate.policy.period import Period, add_period
from duedate.service.configuration.due_date import DueDateConfiguration
from duedate.util.datetime_helpers import to_utc
from duedate.util.log import DueDateLoggerAdapter, LoggerMixin, elapsed_time_logging


@dataclass(frozen=True, kw_only=True)
class DueDateResult:
    due_date: datetime.datetime
    candidate_due_date: datetime.datetime
    loan_policy_id: str
    strategy: DueDateManagement
    calendar_available: bool

    @property
    def adjusted(self) -> bool:
        """Whether the closed library strategy moved the due date."""
        return self.due_date != self.candidate_due_date


class LoanPolicyProvider(Protocol):
    async def get_loan_policy(self, policy_id: str) -> LoanPolicy | None: ...


class FixedDueDateScheduleProvider(Protocol):
    async def get_schedule(self, schedule_id: str) -> FixedDueDateSchedule | None: ...


def _check_schedule(
    schedule_id: str | None, schedule: FixedDueDateSchedule | None
) -> None:
    if schedule_id and schedule is None:
        raise FixedDueDateScheduleNotFound(
            f"Fixed due date schedule [{schedule_id}] could not be found."
        )


def candidate_due_date(
    loan_start: datetime.datetime,
    policy: LoanPolicy,
    schedule: FixedDueDateSchedule | None = None,
) -> datetime.datetime:
    """The due date of a loan before any calendar adjustment.

    For a rolling policy `schedule` is the due date limit, for a fixed policy
    it is the schedule that gives the due date.
    """
    try:
        _check_schedule(policy.schedule_id, schedule)
        if policy.is_fixed:
            assert schedule is not None
            return schedule.resolve(loan_start)
        return _rolling_due_date(loan_start, policy.period, schedule, loan_start)
    except LoanPolicyConfigurationError as e:
        raise e.for_policy(policy.id, policy.name)


def renewal_candidate_due_date(
    system_date: datetime.datetime,
    current_due_date: datetime.datetime,
    policy: LoanPolicy,
    schedule: FixedDueDateSchedule | None = None,
) -> datetime.datetime:
    """The due date of a renewed loan before any calendar adjustment.

    `schedule` is the schedule the policy uses for renewals: the alternate
    renewal schedule when there is one, the loan schedule otherwise.
    """
    try:
        _check_schedule(policy.renewal_schedule_id, schedule)
        if policy.is_fixed:
            assert schedule is not None
            return schedule.resolve(system_date)
        return _rolling_due_date(
            renewal_base(system_date, current_due_date, policy),
            policy.renewal_period,
            schedule,
            system_date,
        )
    except LoanPolicyConfigurationError as e:
        raise e.for_policy(policy.id, policy.name)


def _rolling_due_date(
    base: datetime.datetime,
    period: Period | None,
    limit: FixedDueDateSchedule | None,
    limit_date: datetime.datetime,
) -> datetime.datetime:
    if period is None:
        raise InvalidPeriod("A rolling loan policy must have a loan period.")
    due_date = add_period(base, period)
    if limit is not None:
        due_date = limit.truncate(due_date, limit_date)
    return due_date


def renewal_base(
    system_date: datetime.datetime,
    current_due_date: datetime.datetime,
    policy: LoanPolicy,
) -> datetime.datetime:
    """The instant a renewal period is counted from."""
    if policy.renewals_policy.renew_from == RenewFromOption.CURRENT_DUE_DATE:
        return to_utc(current_due_date)
    return to_utc(system_date)


def _renewal_is_short_term(policy: LoanPolicy) -> bool:
    period = policy.renewal_period
    return not policy.is_fixed and period is not None and period.is_short_term


def _result(
    candidate: datetime.datetime,
    loan_start: datetime.datetime,
    policy: LoanPolicy,
    calendar: OpeningHoursCalendar | None,
    is_short_term: bool,
    adjuster: DueDateAdjuster | None,
) -> DueDateResult:
    adjuster = adjuster or DueDateAdjuster()
    strategy = policy.closed_library_strategy
    return DueDateResult(
        due_date=adjuster.adjust(
            candidate, loan_start, calendar, strategy, is_short_term
        ),
        candidate_due_date=to_utc(candidate),
        loan_policy_id=policy.id,
        strategy=strategy,
        calendar_available=calendar is not None and not calendar.is_empty,
    )


def determine(
    loan_start: datetime.datetime,
    policy: LoanPolicy,
    schedule: FixedDueDateSchedule | None = None,
    calendar: OpeningHoursCalendar | None = None,
    *,
    adjuster: DueDateAdjuster | None = None,
) -> DueDateResult:
    """The due date of a loan starting at `loan_start`.

    :raise LoanPolicyConfigurationError: If the policy can't produce a due
        date for this loan. The error names the policy.
    """
    loan_start = to_utc(loan_start)
    candidate = candidate_due_date(loan_start, policy, schedule)
    return _result(
        candidate, loan_start, policy, calendar, policy.is_short_term, adjuster
    )


def determine_renewal(
    system_date: datetime.datetime,
    current_due_date: datetime.datetime,
    policy: LoanPolicy,
    schedule: FixedDueDateSchedule | None = None,
    calendar: OpeningHoursCalendar | None = None,
    *,
    adjuster: DueDateAdjuster | None = None,
) -> DueDateResult:
    """The new due date of a loan renewed at `system_date`.

    :raise LoanPolicyConfigurationError: If the policy can't produce a due
        date for this renewal. The error names the policy.
    """
    candidate = renewal_candidate_due_date(
        system_date, current_due_date, policy, schedule
    )
    base = renewal_base(system_date, current_due_date, policy)
    return _result(
        candidate, base, policy, calendar, _renewal_is_short_term(policy), adjuster
    )


class DueDateCalculator(LoggerMixin):
    """Calculates due dates, looking up policies, schedules and calendars
    through the given providers.

    Problems with the loan policy are fatal. Problems getting hold of a
    calendar are not: the due date is then left where the policy puts it.
    """

    def __init__(
        self,
        policies: LoanPolicyProvider,
        schedules: FixedDueDateScheduleProvider,
        calendars: CalendarProvider,
        config: DueDateConfiguration | None = None,
    ) -> None:
        config = config or DueDateConfiguration()
        self._policies = policies
        self._schedules = schedules
        self._calendars = calendars
        self.search_horizon = datetime.timedelta(days=config.search_horizon_days)
        self.adjuster = DueDateAdjuster(config.max_search_days)

    async def calculate(
        self,
        loan_start: datetime.datetime,
        policy_id: str,
        service_point_id: str,
    ) -> DueDateResult:
        log = DueDateLoggerAdapter(
            self.logger(), {"policy": policy_id, "service_point": service_point_id}
        )
        loan_start = to_utc(loan_start)
        with elapsed_time_logging(
            log_method=log.debug, message_prefix="Due date", skip_start=True
        ):
            policy = await self._loan_policy(policy_id)
            schedule = await self._schedule(policy, policy.schedule_id)
            candidate = candidate_due_date(loan_start, policy, schedule)
            calendar = await self._calendar(
                service_point_id, loan_start, candidate, log
            )
            result = _result(
                candidate,
                loan_start,
                policy,
                calendar,
                policy.is_short_term,
                self.adjuster,
            )
        log.info(
            f"Due date {result.due_date.isoformat()} for loan starting "
            f"{loan_start.isoformat()}."
        )
        return result

    async def calculate_renewal(
        self,
        system_date: datetime.datetime,
        current_due_date: datetime.datetime,
        policy_id: str,
        service_point_id: str,
    ) -> DueDateResult:
        log = DueDateLoggerAdapter(
            self.logger(), {"policy": policy_id, "service_point": service_point_id}
        )
        with elapsed_time_logging(
            log_method=log.debug, message_prefix="Renewal due date", skip_start=True
        ):
            policy = await self._loan_policy(policy_id)
            schedule = await self._schedule(policy, policy.renewal_schedule_id)
            candidate = renewal_candidate_due_date(
                system_date, current_due_date, policy, schedule
            )
            base = renewal_base(system_date, current_due_date, policy)
            calendar = await self._calendar(service_point_id, base, candidate, log)
            result = _result(
                candidate,
                base,
                policy,
                calendar,
                _renewal_is_short_term(policy),
                self.adjuster,
            )
        log.info(
            f"Renewal due date {result.due_date.isoformat()} "
            f"(renewing from {policy.renewals_policy.renew_from.name})."
        )
        return result

    async def _loan_policy(self, policy_id: str) -> LoanPolicy:
        policy = await self._policies.get_loan_policy(policy_id)
        if policy is None:
            raise LoanPolicyNotFound(
                f"Loan policy [{policy_id}] could not be found.", policy_id=policy_id
            )
        return policy

    async def _schedule(
        self, policy: LoanPolicy, schedule_id: str | None
    ) -> FixedDueDateSchedule | None:
        if not schedule_id:
            return None
        schedule = await self._schedules.get_schedule(schedule_id)
        if schedule is None:
            raise FixedDueDateScheduleNotFound(
                f"Fixed due date schedule [{schedule_id}] could not be found.",
                policy_id=policy.id,
                policy_name=policy.name,
            )
        return schedule

    def calendar_window(
        self, start: datetime.datetime, candidate: datetime.datetime
    ) -> tuple[datetime.date, datetime.date]:
        """The dates to ask the calendar provider for.

        Dates are taken in UTC and widened by the search horizon, which is
        more than enough to cover the service point's local dates.
        """
        first = min(to_utc(start), to_utc(candidate)) - self.search_horizon
        last = max(to_utc(start), to_utc(candidate)) + self.search_horizon
        return first.date(), last.date()

    async def _calendar(
        self,
        service_point_id: str,
        start: datetime.datetime,
        candidate: datetime.datetime,
        log: DueDateLoggerAdapter,
    ) -> OpeningHoursCalendar | None:
        start_date, end_date = self.calendar_window(start, candidate)
        try:
            calendar = await self._calendars.get_calendar(
                service_point_id, start_date, end_date
            )
        except (IntegrationException, InvalidCalendar) as e:
            log.warning(f"Calendar unavailable, the due date will not be adjusted: {e}")
            return None
        if calendar is None:
            log.warning(
                "No calendar for the service point, the due date will not be adjusted."
            )
        return calendar
