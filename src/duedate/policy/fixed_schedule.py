from __future__ import annotations

import bisect
import datetime
from collections.abc import Sequence

from pydantic import (
    AwareDatetime,
    Field,
    ValidationError,
    field_validator,
    model_validator,
)
from pydantic_core import PydanticCustomError

from duedate.core.exceptions import BaseDueDateException
from duedate.policy.exceptions import (
    InvalidFixedDueDateSchedule,
    NoMatchingScheduleRange,
)
from duedate.util.datetime_helpers import to_utc
from duedate.util.pydantic import FrozenModel, validation_error_message


class FixedDueDateScheduleEntry(FrozenModel):
    """Loans starting between `from_` and `to` (both inclusive) are due at `due`."""

    from_: AwareDatetime = Field(alias="from")
    to: AwareDatetime
    due: AwareDatetime

    @field_validator("from_", "to", "due")
    @classmethod
    def normalize_to_utc(cls, value: datetime.datetime) -> datetime.datetime:
        return to_utc(value)

    @model_validator(mode="after")
    def validate_range(self) -> FixedDueDateScheduleEntry:
        if self.from_ > self.to:
            raise PydanticCustomError(
                "invalid_schedule",
                "Schedule range starts ({start}) after it ends ({end}).",
                {"start": self.from_.isoformat(), "end": self.to.isoformat()},
            )
        return self

    def contains(self, instant: datetime.datetime) -> bool:
        return self.from_ <= to_utc(instant) <= self.to


class FixedDueDateSchedule(FrozenModel):
    """A set of non-overlapping date ranges, each with the due date for loans
    that start inside it.

    The ranges are kept sorted by their start, whatever order they were given in.
    """

    id: str | None = None
    name: str | None = None
    schedules: tuple[FixedDueDateScheduleEntry, ...] = ()

    @field_validator("schedules")
    @classmethod
    def sort_and_check_overlap(
        cls, value: Sequence[FixedDueDateScheduleEntry]
    ) -> tuple[FixedDueDateScheduleEntry, ...]:
        entries = tuple(sorted(value, key=lambda entry: entry.from_))
        for previous, current in zip(entries, entries[1:]):
            if current.from_ <= previous.to:
                raise PydanticCustomError(
                    "invalid_schedule",
                    "Schedule ranges overlap: {first} and {second}.",
                    {
                        "first": f"{previous.from_.isoformat()} - {previous.to.isoformat()}",
                        "second": f"{current.from_.isoformat()} - {current.to.isoformat()}",
                    },
                )
        return entries

    @classmethod
    def _validation_exception(cls, error: ValidationError) -> BaseDueDateException:
        return InvalidFixedDueDateSchedule(
            f"Invalid fixed due date schedule: {validation_error_message(error)}"
        )

    def find(self, instant: datetime.datetime) -> FixedDueDateScheduleEntry | None:
        """The entry whose range contains `instant`, if there is one."""
        instant = to_utc(instant)
        starts = [entry.from_ for entry in self.schedules]
        index = bisect.bisect_right(starts, instant) - 1
        if index < 0:
            return None
        entry = self.schedules[index]
        return entry if entry.contains(instant) else None

    def resolve(self, instant: datetime.datetime) -> datetime.datetime:
        """The fixed due date for a loan starting at `instant`.

        :raise NoMatchingScheduleRange: If no range contains `instant`.
        """
        entry = self.find(instant)
        if entry is None:
            label = f"'{self.name}'" if self.name else f"[{self.id}]"
            raise NoMatchingScheduleRange(
                f"Loan date {to_utc(instant).isoformat()} falls outside of the date "
                f"ranges of fixed due date schedule {label}."
            )
        return entry.due

    def truncate(
        self, due_date: datetime.datetime, loan_start: datetime.datetime
    ) -> datetime.datetime:
        """Limit a rolling due date by the schedule: the earlier of `due_date` and
        the schedule's due date for `loan_start`.

        :raise NoMatchingScheduleRange: If no range contains `loan_start`.
        """
        return min(to_utc(due_date), self.resolve(loan_start))
