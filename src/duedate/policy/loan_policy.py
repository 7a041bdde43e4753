from __future__ import annotations

from collections.abc import Callable
from enum import StrEnum
from typing import Annotated, Any

from frozendict import frozendict
from pydantic import (
    BeforeValidator,
    Field,
    ValidationError,
    field_validator,
    model_validator,
)
from pydantic_core import PydanticCustomError

from duedate.core.exceptions import BaseDueDateException
from duedate.policy.exceptions import InvalidPeriod, LoanPolicyConfigurationError
from duedate.policy.period import Period
from duedate.util.pydantic import (
    FrozenModel,
    validation_error_message,
    validation_error_types,
)


class _NameOrValueEnum(StrEnum):
    """Look members up by value or, ignoring case, by name."""

    @classmethod
    def _missing_(cls, value: object) -> _NameOrValueEnum | None:
        if isinstance(value, str):
            normalized = value.strip().upper()
            for member in cls:
                if normalized in (member.name, member.value.upper()):
                    return member
        return None


class LoansPolicyProfile(_NameOrValueEnum):
    ROLLING = "Rolling"
    FIXED = "Fixed"


class DueDateManagement(_NameOrValueEnum):
    """What to do with a due date that falls when the service point is closed."""

    KEEP_THE_CURRENT_DUE_DATE = "CURRENT_DUE_DATE"
    KEEP_THE_CURRENT_DUE_DATE_TIME = "CURRENT_DUE_DATE_TIME"
    MOVE_TO_THE_END_OF_THE_PREVIOUS_OPEN_DAY = "END_OF_THE_PREVIOUS_OPEN_DAY"
    MOVE_TO_THE_END_OF_THE_NEXT_OPEN_DAY = "END_OF_THE_NEXT_OPEN_DAY"
    MOVE_TO_THE_END_OF_THE_CURRENT_DAY = "END_OF_THE_CURRENT_DAY"
    MOVE_TO_END_OF_CURRENT_SERVICE_POINT_HOURS = (
        "END_OF_THE_CURRENT_SERVICE_POINT_HOURS"
    )
    MOVE_TO_BEGINNING_OF_NEXT_OPEN_SERVICE_POINT_HOURS = (
        "BEGINNING_OF_THE_NEXT_OPEN_SERVICE_POINT_HOURS"
    )

    @property
    def keeps_due_date(self) -> bool:
        return self in KEEP_STRATEGIES

    def applies_to(self, is_short_term: bool) -> bool:
        """Whether the strategy means anything for a loan of this granularity.

        Day-level strategies only make sense for long-term loans, and the
        service point hours strategies only for short-term ones.
        """
        return STRATEGY_APPLIES_TO[self][is_short_term]


KEEP_STRATEGIES = frozenset(
    {
        DueDateManagement.KEEP_THE_CURRENT_DUE_DATE,
        DueDateManagement.KEEP_THE_CURRENT_DUE_DATE_TIME,
    }
)

# strategy -> {is_short_term: applies}
STRATEGY_APPLIES_TO: frozendict[DueDateManagement, frozendict[bool, bool]] = frozendict(
    {
        DueDateManagement.KEEP_THE_CURRENT_DUE_DATE: frozendict(
            {False: True, True: True}
        ),
        DueDateManagement.KEEP_THE_CURRENT_DUE_DATE_TIME: frozendict(
            {False: True, True: True}
        ),
        DueDateManagement.MOVE_TO_THE_END_OF_THE_PREVIOUS_OPEN_DAY: frozendict(
            {False: True, True: False}
        ),
        DueDateManagement.MOVE_TO_THE_END_OF_THE_NEXT_OPEN_DAY: frozendict(
            {False: True, True: False}
        ),
        DueDateManagement.MOVE_TO_THE_END_OF_THE_CURRENT_DAY: frozendict(
            {False: True, True: False}
        ),
        DueDateManagement.MOVE_TO_END_OF_CURRENT_SERVICE_POINT_HOURS: frozendict(
            {False: False, True: True}
        ),
        DueDateManagement.MOVE_TO_BEGINNING_OF_NEXT_OPEN_SERVICE_POINT_HOURS: frozendict(
            {False: False, True: True}
        ),
    }
)


class RenewFromOption(_NameOrValueEnum):
    SYSTEM_DATE = "SYSTEM_DATE"
    CURRENT_DUE_DATE = "CURRENT_DUE_DATE"


def _lookup[E: StrEnum](enum_cls: type[E]) -> Callable[[Any], Any]:
    def validate(value: Any) -> Any:
        return enum_cls(value) if isinstance(value, str) else value

    return validate


ProfileType = Annotated[
    LoansPolicyProfile, BeforeValidator(_lookup(LoansPolicyProfile))
]
DueDateManagementType = Annotated[
    DueDateManagement, BeforeValidator(_lookup(DueDateManagement))
]
RenewFromType = Annotated[RenewFromOption, BeforeValidator(_lookup(RenewFromOption))]


class LoansPolicy(FrozenModel):
    """The part of a loan policy that governs the length of a loan."""

    profile: ProfileType = Field(alias="profileId")
    period: Period | None = None
    closed_library_due_date_management: DueDateManagementType = Field(
        default=DueDateManagement.KEEP_THE_CURRENT_DUE_DATE,
        alias="closedLibraryDueDateManagementId",
    )
    # For fixed profiles this is the schedule of due dates. For rolling
    # profiles it is optional and limits how late the due date may be.
    fixed_due_date_schedule_id: str | None = Field(
        default=None, alias="fixedDueDateScheduleId"
    )

    @model_validator(mode="after")
    def validate_profile(self) -> LoansPolicy:
        if self.profile == LoansPolicyProfile.ROLLING and self.period is None:
            raise PydanticCustomError(
                "invalid_period", "A rolling loan policy must have a loan period."
            )
        if (
            self.profile == LoansPolicyProfile.FIXED
            and not self.fixed_due_date_schedule_id
        ):
            raise PydanticCustomError(
                "missing_schedule",
                "A fixed loan policy must have a fixed due date schedule.",
            )
        return self


class RenewalsPolicy(FrozenModel):
    renew_from: RenewFromType = Field(
        default=RenewFromOption.SYSTEM_DATE, alias="renewFromId"
    )
    different_period: bool = Field(default=False, alias="differentPeriod")
    period: Period | None = None
    alternate_fixed_due_date_schedule_id: str | None = Field(
        default=None, alias="alternateFixedDueDateScheduleId"
    )

    @model_validator(mode="after")
    def validate_period(self) -> RenewalsPolicy:
        if self.different_period and self.period is None:
            raise PydanticCustomError(
                "invalid_period",
                "A renewal policy with a different period must have a renewal period.",
            )
        return self


class LoanPolicy(FrozenModel):
    id: str
    name: str | None = None
    loans_policy: LoansPolicy = Field(alias="loansPolicy")
    renewals_policy: RenewalsPolicy = Field(
        default_factory=RenewalsPolicy, alias="renewalsPolicy"
    )

    @field_validator("id")
    @classmethod
    def validate_id(cls, value: str) -> str:
        if not value.strip():
            raise ValueError("Loan policy id must not be blank.")
        return value

    @classmethod
    def _validation_exception(cls, error: ValidationError) -> BaseDueDateException:
        message = f"Invalid loan policy: {validation_error_message(error)}"
        if "invalid_period" in validation_error_types(error):
            return InvalidPeriod(message)
        return LoanPolicyConfigurationError(message)

    @property
    def profile(self) -> LoansPolicyProfile:
        return self.loans_policy.profile

    @property
    def period(self) -> Period | None:
        return self.loans_policy.period

    @property
    def closed_library_strategy(self) -> DueDateManagement:
        return self.loans_policy.closed_library_due_date_management

    @property
    def is_fixed(self) -> bool:
        return self.profile == LoansPolicyProfile.FIXED

    @property
    def is_short_term(self) -> bool:
        """Fixed schedules give whole due dates, so they are always long-term."""
        if self.is_fixed or self.period is None:
            return False
        return self.period.is_short_term

    @property
    def schedule_id(self) -> str | None:
        return self.loans_policy.fixed_due_date_schedule_id

    @property
    def renewal_schedule_id(self) -> str | None:
        """The schedule that gives due dates (or due date limits) on renewal."""
        return (
            self.renewals_policy.alternate_fixed_due_date_schedule_id
            or self.schedule_id
        )

    @property
    def renewal_period(self) -> Period | None:
        if self.renewals_policy.different_period and self.renewals_policy.period:
            return self.renewals_policy.period
        return self.period

    def __str__(self) -> str:
        return f"'{self.name}' [{self.id}]" if self.name else f"[{self.id}]"
