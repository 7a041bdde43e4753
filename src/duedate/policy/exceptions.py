from __future__ import annotations

from duedate.core.exceptions import DueDateValueError


class LoanPolicyConfigurationError(DueDateValueError):
    """A loan policy, or something it refers to, is configured in a way
    that makes it impossible to calculate a due date.

    These errors are not retryable. They are surfaced to staff as a failed
    checkout or renewal, with a message that names the policy.
    """

    def __init__(
        self,
        message: str | None = None,
        *,
        policy_id: str | None = None,
        policy_name: str | None = None,
    ) -> None:
        super().__init__(message or self.__class__.__name__)
        self.policy_id = policy_id
        self.policy_name = policy_name

    def __str__(self) -> str:
        message = super().__str__()
        if self.policy_name and self.policy_id:
            return f"{message} (loan policy '{self.policy_name}' [{self.policy_id}])"
        if self.policy_id:
            return f"{message} (loan policy [{self.policy_id}])"
        return message

    def for_policy(
        self, policy_id: str | None, policy_name: str | None = None
    ) -> LoanPolicyConfigurationError:
        """Attach the identity of the offending policy, if it isn't known yet."""
        if self.policy_id is None:
            self.policy_id = policy_id
        if self.policy_name is None:
            self.policy_name = policy_name
        return self


class InvalidPeriod(LoanPolicyConfigurationError):
    """The loan period has a non-positive duration or an unknown interval."""


class NoMatchingScheduleRange(LoanPolicyConfigurationError):
    """No range of the fixed due date schedule contains the loan date."""


class InvalidFixedDueDateSchedule(LoanPolicyConfigurationError):
    """A fixed due date schedule has a reversed or an overlapping range."""


class LoanPolicyNotFound(LoanPolicyConfigurationError):
    """The loan policy could not be found."""


class FixedDueDateScheduleNotFound(LoanPolicyConfigurationError):
    """A fixed due date schedule referenced by the policy could not be found."""
