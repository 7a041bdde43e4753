from __future__ import annotations

from pydantic import PositiveInt, model_validator
from pydantic_settings import SettingsConfigDict

from duedate.service.configuration.service_configuration import (
    ServiceConfiguration,
)

DEFAULT_SEARCH_HORIZON_DAYS = 31
DEFAULT_MAX_SEARCH_DAYS = 366


class DueDateConfiguration(ServiceConfiguration):
    # Number of days the calendar window reaches before the earlier and after
    # the later of the loan date and the calculated due date. This bounds how
    # far the engine will look for an open day.
    search_horizon_days: PositiveInt = DEFAULT_SEARCH_HORIZON_DAYS

    # Hard limit on a single walk through the calendar, whatever window the
    # calendar service returned.
    max_search_days: PositiveInt = DEFAULT_MAX_SEARCH_DAYS

    @model_validator(mode="after")
    def validate_search_limits(self) -> DueDateConfiguration:
        if self.max_search_days < self.search_horizon_days:
            raise ValueError(
                "max_search_days must be at least as large as search_horizon_days."
            )
        return self

    model_config = SettingsConfigDict(env_prefix="DUEDATE_")
