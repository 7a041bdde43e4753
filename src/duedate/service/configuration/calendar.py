from __future__ import annotations

import pytz
from pydantic import AnyHttpUrl, NonNegativeInt, PositiveFloat, field_validator
from pydantic_settings import SettingsConfigDict

from duedate.service.configuration.service_configuration import (
    ServiceConfiguration,
)


class CalendarServiceConfiguration(ServiceConfiguration):
    """Where and how to reach the calendar service that knows service point
    opening hours."""

    url: AnyHttpUrl
    tenant: str | None = None
    token: str | None = None

    # Used when the calendar service doesn't say which timezone a service
    # point's opening hours are in.
    default_timezone: str = "UTC"

    timeout: PositiveFloat = 5.0
    max_retries: NonNegativeInt = 1

    @field_validator("default_timezone")
    @classmethod
    def validate_default_timezone(cls, value: str) -> str:
        if value not in pytz.all_timezones_set:
            raise ValueError(f"Unknown timezone '{value}'.")
        return value

    @property
    def base_url(self) -> str:
        return str(self.url).rstrip("/")

    model_config = SettingsConfigDict(env_prefix="DUEDATE_CALENDAR_")
