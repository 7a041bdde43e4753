from __future__ import annotations

import datetime
import json
from typing import Protocol, Self
from urllib.parse import quote

import httpx
from pydantic import Field, ValidationError

from duedate.calendar.exceptions import CalendarUnavailable, InvalidCalendar
from duedate.calendar.model import OpeningDay, OpeningHoursCalendar
from duedate.core.exceptions import BaseDueDateException, DueDateValueError
from duedate.service.configuration.calendar import CalendarServiceConfiguration
from duedate.util.http.async_http import AsyncClient
from duedate.util.http.exception import BadResponseException, RemoteIntegrationException
from duedate.util.log import LoggerMixin
from duedate.util.pydantic import FrozenModel, validation_error_message

OKAPI_TENANT_HEADER = "X-Okapi-Tenant"
OKAPI_TOKEN_HEADER = "X-Okapi-Token"


class CalendarProvider(Protocol):
    async def get_calendar(
        self,
        service_point_id: str,
        start_date: datetime.date,
        end_date: datetime.date,
    ) -> OpeningHoursCalendar | None:
        """Get the opening hours of a service point between two dates (inclusive).

        Returns None when there is no calendar for the service point.

        :raise CalendarUnavailable: If the calendar exists but couldn't be
            retrieved or understood.
        """
        ...


class OpeningDaysDocument(FrozenModel):
    """The body of an `opening-days` response from the calendar service."""

    opening_days: tuple[OpeningDay, ...] = Field(default=(), alias="openingDays")
    timezone: str | None = None

    @classmethod
    def _validation_exception(cls, error: ValidationError) -> BaseDueDateException:
        return InvalidCalendar(
            f"Invalid opening days document: {validation_error_message(error)}"
        )

    def to_calendar(
        self,
        service_point_id: str,
        start_date: datetime.date,
        end_date: datetime.date,
        default_timezone: str,
    ) -> OpeningHoursCalendar:
        # The calendar service occasionally returns days just outside of the
        # requested range, they are of no use to us.
        days = tuple(
            day for day in self.opening_days if start_date <= day.date <= end_date
        )
        return OpeningHoursCalendar(
            service_point_id=service_point_id,
            timezone=self.timezone or default_timezone,
            start_date=start_date,
            end_date=end_date,
            opening_days=days,
        )


class HttpCalendarProvider(LoggerMixin):
    """Looks up service point opening hours in a FOLIO style calendar service."""

    def __init__(
        self,
        client: AsyncClient,
        base_url: str,
        default_timezone: str = "UTC",
    ) -> None:
        self._client = client
        self._base_url = base_url.rstrip("/")
        self._default_timezone = default_timezone

    @classmethod
    def from_configuration(
        cls, config: CalendarServiceConfiguration | None = None
    ) -> Self:
        config = config or CalendarServiceConfiguration()
        headers = {"Accept": "application/json"}
        if config.tenant:
            headers[OKAPI_TENANT_HEADER] = config.tenant
        if config.token:
            headers[OKAPI_TOKEN_HEADER] = config.token
        client = AsyncClient.for_web(
            allowed_response_codes=["2xx"],
            no_retry_status_codes=["4xx"],
            max_retries=config.max_retries,
            headers=headers,
            timeout=httpx.Timeout(config.timeout, pool=None),
        )
        return cls(client, config.base_url, config.default_timezone)

    def opening_days_url(self, service_point_id: str) -> str:
        return (
            f"{self._base_url}/calendar/periods/"
            f"{quote(service_point_id, safe='')}/opening-days"
        )

    async def get_calendar(
        self,
        service_point_id: str,
        start_date: datetime.date,
        end_date: datetime.date,
    ) -> OpeningHoursCalendar | None:
        url = self.opening_days_url(service_point_id)
        try:
            response = await self._client.get(
                url,
                params={
                    "startDate": start_date.isoformat(),
                    "endDate": end_date.isoformat(),
                },
            )
        except BadResponseException as e:
            if e.response.status_code == 404:
                self.log.info(
                    f"No calendar found for service point {service_point_id}."
                )
                return None
            raise CalendarUnavailable(
                f"Calendar service failed for service point {service_point_id}.",
                str(e),
            ) from e
        except RemoteIntegrationException as e:
            raise CalendarUnavailable(
                f"Could not reach the calendar service for service point {service_point_id}.",
                str(e),
            ) from e

        try:
            document = OpeningDaysDocument.from_json(response.json())
            return document.to_calendar(
                service_point_id, start_date, end_date, self._default_timezone
            )
        except (json.JSONDecodeError, DueDateValueError) as e:
            raise CalendarUnavailable(
                f"Calendar service returned an unusable calendar for service point {service_point_id}.",
                str(e),
            ) from e

    async def aclose(self) -> None:
        await self._client.aclose()
