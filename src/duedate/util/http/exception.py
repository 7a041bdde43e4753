from __future__ import annotations

from dataclasses import dataclass
from typing import Self
from urllib.parse import urlparse

import httpx
from httpx import Headers

from duedate.core.exceptions import IntegrationException


class RemoteIntegrationException(IntegrationException):
    """An exception that happens when we try and fail to communicate
    with a third-party service over HTTP.
    """

    internal_message = "Error accessing %s: %s"

    def __init__(
        self, url_or_service: str, message: str, debug_message: str | None = None
    ) -> None:
        """Indicate that a remote integration has failed.

        `param url_or_service` The name of the service that failed
           (e.g. "calendar"), or the specific URL that had the problem.
        """
        if url_or_service and any(
            url_or_service.startswith(x) for x in ("http:", "https:")
        ):
            self.url = url_or_service
            self.service = urlparse(url_or_service).netloc
        else:
            self.url = self.service = url_or_service

        super().__init__(message, debug_message)

    def __str__(self) -> str:
        message = super().__str__()
        if self.debug_message:
            message += "\n\n" + self.debug_message
        return self.internal_message % (self.url, message)


@dataclass(frozen=True)
class HttpResponse:
    """The parts of an HTTP response that are kept on a BadResponseException."""

    status_code: int
    url: str
    headers: Headers
    text: str

    @classmethod
    def from_response(cls, response: httpx.Response | Self) -> Self:
        if isinstance(response, cls):
            return response

        return cls(
            status_code=response.status_code,
            url=str(response.url),
            headers=Headers(response.headers),
            text=response.text,
        )


class BadResponseException(RemoteIntegrationException):
    """The request seemingly went okay, but we got a bad response."""

    internal_message = "Bad response from %s: %s"

    BAD_STATUS_CODE_MESSAGE = (
        "Got status code %s from external server, cannot continue."
    )

    def __init__(
        self,
        url_or_service: str,
        message: str,
        response: httpx.Response | HttpResponse,
        debug_message: str | None = None,
        retry_count: int | None = None,
    ):
        """Indicate that a remote integration has failed.

        :param url_or_service: The name of the service that failed
           (e.g. "calendar"), or the specific URL that had the problem.
        :param message: The error message
        :param response: The HTTP response object
        :param debug_message: Optional debug message
        :param retry_count: Number of times the request was retried before failing,
            or None if retry tracking is not available
        """
        if debug_message is None:
            debug_message = (
                f"Status code: {response.status_code}\nContent: {response.text}"
            )

        super().__init__(url_or_service, message, debug_message)
        self.response = HttpResponse.from_response(response)
        self.retry_count: int | None = retry_count

    @classmethod
    def bad_status_code(cls, url: str, response: httpx.Response) -> Self:
        """The response is bad because the status code is wrong."""
        message = cls.BAD_STATUS_CODE_MESSAGE % response.status_code
        return cls(
            url,
            message,
            response,
        )


class RequestNetworkException(RemoteIntegrationException):
    """A network level failure talking to a third-party service."""

    internal_message = "Network error contacting %s: %s"


class RequestTimedOut(RequestNetworkException):
    """A request to a third-party service timed out."""

    internal_message = "Timeout accessing %s: %s"

    def __init__(
        self,
        url_or_service: str,
        message: str,
        debug_message: str | None = None,
        retry_count: int | None = None,
    ) -> None:
        """Indicate that a request timed out.

        :param url_or_service: The name of the service that failed
           (e.g. "calendar"), or the specific URL that had the problem.
        :param message: The error message
        :param debug_message: Optional debug message
        :param retry_count: Number of times the request was retried before failing,
            or None if retry tracking is not available
        """
        super().__init__(url_or_service, message, debug_message)
        self.retry_count: int | None = retry_count
