from __future__ import annotations

from collections.abc import Collection
from email.utils import parsedate_to_datetime
from typing import Literal

import httpx

import duedate
from duedate.util.datetime_helpers import to_utc, utc_now
from duedate.util.http.exception import BadResponseException

# In case an app version is not present, we can use this version as a fallback
# for all outgoing http requests without a custom user-agent
DEFAULT_USER_AGENT_VERSION = "x.x.x"


def get_user_agent() -> str:
    """
    Generate a User-Agent string for HTTP requests.
    """

    version = duedate.__version__ if duedate.__version__ else DEFAULT_USER_AGENT_VERSION

    return f"Due Date Engine/{version}"


def get_default_headers() -> dict[str, str]:
    """
    Generate default headers for HTTP requests.
    """
    return {
        "User-Agent": get_user_agent(),
    }


ResponseCodesStringLiterals = Literal["2xx", "3xx", "4xx", "5xx"]
ResponseCodesTypes = Collection[ResponseCodesStringLiterals | int]


def get_series(status_code: int) -> ResponseCodesStringLiterals:
    """Return the HTTP series for the given status code."""
    return f"{int(status_code) // 100}xx"  # type: ignore[return-value]


def status_code_matches(status_code: int, code_collection: ResponseCodesTypes) -> bool:
    """Check if a status code matches any value in a collection.

    :param status_code: The HTTP status code to check
    :param code_collection: Collection of status codes or series (e.g., "4xx")
    :return: True if the status code matches any value in the collection
    """
    code_str = str(status_code)
    series = get_series(status_code)
    collection_str = list(map(str, code_collection))

    return code_str in collection_str or series in collection_str


def parse_retry_after(value: str | None) -> float | None:
    """Parse a Retry-After header into a number of seconds to wait.

    The header may hold either a number of seconds or an HTTP date. Values
    that can't be parsed, or that are in the past, give None.
    """
    if not value:
        return None
    value = value.strip()
    try:
        seconds = float(value)
    except ValueError:
        try:
            retry_at = parsedate_to_datetime(value)
        except (TypeError, ValueError):
            return None
        seconds = (to_utc(retry_at) - utc_now()).total_seconds()
    return seconds if seconds > 0 else None


def raise_for_bad_response(
    url: str | httpx.URL,
    response: httpx.Response,
    allowed_response_codes: ResponseCodesTypes,
    disallowed_response_codes: ResponseCodesTypes,
) -> httpx.Response:
    """
    Raise a BadResponseException if the response code indicates a
    server-side failure, or behavior so unpredictable that we can't
    continue.

    :param allowed_response_codes If passed, then only the responses with
        http status codes in this list are processed.  The rest generate
        BadResponseExceptions. If both allowed_response_codes and
        disallowed_response_codes are passed, then the allowed_response_codes
        list is used.
    :param disallowed_response_codes The values passed are added to 5xx, as
        http status codes that would generate BadResponseExceptions.
    """
    if status_code_matches(response.status_code, allowed_response_codes):
        # The code or series has been explicitly allowed. Allow
        # the request to be processed.
        return response

    error_message = None
    series = get_series(response.status_code)

    if series == "5xx" or status_code_matches(
        response.status_code, disallowed_response_codes
    ):
        # Unless explicitly allowed, the 5xx series always results in an exception.
        error_message = BadResponseException.BAD_STATUS_CODE_MESSAGE
    elif allowed_response_codes and not status_code_matches(
        response.status_code, allowed_response_codes
    ):
        error_message = (
            "Got status code %%s from external server, but can only continue on: %s."
            % (", ".join(sorted(list(map(str, allowed_response_codes)))),)
        )

    if error_message:
        raise BadResponseException(
            str(url),
            error_message % response.status_code,
            debug_message=f"Response content: {response.text}",
            response=response,
        )
    return response
