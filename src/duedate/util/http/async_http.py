from __future__ import annotations

import asyncio
import functools
from collections.abc import Callable, Mapping, Sequence
from typing import Any, Self, TypedDict, Union, Unpack, cast

import httpx

from duedate.util.backoff import exponential_backoff
from duedate.util.http.base import (
    ResponseCodesTypes,
    get_default_headers,
    parse_retry_after,
    raise_for_bad_response,
    status_code_matches,
)
from duedate.util.http.exception import (
    BadResponseException,
    RequestNetworkException,
    RequestTimedOut,
)
from duedate.util.log import LoggerMixin

# Narrowed versions of the httpx argument types, which aren't public API.
PrimitiveData = str | int | float | bool | None

URLTypes = httpx.URL | str

QueryParamTypes = Union[
    httpx.QueryParams,
    Mapping[str, PrimitiveData | Sequence[PrimitiveData]],
    str,
]

HeaderTypes = Union[
    httpx.Headers,
    Mapping[str, str],
]

TimeoutTypes = Union[float, None, httpx.Timeout]


class RequestKwargs(TypedDict, total=False):
    """
    Keyword arguments for a single request.

    params, headers and timeout are passed to httpx. The rest override the
    client's defaults for this request:

    allowed_response_codes: only these codes (or series such as "2xx") are
        accepted, anything else raises BadResponseException.
    disallowed_response_codes: codes that raise BadResponseException, on top
        of the 5xx series, which always does.
    no_retry_status_codes: bad responses with these codes are raised at once.
    max_retries: how often a bad response or a timeout is retried.
    backoff: seconds to wait before retry number n (0 based), or None to
        retry straight away. A Retry-After header can make the wait longer.
    """

    params: QueryParamTypes
    headers: HeaderTypes
    timeout: TimeoutTypes
    allowed_response_codes: ResponseCodesTypes
    disallowed_response_codes: ResponseCodesTypes
    no_retry_status_codes: ResponseCodesTypes
    max_retries: int
    backoff: Callable[[int], float] | None


class ClientKwargs(TypedDict, total=False):
    """
    The httpx.AsyncClient constructor arguments we set.

    See: https://www.python-httpx.org/api/#asyncclient
    """

    headers: HeaderTypes
    verify: bool
    timeout: TimeoutTypes
    follow_redirects: bool
    limits: httpx.Limits
    max_redirects: int


WEB_DEFAULT_TIMEOUT = httpx.Timeout(5.0, pool=None)
WEB_DEFAULT_MAX_REDIRECTS = 2
WEB_DEFAULT_MAX_RETRIES = 0
WEB_DEFAULT_BACKOFF = functools.partial(
    exponential_backoff, max_time=5, jitter=0.5, factor=0.25, base=2
)

DEFAULT_LIMITS = httpx.Limits(max_connections=10, max_keepalive_connections=None)

# Default maximum delay for Retry-After header (10 seconds). Checkout is
# interactive, so we never wait on the calendar service for long.
DEFAULT_MAX_RETRY_AFTER_DELAY = 10.0


class AsyncClient(LoggerMixin):
    """
    An asynchronous HTTP client, with connection pooling, redirects, etc.

    This is just a thin wrapper around `httpx.AsyncClient`, with some
    additional functionality for logging, default headers, retries and error handling.
    """

    def __init__(
        self,
        *,
        client: httpx.AsyncClient,
        allowed_response_codes: ResponseCodesTypes | None = None,
        disallowed_response_codes: ResponseCodesTypes | None = None,
        no_retry_status_codes: ResponseCodesTypes | None = None,
        max_retries: int = 0,
        backoff: Callable[[int], float] | None = None,
        max_retry_after_delay: float = DEFAULT_MAX_RETRY_AFTER_DELAY,
    ) -> None:
        """
        Initialize the AsyncClient.

        :param client:
            The underlying httpx.AsyncClient instance to use for making requests.
        :param allowed_response_codes:
            Default for allowed_response_codes, used if the request doesn't pass one.
        :param disallowed_response_codes:
            Default for disallowed_response_codes, used if the request doesn't pass one.
        :param no_retry_status_codes:
            Default for no_retry_status_codes, used if the request doesn't pass one.
        :param max_retries:
            Default for max_retries, used if the request doesn't pass one.
        :param backoff:
            Default for backoff, used if the request doesn't pass one.
        :param max_retry_after_delay:
            The longest we wait when a Retry-After header asks us to, in seconds.
        """

        self._httpx_client = client

        self._allowed_response_codes = allowed_response_codes or []
        self._disallowed_response_codes = disallowed_response_codes or []
        self._no_retry_status_codes = no_retry_status_codes or []
        self._max_retries = max_retries
        self._backoff = backoff
        self._max_retry_after_delay = max_retry_after_delay

    @staticmethod
    def _defaults(kwargs: ClientKwargs) -> None:
        """
        Sets our global defaults for httpx.AsyncClient parameters.

        Modifies the passed in kwargs in place.
        """

        # We can't use setdefault here, because we need to merge headers
        headers = get_default_headers()
        if "headers" in kwargs:
            headers.update(kwargs["headers"])
        kwargs["headers"] = headers

        kwargs.setdefault("verify", True)
        kwargs.setdefault("limits", DEFAULT_LIMITS)
        kwargs.setdefault("follow_redirects", True)

    @classmethod
    def for_web(
        cls,
        *,
        allowed_response_codes: ResponseCodesTypes | None = None,
        disallowed_response_codes: ResponseCodesTypes | None = None,
        no_retry_status_codes: ResponseCodesTypes | None = None,
        max_retries: int = WEB_DEFAULT_MAX_RETRIES,
        backoff: Callable[[int], float] | None = WEB_DEFAULT_BACKOFF,
        max_retry_after_delay: float = DEFAULT_MAX_RETRY_AFTER_DELAY,
        **kwargs: Unpack[ClientKwargs],
    ) -> Self:
        """
        Create an `AsyncClient` with settings suitable for requests made while
        a patron is waiting at the desk.

        This means that timeouts are relatively short, redirects are limited,
        and retries are disabled by default.
        """
        cls._defaults(kwargs)
        kwargs.setdefault("timeout", WEB_DEFAULT_TIMEOUT)
        kwargs.setdefault("max_redirects", WEB_DEFAULT_MAX_REDIRECTS)
        return cls(
            client=httpx.AsyncClient(**kwargs),
            allowed_response_codes=allowed_response_codes,
            disallowed_response_codes=disallowed_response_codes,
            no_retry_status_codes=no_retry_status_codes,
            max_retries=max_retries,
            backoff=backoff,
            max_retry_after_delay=max_retry_after_delay,
        )

    async def _perform_request(
        self,
        method: str,
        url: URLTypes,
        *,
        allowed_response_codes: ResponseCodesTypes,
        disallowed_response_codes: ResponseCodesTypes,
        retry_count: int,
        **kwargs: Any,
    ) -> httpx.Response:
        """
        Perform a single HTTP request, handling exceptions and logging, without retries.
        """
        try:
            response = await self._httpx_client.request(method, url, **kwargs)
            self.log.info(
                f"Request time for {url} took {response.elapsed.total_seconds():.2f} seconds"
            )

            # Attach the retry count to the response as an extension, so that callers
            # have an indication of how many retries were attempted.
            response.extensions["retry_count"] = retry_count

        except httpx.TimeoutException as e:
            # Wrap the httpx-specific Timeout exception in a generic RequestTimedOut exception.
            raise RequestTimedOut(str(url), str(e)) from e
        except httpx.RequestError as e:
            # Wrap all other httpx-specific exceptions in a generic RequestNetworkException.
            raise RequestNetworkException(str(url), str(e)) from e

        return raise_for_bad_response(
            url, response, allowed_response_codes, disallowed_response_codes
        )

    async def request(
        self,
        method: str,
        url: URLTypes,
        **kwargs: Unpack[RequestKwargs],
    ) -> httpx.Response:
        """
        Make an HTTP request, with retries on failure.
        """

        allowed_response_codes = kwargs.pop(
            "allowed_response_codes", self._allowed_response_codes
        )
        disallowed_response_codes = kwargs.pop(
            "disallowed_response_codes", self._disallowed_response_codes
        )
        no_retry_status_codes = kwargs.pop(
            "no_retry_status_codes", self._no_retry_status_codes
        )
        max_retries = kwargs.pop("max_retries", self._max_retries)
        backoff = kwargs.pop("backoff", self._backoff)

        attempt = 0
        while True:
            try:
                return await self._perform_request(
                    method,
                    url,
                    allowed_response_codes=allowed_response_codes,
                    disallowed_response_codes=disallowed_response_codes,
                    retry_count=attempt,
                    # Only httpx arguments are left in kwargs once ours are popped.
                    **cast(Any, kwargs),
                )
            except (BadResponseException, RequestTimedOut) as e:
                should_retry = True
                if isinstance(e, BadResponseException) and status_code_matches(
                    e.response.status_code, no_retry_status_codes
                ):
                    should_retry = False
                    self.log.info(
                        f"Not retrying {url} - status code {e.response.status_code} "
                        f"in no_retry_status_codes list"
                    )

                if not should_retry or attempt >= max_retries:
                    e.retry_count = attempt
                    raise e

                delay = backoff(attempt) if backoff is not None else 0

                if isinstance(e, BadResponseException):
                    retry_after_delay = parse_retry_after(
                        e.response.headers.get("Retry-After")
                    )

                    if retry_after_delay:
                        if retry_after_delay > self._max_retry_after_delay:
                            self.log.warning(
                                f"Retry-After header specified {retry_after_delay:.2f}s, "
                                f"capping at max_retry_after_delay={self._max_retry_after_delay:.2f}s"
                            )
                            retry_after_delay = self._max_retry_after_delay
                        delay = max(delay, retry_after_delay)

                attempt += 1
                self.log.warning(
                    f"Request to {url} failed ({e}). "
                    f"Retrying in {delay:.2f}s... (attempt {attempt}/{max_retries})"
                )

                await self._sleep(delay)

    @staticmethod
    async def _sleep(delay: float) -> None:
        await asyncio.sleep(delay)

    async def get(
        self,
        url: URLTypes,
        **kwargs: Unpack[RequestKwargs],
    ) -> httpx.Response:
        return await self.request("GET", url, **kwargs)

    async def aclose(self) -> None:
        await self._httpx_client.aclose()

