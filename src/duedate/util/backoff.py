from __future__ import annotations

import random

from duedate.core.exceptions import DueDateValueError


def exponential_backoff(
    retries: int,
    *,
    max_time: float | None = None,
    factor: float = 3.0,
    base: float = 3.0,
    jitter: float = 0.3,
) -> float:
    """
    Exponential backoff time, based on number of retries.

    The backoff includes some random jitter so that many requests failing at the same
    time (for example when the calendar service restarts) do not all retry at once.

    The backoff time is calculated as:
        backoff = factor * (base ** retries) * jitter_factor
    where jitter_factor is a random value between (1 - jitter) and (1 + jitter).

    :param retries: The number of retries that have already been attempted.
    :param max_time: The maximum number of seconds to wait before the next retry. If None,
        there is no cap. Default is None.
    :param factor: A factor to multiply the backoff time by. A backoff factor of 0 means no
        backoff. Default is 3.0.
    :param base: The base value for the exponential calculation. Default is 3.0.
    :param jitter: The amount of jitter to apply, as a fraction of the backoff time.
        Default is 0.3 (+/- 30%).

    :return: The number of seconds to wait before the next retry.
    """
    if retries < 0:
        raise DueDateValueError("retries must be non-negative")
    if jitter < 0 or jitter > 1:
        raise DueDateValueError("jitter must be between 0 and 1")
    if factor < 0:
        raise DueDateValueError("factor must be non-negative")
    if base <= 1:
        raise DueDateValueError("base must be greater than 1")
    if max_time is not None and max_time <= 0:
        raise DueDateValueError("max_time must be non-negative")

    base_delay: float = factor * (base**retries)
    jitter_factor = random.uniform(1 - jitter, 1 + jitter)
    backoff = base_delay * jitter_factor
    if max_time is not None:
        backoff = min(backoff, max_time)
    return backoff
