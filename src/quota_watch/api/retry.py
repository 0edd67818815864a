"""Backoff and retry for transient upstream failures.

Only failures that can succeed on a second try are retried: throttling,
gateway and server errors, timeouts and dropped connections. Everything
else (bad tokens, DNS failures, malformed requests) is raised at once.
"""

from __future__ import annotations

import random
import socket
import time
from typing import Callable, TypeVar
from urllib.error import HTTPError, URLError

DEFAULT_TIMEOUT = 30  # seconds
DEFAULT_MAX_RETRIES = 2
DEFAULT_BASE_DELAY = 1.0
DEFAULT_MAX_DELAY = 30.0

RETRYABLE_STATUS_CODES = frozenset({408, 429, 500, 502, 503, 504})

# Substrings of URLError reasons that indicate a transient network problem
TRANSIENT_REASONS = (
    "timed out",
    "connection reset",
    "connection refused",
    "temporary failure",
    "try again",
)

T = TypeVar("T")
RetryCallback = Callable[[int, Exception, float], None]


def calculate_backoff_delay(
    attempt: int,
    base_delay: float = DEFAULT_BASE_DELAY,
    max_delay: float = DEFAULT_MAX_DELAY,
) -> float:
    """Seconds to wait before retry number ``attempt + 1``.

    The delay doubles per attempt up to ``max_delay``, plus up to 50%
    random jitter so parallel pollers do not retry in lockstep.
    """
    capped = min(max_delay, base_delay * 2**attempt)
    return capped * (1 + random.random() / 2)


def is_retryable_error(error: Exception) -> bool:
    """Whether a failed request is worth repeating."""
    if isinstance(error, HTTPError):
        return error.code in RETRYABLE_STATUS_CODES
    if isinstance(error, URLError):
        reason = str(error.reason).lower()
        return any(fragment in reason for fragment in TRANSIENT_REASONS)
    return isinstance(error, (socket.timeout, TimeoutError))


def retry_request(
    request_func: Callable[[], T],
    max_retries: int = DEFAULT_MAX_RETRIES,
    base_delay: float = DEFAULT_BASE_DELAY,
    max_delay: float = DEFAULT_MAX_DELAY,
    on_retry: RetryCallback | None = None,
) -> T:
    """Call ``request_func`` until it succeeds or the retries run out.

    Args:
        request_func: Performs one attempt.
        max_retries: Extra attempts after the first one.
        base_delay: Delay before the first retry, in seconds.
        max_delay: Upper bound for any single delay.
        on_retry: Called as ``(retry_number, error, delay)`` before sleeping.

    Returns:
        Whatever ``request_func`` returns.

    Raises:
        The error of the last attempt, or the first non-retryable error.
    """
    attempt = 0
    while True:
        try:
            return request_func()
        except Exception as e:
            if attempt >= max_retries or not is_retryable_error(e):
                raise
            delay = calculate_backoff_delay(attempt, base_delay, max_delay)
            attempt += 1
            if on_retry is not None:
                on_retry(attempt, e, delay)
            time.sleep(delay)


__all__ = [
    "DEFAULT_TIMEOUT",
    "DEFAULT_MAX_RETRIES",
    "DEFAULT_BASE_DELAY",
    "DEFAULT_MAX_DELAY",
    "RETRYABLE_STATUS_CODES",
    "calculate_backoff_delay",
    "is_retryable_error",
    "retry_request",
]
