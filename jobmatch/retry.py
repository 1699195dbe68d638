"""
Bounded retries with exponential backoff for oracle calls.

The oracle is slow and unreliable. Timeouts, dropped connections, rate
limiting and 5xx responses are retried a few times; once the attempts run
out the caller gets a RetryError and falls back to the heuristic.
"""

import functools
import time
from typing import Callable, List, Optional, Tuple, Type

# Substrings that mark an error message as transient. Generative APIs report
# overload and quota exhaustion as free text rather than typed errors.
TRANSIENT_MARKERS = (
    "timeout",
    "timed out",
    "connection",
    "temporary failure",
    "service unavailable",
    "overloaded",
    "resource exhausted",
    "429",
    "500",
    "502",
    "503",
)

RETRYABLE_STATUS = frozenset({408, 429, 500, 502, 503, 504})


class RetryError(Exception):
    """Raised when every attempt failed with a retryable error."""

    def __init__(self, message: str, attempts: int, last_error: Optional[BaseException] = None):
        super().__init__(message)
        self.attempts = attempts
        self.last_error = last_error


def backoff_schedule(
    max_retries: int,
    base_delay: float = 1.0,
    max_delay: float = 60.0,
    exponential_base: float = 2.0,
) -> List[float]:
    """
    Delays slept between attempts, one per retry.

    >>> backoff_schedule(3, base_delay=0.5)
    [0.5, 1.0, 2.0]
    """
    return [
        min(base_delay * exponential_base ** n, max_delay)
        for n in range(max(max_retries, 0))
    ]


def exponential_backoff(
    max_retries: int = 2,
    base_delay: float = 1.0,
    max_delay: float = 60.0,
    exponential_base: float = 2.0,
    exceptions: Tuple[Type[Exception], ...] = (Exception,),
    on_retry: Optional[Callable] = None,
    sleep: Callable[[float], None] = time.sleep,
):
    """
    Decorator for retrying functions with exponential backoff.

    Exceptions outside ``exceptions`` propagate on the first occurrence.

    Args:
        max_retries: Retries after the first attempt (0 = single attempt)
        base_delay: Delay before the first retry, in seconds
        max_delay: Upper bound for any single delay
        exponential_base: Growth factor between consecutive delays
        exceptions: Exception types that trigger a retry
        on_retry: Optional callback(attempt, exception, delay)
        sleep: Function used to wait between attempts

    Example:
        @exponential_backoff(max_retries=2, exceptions=(TransientOracleError,))
        def call_oracle(prompt):
            return transport.generate(prompt, timeout=15)
    """
    delays = backoff_schedule(max_retries, base_delay, max_delay, exponential_base)

    def decorator(func: Callable) -> Callable:
        @functools.wraps(func)
        def wrapper(*args, **kwargs):
            for attempt, delay in enumerate(delays, start=1):
                try:
                    return func(*args, **kwargs)
                except exceptions as e:
                    if on_retry:
                        on_retry(attempt, e, delay)
                    sleep(delay)

            # Final attempt, no sleep afterwards
            try:
                return func(*args, **kwargs)
            except exceptions as e:
                raise RetryError(
                    f"Failed after {len(delays) + 1} attempts: {e}",
                    attempts=len(delays) + 1,
                    last_error=e,
                ) from e

        return wrapper
    return decorator


def is_transient_error(exception: Exception) -> bool:
    """True if the message looks like a timeout, dropped connection, overload or 5xx/429."""
    message = str(exception).lower()
    return any(marker in message for marker in TRANSIENT_MARKERS)


def should_retry_http_status(status_code: int) -> bool:
    return status_code in RETRYABLE_STATUS
