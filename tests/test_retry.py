"""
Tests for retry logic.
"""

import pytest

from jobmatch.retry import (
    RetryError,
    backoff_schedule,
    exponential_backoff,
    is_transient_error,
    should_retry_http_status,
)


class Flaky:
    """Callable that raises the given errors in order, then returns 'ok'."""

    def __init__(self, *errors):
        self.errors = list(errors)
        self.calls = 0

    def __call__(self):
        self.calls += 1
        if self.errors:
            raise self.errors.pop(0)
        return "ok"


def retrying(func, **kwargs):
    kwargs.setdefault("sleep", lambda _: None)
    return exponential_backoff(**kwargs)(func)


class TestBackoffSchedule:
    def test_doubles_from_base(self):
        assert backoff_schedule(3, base_delay=1.0) == [1.0, 2.0, 4.0]

    def test_capped(self):
        assert backoff_schedule(4, base_delay=1.0, max_delay=2.0, exponential_base=3.0) == [1.0, 2.0, 2.0, 2.0]

    def test_no_retries(self):
        assert backoff_schedule(0) == []
        assert backoff_schedule(-1) == []


class TestExponentialBackoff:
    """Test the retry decorator."""

    def test_success_on_first_try(self):
        flaky = Flaky()
        assert retrying(flaky, max_retries=3)() == "ok"
        assert flaky.calls == 1

    def test_recovers_after_transient_failures(self):
        flaky = Flaky(ConnectionError("reset"), ConnectionError("reset"))
        assert retrying(flaky, max_retries=2)() == "ok"
        assert flaky.calls == 3

    def test_exhausted(self):
        """Initial attempt plus max_retries, then RetryError carrying the last error."""
        last = ValueError("third")
        flaky = Flaky(ValueError("first"), ValueError("second"), last)

        with pytest.raises(RetryError) as exc_info:
            retrying(flaky, max_retries=2)()

        assert flaky.calls == 3
        assert exc_info.value.attempts == 3
        assert exc_info.value.last_error is last
        assert exc_info.value.__cause__ is last

    def test_zero_retries_is_single_attempt(self):
        flaky = Flaky(ConnectionError("down"))
        with pytest.raises(RetryError):
            retrying(flaky, max_retries=0)()
        assert flaky.calls == 1

    def test_other_exceptions_propagate_immediately(self):
        flaky = Flaky(KeyError("bad input"))
        with pytest.raises(KeyError):
            retrying(flaky, max_retries=3, exceptions=(ConnectionError,))()
        assert flaky.calls == 1

    def test_sleeps_and_reports_each_delay(self):
        slept, reported = [], []
        flaky = Flaky(*[ConnectionError("x")] * 4)

        with pytest.raises(RetryError):
            retrying(
                flaky,
                max_retries=3,
                base_delay=0.5,
                on_retry=lambda attempt, error, delay: reported.append((attempt, delay)),
                sleep=slept.append,
            )()

        assert slept == [0.5, 1.0, 2.0]
        assert reported == [(1, 0.5), (2, 1.0), (3, 2.0)]

    def test_no_sleep_after_success(self):
        slept = []
        flaky = Flaky(ConnectionError("x"))
        retrying(flaky, max_retries=3, sleep=slept.append)()
        assert slept == [1.0]


class TestTransientErrorDetection:
    """Classify oracle failures."""

    @pytest.mark.parametrize("message", [
        "Connection timeout",
        "read timed out",
        "Connection reset by peer",
        "The model is overloaded. Please try again later.",
        "429 Resource exhausted",
        "503 Service Unavailable",
        "502 Bad Gateway",
        "500 Internal Server Error",
    ])
    def test_transient(self, message):
        assert is_transient_error(Exception(message))

    @pytest.mark.parametrize("message", [
        "404 Not Found",
        "Invalid data",
        "401 Unauthorized",
        "API key not valid",
    ])
    def test_permanent(self, message):
        assert not is_transient_error(Exception(message))

    def test_http_status(self):
        for status in (408, 429, 500, 502, 503, 504):
            assert should_retry_http_status(status)
        for status in (200, 400, 401, 403, 404):
            assert not should_retry_http_status(status)
