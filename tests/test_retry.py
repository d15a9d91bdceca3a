"""
Unit tests for retry helpers and the circuit breaker.

time.sleep is patched out so backoff delays do not slow the suite.
"""

from unittest.mock import MagicMock, patch

import pytest
import requests

from mediadrop.drive.errors import DriveApiError
from mediadrop.utils.retry import (
    CircuitBreaker,
    CircuitBreakerError,
    CircuitState,
    RetryConfig,
    calculate_backoff_delay,
    is_transient_error,
    retry_call,
    retry_with_backoff,
)


class TestBackoff:
    """Tests for calculate_backoff_delay."""

    def test_exponential_without_jitter(self):
        """Test exponential growth without jitter."""
        delays = [
            calculate_backoff_delay(a, base_delay=1.0, max_delay=60.0, multiplier=2.0, jitter=False)
            for a in range(4)
        ]
        assert delays == [1.0, 2.0, 4.0, 8.0]

    def test_capped_at_max_delay(self):
        """Test that delays are capped."""
        assert calculate_backoff_delay(10, 1.0, 5.0, 2.0, False) == 5.0

    def test_jitter_stays_in_range(self):
        """Test that jitter stays within bounds."""
        for _ in range(20):
            delay = calculate_backoff_delay(1, 1.0, 60.0, 2.0, True)
            assert 1.0 <= delay <= 3.0


@patch("mediadrop.utils.retry.time.sleep")
class TestRetryCall:
    """Tests for retry_call."""

    def test_success_first_try(self, mock_sleep):
        """Test a call that succeeds immediately."""
        func = MagicMock(return_value="ok")
        assert retry_call(func, RetryConfig(max_attempts=3)) == "ok"
        assert func.call_count == 1
        mock_sleep.assert_not_called()

    def test_retries_until_success(self, mock_sleep):
        """Test retrying until the call succeeds."""
        func = MagicMock(side_effect=[ConnectionError("reset"), "ok"])
        assert retry_call(func, RetryConfig(max_attempts=3, jitter=False), name="op") == "ok"
        assert func.call_count == 2
        mock_sleep.assert_called_once_with(1.0)

    def test_gives_up_after_max_attempts(self, mock_sleep):
        """Test giving up after max_attempts."""
        func = MagicMock(side_effect=ConnectionError("reset"))
        with pytest.raises(ConnectionError):
            retry_call(func, RetryConfig(max_attempts=2), name="op")
        assert func.call_count == 2

    def test_retry_if_rejects(self, mock_sleep):
        """Test that retry_if can refuse a retry."""
        func = MagicMock(side_effect=DriveApiError("Bad request", status_code=400))
        with pytest.raises(DriveApiError):
            retry_call(func, RetryConfig(max_attempts=3, retry_if=is_transient_error), name="op")
        assert func.call_count == 1
        mock_sleep.assert_not_called()

    def test_on_retry_called(self, mock_sleep):
        """Test the on_retry callback arguments."""
        on_retry = MagicMock()
        error = TimeoutError("slow")
        func = MagicMock(side_effect=[error, "ok"])
        retry_call(func, RetryConfig(max_attempts=2, jitter=False, on_retry=on_retry), name="op")
        on_retry.assert_called_once_with(0, error, 1.0)

    def test_unlisted_exception_not_retried(self, mock_sleep):
        """Test that unlisted exceptions propagate at once."""
        func = MagicMock(side_effect=KeyError("x"))
        with pytest.raises(KeyError):
            retry_call(func, RetryConfig(max_attempts=3, exceptions=(ValueError,)), name="op")
        assert func.call_count == 1

    def test_decorator(self, mock_sleep):
        """Test the retry_with_backoff decorator."""
        calls = []

        @retry_with_backoff(max_attempts=3, base_delay=0.1)
        def flaky():
            calls.append(1)
            if len(calls) < 3:
                raise ConnectionError("reset")
            return "done"

        assert flaky() == "done"
        assert len(calls) == 3
        assert flaky.__name__ == "flaky"


class TestCircuitBreaker:
    """Tests for CircuitBreaker."""

    def test_opens_after_threshold(self):
        """Test that the circuit opens after the failure threshold."""
        breaker = CircuitBreaker(failure_threshold=2, timeout=60, expected_exception=ValueError)
        failing = MagicMock(side_effect=ValueError("boom"))

        for _ in range(2):
            with pytest.raises(ValueError):
                breaker.call(failing)

        assert breaker.state == CircuitState.OPEN
        with pytest.raises(CircuitBreakerError):
            breaker.call(failing)
        assert failing.call_count == 2

    def test_half_open_recovers(self):
        """Test recovery through HALF_OPEN."""
        breaker = CircuitBreaker(failure_threshold=1, timeout=0, expected_exception=ValueError)
        with pytest.raises(ValueError):
            breaker.call(MagicMock(side_effect=ValueError("boom")))
        assert breaker.state == CircuitState.OPEN

        assert breaker.call(lambda: "ok") == "ok"
        assert breaker.state == CircuitState.CLOSED

    def test_unexpected_exception_not_counted(self):
        """Test that unexpected exceptions do not count as failures."""
        breaker = CircuitBreaker(failure_threshold=1, expected_exception=ValueError)
        with pytest.raises(KeyError):
            breaker.call(MagicMock(side_effect=KeyError("x")))
        assert breaker.state == CircuitState.CLOSED

    def test_tuple_of_exceptions(self):
        """Test a tuple of expected exceptions."""
        breaker = CircuitBreaker(
            failure_threshold=1, expected_exception=(requests.RequestException, DriveApiError)
        )
        with pytest.raises(DriveApiError):
            breaker.call(MagicMock(side_effect=DriveApiError("down", status_code=503)))
        assert breaker.state == CircuitState.OPEN

    def test_reset_and_decorator(self):
        """Test reset and use as a decorator."""
        breaker = CircuitBreaker(failure_threshold=1, expected_exception=ValueError)

        @breaker
        def explode():
            raise ValueError("boom")

        with pytest.raises(ValueError):
            explode()
        breaker.reset()
        assert breaker.state == CircuitState.CLOSED
        assert breaker.get_stats().failed_requests == 1


class TestIsTransientError:
    """Tests for is_transient_error."""

    @pytest.mark.parametrize("status", [408, 429, 500, 502, 503, 504])
    def test_transient_statuses(self, status):
        """Test statuses treated as transient."""
        assert is_transient_error(DriveApiError("x", status_code=status))

    @pytest.mark.parametrize("status", [400, 401, 403, 404, 410])
    def test_permanent_statuses(self, status):
        """Test statuses treated as permanent."""
        # Status decides even when the message looks transient
        assert not is_transient_error(DriveApiError("connection timeout", status_code=status))

    def test_status_on_response(self):
        """Test a status read from the attached response."""
        response = MagicMock(status_code=503)
        error = requests.HTTPError("server error", response=response)
        assert is_transient_error(error)

    def test_network_errors(self):
        """Test that network errors are transient."""
        assert is_transient_error(requests.ConnectionError("reset"))
        assert is_transient_error(requests.Timeout("slow"))
        assert is_transient_error(TimeoutError())

    def test_keyword_fallback(self):
        """Test the message fallback for errors without a status."""
        assert is_transient_error(RuntimeError("Service temporarily unavailable"))
        assert not is_transient_error(RuntimeError("invalid filename"))
