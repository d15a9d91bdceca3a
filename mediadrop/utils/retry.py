"""
Retry logic with exponential backoff and jitter.

Provides retry mechanisms for transient Drive failures with:
- Exponential backoff with jitter (prevents thundering herd)
- Circuit breaker pattern (fails fast when Drive is down)
- Custom retry conditions and exception handling
- Logging of retry attempts

Usage:
    from mediadrop.utils.retry import retry_with_backoff, retry_call, RetryConfig

    @retry_with_backoff(max_attempts=3, base_delay=1.0)
    def create_session(...):
        ...

    # Call-site configuration (chunk retries come from UploaderConfig):
    retry_call(send, RetryConfig(max_attempts=2, retry_if=is_transient_error))
"""

import time
import random
import functools
from typing import Callable, Optional, Type, Tuple, Any, Union
from enum import Enum
from dataclasses import dataclass
from datetime import datetime

import requests

from mediadrop.utils.logging import get_logger

# Module-level logger
logger = get_logger(__name__)

# HTTP statuses worth another attempt
TRANSIENT_STATUS_CODES = frozenset({408, 429, 500, 502, 503, 504})


# ============================================================================
# Retry Configuration
# ============================================================================

@dataclass
class RetryConfig:
    """
    Configuration for retry behavior.

    Attributes:
        max_attempts: Maximum number of attempts (including the first one)
        base_delay: Initial delay between retries in seconds
        max_delay: Maximum delay between retries in seconds
        backoff_multiplier: Multiplier for exponential backoff
        jitter: Whether to add randomness to delays
        exceptions: Tuple of exception types to retry on
        retry_if: Optional predicate; exceptions it rejects are raised at once
        on_retry: Optional callback called before each retry
    """
    max_attempts: int = 3
    base_delay: float = 1.0
    max_delay: float = 60.0
    backoff_multiplier: float = 2.0
    jitter: bool = True
    exceptions: Tuple[Type[Exception], ...] = (Exception,)
    retry_if: Optional[Callable[[Exception], bool]] = None
    on_retry: Optional[Callable[[int, Exception, float], None]] = None


def calculate_backoff_delay(
    attempt: int,
    base_delay: float,
    max_delay: float,
    multiplier: float,
    jitter: bool,
) -> float:
    """
    Calculate delay for exponential backoff with optional jitter.

    Formula:
        delay = min(base_delay * (multiplier ** attempt), max_delay)
        if jitter:
            delay = delay * random.uniform(0.5, 1.5)

    Args:
        attempt: Current attempt number (0-indexed)
        base_delay: Base delay in seconds
        max_delay: Maximum delay cap
        multiplier: Exponential multiplier
        jitter: Whether to add random jitter

    Returns:
        Calculated delay in seconds

    Example:
        >>> calculate_backoff_delay(2, base_delay=1.0, max_delay=60.0,
        ...                         multiplier=2.0, jitter=False)
        4.0
    """
    delay = base_delay * (multiplier ** attempt)
    delay = min(delay, max_delay)

    if jitter:
        delay = delay * random.uniform(0.5, 1.5)

    return delay


# ============================================================================
# Retry Helpers
# ============================================================================

def retry_call(func: Callable[[], Any], config: RetryConfig, name: Optional[str] = None) -> Any:
    """
    Call ``func`` until it succeeds or the retry budget is spent.

    Args:
        func: Zero-argument callable to execute
        config: Retry behaviour
        name: Name used in log lines (defaults to func.__name__)

    Returns:
        Whatever ``func`` returns

    Raises:
        The last exception raised by ``func`` once attempts are exhausted,
        or immediately when ``config.retry_if`` rejects it.
    """
    label = name or getattr(func, "__name__", "operation")

    for attempt in range(config.max_attempts):
        try:
            if attempt == 0:
                logger.debug(f"Executing {label}")
            else:
                logger.info(
                    f"Retry attempt {attempt}/{config.max_attempts - 1} for {label}"
                )

            result = func()

            if attempt > 0:
                logger.info(f"{label} succeeded on attempt {attempt + 1}")

            return result

        except config.exceptions as e:
            if config.retry_if is not None and not config.retry_if(e):
                logger.warning(f"{label} failed with non-retryable error: {e}")
                raise

            if attempt >= config.max_attempts - 1:
                logger.error(
                    f"{label} failed after {config.max_attempts} attempts. "
                    f"Last error: {e}"
                )
                raise

            delay = calculate_backoff_delay(
                attempt=attempt,
                base_delay=config.base_delay,
                max_delay=config.max_delay,
                multiplier=config.backoff_multiplier,
                jitter=config.jitter,
            )

            logger.warning(
                f"{label} failed on attempt {attempt + 1}: {e}. "
                f"Retrying in {delay:.2f}s..."
            )

            if config.on_retry:
                config.on_retry(attempt, e, delay)

            time.sleep(delay)

    raise RuntimeError(f"{label} called with max_attempts={config.max_attempts}")


def retry_with_backoff(
    max_attempts: int = 3,
    base_delay: float = 1.0,
    max_delay: float = 60.0,
    backoff_multiplier: float = 2.0,
    jitter: bool = True,
    exceptions: Tuple[Type[Exception], ...] = (Exception,),
    retry_if: Optional[Callable[[Exception], bool]] = None,
    on_retry: Optional[Callable[[int, Exception, float], None]] = None,
):
    """
    Decorator for retrying functions with exponential backoff.

    Example:
        >>> @retry_with_backoff(max_attempts=3, retry_if=is_transient_error)
        ... def fetch_token():
        ...     return credentials.refresh(Request())
    """
    config = RetryConfig(
        max_attempts=max_attempts,
        base_delay=base_delay,
        max_delay=max_delay,
        backoff_multiplier=backoff_multiplier,
        jitter=jitter,
        exceptions=exceptions,
        retry_if=retry_if,
        on_retry=on_retry,
    )

    def decorator(func: Callable) -> Callable:
        @functools.wraps(func)
        def wrapper(*args: Any, **kwargs: Any) -> Any:
            return retry_call(lambda: func(*args, **kwargs), config, name=func.__name__)

        return wrapper
    return decorator


# ============================================================================
# Circuit Breaker Pattern
# ============================================================================

class CircuitState(str, Enum):
    """
    Circuit breaker states.

    States:
        CLOSED: Normal operation, requests pass through
        OPEN: Circuit is open, requests fail immediately
        HALF_OPEN: Testing if service recovered
    """
    CLOSED = "closed"
    OPEN = "open"
    HALF_OPEN = "half_open"


@dataclass
class CircuitBreakerStats:
    """Counters kept by a CircuitBreaker."""
    total_requests: int = 0
    successful_requests: int = 0
    failed_requests: int = 0
    last_failure_time: Optional[datetime] = None
    state_changes: int = 0


class CircuitBreakerError(Exception):
    """Exception raised when circuit breaker is open."""
    pass


class CircuitBreaker:
    """
    Circuit breaker for protecting against cascading failures.

    Opens after ``failure_threshold`` consecutive failures; after ``timeout``
    seconds one trial call is let through (HALF_OPEN). A success closes the
    circuit, a failure opens it again.

    Example:
        >>> breaker = CircuitBreaker(failure_threshold=5, timeout=60)
        >>> breaker.call(session.post, url, json=body)
    """

    def __init__(
        self,
        failure_threshold: int = 5,
        timeout: float = 60.0,
        expected_exception: Union[Type[Exception], Tuple[Type[Exception], ...]] = Exception,
    ) -> None:
        self.failure_threshold = failure_threshold
        self.timeout = timeout
        self.expected_exception = expected_exception

        self.state = CircuitState.CLOSED
        self.failure_count = 0
        self.last_failure_time: Optional[datetime] = None
        self.opened_at: Optional[datetime] = None

        self.stats = CircuitBreakerStats()

    def __call__(self, func: Callable) -> Callable:
        @functools.wraps(func)
        def wrapper(*args: Any, **kwargs: Any) -> Any:
            return self.call(func, *args, **kwargs)

        return wrapper

    def call(self, func: Callable, *args: Any, **kwargs: Any) -> Any:
        """
        Execute function with circuit breaker protection.

        Raises:
            CircuitBreakerError: If circuit is open
            Exception: Original exception if function fails
        """
        self.stats.total_requests += 1
        name = getattr(func, "__name__", "call")

        if self.state == CircuitState.OPEN:
            if self._should_attempt_reset():
                self._transition_to_half_open()
            else:
                logger.warning(f"Circuit is OPEN, failing fast for {name}")
                raise CircuitBreakerError("Circuit breaker is OPEN")

        try:
            result = func(*args, **kwargs)
        except self.expected_exception as e:
            self._on_failure(e)
            raise

        self._on_success()
        return result

    def _should_attempt_reset(self) -> bool:
        if self.opened_at is None:
            return True

        elapsed = (datetime.now() - self.opened_at).total_seconds()
        return elapsed >= self.timeout

    def _transition_to_half_open(self) -> None:
        self.state = CircuitState.HALF_OPEN
        self.stats.state_changes += 1
        logger.info("Circuit state: HALF_OPEN (testing recovery)")

    def _on_success(self) -> None:
        self.stats.successful_requests += 1

        if self.state == CircuitState.HALF_OPEN:
            logger.info("Service recovered, closing circuit")
            self._close_circuit()
        elif self.failure_count > 0:
            logger.debug(f"Resetting failure count from {self.failure_count} to 0")
            self.failure_count = 0

    def _on_failure(self, exception: Exception) -> None:
        self.stats.failed_requests += 1
        self.failure_count += 1
        self.last_failure_time = datetime.now()
        self.stats.last_failure_time = self.last_failure_time

        logger.warning(
            f"Circuit breaker recorded failure "
            f"({self.failure_count}/{self.failure_threshold}): {exception}"
        )

        if self.state == CircuitState.HALF_OPEN:
            logger.warning("Recovery failed, reopening circuit")
            self._open_circuit()
        elif self.failure_count >= self.failure_threshold:
            logger.error(
                f"Failure threshold ({self.failure_threshold}) exceeded, opening circuit"
            )
            self._open_circuit()

    def _open_circuit(self) -> None:
        self.state = CircuitState.OPEN
        self.opened_at = datetime.now()
        self.stats.state_changes += 1
        logger.error(f"Circuit state: OPEN (will retry in {self.timeout}s)")

    def _close_circuit(self) -> None:
        self.state = CircuitState.CLOSED
        self.failure_count = 0
        self.opened_at = None
        self.stats.state_changes += 1
        logger.info("Circuit state: CLOSED (normal operation)")

    def reset(self) -> None:
        """Manually reset circuit breaker to CLOSED state."""
        logger.info("Manually resetting circuit breaker")
        self._close_circuit()

    def get_stats(self) -> CircuitBreakerStats:
        return self.stats


# ============================================================================
# Utility Functions
# ============================================================================

def is_transient_error(exception: Exception) -> bool:
    """
    Determine if exception is likely transient (retryable).

    Errors carrying an HTTP status (``status_code`` attribute, or a
    ``response`` with one) are judged by that status alone. Otherwise
    connection problems and timeouts are transient.

    Args:
        exception: Exception to check

    Returns:
        True if exception is likely transient

    Example:
        >>> is_transient_error(requests.ConnectionError("reset by peer"))
        True
        >>> is_transient_error(DriveApiError("Bad request", status_code=400))
        False
    """
    status_code = getattr(exception, "status_code", None)
    if status_code is None:
        response = getattr(exception, "response", None)
        status_code = getattr(response, "status_code", None)
    if isinstance(status_code, int):
        return status_code in TRANSIENT_STATUS_CODES

    if isinstance(exception, (requests.ConnectionError, requests.Timeout)):
        return True

    if isinstance(exception, (ConnectionError, TimeoutError)):
        return True

    exception_str = str(exception).lower()
    transient_keywords = [
        "timeout",
        "timed out",
        "connection",
        "temporary",
        "unavailable",
        "rate limit",
    ]

    return any(keyword in exception_str for keyword in transient_keywords)
