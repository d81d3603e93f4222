"""
Failure handling for backend requests.

Each ``BackendClient`` owns one breaker and one retry policy built from its
``ApiConfig``; nothing here is shared between clients.
"""

import threading
import time
from enum import Enum
from functools import wraps
from typing import Any, Callable, Dict, Optional, Tuple, Type

import structlog
from tenacity import (
    RetryCallState,
    Retrying,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
)

from recordlens.core.exceptions import CircuitBreakerError

logger = structlog.get_logger(__name__)


class BreakerState(Enum):
    CLOSED = "closed"
    OPEN = "open"
    HALF_OPEN = "half_open"


class BackendBreaker:
    """
    Consecutive-failure breaker for one backend.

    ``failure_threshold`` counted failures in a row open it. While open every
    request is refused until ``recovery_timeout`` seconds have passed; then
    one trial request is let through and its outcome closes or re-opens it.
    Callers decide which failures count (see ``BackendClient.get``).
    """

    def __init__(
        self,
        name: str,
        failure_threshold: int = 5,
        recovery_timeout: float = 60.0,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.name = name
        self.failure_threshold = failure_threshold
        self.recovery_timeout = recovery_timeout
        self._clock = clock

        self.failures = 0
        self.opened_at: Optional[float] = None
        self.state = BreakerState.CLOSED
        self._lock = threading.Lock()

    def check(self) -> None:
        """Raise ``CircuitBreakerError`` if a request may not be sent now."""
        with self._lock:
            if self.state is not BreakerState.OPEN:
                return
            wait = self.opened_at + self.recovery_timeout - self._clock()
            if wait > 0:
                raise CircuitBreakerError(
                    f"Backend circuit '{self.name}' is open; next attempt in {wait:.0f}s",
                    details={"breaker": self.name, "failures": self.failures},
                )
            self.state = BreakerState.HALF_OPEN
            logger.info("Backend circuit half-open", breaker=self.name)

    def record_success(self) -> None:
        with self._lock:
            if self.state is not BreakerState.CLOSED:
                logger.info("Backend circuit closed", breaker=self.name)
            self.failures = 0
            self.opened_at = None
            self.state = BreakerState.CLOSED

    def record_failure(self) -> None:
        with self._lock:
            self.failures += 1
            trial_failed = self.state is BreakerState.HALF_OPEN
            if trial_failed or self.failures >= self.failure_threshold:
                if self.state is not BreakerState.OPEN:
                    logger.warning(
                        "Backend circuit opened",
                        breaker=self.name,
                        failures=self.failures,
                        threshold=self.failure_threshold,
                    )
                self.state = BreakerState.OPEN
                self.opened_at = self._clock()

    def status(self) -> Dict[str, Any]:
        return {
            "name": self.name,
            "state": self.state.value,
            "failures": self.failures,
            "threshold": self.failure_threshold,
        }


def _log_retry(retry_state: RetryCallState) -> None:
    error = retry_state.outcome.exception()
    logger.warning(
        "Retrying backend request",
        attempt=retry_state.attempt_number,
        error_type=type(error).__name__,
        sleep_seconds=round(retry_state.next_action.sleep, 2),
    )


def retry_policy(
    attempts: int,
    backoff_max: float,
    retry_on: Tuple[Type[BaseException], ...],
) -> Retrying:
    """
    tenacity policy for one client's requests.

    Args:
        attempts: Total tries, the first one included
        backoff_max: Cap on the exponential wait between tries, in seconds
        retry_on: Exception types worth another try; anything else propagates at once

    Returns:
        A reusable ``Retrying``; call it with the function and its arguments.
        The last error is re-raised once attempts run out.
    """
    return Retrying(
        stop=stop_after_attempt(attempts),
        wait=wait_exponential(multiplier=0.5, min=min(0.5, backoff_max), max=backoff_max),
        retry=retry_if_exception_type(retry_on),
        before_sleep=_log_retry,
        reraise=True,
    )


def track_performance(operation_name: str):
    """Log the duration and outcome of a records fetch."""

    def decorator(func: Callable) -> Callable:
        @wraps(func)
        def wrapper(*args, **kwargs):
            started = time.perf_counter()
            outcome = "failed"
            try:
                result = func(*args, **kwargs)
                outcome = "ok"
                return result
            finally:
                logger.info(
                    "Fetch finished",
                    operation=operation_name,
                    outcome=outcome,
                    duration_ms=round((time.perf_counter() - started) * 1000, 1),
                )

        return wrapper

    return decorator
