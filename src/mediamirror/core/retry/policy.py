"""
Retry policy configuration for worker jobs.

Exponential backoff with jitter, limited to the failures worth retrying.
"""

import random
import time
from collections.abc import Callable
from dataclasses import dataclass, field
from typing import Any, Optional

from mediamirror.exceptions import TransientError


@dataclass
class RetryPolicy:
    """
    Configuration for retry behavior when a job fails.

    Examples:
        >>> # Basic retry with defaults
        >>> policy = RetryPolicy(max_attempts=3)

        >>> # Retry specific errors only
        >>> policy = RetryPolicy(
        ...     max_attempts=5,
        ...     initial_delay=2.0,
        ...     retryable_exceptions=(ConnectionError, TimeoutError),
        ... )
    """

    # Maximum number of retry attempts (total executions = max_attempts + 1)
    max_attempts: int = 3

    # Initial delay before first retry (seconds)
    initial_delay: float = 1.0

    # Maximum delay between retries (seconds)
    max_delay: float = 30.0

    # Exponential backoff base (delay = initial_delay * base^attempt)
    exponential_base: float = 2.0

    # Add random jitter to prevent thundering herd (±25% of delay)
    jitter: bool = True

    # Only retry these exception types (None = retry all exceptions)
    retryable_exceptions: Optional[tuple[type[Exception], ...]] = None

    # Custom retry condition, takes precedence over retryable_exceptions
    # Signature: (exception: Exception, attempt: int) -> bool
    retry_condition: Optional[Callable[[Exception, int], bool]] = None

    def __post_init__(self):
        """Validate configuration."""
        if self.max_attempts < 0:
            raise ValueError("max_attempts must be >= 0")
        if self.initial_delay <= 0:
            raise ValueError("initial_delay must be > 0")
        if self.max_delay < self.initial_delay:
            raise ValueError("max_delay must be >= initial_delay")
        if self.exponential_base < 1.0:
            raise ValueError("exponential_base must be >= 1.0")

    def should_retry(self, exception: Exception, attempt: int) -> bool:
        """
        Determine if we should retry after this exception.

        Args:
            exception: The exception that occurred
            attempt: Current attempt number (0-indexed)
        """
        if attempt >= self.max_attempts:
            return False

        if self.retry_condition is not None:
            return self.retry_condition(exception, attempt)

        if self.retryable_exceptions is not None:
            return isinstance(exception, self.retryable_exceptions)

        return True

    def get_delay(self, attempt: int) -> float:
        """
        Calculate delay before next retry using exponential backoff.

        delay = min(initial_delay * base^attempt * jitter, max_delay)

        Args:
            attempt: Current attempt number (0-indexed)

        Returns:
            Delay in seconds before next retry
        """
        delay = self.initial_delay * (self.exponential_base**attempt)

        if self.jitter:
            delay *= random.uniform(0.75, 1.25)

        # Cap after jitter so max_delay is a hard upper bound
        return min(delay, self.max_delay)


@dataclass
class RetryState:
    """Retry history of one operation, kept for logs and dead-letter entries."""

    operation: str
    attempt: int = 0
    total_attempts: int = 0
    exceptions: list[dict[str, Any]] = field(default_factory=list)
    delays: list[float] = field(default_factory=list)
    started_at: float = field(default_factory=time.time)
    succeeded: bool = False
    final_exception: Optional[Exception] = None

    def record_attempt(self, exception: Optional[Exception] = None):
        self.total_attempts += 1
        if exception is not None:
            self.exceptions.append(
                {
                    "attempt": self.attempt,
                    "exception_type": type(exception).__name__,
                    "exception_message": str(exception),
                    "timestamp": time.time(),
                }
            )

    def record_delay(self, delay: float):
        self.delays.append(delay)

    def mark_success(self):
        self.succeeded = True

    def mark_failure(self, exception: Exception):
        self.succeeded = False
        self.final_exception = exception

    @property
    def duration(self) -> float:
        return time.time() - self.started_at


# Transient I/O gets three more chances; anything else fails the job at once
WORKER_RETRY_POLICY = RetryPolicy(
    max_attempts=3,
    initial_delay=1.0,
    max_delay=30.0,
    exponential_base=2.0,
    jitter=True,
    retryable_exceptions=(TransientError,),
)

NO_RETRY_POLICY = RetryPolicy(max_attempts=0)
