"""
Retry manager for executing coroutines with exponential backoff.
"""

import asyncio
from collections.abc import Awaitable, Callable
from typing import Any, Optional, TypeVar

from mediamirror.core.retry.policy import WORKER_RETRY_POLICY, RetryPolicy, RetryState
from mediamirror.exceptions import RetryError
from mediamirror.observability.metrics import MetricsRegistry, get_metrics_registry
from mediamirror.utils.logging import get_logger

logger = get_logger("mediamirror.retry.manager")

T = TypeVar("T")


class RetryManager:
    """
    Runs async callables under a RetryPolicy.

    The state of the most recent execution of each operation is kept until
    the caller pops it, e.g. to put the attempt history into a dead-letter
    entry. Callers that name operations per job must pop them.

    Examples:
        >>> manager = RetryManager()
        >>> result = await manager.execute(upload, key, policy=WORKER_RETRY_POLICY)
        >>> manager.get_state("upload").total_attempts
        1
    """

    def __init__(
        self,
        metrics: Optional[MetricsRegistry] = None,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
    ):
        """
        Initialize RetryManager.

        Args:
            metrics: Metrics registry (defaults to the global one)
            sleep: Awaitable used between attempts
        """
        self.metrics = metrics or get_metrics_registry()
        self._sleep = sleep
        self._retry_stats: dict[str, RetryState] = {}

    def get_state(self, operation: str) -> Optional[RetryState]:
        """Retry state of the latest execution of `operation`."""
        return self._retry_stats.get(operation)

    def pop_state(self, operation: str) -> Optional[RetryState]:
        """Remove and return the retry state of `operation`."""
        return self._retry_stats.pop(operation, None)

    async def execute(
        self,
        func: Callable[..., Awaitable[T]],
        *args,
        policy: RetryPolicy | None = None,
        operation: str | None = None,
        **kwargs,
    ) -> T:
        """
        Execute async function with retry logic.

        Args:
            func: Async function to execute
            *args: Positional arguments to pass to func
            policy: Retry policy (defaults to WORKER_RETRY_POLICY)
            operation: Name for logging and retry state
            **kwargs: Keyword arguments to pass to func

        Returns:
            Result of successful execution

        Raises:
            Exception: Final exception after all retries exhausted, or the
                first non-retryable one
        """
        policy = policy or WORKER_RETRY_POLICY
        state = RetryState(operation=operation or func.__name__)
        self._retry_stats[state.operation] = state

        for attempt in range(policy.max_attempts + 1):
            state.attempt = attempt
            try:
                logger.debug(f"Executing {state.operation} (attempt {attempt + 1}/{policy.max_attempts + 1})")
                result = await func(*args, **kwargs)
            except Exception as e:
                state.record_attempt(exception=e)

                if not policy.should_retry(e, attempt):
                    state.mark_failure(e)
                    if attempt > 0:
                        self.metrics.record_retry("exhausted")
                    logger.error(f"{state.operation} failed after {attempt + 1} attempt(s): {e}")
                    raise

                delay = policy.get_delay(attempt)
                state.record_delay(delay)
                self.metrics.record_retry("retried")
                logger.warning(f"{state.operation} attempt {attempt + 1} failed: {e}. Retrying in {delay:.2f}s...")
                await self._sleep(delay)
                continue

            state.record_attempt()
            state.mark_success()
            if attempt > 0:
                logger.info(f"{state.operation} succeeded after {attempt + 1} attempts")
            return result

        # The last iteration either returns or raises
        raise RetryError(f"Retry loop for {state.operation} exited without a result")
