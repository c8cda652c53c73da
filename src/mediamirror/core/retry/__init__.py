"""
Retry framework for worker jobs: exponential backoff and a dead letter queue.
"""

from mediamirror.core.retry.dlq import DeadLetterQueue, DLQEntry
from mediamirror.core.retry.manager import RetryManager
from mediamirror.core.retry.policy import NO_RETRY_POLICY, WORKER_RETRY_POLICY, RetryPolicy, RetryState

__all__ = [
    # Policy
    "RetryPolicy",
    "RetryState",
    "WORKER_RETRY_POLICY",
    "NO_RETRY_POLICY",
    # Manager
    "RetryManager",
    # Dead Letter Queue
    "DeadLetterQueue",
    "DLQEntry",
]
