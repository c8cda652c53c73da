"""
Work queue: job messages, queue backends and dispatch.
"""

from mediamirror.queue.base import Job, JobQueue, QueueMessage
from mediamirror.queue.dispatcher import DEFAULT_IMAGE_WIDTHS, DispatchOutcome, JobDispatcher
from mediamirror.queue.memory import InMemoryJobQueue
from mediamirror.queue.sqs import SQSJobQueue

__all__ = [
    "DEFAULT_IMAGE_WIDTHS",
    "DispatchOutcome",
    "InMemoryJobQueue",
    "Job",
    "JobDispatcher",
    "JobQueue",
    "QueueMessage",
    "SQSJobQueue",
]
