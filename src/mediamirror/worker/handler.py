"""
AWS Lambda entry point for the SQS-triggered media worker.

Configuration comes from environment variables (see
`mediamirror.config.config_from_environment`). The worker is built once per
container and reused across invocations.
"""

import asyncio
from typing import Any, Optional

from mediamirror.queue.base import QueueMessage
from mediamirror.utils.logging import get_logger
from mediamirror.worker.media import MediaWorker

logger = get_logger("mediamirror.worker.handler")

_worker: Optional[MediaWorker] = None


def records_to_messages(event: dict[str, Any]) -> list[QueueMessage]:
    """Convert an SQS event's records into queue messages."""
    return [
        QueueMessage(
            message_id=record["messageId"],
            body=record.get("body", ""),
            receipt_handle=record.get("receiptHandle"),
            receive_count=int(record.get("attributes", {}).get("ApproximateReceiveCount", 1)),
        )
        for record in event.get("Records", [])
    ]


def get_worker() -> MediaWorker:
    global _worker
    if _worker is None:
        from mediamirror.core.initialization import MediaMirrorInitializer

        _worker = MediaMirrorInitializer.from_environment().build_worker()
    return _worker


def set_worker(worker: Optional[MediaWorker]) -> None:
    """Replace the cached worker (tests, custom bootstrap)."""
    global _worker
    _worker = worker


async def handle_event(event: dict[str, Any], worker: MediaWorker) -> dict[str, Any]:
    messages = records_to_messages(event)
    logger.info(f"Received batch of {len(messages)} message(s)")
    try:
        result = await worker.handle_batch(messages)
    finally:
        # Each invocation runs on a fresh event loop; the HTTP session cannot outlive it
        await worker.origin.close()
    return result.to_lambda_response()


def lambda_handler(event: dict[str, Any], context: Any) -> dict[str, Any]:
    """
    Process an SQS batch.

    Returns the partial batch response, listing only the messages that failed.
    """
    return asyncio.run(handle_event(event, get_worker()))
