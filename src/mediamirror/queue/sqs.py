"""
Amazon SQS work queue.

boto3 is blocking, so each call runs in a worker thread.
"""

from __future__ import annotations

import asyncio
from typing import Any, Optional

from botocore.exceptions import BotoCoreError, ClientError

from mediamirror.exceptions import QueueError
from mediamirror.queue.base import Job, JobQueue, QueueMessage
from mediamirror.utils.logging import get_logger

logger = get_logger("mediamirror.queue.sqs")

# SQS limits
MAX_RECEIVE = 10
MAX_WAIT_SECONDS = 20


class SQSJobQueue(JobQueue):
    """
    Job queue on an SQS standard queue.

    Args:
        queue_url: Full queue URL
        region: AWS region (defaults to the environment's)
        client: Pre-built boto3 SQS client (for tests)
    """

    def __init__(self, queue_url: str, *, region: Optional[str] = None, client: Any = None):
        self.queue_url = queue_url
        self.region = region
        self._client = client

    @property
    def client(self):
        if self._client is None:
            import boto3

            kwargs = {"region_name": self.region} if self.region else {}
            self._client = boto3.client("sqs", **kwargs)
        return self._client

    async def send(self, job: Job) -> str:
        try:
            response = await asyncio.to_thread(
                self.client.send_message, QueueUrl=self.queue_url, MessageBody=job.to_message()
            )
        except (BotoCoreError, ClientError) as e:
            raise QueueError(f"Failed to enqueue job for {job.remote_id}: {e}") from e
        logger.debug(f"Queued {job.kind.value} job for {job.path}")
        return response["MessageId"]

    async def receive(self, *, max_messages: int = 10, wait_seconds: int = 20) -> list[QueueMessage]:
        try:
            response = await asyncio.to_thread(
                self.client.receive_message,
                QueueUrl=self.queue_url,
                MaxNumberOfMessages=min(max_messages, MAX_RECEIVE),
                WaitTimeSeconds=min(wait_seconds, MAX_WAIT_SECONDS),
                AttributeNames=["ApproximateReceiveCount"],
            )
        except (BotoCoreError, ClientError) as e:
            raise QueueError(f"Failed to receive from {self.queue_url}: {e}") from e

        return [
            QueueMessage(
                message_id=raw["MessageId"],
                body=raw["Body"],
                receipt_handle=raw["ReceiptHandle"],
                receive_count=int(raw.get("Attributes", {}).get("ApproximateReceiveCount", 1)),
            )
            for raw in response.get("Messages", [])
        ]

    async def delete(self, message: QueueMessage) -> None:
        try:
            await asyncio.to_thread(
                self.client.delete_message, QueueUrl=self.queue_url, ReceiptHandle=message.receipt_handle
            )
        except (BotoCoreError, ClientError) as e:
            raise QueueError(f"Failed to delete message {message.message_id}: {e}") from e
