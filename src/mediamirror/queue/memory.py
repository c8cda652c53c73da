"""
In-memory work queue for testing.

Example:
    queue = InMemoryJobQueue()

    async with queue:
        await queue.send(job)
        messages = await queue.receive(wait_seconds=0)
"""

from __future__ import annotations

import asyncio
import itertools

from mediamirror.queue.base import Job, JobQueue, QueueMessage


class InMemoryJobQueue(JobQueue):
    """
    In-process job queue.

    Received messages stay in flight until deleted; `requeue_in_flight()`
    simulates a visibility timeout expiring.
    """

    def __init__(self):
        self._queue: asyncio.Queue[QueueMessage] = asyncio.Queue()
        self._in_flight: dict[str, QueueMessage] = {}
        self._ids = itertools.count(1)
        self.sent: list[Job] = []

    async def send(self, job: Job) -> str:
        message_id = f"msg-{next(self._ids)}"
        self.sent.append(job)
        await self._queue.put(QueueMessage(message_id=message_id, body=job.to_message(), receipt_handle=message_id))
        return message_id

    async def send_raw(self, body: str) -> str:
        """Enqueue an arbitrary body (for testing malformed messages)."""
        message_id = f"msg-{next(self._ids)}"
        await self._queue.put(QueueMessage(message_id=message_id, body=body, receipt_handle=message_id))
        return message_id

    async def receive(self, *, max_messages: int = 10, wait_seconds: int = 20) -> list[QueueMessage]:
        messages: list[QueueMessage] = []
        if self._queue.empty() and wait_seconds > 0:
            try:
                messages.append(await asyncio.wait_for(self._queue.get(), timeout=wait_seconds))
            except asyncio.TimeoutError:
                return []
        while len(messages) < max_messages and not self._queue.empty():
            messages.append(self._queue.get_nowait())
        for message in messages:
            self._in_flight[message.message_id] = message
        return messages

    async def delete(self, message: QueueMessage) -> None:
        self._in_flight.pop(message.message_id, None)

    async def requeue_in_flight(self) -> int:
        """Make every received-but-undeleted message visible again."""
        pending = list(self._in_flight.values())
        self._in_flight.clear()
        for message in pending:
            message.receive_count += 1
            await self._queue.put(message)
        return len(pending)

    @property
    def in_flight(self) -> list[QueueMessage]:
        return list(self._in_flight.values())

    @property
    def pending_count(self) -> int:
        return self._queue.qsize()
