"""
Media worker: turns queued jobs into stored renditions.

Images are downloaded, resized in-process and uploaded. Videos are streamed
from a temporary origin link straight into storage and handed to the external
encoder for the HLS ladder. Every write goes to a key derived only from the
source path, so redelivered jobs overwrite their own earlier output.
"""

from __future__ import annotations

import asyncio
from collections.abc import Iterable
from dataclasses import dataclass, field
from typing import Any, Optional

from mediamirror.core.retry import WORKER_RETRY_POLICY, DeadLetterQueue, DLQEntry, RetryManager, RetryPolicy
from mediamirror.exceptions import ConfigurationError, InvalidJobError, QueueError
from mediamirror.media.classifier import (
    IMAGE_CONTENT_TYPE,
    MediaKind,
    canonical_key,
    content_type_for,
    hls_output_prefix,
    rendition_key,
)
from mediamirror.media.rendition import build_rendition_job
from mediamirror.observability.metrics import MetricsRegistry, get_metrics_registry
from mediamirror.observability.structured_logging import add_correlation_id
from mediamirror.origin.base import OriginStore
from mediamirror.origin.dropbox import DEFAULT_CHUNK_SIZE
from mediamirror.queue.base import Job, JobQueue, QueueMessage
from mediamirror.queue.dispatcher import DEFAULT_IMAGE_WIDTHS
from mediamirror.storage.s3 import DEFAULT_PART_SIZE, S3Storage
from mediamirror.utils.logging import get_logger
from mediamirror.worker.images import render_renditions

logger = get_logger("mediamirror.worker.media")

# Pause after a failed receive before polling again
RECEIVE_BACKOFF_SECONDS = 5.0


@dataclass
class BatchResult:
    """Per-message outcome of one batch."""

    succeeded: list[str] = field(default_factory=list)
    failed_ids: list[str] = field(default_factory=list)

    def to_lambda_response(self) -> dict[str, Any]:
        """SQS partial batch response: only failed messages are redelivered."""
        return {"batchItemFailures": [{"itemIdentifier": message_id} for message_id in self.failed_ids]}


class MediaWorker:
    """
    Processes image and video jobs.

    Args:
        origin: Origin store client
        storage: Destination object storage
        encoder: Video encoder; required for video jobs only
        dlq: Dead letter queue (in-memory by default)
        retry_policy: Policy each job runs under
        retry_manager: Retry manager (a fresh one by default)
        metrics: Metrics registry (defaults to the global one)
        chunk_size: Read size when streaming originals
        part_size: Multipart part size for streamed originals
    """

    def __init__(
        self,
        origin: OriginStore,
        storage: S3Storage,
        encoder: Any = None,
        *,
        dlq: Optional[DeadLetterQueue] = None,
        retry_policy: RetryPolicy = WORKER_RETRY_POLICY,
        retry_manager: Optional[RetryManager] = None,
        metrics: Optional[MetricsRegistry] = None,
        chunk_size: int = DEFAULT_CHUNK_SIZE,
        part_size: int = DEFAULT_PART_SIZE,
    ):
        self.origin = origin
        self.storage = storage
        self.encoder = encoder
        self.metrics = metrics or get_metrics_registry()
        self.dlq = dlq or DeadLetterQueue(metrics=self.metrics)
        self.retry_policy = retry_policy
        self.retry_manager = retry_manager or RetryManager(metrics=self.metrics)
        self.chunk_size = chunk_size
        self.part_size = part_size

    # -- single jobs ----------------------------------------------------------

    async def process_job(self, job: Job) -> list[str]:
        """Run one job; returns the keys written."""
        if job.kind is MediaKind.VIDEO:
            return await self.process_video(job)
        return await self.process_image(job)

    async def process_image(self, job: Job) -> list[str]:
        """
        Download an image and upload its canonical and width renditions.

        Raises:
            UnsupportedPayloadError: If the origin returned nothing usable
            OriginError: If the download failed
            StorageError: If an upload failed
        """
        download = await self.origin.download(job.remote_id)
        data = download.unwrap()

        widths = job.image_widths or DEFAULT_IMAGE_WIDTHS
        canonical = canonical_key(job.source_path, MediaKind.IMAGE)
        renditions = await asyncio.to_thread(render_renditions, data, widths, source=job.remote_id)

        keys = []
        for width, body in renditions:
            key = rendition_key(canonical, width)
            await self.storage.put_bytes(key, body, content_type=IMAGE_CONTENT_TYPE)
            keys.append(key)

        self.metrics.record_upload(MediaKind.IMAGE.value, len(keys))
        logger.info(f"Stored {len(keys)} rendition(s) of {job.path}")
        return keys

    async def process_video(self, job: Job) -> list[str]:
        """
        Stream an original video into storage and submit its HLS job.

        The job is complete once the encoder accepts the submission.

        Raises:
            OriginError: If the temporary link cannot be resolved or read
            StorageError: If the streamed upload failed
            EncoderSubmissionError: If the encoder did not accept the job
        """
        if self.encoder is None:
            raise ConfigurationError(f"Video job for {job.path} needs an encoder, none is configured")

        video_key = canonical_key(job.source_path, MediaKind.VIDEO)
        link = await self.origin.get_temporary_link(job.remote_id)
        await self.storage.put_stream(
            video_key,
            self.origin.stream_url(link, chunk_size=self.chunk_size),
            content_type=content_type_for(video_key),
            part_size=self.part_size,
        )
        self.metrics.record_upload(MediaKind.VIDEO.value)

        spec = build_rendition_job(
            self.storage.full_key(video_key),
            self.storage.full_key(hls_output_prefix(video_key)),
        )
        await self.encoder.submit(spec)
        return [video_key]

    # -- batches --------------------------------------------------------------

    async def handle_message(self, message: QueueMessage) -> bool:
        """
        Process one queue message under the retry policy.

        A job that still fails is dead-lettered. Returns whether it succeeded.
        """
        try:
            job = Job.from_message(message.body)
        except InvalidJobError as e:
            logger.error(f"Discarding malformed message {message.message_id}: {e}")
            await self.dlq.add(DLQEntry.from_exception(message.message_id, message.body, e))
            self.metrics.record_job("unknown", "invalid")
            return False

        operation = f"{job.kind.value}:{job.remote_id}"
        with add_correlation_id(job.remote_id):
            try:
                await self.retry_manager.execute(
                    self.process_job, job, policy=self.retry_policy, operation=operation
                )
            except Exception as e:
                logger.exception(f"Job for {job.path} failed")
                state = self.retry_manager.pop_state(operation)
                await self.dlq.add(
                    DLQEntry.from_exception(
                        message.message_id,
                        message.body,
                        e,
                        remote_id=job.remote_id,
                        kind=job.kind.value,
                        total_attempts=state.total_attempts if state else 1,
                        retry_history=list(state.exceptions) if state else [],
                        total_duration=state.duration if state else 0.0,
                    )
                )
                self.metrics.record_job(job.kind.value, "failure")
                return False

        self.retry_manager.pop_state(operation)
        self.metrics.record_job(job.kind.value, "success")
        return True

    async def handle_batch(self, records: Iterable[QueueMessage]) -> BatchResult:
        """Process a batch strictly one message at a time."""
        result = BatchResult()
        for message in records:
            if await self.handle_message(message):
                result.succeeded.append(message.message_id)
            else:
                result.failed_ids.append(message.message_id)
        if result.failed_ids:
            logger.warning(f"Batch finished with {len(result.failed_ids)} failed message(s)")
        return result

    async def run(
        self,
        queue: JobQueue,
        *,
        max_messages: int = 10,
        wait_seconds: int = 20,
        max_batches: Optional[int] = None,
        stop: Optional[asyncio.Event] = None,
    ) -> int:
        """
        Long-poll `queue` and process what arrives.

        Successful messages are deleted; failed ones are left to become visible
        again. Runs until `stop` is set or `max_batches` receives have happened.

        Returns:
            Number of messages processed successfully
        """
        processed = 0
        receives = 0
        while stop is None or not stop.is_set():
            try:
                messages = await queue.receive(max_messages=max_messages, wait_seconds=wait_seconds)
            except QueueError as e:
                logger.error(f"Receive failed: {e}")
                messages = []
                await asyncio.sleep(RECEIVE_BACKOFF_SECONDS)

            if messages:
                result = await self.handle_batch(messages)
                failed = set(result.failed_ids)
                for message in messages:
                    if message.message_id in failed:
                        continue
                    try:
                        await queue.delete(message)
                    except QueueError as e:
                        # Redelivered later; reprocessing overwrites the same keys
                        logger.error(f"Delete of message {message.message_id} failed: {e}")
                processed += len(result.succeeded)

            receives += 1
            if max_batches is not None and receives >= max_batches:
                break
        return processed
