"""
Routing of classified files to the work queue.

With a queue configured every file becomes a queued job. Without one, images
are rendered inline and videos are skipped: video work needs the encoder and
is never attempted in-process.
"""

from __future__ import annotations

from enum import StrEnum
from typing import Optional, Protocol

from mediamirror.media.classifier import ClassifiedFile, MediaKind
from mediamirror.queue.base import Job, JobQueue
from mediamirror.utils.logging import get_logger

logger = get_logger("mediamirror.queue.dispatcher")

DEFAULT_IMAGE_WIDTHS: tuple[int, ...] = (480, 960, 1600)


class DispatchOutcome(StrEnum):
    QUEUED = "queued"
    INLINE = "inline"
    SKIPPED = "skipped"


class InlineImageProcessor(Protocol):
    async def process_image(self, job: Job) -> list[str]: ...


class JobDispatcher:
    """
    Hand classified files to the queue, or to an inline image processor.

    Args:
        queue: Work queue; None selects inline mode
        inline_processor: Image processor used in inline mode
    """

    def __init__(self, queue: Optional[JobQueue] = None, inline_processor: Optional[InlineImageProcessor] = None):
        if queue is None and inline_processor is None:
            raise ValueError("JobDispatcher needs a queue or an inline processor")
        self.queue = queue
        self.inline_processor = inline_processor

    @property
    def inline(self) -> bool:
        return self.queue is None

    async def dispatch(
        self, classified: ClassifiedFile, image_widths: Optional[tuple[int, ...] | list[int]] = None
    ) -> DispatchOutcome:
        widths = tuple(image_widths) if image_widths else DEFAULT_IMAGE_WIDTHS
        job = Job.from_classified(classified, widths)

        if self.queue is not None:
            await self.queue.send(job)
            return DispatchOutcome.QUEUED

        if classified.kind is MediaKind.VIDEO:
            logger.warning(f"No queue configured; skipping video {job.path}")
            return DispatchOutcome.SKIPPED

        logger.info(f"No queue configured; processing {job.path} inline")
        await self.inline_processor.process_image(job)
        return DispatchOutcome.INLINE
