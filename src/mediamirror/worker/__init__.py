"""
Media worker: image renditions and video transcode submission.
"""

from mediamirror.worker.images import CANONICAL_BOUND, JPEG_QUALITY, render_rendition, render_renditions
from mediamirror.worker.media import BatchResult, MediaWorker

__all__ = [
    "BatchResult",
    "CANONICAL_BOUND",
    "JPEG_QUALITY",
    "MediaWorker",
    "render_rendition",
    "render_renditions",
]
