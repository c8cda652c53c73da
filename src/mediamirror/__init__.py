"""
MediaMirror - mirror a cloud-drive media tree into object storage.

Images get resized JPEG renditions; videos are stored as-is and transcoded to
an HLS ladder by an external encoder.
"""

__version__ = "0.1.0"

# Global config
from mediamirror.config.singleton import config

# Exceptions
from mediamirror.exceptions import (
    ConfigurationError,
    CursorConflictError,
    EncoderSubmissionError,
    InvalidJobError,
    MediaMirrorError,
    OriginError,
    QueueError,
    RetryError,
    StorageError,
    TransientError,
    UnsupportedPayloadError,
)

# Pipeline
from mediamirror.media import build_rendition_job, classify
from mediamirror.queue import Job, JobDispatcher
from mediamirror.sync import SyncOrchestrator, SyncSummary
from mediamirror.worker import MediaWorker

__all__ = [
    "__version__",
    "config",
    # Exceptions
    "ConfigurationError",
    "CursorConflictError",
    "EncoderSubmissionError",
    "InvalidJobError",
    "MediaMirrorError",
    "OriginError",
    "QueueError",
    "RetryError",
    "StorageError",
    "TransientError",
    "UnsupportedPayloadError",
    # Pipeline
    "Job",
    "JobDispatcher",
    "MediaWorker",
    "SyncOrchestrator",
    "SyncSummary",
    "build_rendition_job",
    "classify",
]
