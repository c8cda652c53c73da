"""
MediaMirror startup initialization.

Builds the pipeline's components from configuration in dependency order:
1. Config (with validation)
2. Logging and metrics
3. Storage, origin, queue, encoder
4. Worker, dispatcher, orchestrator (composed from the above)
"""

import os
from pathlib import Path
from typing import Optional

from mediamirror.config.loader import Config, config_from_environment, load_config
from mediamirror.config.singleton import GlobalConfig
from mediamirror.core.retry import DeadLetterQueue
from mediamirror.encoder.mediaconvert import MediaConvertEncoder
from mediamirror.observability.metrics import get_metrics_registry
from mediamirror.origin.dropbox import DropboxClient
from mediamirror.queue.base import JobQueue
from mediamirror.queue.dispatcher import JobDispatcher
from mediamirror.queue.sqs import SQSJobQueue
from mediamirror.state.cursor import CursorStore, create_cursor_store
from mediamirror.storage.s3 import S3Storage
from mediamirror.sync.orchestrator import SyncOrchestrator
from mediamirror.utils.logging import setup_logging_from_config
from mediamirror.worker.media import MediaWorker


class MediaMirrorInitializer:
    """Builds and caches the components a command needs."""

    def __init__(self, config: Config, project_dir: Optional[Path] = None):
        self.config = config
        self.project_dir = project_dir

        self._storage: Optional[S3Storage] = None
        self._origin: Optional[DropboxClient] = None
        self._queue: Optional[JobQueue] = None
        self._queue_built = False

    @classmethod
    def from_project(cls, project_dir: Path, env: Optional[str] = None) -> "MediaMirrorInitializer":
        """Load, validate and install config.yaml from `project_dir`."""
        env = env or os.environ.get("MEDIAMIRROR_ENV", "dev")
        config = load_config(project_dir, env=env)
        config.validate()
        initializer = cls(config, project_dir)
        initializer.initialize()
        return initializer

    @classmethod
    def from_environment(cls) -> "MediaMirrorInitializer":
        """Build from environment variables (serverless entry points)."""
        config = config_from_environment()
        initializer = cls(config)
        initializer.initialize()
        return initializer

    def initialize(self) -> None:
        """Install global config, then set up logging and metrics."""
        GlobalConfig.set_config(self.config)
        setup_logging_from_config(self.config.data, self.project_dir)

        metrics_config = self.config.get("metrics", {}) or {}
        if metrics_config.get("enabled", False):
            get_metrics_registry().enable()

    # -- leaf components ------------------------------------------------------

    def build_storage(self) -> S3Storage:
        if self._storage is None:
            self._storage = S3Storage(self.config.storage)
        return self._storage

    def build_origin(self) -> DropboxClient:
        if self._origin is None:
            origin = self.config.origin
            self._origin = DropboxClient(
                origin["app_key"],
                origin["app_secret"],
                origin["refresh_token"],
                timeout=int(origin.get("timeout", 120)),
            )
        return self._origin

    def build_queue(self) -> Optional[JobQueue]:
        """SQS queue when `queue.url` is set, otherwise None (inline mode)."""
        if not self._queue_built:
            url = self.config.queue_url
            if url:
                self._queue = SQSJobQueue(url, region=self.config.queue.get("region") or self.config.storage.get("region"))
            self._queue_built = True
        return self._queue

    def build_encoder(self) -> Optional[MediaConvertEncoder]:
        if not self.config.encoder.get("role_arn"):
            return None
        return MediaConvertEncoder(self.config.encoder, self.build_storage().bucket)

    def build_cursor_store(self) -> CursorStore:
        cursor_config = self.config.get("cursor_store", {}) or {}
        storage = self.build_storage() if cursor_config.get("type", "s3") == "s3" else None
        return create_cursor_store(cursor_config, storage)

    def build_dlq(self) -> DeadLetterQueue:
        dlq_config = self.config.get("dlq", {}) or {}
        storage = self.build_storage() if dlq_config.get("persist", True) else None
        return DeadLetterQueue(storage, prefix=dlq_config.get("prefix", "_state/dlq"))

    # -- composites -----------------------------------------------------------

    def build_worker(self) -> MediaWorker:
        return MediaWorker(
            self.build_origin(),
            self.build_storage(),
            self.build_encoder(),
            dlq=self.build_dlq(),
        )

    def build_dispatcher(self) -> JobDispatcher:
        queue = self.build_queue()
        if queue is not None:
            return JobDispatcher(queue)
        return JobDispatcher(inline_processor=self.build_worker())

    def build_orchestrator(self) -> SyncOrchestrator:
        return SyncOrchestrator(
            self.build_origin(),
            self.build_dispatcher(),
            self.build_cursor_store(),
            image_widths=tuple(self.config.image_widths),
        )
