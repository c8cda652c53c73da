"""
Work queue interface and the job message format.

The job message is the contract between the sync orchestrator and the media
worker. Its JSON field names are fixed:

    {"remoteId": "...", "path": "/0 US/alice/a.png", "kind": "image",
     "ownerFolder": "alice", "imageWidths": [480, 960, 1600]}
"""

from __future__ import annotations

import json
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any, Optional

from mediamirror.exceptions import InvalidJobError
from mediamirror.media.classifier import ClassifiedFile, MediaKind

REQUIRED_FIELDS = ("remoteId", "path", "kind")

# Must be present, but empty for files directly under the listing root
MAYBE_EMPTY_FIELDS = ("ownerFolder",)


@dataclass(frozen=True)
class Job:
    """One unit of worker work: produce the renditions for a single source file."""

    remote_id: str
    path: str
    kind: MediaKind
    owner_folder: str
    image_widths: Optional[tuple[int, ...]] = None

    @classmethod
    def from_classified(cls, classified: ClassifiedFile, image_widths: Optional[tuple[int, ...]] = None) -> "Job":
        return cls(
            remote_id=classified.remote_id,
            path=f"/{classified.source_path}",
            kind=classified.kind,
            owner_folder=classified.owner_folder,
            image_widths=tuple(image_widths) if image_widths is not None else None,
        )

    @property
    def source_path(self) -> str:
        """Path without the leading slash, as used for storage keys."""
        return self.path.lstrip("/")

    def to_dict(self) -> dict[str, Any]:
        record: dict[str, Any] = {
            "remoteId": self.remote_id,
            "path": self.path,
            "kind": self.kind.value,
            "ownerFolder": self.owner_folder,
        }
        if self.image_widths is not None:
            record["imageWidths"] = list(self.image_widths)
        return record

    def to_message(self) -> str:
        return json.dumps(self.to_dict())

    @classmethod
    def from_message(cls, body: str | bytes) -> "Job":
        """
        Parse a queue message body.

        Raises:
            InvalidJobError: If the body is not JSON, a field is missing, or
                the kind or widths are not recognised
        """
        try:
            record = json.loads(body)
        except ValueError as e:
            raise InvalidJobError(f"Job message is not valid JSON: {e}") from e
        if not isinstance(record, dict):
            raise InvalidJobError(f"Job message must be an object, got {type(record).__name__}")

        missing = [name for name in REQUIRED_FIELDS if not record.get(name)]
        missing += [name for name in MAYBE_EMPTY_FIELDS if not isinstance(record.get(name), str)]
        if missing:
            raise InvalidJobError(f"Job message is missing {', '.join(missing)}", details={"record": record})

        try:
            kind = MediaKind(record["kind"])
        except ValueError:
            raise InvalidJobError(f"Unknown job kind '{record['kind']}'", details={"record": record}) from None

        widths = record.get("imageWidths")
        if widths is not None:
            if not isinstance(widths, list) or not all(isinstance(w, int) and w > 0 for w in widths):
                raise InvalidJobError("imageWidths must be a list of positive integers", details={"record": record})
            widths = tuple(widths)

        return cls(
            remote_id=record["remoteId"],
            path=record["path"],
            kind=kind,
            owner_folder=record["ownerFolder"],
            image_widths=widths,
        )


@dataclass
class QueueMessage:
    """A received queue message, with what is needed to acknowledge it."""

    message_id: str
    body: str
    receipt_handle: Optional[str] = None
    receive_count: int = 1


class JobQueue(ABC):
    """
    Abstract base class for work queues.

    Implementations provided:
    - SQSJobQueue: Amazon SQS (boto3)
    - InMemoryJobQueue: In-process queue for tests and development
    """

    async def connect(self) -> None:
        """Establish connection to the queue, if the backend needs one."""

    async def disconnect(self) -> None:
        """Release queue resources."""

    @abstractmethod
    async def send(self, job: Job) -> str:
        """
        Enqueue a job.

        Returns:
            The backend's message id
        """
        ...

    @abstractmethod
    async def receive(self, *, max_messages: int = 10, wait_seconds: int = 20) -> list[QueueMessage]:
        """Wait up to `wait_seconds` for at most `max_messages` messages."""
        ...

    @abstractmethod
    async def delete(self, message: QueueMessage) -> None:
        """Acknowledge a processed message so it is not redelivered."""
        ...

    async def __aenter__(self):
        await self.connect()
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        await self.disconnect()
