"""
Dead letter queue for jobs that failed permanently or ran out of retries.
"""

import hashlib
import json
import time
from collections import deque
from dataclasses import asdict, dataclass, field
from typing import Any, Optional

from mediamirror.exceptions import StorageError
from mediamirror.observability.metrics import MetricsRegistry, get_metrics_registry
from mediamirror.utils.logging import get_logger

logger = get_logger("mediamirror.retry.dlq")

DEFAULT_DLQ_PREFIX = "_state/dlq"

# In-memory entries kept per process; persisted entries are not affected
DEFAULT_MAX_ENTRIES = 1000


@dataclass
class DLQEntry:
    """
    Entry in the Dead Letter Queue.

    Keeps the raw message body so a job can be re-enqueued verbatim once the
    cause is fixed.
    """

    message_id: str
    body: str
    exception_type: str
    exception_message: str

    remote_id: Optional[str] = None
    kind: Optional[str] = None

    total_attempts: int = 1
    retry_history: list[dict[str, Any]] = field(default_factory=list)
    total_duration: float = 0.0

    dlq_timestamp: float = field(default_factory=time.time)
    dlq_id: Optional[str] = None

    @classmethod
    def from_exception(cls, message_id: str, body: str, exception: Exception, **kwargs: Any) -> "DLQEntry":
        return cls(
            message_id=message_id,
            body=body,
            exception_type=type(exception).__name__,
            exception_message=str(exception),
            **kwargs,
        )

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)

    def to_json(self) -> str:
        return json.dumps(self.to_dict(), default=str)

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "DLQEntry":
        return cls(**data)

    @classmethod
    def from_json(cls, json_str: str) -> "DLQEntry":
        return cls.from_dict(json.loads(json_str))


class DeadLetterQueue:
    """
    Dead Letter Queue for failed worker jobs.

    The latest `max_entries` entries are kept in memory. With a storage
    backend each entry is also written as a JSON object under
    `{prefix}/{dlq_id}.json` so it outlives the worker.

    Examples:
        >>> dlq = DeadLetterQueue()
        >>> await dlq.add(DLQEntry.from_exception("msg-1", body, exc, total_attempts=4))
        >>> dlq.get_stats()["total_entries"]
        1
    """

    def __init__(
        self,
        storage: Any = None,
        prefix: str = DEFAULT_DLQ_PREFIX,
        metrics: Optional[MetricsRegistry] = None,
        max_entries: int = DEFAULT_MAX_ENTRIES,
    ):
        """
        Initialize Dead Letter Queue.

        Args:
            storage: S3Storage for persistence (optional)
            prefix: Key prefix for persisted entries
            metrics: Metrics registry (defaults to the global one)
            max_entries: In-memory entries kept before the oldest are dropped
        """
        self.storage = storage
        self.prefix = prefix.strip("/")
        self.metrics = metrics or get_metrics_registry()
        self._entries: deque[DLQEntry] = deque(maxlen=max_entries)

    async def add(self, entry: DLQEntry) -> str:
        """
        Add an entry to the DLQ.

        Returns:
            DLQ entry ID
        """
        if entry.dlq_id is None:
            entry.dlq_id = self._generate_id(entry)

        logger.warning(
            f"Adding to DLQ: message {entry.message_id} ({entry.remote_id or 'unknown'}) failed after "
            f"{entry.total_attempts} attempt(s) - {entry.exception_type}: {entry.exception_message}"
        )
        self._entries.append(entry)
        self.metrics.record_dlq_entry()

        if self.storage is not None:
            await self._persist_entry(entry)

        return entry.dlq_id

    def get_recent(self, limit: int = 10) -> list[DLQEntry]:
        """Most recent entries first."""
        return sorted(self._entries, key=lambda e: e.dlq_timestamp, reverse=True)[:limit]

    def get_stats(self) -> dict[str, Any]:
        by_exception: dict[str, int] = {}
        by_kind: dict[str, int] = {}
        for entry in self._entries:
            by_exception[entry.exception_type] = by_exception.get(entry.exception_type, 0) + 1
            kind = entry.kind or "unknown"
            by_kind[kind] = by_kind.get(kind, 0) + 1
        return {
            "total_entries": len(self._entries),
            "entries_by_exception": by_exception,
            "entries_by_kind": by_kind,
        }

    def __len__(self) -> int:
        return len(self._entries)

    def _generate_id(self, entry: DLQEntry) -> str:
        content = f"{entry.message_id}_{entry.dlq_timestamp}"
        return f"dlq_{hashlib.sha256(content.encode()).hexdigest()[:16]}"

    async def _persist_entry(self, entry: DLQEntry) -> None:
        key = f"{self.prefix}/{entry.dlq_id}.json"
        try:
            await self.storage.put_bytes(
                key,
                entry.to_json().encode("utf-8"),
                content_type="application/json",
                cache_control="no-cache",
            )
            logger.debug(f"Persisted DLQ entry {entry.dlq_id} to {key}")
        except StorageError as e:
            # The entry is still held in memory and the message id is still
            # reported as failed, so the queue redelivers it
            logger.warning(f"Failed to persist DLQ entry {entry.dlq_id}: {e}. Keeping it in memory only.")
