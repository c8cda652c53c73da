"""
Type definitions for the origin store (the remote tree being mirrored).
"""

from __future__ import annotations

from collections.abc import AsyncIterator
from dataclasses import dataclass, field
from enum import StrEnum
from typing import Any, Protocol

from mediamirror.exceptions import UnsupportedPayloadError


class EntryTag(StrEnum):
    FILE = "file"
    FOLDER = "folder"
    DELETED = "deleted"


@dataclass(frozen=True)
class RemoteEntry:
    """A file, folder or deletion reported by a listing call."""

    remote_id: str
    path_lower: str
    tag: EntryTag

    @classmethod
    def from_api(cls, record: dict[str, Any]) -> "RemoteEntry":
        """Build from a Dropbox metadata record (`.tag`, `id`, `path_lower`)."""
        path = record.get("path_lower") or record.get("path_display") or ""
        # Deleted entries carry no id; the path identifies them
        return cls(
            remote_id=record.get("id") or path,
            path_lower=path.lower(),
            tag=EntryTag(record.get(".tag", "file")),
        )


@dataclass(frozen=True)
class ListResult:
    """One page of a folder listing."""

    entries: list[RemoteEntry]
    cursor: str
    has_more: bool


@dataclass(frozen=True)
class DownloadResult:
    """
    Outcome of a content download: either the bytes or the reason there are none.

    Callers go through unwrap(), so an unusable payload always surfaces as an
    UnsupportedPayloadError instead of quietly producing no output.
    """

    remote_id: str
    content: bytes | None = None
    error: str | None = None
    metadata: dict[str, Any] = field(default_factory=dict)

    @classmethod
    def ok(cls, remote_id: str, content: bytes, metadata: dict[str, Any] | None = None) -> "DownloadResult":
        if not content:
            return cls.unsupported(remote_id, "empty body")
        return cls(remote_id=remote_id, content=content, metadata=metadata or {})

    @classmethod
    def unsupported(cls, remote_id: str, reason: str) -> "DownloadResult":
        return cls(remote_id=remote_id, error=reason)

    @property
    def is_ok(self) -> bool:
        return self.content is not None

    def unwrap(self) -> bytes:
        if self.content is None:
            raise UnsupportedPayloadError(self.remote_id, self.error or "no content")
        return self.content


class OriginStore(Protocol):
    """Capabilities the sync orchestrator and media worker need from the origin."""

    async def list_folder(self, path: str, *, recursive: bool = True) -> ListResult: ...

    async def list_folder_continue(self, cursor: str) -> ListResult: ...

    async def download(self, remote_id: str) -> DownloadResult: ...

    async def get_temporary_link(self, remote_id: str) -> str: ...

    def stream_url(self, url: str, *, chunk_size: int = ...) -> AsyncIterator[bytes]: ...

    async def close(self) -> None: ...
