"""
Persistent sync cursors.

A cursor is the origin's opaque resume token plus the folder prefix it was
issued for. Writes are conditional on the version read at the start of a pass,
so two overlapping passes over the same folder cannot silently overwrite each
other's progress.
"""

from __future__ import annotations

import asyncio
import json
from dataclasses import dataclass
from typing import Protocol

from mediamirror.exceptions import CursorConflictError
from mediamirror.storage.s3 import S3Storage
from mediamirror.utils.logging import get_logger

logger = get_logger("mediamirror.state.cursor")

DEFAULT_PREFIX = "_state/cursors"


@dataclass(frozen=True)
class SyncCursor:
    """Resume token for one listing prefix, tagged with the store's version."""

    token: str
    prefix: str
    version: str | None = None

    def valid_for(self, prefix: str) -> bool:
        return self.prefix == prefix


def cursor_key(base_path: str) -> str:
    return f"cursor:{base_path}"


class CursorStore(Protocol):
    async def load(self, key: str) -> SyncCursor | None: ...

    async def save(self, key: str, token: str, prefix: str, *, expected_version: str | None) -> SyncCursor: ...


class MemoryCursorStore:
    """
    In-process cursor store.

    Versions are a per-key counter. Used for tests and single-process
    development runs.
    """

    def __init__(self):
        self._cursors: dict[str, SyncCursor] = {}
        self._lock = asyncio.Lock()

    async def load(self, key: str) -> SyncCursor | None:
        return self._cursors.get(key)

    async def save(self, key: str, token: str, prefix: str, *, expected_version: str | None) -> SyncCursor:
        async with self._lock:
            current = self._cursors.get(key)
            current_version = current.version if current else None
            if current_version != expected_version:
                raise CursorConflictError(key, expected_version)
            version = str(int(current_version or 0) + 1)
            cursor = SyncCursor(token=token, prefix=prefix, version=version)
            self._cursors[key] = cursor
            return cursor


class S3CursorStore:
    """
    Cursor store backed by one JSON object per key in the media bucket.

    The object's ETag is the cursor version; saves use S3 conditional writes
    (If-Match, or If-None-Match for the first write).
    """

    def __init__(self, storage: S3Storage, prefix: str = DEFAULT_PREFIX):
        self.storage = storage
        self.prefix = prefix.strip("/")

    def _object_key(self, key: str) -> str:
        # "cursor:/0 US/alice" -> "_state/cursors/cursor/0 US/alice.json"
        name = key.replace(":", "/", 1).replace("//", "/")
        return f"{self.prefix}/{name}.json"

    async def load(self, key: str) -> SyncCursor | None:
        found = await self.storage.get_versioned(self._object_key(key))
        if found is None:
            return None
        body, etag = found
        try:
            record = json.loads(body)
            return SyncCursor(token=record["cursor"], prefix=record["prefix"], version=etag)
        except (ValueError, KeyError, TypeError) as e:
            # Unreadable state is treated like no state: the next pass lists fully
            logger.warning(f"Ignoring unreadable cursor object for '{key}': {e}")
            return SyncCursor(token="", prefix="", version=etag)

    async def save(self, key: str, token: str, prefix: str, *, expected_version: str | None) -> SyncCursor:
        body = json.dumps({"cursor": token, "prefix": prefix}).encode("utf-8")
        etag = await self.storage.put_conditional(self._object_key(key), body, if_match=expected_version)
        if etag is None:
            raise CursorConflictError(key, expected_version)
        logger.debug(f"Saved cursor for '{key}' (version {etag})")
        return SyncCursor(token=token, prefix=prefix, version=etag)


def create_cursor_store(config: dict, storage: S3Storage | None = None) -> CursorStore:
    """Build the cursor store named by the `cursor_store` config section."""
    store_type = (config or {}).get("type", "s3")
    if store_type == "memory":
        return MemoryCursorStore()
    if storage is None:
        raise ValueError("S3 cursor store requires a storage instance")
    return S3CursorStore(storage, prefix=(config or {}).get("prefix", DEFAULT_PREFIX))
