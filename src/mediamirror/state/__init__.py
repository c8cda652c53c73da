"""
Sync state persistence.
"""

from mediamirror.state.cursor import (
    CursorStore,
    MemoryCursorStore,
    S3CursorStore,
    SyncCursor,
    create_cursor_store,
    cursor_key,
)

__all__ = [
    "CursorStore",
    "MemoryCursorStore",
    "S3CursorStore",
    "SyncCursor",
    "create_cursor_store",
    "cursor_key",
]
