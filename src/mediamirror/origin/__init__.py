"""
Origin store access (the remote tree being mirrored).
"""

from mediamirror.origin.base import DownloadResult, EntryTag, ListResult, OriginStore, RemoteEntry
from mediamirror.origin.dropbox import DropboxClient

__all__ = [
    "DownloadResult",
    "DropboxClient",
    "EntryTag",
    "ListResult",
    "OriginStore",
    "RemoteEntry",
]
