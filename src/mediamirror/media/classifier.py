"""
Remote entry classification and canonical key derivation.

Everything here is pure: a remote path maps to exactly one media kind and one
destination key, which is what makes redelivered work overwrite-safe.
"""

from __future__ import annotations

import posixpath
from dataclasses import dataclass
from enum import StrEnum

from mediamirror.origin.base import EntryTag, RemoteEntry

DEFAULT_ROOT_SEGMENT = "0 US"

IMAGE_EXTENSIONS = frozenset({".jpg", ".jpeg", ".png", ".gif", ".webp"})
VIDEO_EXTENSIONS = frozenset({".mp4", ".mov", ".m4v", ".avi", ".mkv"})

IMAGE_OUTPUT_EXTENSION = ".jpg"
IMAGE_CONTENT_TYPE = "image/jpeg"
FALLBACK_CONTENT_TYPE = "application/octet-stream"

VIDEO_CONTENT_TYPES = {
    ".mp4": "video/mp4",
    ".mov": "video/quicktime",
    ".m4v": "video/x-m4v",
    ".avi": "video/x-msvideo",
    ".mkv": "video/x-matroska",
}


class MediaKind(StrEnum):
    """Media kinds the pipeline produces derivatives for."""

    IMAGE = "image"
    VIDEO = "video"


@dataclass(frozen=True)
class ClassifiedFile:
    """A remote file routed for processing."""

    remote_id: str
    source_path: str  # root-normalised, no leading slash
    destination_key: str
    kind: MediaKind
    owner_folder: str


def split_key(key: str) -> tuple[str, str]:
    """
    Split a key into (directory, basename-without-extension).

    >>> split_key("0 US/alice/trip/photo.jpg")
    ('0 US/alice/trip', 'photo')
    """
    directory, filename = posixpath.split(key)
    name, _ = posixpath.splitext(filename)
    return directory, name or filename


def extension_of(key: str) -> str:
    """Lowercase extension including the dot, or '' when there is none."""
    return posixpath.splitext(key)[1].lower()


def content_type_for(key: str) -> str:
    """Content type of a stored original, from its extension."""
    ext = extension_of(key)
    if ext in VIDEO_CONTENT_TYPES:
        return VIDEO_CONTENT_TYPES[ext]
    if ext in (".jpg", ".jpeg"):
        return IMAGE_CONTENT_TYPE
    return FALLBACK_CONTENT_TYPE


def media_kind_of(path: str) -> MediaKind | None:
    ext = extension_of(path)
    if ext in IMAGE_EXTENSIONS:
        return MediaKind.IMAGE
    if ext in VIDEO_EXTENSIONS:
        return MediaKind.VIDEO
    return None


def normalize_path(path: str, root_segment: str = DEFAULT_ROOT_SEGMENT) -> str:
    """
    Strip leading slashes and restore the canonical casing of the root segment.

    Origin paths arrive lowercased ("/0 us/alice/..."), while storage keys
    keep the root as configured ("0 US/alice/...").
    """
    relative = path.lstrip("/")
    head, sep, tail = relative.partition("/")
    if head.lower() == root_segment.lower():
        return f"{root_segment}{sep}{tail}"
    return relative


def canonical_key(source_path: str, kind: MediaKind) -> str:
    """
    Destination key for a source path.

    Images are always re-encoded, so they take the uniform JPEG extension;
    videos are stored byte-for-byte and keep their own.
    """
    source_path = source_path.lstrip("/")
    if kind is MediaKind.VIDEO:
        return source_path
    directory, name = split_key(source_path)
    filename = f"{name}{IMAGE_OUTPUT_EXTENSION}"
    return f"{directory}/{filename}" if directory else filename


def rendition_key(canonical: str, width: int | None = None) -> str:
    """Key of an image rendition; `width=None` is the canonical rendition."""
    directory, name = split_key(canonical)
    suffix = f"_w{width}" if width is not None else ""
    filename = f"{name}{suffix}{IMAGE_OUTPUT_EXTENSION}"
    return f"{directory}/{filename}" if directory else filename


def hls_output_prefix(video_key: str) -> str:
    """Directory the HLS ladder of a stored video is written to."""
    directory, name = split_key(video_key)
    base = f"{directory}/outputs" if directory else "outputs"
    return f"{base}/{name}/"


def owner_folder_of(source_path: str) -> str:
    """The user folder, i.e. the segment right after the root."""
    parts = source_path.lstrip("/").split("/")
    return parts[1] if len(parts) > 2 else ""


def classify(entry: RemoteEntry, *, root_segment: str = DEFAULT_ROOT_SEGMENT) -> ClassifiedFile | None:
    """
    Classify a remote entry.

    Returns None for folders, deletions and files outside the allow-lists.
    """
    if entry.tag is not EntryTag.FILE:
        return None

    source_path = normalize_path(entry.path_lower, root_segment)
    kind = media_kind_of(source_path)
    if kind is None:
        return None

    return ClassifiedFile(
        remote_id=entry.remote_id,
        source_path=source_path,
        destination_key=canonical_key(source_path, kind),
        kind=kind,
        owner_folder=owner_folder_of(source_path),
    )
