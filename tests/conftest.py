"""
Shared fakes for pipeline tests.

The fakes implement the same async interfaces as the real origin, storage and
encoder, recording every call so tests can assert on them.
"""

import io
from collections.abc import AsyncIterator

import pytest
from PIL import Image

from mediamirror.exceptions import EncoderSubmissionError, OriginError, StorageError
from mediamirror.observability.metrics import MetricsRegistry
from mediamirror.origin.base import DownloadResult, EntryTag, ListResult, RemoteEntry


def make_image_bytes(size=(64, 48), mode="RGB", fmt="PNG", color=(200, 30, 30)) -> bytes:
    """Encode a solid-colour image in memory."""
    if mode in ("RGBA", "LA"):
        color = (*color[: 3 if mode == "RGBA" else 1], 128)
    elif mode == "L":
        color = color[0]
    img = Image.new(mode, size, color)
    out = io.BytesIO()
    img.save(out, format=fmt)
    return out.getvalue()


def file_entry(remote_id: str, path: str) -> RemoteEntry:
    return RemoteEntry(remote_id=remote_id, path_lower=path.lower(), tag=EntryTag.FILE)


class FakeOrigin:
    """In-memory OriginStore."""

    def __init__(self):
        self.listings: dict[str, ListResult] = {}
        self.continuations: dict[str, ListResult] = {}
        self.files: dict[str, DownloadResult] = {}
        self.streams: dict[str, list[bytes]] = {}
        self.calls: list[tuple] = []
        self.download_failures: dict[str, int] = {}
        self.closed = 0

    def add_file(self, remote_id: str, content: bytes):
        self.files[remote_id] = DownloadResult.ok(remote_id, content)

    def add_video(self, remote_id: str, chunks: list[bytes]):
        self.streams[self._link(remote_id)] = chunks

    @staticmethod
    def _link(remote_id: str) -> str:
        return f"https://dl.example.test/{remote_id.replace(':', '_')}"

    async def list_folder(self, path: str, *, recursive: bool = True) -> ListResult:
        self.calls.append(("list_folder", path, recursive))
        if path not in self.listings:
            raise OriginError(f"path/not_found: {path}", status=409, endpoint="/files/list_folder")
        return self.listings[path]

    async def list_folder_continue(self, cursor: str) -> ListResult:
        self.calls.append(("list_folder_continue", cursor))
        if cursor not in self.continuations:
            raise OriginError(f"reset: {cursor}", status=409, endpoint="/files/list_folder/continue")
        return self.continuations[cursor]

    async def download(self, remote_id: str) -> DownloadResult:
        self.calls.append(("download", remote_id))
        remaining = self.download_failures.get(remote_id, 0)
        if remaining:
            self.download_failures[remote_id] = remaining - 1
            raise OriginError("Dropbox /files/download transient (503): busy", status=503)
        return self.files.get(remote_id) or DownloadResult.unsupported(remote_id, "not found")

    async def get_temporary_link(self, remote_id: str) -> str:
        self.calls.append(("get_temporary_link", remote_id))
        return self._link(remote_id)

    async def stream_url(self, url: str, *, chunk_size: int = 1024) -> AsyncIterator[bytes]:
        self.calls.append(("stream_url", url))
        if url not in self.streams:
            raise OriginError("Failed to fetch temporary link (404)", status=404, endpoint="temporary_link")
        for chunk in self.streams[url]:
            yield chunk

    async def close(self) -> None:
        self.closed += 1


class FakeStorage:
    """Records objects instead of writing to S3."""

    bucket = "media-bucket"

    def __init__(self):
        self.objects: dict[str, dict] = {}
        self.put_failures: dict[str, int] = {}

    def full_key(self, key: str) -> str:
        return key.lstrip("/")

    def _maybe_fail(self, key: str):
        remaining = self.put_failures.get(key, 0)
        if remaining:
            self.put_failures[key] = remaining - 1
            raise StorageError(f"Upload to s3://{self.bucket}/{key} failed: SlowDown", key=key)

    async def put_bytes(self, key, body, *, content_type, cache_control="public, max-age=31536000, immutable"):
        self._maybe_fail(key)
        self.objects[key] = {"body": body, "content_type": content_type, "cache_control": cache_control}
        return f"s3://{self.bucket}/{key}"

    async def put_stream(self, key, chunks, *, content_type, cache_control="public, max-age=31536000, immutable", part_size=0):
        body = bytearray()
        async for chunk in chunks:
            body.extend(chunk)
        self._maybe_fail(key)
        self.objects[key] = {"body": bytes(body), "content_type": content_type, "cache_control": cache_control}
        return f"s3://{self.bucket}/{key}"


class FakeEncoder:
    def __init__(self, failures: int = 0):
        self.submitted = []
        self.failures = failures

    async def submit(self, spec):
        if self.failures:
            self.failures -= 1
            raise EncoderSubmissionError(f"MediaConvert rejected job for {spec.input_key}: TooManyRequests")
        self.submitted.append(spec)
        return f"job-{len(self.submitted)}"


@pytest.fixture
def metrics():
    registry = MetricsRegistry()
    registry.enable()
    return registry


@pytest.fixture
def origin():
    return FakeOrigin()


@pytest.fixture
def storage():
    return FakeStorage()


@pytest.fixture
def encoder():
    return FakeEncoder()
