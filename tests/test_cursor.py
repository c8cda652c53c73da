"""
Tests for sync cursor persistence.
"""

import json
from unittest.mock import MagicMock

import pytest
from botocore.exceptions import ClientError

from mediamirror.exceptions import CursorConflictError
from mediamirror.state import (
    MemoryCursorStore,
    S3CursorStore,
    SyncCursor,
    create_cursor_store,
    cursor_key,
)
from mediamirror.storage.s3 import S3Storage


def precondition_failed():
    return ClientError(
        {"Error": {"Code": "PreconditionFailed", "Message": "At least one of the pre-conditions failed"}},
        "PutObject",
    )


def no_such_key():
    return ClientError({"Error": {"Code": "NoSuchKey", "Message": "missing"}}, "GetObject")


def stored_object(record, etag='"v1"'):
    body = MagicMock()
    body.read.return_value = record if isinstance(record, bytes) else json.dumps(record).encode()
    return {"Body": body, "ETag": etag}


class TestSyncCursor:
    def test_key_format(self):
        assert cursor_key("/0 US/alice") == "cursor:/0 US/alice"

    def test_valid_only_for_its_prefix(self):
        cursor = SyncCursor(token="AAE", prefix="/0 US/alice")
        assert cursor.valid_for("/0 US/alice") is True
        assert cursor.valid_for("/0 US/bob") is False


class TestMemoryCursorStore:
    """Tests for the in-process store."""

    @pytest.mark.asyncio
    async def test_first_save_and_load(self):
        store = MemoryCursorStore()
        assert await store.load("cursor:/0 US/alice") is None

        saved = await store.save("cursor:/0 US/alice", "tok1", "/0 US/alice", expected_version=None)
        assert saved.version == "1"
        assert await store.load("cursor:/0 US/alice") == saved

    @pytest.mark.asyncio
    async def test_save_with_current_version(self):
        store = MemoryCursorStore()
        first = await store.save("k", "tok1", "/p", expected_version=None)
        second = await store.save("k", "tok2", "/p", expected_version=first.version)
        assert second.version == "2"
        assert (await store.load("k")).token == "tok2"

    @pytest.mark.asyncio
    async def test_stale_version_conflicts(self):
        store = MemoryCursorStore()
        await store.save("k", "tok1", "/p", expected_version=None)

        with pytest.raises(CursorConflictError) as exc_info:
            await store.save("k", "tok-other", "/p", expected_version=None)
        assert exc_info.value.key == "k"
        assert (await store.load("k")).token == "tok1"


class TestS3CursorStore:
    """Tests for the S3-backed store with a mocked boto3 client."""

    def make_store(self, client):
        return S3CursorStore(S3Storage({"bucket": "media-bucket"}, client=client))

    @pytest.mark.asyncio
    async def test_load_missing_cursor(self):
        client = MagicMock()
        client.get_object.side_effect = no_such_key()
        assert await self.make_store(client).load("cursor:/0 US/alice") is None
        assert client.get_object.call_args.kwargs["Key"] == "_state/cursors/cursor/0 US/alice.json"

    @pytest.mark.asyncio
    async def test_load_existing_cursor(self):
        client = MagicMock()
        client.get_object.return_value = stored_object({"cursor": "tok1", "prefix": "/0 US/alice"})

        cursor = await self.make_store(client).load("cursor:/0 US/alice")

        assert cursor == SyncCursor(token="tok1", prefix="/0 US/alice", version='"v1"')

    @pytest.mark.asyncio
    async def test_unreadable_object_is_an_empty_cursor(self):
        client = MagicMock()
        client.get_object.return_value = stored_object(b"not json", etag='"v9"')

        cursor = await self.make_store(client).load("cursor:/0 US/alice")

        assert cursor.token == ""
        assert cursor.valid_for("/0 US/alice") is False
        assert cursor.version == '"v9"'

    @pytest.mark.asyncio
    async def test_first_save_requires_absent_object(self):
        client = MagicMock()
        client.put_object.return_value = {"ETag": '"v1"'}

        saved = await self.make_store(client).save("cursor:/0 US/alice", "tok1", "/0 US/alice", expected_version=None)

        kwargs = client.put_object.call_args.kwargs
        assert kwargs["IfNoneMatch"] == "*"
        assert "IfMatch" not in kwargs
        assert json.loads(kwargs["Body"]) == {"cursor": "tok1", "prefix": "/0 US/alice"}
        assert saved.version == '"v1"'

    @pytest.mark.asyncio
    async def test_save_is_conditional_on_version(self):
        client = MagicMock()
        client.put_object.return_value = {"ETag": '"v2"'}

        await self.make_store(client).save("cursor:/0 US/alice", "tok2", "/0 US/alice", expected_version='"v1"')

        kwargs = client.put_object.call_args.kwargs
        assert kwargs["IfMatch"] == '"v1"'
        assert "IfNoneMatch" not in kwargs

    @pytest.mark.asyncio
    async def test_lost_race_raises_conflict(self):
        client = MagicMock()
        client.put_object.side_effect = precondition_failed()

        with pytest.raises(CursorConflictError):
            await self.make_store(client).save("cursor:/0 US/alice", "tok2", "/0 US/alice", expected_version='"v1"')


class TestCreateCursorStore:
    def test_memory(self):
        assert isinstance(create_cursor_store({"type": "memory"}), MemoryCursorStore)

    def test_s3_default_with_prefix(self):
        storage = S3Storage({"bucket": "media-bucket"}, client=MagicMock())
        store = create_cursor_store({"prefix": "/state/c/"}, storage)
        assert isinstance(store, S3CursorStore)
        assert store.prefix == "state/c"

    def test_s3_requires_storage(self):
        with pytest.raises(ValueError, match="requires a storage"):
            create_cursor_store({})
