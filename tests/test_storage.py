"""
Tests for S3Storage against a mocked boto3 client.
"""

from unittest.mock import MagicMock, patch

import pytest
from botocore.exceptions import ClientError

from mediamirror.exceptions import ConfigurationError, StorageError
from mediamirror.storage import IMMUTABLE_CACHE_CONTROL, S3Storage
from mediamirror.storage.s3 import MIN_PART_SIZE

MiB = 1024 * 1024


def client_error(code, operation="PutObject"):
    return ClientError({"Error": {"Code": code, "Message": code}}, operation)


async def chunks_of(*sizes):
    for size in sizes:
        yield b"x" * size


def storage_with(client, **config):
    return S3Storage({"bucket": "media-bucket", **config}, client=client)


class TestS3StorageConfig:
    """Tests for configuration and key handling."""

    def test_requires_bucket(self):
        with pytest.raises(ConfigurationError, match="requires 'bucket'"):
            S3Storage({})

    def test_full_key_with_base_path(self):
        storage = storage_with(MagicMock(), base_path="/media/")
        assert storage.full_key("/0 US/alice/a.jpg") == "media/0 US/alice/a.jpg"
        assert storage.uri("0 US/alice/a.jpg") == "s3://media-bucket/media/0 US/alice/a.jpg"

    def test_full_key_without_base_path(self):
        assert storage_with(MagicMock()).full_key("/0 US/a.jpg") == "0 US/a.jpg"

    def test_lazy_client_uses_config(self):
        storage = S3Storage(
            {
                "bucket": "media-bucket",
                "region": "eu-west-1",
                "endpoint_url": "http://localhost:9000",
                "access_key_id": "AKIA",
                "secret_access_key": "secret",
            }
        )
        with patch("boto3.client") as mock_client:
            client = storage.client
            assert storage.client is client

        mock_client.assert_called_once_with(
            "s3",
            region_name="eu-west-1",
            endpoint_url="http://localhost:9000",
            aws_access_key_id="AKIA",
            aws_secret_access_key="secret",
        )


class TestPutBytes:
    @pytest.mark.asyncio
    async def test_uploads_with_headers(self):
        client = MagicMock()
        storage = storage_with(client)

        uri = await storage.put_bytes("0 US/alice/a_w480.jpg", b"jpeg", content_type="image/jpeg")

        assert uri == "s3://media-bucket/0 US/alice/a_w480.jpg"
        args = client.upload_fileobj.call_args
        assert args.args[0].read() == b"jpeg"
        assert args.args[1:] == ("media-bucket", "0 US/alice/a_w480.jpg")
        assert args.kwargs["ExtraArgs"] == {"ContentType": "image/jpeg", "CacheControl": IMMUTABLE_CACHE_CONTROL}

    @pytest.mark.asyncio
    async def test_failure_raises_storage_error(self):
        client = MagicMock()
        client.upload_fileobj.side_effect = client_error("SlowDown")
        storage = storage_with(client)

        with pytest.raises(StorageError) as exc_info:
            await storage.put_bytes("a.jpg", b"jpeg", content_type="image/jpeg")
        assert exc_info.value.key == "a.jpg"


class TestPutStream:
    """Tests for the streaming multipart upload."""

    def multipart_client(self):
        client = MagicMock()
        client.create_multipart_upload.return_value = {"UploadId": "up-1"}
        client.upload_part.side_effect = lambda **kw: {"ETag": f'"p{kw["PartNumber"]}"'}
        return client

    @pytest.mark.asyncio
    async def test_rejects_small_parts(self):
        client = MagicMock()
        with pytest.raises(ValueError, match="part_size"):
            await storage_with(client).put_stream("v.mp4", chunks_of(1), content_type="video/mp4", part_size=1024)
        client.put_object.assert_not_called()

    @pytest.mark.asyncio
    async def test_streams_parts_in_order(self):
        client = self.multipart_client()
        storage = storage_with(client)

        await storage.put_stream(
            "0 US/alice/run.mp4", chunks_of(3 * MiB, 3 * MiB, 3 * MiB), content_type="video/mp4", part_size=MIN_PART_SIZE
        )

        create = client.create_multipart_upload.call_args.kwargs
        assert create["ContentType"] == "video/mp4"
        assert create["CacheControl"] == IMMUTABLE_CACHE_CONTROL

        parts = [c.kwargs for c in client.upload_part.call_args_list]
        assert [p["PartNumber"] for p in parts] == [1, 2]
        assert len(parts[0]["Body"]) == 5 * MiB
        assert len(parts[1]["Body"]) == 4 * MiB

        complete = client.complete_multipart_upload.call_args.kwargs
        assert complete["UploadId"] == "up-1"
        assert complete["MultipartUpload"] == {
            "Parts": [{"ETag": '"p1"', "PartNumber": 1}, {"ETag": '"p2"', "PartNumber": 2}]
        }
        client.put_object.assert_not_called()

    @pytest.mark.asyncio
    async def test_small_body_is_a_single_put(self):
        client = self.multipart_client()
        await storage_with(client).put_stream("v.mp4", chunks_of(100, 200), content_type="video/mp4")

        client.create_multipart_upload.assert_not_called()
        assert client.put_object.call_args.kwargs["Body"] == b"x" * 300

    @pytest.mark.asyncio
    async def test_empty_body_writes_empty_object(self):
        client = self.multipart_client()
        await storage_with(client).put_stream("v.mp4", chunks_of(), content_type="video/mp4")
        assert client.put_object.call_args.kwargs["Body"] == b""

    @pytest.mark.asyncio
    async def test_part_failure_aborts_upload(self):
        client = self.multipart_client()
        client.upload_part.side_effect = [{"ETag": '"p1"'}, client_error("InternalError", "UploadPart")]
        storage = storage_with(client)

        with pytest.raises(StorageError):
            await storage.put_stream(
                "v.mp4", chunks_of(5 * MiB, 5 * MiB, 1), content_type="video/mp4", part_size=MIN_PART_SIZE
            )

        client.abort_multipart_upload.assert_called_once_with(Bucket="media-bucket", Key="v.mp4", UploadId="up-1")
        client.complete_multipart_upload.assert_not_called()

    @pytest.mark.asyncio
    async def test_source_failure_aborts_and_propagates(self):
        client = self.multipart_client()

        async def broken_source():
            yield b"x" * (5 * MiB)
            raise ConnectionResetError("origin went away")

        with pytest.raises(ConnectionResetError):
            await storage_with(client).put_stream(
                "v.mp4", broken_source(), content_type="video/mp4", part_size=MIN_PART_SIZE
            )
        client.abort_multipart_upload.assert_called_once()


class TestConditionalObjects:
    @pytest.mark.asyncio
    async def test_get_versioned_missing(self):
        client = MagicMock()
        client.get_object.side_effect = client_error("NoSuchKey", "GetObject")
        assert await storage_with(client).get_versioned("state.json") is None

    @pytest.mark.asyncio
    async def test_get_versioned_other_error(self):
        client = MagicMock()
        client.get_object.side_effect = client_error("AccessDenied", "GetObject")
        with pytest.raises(StorageError, match="Read of"):
            await storage_with(client).get_versioned("state.json")

    @pytest.mark.asyncio
    async def test_put_conditional_precondition_failed(self):
        client = MagicMock()
        client.put_object.side_effect = client_error("PreconditionFailed")
        assert await storage_with(client).put_conditional("state.json", b"{}", if_match='"v1"') is None

    @pytest.mark.asyncio
    async def test_put_conditional_returns_etag(self):
        client = MagicMock()
        client.put_object.return_value = {"ETag": '"v2"'}
        assert await storage_with(client).put_conditional("state.json", b"{}") == '"v2"'
