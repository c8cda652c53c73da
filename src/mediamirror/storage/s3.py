"""
S3 object storage for renditions, originals and pipeline state.

Provides a lazily-created boto3 client and async wrappers for the uploads the
worker performs. boto3 is blocking, so every call runs in a worker thread.
"""

from __future__ import annotations

import asyncio
import io
from collections.abc import AsyncIterator
from typing import Any, Optional

from boto3.s3.transfer import TransferConfig
from botocore.exceptions import BotoCoreError, ClientError

from mediamirror.exceptions import ConfigurationError, StorageError
from mediamirror.utils.logging import get_logger

logger = get_logger("mediamirror.storage.s3")

# Renditions are addressed by key and never rewritten with different content
IMMUTABLE_CACHE_CONTROL = "public, max-age=31536000, immutable"

# S3 rejects multipart parts under 5 MiB (except the last one)
MIN_PART_SIZE = 5 * 1024 * 1024
DEFAULT_PART_SIZE = 8 * 1024 * 1024

PRECONDITION_FAILED_CODES = ("PreconditionFailed", "ConditionalRequestConflict", "412", "409")


class S3Storage:
    """
    S3 storage wrapper.

    Supports AWS credentials from config, environment, or IAM role.

    Config example:
        storage:
          bucket: my-bucket
          region: us-east-1
          access_key_id: AKIA...  # Optional, uses env/IAM if not set
          secret_access_key: ...   # Optional
          endpoint_url: ...        # Optional (for S3-compatible services)
          base_path: media         # Optional prefix for all keys
    """

    def __init__(self, config: dict[str, Any], *, client: Any = None):
        self.config = config
        self._client = client
        if not self.config.get("bucket"):
            raise ConfigurationError(
                "S3 storage requires 'bucket' in config. Example: storage.bucket = 'my-bucket'"
            )

    @property
    def bucket(self) -> str:
        return self.config["bucket"]

    @property
    def region(self) -> Optional[str]:
        return self.config.get("region")

    @property
    def endpoint_url(self) -> Optional[str]:
        """Custom endpoint URL (for S3-compatible services like MinIO)."""
        return self.config.get("endpoint_url")

    @property
    def base_path(self) -> str:
        return self.config.get("base_path", "") or ""

    def _get_client_kwargs(self) -> dict[str, Any]:
        """Build kwargs for boto3 client initialization."""
        kwargs: dict[str, Any] = {}

        if self.region:
            kwargs["region_name"] = self.region

        if self.endpoint_url:
            kwargs["endpoint_url"] = self.endpoint_url

        # Explicit credentials from config (override env/IAM)
        access_key = self.config.get("access_key_id")
        secret_key = self.config.get("secret_access_key")
        session_token = self.config.get("session_token")

        if access_key and secret_key:
            kwargs["aws_access_key_id"] = access_key
            kwargs["aws_secret_access_key"] = secret_key
            if session_token:
                kwargs["aws_session_token"] = session_token

        return kwargs

    @property
    def client(self):
        """
        Get boto3 S3 client (lazy initialization).

        Returns:
            boto3.client('s3') instance
        """
        if self._client is None:
            import boto3

            self._client = boto3.client("s3", **self._get_client_kwargs())
        return self._client

    def full_key(self, key: str) -> str:
        """Prepend base_path to key if configured."""
        if self.base_path:
            return f"{self.base_path.strip('/')}/{key.lstrip('/')}"
        return key.lstrip("/")

    def uri(self, key: str) -> str:
        return f"s3://{self.bucket}/{self.full_key(key)}"

    async def put_bytes(
        self,
        key: str,
        body: bytes,
        *,
        content_type: str,
        cache_control: str = IMMUTABLE_CACHE_CONTROL,
        part_size: int = DEFAULT_PART_SIZE,
    ) -> str:
        """
        Upload an in-memory object through the managed transfer.

        The transfer manager switches to a multipart upload once the body
        reaches `part_size`, so the call is the same for any payload size.

        Returns:
            S3 URI of uploaded object (s3://bucket/key)
        """
        full_key = self.full_key(key)
        extra_args = {"ContentType": content_type, "CacheControl": cache_control}
        transfer_config = TransferConfig(multipart_threshold=part_size, multipart_chunksize=part_size)

        try:
            await asyncio.to_thread(
                self.client.upload_fileobj,
                io.BytesIO(body),
                self.bucket,
                full_key,
                ExtraArgs=extra_args,
                Config=transfer_config,
            )
        except (BotoCoreError, ClientError) as e:
            raise StorageError(f"Upload to {self.uri(key)} failed: {e}", key=full_key) from e

        logger.debug(f"Uploaded {len(body)} bytes to {self.uri(key)}")
        return self.uri(key)

    async def put_stream(
        self,
        key: str,
        chunks: AsyncIterator[bytes],
        *,
        content_type: str,
        cache_control: str = IMMUTABLE_CACHE_CONTROL,
        part_size: int = DEFAULT_PART_SIZE,
    ) -> str:
        """
        Stream an async byte source into S3 without holding it in memory.

        Chunks are buffered up to `part_size` and sent as multipart parts. A
        source that yields nothing at all is written as an empty object. Any
        failure aborts the multipart upload so no orphaned parts are billed.

        Returns:
            S3 URI of uploaded object
        """
        if part_size < MIN_PART_SIZE:
            raise ValueError(f"part_size must be >= {MIN_PART_SIZE}")

        full_key = self.full_key(key)
        upload_id: str | None = None
        parts: list[dict[str, Any]] = []
        buffer = bytearray()
        total = 0

        async def flush(data: bytes) -> None:
            nonlocal upload_id
            if upload_id is None:
                response = await asyncio.to_thread(
                    self.client.create_multipart_upload,
                    Bucket=self.bucket,
                    Key=full_key,
                    ContentType=content_type,
                    CacheControl=cache_control,
                )
                upload_id = response["UploadId"]
            part_number = len(parts) + 1
            response = await asyncio.to_thread(
                self.client.upload_part,
                Bucket=self.bucket,
                Key=full_key,
                UploadId=upload_id,
                PartNumber=part_number,
                Body=data,
            )
            parts.append({"ETag": response["ETag"], "PartNumber": part_number})

        try:
            async for chunk in chunks:
                buffer.extend(chunk)
                total += len(chunk)
                while len(buffer) >= part_size:
                    await flush(bytes(buffer[:part_size]))
                    del buffer[:part_size]

            if upload_id is None:
                # Fits in one request (or is empty): no multipart needed
                await asyncio.to_thread(
                    self.client.put_object,
                    Bucket=self.bucket,
                    Key=full_key,
                    Body=bytes(buffer),
                    ContentType=content_type,
                    CacheControl=cache_control,
                )
            else:
                if buffer:
                    await flush(bytes(buffer))
                await asyncio.to_thread(
                    self.client.complete_multipart_upload,
                    Bucket=self.bucket,
                    Key=full_key,
                    UploadId=upload_id,
                    MultipartUpload={"Parts": parts},
                )
        except (BotoCoreError, ClientError) as e:
            await self._abort(full_key, upload_id)
            raise StorageError(f"Streaming upload to {self.uri(key)} failed: {e}", key=full_key) from e
        except BaseException:
            await self._abort(full_key, upload_id)
            raise

        logger.info(f"Streamed {total} bytes to {self.uri(key)} in {max(len(parts), 1)} part(s)")
        return self.uri(key)

    async def _abort(self, full_key: str, upload_id: str | None) -> None:
        if upload_id is None:
            return
        try:
            await asyncio.to_thread(
                self.client.abort_multipart_upload, Bucket=self.bucket, Key=full_key, UploadId=upload_id
            )
        except (BotoCoreError, ClientError) as e:
            logger.warning(f"Could not abort multipart upload {upload_id} for {full_key}: {e}")

    async def get_versioned(self, key: str) -> tuple[bytes, str] | None:
        """
        Read an object together with its ETag.

        Returns:
            (body, etag), or None when the object does not exist
        """
        full_key = self.full_key(key)
        try:
            response = await asyncio.to_thread(self.client.get_object, Bucket=self.bucket, Key=full_key)
            body = await asyncio.to_thread(response["Body"].read)
        except ClientError as e:
            if _error_code(e) in ("NoSuchKey", "404", "NotFound"):
                return None
            raise StorageError(f"Read of {self.uri(key)} failed: {e}", key=full_key) from e
        except BotoCoreError as e:
            raise StorageError(f"Read of {self.uri(key)} failed: {e}", key=full_key) from e
        return body, response["ETag"]

    async def put_conditional(
        self,
        key: str,
        body: bytes,
        *,
        if_match: str | None = None,
        content_type: str = "application/json",
    ) -> str | None:
        """
        Write an object only if it is unchanged since it was read.

        With `if_match` the write succeeds only while the stored ETag still
        matches; without it the write succeeds only if the object does not exist
        yet.

        Returns:
            The new ETag, or None when the precondition failed
        """
        full_key = self.full_key(key)
        kwargs: dict[str, Any] = {
            "Bucket": self.bucket,
            "Key": full_key,
            "Body": body,
            "ContentType": content_type,
        }
        if if_match is not None:
            kwargs["IfMatch"] = if_match
        else:
            kwargs["IfNoneMatch"] = "*"

        try:
            response = await asyncio.to_thread(self.client.put_object, **kwargs)
        except ClientError as e:
            if _error_code(e) in PRECONDITION_FAILED_CODES:
                return None
            raise StorageError(f"Conditional write of {self.uri(key)} failed: {e}", key=full_key) from e
        except BotoCoreError as e:
            raise StorageError(f"Conditional write of {self.uri(key)} failed: {e}", key=full_key) from e
        return response["ETag"]

    def close(self) -> None:
        """Drop the client; boto3 clients need no explicit closing."""
        self._client = None

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}(bucket='{self.bucket}')"


def _error_code(error: ClientError) -> str | None:
    code = error.response.get("Error", {}).get("Code")
    if code is None:
        status = error.response.get("ResponseMetadata", {}).get("HTTPStatusCode")
        return str(status) if status is not None else None
    return str(code)
