"""
AWS Elemental MediaConvert job submission.
"""

from __future__ import annotations

import asyncio
from typing import Any, Optional

from botocore.exceptions import BotoCoreError, ClientError

from mediamirror.exceptions import ConfigurationError, EncoderSubmissionError
from mediamirror.media.rendition import RenditionJobSpec
from mediamirror.utils.logging import get_logger

logger = get_logger("mediamirror.encoder.mediaconvert")


class MediaConvertEncoder:
    """
    Submits rendition jobs to MediaConvert.

    Submission is the end of the pipeline's involvement: the job runs
    asynchronously inside MediaConvert and nothing here waits on it.

    Config example:
        encoder:
          endpoint_url: https://abcd1234.mediaconvert.us-east-1.amazonaws.com
          role_arn: arn:aws:iam::123456789012:role/MediaConvertRole
          region: us-east-1
    """

    def __init__(self, config: dict[str, Any], bucket: str, *, client: Any = None):
        self.config = config
        self.bucket = bucket
        self._client = client
        if not self.config.get("role_arn"):
            raise ConfigurationError("MediaConvert encoder requires 'role_arn' in config")

    @property
    def role_arn(self) -> str:
        return self.config["role_arn"]

    @property
    def client(self):
        """Get boto3 MediaConvert client (lazy initialization)."""
        if self._client is None:
            import boto3

            kwargs: dict[str, Any] = {}
            if self.config.get("region"):
                kwargs["region_name"] = self.config["region"]
            if self.config.get("endpoint_url"):
                kwargs["endpoint_url"] = self.config["endpoint_url"]
            self._client = boto3.client("mediaconvert", **kwargs)
        return self._client

    async def submit(self, spec: RenditionJobSpec) -> Optional[str]:
        """
        Submit a rendition job.

        Returns:
            MediaConvert job id

        Raises:
            EncoderSubmissionError: If MediaConvert rejects or cannot be reached
        """
        request = spec.to_create_job_request(self.bucket, self.role_arn)
        try:
            response = await asyncio.to_thread(self.client.create_job, **request)
        except (BotoCoreError, ClientError) as e:
            raise EncoderSubmissionError(
                f"MediaConvert rejected job for {spec.input_key}: {e}",
                details={"input_key": spec.input_key, "destination_prefix": spec.destination_prefix},
            ) from e

        job_id = response.get("Job", {}).get("Id")
        logger.info(f"Submitted MediaConvert job {job_id} for {spec.input_key} -> {spec.destination_prefix}")
        return job_id
