"""Soundwave - S3 storage adapter.

Uploads outputs with boto3 and returns a URL built from a template, so
S3-compatible services (Spaces, MinIO, R2) work with an endpoint override.
Credentials come from the standard boto3 chain (env vars, profile, role).
"""

from __future__ import annotations

import logging
from pathlib import Path

import boto3
from botocore.exceptions import BotoCoreError, ClientError

from soundwave.config import Settings
from soundwave.errors import StorageError
from soundwave.ports import StoragePort

logger = logging.getLogger(__name__)


class S3Storage(StoragePort):
    """StoragePort backed by an S3-compatible bucket."""

    def __init__(
        self,
        url_template: str = "https://{bucket}.s3.amazonaws.com/{key}",
        acl: str | None = None,
        client=None,
        endpoint_url: str | None = None,
        region_name: str | None = None,
    ):
        self.url_template = url_template
        self.acl = acl
        self.client = client or boto3.client(
            "s3", endpoint_url=endpoint_url, region_name=region_name
        )

    @classmethod
    def from_settings(cls, settings: Settings) -> S3Storage:
        return cls(
            url_template=settings.s3_url_template,
            acl=settings.s3_acl,
            endpoint_url=settings.s3_endpoint_url,
            region_name=settings.s3_region,
        )

    def object_url(self, bucket: str, key: str) -> str:
        return self.url_template.format(bucket=bucket, key=key)

    def put(self, local_path: Path, bucket: str, key: str, content_type: str) -> str:
        extra_args = {"ContentType": content_type}
        if self.acl:
            extra_args["ACL"] = self.acl

        try:
            self.client.upload_file(str(local_path), bucket, key, ExtraArgs=extra_args)
        except (ClientError, BotoCoreError) as e:
            raise StorageError(f"S3 upload to s3://{bucket}/{key} failed: {e}") from e
        except OSError as e:
            raise StorageError(f"Cannot read {local_path}: {e}") from e

        logger.info("Uploaded %s to s3://%s/%s", local_path, bucket, key)
        return self.object_url(bucket, key)
