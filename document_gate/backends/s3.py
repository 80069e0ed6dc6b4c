"""
S3 object store.

Uploaded documents live in a bucket under a key prefix; viewers get
presigned GET URLs. boto3 is synchronous, so every call runs in a worker
thread.
"""

import asyncio
import logging
from collections.abc import Callable, Sequence
from datetime import UTC, datetime
from typing import Any

import boto3
from botocore.client import Config as BotoConfig
from botocore.exceptions import BotoCoreError, ClientError

from ..exceptions import ExternalStoreError, SignedLinkError
from ..protocol import ObjectStore, SignedLink

logger = logging.getLogger(__name__)


class S3ObjectStore(ObjectStore):
    """Object store on an S3 bucket."""

    def __init__(
        self,
        bucket: str,
        region: str | None = None,
        prefix: str = "documents",
        client: Any | None = None,
        clock: Callable[[], datetime] | None = None,
    ):
        """Initialize the store.

        Args:
            bucket: Bucket name
            region: Bucket region (credentials come from the usual AWS chain)
            prefix: Key prefix for all documents
            client: Pre-built boto3 S3 client (for testing)
            clock: Returns the current UTC time, stamped on issued links
        """
        self.bucket = bucket
        self.prefix = (prefix or "").strip("/")
        self._clock = clock or (lambda: datetime.now(UTC))
        self.client = client or boto3.client(
            "s3",
            region_name=region,
            config=BotoConfig(signature_version="s3v4"),
        )

    @classmethod
    def from_config(cls, config: Any) -> "S3ObjectStore":
        """Create a store from a GateConfig."""
        if not config.s3_bucket:
            raise ExternalStoreError("configure", RuntimeError("s3_bucket is not configured"))
        return cls(bucket=config.s3_bucket, region=config.s3_region, prefix=config.s3_prefix)

    def _key(self, path: str) -> str:
        key = path.lstrip("/").replace("..", "_")
        if self.prefix:
            return f"{self.prefix}/{key}"
        return key

    async def create_signed_url(self, path: str, ttl_seconds: int) -> SignedLink:
        issued_at = self._clock()
        try:
            url = await asyncio.to_thread(
                self.client.generate_presigned_url,
                ClientMethod="get_object",
                Params={"Bucket": self.bucket, "Key": self._key(path)},
                ExpiresIn=ttl_seconds,
            )
        except (BotoCoreError, ClientError) as e:
            raise SignedLinkError(path, e) from e
        return SignedLink(url=url, issued_at=issued_at, ttl=ttl_seconds)

    async def upload(
        self, path: str, data: bytes, content_type: str = "application/pdf"
    ) -> None:
        try:
            await asyncio.to_thread(
                self.client.put_object,
                Bucket=self.bucket,
                Key=self._key(path),
                Body=data,
                ContentType=content_type,
            )
        except (BotoCoreError, ClientError) as e:
            raise ExternalStoreError("upload", e, path=path) from e
        logger.info(f"Uploaded {len(data)} bytes to s3://{self.bucket}/{self._key(path)}")

    async def remove(self, paths: Sequence[str]) -> None:
        if not paths:
            return
        try:
            response = await asyncio.to_thread(
                self.client.delete_objects,
                Bucket=self.bucket,
                Delete={"Objects": [{"Key": self._key(p)} for p in paths]},
            )
        except (BotoCoreError, ClientError) as e:
            raise ExternalStoreError("remove", e, path=", ".join(paths)) from e

        # delete_objects reports per-key failures in the response instead of raising
        errors = response.get("Errors") or []
        if errors:
            failed = ", ".join(f"{err.get('Key')} ({err.get('Code')})" for err in errors)
            raise ExternalStoreError(
                "remove", RuntimeError(f"Could not delete {failed}"), path=", ".join(paths)
            )
