"""Amazon S3 storage backend.

Objects live under ``{prefix}{document_id}[-{sheet_name}].csv`` with a JSON
sidecar at the same key plus ``.meta``. boto3 is blocking, so every call runs
in the default executor.

Listing by key pattern is not offered: this backend implements
``PresignedURLResolver`` but not ``ResourceEnumerator``.
"""

import asyncio
import json
from dataclasses import replace
from functools import partial
from typing import Any, Optional

import boto3
from botocore.config import Config
from botocore.exceptions import BotoCoreError, ClientError

from core.cache import TTLCache
from core.exceptions import StorageError
from core.logging import get_logger, log_storage_operation
from models.resource import (
    LogicalKey,
    ResourceMetadata,
    build_metadata,
    empty_metadata,
)
from services import address_codec
from services.address_codec import LocatorScheme

logger = get_logger(__name__)

MISSING_OBJECT_CODES = frozenset(["NoSuchKey", "404", "NotFound"])

S3_ERRORS = (BotoCoreError, ClientError)


def _is_missing(error: ClientError) -> bool:
    return error.response.get("Error", {}).get("Code") in MISSING_OBJECT_CODES


class S3Storage:
    """Stores CSV objects and sidecars in one S3 bucket."""

    backend_name = "s3"

    def __init__(
        self,
        bucket: str,
        region: str,
        content_cache: TTLCache[str],
        metadata_cache: TTLCache[ResourceMetadata],
        prefix: Optional[str] = None,
        url_expiration: int = 3600,
        use_presigned_urls: bool = False,
        client: Any = None,
    ):
        """Initialize S3 storage.

        Args:
            bucket: Bucket name
            region: Bucket region
            content_cache: Cache for full CSV content
            metadata_cache: Cache for metadata records
            prefix: Key prefix; a trailing slash is added when missing
            url_expiration: Lifetime of presigned URLs in seconds
            use_presigned_urls: Emit s3+https:// markers instead of s3:// locators
            client: Preconfigured S3 client, built from ``region`` if omitted
        """
        if not bucket:
            raise ValueError("S3 bucket name is required")
        if not region:
            raise ValueError("S3 region is required")

        self.bucket = bucket
        self.region = region
        prefix = prefix or ""
        self.prefix = prefix if not prefix or prefix.endswith("/") else f"{prefix}/"
        self.url_expiration = url_expiration
        self.use_presigned_urls = use_presigned_urls
        self.content_cache = content_cache
        self.metadata_cache = metadata_cache
        self.client = client or boto3.client(
            "s3",
            region_name=region,
            config=Config(signature_version="s3v4"),
        )

        logger.info("S3Storage initialized",
                    bucket=bucket, region=region, prefix=self.prefix,
                    url_expiration=url_expiration,
                    use_presigned_urls=use_presigned_urls)

    async def _run(self, func, *args, **kwargs):
        loop = asyncio.get_running_loop()
        return await loop.run_in_executor(None, partial(func, *args, **kwargs))

    def get_object_key(self, key: LogicalKey) -> str:
        return f"{self.prefix}{address_codec.content_filename(key)}"

    def get_metadata_key(self, key: LogicalKey) -> str:
        return f"{self.prefix}{address_codec.metadata_filename(key)}"

    def get_resource_locator(self, key: LogicalKey) -> str:
        """s3:// locator, or the s3+https:// marker in presigned mode.

        The marker is resolved lazily by ``resolve_presigned_url``.
        """
        scheme = LocatorScheme.S3_PRESIGNED if self.use_presigned_urls else LocatorScheme.S3
        return address_codec.encode(key, scheme, bucket=self.bucket, prefix=self.prefix)

    async def _put_text(self, object_key: str, body: str, content_type: str) -> None:
        await self._run(
            self.client.put_object,
            Bucket=self.bucket,
            Key=object_key,
            Body=body.encode("utf-8"),
            ContentType=content_type,
        )

    async def _get_text(self, object_key: str) -> Optional[str]:
        """Fetch an object as text; None if it does not exist."""
        def fetch():
            try:
                response = self.client.get_object(Bucket=self.bucket, Key=object_key)
            except ClientError as e:
                if _is_missing(e):
                    return None
                raise
            return response["Body"].read().decode("utf-8")

        return await self._run(fetch)

    async def _write_metadata(self, key: LogicalKey, metadata: ResourceMetadata) -> None:
        await self._put_text(self.get_metadata_key(key), json.dumps(metadata.to_dict()), "application/json")

    async def save_content(self, key: LogicalKey, content: str) -> str:
        """Upload content then its sidecar, and refresh both caches."""
        object_key = self.get_object_key(key)
        metadata = build_metadata(content, self.get_resource_locator(key))

        try:
            await self._put_text(object_key, content, "text/csv")
            await self._write_metadata(key, metadata)
        except S3_ERRORS as e:
            logger.error("Failed to save CSV to S3", key=key.describe(), error=str(e))
            raise StorageError(f"Failed to save CSV to S3: {e}") from e

        self.content_cache.set(key.cache_key, content)
        self.metadata_cache.set(key.cache_key, metadata)

        log_storage_operation(logger, self.backend_name, "save", f"s3://{self.bucket}/{object_key}",
                              bytes=metadata.total_size, rows=metadata.total_rows)
        return object_key

    async def get_content(self, key: LogicalKey) -> Optional[str]:
        """Cache first, then S3. A missing object returns None."""
        cached = self.content_cache.get(key.cache_key)
        if cached is not None:
            return cached

        object_key = self.get_object_key(key)
        try:
            content = await self._get_text(object_key)
        except (*S3_ERRORS, UnicodeDecodeError) as e:
            logger.error("Failed to get CSV from S3", key=key.describe(), error=str(e))
            raise StorageError(f"Failed to get CSV from S3: {e}") from e

        if content is None:
            logger.warning("CSV object not found", bucket=self.bucket, object_key=object_key)
            return None

        self.content_cache.set(key.cache_key, content)
        log_storage_operation(logger, self.backend_name, "read", f"s3://{self.bucket}/{object_key}",
                              bytes=len(content.encode("utf-8")))
        return content

    async def get_metadata(self, key: LogicalKey) -> ResourceMetadata:
        """Cache, then sidecar object, then repair from content, then empty metadata."""
        cached = self.metadata_cache.get(key.cache_key)
        if cached is not None:
            return cached

        try:
            raw = await self._get_text(self.get_metadata_key(key))
            if raw is not None:
                metadata = ResourceMetadata.from_dict(json.loads(raw))
                self.metadata_cache.set(key.cache_key, metadata)
                return metadata

            logger.warning("Metadata object not found", bucket=self.bucket,
                           object_key=self.get_metadata_key(key))
            content = await self._get_text(self.get_object_key(key))
            if content is None:
                return empty_metadata(self.get_resource_locator(key))

            metadata = build_metadata(content, self.get_resource_locator(key))
            await self._write_metadata(key, metadata)
            logger.info("Regenerated missing metadata", key=key.describe(),
                        rows=metadata.total_rows, bytes=metadata.total_size)
        except (*S3_ERRORS, UnicodeDecodeError, ValueError) as e:
            logger.error("Failed to get metadata from S3", key=key.describe(), error=str(e))
            raise StorageError(f"Failed to get metadata from S3: {e}") from e

        self.metadata_cache.set(key.cache_key, metadata)
        return metadata

    async def mark_truncated(self, key: LogicalKey, is_truncated: bool) -> ResourceMetadata:
        metadata = replace(await self.get_metadata(key), is_truncated=is_truncated)
        if metadata.last_updated is None:
            return metadata

        try:
            await self._write_metadata(key, metadata)
        except S3_ERRORS as e:
            raise StorageError(f"Failed to update metadata in S3: {e}") from e
        self.metadata_cache.set(key.cache_key, metadata)
        return metadata

    async def resolve_presigned_url(self, key: LogicalKey) -> str:
        """Sign a GET URL for the content object, valid for ``url_expiration`` seconds.

        Raises:
            StorageError: signing failed; no unsigned fallback is returned
        """
        object_key = self.get_object_key(key)
        try:
            url = await self._run(
                self.client.generate_presigned_url,
                "get_object",
                Params={"Bucket": self.bucket, "Key": object_key},
                ExpiresIn=self.url_expiration,
            )
        except S3_ERRORS as e:
            logger.error("Failed to generate presigned URL", key=key.describe(), error=str(e))
            raise StorageError(f"Failed to generate presigned URL: {e}") from e

        logger.debug("Generated presigned URL", object_key=object_key,
                     expires_in=self.url_expiration)
        return url

    async def check_available(self) -> bool:
        """Whether the bucket exists and is reachable with the current credentials."""
        try:
            await self._run(self.client.head_bucket, Bucket=self.bucket)
        except S3_ERRORS as e:
            logger.warning("S3 bucket not reachable", bucket=self.bucket, error=str(e))
            return False
        return True
