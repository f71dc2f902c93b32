"""Storage backends for CSV content and metadata.

Usage:
    storage = create_storage(settings.storage_type, settings, content_cache, metadata_cache)
    await storage.save_content(LogicalKey("abc123", "Sheet1"), csv_text)
    content = await storage.get_content(LogicalKey("abc123", "Sheet1"))
"""

from core.cache import TTLCache
from core.config import Settings
from core.logging import get_logger
from models.resource import ResourceMetadata

from .base import PresignedURLResolver, ResourceEnumerator, StorageBackend
from .local import LocalStorage
from .s3 import S3Storage

logger = get_logger(__name__)


def create_storage(
    storage_type: str,
    settings: Settings,
    content_cache: TTLCache[str],
    metadata_cache: TTLCache[ResourceMetadata],
) -> StorageBackend:
    """Factory function to create the configured storage backend.

    Args:
        storage_type: "local" or "s3"
        settings: Application settings with storage and S3 options
        content_cache: Cache instance for full content
        metadata_cache: Cache instance for metadata

    Returns:
        Configured StorageBackend instance

    Raises:
        ValueError: unknown type or missing S3 bucket/region
    """
    storage_type = (storage_type or "").lower()

    if storage_type == "local":
        logger.info("Using LocalStorage", storage_path=str(settings.storage_path))
        return LocalStorage(
            storage_path=settings.storage_path,
            is_file_protocol=settings.file_protocol,
            content_cache=content_cache,
            metadata_cache=metadata_cache,
        )

    if storage_type == "s3":
        logger.info("Using S3Storage", bucket=settings.s3_bucket, region=settings.s3_region)
        return S3Storage(
            bucket=settings.s3_bucket,
            region=settings.s3_region,
            prefix=settings.s3_prefix,
            url_expiration=settings.s3_url_expiration,
            use_presigned_urls=settings.s3_use_presigned_urls,
            content_cache=content_cache,
            metadata_cache=metadata_cache,
        )

    raise ValueError(f"Unsupported storage type: {storage_type}")


__all__ = [
    "StorageBackend",
    "PresignedURLResolver",
    "ResourceEnumerator",
    "LocalStorage",
    "S3Storage",
    "create_storage",
]
