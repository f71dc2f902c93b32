"""Resource access service.

Composes the address codec, the storage backend and its caches to answer
protocol-layer requests: read full content by locator, list stored
resources, advertise URI templates and build bounded spreadsheet previews.
"""

from typing import List, Optional
from urllib.parse import unquote, urlsplit

from core.exceptions import (
    InvalidLocatorError,
    InvalidParamsError,
    ResourceNotFoundError,
    UnsupportedSchemeError,
)
from core.logging import get_logger
from models.resource import (
    LogicalKey,
    ResourceContent,
    ResourceDescriptor,
    ResourceTemplate,
    SpreadsheetPreview,
)
from services import address_codec
from services.address_codec import LocatorScheme
from services.storage import PresignedURLResolver, ResourceEnumerator, StorageBackend
from services.truncation import DEFAULT_MAX_SIZE, truncate_csv_content

logger = get_logger(__name__)

_THREAD_ID_PARAM = {
    "name": "thread_id",
    "description": "The Quip document thread ID",
    "required": True,
}
_SHEET_NAME_PARAM = {
    "name": "sheet_name",
    "description": "The name of the sheet (if omitted, will use the first sheet)",
    "required": False,
}

RESOURCE_TEMPLATES = [
    ResourceTemplate(
        uri_template="quip://{thread_id}?sheet={sheet_name}",
        name="Quip Spreadsheet",
        description="Access a specific sheet within a Quip spreadsheet document by thread ID and sheet name",
        parameters=[_THREAD_ID_PARAM, _SHEET_NAME_PARAM],
    ),
    ResourceTemplate(
        uri_template="s3://{bucket}/{prefix}{thread_id}-{sheet_name}.csv",
        name="S3 Spreadsheet",
        description=(
            "Access a specific sheet within a Quip spreadsheet document stored in S3 "
            "by bucket, prefix, thread ID and sheet name"
        ),
        parameters=[
            {"name": "bucket", "description": "S3 bucket name", "required": True},
            {"name": "prefix", "description": "S3 key prefix", "required": False},
            _THREAD_ID_PARAM,
            _SHEET_NAME_PARAM,
        ],
    ),
]


class ResourceService:
    """Facade over one storage backend."""

    def __init__(self, storage: StorageBackend, preview_max_bytes: int = DEFAULT_MAX_SIZE):
        self.storage = storage
        self.preview_max_bytes = preview_max_bytes

    async def resolve_locator_to_content(self, locator: str) -> ResourceContent:
        """Decode a locator and return the full stored content.

        Presigned markers are resolved to a signed URL right before the read
        when the backend supports it; a signing failure propagates as
        StorageError.

        Raises:
            ResourceNotFoundError: unsupported or malformed locator, or no content
        """
        logger.info("Handling resource access", uri=locator)

        try:
            key = address_codec.decode(locator)
        except (UnsupportedSchemeError, InvalidLocatorError) as e:
            logger.error("Cannot decode resource locator", uri=locator, error=e.message)
            raise ResourceNotFoundError(locator) from e

        signed_url: Optional[str] = None
        if address_codec.is_presigned_marker(locator) and isinstance(self.storage, PresignedURLResolver):
            signed_url = await self.storage.resolve_presigned_url(key)

        content = await self.storage.get_content(key)
        if content is None:
            logger.error("Resource not found", uri=locator)
            raise ResourceNotFoundError(locator)

        return ResourceContent(uri=locator, text=content, url=signed_url)

    async def discover_resources(self) -> List[ResourceDescriptor]:
        """List stored resources; empty for backends that cannot enumerate."""
        if not isinstance(self.storage, ResourceEnumerator):
            logger.info("Resource discovery not supported by storage backend",
                        backend=getattr(self.storage, "backend_name", type(self.storage).__name__))
            return []

        resources = []
        for key in await self.storage.list_keys():
            metadata = await self.storage.get_metadata(key)
            uri = self.storage.get_resource_locator(key)

            name = f"Quip Thread(Spreadsheet): {key.document_id}"
            if key.sheet_name:
                name += f" (Sheet: {key.sheet_name})"
            if address_codec.scheme_of(uri) == LocatorScheme.FILE.value:
                name += f" You can access the file at: {unquote(urlsplit(uri).path)}"

            resources.append(ResourceDescriptor(
                uri=uri,
                name=name,
                description=(
                    f"CSV data from Quip spreadsheet. "
                    f"{metadata.total_rows} rows, {metadata.total_size} bytes."
                ),
            ))

        logger.info("Discovered resources", count=len(resources))
        return resources

    def resource_templates(self) -> List[ResourceTemplate]:
        return list(RESOURCE_TEMPLATES)

    async def read_spreadsheet(
        self,
        document_id: str,
        content: str,
        sheet_name: Optional[str] = None,
    ) -> SpreadsheetPreview:
        """Store exported CSV and return a bounded preview with full-content metadata."""
        if not document_id:
            raise InvalidParamsError("threadId is required")
        address_codec.check_document_id(document_id)

        key = LogicalKey(document_id, sheet_name)
        await self.storage.save_content(key, content)

        preview, is_truncated = truncate_csv_content(content, self.preview_max_bytes)
        metadata = await self.storage.mark_truncated(key, is_truncated)

        logger.info("Returning spreadsheet data",
                    thread_id=document_id,
                    sheet=sheet_name or "default",
                    rows=metadata.total_rows,
                    truncated=is_truncated)
        return SpreadsheetPreview(csv_content=preview, metadata=metadata)

    async def get_metadata(self, document_id: str, sheet_name: Optional[str] = None):
        if not document_id:
            raise InvalidParamsError("threadId is required")
        address_codec.check_document_id(document_id)
        return await self.storage.get_metadata(LogicalKey(document_id, sheet_name))
