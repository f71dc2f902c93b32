"""Resource and spreadsheet routes."""

from typing import Optional

from fastapi import APIRouter, Depends, Query
from pydantic import BaseModel, Field

from core.cache import TTLCache
from core.container import container
from core.logging import get_logger
from services.resources import ResourceService

logger = get_logger(__name__)
router = APIRouter(prefix="/api", tags=["resources"])


class ReadSpreadsheetRequest(BaseModel):
    thread_id: str = Field(alias="threadId")
    sheet_name: Optional[str] = Field(default=None, alias="sheetName")
    csv_content: str = Field(alias="csvContent")

    model_config = {"populate_by_name": True}


def get_resource_service() -> ResourceService:
    return container.resource_service()


def get_content_cache() -> TTLCache:
    return container.content_cache()


def get_metadata_cache() -> TTLCache:
    return container.metadata_cache()


@router.get("/resources")
async def list_resources(service: ResourceService = Depends(get_resource_service)):
    """List stored resources."""
    resources = await service.discover_resources()
    return {"resources": [resource.to_dict() for resource in resources]}


@router.get("/resources/templates")
async def list_resource_templates(service: ResourceService = Depends(get_resource_service)):
    """List resource URI templates."""
    return {"resourceTemplates": [template.to_dict() for template in service.resource_templates()]}


@router.get("/resources/read")
async def read_resource(
    uri: str = Query(..., min_length=1),
    service: ResourceService = Depends(get_resource_service),
):
    """Return full CSV content for a resource locator."""
    content = await service.resolve_locator_to_content(uri)
    return {"contents": [content.to_dict()]}


@router.post("/spreadsheets/read")
async def read_spreadsheet(
    request: ReadSpreadsheetRequest,
    service: ResourceService = Depends(get_resource_service),
):
    """Store exported CSV and return a bounded preview plus metadata."""
    preview = await service.read_spreadsheet(
        request.thread_id,
        request.csv_content,
        sheet_name=request.sheet_name,
    )
    return preview.to_dict()


@router.get("/spreadsheets/{thread_id}/metadata")
async def get_spreadsheet_metadata(
    thread_id: str,
    sheet: Optional[str] = None,
    service: ResourceService = Depends(get_resource_service),
):
    """Metadata for a stored spreadsheet export."""
    metadata = await service.get_metadata(thread_id, sheet)
    return metadata.to_dict()


@router.post("/cache/prune")
async def prune_caches(
    content_cache: TTLCache = Depends(get_content_cache),
    metadata_cache: TTLCache = Depends(get_metadata_cache),
):
    """Drop expired cache entries."""
    removed = {
        "content": content_cache.prune(),
        "metadata": metadata_cache.prune(),
    }
    logger.info("Pruned caches", **removed)
    return {"success": True, "removed": removed}
