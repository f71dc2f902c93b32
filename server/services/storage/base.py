"""Storage capability protocols.

Backends implement ``StorageBackend`` without sharing a base class. Optional
capabilities are separate protocols a backend either implements or not;
callers check with ``isinstance`` instead of probing attributes:

    if isinstance(storage, PresignedURLResolver):
        url = await storage.resolve_presigned_url(key)
"""

from typing import List, Optional, Protocol, runtime_checkable

from models.resource import LogicalKey, ResourceMetadata


@runtime_checkable
class StorageBackend(Protocol):
    """Persists full CSV content plus a metadata sidecar per logical key."""

    backend_name: str

    async def save_content(self, key: LogicalKey, content: str) -> str:
        """Persist content and fresh metadata, refresh caches, return the physical location."""
        ...

    async def get_content(self, key: LogicalKey) -> Optional[str]:
        """Return stored content, or None if nothing was ever saved for the key."""
        ...

    def get_resource_locator(self, key: LogicalKey) -> str:
        """Return the external locator for a key. Pure, no I/O."""
        ...

    async def get_metadata(self, key: LogicalKey) -> ResourceMetadata:
        """Return metadata, repairing a missing sidecar from content when possible."""
        ...

    async def mark_truncated(self, key: LogicalKey, is_truncated: bool) -> ResourceMetadata:
        """Record whether the last preview was truncated, overwriting the sidecar."""
        ...

    async def check_available(self) -> bool:
        """Cheap reachability check of the durable medium for health reporting."""
        ...


@runtime_checkable
class PresignedURLResolver(Protocol):
    """Backends that can turn a presigned marker into a time-boxed URL."""

    async def resolve_presigned_url(self, key: LogicalKey) -> str:
        ...


@runtime_checkable
class ResourceEnumerator(Protocol):
    """Backends that can cheaply list every stored key."""

    async def list_keys(self) -> List[LogicalKey]:
        ...
