"""Resource data models.

All records are JSON-serializable so metadata sidecars written by one process
can be read by another, whichever backend stored them.
"""

from dataclasses import dataclass, asdict, field
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional


@dataclass(frozen=True)
class LogicalKey:
    """Identifies one exported table: a document and optionally one sheet.

    Sheet names are case-significant. An empty sheet name means "no sheet".
    """
    document_id: str
    sheet_name: Optional[str] = None

    def __post_init__(self):
        if self.sheet_name == "":
            object.__setattr__(self, "sheet_name", None)

    @property
    def cache_key(self) -> str:
        """Key shared by the content and metadata caches."""
        if self.sheet_name:
            return f"{self.document_id}:{self.sheet_name}"
        return self.document_id

    def describe(self) -> str:
        return f"{self.document_id} (sheet: {self.sheet_name or 'default'})"


@dataclass
class ResourceMetadata:
    """Derived facts about the full stored content, not the preview."""
    total_rows: int
    total_size: int
    resource_uri: str
    is_truncated: bool = False
    last_updated: Optional[str] = None  # ISO-8601, None when never saved

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "ResourceMetadata":
        """Create from a sidecar payload, tolerating missing optional keys."""
        return cls(
            total_rows=int(data.get("total_rows", 0)),
            total_size=int(data.get("total_size", 0)),
            resource_uri=data.get("resource_uri", ""),
            is_truncated=bool(data.get("is_truncated", False)),
            last_updated=data.get("last_updated"),
        )


def count_rows(content: str) -> int:
    """Number of newline-delimited lines, matching the stored row count."""
    return len(content.split("\n"))


def build_metadata(content: str, resource_uri: str) -> ResourceMetadata:
    """Compute fresh metadata for full content."""
    return ResourceMetadata(
        total_rows=count_rows(content),
        total_size=len(content.encode("utf-8")),
        resource_uri=resource_uri,
        last_updated=datetime.now(timezone.utc).isoformat(),
    )


def empty_metadata(resource_uri: str) -> ResourceMetadata:
    """Zero-valued metadata for a key that was never saved."""
    return ResourceMetadata(total_rows=0, total_size=0, resource_uri=resource_uri)


@dataclass
class ResourceContent:
    """Full content returned for a resource read."""
    uri: str
    text: str
    mime_type: str = "text/csv"
    url: Optional[str] = None  # signed URL when the locator was a presigned marker

    def to_dict(self) -> Dict[str, Any]:
        data = {"uri": self.uri, "mimeType": self.mime_type, "text": self.text}
        if self.url:
            data["url"] = self.url
        return data


@dataclass
class ResourceDescriptor:
    """One entry of a resource listing."""
    uri: str
    name: str
    description: str
    mime_type: str = "text/csv"

    def to_dict(self) -> Dict[str, Any]:
        return {
            "uri": self.uri,
            "name": self.name,
            "description": self.description,
            "mimeType": self.mime_type,
        }


@dataclass
class ResourceTemplate:
    """URI template advertised to clients."""
    uri_template: str
    name: str
    description: str
    parameters: List[Dict[str, Any]] = field(default_factory=list)
    mime_type: str = "text/csv"

    def to_dict(self) -> Dict[str, Any]:
        return {
            "uriTemplate": self.uri_template,
            "name": self.name,
            "description": self.description,
            "mimeType": self.mime_type,
            "parameters": self.parameters,
        }


@dataclass
class SpreadsheetPreview:
    """Bounded preview plus metadata describing the full content."""
    csv_content: str
    metadata: ResourceMetadata

    def to_dict(self) -> Dict[str, Any]:
        return {"csv_content": self.csv_content, "metadata": self.metadata.to_dict()}
