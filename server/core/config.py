"""Environment-driven configuration with Pydantic v2."""

from typing import List, Literal, Optional
from pathlib import Path
from pydantic import AliasChoices, Field, field_validator
from pydantic_settings import BaseSettings

DEFAULT_STORAGE_PATH = Path.home() / ".quip-mcp-server" / "storage"


class Settings(BaseSettings):
    """Application settings driven entirely by environment variables."""

    # Server Configuration
    host: str = Field(default="127.0.0.1")
    port: int = Field(default=3000, validation_alias=AliasChoices("MCP_PORT", "PORT"), ge=1, le=65535)
    debug: bool = Field(default=False)

    # Storage Configuration
    storage_type: Literal["local", "s3"] = Field(default="local")
    storage_path: Path = Field(
        default=DEFAULT_STORAGE_PATH,
        validation_alias=AliasChoices("QUIP_STORAGE_PATH", "STORAGE_PATH"),
    )
    file_protocol: bool = Field(default=False)

    # S3 Storage
    s3_bucket: Optional[str] = Field(default=None)
    s3_region: Optional[str] = Field(default=None)
    s3_prefix: Optional[str] = Field(default=None)
    s3_url_expiration: int = Field(default=3600, ge=1, le=604800)  # SigV4 max is 7 days
    s3_use_presigned_urls: bool = Field(default=False)

    # Cache Configuration (seconds)
    content_cache_ttl: int = Field(default=600, ge=1)
    metadata_cache_ttl: int = Field(default=1800, ge=1)
    cache_max_entries: int = Field(default=100, ge=1)

    # Inline preview budget in bytes
    preview_max_bytes: int = Field(default=10 * 1024, ge=1)

    # Authentication
    auth_enabled: bool = Field(default=False, validation_alias=AliasChoices("MCP_AUTH_ENABLED", "AUTH_ENABLED"))
    api_key: Optional[str] = Field(default=None, validation_alias=AliasChoices("MCP_API_KEY", "API_KEY"))
    api_key_header: str = Field(
        default="X-API-Key",
        validation_alias=AliasChoices("MCP_API_KEY_HEADER", "API_KEY_HEADER"),
    )

    # Security
    cors_origins: List[str] = Field(default_factory=lambda: ["*"])

    # Logging
    log_level: str = Field(default="INFO")
    log_format: Literal["json", "console"] = Field(default="console")
    log_file: Optional[str] = Field(default=None)

    @field_validator("storage_path")
    @classmethod
    def expand_storage_path(cls, v):
        """Expand ~ so the path is usable for file:// locators."""
        return Path(v).expanduser()

    @field_validator("s3_prefix")
    @classmethod
    def normalize_s3_prefix(cls, v):
        """Treat an empty prefix as no prefix."""
        if v is not None and not v.strip():
            return None
        return v

    model_config = {
        "env_file": ".env",
        "env_file_encoding": "utf-8",
        "case_sensitive": False,
        "extra": "ignore",
        "populate_by_name": True,
        "env_parse_none_str": "none",
    }
