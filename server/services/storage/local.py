"""Local filesystem storage backend.

Layout under ``storage_path``:
    {document_id}[-{sheet_name}].csv        full CSV content
    {document_id}[-{sheet_name}].csv.meta   JSON metadata sidecar
"""

import asyncio
import json
import os
import uuid
from dataclasses import replace
from functools import partial
from pathlib import Path
from typing import List, Optional

from core.cache import TTLCache
from core.exceptions import InvalidLocatorError, StorageError
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


def _write_text_atomic(path: Path, text: str) -> None:
    """Write via a temp file and rename so readers never see a partial file."""
    tmp_path = path.with_name(f".{path.name}.{uuid.uuid4().hex}.tmp")
    try:
        tmp_path.write_text(text, encoding="utf-8")
        os.replace(tmp_path, path)
    finally:
        if tmp_path.exists():
            tmp_path.unlink()


def _read_text(path: Path) -> Optional[str]:
    try:
        return path.read_text(encoding="utf-8")
    except FileNotFoundError:
        return None


class LocalStorage:
    """Stores CSV files and sidecars in a local directory."""

    backend_name = "local"

    def __init__(
        self,
        storage_path: Path,
        is_file_protocol: bool,
        content_cache: TTLCache[str],
        metadata_cache: TTLCache[ResourceMetadata],
    ):
        """Initialize local storage and create the directory.

        Args:
            storage_path: Directory holding CSV files and sidecars
            is_file_protocol: Emit file:// locators instead of quip://
            content_cache: Cache for full CSV content
            metadata_cache: Cache for metadata records
        """
        self.storage_path = Path(storage_path)
        self.is_file_protocol = is_file_protocol
        self.content_cache = content_cache
        self.metadata_cache = metadata_cache

        try:
            self.storage_path.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            raise StorageError(f"Failed to create storage directory {self.storage_path}: {e}") from e

        logger.info("LocalStorage initialized",
                    storage_path=str(self.storage_path),
                    is_file_protocol=is_file_protocol)

    async def _run(self, func, *args):
        loop = asyncio.get_running_loop()
        return await loop.run_in_executor(None, partial(func, *args))

    def _path_for(self, filename: str) -> Path:
        """Join a physical file name to the storage directory, refusing escapes."""
        path = self.storage_path / filename
        if Path(os.path.abspath(path)).parent != Path(os.path.abspath(self.storage_path)):
            raise StorageError(f"Path escapes storage directory: {filename}")
        return path

    def get_file_path(self, key: LogicalKey) -> Path:
        return self._path_for(address_codec.content_filename(key))

    def get_metadata_path(self, key: LogicalKey) -> Path:
        return self._path_for(address_codec.metadata_filename(key))

    def get_resource_locator(self, key: LogicalKey) -> str:
        """file:// locator when file protocol is enabled, quip:// otherwise."""
        if self.is_file_protocol:
            return address_codec.encode(key, LocatorScheme.FILE, storage_path=self.storage_path)
        return address_codec.encode(key, LocatorScheme.QUIP)

    async def _write_metadata(self, key: LogicalKey, metadata: ResourceMetadata) -> None:
        payload = json.dumps(metadata.to_dict())
        await self._run(_write_text_atomic, self.get_metadata_path(key), payload)

    async def save_content(self, key: LogicalKey, content: str) -> str:
        """Write content then its sidecar, and refresh both caches."""
        file_path = self.get_file_path(key)
        metadata = build_metadata(content, self.get_resource_locator(key))

        try:
            await self._run(_write_text_atomic, file_path, content)
            await self._write_metadata(key, metadata)
        except OSError as e:
            logger.error("Failed to save CSV", key=key.describe(), error=str(e))
            raise StorageError(f"Failed to save CSV: {e}") from e

        self.content_cache.set(key.cache_key, content)
        self.metadata_cache.set(key.cache_key, metadata)

        log_storage_operation(logger, self.backend_name, "save", str(file_path),
                              bytes=metadata.total_size, rows=metadata.total_rows)
        return str(file_path)

    async def get_content(self, key: LogicalKey) -> Optional[str]:
        """Cache first, then disk. Missing file returns None."""
        cached = self.content_cache.get(key.cache_key)
        if cached is not None:
            return cached

        file_path = self.get_file_path(key)
        try:
            content = await self._run(_read_text, file_path)
        except (OSError, UnicodeDecodeError) as e:
            logger.error("Failed to get CSV", key=key.describe(), error=str(e))
            raise StorageError(f"Failed to get CSV: {e}") from e

        if content is None:
            logger.warning("CSV file not found", path=str(file_path))
            return None

        self.content_cache.set(key.cache_key, content)
        log_storage_operation(logger, self.backend_name, "read", str(file_path),
                              bytes=len(content.encode("utf-8")))
        return content

    async def get_metadata(self, key: LogicalKey) -> ResourceMetadata:
        """Cache, then sidecar, then repair from content, then empty metadata."""
        cached = self.metadata_cache.get(key.cache_key)
        if cached is not None:
            return cached

        metadata_path = self.get_metadata_path(key)
        try:
            raw = await self._run(_read_text, metadata_path)
            if raw is not None:
                metadata = ResourceMetadata.from_dict(json.loads(raw))
                self.metadata_cache.set(key.cache_key, metadata)
                return metadata

            logger.warning("Metadata file not found", path=str(metadata_path))
            content = await self._run(_read_text, self.get_file_path(key))
            if content is None:
                return empty_metadata(self.get_resource_locator(key))

            metadata = build_metadata(content, self.get_resource_locator(key))
            await self._write_metadata(key, metadata)
            logger.info("Regenerated missing metadata", key=key.describe(),
                        rows=metadata.total_rows, bytes=metadata.total_size)
        except (OSError, UnicodeDecodeError, ValueError) as e:
            logger.error("Failed to get metadata", key=key.describe(), error=str(e))
            raise StorageError(f"Failed to get metadata: {e}") from e

        self.metadata_cache.set(key.cache_key, metadata)
        return metadata

    async def mark_truncated(self, key: LogicalKey, is_truncated: bool) -> ResourceMetadata:
        metadata = replace(await self.get_metadata(key), is_truncated=is_truncated)
        if metadata.last_updated is None:
            # Nothing stored for this key; keep the flag off disk
            return metadata

        try:
            await self._write_metadata(key, metadata)
        except OSError as e:
            raise StorageError(f"Failed to update metadata: {e}") from e
        self.metadata_cache.set(key.cache_key, metadata)
        return metadata

    async def list_keys(self) -> List[LogicalKey]:
        """List keys of stored CSV files, skipping sidecars and temp files."""
        try:
            filenames = await self._run(os.listdir, self.storage_path)
        except FileNotFoundError:
            return []
        except OSError as e:
            raise StorageError(f"Failed to list storage directory: {e}") from e

        keys = []
        for filename in sorted(filenames):
            if not filename.endswith(address_codec.CSV_SUFFIX) or filename.startswith("."):
                continue
            try:
                keys.append(address_codec.split_filename(filename))
            except InvalidLocatorError:
                logger.warning("Skipping unparseable CSV file name", filename=filename)
        return keys

    async def check_available(self) -> bool:
        """Whether the storage directory exists and is a directory."""
        return await self._run(self.storage_path.is_dir)
