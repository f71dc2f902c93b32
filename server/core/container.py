"""Dependency injection container for the application."""

from dependency_injector import containers, providers

from core.cache import TTLCache
from core.config import Settings
from services.resources import ResourceService
from services.storage import create_storage


class Container(containers.DeclarativeContainer):
    """Application dependency injection container."""

    # Settings
    settings = providers.Singleton(
        Settings,
    )

    # Caches are independent instances with their own lifetimes
    content_cache = providers.Singleton(
        TTLCache,
        default_ttl=settings.provided.content_cache_ttl,
        max_entries=settings.provided.cache_max_entries,
        name="content",
    )

    metadata_cache = providers.Singleton(
        TTLCache,
        default_ttl=settings.provided.metadata_cache_ttl,
        max_entries=settings.provided.cache_max_entries,
        name="metadata",
    )

    # Storage backend (local filesystem or S3), one per process
    storage = providers.Singleton(
        create_storage,
        storage_type=settings.provided.storage_type,
        settings=settings,
        content_cache=content_cache,
        metadata_cache=metadata_cache,
    )

    resource_service = providers.Singleton(
        ResourceService,
        storage=storage,
        preview_max_bytes=settings.provided.preview_max_bytes,
    )


# Global container instance
container = Container()
