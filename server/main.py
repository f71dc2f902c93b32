"""
FastAPI service exposing stored Quip spreadsheet exports as resources.

Full CSV content is persisted by the configured storage backend; callers get
a bounded preview inline and fetch the rest through a resource locator.
"""

from contextlib import asynccontextmanager

from fastapi import FastAPI, Request, status
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from core.container import container
from core.exceptions import (
    AuthenticationError,
    InvalidParamsError,
    ResourceNotFoundError,
    ResourceServerError,
    StorageError,
)
from core.health import get_health_status, set_startup_time
from core.logging import configure_logging, get_logger
from middleware.auth import AuthMiddleware, ensure_api_key
from routers import resources

# Initialize settings and logging
settings = container.settings()
configure_logging(settings)
logger = get_logger(__name__)

# Suppress noisy loggers
import logging
logging.getLogger("uvicorn.access").setLevel(logging.WARNING)
logging.getLogger("botocore").setLevel(logging.WARNING)
logging.getLogger("boto3").setLevel(logging.WARNING)

# Most specific first
ERROR_STATUS = (
    (ResourceNotFoundError, status.HTTP_404_NOT_FOUND),
    (AuthenticationError, status.HTTP_401_UNAUTHORIZED),
    (InvalidParamsError, status.HTTP_400_BAD_REQUEST),
    (StorageError, status.HTTP_502_BAD_GATEWAY),
)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan management."""
    app_settings = container.settings()
    logger.info("Starting Quip resource server",
                storage_type=app_settings.storage_type,
                auth_enabled=app_settings.auth_enabled)

    set_startup_time()
    ensure_api_key(app_settings)

    # Build the storage backend eagerly so misconfiguration fails at startup
    container.storage()

    logger.info("Services started successfully")
    yield

    container.content_cache().clear()
    container.metadata_cache().clear()
    logger.info("Services shutdown complete")


# Create FastAPI app
app = FastAPI(
    title="Quip Resource Server",
    version="1.0.0",
    description="Bounded CSV previews with addressable full-content resources",
    lifespan=lifespan,
)


@app.exception_handler(ResourceServerError)
async def resource_server_error_handler(request: Request, exc: ResourceServerError):
    status_code = status.HTTP_500_INTERNAL_SERVER_ERROR
    for error_type, mapped_status in ERROR_STATUS:
        if isinstance(exc, error_type):
            status_code = mapped_status
            break

    logger.warning("Request failed",
                   path=request.url.path,
                   error_type=type(exc).__name__,
                   error=exc.message)
    return JSONResponse(
        status_code=status_code,
        content={"success": False, "error": exc.to_dict()},
    )


app.add_middleware(AuthMiddleware)

# Add CORS middleware (outermost, so it also wraps auth failures)
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Include routers
app.include_router(resources.router)


@app.get("/health")
async def health_check():
    """Detailed health check."""
    return await get_health_status(
        storage=container.storage(),
        content_cache=container.content_cache(),
        metadata_cache=container.metadata_cache(),
        settings=container.settings(),
    )


if __name__ == "__main__":
    import uvicorn
    logger.info("Starting Quip resource server",
                host=settings.host, port=settings.port, debug=settings.debug)
    uvicorn.run(
        "main:app",
        host=settings.host,
        port=settings.port,
        reload=settings.debug,
        reload_dirs=["."] if settings.debug else None,
    )
