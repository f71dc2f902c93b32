"""API key authentication middleware for route protection."""

import secrets
from fastapi import Request
from fastapi.responses import JSONResponse
from starlette.middleware.base import BaseHTTPMiddleware

from core.config import Settings
from core.container import container
from core.exceptions import AuthenticationError
from core.logging import get_logger

logger = get_logger(__name__)

# Public routes that don't require authentication
PUBLIC_PATHS = frozenset([
    "/health",
    "/docs",
    "/openapi.json",
    "/redoc",
])


def ensure_api_key(settings: Settings) -> None:
    """Generate a random API key when auth is enabled without one."""
    if settings.auth_enabled and not settings.api_key:
        settings.api_key = secrets.token_hex(16)
        logger.info("Generated random API key", header=settings.api_key_header,
                    api_key=settings.api_key)


class AuthMiddleware(BaseHTTPMiddleware):
    """Middleware requiring the configured API key header on protected routes."""

    async def dispatch(self, request: Request, call_next):
        settings = container.settings()

        if not settings.auth_enabled or request.url.path in PUBLIC_PATHS:
            return await call_next(request)

        provided = request.headers.get(settings.api_key_header)
        if not provided:
            error = AuthenticationError(f"Missing {settings.api_key_header} header")
            return JSONResponse(status_code=401, content={"success": False, "error": error.to_dict()})

        if not settings.api_key or not secrets.compare_digest(provided, settings.api_key):
            logger.warning("Rejected request with invalid API key", path=request.url.path)
            error = AuthenticationError("Invalid API key")
            return JSONResponse(status_code=401, content={"success": False, "error": error.to_dict()})

        return await call_next(request)
