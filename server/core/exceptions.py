"""Resource server exception hierarchy.

Each error carries a JSON-RPC style ``code`` so protocol layers can forward
it unchanged; the HTTP layer maps the classes to status codes in ``main.py``.
"""

from typing import Any, Dict, Optional


class ResourceServerError(Exception):
    """Base exception for all resource server errors."""

    code: int = -32000

    def __init__(self, message: str, data: Optional[Any] = None):
        self.message = message
        self.data = data
        super().__init__(message)

    def to_dict(self) -> Dict[str, Any]:
        """Serialize to a JSON-RPC error object."""
        error: Dict[str, Any] = {"code": self.code, "message": self.message}
        if self.data is not None:
            error["data"] = self.data
        return error


class InvalidParamsError(ResourceServerError):
    """Request parameters are missing or malformed."""

    code = -32602


class AuthenticationError(ResourceServerError):
    """API key missing or wrong."""

    code = -32001

    def __init__(self, message: str = "Authentication failed"):
        super().__init__(message)


class ResourceNotFoundError(ResourceServerError):
    """A decoded locator has no stored content."""

    code = -32002

    def __init__(self, uri: str):
        self.uri = uri
        super().__init__(f"Resource not found: {uri}")


class StorageError(ResourceServerError):
    """Durable medium failure. May be transient; never retried here."""

    code = -32004


class UnsupportedSchemeError(InvalidParamsError):
    """Locator scheme is not one of the supported addressing schemes."""

    def __init__(self, scheme: str):
        self.scheme = scheme
        super().__init__(f"Unsupported URI scheme: {scheme}")


class InvalidLocatorError(InvalidParamsError):
    """Locator has a supported scheme but no decodable document id."""
