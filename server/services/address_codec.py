"""Resource locator encoding and decoding.

Single place that knows every locator shape. A logical key
``(document_id, sheet_name)`` maps to the physical name
``{document_id}[-{sheet_name}]`` and to one of five URI schemes:

    quip://{document_id}?sheet={sheet_name}
    file://{storage_path}/{document_id}-{sheet_name}.csv
    s3://{bucket}/{prefix}{document_id}-{sheet_name}.csv
    s3+https://{bucket}/{prefix}{document_id}-{sheet_name}.csv   (presigned marker)
    https://{host}/{prefix}{document_id}-{sheet_name}.csv?{signature}

Filename-style locators split on the first ``-``, so a document id containing
``-`` cannot round-trip and a sheet name containing ``-`` may not. These
locators are persisted in metadata sidecars and shared across processes;
their shapes must not change.
"""

import os
from enum import Enum
from urllib.parse import parse_qs, quote, unquote, urlsplit

from core.exceptions import InvalidLocatorError, UnsupportedSchemeError
from models.resource import LogicalKey

CSV_SUFFIX = ".csv"
METADATA_SUFFIX = ".meta"


class LocatorScheme(str, Enum):
    """Supported locator schemes."""
    QUIP = "quip"
    FILE = "file"
    S3 = "s3"
    S3_PRESIGNED = "s3+https"
    HTTPS = "https"


# Schemes whose final path segment is a physical file name
FILENAME_SCHEMES = frozenset([
    LocatorScheme.FILE,
    LocatorScheme.S3,
    LocatorScheme.S3_PRESIGNED,
    LocatorScheme.HTTPS,
])


def _escape_path(path: str) -> str:
    """Escape only the characters that would break URI parsing."""
    return path.replace("%", "%25").replace("?", "%3F").replace("#", "%23")


def safe_sheet_name(sheet_name: str) -> str:
    """Replace path separators so a sheet name is usable in a file name."""
    return sheet_name.replace("/", "_").replace("\\", "_")


def check_document_id(document_id: str) -> str:
    """Reject document ids that would leave the storage directory or prefix.

    Raises:
        InvalidLocatorError: id is empty, a dot segment, or holds a path separator
    """
    if not document_id or document_id in (".", "..") or any(c in document_id for c in "/\\\0"):
        raise InvalidLocatorError(f"Invalid document id: {document_id!r}")
    return document_id


def physical_name(key: LogicalKey) -> str:
    """Backend-neutral physical name, without extension."""
    check_document_id(key.document_id)
    if key.sheet_name:
        return f"{key.document_id}-{safe_sheet_name(key.sheet_name)}"
    return key.document_id


def content_filename(key: LogicalKey) -> str:
    return physical_name(key) + CSV_SUFFIX


def metadata_filename(key: LogicalKey) -> str:
    return content_filename(key) + METADATA_SUFFIX


def split_filename(filename: str) -> LogicalKey:
    """Parse ``{document_id}[-{sheet_name}].csv`` back into a key.

    Everything after the first ``-`` is the sheet name.
    """
    name = filename[:-len(CSV_SUFFIX)] if filename.endswith(CSV_SUFFIX) else filename
    document_id, _, sheet_name = name.partition("-")
    check_document_id(document_id)
    return LogicalKey(document_id, sheet_name or None)


def encode(key: LogicalKey, scheme: LocatorScheme, **params) -> str:
    """Build the locator for a key.

    Args:
        key: Logical key to encode
        scheme: Target scheme
        **params: ``storage_path`` for file; ``bucket`` and ``prefix`` for s3
            and s3+https; ``host`` and ``prefix`` for https

    Returns:
        Locator string
    """
    scheme = LocatorScheme(scheme)

    if scheme is LocatorScheme.QUIP:
        uri = f"quip://{quote(key.document_id, safe='')}"
        if key.sheet_name:
            uri += f"?sheet={quote(key.sheet_name, safe='')}"
        return uri

    filename = content_filename(key)

    if scheme is LocatorScheme.FILE:
        path = os.path.join(str(params["storage_path"]), filename)
        return f"file://{_escape_path(path)}"

    prefix = params.get("prefix") or ""
    if scheme in (LocatorScheme.S3, LocatorScheme.S3_PRESIGNED):
        return f"{scheme.value}://{params['bucket']}/{_escape_path(prefix + filename)}"

    return f"https://{params['host']}/{_escape_path(prefix + filename)}"


def decode(locator: str) -> LogicalKey:
    """Parse a locator back into its logical key.

    Raises:
        UnsupportedSchemeError: scheme is not one of ``LocatorScheme``
        InvalidLocatorError: no document id could be extracted
    """
    parts = urlsplit(locator)
    try:
        scheme = LocatorScheme(parts.scheme.lower())
    except ValueError:
        raise UnsupportedSchemeError(parts.scheme or locator) from None

    if scheme is LocatorScheme.QUIP:
        document_id = check_document_id(unquote(parts.netloc))
        sheet_values = parse_qs(parts.query).get("sheet")
        return LogicalKey(document_id, sheet_values[0] if sheet_values else None)

    filename = unquote(parts.path.rsplit("/", 1)[-1])
    if not filename:
        raise InvalidLocatorError(f"No file name in locator: {locator}")
    return split_filename(filename)


def scheme_of(locator: str) -> str:
    return urlsplit(locator).scheme.lower()


def is_presigned_marker(locator: str) -> bool:
    """Whether the locator must be resolved to a signed URL before use."""
    return scheme_of(locator) == LocatorScheme.S3_PRESIGNED.value
