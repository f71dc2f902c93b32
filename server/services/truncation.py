"""CSV preview truncation.

Bounds CSV text to a byte budget at row granularity. Rows are split on
newlines outside quoted fields, so a cell with embedded newlines is kept or
dropped as a whole and the preview always has balanced quotes.
"""

from typing import List, Tuple

from core.logging import get_logger

logger = get_logger(__name__)

DEFAULT_MAX_SIZE = 10 * 1024


def split_csv_rows(content: str) -> List[str]:
    """Split CSV text into rows on unquoted newlines.

    A doubled quote is an escaped literal and does not change quoted state.
    An unterminated quote swallows the rest of the text into one row.
    """
    rows = []
    in_quotes = False
    start = 0
    i = 0
    length = len(content)

    while i < length:
        char = content[i]
        if char == '"':
            if i + 1 < length and content[i + 1] == '"':
                i += 2
                continue
            in_quotes = not in_quotes
        elif char == "\n" and not in_quotes:
            rows.append(content[start:i])
            start = i + 1
        i += 1

    rows.append(content[start:])
    return rows


def truncate_csv_content(content: str, max_size: int = DEFAULT_MAX_SIZE) -> Tuple[str, bool]:
    """Truncate CSV content to at most ``max_size`` UTF-8 bytes.

    The header row is always returned, even when it alone exceeds the budget.
    Data rows are appended in order until the next one would not fit.

    Args:
        content: Full CSV text
        max_size: Byte budget for the returned text

    Returns:
        Tuple of (bounded content, whether anything was cut)
    """
    if max_size < 0:
        raise ValueError("max_size must be non-negative")

    original_size = len(content.encode("utf-8"))
    if original_size <= max_size:
        return content, False

    rows = split_csv_rows(content)
    header = rows[0]
    included = [header]
    current_size = len(header.encode("utf-8"))

    for row in rows[1:]:
        row_size = len(row.encode("utf-8")) + 1  # +1 for the joining newline
        if current_size + row_size > max_size:
            break
        included.append(row)
        current_size += row_size

    truncated = "\n".join(included)
    logger.info("Truncated CSV content",
                original_bytes=original_size,
                truncated_bytes=current_size,
                rows_kept=len(included),
                rows_total=len(rows))
    return truncated, True
