"""Pagination utilities with proper guards."""

from typing import Optional, Tuple

# Pagination constants
MAX_LIMIT = 1000  # Maximum items per page
DEFAULT_LIMIT = 50  # Default items per page
MIN_OFFSET = 0


def validate_pagination(
    offset: Optional[int] = None,
    limit: Optional[int] = None,
    cursor: Optional[str] = None,
    default_limit: int = DEFAULT_LIMIT,
    max_limit: int = MAX_LIMIT,
) -> Tuple[int, int]:
    """
    Validate and normalize pagination parameters.

    Args:
        offset: Number of items to skip (negative values become 0)
        limit: Maximum items to return (capped at max_limit; 0 returns only the total)
        cursor: Opaque cursor from a previous page, used when offset is not given

    Returns:
        Tuple of (validated_offset, validated_limit)
    """
    if offset is None and cursor:
        offset = decode_cursor(cursor)
    validated_offset = max(MIN_OFFSET, offset or 0)
    if limit is None:
        limit = default_limit
    validated_limit = min(max(0, limit), max_limit)
    return validated_offset, validated_limit


def encode_cursor(next_offset: int) -> str:
    return str(next_offset)


def decode_cursor(cursor: str) -> int:
    try:
        return max(MIN_OFFSET, int(cursor))
    except ValueError:
        return MIN_OFFSET
