# thumbproxy/core/guards.py
"""
Boundary checks applied as soon as their input is known.

Identifier shape before any network call, declared size as soon as the
origin headers arrive, actual size while the body streams, and decoded
dimensions before any resize work.
"""
from __future__ import annotations

from typing import Optional

from thumbproxy.core.errors import (
    BadRequestError,
    DimensionsTooLargeError,
    TooLargeError,
)


def validate_identifier(identifier: Optional[str], max_length: int = 100) -> str:
    if not identifier or len(identifier) > max_length:
        raise BadRequestError("Invalid image ID")
    return identifier


def parse_content_length(header: Optional[str]) -> Optional[int]:
    """Content-Length as an int, or None when absent or garbage."""
    if header is None:
        return None
    try:
        value = int(header.strip())
    except ValueError:
        return None
    return value if value >= 0 else None


def check_declared_size(declared: Optional[int], max_bytes: int) -> None:
    # Absent length is fine here; the real size is checked while reading
    if declared is not None and declared > max_bytes:
        raise TooLargeError(
            f"Image too large: declared {declared} bytes exceeds limit of {max_bytes} bytes"
        )


def check_actual_size(size: int, max_bytes: int) -> None:
    if size > max_bytes:
        raise TooLargeError(
            f"Image too large: {size} bytes exceeds limit of {max_bytes} bytes"
        )


def check_dimensions(width: int, height: int, max_dimension: int) -> None:
    if width > max_dimension or height > max_dimension:
        raise DimensionsTooLargeError(
            f"Image dimensions too large: {width}x{height} exceeds {max_dimension}x{max_dimension}"
        )
