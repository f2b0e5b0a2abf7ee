# thumbproxy/core/errors.py
"""
Typed failures for the thumbnail pipeline.

Each error carries the ``OutcomeStatus`` it terminates the request with.
The orchestrator catches ``ThumbnailError`` subtypes and converts them to
an ``Outcome``; the transport layer only ever sees outcomes.
"""
from __future__ import annotations

from thumbproxy.core.domain import OutcomeStatus


class ThumbnailError(Exception):
    """Base class for all pipeline failures."""

    status: OutcomeStatus = OutcomeStatus.INTERNAL_ERROR

    def __init__(self, detail: str = "Internal error"):
        self.detail = detail
        super().__init__(detail)


class BadRequestError(ThumbnailError):
    """Empty or oversized identifier (400)."""

    status = OutcomeStatus.BAD_REQUEST


class UpstreamError(ThumbnailError):
    """Origin answered with a non-success status or could not be reached (502)."""

    status = OutcomeStatus.UPSTREAM_ERROR

    def __init__(self, detail: str = "upstream error", upstream_status: int | None = None):
        self.upstream_status = upstream_status
        super().__init__(detail)


class TooLargeError(ThumbnailError):
    """Declared or actual byte count over the cap (413)."""

    status = OutcomeStatus.TOO_LARGE


class DimensionsTooLargeError(ThumbnailError):
    """Decoded width or height over the cap (413)."""

    status = OutcomeStatus.DIMENSIONS_TOO_LARGE


class InternalProcessingError(ThumbnailError):
    """Decode, resize, encode or delegate failure (500)."""

    status = OutcomeStatus.INTERNAL_ERROR
