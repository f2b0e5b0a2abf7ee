# thumbproxy/core/domain.py
from __future__ import annotations

import time
from dataclasses import dataclass, field
from enum import Enum
from typing import Optional, Union


# ============================================================================
# OUTCOMES & STATES
# ============================================================================

class OutcomeStatus(str, Enum):
    """Closed set of terminal results for one thumbnail request."""
    OK = "ok"
    DELEGATED = "delegated"
    BAD_REQUEST = "bad_request"
    UPSTREAM_ERROR = "upstream_error"
    TOO_LARGE = "too_large"
    DIMENSIONS_TOO_LARGE = "dimensions_too_large"
    TIMEOUT = "timeout"
    INTERNAL_ERROR = "internal_error"

    @property
    def is_success(self) -> bool:
        return self in (OutcomeStatus.OK, OutcomeStatus.DELEGATED)


class PipelineState(str, Enum):
    VALIDATING = "validating"
    FETCHING = "fetching"
    CLASSIFYING = "classifying"
    DECODING = "decoding"
    DELEGATING = "delegating"
    RESIZING = "resizing"
    ENCODING = "encoding"
    RESPONDING = "responding"
    ABORTED = "aborted"

    @property
    def is_terminal(self) -> bool:
        return self in (PipelineState.RESPONDING, PipelineState.ABORTED)


# ============================================================================
# REQUEST / ORIGIN
# ============================================================================

@dataclass(frozen=True)
class RequestContext:
    """Per-request values fixed at entry."""
    identifier: str
    started_at: float
    deadline: float  # monotonic clock

    @classmethod
    def start(cls, identifier: str, timeout_seconds: float) -> "RequestContext":
        now = time.monotonic()
        return cls(identifier=identifier, started_at=now, deadline=now + timeout_seconds)

    def remaining(self) -> float:
        return max(0.0, self.deadline - time.monotonic())

    def elapsed_ms(self) -> float:
        return (time.monotonic() - self.started_at) * 1000


@dataclass(frozen=True)
class OriginDescriptor:
    identifier: str
    url: str  # the image URL, also the source URL for the edge transform
    declared_length: Optional[int] = None  # Content-Length, once the origin has answered


@dataclass
class RawPayload:
    """Bytes fetched from the origin. Owned by a single pipeline run."""
    data: bytes
    declared_length: Optional[int] = None

    @property
    def size(self) -> int:
        return len(self.data)


# ============================================================================
# CLASSIFICATION
# ============================================================================

@dataclass(frozen=True)
class Animated:
    pass


@dataclass(frozen=True)
class Static:
    pass


ImageKind = Union[Animated, Static]


@dataclass(frozen=True)
class ContainerClassification:
    is_animated: bool
    is_well_formed: bool

    @property
    def kind(self) -> ImageKind:
        return Animated() if self.is_animated else Static()


NOT_WELL_FORMED = ContainerClassification(is_animated=False, is_well_formed=False)


# ============================================================================
# PIXELS & GEOMETRY
# ============================================================================

@dataclass
class PixelBuffer:
    """Decoded pixels in a fixed channel layout (RGBA by default)."""
    width: int
    height: int
    pixels: bytes
    mode: str = "RGBA"


@dataclass
class AnimatedFrame:
    buffer: PixelBuffer
    duration_ms: int = 100


@dataclass
class AnimatedSequence:
    frames: list[AnimatedFrame] = field(default_factory=list)
    loop: int = 0  # 0 = forever

    @property
    def width(self) -> int:
        return self.frames[0].buffer.width if self.frames else 0

    @property
    def height(self) -> int:
        return self.frames[0].buffer.height if self.frames else 0


@dataclass(frozen=True)
class TargetGeometry:
    width: int
    height: int


# ============================================================================
# OUTPUT
# ============================================================================

@dataclass(frozen=True)
class EncodedOutput:
    data: bytes
    content_type: str = "image/webp"


@dataclass(frozen=True)
class DelegatedResult:
    """Whatever the animated transformer produced, passed through as-is."""
    status_code: int
    data: bytes


@dataclass(frozen=True)
class Outcome:
    """Terminal result of one pipeline run; the transport turns it into a response."""
    status: OutcomeStatus
    body: bytes = b""
    content_type: Optional[str] = None
    status_code: Optional[int] = None  # only set for passthrough (DELEGATED)
    message: str = ""

    @classmethod
    def success(cls, output: EncodedOutput) -> "Outcome":
        return cls(status=OutcomeStatus.OK, body=output.data, content_type=output.content_type)

    @classmethod
    def delegated(cls, result: DelegatedResult, content_type: str) -> "Outcome":
        return cls(
            status=OutcomeStatus.DELEGATED,
            body=result.data,
            content_type=content_type,
            status_code=result.status_code,
        )

    @classmethod
    def failure(cls, status: OutcomeStatus, message: str) -> "Outcome":
        return cls(status=status, message=message)
