# thumbproxy/core/ports.py
from __future__ import annotations
from typing import Protocol
from thumbproxy.core.domain import (
    AnimatedSequence,
    DelegatedResult,
    OriginDescriptor,
    PixelBuffer,
    RawPayload,
    TargetGeometry,
)


class OriginFetcher(Protocol):
    async def fetch(self, descriptor: OriginDescriptor) -> RawPayload:
        """
        Download the origin image.

        Raises:
            UpstreamError: non-success status or transport failure.
            TooLargeError: declared or actual size over the cap.
        """
        ...


class ImageCodec(Protocol):
    """Pixel-level operations. Implementations may block; callers await them."""

    async def decode(self, data: bytes) -> PixelBuffer: ...
    async def decode_animated(self, data: bytes) -> AnimatedSequence: ...
    async def resize(self, buffer: PixelBuffer, width: int, height: int, method: str) -> PixelBuffer: ...
    async def encode(self, buffer: PixelBuffer, quality: int, effort: int) -> bytes: ...
    async def encode_animated(self, sequence: AnimatedSequence, quality: int, effort: int) -> bytes: ...


class AnimatedTransformer(Protocol):
    async def transform(
        self,
        descriptor: OriginDescriptor,
        payload: RawPayload,
        geometry: TargetGeometry,
    ) -> DelegatedResult:
        """
        Produce a thumbnail for an animated source.

        ``geometry`` is the fixed target box, not a contain-fit result;
        the transformer applies contain-fit itself.
        """
        ...
