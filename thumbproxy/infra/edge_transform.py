# thumbproxy/infra/edge_transform.py
"""
Animated-image strategies.

Strategy pattern: both classes satisfy ``AnimatedTransformer``.

- ``EdgeTransformClient`` delegates resizing to an edge image-resizing
  endpoint (``/cdn-cgi/image/<options>/<source-url>`` style). The edge
  fetches the origin itself; our copy of the bytes is only used for
  classification. This is the default.
- ``LocalAnimatedTransformer`` decodes every frame, resizes and re-encodes
  in-process. Used only when ``animated_strategy=local`` is selected.
"""
from __future__ import annotations

from typing import Callable

import aiohttp

from thumbproxy.config import Settings
from thumbproxy.core.domain import (
    AnimatedFrame,
    AnimatedSequence,
    DelegatedResult,
    OriginDescriptor,
    RawPayload,
    TargetGeometry,
)
from thumbproxy.core.errors import UpstreamError
from thumbproxy.core.geometry import contain
from thumbproxy.core.guards import check_actual_size, check_dimensions
from thumbproxy.core.ports import AnimatedTransformer, ImageCodec
from thumbproxy.infra.http_client import get_transform_session
from thumbproxy.infra.logging_config import get_logger

logger = get_logger(__name__)

_DOWNLOAD_CHUNK_SIZE = 64 * 1024


def build_transform_url(
    base_url: str,
    source_url: str,
    geometry: TargetGeometry,
    quality: int,
    output_format: str = "webp",
) -> str:
    options = ",".join([
        f"width={geometry.width}",
        f"height={geometry.height}",
        "fit=contain",
        f"format={output_format}",
        f"quality={quality}",
    ])
    return f"{base_url.rstrip('/')}/{options}/{source_url}"


class EdgeTransformClient:
    """Delegates animated thumbnails to the edge image-resizing service."""

    def __init__(
        self,
        base_url: str,
        quality: int,
        max_bytes: int,
        session_factory: Callable[[], aiohttp.ClientSession] = get_transform_session,
    ):
        self.base_url = base_url
        self.quality = quality
        self.max_bytes = max_bytes
        self._session_factory = session_factory

    async def transform(
        self,
        descriptor: OriginDescriptor,
        payload: RawPayload,
        geometry: TargetGeometry,
    ) -> DelegatedResult:
        url = build_transform_url(self.base_url, descriptor.url, geometry, self.quality)
        session = self._session_factory()

        try:
            async with session.get(url) as response:
                # Non-2xx statuses are passed through to the client as-is
                chunks = []
                total_size = 0
                async for chunk in response.content.iter_chunked(_DOWNLOAD_CHUNK_SIZE):
                    total_size += len(chunk)
                    # Overrides status passthrough: an oversized delegate body is a 413, never relayed
                    check_actual_size(total_size, self.max_bytes)
                    chunks.append(chunk)
                status = response.status
        except aiohttp.ClientError as e:
            logger.warning(f"Edge transform request failed for {descriptor.identifier}: {e}")
            raise UpstreamError(f"transform error: {e.__class__.__name__}") from e

        if not 200 <= status < 300:
            logger.warning(f"Edge transform returned HTTP {status} for {descriptor.identifier}")

        return DelegatedResult(status_code=status, data=b"".join(chunks))


class LocalAnimatedTransformer:
    """Resizes animated images frame by frame with the local codec."""

    def __init__(
        self,
        codec: ImageCodec,
        max_dimension: int,
        resize_method: str,
        quality: int,
        effort: int,
    ):
        self.codec = codec
        self.max_dimension = max_dimension
        self.resize_method = resize_method
        self.quality = quality
        self.effort = effort

    async def transform(
        self,
        descriptor: OriginDescriptor,
        payload: RawPayload,
        geometry: TargetGeometry,
    ) -> DelegatedResult:
        sequence = await self.codec.decode_animated(payload.data)
        check_dimensions(sequence.width, sequence.height, self.max_dimension)

        target = contain(sequence.width, sequence.height, geometry.width, geometry.height)
        resized = AnimatedSequence(loop=sequence.loop)
        for frame in sequence.frames:
            buffer = await self.codec.resize(frame.buffer, target.width, target.height, self.resize_method)
            resized.frames.append(AnimatedFrame(buffer=buffer, duration_ms=frame.duration_ms))

        data = await self.codec.encode_animated(resized, self.quality, self.effort)
        logger.debug(
            f"Animated thumbnail built locally: {len(resized.frames)} frames, "
            f"{sequence.width}x{sequence.height} -> {target.width}x{target.height}"
        )
        return DelegatedResult(status_code=200, data=data)


def build_animated_transformer(settings: Settings, codec: ImageCodec) -> AnimatedTransformer:
    if settings.delegate_enabled:
        logger.info(f"Animated images delegated to {settings.edge_transform_url}")
        return EdgeTransformClient(
            base_url=settings.edge_transform_url,
            quality=settings.delegate_quality,
            max_bytes=settings.max_image_bytes,
        )

    logger.info("Animated images resized locally (animated_strategy=local)")
    return LocalAnimatedTransformer(
        codec=codec,
        max_dimension=settings.max_dimension,
        resize_method=settings.resize_method,
        quality=settings.encode_quality,
        effort=settings.encode_effort,
    )
