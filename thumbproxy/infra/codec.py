# thumbproxy/infra/codec.py
"""
Pillow-backed image codec.

Decode, resize and encode are CPU-bound and run in worker threads so the
event loop keeps serving other requests. A deadline that fires while a
thread is busy abandons its result; the thread itself finishes on its own.

Pillow's decoder settings are process-global, so they are applied exactly
once by ``get_codec()`` when the shared handle is first created.
"""
from __future__ import annotations

import asyncio
import io
import threading

from PIL import Image, ImageFile, ImageSequence, features

from thumbproxy.core.domain import AnimatedFrame, AnimatedSequence, PixelBuffer
from thumbproxy.core.errors import (
    DimensionsTooLargeError,
    InternalProcessingError,
    TooLargeError,
)
from thumbproxy.infra.logging_config import get_logger

logger = get_logger(__name__)

RESAMPLING_METHODS = {
    "lanczos3": Image.Resampling.LANCZOS,
    "catrom": Image.Resampling.BICUBIC,
    "triangle": Image.Resampling.BILINEAR,
    "box": Image.Resampling.BOX,
    "nearest": Image.Resampling.NEAREST,
}

PIXEL_MODE = "RGBA"
BYTES_PER_PIXEL = 4
DEFAULT_FRAME_DURATION_MS = 100
DEFAULT_MAX_DIMENSION = 2048
DEFAULT_MAX_DECODED_BYTES = 256 * 1024 * 1024


class PillowCodec:
    """ImageCodec implementation on top of Pillow's WebP plugin."""

    def __init__(
        self,
        max_pixels: int,
        max_frames: int = 500,
        max_dimension: int = DEFAULT_MAX_DIMENSION,
        max_decoded_bytes: int = DEFAULT_MAX_DECODED_BYTES,
    ):
        self.max_pixels = max_pixels
        self.max_frames = max_frames
        self.max_dimension = max_dimension
        self.max_decoded_bytes = max_decoded_bytes

    # ------------------------------------------------------------------
    # async API (ImageCodec protocol)
    # ------------------------------------------------------------------

    async def decode(self, data: bytes) -> PixelBuffer:
        return await asyncio.to_thread(self._decode_sync, data)

    async def decode_animated(self, data: bytes) -> AnimatedSequence:
        return await asyncio.to_thread(self._decode_animated_sync, data)

    async def resize(self, buffer: PixelBuffer, width: int, height: int, method: str) -> PixelBuffer:
        return await asyncio.to_thread(self._resize_sync, buffer, width, height, method)

    async def encode(self, buffer: PixelBuffer, quality: int, effort: int) -> bytes:
        return await asyncio.to_thread(self._encode_sync, buffer, quality, effort)

    async def encode_animated(self, sequence: AnimatedSequence, quality: int, effort: int) -> bytes:
        return await asyncio.to_thread(self._encode_animated_sync, sequence, quality, effort)

    # ------------------------------------------------------------------
    # blocking implementations
    # ------------------------------------------------------------------

    def _open(self, data: bytes) -> Image.Image:
        try:
            img = Image.open(io.BytesIO(data))
        except Image.DecompressionBombError as e:
            raise DimensionsTooLargeError(f"Decompression bomb detected: {e}")
        except (OSError, SyntaxError, ValueError) as e:
            logger.warning(f"Image parsing error (possible malformed file): {e}")
            raise InternalProcessingError(f"Failed to decode image: {e}")

        # Image.size is known before pixel data is decompressed
        width, height = img.size
        if width > self.max_dimension or height > self.max_dimension:
            img.close()
            raise DimensionsTooLargeError(
                f"Image dimensions too large: {width}x{height} exceeds "
                f"{self.max_dimension}x{self.max_dimension}"
            )
        if width * height > self.max_pixels:
            img.close()
            raise DimensionsTooLargeError(
                f"Image has {width * height:,} pixels, exceeds decoder limit of {self.max_pixels:,}"
            )
        return img

    @staticmethod
    def _to_buffer(img: Image.Image) -> PixelBuffer:
        if img.mode != PIXEL_MODE:
            img = img.convert(PIXEL_MODE)
        return PixelBuffer(width=img.width, height=img.height, pixels=img.tobytes(), mode=PIXEL_MODE)

    @staticmethod
    def _from_buffer(buffer: PixelBuffer) -> Image.Image:
        return Image.frombytes(buffer.mode, (buffer.width, buffer.height), buffer.pixels)

    def _decode_sync(self, data: bytes) -> PixelBuffer:
        img = self._open(data)
        try:
            img.load()
            return self._to_buffer(img)
        except Image.DecompressionBombError as e:
            raise DimensionsTooLargeError(f"Decompression bomb detected during load: {e}")
        except (OSError, SyntaxError, ValueError) as e:
            logger.warning(f"Image load error (possible malformed/truncated file): {e}")
            raise InternalProcessingError(f"Failed to decode image: {e}")
        finally:
            img.close()

    def _decode_animated_sync(self, data: bytes) -> AnimatedSequence:
        img = self._open(data)
        try:
            n_frames = getattr(img, "n_frames", 1)
            if n_frames > self.max_frames:
                raise TooLargeError(
                    f"Animation has {n_frames} frames, exceeds limit of {self.max_frames}"
                )
            # Every frame expands to the full canvas, so the total is known before decoding
            decoded_bytes = n_frames * img.width * img.height * BYTES_PER_PIXEL
            if decoded_bytes > self.max_decoded_bytes:
                raise TooLargeError(
                    f"Animation would decode to {decoded_bytes:,} bytes, "
                    f"exceeds limit of {self.max_decoded_bytes:,}"
                )

            loop = int(img.info.get("loop", 0))
            frames = []
            for frame in ImageSequence.Iterator(img):
                # Frame timing is only populated once the frame is loaded
                buffer = self._to_buffer(frame)
                duration = frame.info.get("duration", DEFAULT_FRAME_DURATION_MS)
                frames.append(AnimatedFrame(buffer=buffer, duration_ms=int(duration)))
            return AnimatedSequence(frames=frames, loop=loop)
        except (OSError, SyntaxError, ValueError) as e:
            logger.warning(f"Animated image load error: {e}")
            raise InternalProcessingError(f"Failed to decode animation: {e}")
        finally:
            img.close()

    def _resize_sync(self, buffer: PixelBuffer, width: int, height: int, method: str) -> PixelBuffer:
        resample = RESAMPLING_METHODS.get(method)
        if resample is None:
            raise InternalProcessingError(f"Unknown resize method: {method}")
        resized = self._from_buffer(buffer).resize((width, height), resample)
        return self._to_buffer(resized)

    def _encode_sync(self, buffer: PixelBuffer, quality: int, effort: int) -> bytes:
        output = io.BytesIO()
        self._from_buffer(buffer).save(output, format="WEBP", quality=quality, method=effort)
        return output.getvalue()

    def _encode_animated_sync(self, sequence: AnimatedSequence, quality: int, effort: int) -> bytes:
        if not sequence.frames:
            raise InternalProcessingError("Animation has no frames")

        images = [self._from_buffer(f.buffer) for f in sequence.frames]
        output = io.BytesIO()
        images[0].save(
            output,
            format="WEBP",
            save_all=True,
            append_images=images[1:],
            duration=[f.duration_ms for f in sequence.frames],
            loop=sequence.loop,
            quality=quality,
            method=effort,
        )
        return output.getvalue()


# ---------------------------------------------------------------------------
# Shared handle
# ---------------------------------------------------------------------------

_codec: PillowCodec | None = None
_codec_lock = threading.Lock()


def _configure_pillow(max_pixels: int) -> None:
    if not features.check("webp"):
        raise RuntimeError("Pillow was built without WebP support")

    # Do NOT allow truncated images: reject them instead of serving broken output
    ImageFile.LOAD_TRUNCATED_IMAGES = False

    # SECURITY: Decompression bomb protection
    # Pillow warns above MAX_IMAGE_PIXELS and raises above twice that
    Image.MAX_IMAGE_PIXELS = max_pixels


def get_codec(
    max_pixels: int = 16 * 1024 * 1024,
    max_dimension: int = DEFAULT_MAX_DIMENSION,
    max_decoded_bytes: int = DEFAULT_MAX_DECODED_BYTES,
) -> PillowCodec:
    """Return the process-wide codec, configuring Pillow on first use."""
    global _codec
    if _codec is None:
        with _codec_lock:
            if _codec is None:
                _configure_pillow(max_pixels)
                _codec = PillowCodec(
                    max_pixels=max_pixels,
                    max_dimension=max_dimension,
                    max_decoded_bytes=max_decoded_bytes,
                )
                logger.info(
                    f"Pillow codec initialised (max_pixels={max_pixels:,}, "
                    f"max_dimension={max_dimension}, max_decoded_bytes={max_decoded_bytes:,})"
                )
    return _codec
