# tests/test_codec.py
"""Tests for the Pillow-backed codec (real Pillow, no mocks)."""
from __future__ import annotations

import io

import pytest
from PIL import Image

from thumbproxy.core.domain import AnimatedSequence
from thumbproxy.core.errors import DimensionsTooLargeError, InternalProcessingError, TooLargeError
from thumbproxy.core.sniffer import is_animated_webp
from thumbproxy.infra.codec import RESAMPLING_METHODS, PillowCodec
from image_factories import animated_webp_bytes, webp_bytes


@pytest.fixture
def codec():
    return PillowCodec(max_pixels=16 * 1024 * 1024)


class TestStaticCodec:
    @pytest.mark.asyncio
    async def test_decode_gives_rgba_buffer(self, codec):
        buffer = await codec.decode(webp_bytes(64, 32))
        assert (buffer.width, buffer.height) == (64, 32)
        assert buffer.mode == "RGBA"
        assert len(buffer.pixels) == 64 * 32 * 4

    @pytest.mark.asyncio
    async def test_rgb_source_is_converted(self, codec):
        buffer = await codec.decode(webp_bytes(20, 10, mode="RGB"))
        assert buffer.mode == "RGBA"
        assert len(buffer.pixels) == 20 * 10 * 4

    @pytest.mark.asyncio
    @pytest.mark.parametrize("method", sorted(RESAMPLING_METHODS))
    async def test_resize_and_encode(self, codec, method):
        source = await codec.decode(webp_bytes(64, 32))
        resized = await codec.resize(source, 50, 25, method)
        assert (resized.width, resized.height) == (50, 25)

        data = await codec.encode(resized, quality=80, effort=4)
        assert data[:4] == b"RIFF" and data[8:12] == b"WEBP"
        with Image.open(io.BytesIO(data)) as img:
            assert img.size == (50, 25)

    @pytest.mark.asyncio
    async def test_unknown_resize_method(self, codec):
        source = await codec.decode(webp_bytes(8, 8))
        with pytest.raises(InternalProcessingError):
            await codec.resize(source, 4, 4, "bogus")

    @pytest.mark.asyncio
    async def test_garbage_is_a_processing_error(self, codec):
        with pytest.raises(InternalProcessingError):
            await codec.decode(b"definitely not an image" * 4)

    @pytest.mark.asyncio
    async def test_pixel_limit_checked_before_decode(self):
        small = PillowCodec(max_pixels=100)
        with pytest.raises(DimensionsTooLargeError):
            await small.decode(webp_bytes(64, 32))

    @pytest.mark.asyncio
    async def test_dimension_limit_checked_before_decode(self, decoded_frames):
        narrow = PillowCodec(max_pixels=16 * 1024 * 1024, max_dimension=32)
        with pytest.raises(DimensionsTooLargeError):
            await narrow.decode(webp_bytes(64, 8))
        assert decoded_frames == []


class TestAnimatedCodec:
    @pytest.mark.asyncio
    async def test_decode_animated(self, codec):
        sequence = await codec.decode_animated(animated_webp_bytes(80, 40, frames=3))
        assert len(sequence.frames) == 3
        assert (sequence.width, sequence.height) == (80, 40)
        assert all(f.duration_ms > 0 for f in sequence.frames)

    @pytest.mark.asyncio
    async def test_encode_animated_keeps_animation(self, codec):
        sequence = await codec.decode_animated(animated_webp_bytes(80, 40, frames=3))
        data = await codec.encode_animated(sequence, quality=80, effort=4)

        assert is_animated_webp(data) is True
        with Image.open(io.BytesIO(data)) as img:
            assert img.n_frames == 3

    @pytest.mark.asyncio
    async def test_frame_limit(self):
        limited = PillowCodec(max_pixels=16 * 1024 * 1024, max_frames=2)
        with pytest.raises(TooLargeError):
            await limited.decode_animated(animated_webp_bytes(frames=3))

    @pytest.mark.asyncio
    async def test_empty_sequence_rejected(self, codec):
        with pytest.raises(InternalProcessingError):
            await codec.encode_animated(AnimatedSequence(), quality=80, effort=4)

    @pytest.mark.asyncio
    async def test_oversized_canvas_rejected_before_any_frame(self, decoded_frames):
        codec = PillowCodec(max_pixels=16 * 1024 * 1024, max_dimension=2048)

        with pytest.raises(DimensionsTooLargeError):
            await codec.decode_animated(animated_webp_bytes(2100, 8, frames=6))

        assert decoded_frames == []

    @pytest.mark.asyncio
    async def test_decoded_bytes_cap_rejected_before_any_frame(self, decoded_frames):
        # 3 frames of 80x40 RGBA need 38,400 bytes
        codec = PillowCodec(max_pixels=16 * 1024 * 1024, max_decoded_bytes=30_000)

        with pytest.raises(TooLargeError):
            await codec.decode_animated(animated_webp_bytes(80, 40, frames=3))

        assert decoded_frames == []

    @pytest.mark.asyncio
    async def test_decoded_bytes_at_cap_allowed(self, decoded_frames):
        codec = PillowCodec(max_pixels=16 * 1024 * 1024, max_decoded_bytes=80 * 40 * 4 * 3)
        sequence = await codec.decode_animated(animated_webp_bytes(80, 40, frames=3))
        assert len(sequence.frames) == 3
        assert len(decoded_frames) == 3
