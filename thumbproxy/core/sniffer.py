# thumbproxy/core/sniffer.py
"""
Animated-WebP detection from the RIFF container alone.

WebP layout (RIFF container):
- Bytes 0-3: "RIFF"
- Bytes 4-7: File size (little-endian, excludes first 8 bytes)
- Bytes 8-11: "WEBP"
- Bytes 12+: Chunks (4-byte type + 4-byte size + data + optional padding)

The VP8X (extended format) chunk carries feature flags in its first payload
byte; bit 1 (0x02) is the animation flag. Nothing else in the file needs to
be understood to answer "is this animated?", so no decoder is involved.

``classify`` is total: truncated, empty or hostile input degrades to
"not well-formed / not animated" and the scan is capped at MAX_CHUNKS.
"""
from __future__ import annotations

import struct

from thumbproxy.core.domain import ContainerClassification, NOT_WELL_FORMED
from thumbproxy.infra.logging_config import get_logger

logger = get_logger(__name__)

RIFF_TAG = b'RIFF'
WEBP_TAG = b'WEBP'
VP8X_CHUNK = b'VP8X'
ANIMATION_FLAG = 0x02

MIN_HEADER_SIZE = 16
FIRST_CHUNK_OFFSET = 12
CHUNK_HEADER_SIZE = 8
MAX_CHUNKS = 10


def has_webp_header(data: bytes) -> bool:
    return len(data) >= MIN_HEADER_SIZE and data[:4] == RIFF_TAG and data[8:12] == WEBP_TAG


def classify(data: bytes) -> ContainerClassification:
    """Classify a payload as animated or static without decoding it."""
    if not has_webp_header(data):
        return NOT_WELL_FORMED

    total = len(data)
    offset = FIRST_CHUNK_OFFSET
    chunk_count = 0

    while offset + CHUNK_HEADER_SIZE <= total and chunk_count < MAX_CHUNKS:
        chunk_type = data[offset:offset + 4]
        chunk_size = struct.unpack('<I', data[offset + 4:offset + 8])[0]
        payload_start = offset + CHUNK_HEADER_SIZE

        if chunk_size > total - payload_start:
            logger.debug(
                f"WebP chunk {chunk_type!r} at {offset} declares {chunk_size} bytes, "
                f"only {total - payload_start} left; stopping scan"
            )
            return ContainerClassification(is_animated=False, is_well_formed=True)

        if chunk_type == VP8X_CHUNK:
            if chunk_size == 0:
                return ContainerClassification(is_animated=False, is_well_formed=True)
            flags = data[payload_start]
            return ContainerClassification(
                is_animated=(flags & ANIMATION_FLAG) != 0,
                is_well_formed=True,
            )

        # Chunks are padded to an even byte boundary
        offset = payload_start + chunk_size + (chunk_size & 1)
        chunk_count += 1

    return ContainerClassification(is_animated=False, is_well_formed=True)


def is_animated_webp(data: bytes) -> bool:
    return classify(data).is_animated
