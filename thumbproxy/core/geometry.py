# thumbproxy/core/geometry.py
from __future__ import annotations

import math

from thumbproxy.core.domain import TargetGeometry


def _round_half_up(value: float) -> int:
    # round() is banker's rounding; 12.5 must become 13 here
    return int(math.floor(value + 0.5))


def contain(source_w: int, source_h: int, max_w: int, max_h: int) -> TargetGeometry:
    """
    Largest size that fits inside max_w x max_h with the source aspect ratio.

    The longer side (relative to the box) touches the box exactly; neither
    side ever drops below 1px. Upscales when the source is smaller than the box.
    """
    if source_w <= 0 or source_h <= 0 or max_w <= 0 or max_h <= 0:
        raise ValueError(
            f"contain() needs positive sizes, got {source_w}x{source_h} into {max_w}x{max_h}"
        )

    scale = min(max_w / source_w, max_h / source_h)
    return TargetGeometry(
        width=max(1, _round_half_up(source_w * scale)),
        height=max(1, _round_half_up(source_h * scale)),
    )
