"""Map normalized (0..1) layout geometry onto template pixels."""

from __future__ import annotations

import math
from typing import NamedTuple


class NormalizedBox(NamedTuple):
    x: float
    y: float
    w: float
    h: float


class NormalizedCodeBox(NamedTuple):
    x: float
    y: float
    size: float


class PixelBox(NamedTuple):
    left: int
    top: int
    width: int
    height: int

    @property
    def center(self) -> tuple[float, float]:
        return (self.left + self.width / 2.0, self.top + self.height / 2.0)


def clamp_unit(value) -> float:
    """Coerce ``value`` to a float inside [0, 1]; junk becomes 0."""
    try:
        number = float(value)
    except (TypeError, ValueError):
        return 0.0
    if math.isnan(number):
        return 0.0
    return max(0.0, min(1.0, number))


def _scale(value: float, extent: int) -> int:
    # round half up; builtin round() is banker's rounding
    return int(math.floor(clamp_unit(value) * extent + 0.5))


def _check_extent(width: int, height: int) -> None:
    if width <= 0 or height <= 0:
        raise ValueError(f"Template dimensions must be positive, got {width}x{height}")


def resolve_point(x, y, width: int, height: int) -> tuple[int, int]:
    _check_extent(width, height)
    return _scale(x, width), _scale(y, height)


def resolve_box(box: NormalizedBox, width: int, height: int) -> PixelBox:
    """Resolve ``box`` against a ``width`` x ``height`` template.

    The result never extends past the template edge: the box extent is
    trimmed so ``left + width <= template width`` (same vertically).
    """
    left, top = resolve_point(box.x, box.y, width, height)
    box_w = min(_scale(box.w, width), width - left)
    box_h = min(_scale(box.h, height), height - top)
    return PixelBox(left, top, box_w, box_h)


def resolve_code_box(
    box: NormalizedCodeBox, width: int, height: int, *, min_px: int = 0
) -> PixelBox:
    """Resolve the square code box; its side is a fraction of template width.

    The square is shifted back from the right and bottom edges so it is
    never clipped.
    """
    left, top = resolve_point(box.x, box.y, width, height)
    side = max(min_px, _scale(box.size, width))
    side = max(1, min(side, width, height))
    left, top = place_square(left, top, side, width, height)
    return PixelBox(left, top, side, side)


def place_square(left: int, top: int, side: int, width: int, height: int) -> tuple[int, int]:
    """Move a ``side`` px square at ``(left, top)`` inside the template."""
    return (
        max(0, min(left, width - side)),
        max(0, min(top, height - side)),
    )
