"""
Coordinate normalization between the model's 0-1000 logical grid and device pixels.

Provides:
- to_pixel: map one normalized pair to clamped pixel coordinates.
- ScreenGeometry: current screen size plus the tie-break rules used by the parser.
"""

from __future__ import annotations

from typing import Tuple

NORMALIZED_MAX = 1000
DEFAULT_SCREEN_WIDTH = 1080
DEFAULT_SCREEN_HEIGHT = 2400


def _clamp(value: int, low: int, high: int) -> int:
    return max(low, min(value, high))


def to_pixel(nx: int, ny: int, screen_w: int, screen_h: int) -> Tuple[int, int]:
    """Return (px, py) with px = clamp(floor(nx * w / 1000), 0, w - 1), same for y."""
    if screen_w <= 0 or screen_h <= 0:
        raise ValueError(f"invalid screen size {screen_w}x{screen_h}")
    px = _clamp(nx * screen_w // NORMALIZED_MAX, 0, screen_w - 1)
    py = _clamp(ny * screen_h // NORMALIZED_MAX, 0, screen_h - 1)
    return px, py


class ScreenGeometry:
    """Screen size for the running session; refreshed from every captured frame."""

    def __init__(self, width: int = DEFAULT_SCREEN_WIDTH, height: int = DEFAULT_SCREEN_HEIGHT) -> None:
        self.width = width
        self.height = height

    def update(self, width: int, height: int) -> bool:
        """Set the current size (rotation changes it). Returns True if it changed."""
        if width <= 0 or height <= 0:
            raise ValueError(f"invalid screen size {width}x{height}")
        changed = (width, height) != (self.width, self.height)
        self.width = width
        self.height = height
        return changed

    def to_pixel(self, nx: int, ny: int) -> Tuple[int, int]:
        return to_pixel(nx, ny, self.width, self.height)

    def tap_point(self, x: int, y: int) -> Tuple[int, int]:
        """
        Resolve a tap pair.

        Both values <= 1000 and not both zero: normalized. Anything else is taken
        as pixels, including a pair where only one value exceeds 1000.
        """
        if x <= NORMALIZED_MAX and y <= NORMALIZED_MAX and (x != 0 or y != 0):
            return self.to_pixel(x, y)
        return x, y

    def swipe_points(self, x1: int, y1: int, x2: int, y2: int) -> Tuple[int, int, int, int]:
        """If any of the four exceeds 1000 all four are pixels; never mix the two spaces."""
        if max(x1, y1, x2, y2) > NORMALIZED_MAX:
            return x1, y1, x2, y2
        px1, py1 = self.to_pixel(x1, y1)
        px2, py2 = self.to_pixel(x2, y2)
        return px1, py1, px2, py2

    def fallback_point(self, x: int, y: int) -> Tuple[int, int]:
        """Legacy bracket/JSON replies: normalize whenever both values fit the grid."""
        if x <= NORMALIZED_MAX and y <= NORMALIZED_MAX:
            return self.to_pixel(x, y)
        return x, y

    def __repr__(self) -> str:
        return f"ScreenGeometry({self.width}x{self.height})"


__all__ = ["NORMALIZED_MAX", "ScreenGeometry", "to_pixel"]
