"""
Grid overlay: the fallback visual strategy when the UI tree is too sparse or too busy for marks.

The screen is split into a 10x10 grid; columns are lettered A-J and rows numbered 1-10,
so a cell name like "E5" maps to the centre of that cell.
"""

from __future__ import annotations

import re
from enum import Enum
from typing import Optional, Tuple

from PIL import Image, ImageDraw, ImageFont

GRID_SIZE = 10
COLUMN_LABELS = "ABCDEFGHIJ"
LINE_COLOR = (255, 0, 0)
LABEL_COLOR = (255, 255, 255)
LABEL_BACKGROUND = (0, 0, 0)

MIN_SOM_ELEMENTS = 5
MAX_SOM_ELEMENTS = 20

_CELL_RE = re.compile(r"^\s*([A-Ja-j])\s*(10|[1-9])\s*$")


class VisualStrategy(str, Enum):
    SOM = "som"
    GRID = "grid"
    NONE = "none"
    AUTO = "auto"


def parse_strategy(value: Optional[str]) -> VisualStrategy:
    if not value:
        return VisualStrategy.SOM
    try:
        return VisualStrategy(value.strip().lower())
    except ValueError as exc:
        raise ValueError(f"unknown visual strategy {value!r}") from exc


def select_strategy(strategy: VisualStrategy, element_count: int) -> VisualStrategy:
    """AUTO picks marks for a moderate number of elements and the grid otherwise."""
    if strategy != VisualStrategy.AUTO:
        return strategy
    if MIN_SOM_ELEMENTS <= element_count <= MAX_SOM_ELEMENTS:
        return VisualStrategy.SOM
    return VisualStrategy.GRID


def grid_to_coordinates(cell: str, screen_w: int, screen_h: int) -> Tuple[int, int]:
    """Return the pixel centre of a cell such as "E5". Raises ValueError for unknown cells."""
    match = _CELL_RE.match(cell or "")
    if not match:
        raise ValueError(f"invalid grid cell {cell!r}")
    col = COLUMN_LABELS.index(match.group(1).upper())
    row = int(match.group(2)) - 1
    cell_w = screen_w / GRID_SIZE
    cell_h = screen_h / GRID_SIZE
    return int(col * cell_w + cell_w / 2), int(row * cell_h + cell_h / 2)


def draw_grid(image: Image.Image, grid_size: int = GRID_SIZE) -> Image.Image:
    """Return a copy with grid lines and a cell label in each cell's top-left corner."""
    result = image.convert("RGB")
    if result is image:
        result = image.copy()
    width, height = result.size
    cell_w = width / grid_size
    cell_h = height / grid_size
    draw = ImageDraw.Draw(result)
    try:
        font = ImageFont.load_default(size=max(12, int(min(cell_w, cell_h) / 5)))
    except TypeError:  # pragma: no cover - Pillow < 10.1
        font = ImageFont.load_default()

    for i in range(1, grid_size):
        x = int(i * cell_w)
        y = int(i * cell_h)
        draw.line((x, 0, x, height), fill=LINE_COLOR, width=2)
        draw.line((0, y, width, y), fill=LINE_COLOR, width=2)

    for col in range(min(grid_size, len(COLUMN_LABELS))):
        for row in range(grid_size):
            label = f"{COLUMN_LABELS[col]}{row + 1}"
            x = int(col * cell_w) + 4
            y = int(row * cell_h) + 4
            left, top, right, bottom = draw.textbbox((x, y), label, font=font)
            draw.rectangle((left - 2, top - 2, right + 2, bottom + 2), fill=LABEL_BACKGROUND)
            draw.text((x, y), label, fill=LABEL_COLOR, font=font)
    return result


__all__ = ["VisualStrategy", "draw_grid", "grid_to_coordinates", "parse_strategy", "select_strategy"]
