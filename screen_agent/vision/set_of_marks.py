"""
Set-of-Marks annotation: number every interactive element so the model can refer to it by id.

Provides:
- UIElement: one marked element of the current capture.
- collect_elements: assign sequential mark ids to clickable nodes with sane bounds.
- draw_marks / mark_elements: render outlines and numbered badges with Pillow.
- find_element: resolve a mark id against the current capture only.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Iterable, List, Optional, Sequence, Tuple

from PIL import Image, ImageDraw, ImageFont

from screen_agent.vision.ui_dump import Bounds, RawNode

MAX_ELEMENT_SIZE = 3000
MARK_COLOR = (233, 30, 99)  # #E91E63
MARK_TEXT_COLOR = (255, 255, 255)
MARK_RADIUS = 18
BORDER_WIDTH = 3


@dataclass(frozen=True)
class UIElement:
    mark_id: int
    bounds: Bounds
    text: Optional[str] = None
    accessibility_label: Optional[str] = None
    element_kind: Optional[str] = None

    @property
    def center_x(self) -> int:
        return (self.bounds[0] + self.bounds[2]) // 2

    @property
    def center_y(self) -> int:
        return (self.bounds[1] + self.bounds[3]) // 2

    @property
    def caption(self) -> str:
        return self.text or self.accessibility_label or ""


def _valid_bounds(bounds: Optional[Bounds]) -> bool:
    if bounds is None:
        return False
    width = bounds[2] - bounds[0]
    height = bounds[3] - bounds[1]
    return 0 < width < MAX_ELEMENT_SIZE and 0 < height < MAX_ELEMENT_SIZE


def collect_elements(nodes: Iterable[RawNode]) -> List[UIElement]:
    """Ids run 1..N in traversal order; ordering is not by position."""
    elements: List[UIElement] = []
    for node in nodes:
        if not node.clickable or not _valid_bounds(node.bounds):
            continue
        elements.append(
            UIElement(
                mark_id=len(elements) + 1,
                bounds=node.bounds,  # type: ignore[arg-type]
                text=node.text,
                accessibility_label=node.label,
                element_kind=node.class_name,
            )
        )
    return elements


def _load_font(size: int) -> ImageFont.ImageFont:
    try:
        return ImageFont.load_default(size=size)
    except TypeError:  # pragma: no cover - Pillow < 10.1
        return ImageFont.load_default()


def draw_marks(image: Image.Image, elements: Sequence[UIElement]) -> Image.Image:
    """Return an annotated copy; the input image is left untouched."""
    result = image.convert("RGB")
    if result is image:
        result = image.copy()
    draw = ImageDraw.Draw(result)
    font = _load_font(MARK_RADIUS + 6)

    for element in elements:
        left, top, right, bottom = element.bounds
        draw.rectangle((left, top, right, bottom), outline=MARK_COLOR, width=BORDER_WIDTH)

        cx = left + MARK_RADIUS
        cy = top + MARK_RADIUS
        draw.ellipse(
            (cx - MARK_RADIUS, cy - MARK_RADIUS, cx + MARK_RADIUS, cy + MARK_RADIUS),
            fill=MARK_COLOR,
        )
        draw.text((cx, cy), str(element.mark_id), fill=MARK_TEXT_COLOR, font=font, anchor="mm")

    return result


def mark_elements(nodes: Iterable[RawNode], screenshot: Image.Image) -> Tuple[Image.Image, List[UIElement]]:
    """
    Collect interactive elements and annotate the screenshot.

    Zero elements is not an error: the unmodified screenshot comes back with [].
    """
    elements = collect_elements(nodes)
    if not elements:
        return screenshot, []
    return draw_marks(screenshot, elements), elements


def find_element(elements: Sequence[UIElement], mark_id: int) -> Optional[UIElement]:
    for element in elements:
        if element.mark_id == mark_id:
            return element
    return None


__all__ = ["UIElement", "collect_elements", "draw_marks", "find_element", "mark_elements"]
