"""
Helpers to turn a raw UI hierarchy dump into RawNode records.

Provides:
- RawNode: one node of the UI tree as reported by a driver.
- parse_bounds: parse an Android bounds string "[l,t][r,b]".
- parse_ui_dump: walk `uiautomator dump` XML in document order.
"""

from __future__ import annotations

import logging
import re
import xml.etree.ElementTree as ET
from dataclasses import dataclass
from typing import List, Optional, Tuple

logger = logging.getLogger(__name__)

Bounds = Tuple[int, int, int, int]

_BOUNDS_RE = re.compile(r"^\s*\[(-?\d+),(-?\d+)\]\[(-?\d+),(-?\d+)\]\s*$")


@dataclass(frozen=True)
class RawNode:
    clickable: bool
    bounds: Optional[Bounds] = None
    text: Optional[str] = None
    label: Optional[str] = None
    class_name: Optional[str] = None
    resource_id: Optional[str] = None


def parse_bounds(value: Optional[str]) -> Optional[Bounds]:
    if not value:
        return None
    match = _BOUNDS_RE.match(value)
    if not match:
        return None
    left, top, right, bottom = (int(g) for g in match.groups())
    return left, top, right, bottom


def _blank_to_none(value: Optional[str]) -> Optional[str]:
    if value is None or not value.strip():
        return None
    return value


def parse_ui_dump(xml_text: str) -> List[RawNode]:
    """
    Parse uiautomator XML into RawNodes, preserving traversal order.

    Returns an empty list for blank or malformed XML; the marker treats that as
    "no interactive elements" rather than an error.
    """
    if not xml_text or not xml_text.strip():
        return []
    start = xml_text.find("<")
    if start > 0:
        # adb may prefix the dump with status text.
        xml_text = xml_text[start:]
    try:
        root = ET.fromstring(xml_text)
    except ET.ParseError as exc:
        logger.warning("UI dump is not valid XML: %s", exc)
        return []

    nodes: List[RawNode] = []
    for element in root.iter("node"):
        attrs = element.attrib
        nodes.append(
            RawNode(
                clickable=attrs.get("clickable") == "true",
                bounds=parse_bounds(attrs.get("bounds")),
                text=_blank_to_none(attrs.get("text")),
                label=_blank_to_none(attrs.get("content-desc")),
                class_name=_blank_to_none(attrs.get("class")),
                resource_id=_blank_to_none(attrs.get("resource-id")),
            )
        )
    logger.debug("UI dump parsed: %s nodes, %s clickable", len(nodes), sum(1 for n in nodes if n.clickable))
    return nodes


__all__ = ["Bounds", "RawNode", "parse_bounds", "parse_ui_dump"]
