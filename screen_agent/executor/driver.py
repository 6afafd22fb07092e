"""
Device driver seam.

Drivers are synchronous; the executor dispatches every call off the event loop.
Ordinary failures come back as DriverResult(ok=False, message=...) rather than
exceptions.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import List, Protocol

from PIL import Image

from screen_agent.vision.ui_dump import RawNode


@dataclass(frozen=True)
class DriverResult:
    ok: bool
    message: str = ""

    @classmethod
    def success(cls, message: str = "") -> "DriverResult":
        return cls(ok=True, message=message)

    @classmethod
    def failure(cls, message: str) -> "DriverResult":
        return cls(ok=False, message=message)


class Driver(Protocol):
    def capture_screen(self) -> Image.Image: ...

    def capture_ui_tree(self) -> List[RawNode]: ...

    def tap(self, x: int, y: int) -> DriverResult: ...

    def swipe(self, x1: int, y1: int, x2: int, y2: int, duration_ms: int) -> DriverResult: ...

    def long_press(self, x: int, y: int, duration_ms: int) -> DriverResult: ...

    def type_text(self, text: str) -> DriverResult: ...

    def press_back(self) -> DriverResult: ...

    def press_home(self) -> DriverResult: ...

    def press_enter(self) -> DriverResult: ...

    def launch_app(self, name: str) -> DriverResult: ...


__all__ = ["Driver", "DriverResult"]
