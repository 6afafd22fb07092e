"""
Turn a free-text model reply into an AIResponse.

Pipeline:
1. thinking: <think>...</think>, else the text before the first action marker.
2. status: the first "status: ..." line.
3. action span: <act>...</act>, else <answer>...</answer>, else the whole reply.
4. every do(...)/finish(...)/ask_user(...) call in the span, ordered by position.
5. fallbacks for legacy replies: keywords, a bare [x,y] pair, then a JSON object.
No actions are executed here.
"""

from __future__ import annotations

import json
import logging
import re
from dataclasses import dataclass
from typing import Any, Callable, List, Optional, Tuple

from screen_agent.contracts.errors import ParseFailure
from screen_agent.executor.actions_schema import (
    AIResponse,
    AskUser,
    Back,
    Done,
    Enter,
    Home,
    Input,
    Launch,
    Swipe,
    Tap,
    TapMark,
    Wait,
)
from screen_agent.vision.coords import ScreenGeometry

logger = logging.getLogger(__name__)

_I = re.IGNORECASE
_DS = re.DOTALL | re.IGNORECASE

THINK_RE = re.compile(r"<think>\s*(.*?)\s*</think>", _DS)
STATUS_RE = re.compile(r"status:\s*(.+?)(?:\n|$)", _I)
ACT_RE = re.compile(r"<act>\s*(.*?)\s*</act>", _DS)
ANSWER_RE = re.compile(r"<answer>\s*(.*?)\s*</answer>", _DS)
ACTION_START_RE = re.compile(r"<act>|<answer>|do\s*\(", _I)
BRACKET_RE = re.compile(r"[\[\(]\s*(\d+)\s*,\s*(\d+)\s*[\]\)]")
CODE_FENCE_RE = re.compile(r"```(?:json)?\s*\n?([\s\S]*?)\n?```")

DEFAULT_WAIT_MS = 1000

Builder = Callable[[re.Match, ScreenGeometry], Any]


@dataclass(frozen=True)
class ActionMatcher:
    """One call form the model may emit; try_parse yields (offset, action) per match."""

    name: str
    pattern: re.Pattern
    build: Builder

    def try_parse(self, text: str, geometry: ScreenGeometry) -> List[Tuple[int, Any]]:
        found: List[Tuple[int, Any]] = []
        for match in self.pattern.finditer(text):
            try:
                action = self.build(match, geometry)
            except ValueError as exc:
                logger.debug("Skipping %s match %r: %s", self.name, match.group(0), exc)
                continue
            if action is not None:
                found.append((match.start(), action))
        return found


def _tap_mark(m: re.Match, _g: ScreenGeometry) -> TapMark:
    return TapMark(mark_id=int(m.group(1)))


def _tap_point(m: re.Match, g: ScreenGeometry) -> Tap:
    x, y = g.tap_point(int(m.group(1)), int(m.group(2)))
    return Tap(x=x, y=y)


def _swipe(m: re.Match, g: ScreenGeometry) -> Swipe:
    x1, y1, x2, y2 = g.swipe_points(*(int(v) for v in m.groups()[:4]))
    return Swipe(x1=x1, y1=y1, x2=x2, y2=y2)


def _simple(m: re.Match, _g: ScreenGeometry) -> Any:
    kind = m.group(1).lower()
    if kind == "back":
        return Back()
    if kind == "home":
        return Home()
    if kind == "enter":
        return Enter()
    return Wait(ms=int(m.group(2)) if m.group(2) else DEFAULT_WAIT_MS)


MATCHERS: Tuple[ActionMatcher, ...] = (
    ActionMatcher(
        "tap_mark",
        re.compile(r'do\s*\(\s*action\s*=\s*"Tap"\s*,\s*mark\s*=\s*(\d+)\s*\)', _I),
        _tap_mark,
    ),
    ActionMatcher(
        "tap_element",
        re.compile(
            r'do\s*\(\s*action\s*=\s*"Tap"\s*,\s*element\s*=\s*[\[\(]\s*(\d+)\s*,\s*(\d+)\s*[\]\)]'
            r'\s*(?:,\s*message\s*=\s*"[^"]*")?\s*\)',
            _I,
        ),
        _tap_point,
    ),
    # mark=[x,y] is a coordinate pair the model put in the wrong field
    ActionMatcher(
        "tap_mark_coords",
        re.compile(r'do\s*\(\s*action\s*=\s*"Tap"\s*,\s*mark\s*=\s*[\[\(](\d+)\s*,\s*(\d+)[\]\)]\s*\)', _I),
        _tap_point,
    ),
    ActionMatcher(
        "swipe",
        re.compile(
            r'do\s*\(\s*action\s*=\s*"Swipe"\s*,\s*start\s*=\s*[\[\(](\d+)\s*,\s*(\d+)[\]\)]'
            r'\s*,\s*end\s*=\s*[\[\(](\d+)\s*,\s*(\d+)[\]\)]',
            _I,
        ),
        _swipe,
    ),
    ActionMatcher(
        "type",
        re.compile(r'do\s*\(\s*action\s*=\s*"Type(?:_Name)?"\s*,\s*text\s*=\s*"([^"]*)"\s*\)', _I),
        lambda m, _g: Input(text=m.group(1)),
    ),
    ActionMatcher(
        "launch",
        re.compile(r'do\s*\(\s*action\s*=\s*"Launch"\s*,\s*app\s*=\s*"([^"]*)"\s*\)', _I),
        lambda m, _g: Launch(app_name=m.group(1)),
    ),
    ActionMatcher(
        "finish",
        re.compile(r'finish\s*\(\s*message\s*=\s*"([^"]*)"\s*\)', _I),
        lambda m, _g: Done(message=m.group(1)),
    ),
    ActionMatcher(
        "ask_user",
        re.compile(r'ask_user\s*\(\s*reason\s*=\s*"([^"]*)"(?:\s*,\s*suggestion\s*=\s*"([^"]*)")?\s*\)', _I),
        lambda m, _g: AskUser(reason=m.group(1), suggestion=m.group(2) or ""),
    ),
    ActionMatcher(
        "simple",
        re.compile(r'do\s*\(\s*action\s*=\s*"(Back|Home|Enter|Wait)"(?:\s*,\s*(?:duration|milliseconds)\s*=\s*"?(\d+)"?)?\s*\)', _I),
        _simple,
    ),
)


def _extract_thinking(text: str) -> Optional[str]:
    match = THINK_RE.search(text)
    if match:
        return match.group(1).strip()
    start = ACTION_START_RE.search(text)
    if start and start.start() > 0:
        return text[: start.start()].strip() or None
    return None


def _extract_status(text: str) -> str:
    match = STATUS_RE.search(text)
    return match.group(1).strip() if match else ""


def _action_span(text: str) -> str:
    for pattern in (ACT_RE, ANSWER_RE):
        match = pattern.search(text)
        if match:
            return match.group(1)
    return text


def parse_actions(span: str, geometry: ScreenGeometry) -> List[Any]:
    """All recognised calls in span, in source order."""
    found: List[Tuple[int, Any]] = []
    for matcher in MATCHERS:
        found.extend(matcher.try_parse(span, geometry))
    found.sort(key=lambda item: item[0])
    return [action for _, action in found]


def _extract_json_from_fence(text: str) -> Optional[str]:
    match = CODE_FENCE_RE.search(text)
    if not match:
        return None
    candidate = match.group(1).strip()
    return candidate if candidate.startswith("{") else None


def _extract_first_json_object(text: str) -> Optional[str]:
    """Extract the first JSON object substring by brace matching."""
    start = text.find("{")
    if start == -1:
        return None

    depth = 0
    in_string = False
    escape = False
    for idx in range(start, len(text)):
        ch = text[idx]
        if escape:
            escape = False
            continue
        if ch == "\\":
            escape = True
            continue
        if ch == '"':
            in_string = not in_string
        if in_string:
            continue
        if ch == "{":
            depth += 1
        elif ch == "}":
            depth -= 1
            if depth == 0:
                return text[start : idx + 1]
    return None


def _extract_json(text: str) -> Optional[str]:
    candidate = _extract_json_from_fence(text) or _extract_first_json_object(text)
    if candidate:
        return candidate
    start, end = text.find("{"), text.rfind("}")
    if start != -1 and end > start:
        return text[start : end + 1]
    return None


def _int_field(data: dict, key: str, default: int) -> int:
    value = data.get(key)
    if value is None:
        return default
    return int(value)


def _action_from_json(data: Any, geometry: ScreenGeometry) -> Any:
    if not isinstance(data, dict):
        raise ValueError("JSON action must be an object")
    kind = str(data.get("action") or "").strip().lower()
    if not kind:
        raise ValueError("missing action type")
    if kind in {"tap", "click"}:
        x, y = geometry.fallback_point(_int_field(data, "x", 0), _int_field(data, "y", 0))
        return Tap(x=x, y=y)
    if kind in {"input", "type"}:
        return Input(text=str(data.get("text") or ""))
    if kind == "back":
        return Back()
    if kind == "home":
        return Home()
    if kind == "wait":
        return Wait(ms=_int_field(data, "duration", DEFAULT_WAIT_MS))
    if kind in {"done", "finish"}:
        return Done()
    raise ValueError(f"unknown action: {kind}")


def _fallback_actions(span: str, full_text: str, geometry: ScreenGeometry) -> List[Any]:
    if "任务完成" in span or "finish" in span:
        return [Done()]
    if "返回" in span:
        return [Back()]
    if "主屏幕" in span or "home" in span:
        return [Home()]

    pairs = list(BRACKET_RE.finditer(span))
    if pairs:
        last = pairs[-1]
        x, y = geometry.fallback_point(int(last.group(1)), int(last.group(2)))
        return [Tap(x=x, y=y)]

    candidate = _extract_json(full_text)
    if candidate:
        try:
            return [_action_from_json(json.loads(candidate), geometry)]
        except (ValueError, TypeError) as exc:
            logger.warning("JSON fallback parse failed: %s", exc)
    return []


def parse_response(text: str, geometry: Optional[ScreenGeometry] = None) -> AIResponse:
    """
    Parse one model reply.

    Raises:
        ParseFailure: if nothing in the reply maps to an action.
    """
    if not isinstance(text, str):
        raise ParseFailure("model reply must be a string")
    geo = geometry or ScreenGeometry()

    thinking = _extract_thinking(text)
    status = _extract_status(text)
    span = _action_span(text)

    actions = parse_actions(span, geo)
    if not actions:
        logger.warning("No call-style actions found, trying fallback parsing")
        actions = _fallback_actions(span, text, geo)
    if not actions:
        raise ParseFailure("Could not parse model reply: no valid action found", excerpt=text[:200])

    return AIResponse.from_actions(actions, status_text=status, thinking_text=thinking, raw_text=text)


__all__ = ["ActionMatcher", "MATCHERS", "parse_actions", "parse_response"]
