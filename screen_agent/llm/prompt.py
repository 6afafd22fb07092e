"""
Prompt templates for screen analysis.

SYSTEM_PROMPT asks for a <think> block followed by an <act> block of do(...) lines,
preferring Set-of-Marks ids over coordinates whenever marks are visible.
"""

from datetime import date
from typing import Optional, Sequence

HISTORY_WINDOW = 3
MAX_ELEMENT_HINTS = 30
LAUNCH_FAILED_TAG = "[Launch failed]"
ACTION_FAILED_TAG = "[Action failed]"
PREVIOUS_ATTEMPT_FAILED_TAG = "[Previous attempt failed]"
WAITING_FOR_USER_TAG = "[Waiting for user]"

SYSTEM_PROMPT = """
# Android screen assistant
Today is {today}.

## Core rules
1. Prefer marks. Check the screenshot for pink numbered badges first.
   - If badges are present you MUST tap with mark=<id>, e.g. do(action="Tap", mark=5). Do not use coordinates then.
   - If there are no badges, use normalized coordinates in [0-1000], e.g. do(action="Tap", element=[500,500]).
2. Swipe always uses [x,y] coordinates.
3. Think before acting: a short analysis in <think>, then one or more action lines in <act>.
4. To open an app use Launch first; only fall back to tapping its icon after Launch failed.
5. Every reply must contain both <think> and <act>, and <act> must hold at least one action.
6. Keep the reply under 512 tokens.

## Actions
| Intent | Format | Notes |
| :--- | :--- | :--- |
| Tap (mark) | do(action="Tap", mark=N) | Preferred when badges are visible. |
| Tap (coords) | do(action="Tap", element=[x,y]) | Only without badges, range 0-1000. |
| Swipe | do(action="Swipe", start=[x1,y1], end=[x2,y2]) | Coordinates only. |
| Type | do(action="Type", text="...") | |
| Keys | do(action="Enter") / do(action="Back") / do(action="Home") | |
| Wait | do(action="Wait", duration=1000) | Milliseconds. |
| Launch | do(action="Launch", app="App name") | |
| Ask user | ask_user(reason="...", suggestion="...") | |
| Finish | finish(message="...") | |

## Rules
- Launch failed before: tap the app icon instead.
- Unrelated page: Back.
- Target not visible: Swipe to look for it.
- Passwords, verification codes or payments: ask_user.
- A status: line may summarise progress.

## Examples
Screen with badges:
<think>There are pink badges; the option I need is badge 5.</think>
<act>do(action="Tap", mark=5)</act>

Screen without badges:
<think>No badges; the button is in the middle of the screen.</think>
<act>do(action="Tap", element=[500,500])</act>

Several steps:
<think>Tap the search box (badge 3), type the query, then search.</think>
<act>
do(action="Tap", mark=3)
do(action="Type", text="weather")
do(action="Enter")
</act>

---
Decide the next step from the current screenshot.
""".strip()


def build_system_prompt(today: Optional[date] = None) -> str:
    day = today or date.today()
    return SYSTEM_PROMPT.format(today=day.strftime("%Y-%m-%d %A"))


def _element_hints(elements: Sequence) -> str:
    parts = []
    for element in elements[:MAX_ELEMENT_HINTS]:
        caption = (getattr(element, "caption", "") or "").strip().replace("\n", " ")
        if caption:
            parts.append(f"[{element.mark_id}] {caption[:30]}")
    return ", ".join(parts)


def build_user_message(task: str, history: Sequence[str], elements: Optional[Sequence] = None) -> str:
    """
    Task line, the last few executed actions and loop hints.

    Hints: repeated Home presses are forbidden once 2 of the last 3 steps were Home,
    and any earlier Launch failure asks for a tap on the icon instead.
    """
    lines = [f"Task: {task}"]
    if history:
        recent = list(history)[-HISTORY_WINDOW:]
        lines.append("Executed: " + " → ".join(recent))
        if sum(1 for entry in recent if "Home" in entry) >= 2:
            lines.append("[Do not press Home again!]")
        if any("Launch failed" in entry for entry in history):
            lines.append("[Launch failed before, tap the app icon instead]")
    if elements:
        hints = _element_hints(elements)
        if hints:
            lines.append(f"Marked elements: {hints}")
    lines.append("Analyse the screenshot and perform the next step. If pink numbered badges are visible, use mark=<id>.")
    return "\n".join(lines)


__all__ = [
    "ACTION_FAILED_TAG",
    "LAUNCH_FAILED_TAG",
    "PREVIOUS_ATTEMPT_FAILED_TAG",
    "SYSTEM_PROMPT",
    "WAITING_FOR_USER_TAG",
    "build_system_prompt",
    "build_user_message",
]
