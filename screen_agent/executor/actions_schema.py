"""
Schemas for executable actions and parsed model replies.

Supported actions and their fields:
- tap: {"x": <int>, "y": <int>} pixel coordinates.
- tap_mark: {"mark_id": <int>} id of a Set-of-Marks badge from the current capture.
- swipe: {"x1", "y1", "x2", "y2": <int>, "duration_ms": <int> (default 300)}.
- long_press: {"x": <int>, "y": <int>, "duration_ms": <int> (default 1000)}.
- input: {"text": "<text to type>"}.
- enter / back / home: {}.
- wait: {"ms": <int> (default 1000)}.
- launch: {"app_name": "<app label or package>"}.
- done: {"message": "<summary>"}; ends the task.
- ask_user: {"reason": "<why>", "suggestion": "<what the user should do>"}; pauses the task.
"""

from __future__ import annotations

from typing import Annotated, Any, Dict, List, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, TypeAdapter, model_validator

RAW_TEXT_LIMIT = 1000


class _ActionBase(BaseModel):
    model_config = ConfigDict(frozen=True)

    def describe(self) -> str:
        return self.kind  # type: ignore[attr-defined]

    def __str__(self) -> str:
        return self.describe()


class Tap(_ActionBase):
    kind: Literal["tap"] = "tap"
    x: int
    y: int

    def describe(self) -> str:
        return f"Tap ({self.x}, {self.y})"


class TapMark(_ActionBase):
    kind: Literal["tap_mark"] = "tap_mark"
    mark_id: int = Field(ge=0)

    def describe(self) -> str:
        return f"Tap mark [{self.mark_id}]"


class Swipe(_ActionBase):
    kind: Literal["swipe"] = "swipe"
    x1: int
    y1: int
    x2: int
    y2: int
    duration_ms: int = Field(default=300, gt=0)

    def describe(self) -> str:
        return f"Swipe ({self.x1},{self.y1}) -> ({self.x2},{self.y2})"


class LongPress(_ActionBase):
    kind: Literal["long_press"] = "long_press"
    x: int
    y: int
    duration_ms: int = Field(default=1000, gt=0)

    def describe(self) -> str:
        return f"LongPress ({self.x}, {self.y})"


class Input(_ActionBase):
    kind: Literal["input"] = "input"
    text: str

    def describe(self) -> str:
        return f"Type: {self.text}"


class Enter(_ActionBase):
    kind: Literal["enter"] = "enter"

    def describe(self) -> str:
        return "Enter"


class Back(_ActionBase):
    kind: Literal["back"] = "back"

    def describe(self) -> str:
        return "Back"


class Home(_ActionBase):
    kind: Literal["home"] = "home"

    def describe(self) -> str:
        return "Home"


class Wait(_ActionBase):
    kind: Literal["wait"] = "wait"
    ms: int = Field(default=1000, ge=0)

    def describe(self) -> str:
        return f"Wait {self.ms}ms"


class Launch(_ActionBase):
    kind: Literal["launch"] = "launch"
    app_name: str

    def describe(self) -> str:
        return f"Launch: {self.app_name}"


class Done(_ActionBase):
    kind: Literal["done"] = "done"
    message: str = "Task completed"

    def describe(self) -> str:
        return f"Done: {self.message}"


class AskUser(_ActionBase):
    kind: Literal["ask_user"] = "ask_user"
    reason: str
    suggestion: str = ""

    def describe(self) -> str:
        return f"AskUser: {self.reason}"


Action = Annotated[
    Union[Tap, TapMark, Swipe, LongPress, Input, Enter, Back, Home, Wait, Launch, Done, AskUser],
    Field(discriminator="kind"),
]

_ACTION_ADAPTER: TypeAdapter = TypeAdapter(Action)

TERMINAL_ACTIONS = (Done, AskUser)


def is_terminal(action: Any) -> bool:
    """Done/AskUser end the reply; they are never executed alongside other actions."""
    return isinstance(action, TERMINAL_ACTIONS)


def validate_action(data: Dict[str, Any]) -> Any:
    """
    Parse a raw {"kind": ..., ...} mapping into an Action.

    Raises:
        ValueError: If validation fails with a readable message.
    """
    try:
        return _ACTION_ADAPTER.validate_python(data)
    except Exception as exc:  # noqa: BLE001
        raise ValueError(f"Invalid action: {exc}") from exc


class AIResponse(BaseModel):
    """One parsed model reply. Built once per analysis call and never mutated."""

    model_config = ConfigDict(frozen=True)

    primary_action: Action
    actions: List[Action] = Field(default_factory=list)
    status_text: str = ""
    thinking_text: Optional[str] = None
    raw_text: str = ""

    @model_validator(mode="before")
    @classmethod
    def _truncate_raw(cls, data: Any) -> Any:
        if isinstance(data, dict) and isinstance(data.get("raw_text"), str):
            data = {**data, "raw_text": data["raw_text"][:RAW_TEXT_LIMIT]}
        return data

    @classmethod
    def from_actions(
        cls,
        actions: List[Any],
        status_text: str = "",
        thinking_text: Optional[str] = None,
        raw_text: str = "",
    ) -> "AIResponse":
        if not actions:
            raise ValueError("AIResponse requires at least one action")
        return cls(
            primary_action=actions[0],
            actions=list(actions),
            status_text=status_text,
            thinking_text=thinking_text,
            raw_text=raw_text,
        )

    def get_all_actions(self) -> List[Any]:
        """Return actions if present, else the single primary action (legacy replies)."""
        return list(self.actions) if self.actions else [self.primary_action]

    def terminal_action(self) -> Optional[Any]:
        for action in self.get_all_actions():
            if is_terminal(action):
                return action
        return None


__all__ = [
    "AIResponse",
    "Action",
    "AskUser",
    "Back",
    "Done",
    "Enter",
    "Home",
    "Input",
    "Launch",
    "LongPress",
    "Swipe",
    "Tap",
    "TapMark",
    "Wait",
    "is_terminal",
    "validate_action",
]
