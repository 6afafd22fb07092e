import pytest
from pydantic import ValidationError

from screen_agent.executor.actions_schema import (
    AIResponse,
    AskUser,
    Back,
    Done,
    Swipe,
    Tap,
    TapMark,
    Wait,
    is_terminal,
    validate_action,
)


def test_validate_action_dispatches_on_kind():
    action = validate_action({"kind": "swipe", "x1": 1, "y1": 2, "x2": 3, "y2": 4})

    assert isinstance(action, Swipe)
    assert action.duration_ms == 300


def test_validate_action_rejects_unknown_kind():
    with pytest.raises(ValueError, match="Invalid action"):
        validate_action({"kind": "teleport"})


def test_construction_invariants():
    with pytest.raises(ValidationError):
        Swipe(x1=0, y1=0, x2=1, y2=1, duration_ms=0)
    with pytest.raises(ValidationError):
        Wait(ms=-1)
    assert Wait().ms == 1000
    assert Done().message == "Task completed"
    assert AskUser(reason="why").suggestion == ""


def test_actions_are_immutable():
    tap = Tap(x=1, y=2)
    with pytest.raises(ValidationError):
        tap.x = 5


def test_describe_used_in_history():
    assert Tap(x=3, y=4).describe() == "Tap (3, 4)"
    assert TapMark(mark_id=7).describe() == "Tap mark [7]"
    assert str(Swipe(x1=1, y1=2, x2=3, y2=4)) == "Swipe (1,2) -> (3,4)"
    assert Back().describe() == "Back"


def test_response_get_all_actions_and_terminal():
    response = AIResponse.from_actions([Tap(x=1, y=1), Done(message="ok")], status_text="s")

    assert response.primary_action == Tap(x=1, y=1)
    assert response.get_all_actions() == [Tap(x=1, y=1), Done(message="ok")]
    assert response.terminal_action() == Done(message="ok")
    assert is_terminal(Done()) and not is_terminal(Back())


def test_response_without_action_list_falls_back_to_primary():
    response = AIResponse(primary_action=Back())
    assert response.get_all_actions() == [Back()]
    assert response.terminal_action() is None


def test_response_requires_an_action():
    with pytest.raises(ValueError):
        AIResponse.from_actions([])
