import pytest

from screen_agent.contracts.errors import ParseFailure
from screen_agent.executor.actions_schema import (
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
from screen_agent.llm.action_parser import parse_response
from screen_agent.vision.coords import ScreenGeometry

GEO = ScreenGeometry(1080, 2400)


def test_parses_think_and_multiple_actions_in_source_order():
    text = (
        "<think>Tap the search box, type, then search.</think>\n"
        "<act>\n"
        'do(action="Tap", mark=3)\n'
        'do(action="Type", text="weather")\n'
        'do(action="Enter")\n'
        "</act>"
    )

    response = parse_response(text, GEO)

    assert response.thinking_text == "Tap the search box, type, then search."
    assert response.actions == [TapMark(mark_id=3), Input(text="weather"), Enter()]
    assert response.primary_action == TapMark(mark_id=3)


def test_order_follows_source_not_matcher_order():
    text = '<act>do(action="Back")\ndo(action="Launch", app="Settings")\ndo(action="Tap", mark=1)</act>'

    response = parse_response(text, GEO)

    assert response.actions == [Back(), Launch(app_name="Settings"), TapMark(mark_id=1)]


def test_tap_element_is_normalized():
    response = parse_response('<act>do(action="Tap", element=[500,500], message="ok")</act>', GEO)
    assert response.primary_action == Tap(x=540, y=1200)


def test_tap_mark_with_coordinates_is_treated_as_point():
    response = parse_response('do(action="Tap", mark=[100,100])', GEO)
    assert response.primary_action == Tap(x=108, y=240)


def test_swipe_mixed_values_are_all_pixels():
    response = parse_response('do(action="Swipe", start=[500,500], end=[1200,800])', GEO)
    assert response.primary_action == Swipe(x1=500, y1=500, x2=1200, y2=800)


def test_swipe_normalized():
    response = parse_response('do(action="Swipe", start=[500,800], end=[500,200])', GEO)
    assert response.primary_action == Swipe(x1=540, y1=1920, x2=540, y2=480)


def test_wait_and_type_name_variants():
    response = parse_response(
        'do(action="Wait", duration="2000")\ndo(action="Wait")\ndo(action="Type_Name", text="Bob")', GEO
    )
    assert response.actions == [Wait(ms=2000), Wait(ms=1000), Input(text="Bob")]


def test_finish_and_ask_user():
    done = parse_response('<act>finish(message="All set")</act>', GEO)
    assert done.primary_action == Done(message="All set")

    ask = parse_response('ask_user(reason="Password needed", suggestion="Type it yourself")', GEO)
    assert ask.primary_action == AskUser(reason="Password needed", suggestion="Type it yourself")
    assert ask.terminal_action() == ask.primary_action


def test_thinking_without_tags_uses_prefix():
    response = parse_response('I should go home first.\ndo(action="Home")', GEO)
    assert response.thinking_text == "I should go home first."
    assert response.primary_action == Home()


def test_thinking_prefix_before_spaced_do_call():
    response = parse_response('The dialog should be dismissed.\ndo (action="Back")', GEO)
    assert response.thinking_text == "The dialog should be dismissed."
    assert response.primary_action == Back()


def test_status_line_is_extracted():
    response = parse_response('status: searching\n<act>do(action="Back")</act>', GEO)
    assert response.status_text == "searching"


def test_answer_block_is_used_when_act_missing():
    response = parse_response('<answer>do(action="Home")</answer>', GEO)
    assert response.primary_action == Home()


def test_fallback_keywords():
    assert parse_response("任务完成", GEO).primary_action == Done()
    assert parse_response("请返回上一页", GEO).primary_action == Back()
    assert parse_response("go home now", GEO).primary_action == Home()


def test_fallback_last_bracket_pair():
    response = parse_response("Maybe (10, 10) or better [500, 500]", GEO)
    assert response.primary_action == Tap(x=540, y=1200)


def test_fallback_json_object():
    text = 'Here you go:\n```json\n{"action": "click", "x": 500, "y": 250}\n```'
    assert parse_response(text, GEO).primary_action == Tap(x=540, y=600)

    assert parse_response('{"action": "type", "text": "hi"}', GEO).primary_action == Input(text="hi")
    assert parse_response('{"action": "wait"}', GEO).primary_action == Wait(ms=1000)


def test_unparseable_reply_raises_parse_failure():
    with pytest.raises(ParseFailure) as excinfo:
        parse_response("I am not sure what to do.", GEO)
    assert "I am not sure" in excinfo.value.excerpt


def test_raw_text_is_truncated():
    text = 'do(action="Back")' + "x" * 2000
    assert len(parse_response(text, GEO).raw_text) == 1000
