import json
import logging

from screen_agent.executor.actions_schema import AIResponse, Back, Done
from screen_agent.logging_utils import log_event, mask_secret, sanitize_payload, summarize_response, truncate


def test_mask_secret():
    assert mask_secret("sk-1234567890abcd") == "sk-1****abcd"
    assert mask_secret("short") == "****"
    assert mask_secret("") == ""


def test_sanitize_payload_redacts_images_and_credentials():
    payload = {
        "credential": "sk-1234567890abcd",
        "image_base64": "A" * 5000,
        "nested": {"url": "data:image/jpeg;base64,AAAA", "note": "kept"},
        "raw_text": "x" * 3000,
    }

    clean = sanitize_payload(payload)

    assert clean["credential"] == "sk-1****abcd"
    assert clean["image_base64"] == "<redacted:image>"
    assert clean["nested"]["url"] == "<redacted:image>"
    assert clean["nested"]["note"] == "kept"
    assert clean["raw_text"].endswith("<truncated 1000 chars>")


def test_truncate_keeps_short_strings():
    assert truncate("abc", 10) == "abc"


class ListHandler(logging.Handler):
    def __init__(self):
        super().__init__()
        self.messages = []

    def emit(self, record):
        self.messages.append(record.getMessage())


def test_log_event_writes_json():
    handler = ListHandler()
    logger = logging.getLogger("screen_agent.events")
    logger.addHandler(handler)
    previous_level = logger.level
    logger.setLevel(logging.INFO)
    try:
        log_event("task_start", "req-1", {"task": "open settings", "api_key": "sk-abcdefghijkl"})
    finally:
        logger.removeHandler(handler)
        logger.setLevel(previous_level)

    record = json.loads(handler.messages[-1])
    assert record["event"] == "task_start"
    assert record["request_id"] == "req-1"
    assert record["task"] == "open settings"
    assert record["api_key"] == "sk-a****ijkl"


def test_summarize_response():
    response = AIResponse.from_actions([Back(), Done(message="ok")], status_text="wrapping up")

    summary = summarize_response(response)

    assert summary["present"] is True
    assert summary["action_count"] == 2
    assert summary["actions_preview"] == ["Back", Done(message="ok").describe()]
    assert summary["terminal"] == "done"
    assert summary["status_text"] == "wrapping up"
    assert summarize_response(None) == {"present": False}
