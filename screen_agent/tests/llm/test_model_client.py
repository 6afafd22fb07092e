import asyncio
import json
import random

import pytest
from PIL import Image

from screen_agent.contracts.errors import ConfigurationError, FatalProviderError, ParseFailure, TransientProviderError
from screen_agent.executor.actions_schema import Back, Home, TapMark
from screen_agent.llm.model_client import ModelClient
from screen_agent.llm.providers import EndpointConfig, ProviderKind
from screen_agent.llm.retry import RetryConfig
from screen_agent.llm.transport import TransportResponse


def _ok(text):
    return TransportResponse(200, json.dumps({"choices": [{"message": {"content": text}}]}))


class ScriptedTransport:
    """Replies per URL from a queue; the last reply of each queue repeats."""

    def __init__(self, script):
        self.script = {url: list(replies) for url, replies in script.items()}
        self.calls = []

    async def post(self, url, headers, json_body, timeout):
        self.calls.append(url)
        replies = self.script[url]
        reply = replies.pop(0) if len(replies) > 1 else replies[0]
        if isinstance(reply, Exception):
            raise reply
        return reply


class FakeClock:
    def __init__(self):
        self.now = 1000.0

    def __call__(self):
        return self.now


async def _no_sleep(_seconds):
    return None


def _endpoint(eid, priority=0, enabled=True):
    return EndpointConfig(
        id=eid,
        provider_kind=ProviderKind.OPENAI_COMPATIBLE,
        endpoint_url=f"http://{eid}/v1/chat",
        credential="sk-test-key",
        priority=priority,
        enabled=enabled,
    )


def _client(endpoints, transport, clock=None):
    return ModelClient(
        endpoints,
        transport=transport,
        retry_config=RetryConfig(max_retries=3),
        clock=clock or FakeClock(),
        rng=random.Random(0),
        sleep=_no_sleep,
    )


SCREEN = Image.new("RGB", (1080, 2400))


def test_success_returns_parsed_reply_from_highest_priority():
    transport = ScriptedTransport(
        {
            "http://high/v1/chat": [_ok('<act>do(action="Tap", mark=2)</act>')],
            "http://low/v1/chat": [_ok('do(action="Home")')],
        }
    )
    client = _client([_endpoint("low", 0), _endpoint("high", 5)], transport)

    response = asyncio.run(client.analyze(SCREEN, "task", ["Back"]))

    assert response.primary_action == TapMark(mark_id=2)
    assert transport.calls == ["http://high/v1/chat"]


def test_fails_over_and_puts_failed_endpoint_in_cooldown():
    clock = FakeClock()
    transport = ScriptedTransport(
        {
            "http://a/v1/chat": [TransportResponse(503, "Service Unavailable")],
            "http://b/v1/chat": [_ok('do(action="Home")')],
        }
    )
    client = _client([_endpoint("a", 5), _endpoint("b", 0)], transport, clock)

    first = asyncio.run(client.analyze(SCREEN, "task"))
    assert first.primary_action == Home()
    # three retryable attempts on a, then b
    assert transport.calls == ["http://a/v1/chat"] * 3 + ["http://b/v1/chat"]
    assert "a" in client.failed_endpoints

    transport.calls.clear()
    clock.now += 30
    asyncio.run(client.analyze(SCREEN, "task"))
    assert transport.calls == ["http://b/v1/chat"]

    transport.calls.clear()
    clock.now += 31
    asyncio.run(client.analyze(SCREEN, "task"))
    assert transport.calls[0] == "http://a/v1/chat"


def test_invalid_api_key_is_fatal_and_not_retried():
    transport = ScriptedTransport(
        {"http://a/v1/chat": [TransportResponse(401, json.dumps({"error": {"message": "invalid api key"}}))]}
    )
    client = _client([_endpoint("a")], transport)

    with pytest.raises(FatalProviderError) as excinfo:
        asyncio.run(client.analyze(SCREEN, "task"))

    assert str(excinfo.value) == "API error (401): invalid api key"
    assert transport.calls == ["http://a/v1/chat"]


def test_service_unavailable_is_retried_then_raised():
    transport = ScriptedTransport({"http://a/v1/chat": [TransportResponse(503, "Service Unavailable")]})
    client = _client([_endpoint("a")], transport)

    with pytest.raises(TransientProviderError):
        asyncio.run(client.analyze(SCREEN, "task"))
    assert len(transport.calls) == 3


def test_success_clears_failure_record():
    clock = FakeClock()
    transport = ScriptedTransport(
        {"http://a/v1/chat": [TransportResponse(500, "boom"), TransportResponse(500, "boom"), TransportResponse(500, "boom"), _ok('do(action="Back")')]}
    )
    client = _client([_endpoint("a")], transport, clock)

    with pytest.raises(TransientProviderError):
        asyncio.run(client.analyze(SCREEN, "task"))
    assert "a" in client.failed_endpoints

    clock.now += 61
    asyncio.run(client.analyze(SCREEN, "task"))
    assert client.failed_endpoints == {}


def test_no_enabled_endpoints_is_configuration_error():
    client = _client([_endpoint("a", enabled=False)], ScriptedTransport({}))
    with pytest.raises(ConfigurationError):
        asyncio.run(client.analyze(SCREEN, "task"))


def test_all_in_cooldown_after_fatal_error_stays_fatal():
    clock = FakeClock()
    transport = ScriptedTransport({"http://a/v1/chat": [TransportResponse(401, "unauthorized")]})
    client = _client([_endpoint("a")], transport, clock)

    with pytest.raises(FatalProviderError):
        asyncio.run(client.analyze(SCREEN, "task"))
    with pytest.raises(FatalProviderError) as exc:
        asyncio.run(client.analyze(SCREEN, "task"))

    assert "cooling down" in str(exc.value)
    assert exc.value.status_code == 401
    assert transport.calls == ["http://a/v1/chat"]


def test_all_in_cooldown_after_transient_error_is_transient():
    clock = FakeClock()
    transport = ScriptedTransport({"http://a/v1/chat": [_ok("no action here")] * 3 + [_ok('do(action="Back")')]})
    client = _client([_endpoint("a")], transport, clock)

    with pytest.raises(ParseFailure):
        asyncio.run(client.analyze(SCREEN, "task"))
    with pytest.raises(TransientProviderError, match="cooling down"):
        asyncio.run(client.analyze(SCREEN, "task"))

    clock.now += 61
    assert asyncio.run(client.analyze(SCREEN, "task")).primary_action == Back()


def test_same_priority_endpoints_are_shuffled():
    transport = ScriptedTransport({f"http://e{i}/v1/chat": [_ok('do(action="Back")')] for i in range(4)})
    client = _client([_endpoint(f"e{i}", 1) for i in range(4)], transport)

    orders = {tuple(e.id for e in client.ordered_endpoints()) for _ in range(20)}
    assert len(orders) > 1
    assert all(sorted(order) == ["e0", "e1", "e2", "e3"] for order in orders)
