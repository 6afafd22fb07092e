import asyncio
import json
import random

from PIL import Image

from screen_agent.config import ExecutorSettings
from screen_agent.contracts.events import ExecutionState, TaskFailed, TaskSuccess
from screen_agent.executor.driver import DriverResult
from screen_agent.executor.task_executor import TaskExecutor
from screen_agent.llm.model_client import ModelClient
from screen_agent.llm.providers import EndpointConfig, ProviderKind
from screen_agent.llm.retry import RetryConfig
from screen_agent.llm.transport import TransportResponse

URL = "http://vlm/v1/chat"


def _ok(text):
    return TransportResponse(200, json.dumps({"choices": [{"message": {"content": text}}]}))


class QueueTransport:
    """Replies in order; the last reply repeats."""

    def __init__(self, replies):
        self.replies = list(replies)
        self.calls = 0

    async def post(self, url, headers, json_body, timeout):
        self.calls += 1
        return self.replies.pop(0) if len(self.replies) > 1 else self.replies[0]


class TickingClock:
    """Advances by a fixed step on every read."""

    def __init__(self, step=0.0):
        self.now = 1000.0
        self.step = step

    def __call__(self):
        self.now += self.step
        return self.now


class StillDriver:
    def __init__(self):
        self.calls = []

    def capture_screen(self):
        return Image.new("RGB", (1080, 2400), (255, 255, 255))

    def capture_ui_tree(self):
        return []

    def __getattr__(self, name):
        def _record(*args):
            self.calls.append((name,) + args)
            return DriverResult.success()

        return _record


async def _no_sleep(_seconds):
    await asyncio.sleep(0)


def _executor(transport, clock):
    endpoint = EndpointConfig(
        id="only",
        provider_kind=ProviderKind.OPENAI_COMPATIBLE,
        endpoint_url=URL,
        credential="sk-test-key",
    )
    client = ModelClient(
        [endpoint],
        transport=transport,
        retry_config=RetryConfig(max_retries=3),
        clock=clock,
        rng=random.Random(0),
        sleep=_no_sleep,
    )
    settings = ExecutorSettings(go_home_first=False)
    return TaskExecutor(StillDriver(), client, settings=settings, sleep=_no_sleep)


def test_cooldown_after_parse_failures_is_retried_until_endpoint_recovers():
    transport = QueueTransport([_ok("no action here")] * 3 + [_ok('finish(message="ok")')])
    executor = _executor(transport, TickingClock(step=20.0))

    result = asyncio.run(executor.execute_task("open settings"))

    assert result == TaskSuccess(message="ok")
    assert transport.calls == 4
    assert "cooling down" in executor.full_log_text()
    assert executor.execution_status.state == ExecutionState.COMPLETED


def test_invalid_api_key_reaches_three_strike_error_through_cooldown():
    transport = QueueTransport([TransportResponse(401, json.dumps({"error": {"message": "invalid api key"}}))])
    executor = _executor(transport, TickingClock())

    result = asyncio.run(executor.execute_task("open settings"))

    assert isinstance(result, TaskFailed)
    assert result.error.startswith("Fatal API error")
    assert executor.current_step == 3
    assert transport.calls == 1
    assert executor.execution_status.state == ExecutionState.ERROR
