import asyncio

import pytest

from screen_agent.contracts.errors import FatalProviderError, TransientProviderError
from screen_agent.llm.retry import RetryConfig, call_with_retry


class RecordingSleep:
    def __init__(self):
        self.delays = []

    async def __call__(self, seconds):
        self.delays.append(seconds)


def test_delays_grow_and_cap():
    cfg = RetryConfig(max_retries=5, initial_delay=1.0, max_delay=3.0, multiplier=2.0)
    assert [cfg.delay_for(i) for i in range(4)] == [1.0, 2.0, 3.0, 3.0]


def test_retries_transient_errors_then_succeeds():
    sleep = RecordingSleep()
    calls = []

    async def flaky():
        calls.append(1)
        if len(calls) < 3:
            raise TransientProviderError("API error (503): busy", status_code=503)
        return "ok"

    result = asyncio.run(call_with_retry(flaky, RetryConfig(), sleep=sleep))

    assert result == "ok"
    assert len(calls) == 3
    assert sleep.delays == [1.0, 2.0]


def test_gives_up_after_max_retries_without_trailing_delay():
    sleep = RecordingSleep()

    async def always_down():
        raise TransientProviderError("Request timed out")

    with pytest.raises(TransientProviderError):
        asyncio.run(call_with_retry(always_down, RetryConfig(max_retries=3), sleep=sleep))
    assert sleep.delays == [1.0, 2.0]


def test_fatal_errors_are_not_retried():
    sleep = RecordingSleep()
    calls = []

    async def unauthorized():
        calls.append(1)
        raise FatalProviderError("API error (401): invalid api key", status_code=401)

    with pytest.raises(FatalProviderError):
        asyncio.run(call_with_retry(unauthorized, RetryConfig(), sleep=sleep))
    assert len(calls) == 1
    assert sleep.delays == []
