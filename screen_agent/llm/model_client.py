"""
Resilient model client: one analyze() call over a prioritized, failing-over set of endpoints.

- Endpoints that failed within the cooldown window are skipped.
- Remaining endpoints are tried by descending priority; equal priorities are shuffled.
- Each endpoint gets exponential-backoff retries for retryable errors.
- The first success wins and clears that endpoint's failure record.
- Only a client with no enabled endpoint raises ConfigurationError; an all-cooldown
  state fails the call like any other provider error.
"""

from __future__ import annotations

import json
import logging
import random
import time
from itertools import groupby
from typing import Callable, Dict, List, Optional, Sequence

from PIL import Image

from screen_agent.contracts.errors import (
    ConfigurationError,
    FatalProviderError,
    ParseFailure,
    ProviderError,
    TransientProviderError,
    classify_error,
    is_fatal_error,
)
from screen_agent.executor.actions_schema import AIResponse
from screen_agent.llm.action_parser import parse_response
from screen_agent.llm.adapters import adapter_for, error_detail
from screen_agent.llm.prompt import build_system_prompt, build_user_message
from screen_agent.llm.providers import EndpointConfig
from screen_agent.llm.retry import RetryConfig, SleepFn, call_with_retry
from screen_agent.llm.transport import HttpxTransport, Transport
from screen_agent.logging_utils import generate_request_id, log_event, summarize_response, truncate
from screen_agent.vision.coords import ScreenGeometry
from screen_agent.vision.screenshot import image_to_base64_jpeg

logger = logging.getLogger(__name__)

FAILURE_COOLDOWN_SECONDS = 60.0
DEFAULT_TIMEOUT = 60.0


class ModelClient:
    def __init__(
        self,
        endpoints: Sequence[EndpointConfig],
        transport: Optional[Transport] = None,
        retry_config: Optional[RetryConfig] = None,
        timeout: float = DEFAULT_TIMEOUT,
        cooldown_seconds: float = FAILURE_COOLDOWN_SECONDS,
        clock: Callable[[], float] = time.monotonic,
        rng: Optional[random.Random] = None,
        sleep: Optional[SleepFn] = None,
    ) -> None:
        self.endpoints = list(endpoints)
        self.transport: Transport = transport or HttpxTransport()
        self.retry_config = retry_config or RetryConfig()
        self.timeout = timeout
        self.cooldown_seconds = cooldown_seconds
        self._clock = clock
        self._rng = rng or random.Random()
        self._sleep = sleep
        self._failed_at: Dict[str, float] = {}
        self._last_error: Dict[str, Exception] = {}

    @property
    def failed_endpoints(self) -> Dict[str, float]:
        return dict(self._failed_at)

    def available_endpoints(self) -> List[EndpointConfig]:
        """Enabled endpoints not in cooldown."""
        now = self._clock()
        available = []
        for endpoint in self.endpoints:
            if not endpoint.enabled:
                continue
            failed_at = self._failed_at.get(endpoint.id)
            if failed_at is not None and now - failed_at <= self.cooldown_seconds:
                continue
            available.append(endpoint)
        return available

    def ordered_endpoints(self) -> List[EndpointConfig]:
        ordered: List[EndpointConfig] = []
        ranked = sorted(self.available_endpoints(), key=lambda e: e.priority, reverse=True)
        for _, group in groupby(ranked, key=lambda e: e.priority):
            bucket = list(group)
            self._rng.shuffle(bucket)
            ordered.extend(bucket)
        return ordered

    async def analyze(
        self,
        screenshot: Image.Image,
        task: str,
        history: Sequence[str] = (),
        elements: Optional[Sequence] = None,
        geometry: Optional[ScreenGeometry] = None,
    ) -> AIResponse:
        """
        Ask the model for the next step.

        Raises:
            ConfigurationError: no endpoint is enabled at all.
            FatalProviderError / TransientProviderError: every enabled endpoint is cooling down;
                fatal when one of them last failed with a fatal error.
            ProviderError / ParseFailure: the last endpoint's error once every endpoint failed.
        """
        candidates = self.ordered_endpoints()
        if not candidates:
            raise self._no_candidates_error()

        geo = geometry or ScreenGeometry(*screenshot.size)
        system_prompt = build_system_prompt()
        user_text = build_user_message(task, history, elements)
        image_b64 = image_to_base64_jpeg(screenshot)
        request_id = generate_request_id()

        last_error: Optional[Exception] = None
        for endpoint in candidates:
            logger.info("Trying endpoint %s (%s)", endpoint.display_name, endpoint.provider_kind.value)

            async def _attempt(ep: EndpointConfig = endpoint) -> AIResponse:
                return await self._call_endpoint(ep, system_prompt, user_text, image_b64, geo, request_id)

            try:
                response = await call_with_retry(
                    _attempt, self.retry_config, sleep=self._sleep, label=endpoint.display_name
                )
            except (ProviderError, ParseFailure) as exc:
                logger.warning("Endpoint %s failed: %s", endpoint.display_name, exc)
                self._failed_at[endpoint.id] = self._clock()
                self._last_error[endpoint.id] = exc
                last_error = exc
                log_event(
                    "model_endpoint_failed",
                    request_id,
                    {"endpoint": endpoint.id, "error": str(exc), "error_type": type(exc).__name__},
                )
                continue
            self._failed_at.pop(endpoint.id, None)
            self._last_error.pop(endpoint.id, None)
            log_event(
                "model_response",
                request_id,
                {"endpoint": endpoint.id, "response": summarize_response(response)},
            )
            return response

        assert last_error is not None
        raise last_error

    def _no_candidates_error(self) -> Exception:
        enabled = [e for e in self.endpoints if e.enabled]
        if not enabled:
            return ConfigurationError("No API config available; add an enabled endpoint")
        causes = [self._last_error[e.id] for e in enabled if e.id in self._last_error]
        fatal = next((c for c in causes if is_fatal_error(c)), None)
        if fatal is not None:
            return FatalProviderError(
                f"All endpoints cooling down after a fatal error: {fatal}",
                status_code=getattr(fatal, "status_code", None),
            )
        detail = f": {causes[-1]}" if causes else ""
        return TransientProviderError(f"All endpoints cooling down{detail}")

    async def _call_endpoint(
        self,
        endpoint: EndpointConfig,
        system_prompt: str,
        user_text: str,
        image_b64: str,
        geometry: ScreenGeometry,
        request_id: str,
    ) -> AIResponse:
        adapter = adapter_for(endpoint)
        prepared = adapter.build_request(endpoint, system_prompt, user_text, image_b64)
        log_event(
            "model_request",
            request_id,
            {"endpoint": endpoint.id, "model": endpoint.effective_model, "user_text": user_text},
        )
        response = await self.transport.post(prepared.url, prepared.headers, prepared.body, self.timeout)

        if response.status_code >= 400:
            detail = error_detail(response.text)
            raise classify_error(
                f"API error ({response.status_code}): {truncate(detail, 500)}",
                status_code=response.status_code,
                endpoint_id=endpoint.id,
            )

        try:
            data = json.loads(response.text)
        except ValueError as exc:
            raise ParseFailure("Failed to decode API response as JSON", excerpt=response.text[:200]) from exc

        text = adapter.extract_text(data)
        logger.debug("Model reply from %s: %s", endpoint.display_name, truncate(text, 500))
        return parse_response(text, geometry)


__all__ = ["FAILURE_COOLDOWN_SECONDS", "ModelClient"]
