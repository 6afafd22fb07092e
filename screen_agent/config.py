"""Shared configuration helpers: runtime knobs, retry policy, endpoints, host/port."""

from __future__ import annotations

import json
import os
from pathlib import Path
from typing import Any, List, Optional, Tuple

import yaml
from dotenv import load_dotenv
from pydantic import BaseModel, Field, ValidationError

from screen_agent.contracts.errors import ConfigurationError
from screen_agent.llm.providers import EndpointConfig, ProviderKind
from screen_agent.llm.retry import RetryConfig

DEV_HOST = os.getenv("SCREEN_AGENT_HOST", "127.0.0.1")
DEV_PORT = int(os.getenv("SCREEN_AGENT_PORT", "5004"))
TEST_HOST = os.getenv("SCREEN_AGENT_TEST_HOST", DEV_HOST)
TEST_PORT = int(os.getenv("SCREEN_AGENT_TEST_PORT", "5015"))

DEFAULT_MAX_STEPS = 50
DEFAULT_STEP_DELAY_MS = 500
DEFAULT_ACTION_DELAY_MS = 300
DEFAULT_PAUSE_POLL_MS = 200
DEFAULT_HISTORY_LIMIT = 20
DEFAULT_TIMEOUT = 60.0
MAX_TIMEOUT = 90.0
DEFAULT_RETRIES = 3
MAX_RETRIES = 6


def is_test_mode() -> bool:
    """Detect pytest/SCREEN_AGENT_TEST_MODE runs."""
    return os.getenv("SCREEN_AGENT_TEST_MODE") == "1" or bool(os.getenv("PYTEST_CURRENT_TEST"))


def resolve_host_port(host: str | None = None, port: int | None = None) -> Tuple[str, int]:
    """Return the host/port tuple for the current mode, honoring overrides."""
    if host and port:
        return host, int(port)

    if is_test_mode():
        resolved_host = host or TEST_HOST
        resolved_port = int(port or TEST_PORT)
    else:
        resolved_host = host or DEV_HOST
        resolved_port = int(port or DEV_PORT)

    return resolved_host, resolved_port


def _flag_from_env(var: str, default: bool) -> bool:
    value = os.getenv(var)
    if value is None:
        return default
    return str(value).strip().lower() not in {"0", "false", "off", "no", "none"}


def _int_from_env(var: str, default: int) -> int:
    raw = os.getenv(var)
    if raw is None or not raw.strip():
        return default
    try:
        return int(raw)
    except ValueError as exc:
        raise ConfigurationError(f"{var} must be an integer, got {raw!r}") from exc


def _float_from_env(var: str, default: float) -> float:
    raw = os.getenv(var)
    if raw is None or not raw.strip():
        return default
    try:
        return float(raw)
    except ValueError as exc:
        raise ConfigurationError(f"{var} must be a number, got {raw!r}") from exc


class ExecutorSettings(BaseModel):
    """Step-loop knobs for the task executor."""

    max_steps: int = Field(default=DEFAULT_MAX_STEPS, ge=1)
    step_delay_ms: int = Field(default=DEFAULT_STEP_DELAY_MS, ge=0)
    action_delay_ms: int = Field(default=DEFAULT_ACTION_DELAY_MS, ge=0)
    pause_poll_ms: int = Field(default=DEFAULT_PAUSE_POLL_MS, ge=1)
    history_limit: int = Field(default=DEFAULT_HISTORY_LIMIT, ge=1)
    go_home_first: bool = True
    visual_strategy: str = "som"
    events_file: Optional[str] = None


def load_executor_settings() -> ExecutorSettings:
    return ExecutorSettings(
        max_steps=_int_from_env("SCREEN_AGENT_MAX_STEPS", DEFAULT_MAX_STEPS),
        step_delay_ms=_int_from_env("SCREEN_AGENT_STEP_DELAY_MS", DEFAULT_STEP_DELAY_MS),
        action_delay_ms=_int_from_env("SCREEN_AGENT_ACTION_DELAY_MS", DEFAULT_ACTION_DELAY_MS),
        pause_poll_ms=_int_from_env("SCREEN_AGENT_PAUSE_POLL_MS", DEFAULT_PAUSE_POLL_MS),
        history_limit=_int_from_env("SCREEN_AGENT_HISTORY_LIMIT", DEFAULT_HISTORY_LIMIT),
        go_home_first=_flag_from_env("SCREEN_AGENT_GO_HOME_FIRST", True),
        visual_strategy=(os.getenv("SCREEN_AGENT_VISUAL_STRATEGY") or "som").strip().lower(),
        events_file=(os.getenv("SCREEN_AGENT_EVENTS_FILE") or "").strip() or None,
    )


def load_retry_config() -> RetryConfig:
    """Build the retry policy from env, clamping retries and timeout like the provider clients do."""
    retries = min(_int_from_env("SCREEN_AGENT_RETRIES", DEFAULT_RETRIES), MAX_RETRIES)
    return RetryConfig(
        max_retries=max(retries, 1),
        initial_delay=_int_from_env("SCREEN_AGENT_RETRY_INITIAL_MS", 1000) / 1000.0,
        max_delay=_int_from_env("SCREEN_AGENT_RETRY_MAX_MS", 10_000) / 1000.0,
        multiplier=_float_from_env("SCREEN_AGENT_RETRY_MULTIPLIER", 2.0),
    )


def load_timeout() -> float:
    return min(_float_from_env("SCREEN_AGENT_TIMEOUT", DEFAULT_TIMEOUT), MAX_TIMEOUT)


def _read_endpoint_file(path: Path) -> Any:
    try:
        text = path.read_text(encoding="utf-8")
    except OSError as exc:
        raise ConfigurationError(f"cannot read endpoints file {path}: {exc}") from exc
    try:
        if path.suffix.lower() == ".json":
            return json.loads(text)
        return yaml.safe_load(text)
    except (json.JSONDecodeError, yaml.YAMLError) as exc:
        raise ConfigurationError(f"endpoints file {path} is not valid: {exc}") from exc


def parse_endpoints(data: Any) -> List[EndpointConfig]:
    """
    Validate a raw endpoint list.

    Accepts either a list of endpoint mappings or {"endpoints": [...]}.
    """
    if isinstance(data, dict) and "endpoints" in data:
        data = data.get("endpoints")
    if data is None:
        return []
    if not isinstance(data, list):
        raise ConfigurationError("endpoints must be a list")
    endpoints: List[EndpointConfig] = []
    for index, item in enumerate(data):
        try:
            endpoints.append(EndpointConfig.model_validate(item))
        except ValidationError as exc:
            raise ConfigurationError(f"invalid endpoint #{index}: {exc}") from exc
    return endpoints


def load_endpoints(path: Optional[str] = None) -> List[EndpointConfig]:
    """
    Load endpoint configs from a YAML/JSON file or from single-endpoint env vars.

    Returns an empty list when nothing is configured; the model client reports
    that as a ConfigurationError at call time.
    """
    load_dotenv()
    file_path = path or os.getenv("SCREEN_AGENT_ENDPOINTS_FILE")
    if file_path:
        return parse_endpoints(_read_endpoint_file(Path(file_path)))

    api_key = (os.getenv("SCREEN_AGENT_API_KEY") or "").strip()
    if not api_key:
        return []
    provider = (os.getenv("SCREEN_AGENT_PROVIDER") or ProviderKind.ZHIPU.value).strip().lower()
    try:
        kind = ProviderKind(provider)
    except ValueError as exc:
        raise ConfigurationError(f"unknown provider {provider!r}") from exc
    return [
        EndpointConfig(
            id="env",
            name="env",
            provider_kind=kind,
            model_id=(os.getenv("SCREEN_AGENT_MODEL") or "").strip() or kind.default_model,
            credential=api_key,
            endpoint_url=(os.getenv("SCREEN_AGENT_ENDPOINT") or "").strip(),
        )
    ]


__all__ = [
    "ExecutorSettings",
    "is_test_mode",
    "load_endpoints",
    "load_executor_settings",
    "load_retry_config",
    "load_timeout",
    "parse_endpoints",
    "resolve_host_port",
]
