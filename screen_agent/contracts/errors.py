"""
Error taxonomy for the task engine.

- ParseFailure: a reply yielded no recoverable action; the step is retried.
- TransientProviderError: network/rate-limit/server trouble; retried with backoff, then failover.
- FatalProviderError: account/auth/quota trouble; never retried, counts toward the fatal streak.
- ConfigurationError: nothing to call at all; terminates the task.
- DriverActionFailure: one device action failed; fed back into history.
"""

from __future__ import annotations

from typing import Iterable, Optional

FATAL_KEYWORDS = (
    "insufficient",
    "quota",
    "balance",
    "余额",
    "额度",
    "credit",
    "billing",
    "401",
    "403",
    "unauthorized",
    "forbidden",
    "invalid api key",
    "invalid_api_key",
    "authentication",
    "unauthenticated",
    "账户",
    "账号",
)
ACCOUNT_STATE_KEYWORDS = ("disabled", "suspended", "banned")

RETRYABLE_KEYWORDS = (
    "timeout",
    "timed out",
    "connection",
    "socket",
    "500",
    "502",
    "503",
    "504",
    "429",
    "rate limit",
    "parse error",
    "json",
)
RETRYABLE_STATUS = {429, 500, 502, 503, 504}
FATAL_STATUS = {401, 403}


class AgentError(Exception):
    """Base class for task engine errors."""


class ParseFailure(AgentError):
    def __init__(self, message: str, excerpt: str = "") -> None:
        super().__init__(message)
        self.excerpt = excerpt


class ProviderError(AgentError):
    def __init__(self, message: str, status_code: Optional[int] = None, endpoint_id: Optional[str] = None) -> None:
        super().__init__(message)
        self.status_code = status_code
        self.endpoint_id = endpoint_id


class TransientProviderError(ProviderError):
    pass


class FatalProviderError(ProviderError):
    pass


class ConfigurationError(AgentError):
    pass


class DriverActionFailure(AgentError):
    pass


def _contains_any(text: str, keywords: Iterable[str]) -> bool:
    return any(k in text for k in keywords)


def is_fatal_message(message: str) -> bool:
    """Account-level problem that will not resolve by retrying."""
    text = (message or "").lower()
    if not text:
        return False
    if _contains_any(text, FATAL_KEYWORDS):
        return True
    return "account" in text and _contains_any(text, ACCOUNT_STATE_KEYWORDS)


def is_retryable_message(message: str) -> bool:
    text = (message or "").lower()
    if not text or is_fatal_message(text):
        return False
    return _contains_any(text, RETRYABLE_KEYWORDS)


def classify_error(
    message: str,
    status_code: Optional[int] = None,
    endpoint_id: Optional[str] = None,
) -> ProviderError:
    """Build the ProviderError subclass matching a failed provider call."""
    if status_code in FATAL_STATUS or is_fatal_message(message):
        return FatalProviderError(message, status_code=status_code, endpoint_id=endpoint_id)
    return TransientProviderError(message, status_code=status_code, endpoint_id=endpoint_id)


def is_fatal_error(exc: BaseException) -> bool:
    if isinstance(exc, FatalProviderError):
        return True
    if isinstance(exc, (TransientProviderError, ParseFailure, ConfigurationError)):
        return False
    return is_fatal_message(str(exc))


def is_retryable_error(exc: BaseException) -> bool:
    """
    Whether one more attempt against the same endpoint makes sense.

    Parse failures count as retryable because truncated model output is often transient.
    """
    if is_fatal_error(exc) or isinstance(exc, ConfigurationError):
        return False
    if isinstance(exc, ParseFailure):
        return True
    if isinstance(exc, ProviderError):
        if exc.status_code in RETRYABLE_STATUS:
            return True
        return is_retryable_message(str(exc))
    return is_retryable_message(str(exc))


__all__ = [
    "AgentError",
    "ConfigurationError",
    "DriverActionFailure",
    "FatalProviderError",
    "ParseFailure",
    "ProviderError",
    "TransientProviderError",
    "classify_error",
    "is_fatal_error",
    "is_fatal_message",
    "is_retryable_error",
    "is_retryable_message",
]
