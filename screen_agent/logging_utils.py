from __future__ import annotations

import json
import logging
import uuid
from typing import Any, Dict, Iterable, List

# Structured event logger configured in logging_setup.
event_logger = logging.getLogger("screen_agent.events")

REDACTED_IMAGE_KEYS = {"screenshot_base64", "image_base64", "data", "url"}
REDACTED_SECRET_KEYS = {"credential", "api_key", "authorization", "x-api-key", "key"}


def generate_request_id() -> str:
    """Return a short, collision-resistant request id."""
    return uuid.uuid4().hex


def truncate(value: str, max_len: int = 2000) -> str:
    if len(value) <= max_len:
        return value
    return f"{value[:max_len]}...<truncated {len(value) - max_len} chars>"


def mask_secret(secret: str) -> str:
    """Keep the first/last four characters of long secrets for log correlation."""
    if not secret:
        return ""
    if len(secret) > 8:
        return f"{secret[:4]}****{secret[-4:]}"
    return "****"


def _sanitize_obj(obj: Any, max_len: int = 2000, keep_full: Iterable[str] | None = None) -> Any:
    keep_full = set(keep_full or [])
    if isinstance(obj, dict):
        sanitized: Dict[str, Any] = {}
        for key, val in obj.items():
            lowered = str(key).lower()
            if lowered in REDACTED_SECRET_KEYS and isinstance(val, str):
                sanitized[key] = mask_secret(val)
                continue
            if lowered in REDACTED_IMAGE_KEYS and isinstance(val, str) and (
                val.startswith("data:image") or len(val) > max_len
            ):
                sanitized[key] = "<redacted:image>"
                continue
            if key == "raw_text":
                sanitized[key] = truncate(str(val), max_len)
                continue
            if key in keep_full:
                sanitized[key] = val
                continue
            sanitized[key] = _sanitize_obj(val, max_len=max_len, keep_full=keep_full)
        return sanitized
    if isinstance(obj, list):
        return [_sanitize_obj(item, max_len=max_len, keep_full=keep_full) for item in obj[:50]]
    if isinstance(obj, str):
        return truncate(obj, max_len=max_len)
    return obj


def sanitize_payload(payload: Dict[str, Any], keep_full: Iterable[str] | None = None) -> Dict[str, Any]:
    """Return a sanitized shallow copy safe for logging."""
    try:
        return dict(_sanitize_obj(payload, keep_full=keep_full or []))
    except (TypeError, ValueError):
        return {"error": "failed_to_sanitize"}


def summarize_response(response: Any) -> Dict[str, Any]:
    """Compact view of a parsed model reply for the events log."""
    if response is None:
        return {"present": False}
    actions: List[Any] = list(response.get_all_actions())
    terminal = response.terminal_action()
    return {
        "present": True,
        "action_count": len(actions),
        "actions_preview": [a.describe() for a in actions[:15]],
        "terminal": terminal.kind if terminal is not None else None,
        "status_text": truncate(response.status_text or "", 200),
        "has_thinking": bool(response.thinking_text),
    }


def log_event(event: str, request_id: str, payload: Dict[str, Any] | None = None) -> None:
    """Log a structured event as JSON; never raise."""
    body = {"event": event, "request_id": request_id}
    if payload:
        body.update(sanitize_payload(payload, keep_full={"task"}))
    try:
        event_logger.info(json.dumps(body, ensure_ascii=True, default=str))
    except (TypeError, ValueError):
        # Fallback to best-effort string logging.
        event_logger.info(f"{event} {request_id} {body}")


__all__ = [
    "generate_request_id",
    "log_event",
    "mask_secret",
    "sanitize_payload",
    "summarize_response",
    "truncate",
]
