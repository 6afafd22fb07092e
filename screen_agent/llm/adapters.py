"""
Per-provider request/response shapes.

Three wire families cover the catalogue:
- OpenAI-compatible chat completions (Zhipu, OpenAI, Qwen, DeepSeek, Moonshot, custom).
- Anthropic messages (Claude).
- Gemini generateContent.
Providers without vision get the image dropped and only the text is sent.
"""

from __future__ import annotations

import json
from dataclasses import dataclass
from typing import Any, Dict, Optional, Protocol

from screen_agent.contracts.errors import ParseFailure
from screen_agent.llm.providers import EndpointConfig

MAX_TOKENS = 1024
TEMPERATURE = 0.1
ANTHROPIC_VERSION = "2023-06-01"


@dataclass(frozen=True)
class PreparedRequest:
    url: str
    headers: Dict[str, str]
    body: Dict[str, Any]


class ProviderAdapter(Protocol):
    def build_request(
        self, endpoint: EndpointConfig, system_prompt: str, user_text: str, image_b64: Optional[str]
    ) -> PreparedRequest: ...

    def extract_text(self, data: Dict[str, Any]) -> str: ...


def _missing(provider: str, data: Any) -> ParseFailure:
    excerpt = json.dumps(data, ensure_ascii=False)[:200] if data is not None else ""
    return ParseFailure(f"{provider} response is missing expected content", excerpt=excerpt)


class OpenAICompatibleAdapter:
    def build_request(
        self, endpoint: EndpointConfig, system_prompt: str, user_text: str, image_b64: Optional[str]
    ) -> PreparedRequest:
        if image_b64 and endpoint.provider_kind.supports_vision:
            user_content: Any = [
                {"type": "text", "text": user_text},
                {"type": "image_url", "image_url": {"url": f"data:image/jpeg;base64,{image_b64}"}},
            ]
        else:
            # text-only providers: drop the image part
            user_content = user_text
        body = {
            "model": endpoint.effective_model,
            "stream": False,
            "messages": [
                {"role": "system", "content": system_prompt},
                {"role": "user", "content": user_content},
            ],
            "max_tokens": MAX_TOKENS,
            "temperature": TEMPERATURE,
        }
        headers = {
            "Authorization": f"Bearer {endpoint.credential}",
            "Content-Type": "application/json",
        }
        return PreparedRequest(url=endpoint.resolved_url, headers=headers, body=body)

    def extract_text(self, data: Dict[str, Any]) -> str:
        try:
            content = data["choices"][0]["message"]["content"]
        except (KeyError, IndexError, TypeError) as exc:
            raise _missing("Chat completions", data) from exc
        if isinstance(content, list):
            content = "".join(str(p.get("text", "")) for p in content if isinstance(p, dict))
        if not isinstance(content, str):
            raise _missing("Chat completions", data)
        return content


class ClaudeAdapter:
    def build_request(
        self, endpoint: EndpointConfig, system_prompt: str, user_text: str, image_b64: Optional[str]
    ) -> PreparedRequest:
        content = []
        if image_b64:
            content.append(
                {
                    "type": "image",
                    "source": {"type": "base64", "media_type": "image/jpeg", "data": image_b64},
                }
            )
        content.append({"type": "text", "text": user_text})
        body = {
            "model": endpoint.effective_model,
            "max_tokens": MAX_TOKENS,
            "system": system_prompt,
            "messages": [{"role": "user", "content": content}],
        }
        headers = {
            "x-api-key": endpoint.credential,
            "anthropic-version": ANTHROPIC_VERSION,
            "Content-Type": "application/json",
        }
        return PreparedRequest(url=endpoint.resolved_url, headers=headers, body=body)

    def extract_text(self, data: Dict[str, Any]) -> str:
        try:
            return str(data["content"][0]["text"])
        except (KeyError, IndexError, TypeError) as exc:
            raise _missing("Claude", data) from exc


class GeminiAdapter:
    def build_request(
        self, endpoint: EndpointConfig, system_prompt: str, user_text: str, image_b64: Optional[str]
    ) -> PreparedRequest:
        parts: list = [{"text": f"{system_prompt}\n\n{user_text}"}]
        if image_b64:
            parts.append({"inline_data": {"mime_type": "image/jpeg", "data": image_b64}})
        url = endpoint.resolved_url
        separator = "&" if "?" in url else "?"
        return PreparedRequest(
            url=f"{url}{separator}key={endpoint.credential}",
            headers={"Content-Type": "application/json"},
            body={"contents": [{"parts": parts}]},
        )

    def extract_text(self, data: Dict[str, Any]) -> str:
        try:
            return str(data["candidates"][0]["content"]["parts"][0]["text"])
        except (KeyError, IndexError, TypeError) as exc:
            raise _missing("Gemini", data) from exc


_ADAPTERS: Dict[str, ProviderAdapter] = {
    "openai": OpenAICompatibleAdapter(),
    "claude": ClaudeAdapter(),
    "gemini": GeminiAdapter(),
}


def adapter_for(endpoint: EndpointConfig) -> ProviderAdapter:
    return _ADAPTERS[endpoint.provider_kind.wire_format]


def error_detail(body_text: str) -> str:
    """Pull error.message out of a JSON error body, else return the raw body."""
    try:
        data = json.loads(body_text)
    except (TypeError, ValueError):
        return body_text
    if isinstance(data, dict):
        err = data.get("error")
        if isinstance(err, dict) and err.get("message"):
            return str(err["message"])
        if isinstance(err, str) and err:
            return err
        if data.get("message"):
            return str(data["message"])
    return body_text


__all__ = [
    "ClaudeAdapter",
    "GeminiAdapter",
    "OpenAICompatibleAdapter",
    "PreparedRequest",
    "ProviderAdapter",
    "adapter_for",
    "error_detail",
]
