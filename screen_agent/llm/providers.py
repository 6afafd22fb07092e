"""
Provider catalogue and endpoint configuration.

Each ProviderKind carries its default endpoint, default model, auth style and
whether it accepts images. EndpointConfig is one user-configured endpoint.
"""

from __future__ import annotations

from enum import Enum
from typing import Literal

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

AuthStyle = Literal["bearer", "x-api-key", "query-key"]


class ProviderKind(str, Enum):
    ZHIPU = "zhipu"
    OPENAI = "openai"
    CLAUDE = "claude"
    GEMINI = "gemini"
    QWEN = "qwen"
    DEEPSEEK = "deepseek"
    MOONSHOT = "moonshot"
    OPENAI_COMPATIBLE = "openai_compatible"

    @property
    def default_endpoint(self) -> str:
        return _CATALOGUE[self][0]

    @property
    def default_model(self) -> str:
        return _CATALOGUE[self][1]

    @property
    def auth_style(self) -> AuthStyle:
        return _CATALOGUE[self][2]

    @property
    def supports_vision(self) -> bool:
        return _CATALOGUE[self][3]

    @property
    def wire_format(self) -> str:
        """Request/response family: "openai", "claude" or "gemini"."""
        if self == ProviderKind.CLAUDE:
            return "claude"
        if self == ProviderKind.GEMINI:
            return "gemini"
        return "openai"


_CATALOGUE = {
    ProviderKind.ZHIPU: ("https://open.bigmodel.cn/api/paas/v4/chat/completions", "glm-4v", "bearer", True),
    ProviderKind.OPENAI: ("https://api.openai.com/v1/chat/completions", "gpt-4o", "bearer", True),
    ProviderKind.CLAUDE: ("https://api.anthropic.com/v1/messages", "claude-3-5-sonnet-20241022", "x-api-key", True),
    ProviderKind.GEMINI: (
        "https://generativelanguage.googleapis.com/v1beta/models/{model}:generateContent",
        "gemini-1.5-flash",
        "query-key",
        True,
    ),
    ProviderKind.QWEN: (
        "https://dashscope.aliyuncs.com/compatible-mode/v1/chat/completions",
        "qwen-vl-max",
        "bearer",
        True,
    ),
    ProviderKind.DEEPSEEK: ("https://api.deepseek.com/v1/chat/completions", "deepseek-chat", "bearer", False),
    ProviderKind.MOONSHOT: ("https://api.moonshot.cn/v1/chat/completions", "moonshot-v1-128k", "bearer", False),
    ProviderKind.OPENAI_COMPATIBLE: ("", "", "bearer", True),
}


class EndpointConfig(BaseModel):
    """One configured model endpoint. Higher priority is tried first."""

    model_config = ConfigDict(frozen=True)

    id: str = Field(min_length=1)
    name: str = ""
    provider_kind: ProviderKind
    model_id: str = ""
    credential: str = Field(min_length=1)
    endpoint_url: str = ""
    priority: int = 0
    enabled: bool = True

    @field_validator("provider_kind", mode="before")
    @classmethod
    def _lower_kind(cls, value):
        if isinstance(value, str):
            return value.strip().lower()
        return value

    @model_validator(mode="after")
    def _custom_needs_url(self) -> "EndpointConfig":
        if self.provider_kind == ProviderKind.OPENAI_COMPATIBLE and not self.endpoint_url:
            raise ValueError("openai_compatible endpoints need endpoint_url")
        return self

    @property
    def effective_model(self) -> str:
        return self.model_id or self.provider_kind.default_model

    @property
    def resolved_url(self) -> str:
        """Custom URL if set, else the provider default; Gemini's {model} placeholder is filled in."""
        url = self.endpoint_url or self.provider_kind.default_endpoint
        if "{model}" in url:
            url = url.replace("{model}", self.effective_model)
        return url

    @property
    def display_name(self) -> str:
        return self.name or self.id


__all__ = ["AuthStyle", "EndpointConfig", "ProviderKind"]
