"""Data models for the classification layer."""

from dataclasses import dataclass, field
from datetime import UTC, datetime
from enum import StrEnum
from typing import Any
from uuid import UUID, uuid4


class ProviderType(StrEnum):
    """Supported classification providers."""

    OPENAI = "openai"
    OPENROUTER = "openrouter"
    MOCK = "mock"


@dataclass
class UsageStats:
    """Token usage for one completion."""

    prompt_tokens: int = 0
    completion_tokens: int = 0
    total_tokens: int = 0

    def to_dict(self) -> dict:
        return {
            "prompt_tokens": self.prompt_tokens,
            "completion_tokens": self.completion_tokens,
            "total_tokens": self.total_tokens,
        }


@dataclass
class ProviderError:
    """Error from a provider."""

    provider: ProviderType
    error_type: str
    message: str
    retryable: bool = True
    timestamp: datetime = field(default_factory=lambda: datetime.now(UTC))

    def to_dict(self) -> dict:
        return {
            "provider": self.provider.value,
            "error_type": self.error_type,
            "message": self.message,
            "retryable": self.retryable,
            "timestamp": self.timestamp.isoformat(),
        }


@dataclass
class ClassificationRequest:
    """A single structured-output completion request."""

    prompt: str
    model: str
    system_prompt: str | None = None
    # data: URL or http(s) URL of an image to send alongside the prompt
    image_url: str | None = None
    temperature: float = 0.1
    max_tokens: int = 1000
    json_mode: bool = True
    response_shape: dict[str, str] | None = None
    id: UUID = field(default_factory=uuid4)

    @property
    def has_image(self) -> bool:
        return self.image_url is not None

    def to_messages(self) -> list[dict[str, Any]]:
        """Chat-completions message list, multimodal when an image is attached."""
        messages: list[dict[str, Any]] = []
        if self.system_prompt:
            messages.append({"role": "system", "content": self.system_prompt})
        if self.image_url:
            content: Any = [
                {"type": "text", "text": self.prompt},
                {"type": "image_url", "image_url": {"url": self.image_url, "detail": "high"}},
            ]
        else:
            content = self.prompt
        messages.append({"role": "user", "content": content})
        return messages


@dataclass
class ProviderResponse:
    """Raw completion returned by a provider."""

    request_id: UUID
    provider: ProviderType
    model: str
    content: str
    success: bool = True
    latency_ms: float = 0.0
    usage: UsageStats = field(default_factory=UsageStats)
    error: ProviderError | None = None
