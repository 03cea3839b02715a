"""Classification providers - unified interface over chat-completion APIs."""

import json
import time
from abc import ABC, abstractmethod
from collections.abc import Callable
from dataclasses import dataclass
from typing import Any

import httpx

from worker.classification.models import (
    ClassificationRequest,
    ProviderError,
    ProviderResponse,
    ProviderType,
    UsageStats,
)


@dataclass
class ProviderConfig:
    """Configuration for a classification provider."""

    api_key: str = ""
    base_url: str = ""
    timeout_seconds: float = 30.0


class ClassificationProvider(ABC):
    """Abstract base class for classification providers."""

    provider_type: ProviderType

    def __init__(self, config: ProviderConfig):
        self.config = config

    @abstractmethod
    async def complete(self, request: ClassificationRequest) -> ProviderResponse:
        """Run a single completion. Failures are returned, not raised."""
        ...

    def _failure(
        self,
        request: ClassificationRequest,
        model: str,
        start_time: float,
        error_type: str,
        message: str,
        retryable: bool = True,
    ) -> ProviderResponse:
        return ProviderResponse(
            request_id=request.id,
            provider=self.provider_type,
            model=model,
            content="",
            success=False,
            latency_ms=(time.perf_counter() - start_time) * 1000,
            error=ProviderError(
                provider=self.provider_type,
                error_type=error_type,
                message=message,
                retryable=retryable,
            ),
        )


class ChatCompletionsProvider(ClassificationProvider):
    """Shared implementation for OpenAI-compatible ``/chat/completions`` APIs."""

    default_base_url = ""

    def __init__(self, config: ProviderConfig):
        super().__init__(config)
        if not config.base_url:
            config.base_url = self.default_base_url

    def _headers(self) -> dict[str, str]:
        return {
            "Authorization": f"Bearer {self.config.api_key}",
            "Content-Type": "application/json",
        }

    def _model_name(self, model: str) -> str:
        return model

    def build_payload(self, request: ClassificationRequest) -> dict[str, Any]:
        payload: dict[str, Any] = {
            "model": self._model_name(request.model),
            "messages": request.to_messages(),
            "temperature": request.temperature,
            "max_tokens": request.max_tokens,
        }
        if request.json_mode:
            payload["response_format"] = {"type": "json_object"}
        return payload

    async def complete(self, request: ClassificationRequest) -> ProviderResponse:
        start_time = time.perf_counter()
        model = self._model_name(request.model)

        try:
            async with httpx.AsyncClient(timeout=self.config.timeout_seconds) as client:
                response = await client.post(
                    f"{self.config.base_url}/chat/completions",
                    headers=self._headers(),
                    json=self.build_payload(request),
                )

            if response.status_code != 200:
                return self._failure(
                    request,
                    model,
                    start_time,
                    "api_error",
                    f"HTTP {response.status_code}: {response.text[:500]}",
                    retryable=response.status_code == 429 or response.status_code >= 500,
                )

            data = response.json()
            content = data["choices"][0]["message"]["content"] or ""
            usage_data = data.get("usage", {})

            return ProviderResponse(
                request_id=request.id,
                provider=self.provider_type,
                model=model,
                content=content,
                success=True,
                latency_ms=(time.perf_counter() - start_time) * 1000,
                usage=UsageStats(
                    prompt_tokens=usage_data.get("prompt_tokens", 0),
                    completion_tokens=usage_data.get("completion_tokens", 0),
                    total_tokens=usage_data.get("total_tokens", 0),
                ),
            )

        except httpx.TimeoutException:
            return self._failure(
                request,
                model,
                start_time,
                "timeout",
                f"Request timed out after {self.config.timeout_seconds}s",
            )
        except (KeyError, IndexError, ValueError) as e:
            return self._failure(
                request, model, start_time, "malformed_response", str(e), retryable=False
            )
        except httpx.HTTPError as e:
            return self._failure(request, model, start_time, "exception", str(e))


class OpenAIProvider(ChatCompletionsProvider):
    """Direct OpenAI provider."""

    provider_type = ProviderType.OPENAI
    default_base_url = "https://api.openai.com/v1"

    def _model_name(self, model: str) -> str:
        # Accept OpenRouter-style names
        return model.removeprefix("openai/")


class OpenRouterProvider(ChatCompletionsProvider):
    """OpenRouter aggregator provider."""

    provider_type = ProviderType.OPENROUTER
    default_base_url = "https://openrouter.ai/api/v1"

    def _headers(self) -> dict[str, str]:
        headers = super()._headers()
        headers["X-Title"] = "Website Effectiveness Scoring"
        return headers

    def _model_name(self, model: str) -> str:
        return model if "/" in model else f"openai/{model}"


class MockProvider(ClassificationProvider):
    """Mock provider for testing and local development.

    Without a preset response it answers with a JSON object built from the
    request's response shape, with every boolean true.
    """

    provider_type = ProviderType.MOCK

    def __init__(self, config: ProviderConfig | None = None):
        super().__init__(config or ProviderConfig())
        self.default_response: str | None = None
        self.queued: list[str] = []
        self.responder: Callable[[ClassificationRequest], str] | None = None
        self.should_fail: bool = False
        self.fail_count: int = 0
        self.calls: list[ClassificationRequest] = []

    def set_response(self, content: str | dict) -> None:
        """Answer every request with ``content``."""
        self.default_response = content if isinstance(content, str) else json.dumps(content)

    def queue_response(self, content: str | dict) -> None:
        """Answer the next request with ``content``."""
        self.queued.append(content if isinstance(content, str) else json.dumps(content))

    def set_failure_mode(self, should_fail: bool, fail_count: int = 1) -> None:
        """Configure failure behavior."""
        self.should_fail = should_fail
        self.fail_count = fail_count

    async def complete(self, request: ClassificationRequest) -> ProviderResponse:
        self.calls.append(request)
        start_time = time.perf_counter()

        if self.should_fail and self.fail_count > 0:
            self.fail_count -= 1
            return self._failure(
                request, request.model, start_time, "mock_failure", "Simulated failure"
            )

        if self.queued:
            content = self.queued.pop(0)
        elif self.responder is not None:
            content = self.responder(request)
        elif self.default_response is not None:
            content = self.default_response
        else:
            content = json.dumps(mock_payload(request.response_shape or {}))

        return ProviderResponse(
            request_id=request.id,
            provider=self.provider_type,
            model=request.model,
            content=content,
            success=True,
            latency_ms=1.0,
            usage=UsageStats(
                prompt_tokens=len(request.prompt.split()),
                completion_tokens=len(content.split()),
                total_tokens=len(request.prompt.split()) + len(content.split()),
            ),
        )


def mock_payload(shape: dict[str, str]) -> dict[str, Any]:
    """Plausible answer for a response shape."""
    payload: dict[str, Any] = {}
    for key, kind in shape.items():
        if key == "confidence":
            payload[key] = 0.9
        elif kind.startswith("boolean"):
            payload[key] = True
        elif kind.startswith("number"):
            payload[key] = 1
        elif kind.startswith("array"):
            payload[key] = []
        elif kind.startswith("object"):
            payload[key] = {}
        else:
            payload[key] = f"mock {key.replace('_', ' ')}"
    return payload


def get_provider(
    provider_type: ProviderType | str,
    config: ProviderConfig | None = None,
) -> ClassificationProvider:
    """Factory function to get a classification provider."""
    if config is None:
        config = ProviderConfig()

    providers: dict[ProviderType, type[ClassificationProvider]] = {
        ProviderType.OPENAI: OpenAIProvider,
        ProviderType.OPENROUTER: OpenRouterProvider,
        ProviderType.MOCK: MockProvider,
    }

    try:
        provider_class = providers[ProviderType(provider_type)]
    except (KeyError, ValueError):
        raise ValueError(f"Unknown provider type: {provider_type}") from None
    return provider_class(config)
