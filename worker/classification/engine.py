"""Classification engine: structured prompts in, ``Parsed | Fallback`` out.

Callers never see an exception from ``classify``. Provider errors, timeouts
and unparseable responses all come back as a ``Fallback`` with zero
confidence, so each scorer decides explicitly how to degrade.
"""

from __future__ import annotations

import asyncio
import base64
import json
import mimetypes
import re
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

import structlog

from worker.classification.breaker import CircuitBreaker
from worker.classification.models import ClassificationRequest, ProviderResponse
from worker.classification.providers import (
    ClassificationProvider,
    ProviderConfig,
    get_provider,
)

logger = structlog.get_logger(__name__)

DEFAULT_CONFIDENCE = 0.8
_FENCE_PATTERN = re.compile(r"^```(?:json)?\s*|\s*```$", re.IGNORECASE)


@dataclass
class Parsed:
    """Structured response that matched the requested shape."""

    data: dict[str, Any]
    confidence: float = DEFAULT_CONFIDENCE
    raw: str = ""

    def get(self, key: str, default: Any = None) -> Any:
        return self.data.get(key, default)

    def flag(self, key: str) -> bool:
        """Boolean field, tolerant of "true"/"yes" strings."""
        value = self.data.get(key)
        if isinstance(value, str):
            return value.strip().lower() in ("true", "yes", "1")
        return bool(value)


@dataclass
class Fallback:
    """Substitute result when no usable structured response was obtained."""

    reason: str
    raw: str = ""
    confidence: float = 0.0
    details: dict[str, Any] = field(default_factory=dict)


ClassificationResult = Parsed | Fallback


class ClassificationEngine:
    """
    Thin wrapper over a provider that requests and validates JSON output.

    At most ``max_concurrency`` provider requests are in flight at once, and
    repeated provider failures open a circuit breaker that answers with a
    ``Fallback`` until the provider has had time to recover.
    """

    def __init__(
        self,
        provider: ClassificationProvider | None,
        model: str = "gpt-4o",
        temperature: float = 0.1,
        max_tokens: int = 1000,
        max_retries: int = 2,
        retry_delay_seconds: float = 1.0,
        max_concurrency: int = 3,
        breaker: CircuitBreaker | None = None,
    ):
        self.provider = provider
        self.model = model
        self.temperature = temperature
        self.max_tokens = max_tokens
        self.max_retries = max_retries
        self.retry_delay_seconds = retry_delay_seconds
        self.max_concurrency = max_concurrency
        self.breaker = breaker or CircuitBreaker("classifier")
        self._slots = asyncio.Semaphore(max_concurrency)

    @property
    def available(self) -> bool:
        return self.provider is not None

    async def classify(
        self,
        prompt: str,
        image: str | bytes | None = None,
        shape: dict[str, str] | None = None,
        *,
        system_prompt: str | None = None,
        model: str | None = None,
        temperature: float | None = None,
        max_tokens: int | None = None,
    ) -> ClassificationResult:
        """Classify ``prompt`` (optionally with an image) into ``shape``."""
        if self.provider is None:
            return Fallback(reason="classifier_unavailable")
        if not self.breaker.allow():
            logger.info("classification_circuit_open", retry_after=self.breaker.retry_after())
            return Fallback(
                reason="circuit_open",
                details={"retry_after_seconds": round(self.breaker.retry_after(), 1)},
            )

        try:
            image_url = encode_image(image) if image is not None else None
        except OSError as e:
            logger.warning("classification_image_unreadable", error=str(e))
            image_url = None

        request = ClassificationRequest(
            prompt=prompt,
            model=model or self.model,
            system_prompt=system_prompt,
            image_url=image_url,
            temperature=self.temperature if temperature is None else temperature,
            max_tokens=max_tokens or self.max_tokens,
            response_shape=shape,
        )

        try:
            response = await self._complete_with_retries(request)
        except asyncio.CancelledError:
            self.breaker.abandon()
            raise
        except Exception as e:
            logger.warning("classification_provider_exception", error=str(e), exc_info=True)
            self.breaker.record_failure(str(e))
            return Fallback(reason="provider_exception", details={"error": str(e)})

        if not response.success:
            error = response.error
            self.breaker.record_failure(error.message if error else "")
            return Fallback(
                reason="provider_error",
                details={"error": error.to_dict() if error else None},
            )

        self.breaker.record_success()
        return parse_response(response.content, shape)

    async def _complete_with_retries(self, request: ClassificationRequest) -> ProviderResponse:
        assert self.provider is not None
        attempt = 0
        while True:
            async with self._slots:
                response = await self.provider.complete(request)
            retryable = response.error is not None and response.error.retryable
            if response.success or not retryable or attempt >= self.max_retries:
                if not response.success:
                    logger.warning(
                        "classification_failed",
                        provider=response.provider.value,
                        model=response.model,
                        attempts=attempt + 1,
                        error=response.error.message if response.error else None,
                    )
                return response
            attempt += 1
            logger.info(
                "classification_retry",
                attempt=attempt,
                error=response.error.message if response.error else None,
            )
            await asyncio.sleep(self.retry_delay_seconds * attempt)


def parse_response(content: str, shape: dict[str, str] | None) -> ClassificationResult:
    """Parse a raw completion into ``Parsed`` or a zero-confidence ``Fallback``."""
    text = _FENCE_PATTERN.sub("", content.strip())
    try:
        data = json.loads(text)
    except (json.JSONDecodeError, TypeError):
        logger.warning("classification_parse_failed", raw=content[:1000])
        return Fallback(reason="invalid_json", raw=content)

    if not isinstance(data, dict):
        logger.warning("classification_not_object", raw=content[:1000])
        return Fallback(reason="invalid_json", raw=content)

    confidence = _confidence(data.get("confidence"))
    if shape:
        present = [key for key in shape if key in data]
        if not present:
            logger.warning("classification_shape_mismatch", raw=content[:1000])
            return Fallback(reason="shape_mismatch", raw=content)
        for key, kind in shape.items():
            if key not in data:
                data[key] = _default_for(kind)

    return Parsed(data=data, confidence=confidence, raw=content)


def _confidence(value: Any) -> float:
    if value is None or isinstance(value, bool):
        return DEFAULT_CONFIDENCE
    try:
        confidence = float(value)
    except (TypeError, ValueError):
        return DEFAULT_CONFIDENCE
    # Some models answer on a 0-100 scale
    if confidence > 1.0:
        confidence = confidence / 100.0
    return max(0.0, min(1.0, confidence))


def _default_for(kind: str) -> Any:
    if "null" in kind:
        return None
    if kind.startswith("boolean"):
        return False
    if kind.startswith("number"):
        return 0
    if kind.startswith("array"):
        return []
    if kind.startswith("object"):
        return {}
    return ""


def encode_image(image: str | bytes) -> str:
    """Turn a local path, raw bytes or URL into something the API accepts."""
    if isinstance(image, bytes):
        return "data:image/png;base64," + base64.b64encode(image).decode("ascii")
    if image.startswith(("http://", "https://", "data:")):
        return image
    path = Path(image)
    mime = mimetypes.guess_type(path.name)[0] or "image/png"
    return f"data:{mime};base64," + base64.b64encode(path.read_bytes()).decode("ascii")


def build_engine(settings: Any = None) -> ClassificationEngine:
    """Engine wired to the configured provider (no provider when unconfigured)."""
    if settings is None:
        from api.config import get_settings

        settings = get_settings()

    provider_name = settings.resolved_classifier_provider
    provider: ClassificationProvider | None = None
    if provider_name:
        api_key = (
            settings.openrouter_api_key
            if provider_name == "openrouter"
            else settings.openai_api_key
        )
        provider = get_provider(
            provider_name,
            ProviderConfig(
                api_key=api_key or "",
                timeout_seconds=settings.classifier_timeout_seconds,
            ),
        )

    return ClassificationEngine(
        provider,
        model=settings.classifier_model,
        temperature=settings.classifier_temperature,
        max_tokens=settings.classifier_max_tokens,
        max_retries=settings.classifier_max_retries,
        max_concurrency=settings.classifier_max_concurrency,
        breaker=CircuitBreaker(
            provider_name or "classifier",
            failure_threshold=settings.classifier_breaker_threshold,
            reset_seconds=settings.classifier_breaker_reset_seconds,
        ),
    )
