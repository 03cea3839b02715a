"""Classification layer: provider abstraction and parse-or-fallback engine."""

from worker.classification.breaker import CircuitBreaker
from worker.classification.engine import (
    ClassificationEngine,
    ClassificationResult,
    Fallback,
    Parsed,
    build_engine,
)
from worker.classification.models import ClassificationRequest, ProviderResponse, ProviderType
from worker.classification.providers import (
    MockProvider,
    OpenAIProvider,
    OpenRouterProvider,
    ProviderConfig,
    get_provider,
)

__all__ = [
    "CircuitBreaker",
    "ClassificationEngine",
    "ClassificationResult",
    "ClassificationRequest",
    "Fallback",
    "Parsed",
    "ProviderResponse",
    "ProviderType",
    "ProviderConfig",
    "MockProvider",
    "OpenAIProvider",
    "OpenRouterProvider",
    "build_engine",
    "get_provider",
]
