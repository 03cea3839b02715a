"""Scoring configuration: defaults plus admin overrides, fixed for one run."""

from __future__ import annotations

import copy
from typing import Any

from pydantic import BaseModel, ConfigDict, Field

DEFAULT_BUZZWORDS: tuple[str, ...] = (
    "transformative",
    "revolutionary",
    "AI-driven",
    "cutting-edge",
    "innovative",
    "next-generation",
    "groundbreaking",
    "disruptive",
)

# Top-level keys an admin may override
CONFIG_KEYS = ("buzzwords", "thresholds", "viewport", "classifier", "timeouts")


class FrozenConfig(BaseModel):
    """Immutable, closed config section. Unknown keys are rejected."""

    model_config = ConfigDict(frozen=True, extra="forbid")


class Thresholds(FrozenConfig):
    recent_months: int = Field(default=24, gt=0)
    hero_words: int = Field(default=22, gt=0)
    cta_dominance: float = Field(default=1.15, gt=0)
    proof_distance_px: int = Field(default=600, gt=0)
    lcp_limit: float = Field(default=3.0, gt=0)
    cls_limit: float = Field(default=0.1, gt=0)


class Viewport(FrozenConfig):
    width: int = Field(default=1440, ge=320, le=7680)
    height: int = Field(default=900, ge=240, le=4320)


class ClassifierParams(FrozenConfig):
    model: str = Field(default="gpt-4o", min_length=1)
    temperature: float = Field(default=0.1, ge=0, le=2)
    max_tokens: int = Field(default=1000, gt=0)


class ScorerTimeouts(FrozenConfig):
    """Per-tier ceilings in seconds for the timeout wrapper."""

    html: float = Field(default=15.0, gt=0)
    classifier: float = Field(default=45.0, gt=0)
    external: float = Field(default=45.0, gt=0)

    def for_tier(self, tier: str) -> float:
        return float(getattr(self, tier, self.html))


class ScoringConfig(FrozenConfig):
    """Immutable per-run configuration passed to every scorer."""

    buzzwords: tuple[str, ...] = DEFAULT_BUZZWORDS
    thresholds: Thresholds = Field(default_factory=Thresholds)
    viewport: Viewport = Field(default_factory=Viewport)
    classifier: ClassifierParams = Field(default_factory=ClassifierParams)
    timeouts: ScorerTimeouts = Field(default_factory=ScorerTimeouts)

    def to_dict(self) -> dict[str, Any]:
        return self.model_dump(mode="json")

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> ScoringConfig:
        """Validate a plain mapping; raises pydantic ``ValidationError`` on bad values."""
        return cls.model_validate(data)

    @classmethod
    def with_overrides(
        cls, overrides: dict[str, Any], base: ScoringConfig | None = None
    ) -> ScoringConfig:
        """Merge override keys over ``base`` (defaults when omitted)."""
        merged = merge_config((base or cls()).to_dict(), overrides)
        return cls.from_dict(merged)


def merge_config(base: dict[str, Any], overrides: dict[str, Any]) -> dict[str, Any]:
    """Deep-merge mappings; lists and scalars in ``overrides`` replace outright."""
    merged = copy.deepcopy(base)
    for key, value in overrides.items():
        if isinstance(value, dict) and isinstance(merged.get(key), dict):
            merged[key] = merge_config(merged[key], value)
        else:
            merged[key] = copy.deepcopy(value)
    return merged
