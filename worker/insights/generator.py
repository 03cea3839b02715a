"""Narrative insights over a completed run's criterion results."""

from __future__ import annotations

from collections.abc import Sequence
from dataclasses import dataclass, field
from datetime import UTC, datetime
from typing import Any

import structlog

from api.metrics import record_insights
from worker.classification.engine import ClassificationEngine, Fallback
from worker.classification.prompts import INSIGHTS_PROMPT, INSIGHTS_SHAPE, SYSTEM_PROMPT
from worker.scoring.types import CriterionResult

logger = structlog.get_logger(__name__)

MAX_QUICK_WINS = 3
MAX_STRATEGIC_INITIATIVES = 2
ACTION_FIELDS = ("action", "priority", "effort", "expected_impact", "rationale", "timeline")


@dataclass
class InsightsRequest:
    client_name: str
    website_url: str
    overall_score: float | None
    results: Sequence[CriterionResult] = field(default_factory=list)
    industry: str | None = None
    business_size: str | None = None


def format_criteria(results: Sequence[CriterionResult]) -> str:
    lines = []
    for result in results:
        failed = ", ".join(result.passes.failed) or "none"
        lines.append(
            f"- {result.criterion}: {result.score}/10 "
            f"({result.evidence.description}). Failed checks: {failed}"
        )
    return "\n".join(lines) or "No criterion data available"


def format_evidence(results: Sequence[CriterionResult]) -> str:
    lines = [
        f"- {result.criterion}: {result.evidence.reasoning}"
        for result in results
        if result.evidence.reasoning
    ]
    return "\n".join(lines) or "No evidence available"


def _normalize_action(item: Any) -> dict[str, Any] | None:
    if isinstance(item, str):
        return {"action": item}
    if not isinstance(item, dict) or not item.get("action"):
        return None
    return {k: item[k] for k in (*ACTION_FIELDS, "roi_potential") if k in item}


def normalize_insights(data: dict[str, Any], confidence: float) -> dict[str, Any]:
    """Coerce classifier output into the stored insights document."""

    def text(key: str) -> str:
        value = data.get(key)
        return value.strip() if isinstance(value, str) else ""

    def actions(key: str, limit: int) -> list[dict[str, Any]]:
        raw = data.get(key)
        if not isinstance(raw, list):
            return []
        normalized = [a for a in (_normalize_action(item) for item in raw) if a]
        return normalized[:limit]

    return {
        "primary_issue": text("primary_issue"),
        "root_cause": text("root_cause"),
        "business_impact": text("business_impact"),
        "key_insight": text("key_insight"),
        "quick_wins": actions("quick_wins", MAX_QUICK_WINS),
        "strategic_initiatives": actions("strategic_initiatives", MAX_STRATEGIC_INITIATIVES),
        "interconnected_benefits": text("interconnected_benefits"),
        "industry_considerations": text("industry_considerations"),
        "confidence": confidence,
        "generated_at": datetime.now(UTC).isoformat(),
    }


class InsightsGenerator:
    """Best-effort: returns None instead of raising when generation fails."""

    def __init__(
        self,
        engine: ClassificationEngine,
        model: str | None = None,
        temperature: float = 0.3,
        max_tokens: int = 1500,
    ):
        self.engine = engine
        self.model = model
        self.temperature = temperature
        self.max_tokens = max_tokens

    @classmethod
    def from_settings(cls, engine: ClassificationEngine, settings: Any) -> InsightsGenerator:
        return cls(
            engine,
            model=settings.insights_model or settings.classifier_model,
            temperature=settings.insights_temperature,
            max_tokens=settings.insights_max_tokens,
        )

    async def generate(self, request: InsightsRequest) -> dict[str, Any] | None:
        log = logger.bind(client_name=request.client_name, website_url=request.website_url)
        overall = "N/A" if request.overall_score is None else f"{request.overall_score}"
        prompt = INSIGHTS_PROMPT.format(
            client_name=request.client_name,
            industry=request.industry or "general",
            business_size=request.business_size or "unspecified size",
            website_url=request.website_url,
            overall_score=overall,
            criteria_data=format_criteria(request.results),
            evidence_summary=format_evidence(request.results),
        )

        try:
            result = await self.engine.classify(
                prompt,
                shape=INSIGHTS_SHAPE,
                system_prompt=SYSTEM_PROMPT,
                model=self.model,
                temperature=self.temperature,
                max_tokens=self.max_tokens,
            )
        except Exception as e:
            log.warning("insights_generation_failed", error=str(e), exc_info=True)
            record_insights(False)
            return None

        if isinstance(result, Fallback):
            log.warning("insights_generation_fallback", reason=result.reason)
            record_insights(False)
            return None

        insights = normalize_insights(result.data, result.confidence)
        record_insights(True)
        log.info(
            "insights_generated",
            quick_wins=len(insights["quick_wins"]),
            strategic_initiatives=len(insights["strategic_initiatives"]),
        )
        return insights
