"""Brand story criterion: point of view, mechanism, recent outcomes and proof."""

from __future__ import annotations

import asyncio

import structlog

from worker.classification.engine import ClassificationEngine, Fallback
from worker.classification.prompts import IMAGE_HINT, STORY_PROMPT, STORY_SHAPE, SYSTEM_PROMPT
from worker.scoring.config import ScoringConfig
from worker.scoring.criteria.base import CriterionScorer
from worker.scoring.criteria.content import extract_story_content
from worker.scoring.types import (
    CLASSIFICATION_FALLBACK,
    Criterion,
    CriterionResult,
    Evidence,
    Passes,
    ScoringContext,
)

logger = structlog.get_logger(__name__)

MIN_STORY_CHARS = 100

SUB_CHECKS = (
    ("pov_present", "pov", "pov_present", "no_clear_pov"),
    ("mechanism_named", "mechanism", "mechanism_described", "no_clear_approach"),
    ("outcomes_recent", "outcomes", "outcomes_stated", "no_recent_outcomes"),
    ("case_complete", "case", "case_study_complete", "no_complete_case_study"),
)
POINTS_PER_CHECK = 10.0 / len(SUB_CHECKS)


class BrandStoryScorer(CriterionScorer):
    criterion = Criterion.BRAND_STORY.value
    label = "brand story"
    tier = "classifier"

    def __init__(self, engine: ClassificationEngine):
        self.engine = engine

    async def evaluate(self, context: ScoringContext, config: ScoringConfig) -> CriterionResult:
        content = await asyncio.to_thread(extract_story_content, context.html or "")

        if len(content) < MIN_STORY_CHARS:
            return CriterionResult(
                criterion=self.criterion,
                score=0.0,
                evidence=Evidence(
                    description="Insufficient content for brand story analysis",
                    details={"contentLength": len(content)},
                    reasoning=(
                        f"Found only {len(content)} characters of narrative copy; "
                        f"at least {MIN_STORY_CHARS} are needed"
                    ),
                ),
                passes=Passes(passed=[], failed=["insufficient_content"]),
            )

        image = context.best_image
        result = await self.engine.classify(
            STORY_PROMPT.format(
                recent_months=config.thresholds.recent_months,
                image_hint=IMAGE_HINT if image else "",
                content=content,
            ),
            image=image,
            shape=STORY_SHAPE,
            system_prompt=SYSTEM_PROMPT,
            model=config.classifier.model,
            temperature=config.classifier.temperature,
            max_tokens=config.classifier.max_tokens,
        )

        if isinstance(result, Fallback):
            logger.warning(
                "brand_story_classification_fallback",
                url=context.website_url,
                reason=result.reason,
            )
            return CriterionResult(
                criterion=self.criterion,
                score=0.0,
                evidence=Evidence(
                    description="Brand story could not be classified",
                    details={"fallbackReason": result.reason, "contentLength": len(content)},
                    reasoning="The classifier did not return a usable structured answer",
                ),
                passes=Passes(passed=[], failed=[CLASSIFICATION_FALLBACK]),
            )

        passes = Passes()
        details: dict = {"contentLength": len(content), "confidence": result.confidence}
        score = 0.0
        for field, prefix, passed_name, failed_name in SUB_CHECKS:
            if passes.check(result.flag(field), passed_name, failed_name):
                score += POINTS_PER_CHECK
                evidence = result.get(f"{prefix}_evidence")
                if evidence and evidence != "none found":
                    details[f"{prefix}_evidence"] = evidence

        return CriterionResult(
            criterion=self.criterion,
            score=score * result.confidence,
            evidence=Evidence(
                description=(
                    f"Brand story analysis: {len(passes.passed)}/{len(SUB_CHECKS)} criteria met"
                ),
                details=details,
                reasoning=(
                    f"{len(passes.passed)} story elements found, scaled by classifier "
                    f"confidence {result.confidence:.2f}"
                ),
            ),
            passes=passes,
        )
