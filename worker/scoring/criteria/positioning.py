"""Positioning criterion: is the hero clear about who, what and why?"""

from __future__ import annotations

import asyncio

import structlog

from worker.classification.engine import ClassificationEngine, Fallback
from worker.classification.prompts import HERO_PROMPT, HERO_SHAPE, IMAGE_HINT, SYSTEM_PROMPT
from worker.scoring.config import ScoringConfig
from worker.scoring.criteria.base import CriterionScorer
from worker.scoring.criteria.content import extract_hero_content, find_buzzwords
from worker.scoring.types import (
    CLASSIFICATION_FALLBACK,
    Criterion,
    CriterionResult,
    Evidence,
    Passes,
    ScoringContext,
)

logger = structlog.get_logger(__name__)

BUZZWORD_PENALTY = 0.5

# (classifier field, passed marker, failed marker)
SUB_CHECKS = (
    ("audience_named", "audience_named", "no_audience_named"),
    ("outcome_present", "outcome_present", "no_outcome_present"),
    ("capability_clear", "capability_clear", "capability_unclear"),
    ("brevity_check", "brevity_check", "too_verbose"),
)
POINTS_PER_CHECK = 10.0 / len(SUB_CHECKS)


class PositioningScorer(CriterionScorer):
    criterion = Criterion.POSITIONING.value
    label = "positioning"
    tier = "classifier"

    def __init__(self, engine: ClassificationEngine):
        self.engine = engine

    async def evaluate(self, context: ScoringContext, config: ScoringConfig) -> CriterionResult:
        hero = await asyncio.to_thread(extract_hero_content, context.html or "")
        content = hero["content"]

        if not content:
            return CriterionResult(
                criterion=self.criterion,
                score=0.0,
                evidence=Evidence(
                    description="No hero content found",
                    details={"h1": "", "contentLength": 0},
                    reasoning="The page has no identifiable headline or hero copy to evaluate",
                ),
                passes=Passes(passed=[], failed=[failed for _, _, failed in SUB_CHECKS]),
            )

        image = context.best_image
        prompt = HERO_PROMPT.format(
            hero_words=config.thresholds.hero_words,
            image_hint=IMAGE_HINT if image else "",
            content=content,
        )
        result = await self.engine.classify(
            prompt,
            image=image,
            shape=HERO_SHAPE,
            system_prompt=SYSTEM_PROMPT,
            model=config.classifier.model,
            temperature=config.classifier.temperature,
            max_tokens=config.classifier.max_tokens,
        )

        buzzwords = find_buzzwords(content, config.buzzwords)

        if isinstance(result, Fallback):
            logger.warning(
                "positioning_classification_fallback",
                url=context.website_url,
                reason=result.reason,
            )
            return CriterionResult(
                criterion=self.criterion,
                score=0.0,
                evidence=Evidence(
                    description="Positioning could not be classified",
                    details={
                        "fallbackReason": result.reason,
                        "heroContent": content[:200],
                        "buzzwordsFound": buzzwords,
                        "confidence": result.confidence,
                    },
                    reasoning="The classifier did not return a usable structured answer",
                ),
                passes=Passes(passed=[], failed=[CLASSIFICATION_FALLBACK]),
            )

        passes = Passes()
        details: dict = {}
        score = 0.0
        for field, passed_name, failed_name in SUB_CHECKS:
            if passes.check(result.flag(field), passed_name, failed_name):
                score += POINTS_PER_CHECK
            evidence_key = field.split("_")[0] + "_evidence"
            if result.get(evidence_key):
                details[evidence_key] = result.get(evidence_key)

        penalty = BUZZWORD_PENALTY * len(buzzwords)
        if buzzwords:
            passes.failed.append("buzzwords_detected")
        raw_score = score - penalty
        score = raw_score * result.confidence

        return CriterionResult(
            criterion=self.criterion,
            score=score,
            evidence=Evidence(
                description=f"Positioning analysis: {len(passes.passed)}/{len(SUB_CHECKS)} criteria met",
                details={
                    **details,
                    "h1": hero["h1"][:120],
                    "heroContent": content[:300],
                    "buzzwordsFound": buzzwords,
                    "buzzwordPenalty": penalty,
                    "confidence": result.confidence,
                    "usedScreenshot": image is not None,
                },
                reasoning=(
                    f"{len(passes.passed)} of {len(SUB_CHECKS)} hero checks passed, "
                    f"{len(buzzwords)} buzzword(s) penalised, scaled by classifier "
                    f"confidence {result.confidence:.2f}"
                ),
            ),
            passes=passes,
        )
