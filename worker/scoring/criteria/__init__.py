"""Criterion scorer registry.

The registry is a fixed, ordered list. Adding a criterion means adding a
``CriterionScorer`` subclass and one entry in ``build_scorers``; the
orchestrator iterates whatever it is given.
"""

from __future__ import annotations

from typing import Any

from worker.classification.engine import ClassificationEngine
from worker.scoring.criteria.accessibility import AccessibilityScorer
from worker.scoring.criteria.base import CriterionScorer, HtmlCriterionScorer
from worker.scoring.criteria.brand_story import BrandStoryScorer
from worker.scoring.criteria.ctas import CTAScorer
from worker.scoring.criteria.positioning import PositioningScorer
from worker.scoring.criteria.seo import SEOScorer
from worker.scoring.criteria.speed import SpeedScorer
from worker.scoring.criteria.trust import TrustScorer
from worker.scoring.criteria.ux import UXScorer


def build_scorers(engine: ClassificationEngine, settings: Any = None) -> list[CriterionScorer]:
    """Scorers in registry order: positioning, ux, brand_story, trust, ctas, speed, accessibility, seo."""
    pagespeed_key = getattr(settings, "pagespeed_api_key", None) if settings else None
    return [
        PositioningScorer(engine),
        UXScorer(),
        BrandStoryScorer(engine),
        TrustScorer(),
        CTAScorer(),
        SpeedScorer(pagespeed_api_key=pagespeed_key),
        AccessibilityScorer(),
        SEOScorer(),
    ]


__all__ = [
    "AccessibilityScorer",
    "BrandStoryScorer",
    "CTAScorer",
    "CriterionScorer",
    "HtmlCriterionScorer",
    "PositioningScorer",
    "SEOScorer",
    "SpeedScorer",
    "TrustScorer",
    "UXScorer",
    "build_scorers",
]
