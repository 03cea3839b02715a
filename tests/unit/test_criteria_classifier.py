"""Tests for the classifier-backed positioning and brand story scorers."""

import pytest

from worker.classification.engine import ClassificationEngine
from worker.classification.providers import MockProvider
from worker.scoring.config import ScoringConfig
from worker.scoring.criteria import BrandStoryScorer, PositioningScorer
from worker.scoring.criteria.content import (
    extract_hero_content,
    extract_story_content,
    find_buzzwords,
)
from worker.scoring.types import CLASSIFICATION_FALLBACK, ScoringContext

CONFIG = ScoringConfig()

HERO_HTML = """
<html><body>
  <section class="hero">
    <h1>Revolutionary payroll for restaurant owners</h1>
    <h2>Run payroll in five minutes and never miss a tax filing</h2>
    <p>Acme calculates wages, tips and taxes for every shift automatically.</p>
  </section>
</body></html>
"""

STORY_HTML = """
<html><head><meta name="description" content="Acme builds payroll software for restaurants."></head>
<body>
  <section class="about">
    <h2>Our story</h2>
    <p>We started Acme after watching restaurant owners spend their Sundays on payroll
    spreadsheets. Our approach connects your point of sale directly to payroll.</p>
  </section>
  <blockquote class="testimonial">In 2026 Acme cut our payroll time by 80 percent. - Rosa, owner</blockquote>
</body></html>
"""

ALL_TRUE_HERO = {
    "audience_named": True,
    "audience_evidence": "restaurant owners",
    "outcome_present": True,
    "outcome_evidence": "five minutes",
    "capability_clear": True,
    "capability_evidence": "payroll",
    "brevity_check": True,
    "brevity_evidence": "short",
    "confidence": 1.0,
}


def make_scorer(cls, provider: MockProvider):
    return cls(ClassificationEngine(provider, retry_delay_seconds=0))


class TestPositioningScorer:
    """Tests for hero classification scoring."""

    @pytest.mark.asyncio
    async def test_buzzword_penalty(self):
        provider = MockProvider()
        provider.set_response(ALL_TRUE_HERO)
        scorer = make_scorer(PositioningScorer, provider)

        result = await scorer.score(ScoringContext(website_url="https://acme.example", html=HERO_HTML), CONFIG)

        # 4 checks x 2.5, minus 0.5 for "revolutionary", at full confidence
        assert result.score == 9.5
        assert result.evidence.details["buzzwordsFound"] == ["revolutionary"]
        assert "buzzwords_detected" in result.passes.failed
        assert result.evidence.details["audience_evidence"] == "restaurant owners"

    @pytest.mark.asyncio
    async def test_confidence_scales_score(self):
        provider = MockProvider()
        provider.set_response({**ALL_TRUE_HERO, "confidence": 0.5})
        scorer = make_scorer(PositioningScorer, provider)

        result = await scorer.score(ScoringContext(website_url="https://acme.example", html=HERO_HTML), CONFIG)

        assert result.score == pytest.approx(4.8, abs=0.05)

    @pytest.mark.asyncio
    async def test_failed_checks_are_recorded(self):
        provider = MockProvider()
        provider.set_response(
            {**ALL_TRUE_HERO, "audience_named": False, "brevity_check": False}
        )
        scorer = make_scorer(PositioningScorer, provider)
        config = ScoringConfig(buzzwords=())

        result = await scorer.score(ScoringContext(website_url="https://acme.example", html=HERO_HTML), config)

        assert result.score == 5.0
        assert result.passes.failed == ["no_audience_named", "too_verbose"]

    @pytest.mark.asyncio
    async def test_no_hero_content_scores_zero(self):
        provider = MockProvider()
        scorer = make_scorer(PositioningScorer, provider)

        result = await scorer.score(ScoringContext(website_url="https://acme.example", html=""), CONFIG)

        assert result.score == 0.0
        assert provider.calls == []
        assert "no_audience_named" in result.passes.failed

    @pytest.mark.asyncio
    async def test_unparseable_answer_is_classification_fallback(self):
        provider = MockProvider()
        provider.set_response("The hero looks fine to me")
        scorer = make_scorer(PositioningScorer, provider)

        result = await scorer.score(ScoringContext(website_url="https://acme.example", html=HERO_HTML), CONFIG)

        assert result.score == 0.0
        assert result.passes.failed == [CLASSIFICATION_FALLBACK]
        assert result.evidence.details["fallbackReason"] == "invalid_json"
        assert result.fallback_reason == "invalid_json"

    @pytest.mark.asyncio
    async def test_prompt_carries_configured_word_limit(self):
        provider = MockProvider()
        scorer = make_scorer(PositioningScorer, provider)
        config = ScoringConfig.with_overrides({"thresholds": {"hero_words": 12}})

        await scorer.score(ScoringContext(website_url="https://acme.example", html=HERO_HTML), config)

        assert "12" in provider.calls[0].prompt


class TestBrandStoryScorer:
    @pytest.mark.asyncio
    async def test_insufficient_content(self):
        provider = MockProvider()
        scorer = make_scorer(BrandStoryScorer, provider)

        result = await scorer.score(
            ScoringContext(website_url="https://acme.example", html="<html><body><h1>Hi</h1></body></html>"),
            CONFIG,
        )

        assert result.score == 0.0
        assert result.passes.failed == ["insufficient_content"]
        assert provider.calls == []

    @pytest.mark.asyncio
    async def test_all_elements_present(self):
        provider = MockProvider()
        provider.set_response(
            {
                "pov_present": True,
                "pov_evidence": "restaurant owners deserve their Sundays",
                "mechanism_named": True,
                "outcomes_recent": True,
                "case_complete": True,
                "case_evidence": "none found",
                "confidence": 1.0,
            }
        )
        scorer = make_scorer(BrandStoryScorer, provider)

        result = await scorer.score(ScoringContext(website_url="https://acme.example", html=STORY_HTML), CONFIG)

        assert result.score == 10.0
        assert result.passes.passed == [
            "pov_present",
            "mechanism_described",
            "outcomes_stated",
            "case_study_complete",
        ]
        assert "pov_evidence" in result.evidence.details
        assert "case_evidence" not in result.evidence.details

    @pytest.mark.asyncio
    async def test_provider_failure_is_fallback(self):
        provider = MockProvider()
        provider.set_failure_mode(True, fail_count=10)
        scorer = make_scorer(BrandStoryScorer, provider)

        result = await scorer.score(ScoringContext(website_url="https://acme.example", html=STORY_HTML), CONFIG)

        assert result.score == 0.0
        assert result.passes.failed == [CLASSIFICATION_FALLBACK]
        assert result.is_fallback


class TestContentExtraction:
    def test_hero_content(self):
        hero = extract_hero_content(HERO_HTML)
        assert hero["h1"] == "Revolutionary payroll for restaurant owners"
        assert hero["subheading"].startswith("Run payroll")
        assert "tips and taxes" in hero["content"]

    def test_story_content_skips_nav_and_footer(self):
        html = STORY_HTML.replace("</body>", "<footer>Privacy policy and cookie settings</footer></body>")
        content = extract_story_content(html)
        assert "point of sale" in content
        assert "cookie settings" not in content

    def test_buzzwords_whole_words_only(self):
        text = "An AI-driven, innovative platform. Innovatively built."
        assert find_buzzwords(text, ("AI-driven", "innovative", "disruptive")) == [
            "AI-driven",
            "innovative",
        ]
