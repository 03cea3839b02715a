"""Scorer interface shared by every criterion."""

from __future__ import annotations

import asyncio
from abc import ABC, abstractmethod
from typing import ClassVar, Literal

import structlog
from bs4 import BeautifulSoup

from worker.scoring.config import ScoringConfig
from worker.scoring.types import CriterionResult, ScoringContext

logger = structlog.get_logger(__name__)

MIN_HTML_LENGTH = 100

Tier = Literal["html", "classifier", "external"]


class InsufficientContentError(Exception):
    """Raised when there is not enough page content to evaluate a criterion."""


class CriterionScorer(ABC):
    """One criterion. ``score`` never raises; failures become zero results."""

    criterion: ClassVar[str]
    label: ClassVar[str]
    # Which timeout ceiling applies (see ScorerTimeouts)
    tier: ClassVar[Tier] = "html"
    # Neutral score substituted when the timeout wrapper fires
    timeout_fallback_score: ClassVar[float] = 5.0

    async def score(self, context: ScoringContext, config: ScoringConfig) -> CriterionResult:
        try:
            result = await self.evaluate(context, config)
        except asyncio.CancelledError:
            raise
        except Exception as e:
            logger.warning(
                "criterion_analysis_failed",
                criterion=self.criterion,
                url=context.website_url,
                error=str(e),
                error_type=type(e).__name__,
            )
            return CriterionResult.failed(self.criterion, e, self.label)

        if result.criterion != self.criterion:
            result.criterion = self.criterion
        return result

    @abstractmethod
    async def evaluate(self, context: ScoringContext, config: ScoringConfig) -> CriterionResult:
        """Compute the result. May raise; ``score`` converts errors."""
        ...


class HtmlCriterionScorer(CriterionScorer):
    """Scorer that only parses HTML. Runs in a thread so timeouts stay enforceable."""

    # Use the static fetch instead of the rendered DOM when available
    prefer_initial_html: ClassVar[bool] = False

    async def evaluate(self, context: ScoringContext, config: ScoringConfig) -> CriterionResult:
        html = self.source_html(context)
        if len(html) < MIN_HTML_LENGTH:
            raise InsufficientContentError(
                f"Insufficient HTML data for {self.criterion} analysis"
            )
        return await asyncio.to_thread(self.evaluate_html, html, context, config)

    def source_html(self, context: ScoringContext) -> str:
        if self.prefer_initial_html and context.initial_html:
            return context.initial_html
        return context.html or context.initial_html or ""

    @abstractmethod
    def evaluate_html(
        self, html: str, context: ScoringContext, config: ScoringConfig
    ) -> CriterionResult: ...


def parse_html(html: str) -> BeautifulSoup:
    return BeautifulSoup(html, "html.parser")


def class_string(element) -> str:
    """Lowercased class attribute of a bs4 element."""
    classes = element.get("class") or []
    if isinstance(classes, str):
        return classes.lower()
    return " ".join(classes).lower()
