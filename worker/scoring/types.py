"""Core value types shared by acquisition, scorers and the orchestrator."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import StrEnum
from typing import Any

ANALYSIS_FAILED = "analysis_failed"
TIMEOUT_FALLBACK = "timeout_fallback"
CLASSIFICATION_FALLBACK = "classification_fallback"

MIN_SCORE = 0.0
MAX_SCORE = 10.0


class Criterion(StrEnum):
    """Closed set of effectiveness criteria, in registry order."""

    POSITIONING = "positioning"
    UX = "ux"
    BRAND_STORY = "brand_story"
    TRUST = "trust"
    CTAS = "ctas"
    SPEED = "speed"
    ACCESSIBILITY = "accessibility"
    SEO = "seo"


ALL_CRITERIA: tuple[str, ...] = tuple(c.value for c in Criterion)


def clamp_score(value: float) -> float:
    """Clamp to [0, 10], treating NaN as 0."""
    if value != value:
        return MIN_SCORE
    return max(MIN_SCORE, min(MAX_SCORE, float(value)))


def round_score(value: float) -> float:
    """Clamp and round to one decimal place."""
    return round(clamp_score(value), 1)


@dataclass
class WebVitals:
    """Browser performance timing captured during rendering."""

    lcp: float | None = None  # seconds
    cls: float | None = None
    fid: float | None = None  # milliseconds, first-input or TBT surrogate
    ttfb_ms: float | None = None

    @property
    def has_core_metrics(self) -> bool:
        return self.lcp is not None or self.cls is not None

    def to_dict(self) -> dict[str, Any]:
        return {
            "lcp": self.lcp,
            "cls": self.cls,
            "fid": self.fid,
            "ttfb_ms": self.ttfb_ms,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any] | None) -> WebVitals | None:
        if not data:
            return None
        return cls(
            lcp=data.get("lcp"),
            cls=data.get("cls"),
            fid=data.get("fid"),
            ttfb_ms=data.get("ttfb_ms"),
        )


@dataclass
class ScoringContext:
    """Snapshot of one page, built once per run and shared read-only by scorers."""

    website_url: str
    html: str = ""
    initial_html: str | None = None

    # Stored screenshot references (local paths) and their public URLs
    screenshot: str | None = None
    screenshot_url: str | None = None
    full_page_screenshot: str | None = None
    full_page_screenshot_url: str | None = None

    web_vitals: WebVitals | None = None

    acquisition_method: str | None = None
    screenshot_error: str | None = None
    full_page_screenshot_error: str | None = None
    html_error: str | None = None

    @property
    def best_image(self) -> str | None:
        """Screenshot to send to the classifier, full page preferred."""
        return self.full_page_screenshot or self.screenshot

    def to_dict(self) -> dict[str, Any]:
        return {
            "website_url": self.website_url,
            "html_length": len(self.html),
            "initial_html_length": len(self.initial_html) if self.initial_html else 0,
            "screenshot_url": self.screenshot_url,
            "full_page_screenshot_url": self.full_page_screenshot_url,
            "web_vitals": self.web_vitals.to_dict() if self.web_vitals else None,
            "acquisition_method": self.acquisition_method,
            "screenshot_error": self.screenshot_error,
            "full_page_screenshot_error": self.full_page_screenshot_error,
            "html_error": self.html_error,
        }


@dataclass
class Evidence:
    description: str
    details: dict[str, Any] = field(default_factory=dict)
    reasoning: str = ""

    def to_dict(self) -> dict[str, Any]:
        return {
            "description": self.description,
            "details": self.details,
            "reasoning": self.reasoning,
        }


@dataclass
class Passes:
    passed: list[str] = field(default_factory=list)
    failed: list[str] = field(default_factory=list)

    def check(self, ok: bool, passed_name: str, failed_name: str) -> bool:
        """Record one sub-check and return its outcome."""
        if ok:
            self.passed.append(passed_name)
        else:
            self.failed.append(failed_name)
        return ok

    def to_dict(self) -> dict[str, list[str]]:
        return {"passed": list(self.passed), "failed": list(self.failed)}


@dataclass
class CriterionResult:
    """Outcome of one criterion scorer."""

    criterion: str
    score: float
    evidence: Evidence
    passes: Passes = field(default_factory=Passes)

    def __post_init__(self) -> None:
        self.score = round_score(self.score)

    @property
    def fallback_reason(self) -> str | None:
        reason = self.evidence.details.get("fallbackReason")
        if reason:
            return str(reason)
        if ANALYSIS_FAILED in self.passes.failed:
            return "analysis_failed"
        return None

    @property
    def is_fallback(self) -> bool:
        return self.fallback_reason is not None

    def to_dict(self) -> dict[str, Any]:
        return {
            "criterion": self.criterion,
            "score": self.score,
            "evidence": self.evidence.to_dict(),
            "passes": self.passes.to_dict(),
        }

    @classmethod
    def failed(cls, criterion: str, error: BaseException | str, label: str) -> CriterionResult:
        """Zero score recording why the analysis could not complete."""
        message = error if isinstance(error, str) else f"{type(error).__name__}: {error}"
        return cls(
            criterion=criterion,
            score=0.0,
            evidence=Evidence(
                description=f"Error analyzing {label}",
                details={"error": message},
                reasoning=f"Failed to complete {label} analysis due to technical error",
            ),
            passes=Passes(passed=[], failed=[ANALYSIS_FAILED]),
        )

    @classmethod
    def timed_out(
        cls, criterion: str, fallback_score: float, timeout_seconds: float
    ) -> CriterionResult:
        """Policy default substituted when a scorer exceeds its ceiling."""
        return cls(
            criterion=criterion,
            score=fallback_score,
            evidence=Evidence(
                description=f"{criterion} analysis timed out; default score applied",
                details={"fallbackReason": "timeout", "timeoutSeconds": timeout_seconds},
                reasoning=(
                    f"The analysis did not finish within {timeout_seconds:g}s, "
                    "so a neutral default was used instead of a measured score"
                ),
            ),
            passes=Passes(passed=[], failed=[TIMEOUT_FALLBACK]),
        )
