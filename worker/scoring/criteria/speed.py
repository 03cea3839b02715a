"""Speed criterion: core web vitals against configured limits."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any

import httpx
import structlog

from worker.scoring.config import ScoringConfig
from worker.scoring.criteria.base import CriterionScorer
from worker.scoring.types import Criterion, CriterionResult, Evidence, Passes, ScoringContext, WebVitals

logger = structlog.get_logger(__name__)

PAGESPEED_URL = "https://www.googleapis.com/pagespeedonline/v5/runPagespeed"

LCP_GOOD = 2.5  # seconds
CLS_GOOD = 0.1
FID_GOOD = 100.0  # milliseconds
FID_LIMIT = 300.0

# Used when neither the browser nor PageSpeed produced measurements
DEFAULT_VITALS = WebVitals(lcp=4.0, cls=0.15, fid=100.0)
DEFAULT_PERFORMANCE = 50.0


@dataclass
class SpeedMeasurement:
    vitals: WebVitals
    performance: float
    source: str
    error: str | None = None


def fill_missing(vitals: WebVitals) -> WebVitals:
    """Replace unmeasured vitals with the conservative defaults."""
    return WebVitals(
        lcp=vitals.lcp if vitals.lcp is not None else DEFAULT_VITALS.lcp,
        cls=vitals.cls if vitals.cls is not None else DEFAULT_VITALS.cls,
        fid=vitals.fid if vitals.fid is not None else DEFAULT_VITALS.fid,
        ttfb_ms=vitals.ttfb_ms,
    )


def missing_vitals(vitals: WebVitals) -> list[str]:
    return [name for name in ("lcp", "cls", "fid") if getattr(vitals, name) is None]


def estimate_performance(vitals: WebVitals) -> float:
    """Lighthouse-like 0-100 performance estimate; missing vitals count as the defaults."""
    performance = 100.0
    filled = fill_missing(vitals)
    lcp, cls, fid = filled.lcp, filled.cls, filled.fid
    if lcp > 4.0:
        performance -= 30
    elif lcp > LCP_GOOD:
        performance -= 15
    if cls > 0.25:
        performance -= 25
    elif cls > CLS_GOOD:
        performance -= 10
    if fid > FID_LIMIT:
        performance -= 20
    elif fid > FID_GOOD:
        performance -= 5
    return max(0.0, performance)


class SpeedScorer(CriterionScorer):
    criterion = Criterion.SPEED.value
    label = "speed"
    tier = "external"
    timeout_fallback_score = 4.0

    def __init__(self, pagespeed_api_key: str | None = None, timeout_seconds: float = 40.0):
        self.pagespeed_api_key = pagespeed_api_key
        self.timeout_seconds = timeout_seconds

    async def evaluate(self, context: ScoringContext, config: ScoringConfig) -> CriterionResult:
        measurement = await self.measure(context)
        vitals = measurement.vitals
        thresholds = config.thresholds

        score = measurement.performance / 10.0
        passes = Passes()
        filled = fill_missing(vitals)
        lcp, cls, fid = filled.lcp, filled.cls, filled.fid

        if lcp <= LCP_GOOD:
            passes.passed.append("good_lcp")
        elif lcp <= thresholds.lcp_limit:
            score *= 0.8
            passes.passed.append("acceptable_lcp")
        else:
            score *= 0.5
            passes.failed.append("poor_lcp")

        if cls <= CLS_GOOD:
            passes.passed.append("good_cls")
        elif cls <= thresholds.cls_limit:
            score *= 0.9
            passes.passed.append("acceptable_cls")
        else:
            score *= 0.7
            passes.failed.append("poor_cls")

        if fid <= FID_GOOD:
            passes.passed.append("good_fid")
        elif fid <= FID_LIMIT:
            score *= 0.95
            passes.passed.append("acceptable_fid")
        else:
            score *= 0.8
            passes.failed.append("poor_fid")

        details: dict[str, Any] = {
            "lcp": lcp,
            "cls": cls,
            "fid": fid,
            "ttfbMs": vitals.ttfb_ms,
            "performanceScore": round(measurement.performance, 1),
            "source": measurement.source,
            "lcpLimit": thresholds.lcp_limit,
            "clsLimit": thresholds.cls_limit,
        }
        substituted = missing_vitals(vitals)
        if substituted:
            details["defaultedVitals"] = substituted
        if measurement.error:
            details["measurementError"] = measurement.error
        if measurement.source == "default":
            details["fallbackReason"] = "vitals_unavailable"

        return CriterionResult(
            criterion=self.criterion,
            score=score,
            evidence=Evidence(
                description=(
                    f"Speed analysis: LCP {lcp:.2f}s, CLS {cls:.3f}, FID {fid:.0f}ms, "
                    f"performance {measurement.performance:.0f}/100"
                ),
                details=details,
                reasoning=(
                    f"Performance score from {measurement.source} scaled by LCP, CLS and "
                    f"FID against limits of {thresholds.lcp_limit}s and {thresholds.cls_limit}"
                ),
            ),
            passes=passes,
        )

    async def measure(self, context: ScoringContext) -> SpeedMeasurement:
        vitals = context.web_vitals
        if vitals is not None and vitals.has_core_metrics:
            return SpeedMeasurement(
                vitals=vitals,
                performance=estimate_performance(vitals),
                source="browser",
            )

        try:
            return await self.fetch_pagespeed(context.website_url)
        except (httpx.HTTPError, KeyError, TypeError, ValueError) as e:
            logger.warning("pagespeed_unavailable", url=context.website_url, error=str(e))
            ttfb = vitals.ttfb_ms if vitals else None
            return SpeedMeasurement(
                vitals=WebVitals(
                    lcp=DEFAULT_VITALS.lcp,
                    cls=DEFAULT_VITALS.cls,
                    fid=DEFAULT_VITALS.fid,
                    ttfb_ms=ttfb,
                ),
                performance=DEFAULT_PERFORMANCE,
                source="default",
                error=str(e),
            )

    async def fetch_pagespeed(self, url: str) -> SpeedMeasurement:
        """Lab metrics from the PageSpeed Insights API (mobile strategy)."""
        params = {"url": url, "strategy": "mobile", "category": "performance"}
        if self.pagespeed_api_key:
            params["key"] = self.pagespeed_api_key

        async with httpx.AsyncClient(timeout=self.timeout_seconds) as client:
            response = await client.get(PAGESPEED_URL, params=params)
            response.raise_for_status()
            data = response.json()

        lighthouse = data["lighthouseResult"]
        audits = lighthouse["audits"]
        performance = float(lighthouse["categories"]["performance"]["score"]) * 100
        vitals = WebVitals(
            lcp=float(audits["largest-contentful-paint"]["numericValue"]) / 1000.0,
            cls=float(audits["cumulative-layout-shift"]["numericValue"]),
            fid=float(audits.get("max-potential-fid", {}).get("numericValue", 0.0)),
        )
        return SpeedMeasurement(vitals=vitals, performance=performance, source="pagespeed")
