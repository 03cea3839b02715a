"""Trust criterion: logos, third-party proof, recency, testimonials and scale."""

from __future__ import annotations

import re
from collections.abc import Callable
from datetime import date

from worker.scoring.config import ScoringConfig
from worker.scoring.criteria.base import HtmlCriterionScorer, parse_html
from worker.scoring.types import Criterion, CriterionResult, Evidence, Passes, ScoringContext

LOGO_SELECTORS = (
    'img[alt*="logo" i], img[src*="logo" i], img[class*="logo" i], '
    ".customer-logo img, .client-logo img, .partner-logo img"
)
TESTIMONIAL_SELECTORS = '.testimonial, .review, .quote, [class*="testimonial"], [class*="review"]'
CASE_STUDY_SELECTORS = (
    'a[href*="case-study" i], a[href*="case-studies" i], a[href*="success-story" i], '
    ".case-study, .success-story"
)
CERTIFICATION_SELECTORS = (
    'img[alt*="certified" i], img[alt*="badge" i], img[alt*="award" i], '
    ".certification, .badge, .award"
)

TRUST_KEYWORDS = (
    "customers",
    "clients served",
    "companies trust us",
    "trusted by",
    "years of experience",
    "since",
    "founded",
    "established",
    "award",
    "certified",
    "accredited",
    "recognized",
    "testimonial",
    "review",
    "rating",
)
SCALE_PATTERN = re.compile(
    r"(\d{1,3}[,.]?\d{0,3}\+?)\s*(customers|clients|companies|users|projects)", re.IGNORECASE
)


class TrustScorer(HtmlCriterionScorer):
    criterion = Criterion.TRUST.value
    label = "trust"

    def __init__(self, today: Callable[[], date] = date.today):
        self.today = today

    def evaluate_html(
        self, html: str, context: ScoringContext, config: ScoringConfig
    ) -> CriterionResult:
        soup = parse_html(html)
        body = soup.body or soup
        page_text = body.get_text(" ", strip=True).lower()

        logos = len(soup.select(LOGO_SELECTORS))
        testimonials = len(soup.select(TESTIMONIAL_SELECTORS))
        case_studies = len(soup.select(CASE_STUDY_SELECTORS))
        certifications = len(soup.select(CERTIFICATION_SELECTORS))

        keyword_count = sum(1 for keyword in TRUST_KEYWORDS if keyword in page_text)
        current_year = self.today().year
        recent_years = [current_year - offset for offset in range(3)]
        recent_found = [year for year in recent_years if str(year) in page_text]
        scale_matches = SCALE_PATTERN.findall(page_text)

        score = 0.0
        passes = Passes()

        if logos >= 5:
            score += 2.5
            passes.passed.append("sufficient_logos")
        elif logos >= 3:
            score += 1.5
            passes.passed.append("some_logos")
        else:
            passes.failed.append("insufficient_logos")

        if certifications >= 2:
            score += 2.0
            passes.passed.append("third_party_proof")
        elif certifications >= 1:
            score += 1.0
            passes.passed.append("some_third_party_proof")
        else:
            passes.failed.append("no_third_party_proof")

        if recent_found:
            score += 2.0
            passes.passed.append("recent_proof")
        else:
            passes.failed.append("no_recent_proof")

        social_proof = testimonials + case_studies
        if social_proof >= 3:
            score += 2.5
            passes.passed.append("strong_social_proof")
        elif social_proof >= 1:
            score += 1.5
            passes.passed.append("some_social_proof")
        else:
            passes.failed.append("no_social_proof")

        if keyword_count >= 5 and scale_matches:
            score += 1.0
            passes.passed.append("trust_indicators_with_scale")
        elif keyword_count >= 3:
            score += 0.5
            passes.passed.append("some_trust_indicators")
        else:
            passes.failed.append("few_trust_indicators")

        return CriterionResult(
            criterion=self.criterion,
            score=score,
            evidence=Evidence(
                description=(
                    f"Trust analysis: {logos} logos, {certifications} certifications, "
                    f"{testimonials} testimonials, {case_studies} case studies"
                ),
                details={
                    "customerLogos": logos,
                    "certifications": certifications,
                    "testimonials": testimonials,
                    "caseStudies": case_studies,
                    "trustKeywords": keyword_count,
                    "recentYears": recent_found,
                    "scaleIndicators": [" ".join(m) for m in scale_matches[:3]],
                    "recentMonthsThreshold": config.thresholds.recent_months,
                },
                reasoning=(
                    f"Score based on customer logos ({logos}), third-party proof "
                    f"({certifications}), recent dates ({'yes' if recent_found else 'no'}), "
                    f"testimonials and case studies ({social_proof}) and trust language "
                    f"({keyword_count} indicators)"
                ),
            ),
            passes=passes,
        )
