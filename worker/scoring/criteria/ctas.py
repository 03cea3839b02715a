"""Calls-to-action criterion.

CTAs are enumerated per page zone, deduplicated by normalized text and
classified as primary, secondary or tertiary. The score has four weighted
parts: above-fold presence, hierarchy clarity, a secondary path and message
consistency of the most prominent CTAs.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from typing import Any

from bs4 import Tag

from worker.scoring.config import ScoringConfig
from worker.scoring.criteria.base import HtmlCriterionScorer, class_string, parse_html
from worker.scoring.types import Criterion, CriterionResult, Evidence, Passes, ScoringContext

# Sub-dimension weights (fractions of 10)
ABOVE_FOLD_FULL = 3.33
ABOVE_FOLD_PARTIAL = 2.22
HIERARCHY_FULL = 2.78
HIERARCHY_PARTIAL = 1.67
SECONDARY_PATH = 2.22
MESSAGE_MATCH_FULL = 1.67
MESSAGE_MATCH_PARTIAL = 0.83

ABOVE_FOLD_ZONES = frozenset({"hero", "header", "sticky"})
ZONE_PROMINENCE = {"hero": 3, "header": 2, "sticky": 2}

ACTION_WORDS = re.compile(
    r"\b(get|start|try|sign|join|book|schedule|request|download|buy|shop|order|"
    r"contact|learn|discover|explore|see|view|watch|read|subscribe|register|apply|"
    r"claim|talk|call|demo|free|quote|compare|find)\b",
    re.IGNORECASE,
)
PRIMARY_TEXT = re.compile(
    r"\b(get started|start (?:free|now|today|your|a free)|free trial|"
    r"try (?:it |for )?(?:now|free)|sign up|buy now|book (?:a )?(?:demo|now|call)|"
    r"get (?:a )?(?:demo|quote)|request (?:a )?(?:demo|quote)|schedule (?:a )?(?:demo|call)|"
    r"shop now|order now|join now)\b",
    re.IGNORECASE,
)
SECONDARY_TEXT = re.compile(
    r"\b((?:learn|read|view|see|watch) more|how it works|see how|why \w+|about us|"
    r"explore|watch (?:the )?(?:video|demo))\b",
    re.IGNORECASE,
)
TERTIARY_TEXT = re.compile(r"\b(contact|support|help|log ?in|sign in|account)\b", re.IGNORECASE)

PRIMARY_CLASS = re.compile(r"primary|main|hero|cta-main|large|big|xl")
SECONDARY_CLASS = re.compile(r"secondary|alternate|ghost|outline")
TERTIARY_CLASS = re.compile(r"utility|nav|menu")
BUTTON_CLASS = re.compile(r"btn|button|cta")
HERO_CONTAINER = re.compile(r"hero|banner|jumbotron|masthead")
STICKY_CLASS = re.compile(r"\b(sticky|fixed)\b")

GENERIC_TEXT = frozenset({"click here", "here", "more", "submit", "go", "link", "click"})
_PRIVATE_USE = re.compile("[\ue000-\uf8ff]")
_WHITESPACE = re.compile(r"\s+")


@dataclass
class CallToAction:
    text: str
    tag: str
    zone: str
    classes: str = ""
    href: str | None = None
    form_submit: bool = False

    @property
    def key(self) -> str:
        return self.text.lower()

    @property
    def above_fold(self) -> bool:
        return self.zone in ABOVE_FOLD_ZONES

    @property
    def prominence(self) -> int:
        score = ZONE_PROMINENCE.get(self.zone, 0)
        if "primary" in self.classes:
            score += 2
        if self.tag == "button":
            score += 1
        return score

    @property
    def kind(self) -> str:
        if PRIMARY_TEXT.search(self.text):
            return "primary"
        if SECONDARY_TEXT.search(self.text):
            return "secondary"
        if PRIMARY_CLASS.search(self.classes) or self.zone == "hero":
            return "primary"
        if SECONDARY_CLASS.search(self.classes):
            return "secondary"
        if (
            TERTIARY_TEXT.search(self.text)
            or self.zone == "footer"
            or TERTIARY_CLASS.search(self.classes)
        ):
            return "tertiary"
        return "other"

    @property
    def has_destination(self) -> bool:
        if not self.href:
            return False
        return not self.href.startswith(("#", "mailto:", "javascript:", "tel:"))

    def to_dict(self) -> dict[str, Any]:
        return {
            "text": self.text,
            "zone": self.zone,
            "type": self.kind,
            "href": self.href,
            "prominence": self.prominence,
        }


def extract_cta_text(element: Tag) -> str:
    """Visible label of a CTA, falling back to accessible names."""
    text = element.get_text(" ", strip=True)
    if not text:
        text = (
            element.get("aria-label")
            or element.get("title")
            or element.get("value")
            or ""
        )
    text = _PRIVATE_USE.sub("", str(text))
    return _WHITESPACE.sub(" ", text).strip()


def _zone_for(element: Tag) -> str:
    for parent in element.parents:
        name = parent.name
        if not name or name == "[document]":
            continue
        classes = class_string(parent)
        element_id = (parent.get("id") or "").lower()
        style = (parent.get("style") or "").replace(" ", "").lower()
        if HERO_CONTAINER.search(classes) or "hero" in element_id:
            return "hero"
        if name in ("header", "nav"):
            return "header"
        if "position:fixed" in style or "position:sticky" in style or STICKY_CLASS.search(classes):
            return "sticky"
        if name == "footer":
            return "footer"
    return "main"


def _is_candidate(element: Tag) -> bool:
    if element.name == "input":
        return (element.get("type") or "").lower() in ("submit", "button")
    if element.name == "a":
        return True
    if element.name == "button":
        return (element.get("type") or "").lower() != "reset"
    return (element.get("role") or "").lower() == "button"


def enumerate_ctas(html: str) -> list[CallToAction]:
    """All distinct CTAs on the page, most prominent copy kept per label."""
    soup = parse_html(html)
    found: dict[str, CallToAction] = {}

    for element in soup.find_all(["a", "button", "input", "div", "span"]):
        if not _is_candidate(element):
            continue
        text = extract_cta_text(element)
        if not (2 < len(text) <= 50):
            continue

        classes = class_string(element)
        form_submit = element.find_parent("form") is not None and (
            element.name == "input"
            or (element.name == "button" and (element.get("type") or "submit").lower() == "submit")
        )
        if not (form_submit or ACTION_WORDS.search(text) or BUTTON_CLASS.search(classes)):
            continue

        cta = CallToAction(
            text=text,
            tag=element.name,
            zone=_zone_for(element),
            classes=classes,
            href=element.get("href"),
            form_submit=form_submit,
        )
        existing = found.get(cta.key)
        if existing is None:
            found[cta.key] = cta
        elif cta.prominence > existing.prominence:
            cta.href = cta.href or existing.href
            found[cta.key] = cta
        elif not existing.href and cta.href:
            existing.href = cta.href

    return list(found.values())


def _message_matches(cta: CallToAction) -> bool:
    text = cta.text.strip()
    return (
        3 <= len(text) <= 50
        and ACTION_WORDS.search(text) is not None
        and text.lower() not in GENERIC_TEXT
    )


class CTAScorer(HtmlCriterionScorer):
    criterion = Criterion.CTAS.value
    label = "CTA"

    def evaluate_html(
        self, html: str, context: ScoringContext, config: ScoringConfig
    ) -> CriterionResult:
        ctas = enumerate_ctas(html)
        passes = Passes()
        score = 0.0

        above_fold = [c for c in ctas if c.above_fold]
        primary = [c for c in ctas if c.kind == "primary"]
        secondary = [c for c in ctas if c.kind == "secondary"]
        tertiary = [c for c in ctas if c.kind == "tertiary"]
        non_primary = [c for c in ctas if c.kind != "primary"]

        # Above-fold presence
        if len(above_fold) >= 2:
            score += ABOVE_FOLD_FULL
            passes.passed.append("multiple_above_fold_ctas")
        elif above_fold:
            score += ABOVE_FOLD_PARTIAL
            passes.passed.append("above_fold_cta_present")
        else:
            passes.failed.append("no_above_fold_cta")

        # Hierarchy: a small set of primaries that visibly dominates the rest
        top_primary = max((c.prominence for c in primary), default=0)
        top_other = max((c.prominence for c in non_primary), default=0)
        if top_primary <= 0:
            dominance = 0.0
        elif top_other <= 0:
            dominance = float("inf")
        else:
            dominance = top_primary / top_other
        dominant = dominance >= config.thresholds.cta_dominance

        if 1 <= len(primary) <= 3 and dominant:
            score += HIERARCHY_FULL
            passes.passed.append("clear_cta_hierarchy")
        elif primary:
            score += HIERARCHY_PARTIAL
            passes.passed.append("primary_cta_present")
        else:
            passes.failed.append("no_clear_hierarchy")

        # Secondary path
        if secondary or tertiary:
            score += SECONDARY_PATH
            passes.passed.append("secondary_paths_available")
        else:
            passes.failed.append("no_secondary_paths")

        # Message consistency of the most prominent CTAs
        ranked = sorted(ctas, key=lambda c: c.prominence, reverse=True)[:3]
        checked = [c for c in ranked if c.has_destination]
        matched = [c for c in checked if _message_matches(c)]
        match_ratio = len(matched) / len(checked) if checked else 0.0
        if checked and match_ratio >= 0.5:
            score += MESSAGE_MATCH_FULL
            passes.passed.append("message_match_verified")
        elif ctas:
            score += MESSAGE_MATCH_PARTIAL
            passes.passed.append("ctas_present")
        else:
            passes.failed.append("no_message_match")

        form_ctas = [c for c in ctas if c.form_submit]
        return CriterionResult(
            criterion=self.criterion,
            score=score,
            evidence=Evidence(
                description=(
                    f"CTA analysis: {len(ctas)} total CTAs, {len(above_fold)} above-fold, "
                    f"{len(primary)} primary, {len(secondary)} secondary"
                ),
                details={
                    "totalCTAs": len(ctas),
                    "aboveFoldCTAs": len(above_fold),
                    "primaryCTAs": [c.text for c in primary][:3],
                    "secondaryCTAs": [c.text for c in secondary][:3],
                    "tertiaryCTAs": [c.text for c in tertiary][:3],
                    "formCTAs": len(form_ctas),
                    "dominanceRatio": None if dominance == float("inf") else round(dominance, 2),
                    "messageMatchChecks": len(checked),
                    "messageMatchRatio": round(match_ratio, 2),
                    "topCTAs": [c.to_dict() for c in ranked],
                },
                reasoning=(
                    f"Score based on above-fold presence ({len(above_fold)} CTAs), "
                    f"hierarchy ({'clear' if dominant and primary else 'unclear'}), "
                    f"secondary paths ({'available' if secondary or tertiary else 'missing'}) "
                    f"and message match ({len(matched)}/{len(checked)} prominent CTAs)"
                ),
            ),
            passes=passes,
        )
