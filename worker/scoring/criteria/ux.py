"""UX criterion: layout, readability, interactivity, mobile support and styling."""

from __future__ import annotations

import re

from worker.scoring.config import ScoringConfig
from worker.scoring.criteria.base import HtmlCriterionScorer, class_string, parse_html
from worker.scoring.types import Criterion, CriterionResult, Evidence, Passes, ScoringContext

HEADING_TAGS = ["h1", "h2", "h3", "h4", "h5", "h6"]
WIDTH_CLASS = re.compile(r"col-|w-|max-w-|container")
CTA_WORDS = ("get", "start", "try", "demo")


def _has_class(soup, *fragments: str) -> int:
    return sum(
        1
        for el in soup.find_all(class_=True)
        if any(fragment in class_string(el) for fragment in fragments)
    )


def _modern_patterns(soup) -> dict[str, bool]:
    buttons = soup.find_all(["button", "a"])
    footer = soup.find("footer") or soup.find(class_=lambda c: c and "footer" in str(c).lower())
    return {
        "hasHero": bool(soup.select('.hero, [class*="hero"]')),
        "hasCards": len(soup.select('.card, [class*="card"]')) >= 2,
        "hasSections": len(soup.find_all("section")) + _has_class(soup, "section") >= 3,
        "hasCallToAction": any(
            word in el.get_text(" ", strip=True).lower()[:30]
            for el in buttons
            for word in CTA_WORDS
        ),
        "hasSocialProof": _has_class(soup, "testimonial", "review", "client", "logo") > 0,
        "hasSearch": bool(soup.select('input[type="search"], [placeholder*="Search"]')),
        "hasFooter": footer is not None and len(footer.find_all("a")) >= 5,
    }


class UXScorer(HtmlCriterionScorer):
    criterion = Criterion.UX.value
    label = "UX"

    def evaluate_html(
        self, html: str, context: ScoringContext, config: ScoringConfig
    ) -> CriterionResult:
        soup = parse_html(html)

        headings = soup.find_all(HEADING_TAGS)
        h1_count = sum(1 for h in headings if h.name == "h1")
        has_proper_hierarchy = h1_count == 1 and len(headings) >= 3

        has_readable_width = bool(
            soup.find_all(["article", "main"])
            or _has_class(soup, "container", "wrapper", "content")
            or any(
                p.parent is not None and WIDTH_CLASS.search(class_string(p.parent))
                for p in soup.find_all("p")
            )
        )

        meaningful_buttons = 0
        for el in soup.find_all(["button", "a"]):
            if el.name == "button" and el.get("type") == "submit":
                continue
            if el.name == "a" and "btn" not in class_string(el) and "button" not in class_string(el):
                continue
            if el.find_parent("nav") is not None:
                continue
            text = el.get_text(" ", strip=True)
            if 0 < len(text) < 30:
                meaningful_buttons += 1
        meaningful_forms = sum(
            1
            for form in soup.find_all("form")
            if any(i.get("type") != "hidden" for i in form.find_all("input"))
        )
        interactive_components = _has_class(soup, "carousel", "slider", "tab", "accordion")
        interactive_elements = meaningful_buttons + meaningful_forms * 3 + interactive_components * 2

        has_viewport = soup.find("meta", attrs={"name": "viewport"}) is not None
        layout_classes = _has_class(soup, "flex", "grid", "container", "wrapper")
        component_classes = _has_class(soup, "card", "modal", "dropdown", "nav")
        utility_heavy = sum(1 for el in soup.find_all(class_=True) if len(el.get("class") or []) > 3)
        custom_properties = "var(--" in html or ":root" in html
        has_modern_styling = (
            layout_classes >= 5 or component_classes >= 3 or utility_heavy >= 10 or custom_properties
        )
        responsive_classes = _has_class(soup, "mobile", "responsive", "lg:", "md:", "sm:")

        images = soup.find_all("img")
        alt_count = sum(1 for img in images if img.has_attr("alt"))
        has_alt_texts = not images or alt_count / len(images) >= 0.8
        aria_count = len(soup.select("[aria-label], [aria-describedby], [role]"))
        has_navigation = bool(soup.select('nav, [role="navigation"], .navigation, .nav'))

        patterns = _modern_patterns(soup)
        modern_ux_score = sum(patterns.values())

        score = 0.0
        passes = Passes()

        if has_proper_hierarchy and modern_ux_score >= 4:
            score += 2.5
            passes.passed.append("excellent_layout")
        elif has_proper_hierarchy or modern_ux_score >= 3:
            score += 1.5
            passes.passed.append("good_layout")
        elif len(headings) >= 2:
            score += 0.5
            passes.passed.append("basic_layout")
        else:
            passes.failed.append("poor_layout")

        if has_readable_width:
            score += 1.5
            passes.passed.append("readable_content")
        else:
            score += 0.5
            passes.failed.append("content_width_issues")

        if interactive_elements >= 15:
            score += 2.0
            passes.passed.append("rich_interactivity")
        elif interactive_elements >= 8:
            score += 1.0
            passes.passed.append("adequate_interactivity")
        else:
            passes.failed.append("limited_interactivity")

        if has_viewport and (responsive_classes or has_modern_styling):
            score += 2.0
            passes.passed.append("mobile_optimized")
        elif has_viewport:
            score += 1.0
            passes.passed.append("basic_mobile_support")
        else:
            passes.failed.append("no_mobile_optimization")

        if passes.check(has_modern_styling, "modern_styling", "basic_styling"):
            score += 1.0

        if has_alt_texts and aria_count:
            score += 1.0
            passes.passed.append("accessibility_features")
        elif has_alt_texts or aria_count:
            score += 0.5
            passes.passed.append("some_accessibility")
        else:
            passes.failed.append("no_accessibility_features")

        return CriterionResult(
            criterion=self.criterion,
            score=score,
            evidence=Evidence(
                description=(
                    f"UX analysis: {len(headings)} headings ({h1_count} H1s), "
                    f"{interactive_elements} interactive elements, "
                    f"{modern_ux_score} modern patterns detected"
                ),
                details={
                    "headingsCount": len(headings),
                    "h1Count": h1_count,
                    "hasProperHierarchy": has_proper_hierarchy,
                    "hasReadableWidth": has_readable_width,
                    "interactiveElements": interactive_elements,
                    "meaningfulButtons": meaningful_buttons,
                    "hasViewportMeta": has_viewport,
                    "hasModernStyling": has_modern_styling,
                    "hasNavigation": has_navigation,
                    "modernUXScore": modern_ux_score,
                    "modernPatterns": patterns,
                    "altTexts": alt_count,
                    "totalImages": len(images),
                    "ariaLabels": aria_count,
                },
                reasoning=(
                    f"{len(passes.passed)} UX checks passed; layout, readable width, "
                    f"interactivity ({interactive_elements}) and mobile support weighed most"
                ),
            ),
            passes=passes,
        )
