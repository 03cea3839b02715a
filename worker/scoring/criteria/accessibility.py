"""Accessibility criterion: landmarks, ARIA, alt text, labels, focus and headings."""

from __future__ import annotations

import re

from worker.scoring.config import ScoringConfig
from worker.scoring.criteria.base import HtmlCriterionScorer, class_string, parse_html
from worker.scoring.types import Criterion, CriterionResult, Evidence, Passes, ScoringContext

SEMANTIC_TAGS = ["header", "nav", "main", "article", "section", "aside", "footer"]
ARIA_ATTRIBUTES = (
    "aria-label",
    "aria-labelledby",
    "aria-describedby",
    "aria-expanded",
    "aria-hidden",
    "role",
)
PLACEHOLDER_ALT = re.compile(r"^(image|img|photo|picture|icon|logo)\d*$|^untitled", re.IGNORECASE)
A11Y_TOOLING = ("axe-core", "accessibility", "a11y")


def _is_labeled(field, soup) -> bool:
    field_id = field.get("id")
    if field_id and soup.find("label", attrs={"for": field_id}) is not None:
        return True
    if field.find_parent("label") is not None:
        return True
    return bool(field.get("aria-label") or field.get("aria-labelledby") or field.get("title"))


def _is_skip_link(link) -> bool:
    href = link.get("href") or ""
    if "skip" in class_string(link):
        return True
    if not href.startswith("#"):
        return False
    text = link.get_text(" ", strip=True).lower()
    return href.startswith(("#main", "#content")) or "skip" in text or "jump" in text


class AccessibilityScorer(HtmlCriterionScorer):
    criterion = Criterion.ACCESSIBILITY.value
    label = "accessibility"

    def evaluate_html(
        self, html: str, context: ScoringContext, config: ScoringConfig
    ) -> CriterionResult:
        soup = parse_html(html)
        lowered = html.lower()

        semantic_count = len(soup.find_all(SEMANTIC_TAGS))

        aria_count = sum(len(soup.find_all(attrs={attr: True})) for attr in ARIA_ATTRIBUTES)
        modern_aria = sum(
            1
            for attr in ("aria-live", "aria-current", "aria-expanded")
            if soup.find(attrs={attr: True}) is not None
        )
        has_aria_labels = aria_count >= 5

        images = soup.find_all("img")
        with_alt = [img for img in images if img.has_attr("alt")]
        meaningful_alt = [
            img
            for img in with_alt
            if len(img["alt"]) > 3 and not PLACEHOLDER_ALT.match(img["alt"].strip())
        ]
        alt_coverage = 1.0 if not images else len(with_alt) / len(images)
        meaningful_ratio = 1.0 if not images else len(meaningful_alt) / len(images)

        fields = [
            f
            for f in soup.find_all(["input", "textarea", "select"])
            if f.get("type") not in ("hidden", "submit")
        ]
        labeled = sum(1 for f in fields if _is_labeled(f, soup))
        labels_ratio = 1.0 if not fields else labeled / len(fields)

        focusable = [
            el
            for el in soup.find_all(["a", "button", "input", "textarea", "select"])
            if el.name != "a" or el.has_attr("href")
        ]
        focusable += [
            el
            for el in soup.find_all(attrs={"tabindex": True})
            if el.get("tabindex") != "-1" and el.name not in ("a", "button", "input", "textarea", "select")
        ]
        tabindexed = len(soup.find_all(attrs={"tabindex": True}))
        has_keyboard_nav = soup.find(attrs={"accesskey": True}) is not None or tabindexed > 2

        skip_links = [link for link in soup.find_all("a") if _is_skip_link(link)]

        buttons_as_links = [
            b
            for b in soup.find_all("button", onclick=True)
            if "location" in b["onclick"] or "href" in b["onclick"]
        ]
        links_as_buttons = [
            a
            for a in soup.find_all("a")
            if (a.get("href") == "#" and a.has_attr("onclick"))
            or (a.get("href") or "").startswith("javascript:")
        ]
        links_as_buttons = [
            a
            for a in links_as_buttons
            if not any(p in a.get_text(" ", strip=True).lower() for p in ("read more", "learn more"))
        ]
        proper_semantics = not buttons_as_links and len(links_as_buttons) < 3

        headings = soup.find_all(["h1", "h2", "h3", "h4", "h5", "h6"])
        h1_count = sum(1 for h in headings if h.name == "h1")
        html_tag = soup.find("html")
        has_lang = html_tag is not None and bool(html_tag.get("lang"))
        has_tooling = any(marker in lowered for marker in A11Y_TOOLING)

        score = 0.0
        passes = Passes()

        if passes.check(semantic_count >= 3, "semantic_html_structure", "no_semantic_structure"):
            score += 2.0

        if has_aria_labels and modern_aria >= 2:
            score += 1.5
            passes.passed.append("comprehensive_aria")
        elif has_aria_labels or modern_aria >= 1:
            score += 1.0
            passes.passed.append("aria_attributes_present")
        elif aria_count >= 2:
            score += 0.5
            passes.passed.append("some_aria_attributes")
        else:
            passes.failed.append("insufficient_aria")

        if meaningful_ratio >= 0.8:
            score += 1.5
            passes.passed.append("meaningful_alt_text")
        elif alt_coverage >= 0.9:
            score += 1.2
            passes.passed.append("good_alt_text_coverage")
        elif alt_coverage >= 0.6:
            score += 0.8
            passes.passed.append("adequate_alt_text_coverage")
        else:
            passes.failed.append("poor_alt_text_coverage")

        if fields and labels_ratio >= 0.8:
            score += 1.5
            passes.passed.append("form_labels_present")
        elif not fields:
            score += 1.0
            passes.passed.append("no_forms_to_evaluate")
        else:
            passes.failed.append("missing_form_labels")

        if len(focusable) >= 3 and has_keyboard_nav:
            score += 1.0
            passes.passed.append("focus_management_present")
        elif len(focusable) >= 3:
            score += 0.5
            passes.passed.append("basic_focus_management")
        else:
            passes.failed.append("no_focus_management")

        heading_ok = h1_count == 1 and len(headings) >= 2
        if passes.check(heading_ok, "proper_heading_structure", "improper_heading_structure"):
            score += 1.0
        if passes.check(bool(skip_links), "skip_links_present", "no_skip_links"):
            score += 0.5
        if passes.check(proper_semantics, "proper_button_link_semantics", "improper_button_link_usage"):
            score += 0.5
        if passes.check(has_lang, "language_declared", "no_language_declared"):
            score += 0.25
        if passes.check(has_tooling, "accessibility_tools_detected", "no_accessibility_tools"):
            score += 0.25

        return CriterionResult(
            criterion=self.criterion,
            score=score,
            evidence=Evidence(
                description=(
                    f"Accessibility analysis: {semantic_count} semantic elements, "
                    f"{aria_count} ARIA attributes, {round(alt_coverage * 100)}% alt text coverage"
                ),
                details={
                    "semanticElements": semantic_count,
                    "ariaAttributes": aria_count,
                    "modernAriaScore": modern_aria,
                    "totalImages": len(images),
                    "altTextCoverage": round(alt_coverage * 100),
                    "meaningfulAltRatio": round(meaningful_ratio * 100),
                    "formInputs": len(fields),
                    "formLabelsRatio": round(labels_ratio * 100),
                    "focusableElements": len(focusable),
                    "hasKeyboardNav": has_keyboard_nav,
                    "skipLinks": len(skip_links),
                    "h1Count": h1_count,
                    "headingsCount": len(headings),
                    "hasLangAttribute": has_lang,
                },
                reasoning=(
                    f"{len(passes.passed)} accessibility checks passed and "
                    f"{len(passes.failed)} failed across landmarks, ARIA, alt text, "
                    "form labels, focus order and headings"
                ),
            ),
            passes=passes,
        )
