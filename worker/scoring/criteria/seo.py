"""SEO criterion: on-page fundamentals, read from the static HTML when available."""

from __future__ import annotations

from urllib.parse import urlparse

from worker.scoring.config import ScoringConfig
from worker.scoring.criteria.base import HtmlCriterionScorer, parse_html
from worker.scoring.types import Criterion, CriterionResult, Evidence, Passes, ScoringContext


def _meta(soup, **attrs) -> str:
    tag = soup.find("meta", attrs=attrs)
    if tag is None:
        return ""
    return str(tag.get("content") or "").strip()


class SEOScorer(HtmlCriterionScorer):
    criterion = Criterion.SEO.value
    label = "SEO"
    prefer_initial_html = True

    def evaluate_html(
        self, html: str, context: ScoringContext, config: ScoringConfig
    ) -> CriterionResult:
        soup = parse_html(html)
        url = context.website_url

        title_tag = soup.find("title")
        title = title_tag.get_text(strip=True) if title_tag else ""
        meta_description = _meta(soup, name="description")

        h1s = soup.find_all("h1")
        h1_text = h1s[0].get_text(" ", strip=True) if h1s else ""
        unique_h1 = len(h1s) == 1 and bool(h1_text)
        h1_title_optimized = (
            bool(h1_text and title) and h1_text != title and len(h1_text) > 10 and len(title) > 10
        )

        canonical_tag = soup.find("link", rel="canonical")
        canonical = canonical_tag.get("href") if canonical_tag else None
        robots = _meta(soup, name="robots").lower()
        allows_indexing = not robots or ("noindex" not in robots and "none" not in robots)

        has_open_graph = bool(_meta(soup, property="og:title") and _meta(soup, property="og:description"))
        has_twitter = bool(_meta(soup, name="twitter:card") and _meta(soup, name="twitter:title"))
        json_ld = soup.find_all("script", attrs={"type": "application/ld+json"})
        has_sitemap = soup.find("link", rel="sitemap") is not None or "sitemap.xml" in html

        images = soup.find_all("img")
        with_alt = [img for img in images if img.has_attr("alt")]
        alt_ratio = 1.0 if not images else len(with_alt) / len(images)

        parsed = urlparse(url)
        host = parsed.netloc
        internal_links = [
            a
            for a in soup.find_all("a", href=True)
            if a["href"].startswith("/") or (host and host in a["href"])
        ]
        has_internal_linking = len(internal_links) >= 5
        clean_url = not parsed.query and len(parsed.path.split("/")) <= 4

        has_viewport = any(
            "width=device-width" in str(tag.get("content", ""))
            for tag in soup.find_all("meta", attrs={"name": "viewport"})
        )
        is_https = url.startswith("https://")
        has_lazy = soup.find("img", attrs={"loading": "lazy"}) is not None
        has_modern_images = bool(soup.select('source[type="image/webp"], source[type="image/avif"]'))

        score = 0.0
        passes = Passes()

        if title and 30 <= len(title) <= 70:
            score += 1.5
            passes.passed.append("optimized_title")
        elif title:
            score += 1.0
            passes.passed.append("title_present")
        else:
            passes.failed.append("no_title")

        if meta_description and 120 <= len(meta_description) <= 200:
            score += 1.5
            passes.passed.append("optimized_meta_description")
        elif meta_description:
            score += 1.0
            passes.passed.append("meta_description_present")
        else:
            passes.failed.append("no_meta_description")

        if unique_h1 and h1_title_optimized:
            score += 1.5
            passes.passed.append("optimized_h1")
        elif unique_h1:
            score += 1.0
            passes.passed.append("unique_h1")
        else:
            passes.failed.append("poor_h1_structure")

        # Technical SEO, 0.5 each
        for ok, passed_name, failed_name in (
            (canonical is not None, "canonical_present", "no_canonical"),
            (allows_indexing, "allows_indexing", "blocks_indexing"),
            (clean_url, "clean_url_structure", "poor_url_structure"),
            (has_sitemap, "sitemap_present", "no_sitemap"),
        ):
            if passes.check(ok, passed_name, failed_name):
                score += 0.5

        if has_open_graph and has_twitter:
            score += 1.0
            passes.passed.append("full_social_optimization")
        elif has_open_graph or has_twitter:
            score += 0.5
            passes.passed.append("partial_social_optimization")
        else:
            passes.failed.append("no_social_optimization")

        if passes.check(bool(json_ld), "structured_data_present", "no_structured_data"):
            score += 1.0

        if alt_ratio >= 0.9 and has_internal_linking:
            score += 1.0
            passes.passed.append("content_optimized")
        elif alt_ratio >= 0.7 or has_internal_linking:
            score += 0.5
            passes.passed.append("partial_content_optimization")
        else:
            passes.failed.append("poor_content_optimization")

        landmarks = len(soup.find_all(["header", "nav", "main", "footer"]))
        if passes.check(landmarks >= 3, "good_page_structure", "poor_page_structure"):
            score += 0.5

        modern_bonus = 0.0
        if is_https:
            modern_bonus += 0.2
            passes.passed.append("https_enabled")
        if has_viewport:
            modern_bonus += 0.2
            passes.passed.append("mobile_optimized")
        if has_lazy or has_modern_images:
            modern_bonus += 0.1
            passes.passed.append("performance_optimized")
        score += min(0.5, modern_bonus)

        return CriterionResult(
            criterion=self.criterion,
            score=score,
            evidence=Evidence(
                description=(
                    f"SEO analysis: {len(title)}ch title, {len(meta_description)}ch meta desc, "
                    f"{len(h1s)} H1s, {round(alt_ratio * 100)}% image alt coverage"
                ),
                details={
                    "title": title[:60],
                    "titleLength": len(title),
                    "metaDescription": meta_description[:100],
                    "metaDescLength": len(meta_description),
                    "h1Count": len(h1s),
                    "h1Text": h1_text[:60],
                    "hasCanonical": canonical is not None,
                    "canonicalURL": canonical,
                    "robotsAllowsIndexing": allows_indexing,
                    "hasOpenGraph": has_open_graph,
                    "hasTwitterCards": has_twitter,
                    "jsonLdCount": len(json_ld),
                    "imageAltRatio": round(alt_ratio * 100),
                    "internalLinksCount": len(internal_links),
                    "hasCleanURL": clean_url,
                    "hasMobileViewport": has_viewport,
                    "isHTTPS": is_https,
                    "usedInitialHtml": bool(context.initial_html),
                },
                reasoning=(
                    "Score based on title, meta description and H1 optimization, technical SEO "
                    f"(canonical: {canonical is not None}, indexable: {allows_indexing}), social "
                    f"tags and structured data ({'present' if json_ld else 'missing'})"
                ),
            ),
            passes=passes,
        )
