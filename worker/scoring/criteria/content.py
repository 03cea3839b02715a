"""Copy extraction for the classifier-backed criteria."""

from __future__ import annotations

import re

from bs4 import BeautifulSoup, Tag

from worker.scoring.criteria.base import parse_html

HERO_SELECTORS = (
    ".hero",
    "#hero",
    '[class*="hero"]',
    ".banner",
    "#banner",
    '[class*="banner"]',
    ".jumbotron",
    ".masthead",
    ".header-content",
    "header section",
    "main > section",
)
TAGLINE_SELECTORS = '.tagline, .value-prop, .headline, .slogan, [class*="tagline"]'
STORY_SELECTORS = (
    '[class*="about"], [id*="about"], [class*="mission"], [id*="mission"], '
    '[class*="story"], [id*="story"], [class*="approach"], [class*="why"]'
)
PROOF_SELECTORS = (
    '[class*="testimonial"], [class*="case-stud"], [class*="case_stud"], '
    '[class*="success"], [class*="result"], blockquote'
)

MAX_HERO_CHARS = 1500
MAX_STORY_CHARS = 4000

_SKIP_HEADINGS = re.compile(
    r"^(menu|navigation|footer|contact|copyright|resources|company|products?|"
    r"solutions?|cookie|privacy)$",
    re.IGNORECASE,
)
_BOILERPLATE = re.compile(r"^(cookie|privacy|terms|footer|contact)", re.IGNORECASE)


def _text(element: Tag | None) -> str:
    if element is None:
        return ""
    return " ".join(element.get_text(" ", strip=True).split())


def _unique(parts: list[str]) -> list[str]:
    seen: set[str] = set()
    result = []
    for part in parts:
        if part and part not in seen:
            seen.add(part)
            result.append(part)
    return result


def find_hero(soup: BeautifulSoup) -> Tag | None:
    for selector in HERO_SELECTORS:
        section = soup.select_one(selector)
        if section is not None:
            return section
    return None


def extract_hero_content(html: str) -> dict[str, str]:
    """Headline, subheading, first paragraph and taglines of the hero."""
    soup = parse_html(html)
    for tag in soup(["script", "style", "noscript"]):
        tag.decompose()

    h1 = _text(soup.find("h1"))
    hero = find_hero(soup)
    subheading = ""
    first_paragraph = ""
    additional: list[str] = []

    if hero is not None:
        subheading = _text(hero.find("h2")) or _text(hero.find("h3"))
        first_paragraph = _text(hero.find("p"))
        for element in hero.select("h2, h3, .tagline, .value-prop")[:3]:
            text = _text(element)
            if len(text) > 10:
                additional.append(text)
    else:
        for heading in soup.find_all("h2", limit=5):
            text = _text(heading)
            if len(text) > 10 and not _SKIP_HEADINGS.match(text):
                subheading = text
                first_paragraph = _text(heading.find_next("p"))
                break
        if not subheading:
            for heading in soup.find_all("h3", limit=5):
                text = _text(heading)
                if len(text) > 10:
                    subheading = text
                    break
        if not first_paragraph:
            first_paragraph = _text(soup.find("p"))
        for heading in soup.find_all(["h2", "h3"], limit=4):
            text = _text(heading)
            if len(text) > 15 and not _BOILERPLATE.match(text):
                additional.append(text)

    for element in soup.select(TAGLINE_SELECTORS)[:2]:
        text = _text(element)
        if len(text) > 10:
            additional.append(text)

    parts = _unique([h1, subheading, first_paragraph, *additional])
    return {
        "h1": h1,
        "subheading": subheading,
        "first_paragraph": first_paragraph,
        "content": " ".join(parts)[:MAX_HERO_CHARS],
    }


def extract_story_content(html: str) -> str:
    """Copy that carries the brand narrative: descriptions, about and proof sections."""
    soup = parse_html(html)
    for tag in soup(["script", "style", "noscript", "nav", "footer"]):
        tag.decompose()

    parts: list[str] = []
    for name in ("description", "og:description"):
        meta = soup.find("meta", attrs={"name": name}) or soup.find(
            "meta", attrs={"property": name}
        )
        if meta is not None and meta.get("content"):
            parts.append(str(meta["content"]).strip())

    hero = extract_hero_content(html)["content"]
    if hero:
        parts.append(hero)

    for element in soup.select(STORY_SELECTORS)[:5]:
        text = _text(element)
        if len(text) > 40:
            parts.append(text[:800])

    for element in soup.select(PROOF_SELECTORS)[:5]:
        text = _text(element)
        if len(text) > 20:
            parts.append(text[:500])

    if len(" ".join(parts)) < 300:
        for paragraph in soup.find_all("p", limit=10):
            text = _text(paragraph)
            if len(text) > 40:
                parts.append(text)

    return " ".join(_unique(parts))[:MAX_STORY_CHARS]


def find_buzzwords(text: str, buzzwords: tuple[str, ...] | list[str]) -> list[str]:
    """Configured buzzwords present in ``text`` (case-insensitive, whole words)."""
    found = []
    for word in buzzwords:
        if re.search(rf"(?<![\w-]){re.escape(word)}(?![\w-])", text, re.IGNORECASE):
            found.append(word)
    return found
