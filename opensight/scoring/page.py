"""
Page Signal Scoring

Four informational 0-100 subscores read from a scraped page's markup and
metadata rather than its prose:

- structure: one H1, subheadings, lists, JSON-LD, semantic elements
- freshness: age of the last modification/publication date
- key_content: paragraphs, images, video, links, meta description, title
- citations: blockquotes, data attributes, citation phrases, links

They sit next to the composite content score and never change it.

Usage:
    signals = extract_signals(markdown, metadata=data["metadata"], raw_html=data["rawHtml"])
    subscores, recommendations = score_page(signals)
"""

import logging
import re
from dataclasses import dataclass
from datetime import datetime, timezone
from email.utils import parsedate_to_datetime
from typing import Any, Dict, List, Mapping, Optional, Tuple

from bs4 import BeautifulSoup

from .helpers import CITATION_PHRASES

logger = logging.getLogger(__name__)

# Metadata keys holding a page date, in order of preference
DATE_KEYS = (
    "last-modified",
    "article:modified_time",
    "modifiedTime",
    "article:published_time",
    "publishedTime",
)

# Age in days -> freshness; anything older scores STALE_SCORE
FRESHNESS_STEPS = ((30, 100.0), (90, 75.0), (180, 50.0), (365, 25.0))
STALE_SCORE = 10.0
UNDATED_SCORE = 50.0

META_DESCRIPTION_BOUNDS = (50, 160)

VIDEO_HOSTS = ("youtube", "vimeo")


@dataclass
class PageSignals:
    """Countable features of one page."""

    h1_count: int = 0
    subheading_count: int = 0
    list_count: int = 0
    paragraph_count: int = 0
    image_count: int = 0
    link_count: int = 0
    blockquote_count: int = 0
    has_video: bool = False
    has_schema: bool = False
    has_semantic_elements: bool = False
    has_data_attributes: bool = False
    has_citation_phrases: bool = False
    title: str = ""
    description: str = ""
    dated_at: Optional[datetime] = None


# ============================================================================
# SIGNAL EXTRACTION
# ============================================================================

_MD_HEADING = re.compile(r"^\s{0,3}(#{1,6})\s+\S", re.MULTILINE)
_MD_LIST_ITEM = re.compile(r"^\s*(?:[-*+]|\d+[.)])\s+\S")
_MD_IMAGE = re.compile(r"!\[[^\]]*\]\(([^)]*)\)")
_MD_LINK = re.compile(r"(?<!!)\[[^\]]*\]\(([^)]*)\)")
_MD_BLOCKQUOTE = re.compile(r"^\s*>")


def _meta_value(metadata: Mapping[str, Any], key: str) -> str:
    value = metadata.get(key)
    # Firecrawl returns a list when a meta tag repeats
    if isinstance(value, (list, tuple)):
        value = value[0] if value else None
    return str(value).strip() if value else ""


def parse_page_date(value: str) -> Optional[datetime]:
    """ISO 8601 or HTTP date -> aware datetime, None if unparseable."""
    if not value:
        return None
    try:
        parsed = datetime.fromisoformat(value.replace("Z", "+00:00"))
    except ValueError:
        try:
            parsed = parsedate_to_datetime(value)
        except (TypeError, ValueError):
            parsed = None
        if parsed is None:
            logger.debug(f"Unparseable page date: {value!r}")
            return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def _page_date(metadata: Mapping[str, Any]) -> Optional[datetime]:
    for key in DATE_KEYS:
        parsed = parse_page_date(_meta_value(metadata, key))
        if parsed is not None:
            return parsed
    return None


def _has_citation_phrase(text: str) -> bool:
    lowered = text.lower()
    return any(phrase in lowered for phrase in CITATION_PHRASES)


def signals_from_html(html: str, metadata: Optional[Mapping[str, Any]] = None) -> PageSignals:
    """Count page features in rendered HTML."""
    metadata = metadata or {}
    soup = BeautifulSoup(html, "html.parser")

    video_frames = [
        frame for frame in soup.find_all("iframe")
        if any(host in (frame.get("src") or "") for host in VIDEO_HOSTS)
    ]
    title_tag = soup.find("title")
    og_title = soup.find("meta", attrs={"property": "og:title"})
    description_tag = soup.find("meta", attrs={"name": "description"})
    body = soup.body or soup

    return PageSignals(
        h1_count=len(soup.find_all("h1")),
        subheading_count=len(soup.find_all(["h2", "h3", "h4", "h5", "h6"])),
        list_count=len(soup.find_all(["ul", "ol"])),
        paragraph_count=len(soup.find_all("p")),
        image_count=len(soup.find_all("img")),
        link_count=len(soup.find_all("a")),
        blockquote_count=len(soup.find_all("blockquote")),
        has_video=bool(video_frames or soup.find("video")),
        has_schema=soup.find("script", type="application/ld+json") is not None,
        has_semantic_elements=soup.find(["article", "section", "aside", "nav"]) is not None,
        has_data_attributes=any(
            name.startswith("data-") for tag in soup.find_all(True) for name in tag.attrs
        ),
        has_citation_phrases=_has_citation_phrase(body.get_text(" ")),
        title=(title_tag.get_text().strip() if title_tag else "")
        or (og_title.get("content", "").strip() if og_title else "")
        or _meta_value(metadata, "title"),
        description=(description_tag.get("content", "").strip() if description_tag else "")
        or _meta_value(metadata, "description"),
        dated_at=_page_date(metadata) or _html_date(soup),
    )


def _html_date(soup: BeautifulSoup) -> Optional[datetime]:
    for key in DATE_KEYS:
        tag = (
            soup.find("meta", attrs={"http-equiv": key})
            or soup.find("meta", attrs={"name": key})
            or soup.find("meta", attrs={"property": key})
        )
        parsed = parse_page_date(tag.get("content", "") if tag else "")
        if parsed is not None:
            return parsed
    return None


def signals_from_markdown(markdown: str, metadata: Optional[Mapping[str, Any]] = None) -> PageSignals:
    """
    Approximate page features from Firecrawl markdown.

    Markdown carries no schema, semantic elements or data attributes, so
    those signals stay off.
    """
    metadata = metadata or {}
    headings = [len(m.group(1)) for m in _MD_HEADING.finditer(markdown)]

    lists = paragraphs = blockquotes = 0
    in_list = False
    for block in re.split(r"\n\s*\n", markdown):
        lines = [line for line in block.splitlines() if line.strip()]
        if not lines:
            continue
        first = lines[0]
        if _MD_LIST_ITEM.match(first):
            # Consecutive list blocks separated by blank lines are one list
            if not in_list:
                lists += 1
            in_list = True
            continue
        in_list = False
        if _MD_BLOCKQUOTE.match(first):
            blockquotes += 1
        elif not first.lstrip().startswith(("#", "|", "```", "![")):
            paragraphs += 1

    images = _MD_IMAGE.findall(markdown)
    links = _MD_LINK.findall(markdown)

    return PageSignals(
        h1_count=headings.count(1),
        subheading_count=sum(1 for level in headings if level > 1),
        list_count=lists,
        paragraph_count=paragraphs,
        image_count=len(images),
        link_count=len(links),
        blockquote_count=blockquotes,
        has_video=any(host in target for target in links for host in VIDEO_HOSTS),
        has_citation_phrases=_has_citation_phrase(markdown),
        title=_meta_value(metadata, "title") or _meta_value(metadata, "og:title"),
        description=_meta_value(metadata, "description"),
        dated_at=_page_date(metadata),
    )


def extract_signals(
    markdown: str = "",
    metadata: Optional[Mapping[str, Any]] = None,
    raw_html: str = "",
) -> PageSignals:
    """Signals from the raw HTML when the scrape returned it, else from the markdown."""
    if raw_html and raw_html.strip():
        return signals_from_html(raw_html, metadata)
    return signals_from_markdown(markdown or "", metadata)


# ============================================================================
# SUBSCORES
# ============================================================================

def structure_score(signals: PageSignals) -> Tuple[float, List[str]]:
    score, recs = 0.0, []

    if signals.h1_count == 1:
        score += 20
    elif signals.h1_count > 1:
        score += 10
        recs.append("Consider having only one H1 tag per page for better SEO")
    else:
        recs.append("Add an H1 tag to your page for better structure")

    if signals.subheading_count >= 3:
        score += 25
    elif signals.subheading_count > 0:
        score += 15
        recs.append("Add more subheadings (H2-H6) to improve content structure")
    else:
        recs.append("Add subheadings to organize your content better")

    if signals.list_count >= 2:
        score += 20
    elif signals.list_count == 1:
        score += 10
        recs.append("Consider using more lists to organize information")
    else:
        recs.append("Use lists (ul/ol) to improve content organization")

    if signals.has_schema:
        score += 20
    else:
        recs.append("Add structured data (schema.org/JSON-LD) to enhance content discoverability")

    if signals.has_semantic_elements:
        score += 15

    return min(100.0, score), recs


def freshness_score(signals: PageSignals, now: Optional[datetime] = None) -> Tuple[float, List[str]]:
    if signals.dated_at is None:
        return UNDATED_SCORE, ["Add publication or modification dates to your content"]

    now = now or datetime.now(timezone.utc)
    age_days = (now - signals.dated_at).total_seconds() / 86400
    for max_days, score in FRESHNESS_STEPS:
        if age_days < max_days:
            return score, []
    return STALE_SCORE, ["Update your content to reflect current information"]


def key_content_score(signals: PageSignals) -> Tuple[float, List[str]]:
    score, recs = 0.0, []

    if signals.paragraph_count >= 5:
        score += 25
    elif signals.paragraph_count >= 3:
        score += 15
    else:
        recs.append("Add more paragraphs of substantive content")

    if signals.image_count >= 2:
        score += 25
    elif signals.image_count == 1:
        score += 15
    else:
        recs.append("Add relevant images to your content")

    if signals.has_video:
        score += 20

    if signals.link_count >= 3:
        score += 15
    else:
        recs.append("Include more internal and external links for context and SEO")

    low, high = META_DESCRIPTION_BOUNDS
    if low < len(signals.description) < high:
        score += 10
    else:
        recs.append("Optimize your meta description (50-160 characters)")

    if signals.title:
        score += 5

    return min(100.0, score), recs


def citation_score(signals: PageSignals) -> Tuple[float, List[str]]:
    score, recs = 0.0, []

    if signals.blockquote_count > 0:
        score += 30
    else:
        recs.append("Include quotes or blockquotes to support your claims")

    if signals.has_data_attributes:
        score += 20

    # The missing-phrase advice already comes from the text recommendations
    if signals.has_citation_phrases:
        score += 30

    if signals.link_count > 0:
        score += 20

    return min(100.0, score), recs


def score_page(signals: PageSignals, now: Optional[datetime] = None) -> Tuple[Dict[str, float], List[str]]:
    """
    All page subscores plus their recommendations.

    Returns:
        ({"structure", "freshness", "key_content", "citations"}, recommendations)
    """
    subscores: Dict[str, float] = {}
    recommendations: List[str] = []
    for name, (score, recs) in (
        ("structure", structure_score(signals)),
        ("freshness", freshness_score(signals, now)),
        ("key_content", key_content_score(signals)),
        ("citations", citation_score(signals)),
    ):
        subscores[name] = score
        recommendations.extend(recs)
    return subscores, recommendations
