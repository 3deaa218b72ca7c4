"""Article/blog content extractor.

Boilerplate nodes (scripts, styles, navigation, header, footer, asides, ad
and share widgets) are removed in the page before the DOM is serialised.
Two body variants are computed:

- ``content``: the longest text among the content-area selectors, falling
  back to the full body text.
- ``clean_content``: trafilatura's boilerplate-free text, falling back to
  ``content`` when trafilatura finds nothing.

``word_count``, ``character_count`` and ``reading_time`` are computed from
``clean_content``; ``reading_time`` is ``ceil(word_count / 200)`` minutes.
"""

from __future__ import annotations

import asyncio
import email.utils
import logging
import math
import re
from datetime import datetime, timezone
from typing import Any

from bs4 import BeautifulSoup, Tag

from content_harvest.core.exceptions import ExtractionError
from content_harvest.extractors.base import Extractor, ProgressCallback, utc_timestamp
from content_harvest.extractors.registry import register
from content_harvest.jobs.models import JobType
from content_harvest.scraper.config import WORDS_PER_MINUTE
from content_harvest.scraper.content_extractor import extract_readable
from content_harvest.scraper.dom import attr, first_text, meta_content, text_of
from content_harvest.scraper.structured_data import extract_structured_data, json_ld_objects
from content_harvest.scraper.urls import (
    clean_whitespace,
    content_hash,
    is_internal,
    normalize_url,
    url_key,
)

logger = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# Selector tables
# ---------------------------------------------------------------------------

BOILERPLATE_SELECTORS = (
    "script:not([type=\"application/ld+json\"]), style, nav, header, footer, aside, "
    ".advertisement, .ad, .social-share"
)

#: Evaluated in the page after load, before the DOM is serialised.
REMOVE_BOILERPLATE_SCRIPT = (
    "() => document.querySelectorAll("
    f"'{BOILERPLATE_SELECTORS}'"
    ").forEach((el) => el.remove())"
)

TITLE_SELECTORS: tuple[str, ...] = (
    "h1.entry-title",
    "h1.post-title",
    "h1.article-title",
    ".entry-header h1",
    ".post-header h1",
    "article h1",
    "h1",
    "title",
)

CONTENT_SELECTORS: tuple[str, ...] = (
    "article .entry-content",
    "article .post-content",
    "article .content",
    ".entry-content",
    ".post-content",
    ".article-content",
    ".content-body",
    "main article",
    "main .content",
    '[role="main"] article',
    "article",
    ".post",
    ".entry",
)

AUTHOR_SELECTORS: tuple[str, ...] = (
    ".author .name",
    ".by-author",
    ".post-author",
    ".entry-author",
    '[rel="author"]',
    ".author",
    '[itemprop="author"]',
)

PUBLISH_DATE_SELECTORS: tuple[str, ...] = (
    "time[datetime][pubdate]",
    "time[datetime]",
    ".published",
    ".post-date",
    ".entry-date",
    ".publish-date",
    '[itemprop="datePublished"]',
)

MODIFIED_DATE_SELECTORS: tuple[str, ...] = (
    'time[datetime][class*="modified"]',
    ".modified",
    ".updated",
    '[itemprop="dateModified"]',
)

TAG_SELECTORS: tuple[str, ...] = (
    ".tags a",
    ".tag a",
    ".post-tags a",
    ".entry-tags a",
    '[rel="tag"]',
    ".hashtag",
    '[itemprop="keywords"]',
)

CATEGORY_SELECTORS: tuple[str, ...] = (
    ".categories a",
    ".category a",
    ".post-categories a",
    ".entry-categories a",
    '[rel="category"]',
)

CONTENT_IMAGE_SELECTORS: tuple[str, ...] = (
    "article img",
    ".entry-content img",
    ".post-content img",
    ".content img",
    "main img",
)

CONTENT_LINK_SELECTORS: tuple[str, ...] = (
    "article a[href]",
    ".entry-content a[href]",
    ".post-content a[href]",
    ".content a[href]",
    "main a[href]",
)

SHARE_COUNT_SELECTORS: tuple[str, ...] = (".share-count", ".social-count", "[data-share-count]")
LIKE_COUNT_SELECTORS: tuple[str, ...] = (".like-count", "[data-like-count]")
COMMENT_COUNT_SELECTORS: tuple[str, ...] = (".comment-count", ".comments-count", "[data-comment-count]")

SOCIAL_METRIC_PLATFORMS: tuple[str, ...] = ("facebook", "twitter", "linkedin", "instagram", "youtube")

BREADCRUMB_SELECTORS: tuple[str, ...] = (
    ".breadcrumb a",
    ".breadcrumbs a",
    '[role="navigation"] a',
    ".navigation a",
)

_DATE_FORMATS: tuple[str, ...] = ("%Y-%m-%d", "%d/%m/%Y", "%m/%d/%Y", "%d-%m-%Y", "%B %d, %Y", "%d %B %Y")
_DATE_FRAGMENT_RE = re.compile(r"\d{4}-\d{2}-\d{2}|\d{1,2}[/-]\d{1,2}[/-]\d{4}")
_DIGITS_RE = re.compile(r"[^0-9]")

# ---------------------------------------------------------------------------
# Text statistics
# ---------------------------------------------------------------------------


def count_words(text: str) -> int:
    """Whitespace-tokenised word count."""
    return len(text.split()) if text else 0


def reading_time_minutes(text: str, words_per_minute: int = WORDS_PER_MINUTE) -> int:
    """``ceil(word_count / words_per_minute)``."""
    return math.ceil(count_words(text) / words_per_minute)


def parse_date(value: str) -> str | None:
    """Parse a date found in markup into an ISO 8601 UTC string, or ``None``.

    Accepts ISO 8601, RFC 2822 and a handful of common numeric and
    long-month formats.  Naive values are taken as UTC.
    """
    value = (value or "").strip()
    if not value:
        return None

    parsed: datetime | None = None
    try:
        parsed = datetime.fromisoformat(value.replace("Z", "+00:00"))
    except ValueError:
        pass
    if parsed is None:
        try:
            parsed = email.utils.parsedate_to_datetime(value)
        except (TypeError, ValueError, IndexError):
            parsed = None
    if parsed is None:
        candidates = [value, *_DATE_FRAGMENT_RE.findall(value)]
        for candidate in candidates:
            for fmt in _DATE_FORMATS:
                try:
                    parsed = datetime.strptime(candidate, fmt)
                    break
                except ValueError:
                    continue
            if parsed is not None:
                break
    if parsed is None:
        return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed.astimezone(timezone.utc).isoformat()


# ---------------------------------------------------------------------------
# Field extractors
# ---------------------------------------------------------------------------


def extract_title(doc: BeautifulSoup) -> str:
    """Article title via the title-selector fallthrough, then OG/Twitter meta."""
    return first_text(doc, TITLE_SELECTORS) or clean_whitespace(
        meta_content(doc, prop="og:title") or meta_content(doc, name="twitter:title")
    )


def extract_main_content(doc: BeautifulSoup) -> str:
    """Longest content-area text, falling back to the body text."""
    best = ""
    for selector in CONTENT_SELECTORS:
        text = clean_whitespace(" ".join(el.get_text(" ") for el in doc.select(selector)))
        if len(text) > len(best):
            best = text
    if not best:
        best = text_of(doc.body) if doc.body is not None else text_of(doc)
    return best


def extract_readable_content(html: str, url: str, fallback: str) -> str:
    """trafilatura text, or *fallback* when it finds nothing readable."""
    try:
        return clean_whitespace(extract_readable(html, url).text)
    except ExtractionError as exc:
        logger.warning("content: readability extraction failed for %s, using fallback: %s", url, exc)
        return fallback


def _json_ld_author(objects: list[dict[str, Any]]) -> str:
    for obj in objects:
        author = obj.get("author")
        if isinstance(author, list) and author:
            author = author[0]
        if isinstance(author, dict):
            author = author.get("name")
        if isinstance(author, str) and author.strip():
            return clean_whitespace(author)
    return ""


def extract_author(doc: BeautifulSoup, objects: list[dict[str, Any]]) -> str:
    """Author via selectors, then ``meta[name=author]``, then JSON-LD ``author``."""
    return (
        first_text(doc, AUTHOR_SELECTORS)
        or clean_whitespace(meta_content(doc, name="author"))
        or _json_ld_author(objects)
    )


def _date_from_selectors(doc: BeautifulSoup, selectors: tuple[str, ...]) -> str | None:
    for selector in selectors:
        element = doc.select_one(selector)
        if element is None:
            continue
        raw = attr(element, "datetime") or attr(element, "content") or text_of(element)
        parsed = parse_date(raw)
        if parsed:
            return parsed
    return None


def extract_publish_date(doc: BeautifulSoup, objects: list[dict[str, Any]]) -> str | None:
    found = _date_from_selectors(doc, PUBLISH_DATE_SELECTORS)
    if found:
        return found
    for raw in (
        meta_content(doc, prop="article:published_time"),
        meta_content(doc, name="pubdate"),
        meta_content(doc, name="date"),
        *(str(obj.get("datePublished", "")) for obj in objects),
    ):
        parsed = parse_date(raw)
        if parsed:
            return parsed
    return None


def extract_modified_date(doc: BeautifulSoup, objects: list[dict[str, Any]]) -> str | None:
    found = _date_from_selectors(doc, MODIFIED_DATE_SELECTORS)
    if found:
        return found
    for raw in (
        meta_content(doc, prop="article:modified_time"),
        *(str(obj.get("dateModified", "")) for obj in objects),
    ):
        parsed = parse_date(raw)
        if parsed:
            return parsed
    return None


def _collect_texts(doc: BeautifulSoup, selectors: tuple[str, ...]) -> list[str]:
    values: dict[str, None] = {}
    for selector in selectors:
        for element in doc.select(selector):
            text = text_of(element)
            if text:
                values[text] = None
    return list(values)


def extract_tags(doc: BeautifulSoup) -> list[str]:
    """Tag links plus comma-separated ``meta[name=keywords]``, de-duplicated in order."""
    tags = _collect_texts(doc, TAG_SELECTORS)
    for keyword in meta_content(doc, name="keywords").split(","):
        keyword = clean_whitespace(keyword)
        if keyword and keyword not in tags:
            tags.append(keyword)
    return tags


def extract_categories(doc: BeautifulSoup, objects: list[dict[str, Any]]) -> list[str]:
    """Category links plus JSON-LD ``articleSection``."""
    categories = _collect_texts(doc, CATEGORY_SELECTORS)
    for obj in objects:
        sections = obj.get("articleSection")
        if isinstance(sections, str):
            sections = [sections]
        for section in sections or []:
            section = clean_whitespace(str(section))
            if section and section not in categories:
                categories.append(section)
    return categories


def _image_caption(img: Tag) -> str:
    figure = img.find_parent("figure")
    if figure is not None:
        caption = text_of(figure.find("figcaption"))
        if caption:
            return caption
    parent = img.parent
    if parent is not None:
        return text_of(parent.select_one(".caption, .wp-caption-text"))
    return ""


def extract_content_images(doc: BeautifulSoup, base_url: str) -> list[dict[str, Any]]:
    """In-content images, de-duplicated by normalised URL, with a running position."""
    images: list[dict[str, Any]] = []
    seen: set[str] = set()
    for selector in CONTENT_IMAGE_SELECTORS:
        for img in doc.select(selector):
            src = attr(img, "src") or attr(img, "data-src") or attr(img, "data-lazy")
            if not src or src.startswith("data:"):
                continue
            url = normalize_url(src, base_url)
            key = url_key(url)
            if key in seen:
                continue
            seen.add(key)
            images.append(
                {
                    "url": url,
                    "alt": attr(img, "alt"),
                    "title": attr(img, "title"),
                    "width": attr(img, "width") or None,
                    "height": attr(img, "height") or None,
                    "caption": _image_caption(img),
                    "position": len(images) + 1,
                }
            )
    return images


def extract_content_links(doc: BeautifulSoup, base_url: str) -> list[dict[str, Any]]:
    """In-content links with internal/nofollow flags, de-duplicated by normalised URL."""
    links: list[dict[str, Any]] = []
    seen: set[str] = set()
    for selector in CONTENT_LINK_SELECTORS:
        for anchor in doc.select(selector):
            href = attr(anchor, "href")
            if not href or href.startswith(("#", "mailto:", "javascript:")):
                continue
            url = normalize_url(href, base_url)
            key = url_key(url)
            if key in seen:
                continue
            seen.add(key)
            links.append(
                {
                    "url": url,
                    "text": text_of(anchor),
                    "title": attr(anchor, "title"),
                    "is_internal": is_internal(url, base_url),
                    "is_nofollow": "nofollow" in attr(anchor, "rel").lower().split(),
                    "position": len(links) + 1,
                }
            )
    return links


def extract_headings(doc: BeautifulSoup) -> list[dict[str, Any]]:
    """``h1``..``h6`` in document order, each with level, text, id and position."""
    headings: list[dict[str, Any]] = []
    for heading in doc.find_all(["h1", "h2", "h3", "h4", "h5", "h6"]):
        text = text_of(heading)
        if text:
            headings.append(
                {
                    "level": int(heading.name[1]),
                    "text": text,
                    "id": attr(heading, "id"),
                    "position": len(headings) + 1,
                }
            )
    return headings


def extract_content_metadata(doc: BeautifulSoup) -> dict[str, str]:
    charset_meta = doc.find("meta", attrs={"charset": True})
    language_meta = doc.find("meta", attrs={"http-equiv": re.compile("^content-language$", re.I)})
    type_meta = doc.find("meta", attrs={"http-equiv": re.compile("^content-type$", re.I)})
    return {
        "title": text_of(doc.find("title")),
        "description": meta_content(doc, name="description"),
        "keywords": meta_content(doc, name="keywords"),
        "canonical": attr(doc.find("link", attrs={"rel": "canonical"}), "href"),  # type: ignore[arg-type]
        "robots": meta_content(doc, name="robots"),
        "viewport": meta_content(doc, name="viewport"),
        "language": attr(doc.find("html"), "lang") or attr(language_meta, "content"),  # type: ignore[arg-type]
        "charset": attr(charset_meta, "charset") or attr(type_meta, "content"),  # type: ignore[arg-type]
    }


def _sum_counts(doc: BeautifulSoup, selectors: tuple[str, ...], data_attr: str) -> int:
    total = 0
    for selector in selectors:
        for element in doc.select(selector):
            digits = _DIGITS_RE.sub("", attr(element, data_attr) or element.get_text())
            if digits:
                total += int(digits)
    return total


def extract_social_metrics(doc: BeautifulSoup) -> dict[str, Any]:
    """Share/like/comment counts found in the DOM plus outbound social links."""
    social_links = [
        {"platform": platform, "url": attr(anchor, "href"), "text": text_of(anchor)}
        for platform in SOCIAL_METRIC_PLATFORMS
        for anchor in doc.select(f'a[href*="{platform}.com"]')
    ]
    return {
        "shares": _sum_counts(doc, SHARE_COUNT_SELECTORS, "data-share-count"),
        "likes": _sum_counts(doc, LIKE_COUNT_SELECTORS, "data-like-count"),
        "comments": _sum_counts(doc, COMMENT_COUNT_SELECTORS, "data-comment-count"),
        "social_links": social_links,
    }


def extract_breadcrumbs(doc: BeautifulSoup) -> list[dict[str, Any]]:
    """Breadcrumb trail from the first selector that yields any items."""
    for selector in BREADCRUMB_SELECTORS:
        crumbs = []
        for anchor in doc.select(selector):
            text = text_of(anchor)
            href = attr(anchor, "href")
            if text and href:
                crumbs.append({"text": text, "url": href, "position": len(crumbs) + 1})
        if crumbs:
            return crumbs
    return []


def analyze_content_structure(doc: BeautifulSoup) -> dict[str, Any]:
    return {
        "paragraph_count": len(doc.find_all("p")),
        "list_count": len(doc.find_all(["ul", "ol"])),
        "list_item_count": len(doc.find_all("li")),
        "table_count": len(doc.find_all("table")),
        "blockquote_count": len(doc.find_all("blockquote")),
        "code_block_count": len(doc.find_all(["pre", "code"])),
        "heading_distribution": {f"h{level}": len(doc.find_all(f"h{level}")) for level in range(1, 7)},
    }


def strip_boilerplate(doc: BeautifulSoup) -> BeautifulSoup:
    """Remove boilerplate nodes in place (mirrors the in-page pre-script)."""
    for element in doc.select(BOILERPLATE_SELECTORS):
        element.decompose()
    return doc


# ---------------------------------------------------------------------------
# Extractor
# ---------------------------------------------------------------------------


@register
class ContentExtractor(Extractor):
    """Extract an article's body, byline, taxonomy and content statistics.

    Options:
        content_type: Free-form label copied to the result's ``type``
            (default ``"blog"``).
    """

    job_type = JobType.CONTENT

    async def extract(
        self,
        target: str | None,
        options: dict[str, Any] | None = None,
        *,
        on_progress: ProgressCallback | None = None,
    ) -> dict[str, Any]:
        url = self.require_url(target)
        options = options or {}
        logger.info("content: starting extraction for %s", url)

        page = await self.load_page(
            url, wait_for_selector="body", pre_script=REMOVE_BOILERPLATE_SCRIPT
        )
        self.report(on_progress, 20)
        structured = extract_structured_data(page.doc)
        objects = json_ld_objects(page.doc)
        doc = strip_boilerplate(page.doc)
        html = str(doc)

        content = extract_main_content(doc)
        clean_content = extract_readable_content(html, url, content)
        result: dict[str, Any] = {
            "url": url,
            "type": options.get("content_type", "blog"),
            "title": extract_title(doc),
            "content": content,
            "clean_content": clean_content,
            "author": extract_author(doc, objects),
            "publish_date": extract_publish_date(doc, objects),
            "modified_date": extract_modified_date(doc, objects),
            "tags": extract_tags(doc),
            "categories": extract_categories(doc, objects),
            "images": extract_content_images(doc, url),
            "links": extract_content_links(doc, url),
            "headings": extract_headings(doc),
            "metadata": extract_content_metadata(doc),
            "structured_data": structured,
            "social_metrics": extract_social_metrics(doc),
            "breadcrumbs": extract_breadcrumbs(doc),
            "content_structure": analyze_content_structure(doc),
            "word_count": count_words(clean_content),
            "character_count": len(clean_content),
            "reading_time": reading_time_minutes(clean_content),
            "content_hash": content_hash(clean_content) if clean_content else None,
            "scraped_at": utc_timestamp(),
        }
        self.report(on_progress, 80)
        logger.info("content: extracted %s (%d words)", url, result["word_count"])
        return result

    async def extract_many(
        self,
        urls: list[str],
        options: dict[str, Any] | None = None,
    ) -> list[dict[str, Any]]:
        """Extract several articles in chunks of ``content_batch_concurrency``.

        A failing URL yields ``{url, error, scraped_at}`` in its slot; the
        remaining URLs are still processed.  Result order matches *urls*.
        """
        options = options or {}
        size = max(1, int(options.get("max_concurrent", self.settings.content_batch_concurrency)))
        results: list[dict[str, Any]] = []
        for start in range(0, len(urls), size):
            batch = urls[start : start + size]
            outcomes = await asyncio.gather(
                *(self.extract(url, options) for url in batch), return_exceptions=True
            )
            for url, outcome in zip(batch, outcomes):
                if isinstance(outcome, BaseException):
                    logger.warning("content: batch item %s failed: %s", url, outcome)
                    results.append({"url": url, "error": str(outcome), "scraped_at": utc_timestamp()})
                else:
                    results.append(outcome)
        return results
