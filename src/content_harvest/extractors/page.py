"""Whole-page extractor for monitored websites.

Produces the page-level view of a site: metadata, main text, the link and
image inventories, heading outline, social-profile links, best-effort
contact details and a technology fingerprint.  Contact and technology
detection are cheap heuristics; they return what they find and never fail
the extraction.
"""

from __future__ import annotations

import logging
import re
from collections.abc import Callable
from typing import Any

from bs4 import BeautifulSoup

from content_harvest.extractors.base import Extractor, ProgressCallback, utc_timestamp
from content_harvest.extractors.registry import register
from content_harvest.jobs.models import JobType
from content_harvest.scraper.dom import attr, text_of
from content_harvest.scraper.structured_data import extract_metadata
from content_harvest.scraper.urls import clean_whitespace, is_internal, normalize_url, url_key

logger = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# Selector tables
# ---------------------------------------------------------------------------

MAIN_CONTENT_SELECTORS: tuple[str, ...] = (
    "main",
    '[role="main"]',
    ".main-content",
    "#main-content",
    ".content",
    "#content",
    "article",
    ".post-content",
    ".entry-content",
)

SOCIAL_PLATFORMS: tuple[str, ...] = (
    "facebook.com",
    "twitter.com",
    "x.com",
    "linkedin.com",
    "instagram.com",
    "youtube.com",
    "tiktok.com",
    "pinterest.com",
    "github.com",
)

ADDRESS_SELECTORS: tuple[str, ...] = (
    '[itemprop="address"]',
    ".address",
    "#address",
    ".contact-address",
    "address",
)

EMAIL_RE = re.compile(r"[a-zA-Z0-9._%+-]+@[a-zA-Z0-9.-]+\.[a-zA-Z]{2,}")
PHONE_RE = re.compile(r"(?:\+?\d{1,3}[-.\s]?)?\(?\d{2,4}\)?[-.\s]?\d{3,4}[-.\s]?\d{3,4}")
BACKGROUND_URL_RE = re.compile(r"background(?:-image)?\s*:[^;]*url\(\s*['\"]?([^'\")]+)['\"]?\s*\)", re.I)

# ---------------------------------------------------------------------------
# Field extractors (pure functions over the parsed document)
# ---------------------------------------------------------------------------


def extract_main_content(doc: BeautifulSoup) -> str:
    """Return the longest text among the content-area selectors, else the body text."""
    content = ""
    for selector in MAIN_CONTENT_SELECTORS:
        text = clean_whitespace(" ".join(el.get_text(" ") for el in doc.select(selector)))
        if len(text) > len(content):
            content = text
    if not content:
        content = text_of(doc.body) if doc.body is not None else text_of(doc)
    return content


def extract_links(doc: BeautifulSoup, source_url: str) -> list[dict[str, Any]]:
    """Return every ``a[href]`` as ``{url, text, title, is_internal}``, deduplicated."""
    links: list[dict[str, Any]] = []
    seen: set[str] = set()
    for anchor in doc.select("a[href]"):
        href = attr(anchor, "href")
        if not href or href.startswith(("#", "javascript:")):
            continue
        url = normalize_url(href, source_url)
        key = url_key(url)
        if key in seen:
            continue
        seen.add(key)
        links.append(
            {
                "url": url,
                "text": text_of(anchor),
                "title": attr(anchor, "title"),
                "is_internal": is_internal(url, source_url),
            }
        )
    return links


def _srcset_urls(srcset: str) -> list[str]:
    return [part.strip().split(" ")[0] for part in srcset.split(",") if part.strip()]


def extract_images(doc: BeautifulSoup, source_url: str) -> list[dict[str, Any]]:
    """Inventory ``<img>``, ``<picture><source srcset>`` and inline background images."""
    images: list[dict[str, Any]] = []
    seen: set[str] = set()

    def add(raw: str, source: str, **extra: Any) -> None:
        if not raw or raw.startswith("data:"):
            return
        url = normalize_url(raw, source_url)
        key = url_key(url)
        if key in seen:
            return
        seen.add(key)
        images.append({"url": url, "source": source, **extra})

    for img in doc.select("img[src]"):
        add(
            attr(img, "src"),
            "img",
            alt=attr(img, "alt"),
            title=attr(img, "title"),
            width=attr(img, "width") or None,
            height=attr(img, "height") or None,
        )
    for source in doc.select("picture source[srcset]"):
        for candidate in _srcset_urls(attr(source, "srcset")):
            add(candidate, "picture", media=attr(source, "media") or None)
    for element in doc.select("[style]"):
        match = BACKGROUND_URL_RE.search(attr(element, "style"))
        if match:
            add(match.group(1), "background")
    return images


def extract_headings(doc: BeautifulSoup) -> list[dict[str, Any]]:
    """Return ``{level, text, id}`` for ``h1``..``h6``, grouped by level."""
    headings: list[dict[str, Any]] = []
    for level in range(1, 7):
        for heading in doc.find_all(f"h{level}"):
            text = text_of(heading)
            if text:
                headings.append({"level": level, "text": text, "id": attr(heading, "id")})
    return headings


def extract_social_links(doc: BeautifulSoup) -> dict[str, str]:
    """Map platform name to the last profile link found for it."""
    social: dict[str, str] = {}
    for anchor in doc.select("a[href]"):
        href = attr(anchor, "href")
        host_part = href.split("?", 1)[0].lower()
        for platform in SOCIAL_PLATFORMS:
            if f"//{platform}" in host_part or f".{platform}" in host_part:
                name = "twitter" if platform == "x.com" else platform.split(".")[0]
                social[name] = href
    return social


def extract_contact_info(doc: BeautifulSoup) -> dict[str, Any]:
    """Best-effort emails, phone numbers and addresses from the visible text."""
    body = doc.body if doc.body is not None else doc
    text = body.get_text(" ")
    contact: dict[str, Any] = {}

    emails = list(dict.fromkeys(EMAIL_RE.findall(text)))
    if emails:
        contact["emails"] = emails

    phones = [
        match.strip()
        for match in PHONE_RE.findall(text)
        if len(re.sub(r"\D", "", match)) >= 7
    ]
    if phones:
        contact["phones"] = list(dict.fromkeys(phones))

    addresses: list[str] = []
    for selector in ADDRESS_SELECTORS:
        for element in doc.select(selector):
            address = text_of(element)
            if address and address not in addresses:
                addresses.append(address)
        if addresses:
            break
    if addresses:
        contact["addresses"] = addresses
    return contact


def _script_text(doc: BeautifulSoup) -> str:
    return " ".join(script.get_text() for script in doc.find_all("script"))


def _script_srcs(doc: BeautifulSoup) -> str:
    return " ".join(attr(script, "src") for script in doc.find_all("script", src=True)).lower()


def _has_attr_prefix(doc: BeautifulSoup, prefix: str) -> bool:
    return any(
        any(name.startswith(prefix) for name in element.attrs)
        for element in doc.find_all(True)
    )


def _generator(doc: BeautifulSoup) -> str:
    return attr(doc.find("meta", attrs={"name": "generator"}), "content")  # type: ignore[arg-type]


TECHNOLOGY_SIGNATURES: dict[str, Callable[[BeautifulSoup], bool]] = {
    "React": lambda d: "React" in _script_text(d) or d.select_one("[data-reactroot]") is not None,
    "Vue.js": lambda d: "Vue" in _script_text(d) or _has_attr_prefix(d, "data-v-"),
    "Angular": lambda d: d.select_one("[ng-version], [ng-app]") is not None
    or _has_attr_prefix(d, "ng-"),
    "jQuery": lambda d: "jquery" in _script_srcs(d) or "jQuery" in _script_text(d),
    "Bootstrap": lambda d: d.select_one('link[href*="bootstrap"]') is not None
    or "bootstrap" in _script_srcs(d),
    "WordPress": lambda d: "WordPress" in _generator(d) or "wp-content" in _script_srcs(d),
    "Shopify": lambda d: "Shopify" in _script_text(d) or d.select_one(".shopify") is not None,
    "Google Analytics": lambda d: "gtag(" in _script_text(d)
    or "ga(" in _script_text(d)
    or "googletagmanager.com" in _script_srcs(d),
    "Next.js": lambda d: d.select_one("#__next, script#__NEXT_DATA__") is not None,
    "Drupal": lambda d: "Drupal" in _generator(d) or "Drupal.settings" in _script_text(d),
}


def detect_technologies(doc: BeautifulSoup) -> list[str]:
    """Return the names of every technology whose signature matches *doc*."""
    found: list[str] = []
    for name, detector in TECHNOLOGY_SIGNATURES.items():
        try:
            if detector(doc):
                found.append(name)
        except Exception as exc:  # noqa: BLE001
            logger.debug("page: technology probe %s failed: %s", name, exc)
    return found


# ---------------------------------------------------------------------------
# Extractor
# ---------------------------------------------------------------------------


@register
class PageExtractor(Extractor):
    """Extract the page-level profile of a website.

    Options:
        wait_for_selector: CSS selector to wait for after load.
    """

    job_type = JobType.PAGE

    async def extract(
        self,
        target: str | None,
        options: dict[str, Any] | None = None,
        *,
        on_progress: ProgressCallback | None = None,
    ) -> dict[str, Any]:
        url = self.require_url(target)
        options = options or {}
        logger.info("page: starting extraction for %s", url)

        page = await self.load_page(url, wait_for_selector=options.get("wait_for_selector"))
        self.report(on_progress, 20)
        doc = page.doc

        result = {
            "url": url,
            "metadata": extract_metadata(doc),
            "content": extract_main_content(doc),
            "links": extract_links(doc, url),
            "images": extract_images(doc, url),
            "headings": extract_headings(doc),
            "social_links": extract_social_links(doc),
            "contact_info": extract_contact_info(doc),
            "technologies": detect_technologies(doc),
            "scraped_at": utc_timestamp(),
        }
        self.report(on_progress, 80)
        logger.info(
            "page: extracted %s (%d links, %d images)",
            url,
            len(result["links"]),
            len(result["images"]),
        )
        return result
