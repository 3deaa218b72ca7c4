"""Readable article text extraction from rendered HTML.

Uses ``trafilatura`` for boilerplate removal.  When trafilatura finds no
article body, :func:`extract_readable` raises
:class:`~content_harvest.core.exceptions.ExtractionError`; the content
extractor then falls back to its selector-based main-content text.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass

import trafilatura

from content_harvest.core.exceptions import ExtractionError
from content_harvest.scraper.config import MAX_CONTENT_BYTES

logger = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# Output dataclass
# ---------------------------------------------------------------------------


@dataclass
class ReadableContent:
    """Result of boilerplate removal on an HTML page.

    Attributes:
        text: Cleaned article text.
        title: Page title detected by trafilatura, or ``None``.
        language: ISO 639-1 language code detected by trafilatura, or ``None``.
    """

    text: str
    title: str | None
    language: str | None


def truncate_text(text: str, max_bytes: int = MAX_CONTENT_BYTES) -> str:
    """Strip NUL bytes and cap *text* at *max_bytes* of UTF-8."""
    text = text.replace("\x00", "")
    encoded = text.encode("utf-8")
    if len(encoded) > max_bytes:
        text = encoded[:max_bytes].decode("utf-8", errors="ignore")
    return text


# ---------------------------------------------------------------------------
# Public extraction function
# ---------------------------------------------------------------------------


def extract_readable(html: str, url: str) -> ReadableContent:
    """Extract boilerplate-free article text, title, and language from raw HTML.

    Args:
        html: Rendered HTML string (may be partial or malformed).
        url: Canonical URL of the page (used by trafilatura for heuristics).

    Returns:
        A :class:`ReadableContent` instance.

    Raises:
        ExtractionError: If trafilatura fails or finds no article text.
    """
    try:
        text = trafilatura.extract(
            html,
            url=url,
            include_comments=False,
            include_tables=True,
            no_fallback=False,
            output_format="txt",
        )
        meta = trafilatura.extract_metadata(html, default_url=url)
    except Exception as exc:  # noqa: BLE001
        raise ExtractionError(f"readability extraction failed: {exc}", url=url) from exc

    if not text or not text.strip():
        raise ExtractionError("no readable content found", url=url)

    title = getattr(meta, "title", None) or None
    language = getattr(meta, "language", None) or None
    return ReadableContent(text=truncate_text(text.strip()), title=title, language=language)
