"""Small BeautifulSoup helpers shared by the extractors."""

from __future__ import annotations

from bs4 import BeautifulSoup, Tag

from content_harvest.scraper.urls import clean_whitespace


def parse_html(html: str) -> BeautifulSoup:
    """Parse *html* with the stdlib-backed ``html.parser`` tree builder."""
    return BeautifulSoup(html or "", "html.parser")


def text_of(element: Tag | None) -> str:
    """Return the whitespace-collapsed text of *element* (``""`` for ``None``)."""
    if element is None:
        return ""
    return clean_whitespace(element.get_text(" "))


def attr(element: Tag | None, name: str) -> str:
    """Return attribute *name* of *element* as a stripped string (``""`` if absent)."""
    if element is None:
        return ""
    value = element.get(name)
    if value is None:
        return ""
    if isinstance(value, list):
        value = " ".join(value)
    return str(value).strip()


def meta_content(doc: BeautifulSoup, *, name: str | None = None, prop: str | None = None) -> str:
    """Return the ``content`` of the first ``<meta name=...>`` or ``<meta property=...>``."""
    if name is not None:
        element = doc.find("meta", attrs={"name": name})
    else:
        element = doc.find("meta", attrs={"property": prop})
    return attr(element, "content")  # type: ignore[arg-type]


def first_text(doc: BeautifulSoup | Tag, selectors: list[str] | tuple[str, ...]) -> str:
    """Return the text of the first element matched by any of *selectors*, in order."""
    for selector in selectors:
        element = doc.select_one(selector)
        text = text_of(element)
        if text:
            return text
    return ""
