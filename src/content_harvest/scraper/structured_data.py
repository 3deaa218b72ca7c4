"""Structured-data and page-metadata extraction.

``extract_structured_data`` collects three kinds of machine-readable blocks
into one uniform list:

- ``{"type": "json-ld", "data": {...}}`` for each parseable
  ``<script type="application/ld+json">``; malformed blocks are skipped.
- ``{"type": "microdata", "item_type": ..., "properties": {...}}`` for each
  ``itemscope`` element with at least one ``itemprop``.
- ``{"type": "open-graph", "data": {"og:title": ...}}`` when the page has
  ``og:*`` meta tags.

``extract_metadata`` resolves title and description through the
``<title>`` / meta / Open Graph / Twitter-card chain, in that order.
"""

from __future__ import annotations

import json
import logging
from typing import Any

from bs4 import BeautifulSoup

from content_harvest.scraper.dom import attr, meta_content, text_of

logger = logging.getLogger(__name__)


def _json_ld_blocks(doc: BeautifulSoup) -> list[Any]:
    blocks: list[Any] = []
    for script in doc.find_all("script", attrs={"type": "application/ld+json"}):
        raw = (script.string or script.get_text() or "").strip()
        if not raw:
            continue
        try:
            blocks.append(json.loads(raw))
        except (json.JSONDecodeError, ValueError):
            logger.debug("structured_data: skipping malformed JSON-LD block")
    return blocks


def extract_structured_data(doc: BeautifulSoup) -> list[dict[str, Any]]:
    """Collect JSON-LD, microdata and Open Graph blocks from *doc*.

    Never raises on malformed input.
    """
    records: list[dict[str, Any]] = [
        {"type": "json-ld", "data": block} for block in _json_ld_blocks(doc)
    ]

    for item in doc.select("[itemscope]"):
        properties: dict[str, str] = {}
        for prop in item.select("[itemprop]"):
            name = attr(prop, "itemprop")
            value = attr(prop, "content") or attr(prop, "href") or text_of(prop)
            if name and value:
                properties[name] = value
        if properties:
            records.append(
                {
                    "type": "microdata",
                    "item_type": attr(item, "itemtype") or None,
                    "properties": properties,
                }
            )

    og: dict[str, str] = {}
    for meta in doc.select('meta[property^="og:"]'):
        prop = attr(meta, "property")
        content = attr(meta, "content")
        if prop and content:
            og[prop] = content
    if og:
        records.append({"type": "open-graph", "data": og})

    return records


def json_ld_objects(doc: BeautifulSoup) -> list[dict[str, Any]]:
    """Return every JSON-LD object on the page, flattening lists and ``@graph``."""
    objects: list[dict[str, Any]] = []
    pending: list[Any] = list(_json_ld_blocks(doc))
    while pending:
        block = pending.pop(0)
        if isinstance(block, list):
            pending.extend(block)
        elif isinstance(block, dict):
            objects.append(block)
            graph = block.get("@graph")
            if isinstance(graph, list):
                pending.extend(graph)
    return objects


def extract_metadata(doc: BeautifulSoup) -> dict[str, str]:
    """Return the page-level metadata used by the page extractor.

    Title and description fall through ``<title>`` (or ``meta description``),
    then Open Graph, then the Twitter card.
    """
    title_tag = doc.find("title")
    title = (
        text_of(title_tag)
        or meta_content(doc, prop="og:title")
        or meta_content(doc, name="twitter:title")
    )
    description = (
        meta_content(doc, name="description")
        or meta_content(doc, prop="og:description")
        or meta_content(doc, name="twitter:description")
    )
    canonical = doc.find("link", attrs={"rel": "canonical"})
    return {
        "title": title,
        "description": description,
        "keywords": meta_content(doc, name="keywords"),
        "og_image": meta_content(doc, prop="og:image"),
        "og_url": meta_content(doc, prop="og:url"),
        "og_type": meta_content(doc, prop="og:type"),
        "author": meta_content(doc, name="author"),
        "canonical": attr(canonical, "href"),  # type: ignore[arg-type]
    }
