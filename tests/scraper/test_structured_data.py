"""Unit tests for structured-data and metadata extraction."""

from __future__ import annotations

from content_harvest.scraper.dom import attr, first_text, meta_content, parse_html, text_of
from content_harvest.scraper.structured_data import (
    extract_metadata,
    extract_structured_data,
    json_ld_objects,
)

PAGE = """
<html><head>
  <title>  Example   Title </title>
  <meta name="description" content="A page about things">
  <meta name="keywords" content="things, stuff">
  <meta name="author" content="Jane Doe">
  <meta property="og:title" content="OG Title">
  <meta property="og:image" content="https://example.com/og.png">
  <meta property="og:type" content="article">
  <link rel="canonical" href="https://example.com/canonical">
  <script type="application/ld+json">{"@type": "Article", "headline": "Hello"}</script>
  <script type="application/ld+json">{not json</script>
  <script type="application/ld+json">
    {"@graph": [{"@type": "Person", "name": "Jane"}, {"@type": "WebSite"}]}
  </script>
</head><body>
  <div itemscope itemtype="https://schema.org/Product">
    <span itemprop="name">Widget</span>
    <meta itemprop="price" content="9.99">
  </div>
  <div itemscope><span>no props</span></div>
</body></html>
"""


class TestExtractStructuredData:
    def test_json_ld_blocks_parsed_and_malformed_skipped(self) -> None:
        records = extract_structured_data(parse_html(PAGE))
        json_ld = [r for r in records if r["type"] == "json-ld"]
        assert len(json_ld) == 2
        assert json_ld[0]["data"]["headline"] == "Hello"

    def test_microdata(self) -> None:
        records = extract_structured_data(parse_html(PAGE))
        micro = [r for r in records if r["type"] == "microdata"]
        assert micro == [
            {
                "type": "microdata",
                "item_type": "https://schema.org/Product",
                "properties": {"name": "Widget", "price": "9.99"},
            }
        ]

    def test_open_graph(self) -> None:
        records = extract_structured_data(parse_html(PAGE))
        og = [r for r in records if r["type"] == "open-graph"]
        assert og[0]["data"]["og:title"] == "OG Title"

    def test_empty_document(self) -> None:
        assert extract_structured_data(parse_html("")) == []


class TestJsonLdObjects:
    def test_graph_flattened(self) -> None:
        types = [obj.get("@type") for obj in json_ld_objects(parse_html(PAGE))]
        assert "Article" in types
        assert "Person" in types
        assert "WebSite" in types


class TestExtractMetadata:
    def test_fields(self) -> None:
        meta = extract_metadata(parse_html(PAGE))
        assert meta["title"] == "Example Title"
        assert meta["description"] == "A page about things"
        assert meta["keywords"] == "things, stuff"
        assert meta["author"] == "Jane Doe"
        assert meta["og_image"] == "https://example.com/og.png"
        assert meta["og_type"] == "article"
        assert meta["canonical"] == "https://example.com/canonical"

    def test_title_falls_back_to_open_graph_then_twitter(self) -> None:
        og_only = parse_html('<meta property="og:title" content="From OG">')
        assert extract_metadata(og_only)["title"] == "From OG"
        twitter_only = parse_html('<meta name="twitter:title" content="From Twitter">')
        assert extract_metadata(twitter_only)["title"] == "From Twitter"

    def test_missing_fields_are_empty(self) -> None:
        meta = extract_metadata(parse_html("<p>hi</p>"))
        assert meta["title"] == ""
        assert meta["canonical"] == ""


class TestDomHelpers:
    def test_text_of_none(self) -> None:
        assert text_of(None) == ""

    def test_attr_joins_list_values(self) -> None:
        doc = parse_html('<div class="a b"></div>')
        assert attr(doc.div, "class") == "a b"

    def test_meta_content(self) -> None:
        doc = parse_html('<meta name="robots" content=" noindex ">')
        assert meta_content(doc, name="robots") == "noindex"

    def test_first_text_order(self) -> None:
        doc = parse_html("<h2>Second</h2><h1> </h1>")
        assert first_text(doc, ["h1", "h2"]) == "Second"
