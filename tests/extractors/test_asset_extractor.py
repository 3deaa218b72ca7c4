"""Tests for asset discovery, filtering and the asset extractor."""

from __future__ import annotations

import httpx
import pytest
import respx

from content_harvest.extractors.assets import (
    AssetExtractor,
    discover_audio,
    discover_documents,
    discover_images,
    discover_videos,
    element_context,
    filter_images,
    is_icon,
)
from content_harvest.scraper.dom import parse_html

URL = "https://example.com/gallery"

ASSET_HTML = """
<html><body>
  <header><img src="/logo.png" width="80" height="40" alt="Logo"></header>
  <nav><img src="/nav/arrow.png" width="300" height="300"></nav>
  <article>
    <p>This is a long paragraph of article text that sits right next to the hero image.</p>
    <img src="/img/hero.jpg" width="1200" height="600" alt="Hero">
    <img data-src="/img/lazy.jpg" alt="Lazy">
    <img src="/img/HERO.jpg/" alt="Duplicate by key">
    <img src="/img/thumb.jpg" width="50" height="50">
    <img src="/favicon.ico">
    <picture><source srcset="/img/wide.webp 1200w, /img/narrow.webp 600w" media="(min-width: 800px)"></picture>
    <div class="banner" style="background-image: url('/img/banner.png')"></div>
    <video src="/media/intro.mp4" poster="/media/intro.jpg" controls muted>
      <source src="/media/intro.webm" type="video/webm">
    </video>
    <iframe src="https://www.youtube.com/embed/dQw4w9WgXcQ" title="Talk"></iframe>
    <iframe src="https://player.vimeo.com/video/76979871"></iframe>
    <iframe src="https://maps.example.com/embed"></iframe>
    <audio src="/media/podcast.mp3" controls><source src="/media/podcast.ogg" type="audio/ogg"></audio>
    <a href="/docs/report.PDF">Annual report</a>
    <a href="/docs/report.pdf">Same report</a>
    <a href="/data/table.xlsx" title="Data">Data</a>
    <a href="/page.html">Not a document</a>
  </article>
  <footer><img src="/img/footer-badge.png" width="200" height="200"></footer>
</body></html>
"""

DOCUMENT_EXTENSIONS = ["pdf", "doc", "docx", "xls", "xlsx", "ppt", "pptx"]


def _images() -> list[dict]:
    return discover_images(parse_html(ASSET_HTML), URL)


class TestDiscovery:
    def test_images_deduplicated_and_lazy_src_used(self) -> None:
        urls = [image["url"] for image in _images()]
        assert "https://example.com/img/lazy.jpg" in urls
        assert urls.count("https://example.com/img/hero.jpg") == 1
        assert "https://example.com/img/HERO.jpg/" not in urls

    def test_image_types(self) -> None:
        by_url = {image["url"]: image for image in _images()}
        assert by_url["https://example.com/img/banner.png"]["type"] == "background"
        wide = by_url["https://example.com/img/wide.webp"]
        assert wide["type"] == "picture"
        assert wide["media"] == "(min-width: 800px)"
        assert "https://example.com/img/narrow.webp" in by_url

    def test_context_flags(self) -> None:
        by_url = {image["url"]: image for image in _images()}
        assert by_url["https://example.com/logo.png"]["context"]["in_header"] is True
        assert by_url["https://example.com/nav/arrow.png"]["context"]["in_nav"] is True
        assert by_url["https://example.com/img/footer-badge.png"]["context"]["in_footer"] is True
        hero = by_url["https://example.com/img/hero.jpg"]["context"]
        assert hero["in_article"] is True
        assert hero["near_text"] is True

    def test_element_context_class_match(self) -> None:
        doc = parse_html('<div class="sidebar"><img src="/a.png"></div>')
        assert element_context(doc.img)["in_sidebar"] is True

    def test_videos(self) -> None:
        videos = {v["url"]: v for v in discover_videos(parse_html(ASSET_HTML), URL)}
        intro = videos["https://example.com/media/intro.mp4"]
        assert intro["type"] == "html5_video"
        assert intro["poster"] == "https://example.com/media/intro.jpg"
        assert intro["controls"] is True
        assert intro["muted"] is True
        assert intro["autoplay"] is False
        assert videos["https://example.com/media/intro.webm"]["mime_type"] == "video/webm"

        youtube = videos["https://www.youtube.com/embed/dQw4w9WgXcQ"]
        assert youtube["type"] == "youtube"
        assert youtube["video_id"] == "dQw4w9WgXcQ"
        assert youtube["watch_url"] == "https://www.youtube.com/watch?v=dQw4w9WgXcQ"

        vimeo = videos["https://player.vimeo.com/video/76979871"]
        assert vimeo["type"] == "vimeo"
        assert vimeo["video_id"] == "76979871"

        assert "https://maps.example.com/embed" not in videos

    def test_documents(self) -> None:
        docs = discover_documents(parse_html(ASSET_HTML), URL, DOCUMENT_EXTENSIONS)
        assert [d["extension"] for d in docs] == [".pdf", ".xlsx"]
        assert docs[0]["text"] == "Annual report"

    def test_audio(self) -> None:
        audio = discover_audio(parse_html(ASSET_HTML), URL)
        assert [a["url"] for a in audio] == [
            "https://example.com/media/podcast.mp3",
            "https://example.com/media/podcast.ogg",
        ]
        assert audio[1]["mime_type"] == "audio/ogg"


class TestFilterImages:
    def test_icons_excluded_by_default(self) -> None:
        urls = [image["url"] for image in filter_images(_images(), {})]
        assert "https://example.com/favicon.ico" not in urls
        assert "https://example.com/logo.png" not in urls

    def test_icons_kept_when_disabled(self) -> None:
        urls = [image["url"] for image in filter_images(_images(), {"exclude_icons": False})]
        assert "https://example.com/favicon.ico" in urls

    def test_min_dimensions_keep_undeclared(self) -> None:
        urls = [
            image["url"]
            for image in filter_images(_images(), {"min_width": 100, "min_height": 100})
        ]
        assert "https://example.com/img/thumb.jpg" not in urls
        assert "https://example.com/img/hero.jpg" in urls
        assert "https://example.com/img/lazy.jpg" in urls

    def test_placement_filters(self) -> None:
        options = {"exclude_navigation": True, "exclude_header": True, "exclude_footer": True}
        urls = [image["url"] for image in filter_images(_images(), options)]
        assert "https://example.com/nav/arrow.png" not in urls
        assert "https://example.com/img/footer-badge.png" not in urls

    def test_allowed_types(self) -> None:
        images = filter_images(_images(), {"allowed_types": [".webp"]})
        assert {image["url"].rsplit(".", 1)[-1] for image in images} == {"webp"}

    def test_is_icon_logo_needs_small_size(self) -> None:
        assert is_icon({"url": "https://x.com/logo.png", "width": "50"}) is True
        assert is_icon({"url": "https://x.com/logo.png", "width": "400", "height": "200"}) is False
        assert is_icon({"url": "https://x.com/logo.png"}) is False


@pytest.mark.asyncio
class TestAssetExtractor:
    async def test_discovery_only(self, settings, fake_browser, policy_store) -> None:
        fake_browser.serve(URL, ASSET_HTML)
        extractor = AssetExtractor(settings, session_factory=fake_browser, policy_store=policy_store)

        result = await extractor.extract(URL, {"asset_types": ["images", "documents"]})

        assert result["videos"] == []
        assert result["audio"] == []
        assert result["summary"]["documents"] == 2
        assert result["summary"]["images"] == len(result["images"])
        assert result["summary"]["downloaded"] == 0

    async def test_download_images(
        self, settings, fake_browser, policy_store, png_bytes
    ) -> None:
        page = (
            "<html><body><article>"
            '<img src="/big.png"><img src="/small.png"><img src="/missing.png">'
            "</article></body></html>"
        )
        fake_browser.serve(URL, page)
        with respx.mock(base_url="https://example.com") as mock:
            mock.get("/big.png").mock(
                return_value=httpx.Response(
                    200, content=png_bytes(300, 200), headers={"content-type": "image/png"}
                )
            )
            mock.get("/small.png").mock(
                return_value=httpx.Response(
                    200, content=png_bytes(20, 20), headers={"content-type": "image/png"}
                )
            )
            mock.get("/missing.png").mock(return_value=httpx.Response(404))
            async with httpx.AsyncClient() as client:
                extractor = AssetExtractor(
                    settings,
                    session_factory=fake_browser,
                    policy_store=policy_store,
                    http_client=client,
                )
                result = await extractor.extract(
                    URL, {"asset_types": ["images"], "download": True}
                )

        by_url = {image["url"]: image for image in result["images"]}
        big = by_url["https://example.com/big.png"]
        assert big["downloaded"] is True
        assert big["width"] == 300
        assert big["height"] == 200
        assert big["file_path"].startswith(settings.download_dir)

        small = by_url["https://example.com/small.png"]
        assert small["downloaded"] is False
        assert "too small" in small["error"]
        assert by_url["https://example.com/missing.png"]["downloaded"] is False
        assert result["summary"]["downloaded"] == 1
