"""Tests for the whole-page extractor and its field helpers.

The browser is replaced by the ``fake_browser`` fixture and politeness by
``policy_store``; no network access or Chromium is needed.
"""

from __future__ import annotations

import pytest

from content_harvest.core.exceptions import (
    NavigationError,
    RobotsDisallowedError,
    ValidationError,
)
from content_harvest.extractors.page import (
    PageExtractor,
    detect_technologies,
    extract_contact_info,
    extract_headings,
    extract_images,
    extract_links,
    extract_main_content,
    extract_social_links,
)
from content_harvest.scraper.dom import parse_html

URL = "https://example.com/"

PAGE_HTML = """
<html><head>
  <title>Example Co</title>
  <meta name="description" content="We make examples">
  <meta name="generator" content="WordPress 6.4">
  <script src="https://code.jquery.com/jquery-3.7.1.min.js"></script>
  <script>gtag('config', 'G-XYZ');</script>
</head><body>
  <nav>
    <a href="/about">About</a>
    <a href="/About/">About again</a>
    <a href="#top">Top</a>
    <a href="javascript:void(0)">Noop</a>
  </nav>
  <main>
    <h1 id="welcome">Welcome</h1>
    <h2>Our work</h2>
    <p>We build example websites for testing content extraction pipelines.</p>
    <img src="/img/hero.jpg" alt="Hero" width="800" height="400">
    <img src="data:image/png;base64,AAAA">
    <picture><source srcset="/img/a.webp 1x, /img/a@2x.webp 2x"></picture>
    <div style="background-image: url('/img/bg.png')">Banner</div>
  </main>
  <footer>
    <a href="https://twitter.com/exampleco">Twitter</a>
    <a href="https://www.linkedin.com/company/exampleco">LinkedIn</a>
    <a href="https://other.org/partner" title="Partner">Partner</a>
    <p>Contact: hello@example.com or +1 555-123-4567</p>
    <address>1 Example Street, Springfield</address>
  </footer>
</body></html>
"""


class TestFieldExtractors:
    def test_links_deduplicated_and_classified(self) -> None:
        links = extract_links(parse_html(PAGE_HTML), URL)
        urls = [link["url"] for link in links]
        assert urls.count("https://example.com/about") == 1
        assert not any(u.startswith(("#", "javascript:")) for u in urls)
        partner = next(link for link in links if link["url"] == "https://other.org/partner")
        assert partner["is_internal"] is False
        assert partner["title"] == "Partner"

    def test_images_inventory(self) -> None:
        images = extract_images(parse_html(PAGE_HTML), URL)
        by_url = {image["url"]: image for image in images}
        assert by_url["https://example.com/img/hero.jpg"]["alt"] == "Hero"
        assert "https://example.com/img/a@2x.webp" in by_url
        assert by_url["https://example.com/img/bg.png"]["source"] == "background"
        assert not any(u.startswith("data:") for u in by_url)

    def test_headings(self) -> None:
        headings = extract_headings(parse_html(PAGE_HTML))
        assert headings[0] == {"level": 1, "text": "Welcome", "id": "welcome"}
        assert headings[1]["level"] == 2

    def test_social_links(self) -> None:
        social = extract_social_links(parse_html(PAGE_HTML))
        assert social["twitter"] == "https://twitter.com/exampleco"
        assert social["linkedin"] == "https://www.linkedin.com/company/exampleco"

    def test_contact_info(self) -> None:
        contact = extract_contact_info(parse_html(PAGE_HTML))
        assert contact["emails"] == ["hello@example.com"]
        assert contact["phones"]
        assert contact["addresses"] == ["1 Example Street, Springfield"]

    def test_contact_info_empty(self) -> None:
        assert extract_contact_info(parse_html("<p>nothing here</p>")) == {}

    def test_technologies(self) -> None:
        found = detect_technologies(parse_html(PAGE_HTML))
        assert "WordPress" in found
        assert "jQuery" in found
        assert "Google Analytics" in found
        assert "React" not in found

    def test_main_content_falls_back_to_body(self) -> None:
        assert extract_main_content(parse_html("<body><p>Just text</p></body>")) == "Just text"


@pytest.mark.asyncio
class TestPageExtractor:
    async def test_extract(self, settings, fake_browser, policy_store) -> None:
        fake_browser.serve(URL, PAGE_HTML)
        extractor = PageExtractor(settings, session_factory=fake_browser, policy_store=policy_store)
        progress: list[int] = []

        result = await extractor.extract(URL, {}, on_progress=progress.append)

        assert result["url"] == URL
        assert result["metadata"]["title"] == "Example Co"
        assert "example websites" in result["content"]
        assert result["links"]
        assert result["scraped_at"]
        assert progress == [20, 80]
        assert policy_store.rate_limited == [("example.com", 2_000)]
        assert fake_browser.opened == fake_browser.closed == 1

    async def test_wait_for_selector_forwarded(self, settings, fake_browser, policy_store) -> None:
        fake_browser.serve(URL, PAGE_HTML)
        extractor = PageExtractor(settings, session_factory=fake_browser, policy_store=policy_store)
        await extractor.extract(URL, {"wait_for_selector": "main"})
        assert fake_browser.navigations[0]["wait_for_selector"] == "main"

    async def test_invalid_url(self, settings, fake_browser, policy_store) -> None:
        extractor = PageExtractor(settings, session_factory=fake_browser, policy_store=policy_store)
        with pytest.raises(ValidationError):
            await extractor.extract("not-a-url")
        assert fake_browser.navigations == []

    async def test_robots_disallowed(self, settings, fake_browser, policy_store) -> None:
        policy_store.disallowed.add("https://example.com/private/")
        extractor = PageExtractor(settings, session_factory=fake_browser, policy_store=policy_store)
        with pytest.raises(RobotsDisallowedError):
            await extractor.extract("https://example.com/private/")
        assert fake_browser.opened == 0

    async def test_navigation_failure_releases_session(
        self, settings, fake_browser, policy_store
    ) -> None:
        extractor = PageExtractor(settings, session_factory=fake_browser, policy_store=policy_store)
        with pytest.raises(NavigationError, match="ERR_NAME_NOT_RESOLVED"):
            await extractor.extract("https://unreachable.invalid/")
        assert fake_browser.opened == fake_browser.closed == 1

    async def test_progress_callback_failure_ignored(
        self, settings, fake_browser, policy_store
    ) -> None:
        fake_browser.serve(URL, PAGE_HTML)
        extractor = PageExtractor(settings, session_factory=fake_browser, policy_store=policy_store)

        def broken(_value: int) -> None:
            raise RuntimeError("callback broke")

        result = await extractor.extract(URL, on_progress=broken)
        assert result["url"] == URL
