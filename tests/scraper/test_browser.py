"""Tests for the Playwright browser session with the driver mocked out.

No Chromium binary is needed: Page, BrowserContext, Browser and the
``async_playwright`` entry point are replaced with mocks.
"""

from __future__ import annotations

from unittest.mock import AsyncMock, MagicMock, patch

import pytest
from playwright.async_api import Error as PlaywrightError
from playwright.async_api import TimeoutError as PlaywrightTimeoutError

from content_harvest.core.exceptions import NavigationError, ValidationError
from content_harvest.scraper.browser import (
    BrowserSession,
    _block_non_essential,
    browser_session,
)
from content_harvest.scraper.config import BROWSER_USER_AGENT

URL = "https://example.com/"
HTML = "<html><head><title>Example</title></head><body><main>Hi</main></body></html>"


def _page(*, status: int = 200, goto_error: Exception | None = None) -> MagicMock:
    page = MagicMock()
    response = MagicMock(status=status, ok=200 <= status < 300)
    page.goto = AsyncMock(return_value=response, side_effect=goto_error)
    page.wait_for_selector = AsyncMock()
    page.evaluate = AsyncMock()
    page.content = AsyncMock(return_value=HTML)
    page.route = AsyncMock()
    page.close = AsyncMock()
    return page


@pytest.mark.asyncio
class TestNavigate:
    async def test_returns_parsed_dom(self, settings) -> None:
        page = _page()
        session = BrowserSession(page, settings)

        doc = await session.navigate(URL, wait_for_selector="main", pre_script="1 + 1")

        assert doc.title.get_text() == "Example"
        page.goto.assert_awaited_once_with(
            URL, wait_until="networkidle", timeout=settings.navigation_timeout_ms
        )
        page.wait_for_selector.assert_awaited_once_with(
            "main", timeout=settings.selector_timeout_ms
        )
        page.evaluate.assert_awaited_once_with("1 + 1")

    async def test_explicit_timeout(self, settings) -> None:
        page = _page()
        await BrowserSession(page, settings).navigate(URL, timeout_ms=1234, wait_until="load")
        page.goto.assert_awaited_once_with(URL, wait_until="load", timeout=1234)

    async def test_timeout_raises_navigation_error(self, settings) -> None:
        page = _page(goto_error=PlaywrightTimeoutError("Timeout 5000ms exceeded"))
        with pytest.raises(NavigationError, match="Navigation timeout after 5000ms"):
            await BrowserSession(page, settings).navigate(URL)

    async def test_network_error(self, settings) -> None:
        page = _page(goto_error=PlaywrightError("net::ERR_NAME_NOT_RESOLVED"))
        with pytest.raises(NavigationError, match="ERR_NAME_NOT_RESOLVED"):
            await BrowserSession(page, settings).navigate(URL)

    async def test_non_2xx_status(self, settings) -> None:
        with pytest.raises(NavigationError) as excinfo:
            await BrowserSession(_page(status=404), settings).navigate(URL)
        assert excinfo.value.status == 404
        assert excinfo.value.url == URL

    async def test_missing_response(self, settings) -> None:
        page = _page()
        page.goto.return_value = None
        with pytest.raises(NavigationError, match="no response"):
            await BrowserSession(page, settings).navigate(URL)

    async def test_selector_timeout_is_not_fatal(self, settings) -> None:
        page = _page()
        page.wait_for_selector.side_effect = PlaywrightTimeoutError("selector timeout")
        doc = await BrowserSession(page, settings).navigate(URL, wait_for_selector="#missing")
        assert doc.find("main") is not None

    async def test_pre_script_failure_is_not_fatal(self, settings) -> None:
        page = _page()
        page.evaluate.side_effect = PlaywrightError("script error")
        doc = await BrowserSession(page, settings).navigate(URL, pre_script="boom()")
        assert doc.title.get_text() == "Example"

    async def test_unknown_wait_state(self, settings) -> None:
        page = _page()
        with pytest.raises(ValidationError):
            await BrowserSession(page, settings).navigate(URL, wait_until="whenever")
        page.goto.assert_not_awaited()


@pytest.mark.asyncio
class TestRequestBlocking:
    @pytest.mark.parametrize("resource_type", ["image", "stylesheet", "font"])
    async def test_blocked(self, resource_type: str) -> None:
        route = MagicMock()
        route.request.resource_type = resource_type
        route.abort = AsyncMock()
        route.continue_ = AsyncMock()

        await _block_non_essential(route)

        route.abort.assert_awaited_once()
        route.continue_.assert_not_awaited()

    @pytest.mark.parametrize("resource_type", ["document", "script", "xhr"])
    async def test_allowed(self, resource_type: str) -> None:
        route = MagicMock()
        route.request.resource_type = resource_type
        route.abort = AsyncMock()
        route.continue_ = AsyncMock()

        await _block_non_essential(route)

        route.continue_.assert_awaited_once()
        route.abort.assert_not_awaited()


def _driver(page: MagicMock) -> tuple[MagicMock, MagicMock, MagicMock]:
    context = MagicMock()
    context.new_page = AsyncMock(return_value=page)
    context.close = AsyncMock()
    browser = MagicMock()
    browser.new_context = AsyncMock(return_value=context)
    browser.close = AsyncMock()
    playwright = MagicMock()
    playwright.chromium.launch = AsyncMock(return_value=browser)
    entry = MagicMock()
    entry.__aenter__.return_value = playwright
    entry.__aexit__.return_value = False
    return entry, browser, context


@pytest.mark.asyncio
class TestBrowserSessionLifecycle:
    async def test_configures_and_closes_everything(self, settings) -> None:
        page = _page()
        entry, browser, context = _driver(page)

        with patch("content_harvest.scraper.browser.async_playwright", return_value=entry):
            async with browser_session(settings) as session:
                await session.navigate(URL)

        browser.new_context.assert_awaited_once_with(
            user_agent=BROWSER_USER_AGENT,
            viewport={"width": settings.viewport_width, "height": settings.viewport_height},
        )
        page.route.assert_awaited_once_with("**/*", _block_non_essential)
        page.close.assert_awaited_once()
        context.close.assert_awaited_once()
        browser.close.assert_awaited_once()

    async def test_released_when_navigation_fails(self, settings) -> None:
        page = _page(goto_error=PlaywrightTimeoutError("Timeout"))
        entry, browser, context = _driver(page)

        with patch("content_harvest.scraper.browser.async_playwright", return_value=entry):
            with pytest.raises(NavigationError):
                async with browser_session(settings) as session:
                    await session.navigate(URL)

        page.close.assert_awaited_once()
        context.close.assert_awaited_once()
        browser.close.assert_awaited_once()
