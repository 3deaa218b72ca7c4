"""Playwright-based headless browser session for page extraction.

Every extraction acquires its own session through :func:`browser_session`,
an async context manager that launches Chromium, opens a context with a
realistic user agent and viewport, and installs a request interceptor that
aborts stylesheet, font and image requests.  Page, context, browser and the
Playwright driver are closed on every exit path: normal return, an exception
raised by the caller, or a navigation timeout.

Install Playwright and download the Chromium browser binary::

    pip install playwright>=1.48
    playwright install chromium

Usage::

    async with browser_session() as session:
        doc = await session.navigate(url, wait_for_selector="body")
        html = await session.rendered_html()

The session never retries; retry policy belongs to the job queue.
"""

from __future__ import annotations

import logging
from collections.abc import AsyncIterator
from contextlib import AbstractAsyncContextManager, asynccontextmanager
from typing import Protocol

from bs4 import BeautifulSoup
from playwright.async_api import Error as PlaywrightError
from playwright.async_api import Page, Route
from playwright.async_api import TimeoutError as PlaywrightTimeoutError
from playwright.async_api import async_playwright

from content_harvest.config.settings import Settings, get_settings
from content_harvest.core.exceptions import NavigationError, ValidationError
from content_harvest.scraper.config import (
    BLOCKED_RESOURCE_TYPES,
    BROWSER_USER_AGENT,
    WAIT_UNTIL_STATES,
)
from content_harvest.scraper.dom import parse_html

logger = logging.getLogger(__name__)


class PageSession(Protocol):
    """What extractors need from a browser session."""

    async def navigate(
        self,
        url: str,
        *,
        wait_until: str = "networkidle",
        timeout_ms: int | None = None,
        wait_for_selector: str | None = None,
        pre_script: str | None = None,
    ) -> BeautifulSoup: ...

    async def rendered_html(self) -> str: ...


class SessionFactory(Protocol):
    """Callable returning an async context manager that yields a :class:`PageSession`."""

    def __call__(self) -> AbstractAsyncContextManager[PageSession]: ...


# ---------------------------------------------------------------------------
# Request interception
# ---------------------------------------------------------------------------


async def _block_non_essential(route: Route) -> None:
    """Abort requests for resource types the extractors never read."""
    if route.request.resource_type in BLOCKED_RESOURCE_TYPES:
        await route.abort()
    else:
        await route.continue_()


# ---------------------------------------------------------------------------
# Session
# ---------------------------------------------------------------------------


class BrowserSession:
    """A single Playwright page owned by one extraction.

    Args:
        page: The Playwright page.
        settings: Application settings (navigation and selector timeouts).
    """

    def __init__(self, page: Page, settings: Settings) -> None:
        self._page = page
        self._settings = settings

    @property
    def url(self) -> str:
        """URL of the currently loaded document (after redirects)."""
        return self._page.url

    async def navigate(
        self,
        url: str,
        *,
        wait_until: str = "networkidle",
        timeout_ms: int | None = None,
        wait_for_selector: str | None = None,
        pre_script: str | None = None,
    ) -> BeautifulSoup:
        """Load *url* and return the parsed, rendered document.

        Args:
            url: Absolute URL to load.
            wait_until: Playwright load state to wait for.
            timeout_ms: Navigation timeout; defaults to
                ``settings.navigation_timeout_ms``.
            wait_for_selector: CSS selector to wait for after load.  A
                selector timeout is logged and extraction continues.
            pre_script: JavaScript evaluated in the page before the DOM is
                serialised (used to strip boilerplate nodes).

        Returns:
            The rendered DOM parsed with BeautifulSoup.

        Raises:
            NavigationError: On timeout, network failure, a missing response
                or a non-2xx status.
            ValidationError: If *wait_until* is not a Playwright load state.
        """
        if wait_until not in WAIT_UNTIL_STATES:
            raise ValidationError(f"unsupported wait_until '{wait_until}'", field="wait_until")
        timeout = timeout_ms if timeout_ms is not None else self._settings.navigation_timeout_ms

        try:
            response = await self._page.goto(url, wait_until=wait_until, timeout=timeout)
        except PlaywrightTimeoutError as exc:
            raise NavigationError(
                f"Navigation timeout after {timeout}ms: {url}", url=url
            ) from exc
        except PlaywrightError as exc:
            raise NavigationError(f"Failed to load page: {exc.message}", url=url) from exc

        if response is None:
            raise NavigationError(f"Failed to load page: no response for {url}", url=url)
        if not response.ok:
            raise NavigationError(
                f"Failed to load page: {response.status}", url=url, status=response.status
            )

        if wait_for_selector:
            try:
                await self._page.wait_for_selector(
                    wait_for_selector, timeout=self._settings.selector_timeout_ms
                )
            except PlaywrightTimeoutError:
                logger.warning(
                    "browser: selector %r not found on %s, continuing", wait_for_selector, url
                )

        if pre_script:
            try:
                await self._page.evaluate(pre_script)
            except PlaywrightError as exc:
                logger.warning("browser: pre-script failed on %s: %s", url, exc.message)

        return parse_html(await self.rendered_html())

    async def rendered_html(self) -> str:
        """Return the serialised DOM after JavaScript execution."""
        return await self._page.content()


@asynccontextmanager
async def browser_session(
    settings: Settings | None = None,
    *,
    user_agent: str | None = None,
) -> AsyncIterator[BrowserSession]:
    """Acquire a headless Chromium page for the duration of the ``async with`` block.

    Args:
        settings: Application settings; defaults to :func:`get_settings`.
        user_agent: Override for the browser user agent.

    Yields:
        A :class:`BrowserSession`.
    """
    settings = settings or get_settings()
    async with async_playwright() as p:
        browser = await p.chromium.launch(headless=settings.headless)
        try:
            context = await browser.new_context(
                user_agent=user_agent or BROWSER_USER_AGENT,
                viewport={
                    "width": settings.viewport_width,
                    "height": settings.viewport_height,
                },
            )
            try:
                page = await context.new_page()
                try:
                    await page.route("**/*", _block_non_essential)
                    yield BrowserSession(page, settings)
                finally:
                    await page.close()
            finally:
                await context.close()
        finally:
            await browser.close()
            logger.debug("browser: session closed")
