"""Abstract base class for all extractors.

Every job type is handled by one ``Extractor`` subclass registered with
:func:`~content_harvest.extractors.registry.register`.  Browser-backed
extractors load their target through :meth:`Extractor.load_page`, which
enforces the politeness contract before any navigation happens:

1. robots.txt of the target domain is consulted; a disallowed URL raises
   :class:`~content_harvest.core.exceptions.RobotsDisallowedError`.
2. The per-domain rate limit is honoured (robots ``Crawl-delay`` when
   declared, else ``settings.default_rate_limit_ms``).
3. A fresh browser session is acquired, the page is loaded and the session
   is released on every exit path.

Example usage::

    from content_harvest.extractors.base import Extractor
    from content_harvest.extractors.registry import register
    from content_harvest.jobs.models import JobType

    @register
    class MyExtractor(Extractor):
        job_type = JobType.PAGE

        async def extract(self, target, options=None): ...
"""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from collections.abc import Callable
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any

import httpx
from bs4 import BeautifulSoup

from content_harvest.config.settings import Settings, get_settings
from content_harvest.core.exceptions import RobotsDisallowedError, ValidationError
from content_harvest.jobs.models import JobType
from content_harvest.scraper.browser import SessionFactory, browser_session
from content_harvest.scraper.domain_policy import DomainPolicyStore, get_domain_policy_store
from content_harvest.scraper.urls import extract_domain, is_valid_url

logger = logging.getLogger(__name__)

#: Progress callback: receives an advisory percentage (0..100).
ProgressCallback = Callable[[int], Any]


def utc_timestamp() -> str:
    """Return the current UTC time as an ISO 8601 string."""
    return datetime.now(timezone.utc).isoformat()


@dataclass
class LoadedPage:
    """A page fetched through the browser.

    Attributes:
        url: URL that was requested.
        doc: Rendered DOM parsed with BeautifulSoup.
        html: Serialised rendered DOM.
    """

    url: str
    doc: BeautifulSoup
    html: str


class Extractor(ABC):
    """Abstract base class for all extractors.

    Class Attributes:
        job_type: The :class:`JobType` this extractor handles.  Used as the
            registry key.

    Args:
        settings: Application settings.  Defaults to :func:`get_settings`.
        session_factory: Zero-argument callable returning an async context
            manager that yields a page session.  Defaults to
            :func:`~content_harvest.scraper.browser.browser_session`.
        policy_store: Shared robots/rate-limit state.  Defaults to the
            process-wide store.
        http_client: Optional injected :class:`httpx.AsyncClient` for
            non-browser requests (asset downloads, trend APIs).
    """

    job_type: JobType

    def __init__(
        self,
        settings: Settings | None = None,
        *,
        session_factory: SessionFactory | None = None,
        policy_store: DomainPolicyStore | None = None,
        http_client: httpx.AsyncClient | None = None,
    ) -> None:
        self.settings = settings or get_settings()
        self._session_factory = session_factory or (lambda: browser_session(self.settings))
        self._policy_store = policy_store
        self._http_client = http_client

    @property
    def policy_store(self) -> DomainPolicyStore:
        if self._policy_store is None:
            self._policy_store = get_domain_policy_store()
        return self._policy_store

    # ------------------------------------------------------------------
    # Abstract interface
    # ------------------------------------------------------------------

    @abstractmethod
    async def extract(
        self,
        target: str | None,
        options: dict[str, Any] | None = None,
        *,
        on_progress: ProgressCallback | None = None,
    ) -> dict[str, Any]:
        """Run the extraction and return its result dict.

        Args:
            target: URL to extract from (``None`` for trend monitoring).
            options: Job-type specific options.
            on_progress: Optional callback receiving advisory progress
                midpoints.

        Raises:
            ValidationError: If *target* is not a valid http(s) URL.
            RobotsDisallowedError: If robots.txt excludes *target*.
            NavigationError: If the page cannot be loaded.
        """

    # ------------------------------------------------------------------
    # Shared helpers
    # ------------------------------------------------------------------

    def require_url(self, target: str | None) -> str:
        """Return *target* if it is an absolute http(s) URL, else raise ``ValidationError``."""
        if not target or not is_valid_url(target):
            raise ValidationError(f"Invalid URL: {target!r}", field="target")
        return target

    async def check_politeness(self, url: str) -> None:
        """Enforce robots.txt and the per-domain request spacing for *url*."""
        domain = extract_domain(url)
        if domain is None:
            raise ValidationError(f"Invalid URL: {url!r}", field="target")
        rules = await self.policy_store.get_robots_rules(domain)
        if not await self.policy_store.is_allowed(url):
            logger.info("extractor: robots.txt disallows %s", url)
            raise RobotsDisallowedError(url)
        await self.policy_store.respect_rate_limit(
            domain, self.policy_store.rate_limit_for(rules)
        )

    async def load_page(
        self,
        url: str,
        *,
        wait_for_selector: str | None = None,
        pre_script: str | None = None,
        timeout_ms: int | None = None,
    ) -> LoadedPage:
        """Check politeness, then load *url* in a fresh browser session."""
        await self.check_politeness(url)
        async with self._session_factory() as session:
            doc = await session.navigate(
                url,
                timeout_ms=timeout_ms,
                wait_for_selector=wait_for_selector,
                pre_script=pre_script,
            )
            html = await session.rendered_html()
        logger.debug("extractor: loaded %s (%d bytes)", url, len(html))
        return LoadedPage(url=url, doc=doc, html=html)

    @staticmethod
    def report(on_progress: ProgressCallback | None, value: int) -> None:
        """Forward *value* to *on_progress*; callback failures are logged and ignored."""
        if on_progress is None:
            return
        try:
            on_progress(value)
        except Exception as exc:  # noqa: BLE001
            logger.warning("extractor: progress callback failed: %s", exc)

    def __repr__(self) -> str:
        return f"<{self.__class__.__name__} job_type={getattr(self, 'job_type', '?')}>"
