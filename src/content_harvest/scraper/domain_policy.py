"""Per-domain politeness state: robots.txt cache and request spacing.

A :class:`DomainPolicyStore` is created once per process (see
:func:`get_domain_policy_store`) and injected into every extractor.  Request
slots are reserved synchronously, so coroutines sharing one store are spaced
correctly.  Separate worker processes keep separate stores and are not
coordinated.

Tests construct their own store with a fake ``clock`` and ``sleep``::

    store = DomainPolicyStore(clock=fake.now, sleep=fake.sleep)
"""

from __future__ import annotations

import asyncio
import logging
import time
from collections.abc import Awaitable, Callable
from functools import lru_cache

import httpx

from content_harvest.config.settings import Settings, get_settings
from content_harvest.scraper.http_fetcher import fetch_text
from content_harvest.scraper.robots import RobotsRules, is_url_allowed, parse_robots
from content_harvest.scraper.urls import extract_domain

logger = logging.getLogger(__name__)


class DomainPolicyStore:
    """Robots cache and per-domain rate-limit clock.

    Args:
        settings: Application settings (TTL, default interval, product token).
        clock: Monotonic time source in seconds.  Defaults to
            :func:`time.monotonic`.
        sleep: Coroutine used to wait.  Defaults to :func:`asyncio.sleep`.
        http_client: Optional injected :class:`httpx.AsyncClient` used for
            robots.txt fetches.  If ``None``, a new client is created per fetch.
    """

    def __init__(
        self,
        settings: Settings | None = None,
        *,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
        http_client: httpx.AsyncClient | None = None,
    ) -> None:
        self._settings = settings or get_settings()
        self._clock = clock
        self._sleep = sleep
        self._http_client = http_client
        self._robots: dict[str, RobotsRules] = {}
        self._last_request: dict[str, float] = {}

    # ------------------------------------------------------------------
    # robots.txt
    # ------------------------------------------------------------------

    async def get_robots_rules(self, domain: str) -> RobotsRules:
        """Return the robots rules for *domain*, fetching at most once per TTL.

        Fetches ``https://{domain}/robots.txt``.  A missing file or any fetch
        failure yields permissive rules, which are cached like real ones.
        """
        cached = self._robots.get(domain)
        ttl = self._settings.robots_cache_ttl_seconds
        if cached is not None and self._clock() - cached.fetched_at < ttl:
            return cached

        robots_url = f"https://{domain}/robots.txt"
        body = await self._fetch(robots_url)
        if body is None:
            logger.info("robots: no usable robots.txt for %s, allowing all", domain)
            rules = RobotsRules.permissive()
        else:
            rules = parse_robots(body, self._settings.robots_product_token)
        rules.fetched_at = self._clock()
        self._robots[domain] = rules
        return rules

    async def _fetch(self, url: str) -> str | None:
        timeout = self._settings.robots_fetch_timeout_seconds
        if self._http_client is not None:
            return await fetch_text(url, client=self._http_client, timeout=timeout)
        async with httpx.AsyncClient() as client:
            return await fetch_text(url, client=client, timeout=timeout)

    async def is_allowed(self, url: str) -> bool:
        """Return ``True`` if robots.txt of the URL's domain permits fetching it."""
        domain = extract_domain(url)
        if domain is None:
            return True
        return is_url_allowed(url, await self.get_robots_rules(domain))

    def rate_limit_for(self, rules: RobotsRules | None) -> int:
        """Return the minimum request interval: the crawl delay, else the default."""
        if rules is not None and rules.crawl_delay_ms > 0:
            return rules.crawl_delay_ms
        return self._settings.default_rate_limit_ms

    # ------------------------------------------------------------------
    # Rate limiting
    # ------------------------------------------------------------------

    async def respect_rate_limit(self, domain: str, min_interval_ms: int | None = None) -> float:
        """Wait until *min_interval_ms* has passed since the last request to *domain*.

        The caller's slot is reserved before sleeping, so concurrent callers
        in one event loop queue up one interval apart instead of all waking
        together.

        Args:
            domain: Host name the next request goes to.
            min_interval_ms: Required spacing; defaults to
                ``settings.default_rate_limit_ms``.

        Returns:
            Seconds actually waited (0.0 when no wait was needed).
        """
        interval = (min_interval_ms or self._settings.default_rate_limit_ms) / 1000.0
        now = self._clock()
        last = self._last_request.get(domain)
        slot = now if last is None else max(now, last + interval)
        self._last_request[domain] = slot
        waited = slot - now
        if waited > 0:
            logger.debug("rate_limit: waiting %.3fs for %s", waited, domain)
            await self._sleep(waited)
        return waited

    def clear(self) -> None:
        """Forget all cached robots rules and request timestamps."""
        self._robots.clear()
        self._last_request.clear()


@lru_cache
def get_domain_policy_store() -> DomainPolicyStore:
    """Return the process-wide :class:`DomainPolicyStore`."""
    return DomainPolicyStore()
