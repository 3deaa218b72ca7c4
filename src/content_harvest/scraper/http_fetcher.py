"""Async HTTP fetchers for the non-browser requests of a scrape.

Uses ``httpx`` for:

- robots.txt bodies (:func:`fetch_text`): any failure yields ``None`` so the
  caller can fall back to a permissive policy.
- binary assets (:func:`fetch_binary`): images, videos and documents
  downloaded by the asset extractor.  Failures raise
  :class:`~content_harvest.core.exceptions.DownloadError`.

The headless browser blocks images, so assets are always fetched here rather
than through the page.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass

import httpx

from content_harvest.core.exceptions import DownloadError
from content_harvest.scraper.urls import random_user_agent

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Result dataclass
# ---------------------------------------------------------------------------


@dataclass
class BinaryFetchResult:
    """A downloaded binary resource.

    Attributes:
        url: URL that was requested.
        final_url: URL after following redirects.
        content: Raw response body.
        content_type: ``Content-Type`` header without parameters, lower-cased.
        status_code: HTTP status code.
    """

    url: str
    final_url: str
    content: bytes
    content_type: str
    status_code: int

    @property
    def size(self) -> int:
        return len(self.content)


# ---------------------------------------------------------------------------
# Text fetch (robots.txt)
# ---------------------------------------------------------------------------


async def fetch_text(
    url: str,
    *,
    client: httpx.AsyncClient,
    timeout: float,
) -> str | None:
    """Fetch *url* and return its body, or ``None`` on any non-200 or network error.

    Args:
        url: Target URL.
        client: Shared :class:`httpx.AsyncClient` instance.
        timeout: Request timeout in seconds.

    Returns:
        The decoded body, or ``None``.
    """
    try:
        async with client.stream(
            "GET",
            url,
            timeout=timeout,
            follow_redirects=True,
            headers={"User-Agent": random_user_agent()},
        ) as response:
            if response.status_code >= 400:
                raise DownloadError(f"HTTP {response.status_code} for {url}", url=url)

            content_type = (
                response.headers.get("content-type", "").split(";")[0].strip().lower()
            )
            if expected_prefix and not content_type.startswith(expected_prefix):
                raise DownloadError(
                    f"invalid content type '{content_type or 'unknown'}' for {url}", url=url
                )

            declared = response.headers.get("content-length")
            if (
                max_bytes is not None
                and declared
                and declared.isdigit()
                and int(declared) > max_bytes
            ):
                raise DownloadError(f"declared size {declared} exceeds limit for {url}", url=url)

            # The declared length may be absent or wrong; stop reading at the cap.
            chunks: list[bytes] = []
            received = 0
            async for chunk in response.aiter_bytes():
                received += len(chunk)
                if max_bytes is not None and received > max_bytes:
                    raise DownloadError(f"size exceeds limit of {max_bytes} bytes for {url}", url=url)
                chunks.append(chunk)
    except httpx.TimeoutException as exc:
        raise DownloadError(f"timeout downloading {url}", url=url) from exc
    except httpx.HTTPError as exc:
        raise DownloadError(f"request error downloading {url}: {exc}", url=url) from exc

    return BinaryFetchResult(
        url=url,
        final_url=str(response.url),
        content=b"".join(chunks),
        content_type=content_type,
        status_code=response.status_code,
    )
