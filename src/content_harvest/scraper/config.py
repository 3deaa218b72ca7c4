"""Constants and tuning parameters for the scraping toolkit and browser session."""

from __future__ import annotations

# ---------------------------------------------------------------------------
# Browser
# ---------------------------------------------------------------------------

#: User-agent presented by the headless browser.
BROWSER_USER_AGENT: str = (
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64) "
    "AppleWebKit/537.36 (KHTML, like Gecko) "
    "Chrome/120.0.0.0 Safari/537.36"
)

#: Playwright resource types aborted by the request interceptor.  Extraction
#: works on the DOM, so these only add load latency.
BLOCKED_RESOURCE_TYPES: frozenset[str] = frozenset({"stylesheet", "font", "image"})

#: Accepted values for ``BrowserSession.navigate(wait_until=...)``.
WAIT_UNTIL_STATES: frozenset[str] = frozenset(
    {"load", "domcontentloaded", "networkidle", "commit"}
)

# ---------------------------------------------------------------------------
# HTTP
# ---------------------------------------------------------------------------

#: Rotated across plain HTTP requests (robots.txt, assets, trend APIs).
USER_AGENTS: tuple[str, ...] = (
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 (KHTML, like Gecko) Chrome/120.0.0.0 Safari/537.36",
    "Mozilla/5.0 (Macintosh; Intel Mac OS X 10_15_7) AppleWebKit/537.36 (KHTML, like Gecko) Chrome/120.0.0.0 Safari/537.36",
    "Mozilla/5.0 (X11; Linux x86_64) AppleWebKit/537.36 (KHTML, like Gecko) Chrome/120.0.0.0 Safari/537.36",
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64; rv:121.0) Gecko/20100101 Firefox/121.0",
    "Mozilla/5.0 (Macintosh; Intel Mac OS X 10.15; rv:121.0) Gecko/20100101 Firefox/121.0",
)

#: Maximum extracted text size (bytes) kept in a job result.
MAX_CONTENT_BYTES: int = 900 * 1024  # 900 KB

# ---------------------------------------------------------------------------
# Content statistics
# ---------------------------------------------------------------------------

#: Reading speed used for ``reading_time``.
WORDS_PER_MINUTE: int = 200
