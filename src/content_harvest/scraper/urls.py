"""URL and text helpers shared by every extractor.

All functions are pure.  ``normalize_url`` never raises: anything it cannot
resolve is returned unchanged, and the result is stable under repeated
application (``normalize_url(normalize_url(u)) == normalize_url(u)``).
"""

from __future__ import annotations

import hashlib
import logging
import random
import re
import urllib.parse

from content_harvest.scraper.config import USER_AGENTS

logger = logging.getLogger(__name__)

_DEFAULT_PORTS: dict[str, int] = {"http": 80, "https": 443}
_WHITESPACE_RE = re.compile(r"\s+")


def _normalize_absolute(url: str) -> str:
    """Canonicalise an absolute http(s) URL.

    Lower-cases scheme and host, drops default ports, and gives an empty
    path the root ``/``.  Query and fragment are preserved verbatim.
    """
    parts = urllib.parse.urlsplit(url)
    scheme = parts.scheme.lower()
    host = (parts.hostname or "").lower()
    if ":" in host:
        host = f"[{host}]"
    port = parts.port
    netloc = host
    if port is not None and _DEFAULT_PORTS.get(scheme) != port:
        netloc = f"{host}:{port}"
    if parts.username:
        userinfo = parts.username
        if parts.password:
            userinfo += f":{parts.password}"
        netloc = f"{userinfo}@{netloc}"
    path = parts.path or "/"
    return urllib.parse.urlunsplit((scheme, netloc, path, parts.query, parts.fragment))


def normalize_url(url: str, base: str | None = None) -> str:
    """Resolve *url* to an absolute URL.

    - ``http(s)://`` URLs are canonicalised.
    - Protocol-relative URLs (``//cdn.example.com/x``) get ``https:``.
    - Relative URLs are joined onto *base* when one is given.
    - Anything else (``mailto:``, ``data:``, relative without base) is
      returned unchanged.

    Args:
        url: Raw URL as found in the document.
        base: URL of the page the reference was found on.

    Returns:
        The normalised URL, or *url* itself when it cannot be resolved.
    """
    if not url:
        return url
    try:
        candidate = url.strip()
        lowered = candidate.lower()
        if lowered.startswith(("http://", "https://")):
            return _normalize_absolute(candidate)
        if candidate.startswith("//"):
            return _normalize_absolute(f"https:{candidate}")
        if base:
            joined = urllib.parse.urljoin(base, candidate)
            if joined.lower().startswith(("http://", "https://")):
                return _normalize_absolute(joined)
            return joined
        return url
    except ValueError:
        logger.warning("scraper: failed to normalize URL %r", url)
        return url


def url_key(url: str) -> str:
    """Return the deduplication key for *url*.

    Two URLs that differ only by letter case or a trailing slash share a key.
    """
    return normalize_url(url).lower().rstrip("/")


def extract_domain(url: str) -> str | None:
    """Return the lower-cased hostname of *url*, or ``None`` if it has none."""
    try:
        host = urllib.parse.urlsplit(url).hostname
    except ValueError:
        logger.warning("scraper: invalid URL %r", url)
        return None
    return host or None


def is_valid_url(url: str) -> bool:
    """Return ``True`` if *url* is an absolute http(s) URL with a host."""
    try:
        parts = urllib.parse.urlsplit(url)
    except (ValueError, AttributeError):
        return False
    return parts.scheme in ("http", "https") and bool(parts.hostname)


def is_internal(url: str, source_url: str) -> bool:
    """Return ``True`` if *url* is on the same host as *source_url*."""
    domain = extract_domain(url)
    return domain is not None and domain == extract_domain(source_url)


def url_extension(url: str) -> str:
    """Return the lower-cased file extension of the URL path, without the dot."""
    try:
        path = urllib.parse.urlsplit(url).path
    except ValueError:
        return ""
    last = path.rsplit("/", 1)[-1]
    if "." not in last:
        return ""
    return last.rsplit(".", 1)[-1].lower()


def clean_whitespace(text: str) -> str:
    """Collapse whitespace runs to single spaces and strip the ends."""
    return _WHITESPACE_RE.sub(" ", text or "").strip()


def content_hash(text: str) -> str:
    """Return the SHA-256 hex digest of *text*.

    Two pieces of content are duplicates if and only if their hashes match.
    """
    return hashlib.sha256(text.encode("utf-8")).hexdigest()


def random_user_agent() -> str:
    """Return one of the rotated desktop user-agent strings."""
    return random.choice(USER_AGENTS)
