"""robots.txt parsing and matching.

Parsing keeps the rules of every ``User-agent`` group that names the
wildcard ``*`` or contains our product token.  Matching follows the usual
robots semantics: the longest matching pattern decides, an ``Allow`` wins a
tie with a ``Disallow`` of the same length, and a URL no rule matches is
allowed.  Patterns may use ``*`` wildcards and a trailing ``$`` anchor.
"""

from __future__ import annotations

import logging
import re
import time
import urllib.parse
from dataclasses import dataclass, field

logger = logging.getLogger(__name__)


@dataclass
class RobotsRules:
    """Crawl permissions for one domain.

    Attributes:
        disallowed_paths: ``Disallow`` patterns that apply to us.
        allowed_paths: ``Allow`` patterns that apply to us.
        crawl_delay_ms: ``Crawl-delay`` converted to milliseconds, 0 if absent.
        sitemaps: ``Sitemap`` URLs (global, not per group).
        fetched_at: ``time.monotonic()`` reading when the rules were built.
    """

    disallowed_paths: list[str] = field(default_factory=list)
    allowed_paths: list[str] = field(default_factory=list)
    crawl_delay_ms: int = 0
    sitemaps: list[str] = field(default_factory=list)
    fetched_at: float = field(default_factory=time.monotonic)

    @classmethod
    def permissive(cls) -> RobotsRules:
        """Rules used when robots.txt is missing or unreachable: everything allowed."""
        return cls()

    def to_dict(self) -> dict:  # type: ignore[type-arg]
        return {
            "allowed": True,
            "disallowed_paths": list(self.disallowed_paths),
            "allowed_paths": list(self.allowed_paths),
            "crawl_delay": self.crawl_delay_ms,
            "sitemaps": list(self.sitemaps),
        }


# ---------------------------------------------------------------------------
# Parsing
# ---------------------------------------------------------------------------


def _directive(line: str) -> tuple[str, str] | None:
    """Split ``Name: value`` into a lower-cased name and a stripped value."""
    if ":" not in line:
        return None
    name, _, value = line.partition(":")
    return name.strip().lower(), value.strip()


def parse_robots(text: str, product_token: str = "contentharvest") -> RobotsRules:
    """Parse robots.txt *text* into the rules that apply to *product_token*.

    Consecutive ``User-agent`` lines form one group.  A group applies when
    one of its agents is ``*`` or contains the product token
    (case-insensitive).

    Args:
        text: Raw robots.txt body.
        product_token: Our crawler's product token.

    Returns:
        A :class:`RobotsRules` instance.
    """
    rules = RobotsRules()
    token = product_token.lower()
    group_applies = False
    in_agent_block = False

    for raw_line in text.splitlines():
        line = raw_line.split("#", 1)[0].strip()
        if not line:
            continue
        parsed = _directive(line)
        if parsed is None:
            continue
        name, value = parsed

        if name == "user-agent":
            agent = value.lower()
            matches = agent == "*" or (bool(agent) and token in agent)
            # A new group starts when a user-agent line follows rule lines.
            group_applies = (group_applies and in_agent_block) or matches
            in_agent_block = True
            continue

        in_agent_block = False

        if name == "sitemap":
            if value:
                rules.sitemaps.append(value)
            continue

        if not group_applies:
            continue

        if name == "disallow":
            if value:
                rules.disallowed_paths.append(value)
        elif name == "allow":
            if value:
                rules.allowed_paths.append(value)
        elif name == "crawl-delay":
            try:
                rules.crawl_delay_ms = int(float(value) * 1000)
            except ValueError:
                logger.debug("robots: ignoring malformed crawl-delay %r", value)

    return rules


# ---------------------------------------------------------------------------
# Matching
# ---------------------------------------------------------------------------


def _pattern_regex(pattern: str) -> re.Pattern[str]:
    anchored = pattern.endswith("$")
    body = pattern[:-1] if anchored else pattern
    regex = ".*".join(re.escape(part) for part in body.split("*"))
    return re.compile(regex + ("$" if anchored else ""))


def path_matches(path: str, pattern: str) -> bool:
    """Return ``True`` if the URL *path* is covered by a robots *pattern*.

    ``/`` matches everything; a trailing ``*`` is a prefix match; ``*``
    elsewhere matches any run of characters; ``$`` anchors the end.
    """
    if pattern == "/":
        return True
    if "*" not in pattern and not pattern.endswith("$"):
        return path.startswith(pattern)
    return _pattern_regex(pattern).match(path) is not None


def is_url_allowed(url: str, rules: RobotsRules | None) -> bool:
    """Return ``True`` if *rules* permit fetching *url*.

    The longest matching pattern wins; ``Allow`` wins a tie.  A URL that
    cannot be parsed is treated as allowed.
    """
    if rules is None or not rules.disallowed_paths:
        return True
    try:
        parts = urllib.parse.urlsplit(url)
    except ValueError:
        return True
    path = parts.path or "/"
    if parts.query:
        path = f"{path}?{parts.query}"

    longest_disallow = max(
        (len(p) for p in rules.disallowed_paths if path_matches(path, p)),
        default=-1,
    )
    if longest_disallow < 0:
        return True
    longest_allow = max(
        (len(p) for p in rules.allowed_paths if path_matches(path, p)),
        default=-1,
    )
    return longest_allow >= longest_disallow
