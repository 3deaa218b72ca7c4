"""Trend signal extractor.

Fans out to independent signal sources, normalises each hit into
``{keyword, source, trend_score, ...}`` and merges the hits by keyword.

Sources:

- ``google_trends``: interest over time, related queries and regional
  interest from the Google Trends explore/widget API.  Keywords are queried
  in chunks of ``settings.trend_batch_size``.
- ``reddit``: hot listing of one or more subreddits.
- ``news``: NewsAPI top headlines (needs ``NEWS_API_KEY``).
- ``twitter``: trending topics for a WOEID (needs ``TWITTER_BEARER_TOKEN``).

A failing source is logged and recorded in the result's ``errors`` map; the
merge runs over whatever the other sources returned.
"""

from __future__ import annotations

import asyncio
import json
import logging
import time
from abc import ABC, abstractmethod
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from datetime import datetime, timezone
from typing import Any

import httpx

from content_harvest.config.settings import Settings
from content_harvest.extractors.base import Extractor, ProgressCallback, utc_timestamp
from content_harvest.extractors.registry import register
from content_harvest.jobs.models import JobType

logger = logging.getLogger(__name__)

REDDIT_BASE_URL = "https://www.reddit.com"
REDDIT_USER_AGENT = "content-harvest/1.0"
NEWS_API_URL = "https://newsapi.org/v2/top-headlines"
TWITTER_TRENDS_URL = "https://api.twitter.com/1.1/trends/place.json"
GOOGLE_TRENDS_API = "https://trends.google.com/trends/api"

DEFAULT_SOURCES: tuple[str, ...] = ("google_trends",)

_GOOGLE_TIMEFRAMES: dict[str, str] = {
    "1h": "now 1-H",
    "4h": "now 4-H",
    "1d": "now 1-d",
    "7d": "now 7-d",
    "30d": "today 1-m",
    "90d": "today 3-m",
    "12m": "today 12-m",
}

# ---------------------------------------------------------------------------
# Scoring heuristics
# ---------------------------------------------------------------------------


def score_google_interest(values: list[float]) -> float:
    """Blend of mean (0.3), peak (0.4) and mean of the last five points (0.3).

    Zero points are ignored; an all-zero or empty series scores 0.
    """
    points = [v for v in values if v and v > 0]
    if not points:
        return 0
    avg = sum(points) / len(points)
    recent = points[-5:]
    recent_avg = sum(recent) / len(recent)
    return round(avg * 0.3 + max(points) * 0.4 + recent_avg * 0.3, 2)


def score_reddit(post: dict[str, Any], now: float | None = None) -> float:
    """Age-decayed upvotes plus the comment/upvote ratio."""
    now = time.time() if now is None else now
    ups = post.get("ups") or 0
    comments = post.get("num_comments") or 0
    age_hours = (now - float(post.get("created_utc") or now)) / 3600
    hotness = ups / (max(age_hours, 0) + 2) ** 1.5
    return round(hotness * 1000 + comments / (ups + 1) * 100, 2)


def score_news(article: dict[str, Any], now: datetime | None = None) -> float:
    """Recency (0.7, losing 2 points per hour) plus title length (0.3)."""
    now = now or datetime.now(timezone.utc)
    recency = 0.0
    published = article.get("publishedAt") or article.get("published_at")
    if published:
        try:
            published_at = datetime.fromisoformat(str(published).replace("Z", "+00:00"))
            if published_at.tzinfo is None:
                published_at = published_at.replace(tzinfo=timezone.utc)
            age_hours = (now - published_at).total_seconds() / 3600
            recency = max(0.0, 100 - age_hours * 2)
        except ValueError:
            logger.debug("trends: unparseable news timestamp %r", published)
    length_score = min(100, len(article.get("title") or "") * 2)
    return round(recency * 0.7 + length_score * 0.3, 2)


def merge_trends(entries: list[dict[str, Any]]) -> list[dict[str, Any]]:
    """Group *entries* case-insensitively by keyword.

    Each group carries ``keyword`` (first spelling seen), ``sources``,
    ``count``, ``avg_score`` and ``popularity`` (sum of scores).  Groups are
    sorted by ``popularity``, highest first.
    """
    groups: dict[str, dict[str, Any]] = {}
    for entry in entries:
        keyword = str(entry.get("keyword") or "").strip()
        if not keyword:
            continue
        group = groups.setdefault(
            keyword.lower(),
            {"keyword": keyword, "sources": [], "count": 0, "total": 0.0},
        )
        group["count"] += 1
        group["total"] += float(entry.get("trend_score") or 0)
        if entry.get("source") and entry["source"] not in group["sources"]:
            group["sources"].append(entry["source"])

    merged = [
        {
            "keyword": group["keyword"],
            "sources": group["sources"],
            "count": group["count"],
            "avg_score": round(group["total"] / group["count"], 2),
            "popularity": round(group["total"], 1),
        }
        for group in groups.values()
    ]
    merged.sort(key=lambda g: g["popularity"], reverse=True)
    return merged


# ---------------------------------------------------------------------------
# Sources
# ---------------------------------------------------------------------------


class TrendSource(ABC):
    """One independent trend signal provider."""

    name: str

    def __init__(self, settings: Settings) -> None:
        self.settings = settings

    @abstractmethod
    async def fetch(self, client: httpx.AsyncClient, options: dict[str, Any]) -> list[dict[str, Any]]:
        """Return normalised trend entries.

        Raises:
            httpx.HTTPError: On transport failure or a non-2xx response.
        """


def _strip_xssi(text: str) -> Any:
    """Google prefixes JSON bodies with ``)]}'``; parse from the first bracket."""
    starts = [i for i in (text.find("{"), text.find("[")) if i >= 0]
    if not starts:
        raise ValueError("no JSON payload in Google Trends response")
    return json.loads(text[min(starts):])


class GoogleTrendsSource(TrendSource):
    """Search interest via the Google Trends explore and widget endpoints."""

    name = "google_trends"

    async def fetch(self, client: httpx.AsyncClient, options: dict[str, Any]) -> list[dict[str, Any]]:
        keywords = list(options.get("keywords") or [])
        if not keywords:
            return []
        timeframe = _GOOGLE_TIMEFRAMES.get(options.get("timeframe", "7d"), options.get("timeframe", "now 7-d"))
        geo = options.get("geo", "US")
        size = max(1, self.settings.trend_batch_size)

        entries: list[dict[str, Any]] = []
        failures: list[BaseException] = []
        for start in range(0, len(keywords), size):
            chunk = keywords[start : start + size]
            outcomes = await asyncio.gather(
                *(self.search_trends(client, keyword, timeframe, geo) for keyword in chunk),
                return_exceptions=True,
            )
            for keyword, outcome in zip(chunk, outcomes):
                if isinstance(outcome, BaseException):
                    logger.warning("trends: google lookup failed for %r: %s", keyword, outcome)
                    failures.append(outcome)
                else:
                    entries.append(outcome)
        if failures and not entries:
            raise failures[0]
        return entries

    async def _get_json(self, client: httpx.AsyncClient, path: str, params: dict[str, str]) -> Any:
        response = await client.get(
            f"{GOOGLE_TRENDS_API}/{path}",
            params={"hl": "en-US", "tz": "0", **params},
            timeout=self.settings.trend_request_timeout_seconds,
        )
        response.raise_for_status()
        return _strip_xssi(response.text)

    async def search_trends(
        self, client: httpx.AsyncClient, keyword: str, timeframe: str, geo: str
    ) -> dict[str, Any]:
        """Interest over time, related queries and regional interest for *keyword*."""
        explore = await self._get_json(
            client,
            "explore",
            {
                "req": json.dumps(
                    {
                        "comparisonItem": [{"keyword": keyword, "geo": geo, "time": timeframe}],
                        "category": 0,
                        "property": "",
                    }
                )
            },
        )
        widgets = {w.get("id"): w for w in explore.get("widgets", []) if isinstance(w, dict)}

        async def widget(widget_id: str, path: str) -> dict[str, Any]:
            spec = widgets.get(widget_id)
            if spec is None:
                return {}
            return await self._get_json(
                client, path, {"req": json.dumps(spec.get("request", {})), "token": spec.get("token", "")}
            )

        timeline, related, regions = await asyncio.gather(
            widget("TIMESERIES", "widgetdata/multiline"),
            widget("RELATED_QUERIES", "widgetdata/relatedsearches"),
            widget("GEO_MAP", "widgetdata/comparedgeo"),
        )

        def first_value(value: Any) -> float:
            if isinstance(value, list):
                value = value[0] if value else 0
            return float(value or 0)

        interest = [
            {"time": point.get("formattedTime") or point.get("time"), "value": first_value(point.get("value"))}
            for point in timeline.get("default", {}).get("timelineData", [])
        ]
        ranked = related.get("default", {}).get("rankedList", [])
        related_queries = [
            {"query": item.get("query"), "value": item.get("value")}
            for item in (ranked[0].get("rankedKeyword", []) if ranked else [])
        ]
        regional = [
            {"geo_name": item.get("geoName"), "value": first_value(item.get("value"))}
            for item in regions.get("default", {}).get("geoMapData", [])
        ]
        return {
            "keyword": keyword,
            "source": self.name,
            "trend_score": score_google_interest([p["value"] for p in interest]),
            "interest_over_time": interest,
            "related_queries": related_queries,
            "regional_interest": regional,
        }


class RedditSource(TrendSource):
    """Hot posts of the configured subreddits."""

    name = "reddit"

    async def fetch(self, client: httpx.AsyncClient, options: dict[str, Any]) -> list[dict[str, Any]]:
        limit = min(int(options.get("limit", 20)), 100)
        entries: list[dict[str, Any]] = []
        now = time.time()
        for subreddit in options.get("subreddits") or ["all"]:
            response = await client.get(
                f"{REDDIT_BASE_URL}/r/{subreddit}/hot.json",
                params={"limit": limit},
                headers={"User-Agent": REDDIT_USER_AGENT},
                timeout=self.settings.trend_request_timeout_seconds,
            )
            response.raise_for_status()
            for child in response.json().get("data", {}).get("children", []):
                post = child.get("data") or {}
                entries.append(
                    {
                        "keyword": post.get("title"),
                        "source": self.name,
                        "subreddit": post.get("subreddit"),
                        "trend_score": score_reddit(post, now),
                        "url": post.get("url_overridden_by_dest") or post.get("url"),
                        "comments": post.get("num_comments"),
                        "upvotes": post.get("ups"),
                        "created_utc": post.get("created_utc"),
                        "author": post.get("author"),
                    }
                )
        return entries


class NewsSource(TrendSource):
    """NewsAPI top headlines; returns nothing without an API key."""

    name = "news"

    async def fetch(self, client: httpx.AsyncClient, options: dict[str, Any]) -> list[dict[str, Any]]:
        if not self.settings.news_api_key:
            logger.info("trends: NEWS_API_KEY not set, skipping news source")
            return []
        category = options.get("category", "general")
        response = await client.get(
            NEWS_API_URL,
            params={
                "country": options.get("country", "us"),
                "category": category,
                "pageSize": min(int(options.get("limit", 20)), 100),
            },
            headers={"X-Api-Key": self.settings.news_api_key},
            timeout=self.settings.trend_request_timeout_seconds,
        )
        response.raise_for_status()
        now = datetime.now(timezone.utc)
        return [
            {
                "keyword": article.get("title"),
                "source": self.name,
                "trend_score": score_news(article, now),
                "description": article.get("description"),
                "url": article.get("url"),
                "published_at": article.get("publishedAt"),
                "source_name": (article.get("source") or {}).get("name", ""),
                "author": article.get("author"),
                "category": category,
            }
            for article in response.json().get("articles", [])
        ]


class TwitterSource(TrendSource):
    """Trending topics for a WOEID; returns nothing without a bearer token."""

    name = "twitter"

    async def fetch(self, client: httpx.AsyncClient, options: dict[str, Any]) -> list[dict[str, Any]]:
        if not self.settings.twitter_bearer_token:
            logger.info("trends: TWITTER_BEARER_TOKEN not set, skipping twitter source")
            return []
        response = await client.get(
            TWITTER_TRENDS_URL,
            params={"id": options.get("woeid", 1)},
            headers={"Authorization": f"Bearer {self.settings.twitter_bearer_token}"},
            timeout=self.settings.trend_request_timeout_seconds,
        )
        response.raise_for_status()
        payload = response.json()
        trends = payload[0].get("trends", []) if isinstance(payload, list) and payload else []
        return [
            {
                "keyword": trend.get("name"),
                "source": self.name,
                "trend_score": trend.get("tweet_volume") or 0,
                "tweet_volume": trend.get("tweet_volume") or 0,
                "url": trend.get("url"),
            }
            for trend in trends
        ]


SOURCE_CLASSES: dict[str, type[TrendSource]] = {
    "google_trends": GoogleTrendsSource,
    "google": GoogleTrendsSource,
    "reddit": RedditSource,
    "news": NewsSource,
    "twitter": TwitterSource,
}

# ---------------------------------------------------------------------------
# Extractor
# ---------------------------------------------------------------------------


@register
class TrendExtractor(Extractor):
    """Collect and merge trend signals.

    Options:
        sources: Source names (default ``["google_trends"]``).
        keywords / keyword: Keywords for the search-interest source.
        timeframe, geo: Google Trends window (``"7d"``) and region (``"US"``).
        subreddits, limit: Reddit listing parameters.
        country, category: NewsAPI parameters.
        woeid: Twitter location id (1 = worldwide).
    """

    job_type = JobType.TREND_MONITORING

    @asynccontextmanager
    async def _client(self) -> AsyncIterator[httpx.AsyncClient]:
        if self._http_client is not None:
            yield self._http_client
        else:
            async with httpx.AsyncClient(follow_redirects=True) as client:
                yield client

    async def extract(
        self,
        target: str | None,
        options: dict[str, Any] | None = None,
        *,
        on_progress: ProgressCallback | None = None,
    ) -> dict[str, Any]:
        options = dict(options or {})
        if not options.get("keywords") and options.get("keyword"):
            options["keywords"] = [options["keyword"]]
        sources = list(options.get("sources") or DEFAULT_SOURCES)
        logger.info("trends: collecting from %s", ", ".join(sources))

        entries: list[dict[str, Any]] = []
        errors: dict[str, str] = {}
        async with self._client() as client:
            seen_classes: set[type[TrendSource]] = set()
            for position, name in enumerate(sources, start=1):
                source_cls = SOURCE_CLASSES.get(name)
                if source_cls is None:
                    logger.warning("trends: unknown source %r, skipping", name)
                    errors[name] = f"Unknown trend source: {name}"
                    continue
                if source_cls in seen_classes:
                    continue
                seen_classes.add(source_cls)
                try:
                    found = await source_cls(self.settings).fetch(client, options)
                    entries.extend(found)
                    logger.info("trends: %s returned %d entries", name, len(found))
                except Exception as exc:  # noqa: BLE001
                    logger.warning("trends: %s source failed: %s", name, exc)
                    errors[name] = str(exc) or exc.__class__.__name__
                self.report(on_progress, 20 + int(60 * position / len(sources)))

        return {
            "trends": entries,
            "merged": merge_trends(entries),
            "sources": sources,
            "errors": errors,
            "scraped_at": utc_timestamp(),
        }
