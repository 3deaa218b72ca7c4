"""Asset discovery: images, videos, documents and audio.

Discovery is selector-based and works on the rendered DOM.  Every bucket is
de-duplicated by normalised URL (case and trailing slash insensitive).  Each
discovered item carries a ``context`` dict of placement flags::

    {"in_header", "in_nav", "in_footer", "in_article", "in_sidebar", "near_text"}

When ``download`` is requested, images and direct (non-embedded) video and
audio files are fetched over HTTP in bounded batches and enriched with
binary-derived metadata by :mod:`content_harvest.extractors.media`.
"""

from __future__ import annotations

import logging
import re
from typing import Any

from bs4 import BeautifulSoup, Tag

from content_harvest.extractors.base import Extractor, ProgressCallback, utc_timestamp
from content_harvest.extractors.media import download_assets
from content_harvest.extractors.registry import register
from content_harvest.jobs.models import JobType
from content_harvest.scraper.dom import attr, text_of
from content_harvest.scraper.urls import normalize_url, url_extension, url_key

logger = logging.getLogger(__name__)

ASSET_TYPES: tuple[str, ...] = ("images", "videos", "documents", "audio")

_CONTEXT_RULES: dict[str, tuple[frozenset[str], frozenset[str]]] = {
    "in_header": (frozenset({"header"}), frozenset({"header"})),
    "in_nav": (frozenset({"nav"}), frozenset({"nav", "navigation"})),
    "in_footer": (frozenset({"footer"}), frozenset({"footer"})),
    "in_article": (frozenset({"article"}), frozenset({"article", "post", "content"})),
    "in_sidebar": (frozenset({"aside"}), frozenset({"sidebar"})),
}

_BACKGROUND_IMAGE_RE = re.compile(r"background-image\s*:\s*url\(\s*['\"]?([^'\")]+)['\"]?\s*\)", re.I)
_BACKGROUND_VIDEO_RE = re.compile(r"url\(\s*['\"]?([^'\")]+\.(?:mp4|webm|ogg))['\"]?\s*\)", re.I)
_YOUTUBE_ID_RE = re.compile(
    r"(?:youtube\.com/(?:[^/]+/.+/|(?:v|e(?:mbed)?)/|.*[?&]v=)|youtu\.be/)([^\"&?/\s]{11})",
    re.I,
)
_VIMEO_ID_RE = re.compile(r"vimeo\.com/(?:video/)?(\d+)", re.I)

#: Embedded-video platforms matched by iframe ``src`` substring.
VIDEO_PLATFORMS: dict[str, tuple[str, ...]] = {
    "youtube": ("youtube.com", "youtube-nocookie.com", "youtu.be"),
    "vimeo": ("vimeo.com",),
    "dailymotion": ("dailymotion",),
    "twitch": ("twitch",),
    "wistia": ("wistia",),
    "brightcove": ("brightcove",),
}

# ---------------------------------------------------------------------------
# Context and heuristics
# ---------------------------------------------------------------------------


def _closest(element: Tag, tags: frozenset[str], classes: frozenset[str]) -> bool:
    node: Any = element
    while isinstance(node, Tag):
        if node.name in tags:
            return True
        node_classes = node.get("class") or []
        if any(cls in classes for cls in node_classes):
            return True
        node = node.parent
    return False


def element_context(element: Tag) -> dict[str, bool]:
    """Placement flags for *element* (self or any ancestor matches)."""
    context = {
        flag: _closest(element, tags, classes) for flag, (tags, classes) in _CONTEXT_RULES.items()
    }
    parent = element.parent
    nearby = ""
    if isinstance(parent, Tag):
        nearby = parent.get_text(" ", strip=True) + "".join(
            sibling.get_text(" ", strip=True)
            for sibling in parent.find_next_siblings()
            + parent.find_previous_siblings()
        )
    context["near_text"] = len(nearby) > 50
    return context


def _dimension(value: Any) -> int | None:
    match = re.match(r"\s*(\d+)", str(value or ""))
    return int(match.group(1)) if match else None


def is_icon(image: dict[str, Any]) -> bool:
    """URL mentions ``icon``/``favicon``, or ``logo`` with a small declared size."""
    url = image["url"].lower()
    if "icon" in url or "favicon" in url:
        return True
    if "logo" in url:
        width, height = _dimension(image.get("width")), _dimension(image.get("height"))
        return (width is not None and width < 100) or (height is not None and height < 100)
    return False


def youtube_id(url: str) -> str | None:
    match = _YOUTUBE_ID_RE.search(url)
    return match.group(1) if match else None


def vimeo_id(url: str) -> str | None:
    match = _VIMEO_ID_RE.search(url)
    return match.group(1) if match else None


class _UniqueBucket:
    """Append-only list keyed by :func:`url_key`."""

    def __init__(self) -> None:
        self.items: list[dict[str, Any]] = []
        self._seen: set[str] = set()

    def add(self, item: dict[str, Any]) -> None:
        key = url_key(item["url"])
        if key in self._seen:
            return
        self._seen.add(key)
        self.items.append(item)


# ---------------------------------------------------------------------------
# Discovery
# ---------------------------------------------------------------------------


def discover_images(doc: BeautifulSoup, base_url: str) -> list[dict[str, Any]]:
    """``<img>`` (incl. lazy ``data-src``), inline background images and ``<picture>`` sources."""
    bucket = _UniqueBucket()
    for img in doc.find_all("img"):
        src = attr(img, "src") or attr(img, "data-src") or attr(img, "data-lazy")
        if not src or src.startswith("data:"):
            continue
        bucket.add(
            {
                "url": normalize_url(src, base_url),
                "type": "img",
                "alt": attr(img, "alt"),
                "title": attr(img, "title"),
                "width": attr(img, "width") or None,
                "height": attr(img, "height") or None,
                "class_name": attr(img, "class"),
                "context": element_context(img),
            }
        )
    for element in doc.select("[style]"):
        match = _BACKGROUND_IMAGE_RE.search(attr(element, "style"))
        if match:
            bucket.add(
                {
                    "url": normalize_url(match.group(1), base_url),
                    "type": "background",
                    "alt": attr(element, "aria-label"),
                    "title": attr(element, "title"),
                    "class_name": attr(element, "class"),
                    "context": element_context(element),
                }
            )
    for source in doc.select("picture source[srcset]"):
        picture = source.find_parent("picture")
        fallback = picture.find("img") if picture is not None else None
        for candidate in attr(source, "srcset").split(","):
            candidate = candidate.strip().split(" ")[0]
            if not candidate:
                continue
            bucket.add(
                {
                    "url": normalize_url(candidate, base_url),
                    "type": "picture",
                    "alt": attr(fallback, "alt"),
                    "title": attr(source, "title"),
                    "media": attr(source, "media"),
                    "context": element_context(source),
                }
            )
    return bucket.items


def filter_images(images: list[dict[str, Any]], options: dict[str, Any]) -> list[dict[str, Any]]:
    """Apply dimension, placement, file-type and icon filters from *options*.

    Images without a declared width/height are kept by the dimension filter.
    """
    min_width = int(options.get("min_width") or 0)
    min_height = int(options.get("min_height") or 0)
    allowed = [t.lower().lstrip(".") for t in options.get("allowed_types") or []]

    def keep(image: dict[str, Any]) -> bool:
        ctx = image.get("context", {})
        width, height = _dimension(image.get("width")), _dimension(image.get("height"))
        if width is not None and width < min_width:
            return False
        if height is not None and height < min_height:
            return False
        if options.get("exclude_navigation") and ctx.get("in_nav"):
            return False
        if options.get("exclude_header") and ctx.get("in_header"):
            return False
        if options.get("exclude_footer") and ctx.get("in_footer"):
            return False
        if options.get("content_images_only") and not (ctx.get("in_article") or ctx.get("near_text")):
            return False
        if allowed and url_extension(image["url"]) not in allowed:
            return False
        if options.get("exclude_icons", True) and is_icon(image):
            return False
        return True

    return [image for image in images if keep(image)]


def _platform_for(src: str) -> str | None:
    lowered = src.lower()
    for platform, needles in VIDEO_PLATFORMS.items():
        if any(needle in lowered for needle in needles):
            return platform
    return None


def discover_videos(doc: BeautifulSoup, base_url: str) -> list[dict[str, Any]]:
    """Native ``<video>``/``<source>``, platform iframes and inline background videos."""
    bucket = _UniqueBucket()
    for video in doc.find_all("video"):
        poster = attr(video, "poster")
        poster_url = normalize_url(poster, base_url) if poster else None
        context = element_context(video)
        src = attr(video, "src")
        if src:
            bucket.add(
                {
                    "url": normalize_url(src, base_url),
                    "type": "html5_video",
                    "poster": poster_url,
                    "width": attr(video, "width") or None,
                    "height": attr(video, "height") or None,
                    "controls": video.has_attr("controls"),
                    "autoplay": video.has_attr("autoplay"),
                    "muted": video.has_attr("muted"),
                    "loop": video.has_attr("loop"),
                    "preload": attr(video, "preload") or "metadata",
                    "context": context,
                }
            )
        for source in video.find_all("source"):
            source_src = attr(source, "src")
            if source_src:
                bucket.add(
                    {
                        "url": normalize_url(source_src, base_url),
                        "type": "html5_video_source",
                        "poster": poster_url,
                        "mime_type": attr(source, "type") or None,
                        "media": attr(source, "media") or None,
                        "context": context,
                    }
                )

    for iframe in doc.find_all("iframe"):
        src = attr(iframe, "src")
        platform = _platform_for(src) if src else None
        if platform is None:
            continue
        url = normalize_url(src, base_url)
        item: dict[str, Any] = {
            "url": url,
            "type": "embedded",
            "platform": platform,
            "width": attr(iframe, "width") or None,
            "height": attr(iframe, "height") or None,
            "title": attr(iframe, "title"),
            "context": element_context(iframe),
        }
        if platform == "youtube":
            video_id = youtube_id(url)
            item.update(
                type="youtube",
                video_id=video_id,
                thumbnail=f"https://img.youtube.com/vi/{video_id}/maxresdefault.jpg" if video_id else None,
                watch_url=f"https://www.youtube.com/watch?v={video_id}" if video_id else None,
            )
        elif platform == "vimeo":
            video_id = vimeo_id(url)
            item.update(
                type="vimeo",
                video_id=video_id,
                watch_url=f"https://vimeo.com/{video_id}" if video_id else None,
            )
        bucket.add(item)

    for element in doc.select("[style]"):
        match = _BACKGROUND_VIDEO_RE.search(attr(element, "style"))
        if match:
            bucket.add(
                {
                    "url": normalize_url(match.group(1), base_url),
                    "type": "background_video",
                    "element": element.name,
                    "class_name": attr(element, "class"),
                    "context": element_context(element),
                }
            )
    return bucket.items


def discover_documents(
    doc: BeautifulSoup, base_url: str, extensions: list[str]
) -> list[dict[str, Any]]:
    """Links whose path ends with one of *extensions* (without dots)."""
    allowed = {ext.lower().lstrip(".") for ext in extensions}
    bucket = _UniqueBucket()
    for anchor in doc.select("a[href]"):
        url = normalize_url(attr(anchor, "href"), base_url)
        extension = url_extension(url)
        if extension in allowed:
            bucket.add(
                {
                    "url": url,
                    "type": "document",
                    "extension": f".{extension}",
                    "text": text_of(anchor),
                    "title": attr(anchor, "title"),
                    "context": element_context(anchor),
                }
            )
    return bucket.items


def discover_audio(doc: BeautifulSoup, base_url: str) -> list[dict[str, Any]]:
    """``<audio>`` elements and their ``<source>`` children."""
    bucket = _UniqueBucket()
    for audio in doc.find_all("audio"):
        context = element_context(audio)
        src = attr(audio, "src")
        if src:
            bucket.add(
                {
                    "url": normalize_url(src, base_url),
                    "type": "audio",
                    "controls": audio.has_attr("controls"),
                    "autoplay": audio.has_attr("autoplay"),
                    "loop": audio.has_attr("loop"),
                    "context": context,
                }
            )
        for source in audio.find_all("source"):
            source_src = attr(source, "src")
            if source_src:
                bucket.add(
                    {
                        "url": normalize_url(source_src, base_url),
                        "type": "audio",
                        "mime_type": attr(source, "type") or None,
                        "context": context,
                    }
                )
    return bucket.items


# ---------------------------------------------------------------------------
# Extractor
# ---------------------------------------------------------------------------


@register
class AssetExtractor(Extractor):
    """Discover (and optionally download) the media assets of a page.

    Options:
        asset_types: Buckets to fill; any of ``images``, ``videos``,
            ``documents``, ``audio`` (default: all).
        download: Fetch images and direct video/audio files.
        optimize, format, quality, max_width, max_height: Image
            re-encoding applied to downloaded images.
        extract_colors, generate_thumbnails: Extra image processing.
        min_width, min_height, exclude_navigation, exclude_header,
        exclude_footer, content_images_only, allowed_types, exclude_icons:
            Image filters.
    """

    job_type = JobType.ASSET_DISCOVERY

    async def extract(
        self,
        target: str | None,
        options: dict[str, Any] | None = None,
        *,
        on_progress: ProgressCallback | None = None,
    ) -> dict[str, Any]:
        url = self.require_url(target)
        options = options or {}
        wanted = set(options.get("asset_types") or ASSET_TYPES)
        logger.info("assets: starting discovery for %s (%s)", url, ", ".join(sorted(wanted)))

        page = await self.load_page(url, wait_for_selector=options.get("wait_for_selector"))
        self.report(on_progress, 20)
        doc = page.doc

        images = filter_images(discover_images(doc, url), options) if "images" in wanted else []
        videos = discover_videos(doc, url) if "videos" in wanted else []
        documents = (
            discover_documents(doc, url, self.settings.document_extensions)
            if "documents" in wanted
            else []
        )
        audio = discover_audio(doc, url) if "audio" in wanted else []
        self.report(on_progress, 50)

        if options.get("download"):
            images, videos, audio = await self._download(images, videos, audio, options)
        self.report(on_progress, 80)

        summary = {
            "images": len(images),
            "videos": len(videos),
            "documents": len(documents),
            "audio": len(audio),
            "downloaded": sum(
                1 for item in (*images, *videos, *audio) if item.get("downloaded")
            ),
        }
        logger.info("assets: discovered %s on %s", summary, url)
        return {
            "url": url,
            "images": images,
            "videos": videos,
            "documents": documents,
            "audio": audio,
            "summary": summary,
            "scraped_at": utc_timestamp(),
        }

    async def _download(
        self,
        images: list[dict[str, Any]],
        videos: list[dict[str, Any]],
        audio: list[dict[str, Any]],
        options: dict[str, Any],
    ) -> tuple[list[dict[str, Any]], list[dict[str, Any]], list[dict[str, Any]]]:
        common = {"client": self._http_client, "settings": self.settings, "options": options}
        images = await download_assets(images, "image", **common)

        direct = [v for v in videos if v["type"] in ("html5_video", "html5_video_source", "background_video")]
        fetched = {item["url"]: item for item in await download_assets(direct, "video", **common)}
        videos = [fetched.get(video["url"], video) for video in videos]

        audio = await download_assets(audio, "audio", **common)
        return images, videos, audio
