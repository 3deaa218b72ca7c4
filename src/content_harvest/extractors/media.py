"""Binary media processing for downloaded assets (Pillow).

- :class:`MediaValidator` checks extension allow-lists, size cap, MIME type
  and minimum image dimensions.
- :func:`inspect_image`, :func:`resize_image`, :func:`dominant_colors` and
  :func:`create_thumbnails` work on raw image bytes.
- :func:`download_assets` fetches discovered items in fixed-size batches.
  A failing item records ``error`` on itself; the batch continues.

SVG images are accepted by extension and MIME type but never decoded:
dimensions, palette and thumbnails are only computed for raster formats.
"""

from __future__ import annotations

import asyncio
import io
import logging
from collections import Counter
from dataclasses import dataclass
from pathlib import Path
from typing import Any

import httpx
from PIL import Image, UnidentifiedImageError

from content_harvest.config.settings import Settings, get_settings
from content_harvest.core.exceptions import DownloadError
from content_harvest.scraper.files import generate_file_name, save_bytes
from content_harvest.scraper.http_fetcher import BinaryFetchResult, fetch_binary
from content_harvest.scraper.urls import url_extension

logger = logging.getLogger(__name__)

#: Thumbnail name -> longest edge in pixels.
THUMBNAIL_SIZES: dict[str, int] = {"small": 256, "medium": 512, "large": 1024}

#: Palette sampling grid and per-channel quantisation step.
PALETTE_SAMPLE_SIZE = 64
PALETTE_STEP = 32

_PIL_FORMATS: dict[str, str] = {
    "jpg": "JPEG",
    "jpeg": "JPEG",
    "png": "PNG",
    "webp": "WEBP",
    "gif": "GIF",
}

_KIND_MIME_PREFIX: dict[str, str | None] = {
    "image": "image/",
    "video": "video/",
    "audio": "audio/",
    "document": None,
}


@dataclass
class ImageInfo:
    """Decoded image properties.

    Attributes:
        width: Width in pixels (``None`` for SVG).
        height: Height in pixels (``None`` for SVG).
        format: Lower-cased format name, e.g. ``"png"``.
        mode: Pillow mode, e.g. ``"RGB"`` (``None`` for SVG).
        has_alpha: Whether the image carries an alpha channel.
    """

    width: int | None
    height: int | None
    format: str
    mode: str | None = None
    has_alpha: bool = False


def _open(content: bytes) -> Image.Image:
    try:
        image = Image.open(io.BytesIO(content))
        image.load()
    except (UnidentifiedImageError, OSError, Image.DecompressionBombError) as exc:
        raise DownloadError(f"Corrupt or invalid image: {exc}") from exc
    return image


def inspect_image(content: bytes) -> ImageInfo:
    """Decode *content* and return its dimensions, format and mode.

    Raises:
        DownloadError: If the bytes are not a decodable image.
    """
    image = _open(content)
    return ImageInfo(
        width=image.width,
        height=image.height,
        format=(image.format or "unknown").lower(),
        mode=image.mode,
        has_alpha="A" in image.getbands() or "transparency" in image.info,
    )


def _encode(image: Image.Image, fmt: str, quality: int) -> bytes:
    pil_format = _PIL_FORMATS.get(fmt.lower())
    if pil_format is None:
        raise DownloadError(f"Unsupported output format: {fmt}")
    if pil_format == "JPEG" and image.mode not in ("RGB", "L"):
        image = image.convert("RGB")
    buffer = io.BytesIO()
    save_kwargs: dict[str, Any] = {}
    if pil_format in ("JPEG", "WEBP"):
        save_kwargs["quality"] = quality
    image.save(buffer, format=pil_format, **save_kwargs)
    return buffer.getvalue()


def resize_image(
    content: bytes,
    max_width: int = 1920,
    max_height: int = 1080,
    fmt: str = "webp",
    quality: int = 80,
) -> bytes:
    """Fit the image inside ``max_width`` x ``max_height`` and re-encode it.

    The aspect ratio is kept and the image is never enlarged.
    """
    image = _open(content)
    image.thumbnail((max_width, max_height), Image.Resampling.LANCZOS)
    return _encode(image, fmt, quality)


def dominant_colors(content: bytes, count: int = 5) -> list[dict[str, Any]]:
    """Return the *count* most frequent colours as ``{hex, ratio}``.

    The image is downsampled to 64x64 and each RGB channel is quantised to a
    multiple of 32 before counting.
    """
    image = _open(content).convert("RGB")
    sample = image.resize((PALETTE_SAMPLE_SIZE, PALETTE_SAMPLE_SIZE))
    counter: Counter[tuple[int, int, int]] = Counter()
    for n, (r, g, b) in sample.getcolors(maxcolors=PALETTE_SAMPLE_SIZE * PALETTE_SAMPLE_SIZE):
        counter[tuple(channel // PALETTE_STEP * PALETTE_STEP for channel in (r, g, b))] += n
    total = sum(counter.values())
    return [
        {"hex": "#{:02x}{:02x}{:02x}".format(*rgb), "ratio": round(n / total, 4)}
        for rgb, n in counter.most_common(count)
    ]


def create_thumbnails(content: bytes, fmt: str = "webp", quality: int = 80) -> dict[str, bytes]:
    """Render the small (256), medium (512) and large (1024) thumbnails."""
    source = _open(content)
    thumbnails: dict[str, bytes] = {}
    for name, edge in THUMBNAIL_SIZES.items():
        image = source.copy()
        image.thumbnail((edge, edge), Image.Resampling.LANCZOS)
        thumbnails[name] = _encode(image, fmt, quality)
    return thumbnails


# ---------------------------------------------------------------------------
# Validation
# ---------------------------------------------------------------------------


class MediaValidator:
    """Checks downloaded media against the configured allow-lists.

    Args:
        settings: Provides the extension allow-lists, ``max_media_bytes`` and
            the minimum image dimensions.
    """

    def __init__(self, settings: Settings | None = None) -> None:
        self.settings = settings or get_settings()

    def allowed_extensions(self, kind: str) -> list[str]:
        return {
            "image": self.settings.allowed_image_extensions,
            "video": self.settings.allowed_video_extensions,
            "audio": self.settings.allowed_audio_extensions,
            "document": self.settings.document_extensions,
        }.get(kind, [])

    def validate(self, fetched: BinaryFetchResult, kind: str) -> ImageInfo | None:
        """Validate *fetched* as media of *kind*.

        Returns:
            :class:`ImageInfo` for raster images, ``None`` otherwise.

        Raises:
            DownloadError: On an oversized body, a MIME type of the wrong
                family, a disallowed format or an undersized image.
        """
        if fetched.size > self.settings.max_media_bytes:
            raise DownloadError("File size too large", url=fetched.url)
        prefix = _KIND_MIME_PREFIX.get(kind)
        if prefix and not fetched.content_type.startswith(prefix):
            raise DownloadError(
                f"Unsupported media type: {fetched.content_type or 'unknown'}", url=fetched.url
            )
        if kind in ("video", "audio"):
            extension = url_extension(fetched.final_url) or url_extension(fetched.url)
            if extension and extension not in self.allowed_extensions(kind):
                raise DownloadError(f"{kind.capitalize()} type {extension} not allowed", url=fetched.url)
        if kind != "image":
            return None

        if fetched.content_type == "image/svg+xml":
            if "svg" not in self.settings.allowed_image_extensions:
                raise DownloadError("Image type svg not allowed", url=fetched.url)
            return ImageInfo(width=None, height=None, format="svg")

        info = inspect_image(fetched.content)
        image_format = "jpg" if info.format == "jpeg" else info.format
        allowed = {ext.lower() for ext in self.settings.allowed_image_extensions}
        if image_format not in allowed and info.format not in allowed:
            raise DownloadError(f"Image type {info.format} not allowed", url=fetched.url)
        if (info.width or 0) < self.settings.min_image_width or (
            info.height or 0
        ) < self.settings.min_image_height:
            raise DownloadError(
                f"Image too small: {info.width}x{info.height}", url=fetched.url
            )
        return info


# ---------------------------------------------------------------------------
# Batch download
# ---------------------------------------------------------------------------


async def _download_one(
    item: dict[str, Any],
    kind: str,
    *,
    client: httpx.AsyncClient,
    validator: MediaValidator,
    options: dict[str, Any],
    output_dir: Path,
) -> dict[str, Any]:
    settings = validator.settings
    fetched = await fetch_binary(
        item["url"],
        client=client,
        timeout=settings.asset_download_timeout_seconds,
        max_bytes=settings.max_media_bytes,
        expected_prefix=_KIND_MIME_PREFIX.get(kind),
    )
    info = validator.validate(fetched, kind)
    content = fetched.content
    extension = url_extension(fetched.final_url) or url_extension(item["url"]) or "bin"
    enriched: dict[str, Any] = {**item, "content_type": fetched.content_type}

    if info is not None and info.mode is not None:
        if options.get("optimize"):
            out_format = str(options.get("format", "webp")).lower()
            content = resize_image(
                content,
                int(options.get("max_width", 1920)),
                int(options.get("max_height", 1080)),
                out_format,
                int(options.get("quality", 80)),
            )
            extension = out_format
            info = inspect_image(content)
        enriched.update(width=info.width, height=info.height, format=info.format)
        if options.get("extract_colors"):
            enriched["dominant_colors"] = dominant_colors(content)
        if options.get("generate_thumbnails"):
            thumbs: dict[str, str] = {}
            for name, data in create_thumbnails(content).items():
                path = save_bytes(
                    output_dir / "thumbnails",
                    generate_file_name(item["url"], f".{name}.webp"),
                    data,
                )
                thumbs[name] = str(path)
            enriched["thumbnails"] = thumbs
    elif info is not None:
        enriched["format"] = info.format

    path = save_bytes(output_dir, generate_file_name(item["url"], f".{extension}"), content)
    enriched.update(file_path=str(path), file_size=len(content), downloaded=True)
    return enriched


async def download_assets(
    items: list[dict[str, Any]],
    kind: str,
    *,
    client: httpx.AsyncClient | None = None,
    settings: Settings | None = None,
    options: dict[str, Any] | None = None,
    batch_size: int | None = None,
) -> list[dict[str, Any]]:
    """Download *items* of *kind* in chunks of *batch_size*.

    Args:
        items: Discovered asset dicts, each with a ``url``.
        kind: ``"image"``, ``"video"``, ``"audio"`` or ``"document"``.
        client: Optional shared :class:`httpx.AsyncClient`.
        settings: Application settings.
        options: Processing options (``optimize``, ``format``, ``quality``,
            ``max_width``, ``max_height``, ``extract_colors``,
            ``generate_thumbnails``).
        batch_size: Items fetched concurrently; defaults to the per-kind
            setting (5 for images, 2 for other media).

    Returns:
        One dict per input item, in order.  Failed items carry
        ``downloaded=False`` and ``error``.
    """
    settings = settings or get_settings()
    options = options or {}
    validator = MediaValidator(settings)
    if batch_size is None:
        batch_size = (
            settings.image_download_batch_size
            if kind == "image"
            else settings.video_download_batch_size
        )
    batch_size = max(1, batch_size)
    output_dir = Path(settings.download_dir) / f"{kind}s"

    async def run(http: httpx.AsyncClient) -> list[dict[str, Any]]:
        results: list[dict[str, Any]] = []
        for start in range(0, len(items), batch_size):
            batch = items[start : start + batch_size]
            outcomes = await asyncio.gather(
                *(
                    _download_one(
                        item,
                        kind,
                        client=http,
                        validator=validator,
                        options=options,
                        output_dir=output_dir,
                    )
                    for item in batch
                ),
                return_exceptions=True,
            )
            for item, outcome in zip(batch, outcomes):
                if isinstance(outcome, BaseException):
                    logger.warning("media: failed to download %s: %s", item.get("url"), outcome)
                    results.append({**item, "downloaded": False, "error": str(outcome)})
                else:
                    results.append(outcome)
        return results

    if client is not None:
        return await run(client)
    async with httpx.AsyncClient() as http:
        return await run(http)
