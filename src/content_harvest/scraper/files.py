"""File helpers for downloaded assets and cached scrape output."""

from __future__ import annotations

import hashlib
import logging
import re
import time
from pathlib import Path

from content_harvest.scraper.urls import extract_domain

logger = logging.getLogger(__name__)

_UNSAFE_RE = re.compile(r"[^a-z0-9]", re.IGNORECASE)


def generate_file_name(url: str, extension: str = ".json") -> str:
    """Return ``{domain}_{hash8}_{timestamp_ms}{extension}`` for *url*.

    The domain has every non-alphanumeric character replaced by ``_``.
    """
    digest = hashlib.md5(url.encode("utf-8")).hexdigest()[:8]  # noqa: S324
    domain = _UNSAFE_RE.sub("_", extract_domain(url) or "unknown")
    if extension and not extension.startswith("."):
        extension = f".{extension}"
    return f"{domain}_{digest}_{int(time.time() * 1000)}{extension}"


def save_bytes(directory: str | Path, file_name: str, content: bytes) -> Path:
    """Write *content* to ``directory/file_name``, creating the directory."""
    target_dir = Path(directory)
    target_dir.mkdir(parents=True, exist_ok=True)
    path = target_dir / file_name
    path.write_bytes(content)
    return path


def clean_old_files(directory: str | Path, max_age_days: int = 7) -> int:
    """Delete regular files under *directory* whose mtime is older than *max_age_days*.

    Walks the directory recursively.  A missing directory is not an error.
    Files that cannot be removed are logged and skipped.

    Returns:
        Number of files deleted.
    """
    root = Path(directory)
    if not root.is_dir():
        return 0
    cutoff = time.time() - max_age_days * 86_400
    deleted = 0
    for path in root.rglob("*"):
        if not path.is_file():
            continue
        try:
            if path.stat().st_mtime < cutoff:
                path.unlink()
                deleted += 1
        except OSError as exc:
            logger.warning("files: could not remove %s: %s", path, exc)
    logger.info("files: cleanup removed %d files from %s", deleted, root)
    return deleted
