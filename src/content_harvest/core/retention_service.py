"""Retention enforcement for finished jobs and downloaded files.

Two operations, both run by the nightly cleanup sweep:

1. **Job retention**: delete ``completed`` jobs finished more than
   ``Settings.job_retention_days`` (default 30) ago.  Failed and cancelled
   jobs are kept for inspection.

2. **File retention**: delete cached downloads under
   ``Settings.download_dir`` older than ``Settings.file_retention_days``
   (default 7).

Every deletion is logged at INFO level with counts.

Usage::

    from content_harvest.core.retention_service import RetentionService

    service = RetentionService()
    deleted_jobs = service.enforce_job_retention(store, retention_days=30)
    deleted_files = service.purge_files("./downloads", max_age_days=7)
"""

from __future__ import annotations

import logging
from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import TYPE_CHECKING

from content_harvest.scraper.files import clean_old_files

if TYPE_CHECKING:
    from content_harvest.jobs.store import JobStore

logger = logging.getLogger(__name__)


class RetentionService:
    """Stateless; a single instance can be reused across sweeps."""

    def enforce_job_retention(
        self,
        store: JobStore,
        retention_days: int,
        *,
        now: datetime | None = None,
    ) -> int:
        """Delete completed jobs older than *retention_days*.

        Args:
            store: Job persistence to prune.
            retention_days: Maximum age of completed jobs to keep, in days.
            now: Reference time (defaults to the current UTC time).

        Returns:
            Number of jobs deleted.
        """
        threshold = (now or datetime.now(tz=timezone.utc)) - timedelta(days=retention_days)
        deleted = store.delete_completed_before(threshold)
        logger.info(
            "job_retention_enforcement_complete",
            extra={
                "threshold_date": threshold.isoformat(),
                "retention_days": retention_days,
                "jobs_deleted": deleted,
            },
        )
        return deleted

    def purge_files(self, directory: str | Path, max_age_days: int) -> int:
        """Delete files under *directory* older than *max_age_days*; return the count."""
        deleted = clean_old_files(directory, max_age_days)
        logger.info(
            "file_retention_enforcement_complete",
            extra={
                "directory": str(directory),
                "max_age_days": max_age_days,
                "files_deleted": deleted,
            },
        )
        return deleted
