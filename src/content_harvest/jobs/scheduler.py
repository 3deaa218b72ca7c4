"""Recurring sweeps: overdue targets, hot trend keywords, cleanup, stalled jobs.

The Celery beat tasks in :mod:`content_harvest.workers.tasks` call these
through ``asyncio.run()``; direct-mode deployments may call them from their
own timer.  Each sweep logs and skips per-item failures so one bad target
never stops the rest of the sweep.
"""

from __future__ import annotations

import logging
from collections.abc import Callable
from datetime import datetime, timedelta, timezone
from typing import Any

from content_harvest.config.settings import Settings
from content_harvest.core.retention_service import RetentionService
from content_harvest.jobs.models import JobStatus, JobType
from content_harvest.jobs.runner import JobRunner
from content_harvest.jobs.store import JobStore
from content_harvest.jobs.targets import FREQUENCIES, TargetStore, TrendStore

logger = logging.getLogger(__name__)

#: How far back ``last_scraped`` may lie before a target is overdue.
FREQUENCY_INTERVALS: dict[str, timedelta] = {
    "daily": timedelta(days=1),
    "weekly": timedelta(days=7),
}

#: Sources queried by the hourly trend-monitoring sweep.
SWEEP_TREND_SOURCES = ["google_trends", "twitter", "reddit"]

STALLED_REASON = "Job stalled: no progress within {minutes} minutes"


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class Scheduler:
    """Sweep logic shared by the durable and direct strategies.

    Args:
        runner: Strategy used to enqueue the jobs a sweep creates.
        target_store: Monitored websites.
        trend_store: Recorded trend observations.
        settings: Application settings.
        retention: Retention service used by :meth:`perform_cleanup`.
        clock: Returns the current UTC time (injectable for tests).
    """

    def __init__(
        self,
        runner: JobRunner,
        target_store: TargetStore,
        trend_store: TrendStore,
        *,
        settings: Settings | None = None,
        retention: RetentionService | None = None,
        clock: Callable[[], datetime] = _utcnow,
    ) -> None:
        self.runner = runner
        self.target_store = target_store
        self.trend_store = trend_store
        self.settings = settings or runner.settings
        self.retention = retention or RetentionService()
        self._clock = clock

    @property
    def store(self) -> JobStore:
        return self.runner.store

    # ------------------------------------------------------------------
    # Sweeps
    # ------------------------------------------------------------------

    async def schedule_overdue_targets(self, frequency: str = "daily") -> list[str]:
        """Enqueue a page job for every overdue active target of *frequency*.

        A target is overdue when it was never scraped or was last scraped
        before ``now - interval``.  Targets with a pending or running job are
        skipped.  ``last_scraped`` is set once the job is enqueued.

        Returns:
            Ids of the jobs created.

        Raises:
            ValueError: If *frequency* is not ``"daily"`` or ``"weekly"``.
        """
        if frequency not in FREQUENCIES:
            raise ValueError(f"Unsupported scraping frequency: {frequency}")
        now = self._clock()
        cutoff = now - FREQUENCY_INTERVALS[frequency]
        due = self.target_store.find_due(frequency, cutoff)
        logger.info("scheduler: %d %s targets overdue", len(due), frequency)

        job_ids: list[str] = []
        for target in due:
            if self.store.has_active_job_for_target(target.id):
                logger.debug("scheduler: target %s already has an active job", target.id)
                continue
            try:
                job_id = await self.runner.enqueue(
                    {
                        "type": JobType.PAGE,
                        "target": target.url,
                        "user_id": target.user_id,
                        "target_id": target.id,
                        "options": {"frequency": frequency},
                    }
                )
            except Exception as exc:  # noqa: BLE001
                logger.error("scheduler: could not schedule target %s: %s", target.id, exc)
                continue
            self.target_store.mark_scraped(target.id, now)
            job_ids.append(job_id)
        return job_ids

    async def schedule_trend_monitoring(self) -> list[str]:
        """Enqueue one trend-monitoring job per hot keyword of the recent window.

        Keywords are the best-scoring distinct keywords recorded within
        ``trend_keyword_window_hours`` (default 24), capped at
        ``trend_keyword_limit`` (default 20).

        Returns:
            Ids of the jobs created.
        """
        since = self._clock() - timedelta(hours=self.settings.trend_keyword_window_hours)
        keywords = self.trend_store.hot_keywords(since, self.settings.trend_keyword_limit)
        logger.info("scheduler: %d hot trend keywords", len(keywords))

        job_ids: list[str] = []
        for keyword in keywords:
            try:
                job_ids.append(
                    await self.runner.enqueue(
                        {
                            "type": JobType.TREND_MONITORING,
                            "options": {
                                "keyword": keyword,
                                "sources": list(SWEEP_TREND_SOURCES),
                            },
                        }
                    )
                )
            except Exception as exc:  # noqa: BLE001
                logger.error("scheduler: could not schedule trend job for %r: %s", keyword, exc)
        return job_ids

    def perform_cleanup(self) -> dict[str, int]:
        """Delete old completed jobs and purge stale downloaded files.

        Returns:
            ``{"jobs_deleted": n, "files_deleted": m}``.
        """
        jobs_deleted = self.retention.enforce_job_retention(
            self.store, self.settings.job_retention_days, now=self._clock()
        )
        files_deleted = self.retention.purge_files(
            self.settings.download_dir, self.settings.file_retention_days
        )
        return {"jobs_deleted": jobs_deleted, "files_deleted": files_deleted}

    def recover_stalled_jobs(self) -> list[str]:
        """Fail jobs that have been running longer than ``stalled_job_minutes``.

        Returns:
            Ids of the jobs marked failed.
        """
        minutes = self.settings.stalled_job_minutes
        cutoff = self._clock() - timedelta(minutes=minutes)
        recovered: list[str] = []
        for job in self.store.find_stalled(cutoff):
            job.mark_failed(STALLED_REASON.format(minutes=minutes))
            stored = self.store.update(
                job.id,
                expected_status=JobStatus.RUNNING,
                status=job.status,
                error=job.error,
                result=None,
                completed_at=job.completed_at,
            )
            if stored is not None:
                logger.warning("scheduler: job %s stalled, marked failed", job.id)
                recovered.append(job.id)
        return recovered

    def stats(self) -> dict[str, Any]:
        """Job counts by status plus the active total."""
        counts = self.store.count_by_status()
        return {
            "jobs": counts,
            "active": counts[JobStatus.PENDING.value] + counts[JobStatus.RUNNING.value],
            "generated_at": self._clock().isoformat(),
        }
