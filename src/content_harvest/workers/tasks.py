"""Celery tasks for Content Harvest.

- ``execute_scrape_job``: runs one stored job through
  :class:`~content_harvest.jobs.executor.JobExecutor`.  ``NavigationError``
  and ``DownloadError`` are retried with exponential backoff
  (``job_backoff_base_seconds`` * 2^n) until ``job_max_attempts`` is
  reached; the job record goes back to ``pending`` between attempts and is
  marked ``failed`` after the last one.  ``RobotsDisallowedError``,
  ``ValidationError`` and any other error fail the job immediately.

The five periodic sweeps driven by ``workers/beat_schedule.py``:

- ``schedule_daily_scraping`` / ``schedule_weekly_scraping``: enqueue page
  jobs for overdue monitored targets.
- ``schedule_trend_monitoring``: enqueue trend jobs for hot keywords.
- ``perform_cleanup``: delete old completed jobs and stale downloads.
- ``recover_stalled_jobs``: fail jobs stuck in ``running``.

All tasks are synchronous Celery tasks that bridge to async code via
``asyncio.run()``.

Error handling policy: the sweep tasks catch all exceptions at the
outermost level, log them at ERROR level, and do NOT re-raise, so one bad
sweep never triggers a retry storm.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Any

import structlog

from content_harvest.config.settings import get_settings
from content_harvest.core.exceptions import DownloadError, JobNotFoundError, NavigationError
from content_harvest.jobs.executor import JobExecutor
from content_harvest.jobs.runner import CeleryJobRunner
from content_harvest.jobs.scheduler import Scheduler
from content_harvest.jobs.store import JobStore, SqlJobStore
from content_harvest.jobs.targets import SqlTargetStore, SqlTrendStore
from content_harvest.workers.celery_app import celery_app

logger = structlog.get_logger(__name__)
_stdlib_logger = logging.getLogger(__name__)

settings = get_settings()

#: Transient failures worth another attempt.
RETRYABLE_ERRORS: tuple[type[Exception], ...] = (NavigationError, DownloadError)


# ---------------------------------------------------------------------------
# Wiring
# ---------------------------------------------------------------------------


def _job_store() -> JobStore:
    return SqlJobStore()


def _build_executor() -> JobExecutor:
    return JobExecutor(_job_store(), settings=settings, trend_store=SqlTrendStore())


def _build_scheduler() -> Scheduler:
    runner = CeleryJobRunner(_job_store(), settings, app=celery_app)
    return Scheduler(runner, SqlTargetStore(), SqlTrendStore(), settings=settings)


# ---------------------------------------------------------------------------
# Job execution
# ---------------------------------------------------------------------------


@celery_app.task(
    name="content_harvest.workers.tasks.execute_scrape_job",
    bind=True,
    autoretry_for=RETRYABLE_ERRORS,
    retry_backoff=settings.job_backoff_base_seconds,
    retry_backoff_max=600,
    retry_jitter=False,
    max_retries=max(0, settings.job_max_attempts - 1),
    acks_late=True,
)
def execute_scrape_job(self: Any, job_id: str) -> dict[str, Any]:
    """Execute the stored scrape job *job_id*.

    Args:
        job_id: Identifier of a job created by
            :class:`~content_harvest.jobs.runner.CeleryJobRunner`.

    Returns:
        Dict with ``job_id`` and the final ``status`` (``"skipped"`` when
        the job was no longer pending, ``"missing"`` when it was deleted).

    Raises:
        NavigationError: Triggers automatic retry with exponential backoff
            while attempts remain.
        DownloadError: Same as ``NavigationError``.
    """
    log = logger.bind(task="execute_scrape_job", job_id=job_id, retry=self.request.retries)
    final_attempt = self.request.retries >= self.max_retries
    retry_on = () if final_attempt else RETRYABLE_ERRORS
    log.info("execute_scrape_job: starting", final_attempt=final_attempt)

    try:
        job = asyncio.run(_build_executor().execute(job_id, retry_on=retry_on))
    except JobNotFoundError:
        log.warning("execute_scrape_job: job no longer exists")
        return {"job_id": job_id, "status": "missing"}
    except RETRYABLE_ERRORS as exc:
        log.warning("execute_scrape_job: transient failure, will retry", error=str(exc))
        raise

    if job is None:
        return {"job_id": job_id, "status": "skipped"}
    log.info("execute_scrape_job: finished", status=job.status.value)
    return {"job_id": job_id, "status": job.status.value}


# ---------------------------------------------------------------------------
# Sweeps
# ---------------------------------------------------------------------------


def _schedule_targets(frequency: str) -> dict[str, Any]:
    task_name = f"schedule_{frequency}_scraping"
    log = logger.bind(task=task_name)
    log.info(f"{task_name}: starting")
    try:
        job_ids = asyncio.run(_build_scheduler().schedule_overdue_targets(frequency))
    except Exception as exc:
        log.error(f"{task_name}: error", error=str(exc), exc_info=True)
        return {"error": str(exc), "jobs_scheduled": 0}
    summary = {"jobs_scheduled": len(job_ids), "frequency": frequency}
    log.info(f"{task_name}: complete", **summary)
    return summary


@celery_app.task(name="content_harvest.workers.tasks.schedule_daily_scraping")
def schedule_daily_scraping() -> dict[str, Any]:
    """Enqueue page jobs for daily targets not scraped in the last 24 hours."""
    return _schedule_targets("daily")


@celery_app.task(name="content_harvest.workers.tasks.schedule_weekly_scraping")
def schedule_weekly_scraping() -> dict[str, Any]:
    """Enqueue page jobs for weekly targets not scraped in the last 7 days."""
    return _schedule_targets("weekly")


@celery_app.task(name="content_harvest.workers.tasks.schedule_trend_monitoring")
def schedule_trend_monitoring() -> dict[str, Any]:
    """Enqueue one trend-monitoring job per hot keyword of the last 24 hours.

    Returns:
        Dict with ``jobs_scheduled`` count.
    """
    log = logger.bind(task="schedule_trend_monitoring")
    log.info("schedule_trend_monitoring: starting")
    try:
        job_ids = asyncio.run(_build_scheduler().schedule_trend_monitoring())
    except Exception as exc:
        log.error("schedule_trend_monitoring: error", error=str(exc), exc_info=True)
        return {"error": str(exc), "jobs_scheduled": 0}
    summary = {"jobs_scheduled": len(job_ids)}
    log.info("schedule_trend_monitoring: complete", **summary)
    return summary


@celery_app.task(name="content_harvest.workers.tasks.perform_cleanup")
def perform_cleanup() -> dict[str, Any]:
    """Delete completed jobs past retention and purge stale downloaded files.

    Returns:
        Dict with ``jobs_deleted`` and ``files_deleted`` counts.
    """
    log = logger.bind(task="perform_cleanup")
    log.info(
        "perform_cleanup: starting",
        job_retention_days=settings.job_retention_days,
        file_retention_days=settings.file_retention_days,
    )
    try:
        summary = _build_scheduler().perform_cleanup()
    except Exception as exc:
        log.error("perform_cleanup: error", error=str(exc), exc_info=True)
        return {"error": str(exc), "jobs_deleted": 0, "files_deleted": 0}
    log.info("perform_cleanup: complete", **summary)
    return summary


@celery_app.task(name="content_harvest.workers.tasks.recover_stalled_jobs")
def recover_stalled_jobs() -> dict[str, Any]:
    """Mark jobs running longer than ``stalled_job_minutes`` as failed.

    Returns:
        Dict with ``jobs_failed`` count.
    """
    log = logger.bind(task="recover_stalled_jobs")
    log.info("recover_stalled_jobs: starting")
    try:
        recovered = _build_scheduler().recover_stalled_jobs()
    except Exception as exc:
        log.error("recover_stalled_jobs: error", error=str(exc), exc_info=True)
        return {"error": str(exc), "jobs_failed": 0}
    summary = {"jobs_failed": len(recovered)}
    if recovered:
        _stdlib_logger.warning("recover_stalled_jobs: failed %s", ", ".join(recovered))
    log.info("recover_stalled_jobs: complete", **summary)
    return summary


@celery_app.task(name="content_harvest.workers.tasks.scraping_stats")
def scraping_stats() -> dict[str, Any]:
    """Return job counts by status, for dashboards polling the result backend.

    Returns:
        Dict with ``jobs`` (count per status), ``active`` and ``generated_at``.
    """
    try:
        return _build_scheduler().stats()
    except Exception as exc:
        logger.error("scraping_stats: error", error=str(exc), exc_info=True)
        return {"error": str(exc)}
