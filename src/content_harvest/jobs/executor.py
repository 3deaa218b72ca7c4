"""Runs one scrape job to a terminal state.

:class:`JobExecutor` is shared by both execution strategies: the direct
runner awaits it inline and the Celery task drives it through
``asyncio.run()``.  Each step is a conditional store update so a job
cancelled mid-flight is never resurrected:

1. claim: ``pending → running`` (progress 10); anything else is skipped.
2. dispatch to the registered extractor; progress reports are persisted.
3. optional text-analysis enrichment for content jobs (best-effort).
4. progress 90, then ``running → completed`` or ``running → failed``.
   When the job is no longer running (cancelled meanwhile) the result is
   discarded.
5. notification on completed or failed.

Errors listed in ``retry_on`` are not terminal: the job is put back to
``pending`` and the exception propagates so the caller can retry.
"""

from __future__ import annotations

import inspect
import logging
from collections.abc import Awaitable, Callable
from typing import Any, Union

import structlog

from content_harvest.config.settings import Settings, get_settings
from content_harvest.core.event_bus import publish_job_update
from content_harvest.core.logging_config import job_id_var
from content_harvest.extractors.base import Extractor
from content_harvest.jobs.models import JobStatus, JobType, ScrapeJob
from content_harvest.jobs.store import JobStore
from content_harvest.jobs.targets import TrendStore, observations_from_result

logger = logging.getLogger(__name__)
log = structlog.get_logger(__name__)

TextAnalyzer = Callable[[str], Union[dict[str, Any], Awaitable[dict[str, Any]]]]
ExtractorFactory = Callable[[JobType], Extractor]
Notifier = Callable[[ScrapeJob, str], None]

PROGRESS_PERSISTING = 90


def error_message(exc: BaseException) -> str:
    """Human-readable failure text stored on the job."""
    return str(exc) or exc.__class__.__name__


class JobExecutor:
    """Executes stored jobs by id.

    Args:
        store: Job persistence.
        settings: Application settings.
        extractor_factory: Builds the extractor for a job type.  Defaults to
            the registry lookup (after :func:`autodiscover`).
        text_analyzer: Optional ``(text) -> dict`` collaborator (sync or
            async) run over the clean text of content jobs; its output is
            attached as ``result["analysis"]``.
        trend_store: When given, trend-monitoring results are recorded so
            the hourly sweep can pick the hottest keywords.
        notifier: Called with the job and a message when it completes or
            fails.  Defaults to publishing on the Redis event bus.
    """

    def __init__(
        self,
        store: JobStore,
        *,
        settings: Settings | None = None,
        extractor_factory: ExtractorFactory | None = None,
        text_analyzer: TextAnalyzer | None = None,
        trend_store: TrendStore | None = None,
        notifier: Notifier | None = None,
    ) -> None:
        self.store = store
        self.settings = settings or get_settings()
        self._extractor_factory = extractor_factory or self._registry_extractor
        self._text_analyzer = text_analyzer
        self._trend_store = trend_store
        self._notifier = notifier or self._publish

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    async def execute(
        self,
        job_id: str,
        *,
        retry_on: tuple[type[Exception], ...] = (),
    ) -> ScrapeJob | None:
        """Run the job *job_id* to a terminal state.

        Args:
            job_id: Stored job identifier.
            retry_on: Exception types that reset the job to ``pending`` and
                propagate instead of failing it.

        Returns:
            The job as stored after execution, or ``None`` when it was not
            pending (already picked up, finished or cancelled).
        """
        job = self.store.get(job_id)
        if job.status is not JobStatus.PENDING:
            logger.info("executor: job %s is %s, skipping", job_id, job.status.value)
            return None

        token = job_id_var.set(job_id)
        try:
            job.mark_running()
            claimed = self.store.update(
                job_id,
                expected_status=JobStatus.PENDING,
                status=job.status,
                started_at=job.started_at,
                attempts=job.attempts,
                progress=job.progress,
                error=None,
            )
            if claimed is None:
                logger.info("executor: job %s was claimed or cancelled concurrently", job_id)
                return None
            logger.info(
                "executor: running %s job %s (attempt %d)", job.type.value, job_id, job.attempts
            )
            try:
                result = await self._run_extractor(job)
            except retry_on as exc:
                self._reset_for_retry(job, exc)
                raise
            except Exception as exc:  # noqa: BLE001
                return self._finish_failed(job, exc)
            return await self._finish_completed(job, result)
        finally:
            job_id_var.reset(token)

    # ------------------------------------------------------------------
    # Steps
    # ------------------------------------------------------------------

    def _registry_extractor(self, job_type: JobType) -> Extractor:
        from content_harvest.extractors.registry import autodiscover, get_extractor  # noqa: PLC0415

        autodiscover()
        return get_extractor(job_type)(self.settings)

    async def _run_extractor(self, job: ScrapeJob) -> dict[str, Any]:
        extractor = self._extractor_factory(job.type)

        def on_progress(value: int) -> None:
            before = job.progress
            if job.update_progress(value) != before:
                self.store.update(job.id, expected_status=JobStatus.RUNNING, progress=job.progress)

        result = await extractor.extract(job.target, job.options, on_progress=on_progress)
        if job.type is JobType.CONTENT and self._text_analyzer is not None:
            await self._enrich(job, result)
        return result

    async def _enrich(self, job: ScrapeJob, result: dict[str, Any]) -> None:
        text = result.get("clean_content") or result.get("content") or ""
        if not text:
            return
        try:
            analysis = self._text_analyzer(text)
            if inspect.isawaitable(analysis):
                analysis = await analysis
            result["analysis"] = analysis
        except Exception as exc:  # noqa: BLE001
            logger.warning("executor: text analysis failed for job %s: %s", job.id, exc)

    async def _finish_completed(self, job: ScrapeJob, result: dict[str, Any]) -> ScrapeJob | None:
        job.update_progress(PROGRESS_PERSISTING)
        current = self.store.update(
            job.id, expected_status=JobStatus.RUNNING, progress=job.progress
        )
        if current is None:
            logger.info("executor: job %s cancelled while running, discarding result", job.id)
            return self.store.find_by_id(job.id)

        job.mark_completed(result)
        stored = self.store.update(
            job.id,
            expected_status=JobStatus.RUNNING,
            status=job.status,
            result=job.result,
            error=None,
            progress=job.progress,
            completed_at=job.completed_at,
        )
        if stored is None:
            logger.info("executor: job %s cancelled while running, discarding result", job.id)
            return self.store.find_by_id(job.id)

        logger.info("executor: job %s completed", job.id)
        if job.type is JobType.TREND_MONITORING:
            self._record_trends(job.id, result)
        self._notify(stored, "Scraping completed successfully")
        return stored

    def _finish_failed(self, job: ScrapeJob, exc: Exception) -> ScrapeJob | None:
        message = error_message(exc)
        logger.error("executor: job %s failed: %s", job.id, message)
        job.mark_failed(message)
        stored = self.store.update(
            job.id,
            expected_status=JobStatus.RUNNING,
            status=job.status,
            error=job.error,
            result=None,
            completed_at=job.completed_at,
        )
        if stored is None:
            return self.store.find_by_id(job.id)
        self._notify(stored, f"Scraping failed: {message}")
        return stored

    def _reset_for_retry(self, job: ScrapeJob, exc: Exception) -> None:
        message = error_message(exc)
        log.warning(
            "executor.retry_scheduled",
            job_id=job.id,
            attempt=job.attempts,
            error=message,
        )
        self.store.update(
            job.id,
            expected_status=JobStatus.RUNNING,
            status=JobStatus.PENDING,
            progress=0,
            error=message,
        )

    def _record_trends(self, job_id: str, result: dict[str, Any]) -> None:
        if self._trend_store is None:
            return
        try:
            written = self._trend_store.record(observations_from_result(result))
            logger.debug("executor: recorded %d trend observations for job %s", written, job_id)
        except Exception as exc:  # noqa: BLE001
            logger.warning("executor: failed to record trends for job %s: %s", job_id, exc)

    # ------------------------------------------------------------------
    # Notification
    # ------------------------------------------------------------------

    def _notify(self, job: ScrapeJob, message: str) -> None:
        try:
            self._notifier(job, message)
        except Exception as exc:  # noqa: BLE001
            logger.warning("executor: notification failed for job %s: %s", job.id, exc)

    def _publish(self, job: ScrapeJob, message: str) -> None:
        publish_job_update(
            self.settings.redis_url,
            job.id,
            job.status.value,
            progress=job.progress,
            message=message,
            user_id=job.user_id,
        )
