"""Job execution strategies behind one contract.

``enqueue(spec) -> job_id``, ``status(job_id) -> ScrapeJob`` and
``cancel(job_id) -> bool`` behave the same under both strategies:

- :class:`CeleryJobRunner`: durable.  The job record is written first, then
  ``execute_scrape_job`` is sent to the ``scraping`` queue with the job's
  priority.  Transient failures are retried by the worker with exponential
  backoff.  Cancelling revokes the task without signalling the worker: a
  running extraction finishes and its result is discarded.
- :class:`DirectJobRunner`: in-process.  The job record is written and
  executed inline; a failure is terminal.

:func:`get_job_runner` picks one at startup from ``Settings.queue_mode``.
"""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from typing import Any, Union

import pydantic

from content_harvest.config.settings import Settings, get_settings
from content_harvest.core.event_bus import publish_job_update
from content_harvest.core.exceptions import ValidationError
from content_harvest.core.schemas.jobs import ScrapeJobCreate
from content_harvest.jobs.executor import JobExecutor
from content_harvest.jobs.models import CANCELLED_REASON, ScrapeJob, broker_priority
from content_harvest.jobs.store import JobStore
from content_harvest.jobs.targets import TrendStore

logger = logging.getLogger(__name__)

EXECUTE_TASK_NAME = "content_harvest.workers.tasks.execute_scrape_job"
SCRAPING_QUEUE = "scraping"

JobSpec = Union[ScrapeJobCreate, dict[str, Any]]


def build_job(spec: JobSpec, settings: Settings) -> ScrapeJob:
    """Validate *spec* and return a new pending :class:`ScrapeJob`.

    Raises:
        ValidationError: If the job type is unknown, the target URL is
            missing or malformed, or the priority is out of range.
    """
    if not isinstance(spec, ScrapeJobCreate):
        try:
            spec = ScrapeJobCreate.model_validate(spec)
        except pydantic.ValidationError as exc:
            first = exc.errors()[0]
            field = ".".join(str(part) for part in first.get("loc", ())) or None
            message = str(first.get("msg", exc)).removeprefix("Value error, ")
            raise ValidationError(message, field=field) from exc
    return ScrapeJob(
        type=spec.type,
        target=spec.target,
        priority=spec.priority if spec.priority is not None else settings.job_default_priority,
        options=dict(spec.options),
        user_id=spec.user_id,
        target_id=spec.target_id,
    )


class JobRunner(ABC):
    """Contract shared by the durable and direct strategies.

    Args:
        store: Job persistence.
        settings: Application settings.
    """

    def __init__(self, store: JobStore, settings: Settings | None = None) -> None:
        self.store = store
        self.settings = settings or get_settings()

    @abstractmethod
    async def enqueue(self, spec: JobSpec) -> str:
        """Create a job from *spec* and start or queue it; return its id."""

    async def status(self, job_id: str) -> ScrapeJob:
        """Return the stored job.

        Raises:
            JobNotFoundError: If *job_id* does not exist.
        """
        return self.store.get(job_id)

    @abstractmethod
    async def cancel(self, job_id: str) -> bool:
        """Cancel a pending or running job.

        Returns:
            ``True`` if the job was cancelled, ``False`` if it had already
            reached a terminal state.

        Raises:
            JobNotFoundError: If *job_id* does not exist.
        """

    def _create(self, spec: JobSpec) -> ScrapeJob:
        job = build_job(spec, self.settings)
        self.store.create(job)
        logger.info(
            "runner: created %s job %s (priority=%d)", job.type.value, job.id, job.priority
        )
        return job

    def _mark_cancelled(self, job_id: str) -> ScrapeJob | None:
        """Move the stored job to ``cancelled``; ``None`` if it is already terminal."""
        # Two reads at most: the job may move pending -> running in between.
        for _ in range(2):
            job = self.store.get(job_id)
            if job.is_terminal:
                return None
            observed = job.status
            job.mark_cancelled(CANCELLED_REASON)
            stored = self.store.update(
                job_id,
                expected_status=observed,
                status=job.status,
                error=job.error,
                result=None,
                completed_at=job.completed_at,
            )
            if stored is not None:
                logger.info("runner: job %s cancelled (was %s)", job_id, observed.value)
                publish_job_update(
                    self.settings.redis_url,
                    job_id,
                    stored.status.value,
                    progress=stored.progress,
                    message=CANCELLED_REASON,
                    user_id=stored.user_id,
                )
                return stored
        return None


class DirectJobRunner(JobRunner):
    """Executes jobs inline in the calling event loop.

    Args:
        store: Job persistence.
        settings: Application settings.
        executor: Shared executor; built from *store* when omitted.
    """

    def __init__(
        self,
        store: JobStore,
        settings: Settings | None = None,
        *,
        executor: JobExecutor | None = None,
    ) -> None:
        super().__init__(store, settings)
        self.executor = executor or JobExecutor(store, settings=self.settings)

    async def enqueue(self, spec: JobSpec) -> str:
        job = self._create(spec)
        await self.executor.execute(job.id)
        return job.id

    async def cancel(self, job_id: str) -> bool:
        return self._mark_cancelled(job_id) is not None


class CeleryJobRunner(JobRunner):
    """Dispatches jobs to the Celery ``scraping`` queue.

    Args:
        store: Job persistence shared with the workers.
        settings: Application settings.
        app: Celery application; defaults to
            :data:`content_harvest.workers.celery_app.celery_app`.
    """

    def __init__(self, store: JobStore, settings: Settings | None = None, *, app: Any = None) -> None:
        super().__init__(store, settings)
        if app is None:
            from content_harvest.workers.celery_app import celery_app  # noqa: PLC0415

            app = celery_app
        self.app = app

    async def enqueue(self, spec: JobSpec) -> str:
        job = self._create(spec)
        async_result = self.app.send_task(
            EXECUTE_TASK_NAME,
            kwargs={"job_id": job.id},
            queue=SCRAPING_QUEUE,
            priority=broker_priority(job.priority),
        )
        self.store.update(job.id, task_id=async_result.id)
        logger.info("runner: dispatched job %s as task %s", job.id, async_result.id)
        return job.id

    async def cancel(self, job_id: str) -> bool:
        job = self.store.get(job_id)
        if job.is_terminal:
            return False
        if job.task_id:
            try:
                self.app.control.revoke(job.task_id, terminate=False)
                logger.info("runner: revoked task %s for job %s", job.task_id, job_id)
            except Exception as exc:  # noqa: BLE001
                logger.warning("runner: failed to revoke task for job %s: %s", job_id, exc)
        return self._mark_cancelled(job_id) is not None


def broker_available(url: str, timeout: float = 2.0) -> bool:
    """Return ``True`` if the Redis broker at *url* answers ``PING``."""
    import redis as redis_lib  # noqa: PLC0415

    try:
        client = redis_lib.from_url(url, socket_connect_timeout=timeout, socket_timeout=timeout)
        try:
            return bool(client.ping())
        finally:
            client.close()
    except redis_lib.RedisError as exc:
        logger.warning("runner: broker %s unreachable: %s", url, exc)
        return False


def get_job_runner(
    settings: Settings | None = None,
    *,
    store: JobStore | None = None,
    trend_store: TrendStore | None = None,
) -> JobRunner:
    """Select the execution strategy once, from ``Settings.queue_mode``.

    ``auto`` pings the broker and falls back to in-process execution when
    it is unreachable.  *trend_store* is handed to the in-process executor
    so trend results feed the hourly sweep; Celery workers wire their own.
    """
    settings = settings or get_settings()
    if store is None:
        from content_harvest.jobs.store import SqlJobStore  # noqa: PLC0415

        store = SqlJobStore()

    mode = settings.queue_mode
    if mode == "auto":
        mode = "durable" if broker_available(settings.celery_broker_url) else "direct"
    logger.info("runner: using %s execution strategy", mode)
    if mode == "durable":
        return CeleryJobRunner(store, settings)
    return DirectJobRunner(
        store,
        settings,
        executor=JobExecutor(store, settings=settings, trend_store=trend_store),
    )
