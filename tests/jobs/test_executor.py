"""Tests for JobExecutor: claim, dispatch, enrichment, completion, failure, retry."""

from __future__ import annotations

from typing import Any

import pytest

from content_harvest.core.exceptions import NavigationError, RobotsDisallowedError
from content_harvest.core.logging_config import job_id_var
from content_harvest.extractors.base import Extractor
from content_harvest.jobs.executor import JobExecutor, error_message
from content_harvest.jobs.models import JobStatus, JobType, ScrapeJob
from content_harvest.jobs.targets import InMemoryTrendStore


class StubExtractor(Extractor):
    """Returns a canned result (or raises) and records what it was asked."""

    job_type = JobType.PAGE

    def __init__(self, settings, *, result=None, error=None, during=None) -> None:
        super().__init__(settings)
        self.result = result if result is not None else {"url": "https://example.com/"}
        self.error = error
        self.during = during
        self.calls: list[tuple[Any, Any]] = []
        self.seen_job_ids: list[str | None] = []

    async def extract(self, target, options=None, *, on_progress=None) -> dict[str, Any]:
        self.calls.append((target, options))
        self.seen_job_ids.append(job_id_var.get())
        self.report(on_progress, 20)
        if self.during is not None:
            self.during()
        self.report(on_progress, 80)
        if self.error is not None:
            raise self.error
        return dict(self.result)


class Notifications(list):
    def __call__(self, job: ScrapeJob, message: str) -> None:
        self.append((job.id, job.status, message))


@pytest.fixture
def notifications() -> Notifications:
    return Notifications()


def _executor(store, settings, extractor, notifications, **kwargs) -> JobExecutor:
    return JobExecutor(
        store,
        settings=settings,
        extractor_factory=lambda _job_type: extractor,
        notifier=notifications,
        **kwargs,
    )


def _pending(store, job_type=JobType.PAGE, **kwargs) -> ScrapeJob:
    return store.create(ScrapeJob(type=job_type, target="https://example.com/", **kwargs))


@pytest.mark.asyncio
class TestExecute:
    async def test_completes_job(self, job_store, settings, notifications) -> None:
        job = _pending(job_store, options={"wait_for_selector": "main"})
        extractor = StubExtractor(settings, result={"title": "Example"})

        done = await _executor(job_store, settings, extractor, notifications).execute(job.id)

        assert done is not None
        assert done.status is JobStatus.COMPLETED
        assert done.result == {"title": "Example"}
        assert done.progress == 100
        assert done.attempts == 1
        assert done.started_at is not None
        assert done.completed_at is not None
        assert extractor.calls == [("https://example.com/", {"wait_for_selector": "main"})]
        assert notifications == [(job.id, JobStatus.COMPLETED, "Scraping completed successfully")]

    async def test_job_id_bound_while_running(self, job_store, settings, notifications) -> None:
        job = _pending(job_store)
        extractor = StubExtractor(settings)
        await _executor(job_store, settings, extractor, notifications).execute(job.id)
        assert extractor.seen_job_ids == [job.id]
        assert job_id_var.get() is None

    async def test_progress_persisted(self, job_store, settings, notifications) -> None:
        job = _pending(job_store)
        seen: list[int] = []

        def snapshot() -> None:
            seen.append(job_store.get(job.id).progress)

        extractor = StubExtractor(settings, during=snapshot)
        await _executor(job_store, settings, extractor, notifications).execute(job.id)
        assert seen == [20]

    async def test_failure_marks_failed(self, job_store, settings, notifications) -> None:
        job = _pending(job_store)
        extractor = StubExtractor(
            settings,
            error=NavigationError(
                "Failed to load page: net::ERR_NAME_NOT_RESOLVED", url="https://example.com/"
            ),
        )

        done = await _executor(job_store, settings, extractor, notifications).execute(job.id)

        assert done.status is JobStatus.FAILED
        assert "ERR_NAME_NOT_RESOLVED" in done.error
        assert done.result is None
        assert notifications[0][1] is JobStatus.FAILED
        assert notifications[0][2].startswith("Scraping failed: ")

    async def test_robots_refusal_is_terminal_even_with_retry(
        self, job_store, settings, notifications
    ) -> None:
        job = _pending(job_store)
        extractor = StubExtractor(settings, error=RobotsDisallowedError("https://example.com/"))
        executor = _executor(job_store, settings, extractor, notifications)

        done = await executor.execute(job.id, retry_on=(NavigationError,))

        assert done.status is JobStatus.FAILED
        assert "robots.txt" in done.error

    async def test_retryable_error_resets_to_pending(
        self, job_store, settings, notifications
    ) -> None:
        job = _pending(job_store)
        extractor = StubExtractor(settings, error=NavigationError("timeout", url="https://example.com/"))
        executor = _executor(job_store, settings, extractor, notifications)

        with pytest.raises(NavigationError):
            await executor.execute(job.id, retry_on=(NavigationError,))

        stored = job_store.get(job.id)
        assert stored.status is JobStatus.PENDING
        assert stored.progress == 0
        assert stored.error == "timeout"
        assert stored.attempts == 1
        assert notifications == []

        extractor.error = None
        done = await executor.execute(job.id, retry_on=(NavigationError,))
        assert done.status is JobStatus.COMPLETED
        assert done.attempts == 2
        assert done.error is None

    async def test_non_pending_job_skipped(self, job_store, settings, notifications) -> None:
        job = _pending(job_store, status=JobStatus.CANCELLED)
        extractor = StubExtractor(settings)
        assert await _executor(job_store, settings, extractor, notifications).execute(job.id) is None
        assert extractor.calls == []

    async def test_cancelled_mid_flight_discards_result(
        self, job_store, settings, notifications
    ) -> None:
        job = _pending(job_store)

        def cancel() -> None:
            job_store.update(job.id, status=JobStatus.CANCELLED, error="Job cancelled")

        extractor = StubExtractor(settings, result={"title": "late"}, during=cancel)
        done = await _executor(job_store, settings, extractor, notifications).execute(job.id)

        assert done.status is JobStatus.CANCELLED
        assert done.result is None
        assert job_store.get(job.id).status is JobStatus.CANCELLED
        assert notifications == []

    async def test_notifier_failure_does_not_fail_job(self, job_store, settings) -> None:
        job = _pending(job_store)

        def broken(_job: ScrapeJob, _message: str) -> None:
            raise ConnectionError("redis down")

        executor = JobExecutor(
            job_store,
            settings=settings,
            extractor_factory=lambda _t: StubExtractor(settings),
            notifier=broken,
        )
        done = await executor.execute(job.id)
        assert done.status is JobStatus.COMPLETED


@pytest.mark.asyncio
class TestEnrichment:
    async def test_content_analysis_attached(self, job_store, settings, notifications) -> None:
        job = _pending(job_store, job_type=JobType.CONTENT)
        extractor = StubExtractor(settings, result={"clean_content": "some article text"})

        async def analyze(text: str) -> dict[str, Any]:
            return {"words": len(text.split())}

        executor = _executor(job_store, settings, extractor, notifications, text_analyzer=analyze)
        done = await executor.execute(job.id)
        assert done.result["analysis"] == {"words": 3}

    async def test_analysis_failure_ignored(self, job_store, settings, notifications) -> None:
        job = _pending(job_store, job_type=JobType.CONTENT)
        extractor = StubExtractor(settings, result={"clean_content": "text"})

        def analyze(_text: str) -> dict[str, Any]:
            raise RuntimeError("model unavailable")

        executor = _executor(job_store, settings, extractor, notifications, text_analyzer=analyze)
        done = await executor.execute(job.id)
        assert done.status is JobStatus.COMPLETED
        assert "analysis" not in done.result

    async def test_analysis_only_for_content_jobs(
        self, job_store, settings, notifications
    ) -> None:
        job = _pending(job_store)
        calls: list[str] = []
        extractor = StubExtractor(settings, result={"content": "page text"})
        executor = _executor(
            job_store, settings, extractor, notifications, text_analyzer=calls.append
        )
        await executor.execute(job.id)
        assert calls == []

    async def test_trend_results_recorded(self, job_store, settings, notifications) -> None:
        job = job_store.create(ScrapeJob(type=JobType.TREND_MONITORING))
        trends = InMemoryTrendStore()
        extractor = StubExtractor(
            settings,
            result={
                "trends": [
                    {"keyword": "ai", "source": "google_trends", "trend_score": 24.0},
                    {"keyword": "zero", "source": "twitter", "trend_score": 0},
                ]
            },
        )
        executor = _executor(job_store, settings, extractor, notifications, trend_store=trends)
        await executor.execute(job.id)
        assert [(o.keyword, o.trend_score) for o in trends.observations] == [("ai", 24.0)]
        assert job_store.get(job.id).status is JobStatus.COMPLETED


class TestErrorMessage:
    def test_uses_text(self) -> None:
        assert error_message(ValueError("bad")) == "bad"

    def test_falls_back_to_class_name(self) -> None:
        assert error_message(TimeoutError()) == "TimeoutError"
