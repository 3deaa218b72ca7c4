"""Unit tests for the ScrapeJob lifecycle state machine."""

from __future__ import annotations

import pytest

from content_harvest.core.exceptions import InvalidTransitionError
from content_harvest.jobs.models import (
    CANCELLED_REASON,
    TERMINAL_STATUSES,
    JobStatus,
    JobType,
    ScrapeJob,
    broker_priority,
    can_transition,
)


def _running() -> ScrapeJob:
    job = ScrapeJob(type=JobType.PAGE, target="https://example.com/")
    job.mark_running()
    return job


class TestTransitions:
    @pytest.mark.parametrize(
        "current,requested",
        [
            (JobStatus.PENDING, JobStatus.RUNNING),
            (JobStatus.PENDING, JobStatus.CANCELLED),
            (JobStatus.RUNNING, JobStatus.COMPLETED),
            (JobStatus.RUNNING, JobStatus.FAILED),
            (JobStatus.RUNNING, JobStatus.CANCELLED),
        ],
    )
    def test_allowed(self, current: JobStatus, requested: JobStatus) -> None:
        assert can_transition(current, requested) is True

    @pytest.mark.parametrize(
        "current,requested",
        [
            (JobStatus.PENDING, JobStatus.COMPLETED),
            (JobStatus.PENDING, JobStatus.FAILED),
            (JobStatus.RUNNING, JobStatus.PENDING),
            (JobStatus.COMPLETED, JobStatus.RUNNING),
            (JobStatus.FAILED, JobStatus.CANCELLED),
            (JobStatus.CANCELLED, JobStatus.RUNNING),
        ],
    )
    def test_forbidden(self, current: JobStatus, requested: JobStatus) -> None:
        assert can_transition(current, requested) is False

    def test_terminal_statuses_have_no_exit(self) -> None:
        for terminal in TERMINAL_STATUSES:
            assert not any(can_transition(terminal, s) for s in JobStatus)


class TestScrapeJob:
    def test_defaults(self) -> None:
        job = ScrapeJob(type=JobType.CONTENT, target="https://example.com/a")
        assert job.status is JobStatus.PENDING
        assert job.progress == 0
        assert job.priority == 5
        assert job.id
        assert job.is_terminal is False

    def test_ids_unique(self) -> None:
        assert ScrapeJob(type=JobType.PAGE).id != ScrapeJob(type=JobType.PAGE).id

    def test_mark_running(self) -> None:
        job = _running()
        assert job.status is JobStatus.RUNNING
        assert job.started_at is not None
        assert job.attempts == 1
        assert job.progress == 10

    def test_mark_completed(self) -> None:
        job = _running()
        job.mark_completed({"title": "x"})
        assert job.status is JobStatus.COMPLETED
        assert job.result == {"title": "x"}
        assert job.error is None
        assert job.progress == 100
        assert job.completed_at is not None
        assert job.is_terminal is True

    def test_mark_failed_drops_result(self) -> None:
        job = _running()
        job.mark_failed("boom")
        assert job.status is JobStatus.FAILED
        assert job.error == "boom"
        assert job.result is None

    def test_mark_failed_empty_message(self) -> None:
        job = _running()
        job.mark_failed("")
        assert job.error == "Unknown error"

    def test_cancel_pending(self) -> None:
        job = ScrapeJob(type=JobType.PAGE, target="https://example.com/")
        job.mark_cancelled()
        assert job.status is JobStatus.CANCELLED
        assert job.error == CANCELLED_REASON

    def test_complete_after_cancel_rejected(self) -> None:
        job = _running()
        job.mark_cancelled()
        with pytest.raises(InvalidTransitionError):
            job.mark_completed({"late": True})
        assert job.result is None

    def test_complete_from_pending_rejected(self) -> None:
        job = ScrapeJob(type=JobType.PAGE)
        with pytest.raises(InvalidTransitionError) as excinfo:
            job.mark_completed({})
        assert excinfo.value.current == "pending"
        assert excinfo.value.requested == "completed"


class TestProgress:
    def test_never_decreases(self) -> None:
        job = _running()
        job.update_progress(50)
        assert job.update_progress(30) == 50

    def test_clamped(self) -> None:
        job = _running()
        assert job.update_progress(250) == 100
        other = _running()
        assert other.update_progress(-5) == 10


class TestSerialisation:
    def test_round_trip(self) -> None:
        job = _running()
        job.options = {"download": True}
        job.mark_completed({"k": [1, 2]})
        restored = ScrapeJob.from_dict(job.to_dict())
        assert restored == job

    def test_to_dict_uses_plain_values(self) -> None:
        data = ScrapeJob(type=JobType.TREND_MONITORING).to_dict()
        assert data["type"] == "trend_monitoring"
        assert data["status"] == "pending"
        assert data["started_at"] is None


class TestBrokerPriority:
    @pytest.mark.parametrize("priority,expected", [(9, 0), (5, 4), (0, 9)])
    def test_inverted(self, priority: int, expected: int) -> None:
        assert broker_priority(priority) == expected

    def test_more_urgent_jobs_get_lower_steps(self) -> None:
        steps = [broker_priority(p) for p in range(10)]
        assert steps == sorted(steps, reverse=True)

    @pytest.mark.parametrize("priority,expected", [(-3, 9), (42, 0)])
    def test_out_of_range_clamped(self, priority: int, expected: int) -> None:
        assert broker_priority(priority) == expected
