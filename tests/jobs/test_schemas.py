"""Tests for the job submission and read-back schemas."""

from __future__ import annotations

import pydantic
import pytest

from content_harvest.core.schemas.jobs import ScrapeJobCreate, ScrapeJobRead
from content_harvest.jobs.models import JobStatus, JobType, ScrapeJob


class TestScrapeJobCreate:
    def test_minimal(self) -> None:
        spec = ScrapeJobCreate(type="page", target="https://example.com/")
        assert spec.type is JobType.PAGE
        assert spec.priority is None
        assert spec.options == {}

    def test_target_whitespace_stripped(self) -> None:
        spec = ScrapeJobCreate(type="content", target="  https://example.com/a  ")
        assert spec.target == "https://example.com/a"

    @pytest.mark.parametrize("target", [None, "", "   "])
    def test_target_required_for_url_jobs(self, target) -> None:
        with pytest.raises(pydantic.ValidationError, match="target is required"):
            ScrapeJobCreate(type="asset_discovery", target=target)

    @pytest.mark.parametrize("target", ["example.com", "mailto:a@example.com", "ftp://example.com/"])
    def test_rejects_non_http_urls(self, target) -> None:
        with pytest.raises(pydantic.ValidationError, match="Invalid URL"):
            ScrapeJobCreate(type="page", target=target)

    @pytest.mark.parametrize("priority", [-1, 10])
    def test_priority_bounds(self, priority) -> None:
        with pytest.raises(pydantic.ValidationError):
            ScrapeJobCreate(type="page", target="https://example.com/", priority=priority)

    def test_trend_monitoring_without_target(self) -> None:
        spec = ScrapeJobCreate(type="trend_monitoring", options={"keywords": ["ai"]})
        assert spec.target is None


class TestScrapeJobRead:
    def test_from_job(self) -> None:
        job = ScrapeJob(type=JobType.PAGE, target="https://example.com/")
        job.mark_running()
        job.mark_completed({"title": "Example"})

        read = ScrapeJobRead.model_validate(job)

        assert read.id == job.id
        assert read.status is JobStatus.COMPLETED
        assert read.result == {"title": "Example"}
        assert read.model_dump(mode="json")["status"] == "completed"
