"""Unit tests for RetentionService.

Tests cover:
- enforce_job_retention() deletes completed jobs older than the threshold
- enforce_job_retention() keeps recent, failed and cancelled jobs
- enforce_job_retention() falls back to created_at without completed_at
- enforce_job_retention() logs the deletion with audit fields
- purge_files() removes stale downloads recursively
"""

from __future__ import annotations

import logging
import os
import time
from datetime import datetime, timedelta, timezone
from unittest.mock import MagicMock

from content_harvest.core.retention_service import RetentionService
from content_harvest.jobs.models import JobStatus, JobType, ScrapeJob
from content_harvest.jobs.store import InMemoryJobStore

NOW = datetime(2024, 6, 1, 1, 0, tzinfo=timezone.utc)


def _completed(store: InMemoryJobStore, days_ago: int, status=JobStatus.COMPLETED) -> ScrapeJob:
    return store.create(
        ScrapeJob(
            type=JobType.PAGE,
            target="https://example.com/",
            status=status,
            completed_at=NOW - timedelta(days=days_ago),
        )
    )


class TestEnforceJobRetention:
    def test_deletes_only_old_completed_jobs(self) -> None:
        store = InMemoryJobStore()
        old = _completed(store, 31)
        recent = _completed(store, 29)
        failed = _completed(store, 90, status=JobStatus.FAILED)
        cancelled = _completed(store, 90, status=JobStatus.CANCELLED)

        deleted = RetentionService().enforce_job_retention(store, 30, now=NOW)

        assert deleted == 1
        assert store.find_by_id(old.id) is None
        for kept in (recent, failed, cancelled):
            assert store.find_by_id(kept.id) is not None

    def test_falls_back_to_created_at(self) -> None:
        store = InMemoryJobStore()
        job = store.create(
            ScrapeJob(
                type=JobType.PAGE,
                status=JobStatus.COMPLETED,
                created_at=NOW - timedelta(days=40),
            )
        )
        assert RetentionService().enforce_job_retention(store, 30, now=NOW) == 1
        assert store.find_by_id(job.id) is None

    def test_empty_store(self) -> None:
        assert RetentionService().enforce_job_retention(InMemoryJobStore(), 30, now=NOW) == 0

    def test_passes_threshold_to_store(self) -> None:
        store = MagicMock()
        store.delete_completed_before.return_value = 4

        assert RetentionService().enforce_job_retention(store, 7, now=NOW) == 4
        store.delete_completed_before.assert_called_once_with(NOW - timedelta(days=7))

    def test_logs_audit_fields(self, caplog) -> None:
        with caplog.at_level(logging.INFO, logger="content_harvest.core.retention_service"):
            RetentionService().enforce_job_retention(InMemoryJobStore(), 30, now=NOW)

        [record] = [r for r in caplog.records if r.message == "job_retention_enforcement_complete"]
        assert record.retention_days == 30
        assert record.jobs_deleted == 0
        assert record.threshold_date == (NOW - timedelta(days=30)).isoformat()


class TestPurgeFiles:
    def test_removes_stale_files_recursively(self, tmp_path) -> None:
        nested = tmp_path / "images" / "example_com"
        nested.mkdir(parents=True)
        stale = nested / "old.jpg"
        fresh = tmp_path / "new.json"
        stale.write_bytes(b"x")
        fresh.write_text("{}")
        old = time.time() - 8 * 86_400
        os.utime(stale, (old, old))

        assert RetentionService().purge_files(tmp_path, 7) == 1
        assert not stale.exists()
        assert fresh.exists()
        assert nested.is_dir()

    def test_missing_directory(self, tmp_path) -> None:
        assert RetentionService().purge_files(tmp_path / "absent", 7) == 0
