"""Job persistence.

:class:`JobStore` is the keyed CRUD contract both execution strategies use.
Two implementations:

- :class:`SqlJobStore`: synchronous SQLAlchemy sessions against the
  ``scrape_jobs`` table (Celery workers and the direct runner in production).
- :class:`InMemoryJobStore`: a dict guarded by a lock (tests and broker-less
  single-process deployments).

``update`` accepts an optional ``expected_status``: the patch is applied
only when the stored status still equals it, which lets the executor drop a
late result for a job that was cancelled while it ran.  No multi-row
transactions are assumed.
"""

from __future__ import annotations

import copy
import logging
import threading
from abc import ABC, abstractmethod
from collections.abc import Callable
from contextlib import AbstractContextManager
from dataclasses import fields
from datetime import datetime, timezone
from typing import Any

import sqlalchemy as sa
from sqlalchemy.orm import Session

from content_harvest.core.exceptions import JobNotFoundError, ValidationError
from content_harvest.core.models.jobs import ScrapeJobRecord
from content_harvest.jobs.models import JobStatus, JobType, ScrapeJob

logger = logging.getLogger(__name__)

SessionFactory = Callable[[], AbstractContextManager[Session]]

_JOB_FIELDS = frozenset(f.name for f in fields(ScrapeJob))
_IMMUTABLE_FIELDS = frozenset({"id", "type", "created_at"})


def _check_patch(patch: dict[str, Any]) -> None:
    unknown = set(patch) - _JOB_FIELDS
    if unknown:
        raise ValidationError(f"Unknown job fields: {sorted(unknown)}", field=sorted(unknown)[0])
    frozen = set(patch) & _IMMUTABLE_FIELDS
    if frozen:
        raise ValidationError(f"Immutable job fields: {sorted(frozen)}", field=sorted(frozen)[0])


def _as_utc(value: datetime | None) -> datetime | None:
    if value is not None and value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


class JobStore(ABC):
    """Keyed CRUD over :class:`ScrapeJob` records."""

    @abstractmethod
    def create(self, job: ScrapeJob) -> ScrapeJob:
        """Persist a new job and return it."""

    @abstractmethod
    def update(
        self,
        job_id: str,
        *,
        expected_status: JobStatus | None = None,
        **patch: Any,
    ) -> ScrapeJob | None:
        """Apply *patch* (``ScrapeJob`` field names) and return the updated job.

        Returns:
            The updated job, or ``None`` when *expected_status* is given and
            the stored status differs (nothing is written).

        Raises:
            JobNotFoundError: If *job_id* does not exist.
            ValidationError: If *patch* names an unknown or immutable field.
        """

    @abstractmethod
    def find_by_id(self, job_id: str) -> ScrapeJob | None: ...

    @abstractmethod
    def find_by_status(self, status: JobStatus, limit: int = 100) -> list[ScrapeJob]:
        """Jobs in *status*, highest priority first, then oldest first."""

    @abstractmethod
    def has_active_job_for_target(self, target_id: str) -> bool:
        """``True`` if a pending or running job exists for monitored target *target_id*."""

    @abstractmethod
    def delete_completed_before(self, cutoff: datetime) -> int:
        """Delete completed jobs finished before *cutoff*; return how many."""

    @abstractmethod
    def find_stalled(self, cutoff: datetime) -> list[ScrapeJob]:
        """Running jobs started before *cutoff*."""

    @abstractmethod
    def count_by_status(self) -> dict[str, int]:
        """Job counts keyed by every status value (zero-filled)."""

    def get(self, job_id: str) -> ScrapeJob:
        """Like :meth:`find_by_id` but raises ``JobNotFoundError``."""
        job = self.find_by_id(job_id)
        if job is None:
            raise JobNotFoundError(job_id)
        return job


# ---------------------------------------------------------------------------
# In-memory
# ---------------------------------------------------------------------------


class InMemoryJobStore(JobStore):
    """Process-local store; returns copies so callers never alias stored state."""

    def __init__(self) -> None:
        self._jobs: dict[str, ScrapeJob] = {}
        self._lock = threading.Lock()

    def create(self, job: ScrapeJob) -> ScrapeJob:
        with self._lock:
            if job.id in self._jobs:
                raise ValidationError(f"Job {job.id} already exists", field="id")
            self._jobs[job.id] = copy.deepcopy(job)
        return copy.deepcopy(job)

    def update(
        self,
        job_id: str,
        *,
        expected_status: JobStatus | None = None,
        **patch: Any,
    ) -> ScrapeJob | None:
        _check_patch(patch)
        with self._lock:
            job = self._jobs.get(job_id)
            if job is None:
                raise JobNotFoundError(job_id)
            if expected_status is not None and job.status != expected_status:
                return None
            for name, value in patch.items():
                setattr(job, name, copy.deepcopy(value))
            return copy.deepcopy(job)

    def find_by_id(self, job_id: str) -> ScrapeJob | None:
        with self._lock:
            job = self._jobs.get(job_id)
            return copy.deepcopy(job) if job is not None else None

    def find_by_status(self, status: JobStatus, limit: int = 100) -> list[ScrapeJob]:
        with self._lock:
            matches = [job for job in self._jobs.values() if job.status == status]
        matches.sort(key=lambda j: (-j.priority, j.created_at))
        return [copy.deepcopy(job) for job in matches[:limit]]

    def has_active_job_for_target(self, target_id: str) -> bool:
        active = {JobStatus.PENDING, JobStatus.RUNNING}
        with self._lock:
            return any(
                job.target_id == target_id and job.status in active for job in self._jobs.values()
            )

    def delete_completed_before(self, cutoff: datetime) -> int:
        with self._lock:
            doomed = [
                job_id
                for job_id, job in self._jobs.items()
                if job.status == JobStatus.COMPLETED
                and (job.completed_at or job.created_at) < cutoff
            ]
            for job_id in doomed:
                del self._jobs[job_id]
        return len(doomed)

    def find_stalled(self, cutoff: datetime) -> list[ScrapeJob]:
        with self._lock:
            return [
                copy.deepcopy(job)
                for job in self._jobs.values()
                if job.status == JobStatus.RUNNING
                and job.started_at is not None
                and job.started_at < cutoff
            ]

    def count_by_status(self) -> dict[str, int]:
        counts = {status.value: 0 for status in JobStatus}
        with self._lock:
            for job in self._jobs.values():
                counts[job.status.value] += 1
        return counts


# ---------------------------------------------------------------------------
# SQLAlchemy
# ---------------------------------------------------------------------------


def record_to_job(record: ScrapeJobRecord) -> ScrapeJob:
    """Convert an ORM row into a :class:`ScrapeJob`."""
    return ScrapeJob(
        id=str(record.id),
        type=JobType(record.type),
        target=record.target,
        status=JobStatus(record.status),
        priority=record.priority,
        progress=record.progress,
        options=dict(record.options or {}),
        result=record.result,
        error=record.error_message,
        user_id=record.user_id,
        target_id=str(record.target_id) if record.target_id else None,
        attempts=record.attempts,
        task_id=record.task_id,
        created_at=_as_utc(record.created_at) or datetime.now(timezone.utc),
        started_at=_as_utc(record.started_at),
        completed_at=_as_utc(record.completed_at),
    )


def _to_columns(patch: dict[str, Any]) -> dict[str, Any]:
    values: dict[str, Any] = {}
    for name, value in patch.items():
        if name == "error":
            values["error_message"] = value
        elif name in ("status", "type") and value is not None:
            values[name] = value.value if hasattr(value, "value") else value
        else:
            values[name] = value
    return values


class SqlJobStore(JobStore):
    """``scrape_jobs`` table access through synchronous sessions.

    Args:
        session_factory: Zero-argument callable returning a context manager
            that yields a :class:`~sqlalchemy.orm.Session`.  Defaults to
            :func:`content_harvest.core.database.get_sync_session`.
    """

    def __init__(self, session_factory: SessionFactory | None = None) -> None:
        if session_factory is None:
            from content_harvest.core.database import get_sync_session  # noqa: PLC0415

            session_factory = get_sync_session
        self._session_factory = session_factory

    def create(self, job: ScrapeJob) -> ScrapeJob:
        with self._session_factory() as session:
            session.add(
                ScrapeJobRecord(
                    id=job.id,
                    type=job.type.value,
                    target=job.target,
                    status=job.status.value,
                    priority=job.priority,
                    progress=job.progress,
                    options=job.options,
                    result=job.result,
                    error_message=job.error,
                    user_id=job.user_id,
                    target_id=job.target_id,
                    attempts=job.attempts,
                    task_id=job.task_id,
                    created_at=job.created_at,
                    started_at=job.started_at,
                    completed_at=job.completed_at,
                )
            )
            session.commit()
        logger.debug("job_store: created job %s (%s)", job.id, job.type.value)
        return job

    def update(
        self,
        job_id: str,
        *,
        expected_status: JobStatus | None = None,
        **patch: Any,
    ) -> ScrapeJob | None:
        _check_patch(patch)
        with self._session_factory() as session:
            stmt = sa.update(ScrapeJobRecord).where(ScrapeJobRecord.id == job_id)
            if expected_status is not None:
                stmt = stmt.where(ScrapeJobRecord.status == expected_status.value)
            if patch:
                result = session.execute(stmt.values(**_to_columns(patch)))
                session.commit()
                if result.rowcount == 0:
                    if session.get(ScrapeJobRecord, job_id) is None:
                        raise JobNotFoundError(job_id)
                    return None
            record = session.get(ScrapeJobRecord, job_id, populate_existing=True)
            if record is None:
                raise JobNotFoundError(job_id)
            if expected_status is not None and record.status != expected_status.value and not patch:
                return None
            return record_to_job(record)

    def find_by_id(self, job_id: str) -> ScrapeJob | None:
        with self._session_factory() as session:
            record = session.get(ScrapeJobRecord, job_id)
            return record_to_job(record) if record is not None else None

    def find_by_status(self, status: JobStatus, limit: int = 100) -> list[ScrapeJob]:
        with self._session_factory() as session:
            rows = session.scalars(
                sa.select(ScrapeJobRecord)
                .where(ScrapeJobRecord.status == status.value)
                .order_by(ScrapeJobRecord.priority.desc(), ScrapeJobRecord.created_at.asc())
                .limit(limit)
            ).all()
            return [record_to_job(row) for row in rows]

    def has_active_job_for_target(self, target_id: str) -> bool:
        with self._session_factory() as session:
            found = session.scalar(
                sa.select(ScrapeJobRecord.id)
                .where(
                    ScrapeJobRecord.target_id == target_id,
                    ScrapeJobRecord.status.in_(
                        [JobStatus.PENDING.value, JobStatus.RUNNING.value]
                    ),
                )
                .limit(1)
            )
            return found is not None

    def delete_completed_before(self, cutoff: datetime) -> int:
        with self._session_factory() as session:
            result = session.execute(
                sa.delete(ScrapeJobRecord).where(
                    ScrapeJobRecord.status == JobStatus.COMPLETED.value,
                    sa.func.coalesce(ScrapeJobRecord.completed_at, ScrapeJobRecord.created_at)
                    < cutoff,
                )
            )
            session.commit()
            return result.rowcount or 0

    def find_stalled(self, cutoff: datetime) -> list[ScrapeJob]:
        with self._session_factory() as session:
            rows = session.scalars(
                sa.select(ScrapeJobRecord).where(
                    ScrapeJobRecord.status == JobStatus.RUNNING.value,
                    ScrapeJobRecord.started_at < cutoff,
                )
            ).all()
            return [record_to_job(row) for row in rows]

    def count_by_status(self) -> dict[str, int]:
        counts = {status.value: 0 for status in JobStatus}
        with self._session_factory() as session:
            rows = session.execute(
                sa.select(ScrapeJobRecord.status, sa.func.count()).group_by(ScrapeJobRecord.status)
            ).all()
        for status, count in rows:
            counts[status] = count
        return counts
