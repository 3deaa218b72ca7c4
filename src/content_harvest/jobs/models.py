"""Scrape job domain model and lifecycle state machine.

Allowed transitions::

    pending ──► running ──► completed
       │           ├──────► failed
       │           └──────► cancelled
       └──────────────────► cancelled

No transition leaves a terminal state.  A terminal job carries exactly one
of ``result`` (completed) or ``error`` (failed, cancelled).  ``progress`` is
clamped to 0..100 and never decreases while the job runs.
"""

from __future__ import annotations

import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any

from content_harvest.core.exceptions import InvalidTransitionError

CANCELLED_REASON = "Job cancelled"

MAX_PRIORITY = 9


def broker_priority(priority: int) -> int:
    """Map a job priority (9 most urgent) onto the Redis transport's scale.

    Kombu's Redis transport drains priority step 0 first, so the order is
    inverted before a task is published.
    """
    return MAX_PRIORITY - max(0, min(MAX_PRIORITY, priority))


class JobType(str, Enum):
    """Closed set of job variants; each has exactly one registered extractor."""

    PAGE = "page"
    CONTENT = "content"
    ASSET_DISCOVERY = "asset_discovery"
    TREND_MONITORING = "trend_monitoring"


class JobStatus(str, Enum):
    """Lifecycle state of a :class:`ScrapeJob`."""

    PENDING = "pending"
    RUNNING = "running"
    COMPLETED = "completed"
    FAILED = "failed"
    CANCELLED = "cancelled"


TERMINAL_STATUSES: frozenset[JobStatus] = frozenset(
    {JobStatus.COMPLETED, JobStatus.FAILED, JobStatus.CANCELLED}
)

_TRANSITIONS: dict[JobStatus, frozenset[JobStatus]] = {
    JobStatus.PENDING: frozenset({JobStatus.RUNNING, JobStatus.CANCELLED}),
    JobStatus.RUNNING: frozenset(
        {JobStatus.COMPLETED, JobStatus.FAILED, JobStatus.CANCELLED}
    ),
    JobStatus.COMPLETED: frozenset(),
    JobStatus.FAILED: frozenset(),
    JobStatus.CANCELLED: frozenset(),
}


def can_transition(current: JobStatus, requested: JobStatus) -> bool:
    """Return ``True`` if *current* may move to *requested*."""
    return requested in _TRANSITIONS[current]


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _iso(value: datetime | None) -> str | None:
    return value.isoformat() if value is not None else None


def _parse_dt(value: Any) -> datetime | None:
    if value is None or isinstance(value, datetime):
        return value
    return datetime.fromisoformat(str(value))


@dataclass
class ScrapeJob:
    """One unit of scraping work and its eventual result or error.

    Attributes:
        type: Which extractor handles the job.
        target: URL (or ``None`` for trend monitoring).
        id: Opaque identifier; a UUID4 string unless supplied.
        status: Current lifecycle state.
        priority: Durable-queue priority, higher runs first (0..9).
        progress: Advisory completion percentage.
        options: Extractor-specific options.
        result: Extraction result, set only when completed.
        error: Human-readable failure or cancellation message.
        user_id: Owner, used for per-user notifications.
        target_id: Monitored-target id when scheduled by a sweep.
        attempts: Number of executions started so far.
        task_id: Celery task id when dispatched through the durable queue.
    """

    type: JobType
    target: str | None = None
    id: str = field(default_factory=lambda: str(uuid.uuid4()))
    status: JobStatus = JobStatus.PENDING
    priority: int = 5
    progress: int = 0
    options: dict[str, Any] = field(default_factory=dict)
    result: dict[str, Any] | None = None
    error: str | None = None
    user_id: str | None = None
    target_id: str | None = None
    attempts: int = 0
    task_id: str | None = None
    created_at: datetime = field(default_factory=_utcnow)
    started_at: datetime | None = None
    completed_at: datetime | None = None

    # ------------------------------------------------------------------
    # State machine
    # ------------------------------------------------------------------

    @property
    def is_terminal(self) -> bool:
        return self.status in TERMINAL_STATUSES

    def _transition(self, requested: JobStatus) -> None:
        if not can_transition(self.status, requested):
            raise InvalidTransitionError(self.id, self.status.value, requested.value)
        self.status = requested

    def mark_running(self) -> None:
        """pending → running; records ``started_at``, bumps ``attempts``, progress 10."""
        self._transition(JobStatus.RUNNING)
        self.started_at = _utcnow()
        self.attempts += 1
        self.update_progress(10)

    def mark_completed(self, result: dict[str, Any]) -> None:
        """running → completed with *result*; progress becomes 100."""
        self._transition(JobStatus.COMPLETED)
        self.result = result
        self.error = None
        self.progress = 100
        self.completed_at = _utcnow()

    def mark_failed(self, error: str) -> None:
        """running → failed with a human-readable *error*."""
        self._transition(JobStatus.FAILED)
        self.error = error or "Unknown error"
        self.result = None
        self.completed_at = _utcnow()

    def mark_cancelled(self, reason: str = CANCELLED_REASON) -> None:
        """pending/running → cancelled; any result is dropped."""
        self._transition(JobStatus.CANCELLED)
        self.error = reason or CANCELLED_REASON
        self.result = None
        self.completed_at = _utcnow()

    def update_progress(self, value: int) -> int:
        """Raise ``progress`` to *value* (clamped to 0..100); never lowers it."""
        clamped = max(0, min(100, int(value)))
        if clamped > self.progress:
            self.progress = clamped
        return self.progress

    # ------------------------------------------------------------------
    # Serialisation
    # ------------------------------------------------------------------

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "type": self.type.value,
            "target": self.target,
            "status": self.status.value,
            "priority": self.priority,
            "progress": self.progress,
            "options": self.options,
            "result": self.result,
            "error": self.error,
            "user_id": self.user_id,
            "target_id": self.target_id,
            "attempts": self.attempts,
            "task_id": self.task_id,
            "created_at": _iso(self.created_at),
            "started_at": _iso(self.started_at),
            "completed_at": _iso(self.completed_at),
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> ScrapeJob:
        """Rebuild a job from :meth:`to_dict` output (or a store row dict)."""
        return cls(
            id=str(data["id"]),
            type=JobType(data["type"]),
            target=data.get("target"),
            status=JobStatus(data.get("status", JobStatus.PENDING.value)),
            priority=int(data.get("priority", 5)),
            progress=int(data.get("progress", 0)),
            options=dict(data.get("options") or {}),
            result=data.get("result"),
            error=data.get("error"),
            user_id=data.get("user_id"),
            target_id=data.get("target_id"),
            attempts=int(data.get("attempts", 0)),
            task_id=data.get("task_id"),
            created_at=_parse_dt(data.get("created_at")) or _utcnow(),
            started_at=_parse_dt(data.get("started_at")),
            completed_at=_parse_dt(data.get("completed_at")),
        )
