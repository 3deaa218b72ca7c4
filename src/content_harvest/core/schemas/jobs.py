"""Pydantic schemas for scrape job submission and read-back.

``ScrapeJobCreate`` is the job specification accepted by
:meth:`content_harvest.jobs.runner.JobRunner.enqueue`; ``ScrapeJobRead`` is
the serialisable view of a stored job.
"""

from __future__ import annotations

from datetime import datetime
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

from content_harvest.jobs.models import JobStatus, JobType
from content_harvest.scraper.urls import is_valid_url


class ScrapeJobCreate(BaseModel):
    """Payload for enqueueing a scrape job.

    Attributes:
        type: Extractor to run.
        target: Page URL.  Required for every type except
            ``trend_monitoring``.
        priority: Durable-queue priority, 0 (lowest) to 9 (highest).  When
            omitted the runner applies ``Settings.job_default_priority``.
        options: Extractor-specific options, passed through unchanged.
        user_id: Owner notified on completion or failure.
        target_id: Monitored-target id, set by the recurring sweeps.
    """

    type: JobType
    target: Optional[str] = None
    priority: Optional[int] = Field(default=None, ge=0, le=9)
    options: dict[str, Any] = Field(default_factory=dict)
    user_id: Optional[str] = None
    target_id: Optional[str] = None

    @field_validator("target")
    @classmethod
    def strip_target(cls, v: Optional[str]) -> Optional[str]:
        if v is None:
            return None
        return v.strip() or None

    @model_validator(mode="after")
    def require_url_target(self) -> ScrapeJobCreate:
        """Reject URL-based job types without a valid http(s) target.

        Raises:
            ValueError: If ``target`` is missing or malformed for a type
                that scrapes a page.
        """
        if self.type is JobType.TREND_MONITORING:
            return self
        if not self.target:
            raise ValueError(f"target is required for {self.type.value} jobs")
        if not is_valid_url(self.target):
            raise ValueError(f"Invalid URL: {self.target}")
        return self


class ScrapeJobRead(BaseModel):
    """Full representation of a stored job."""

    id: str
    type: JobType
    target: Optional[str]
    status: JobStatus
    priority: int
    progress: int
    options: dict[str, Any]
    result: Optional[dict[str, Any]]
    error: Optional[str]
    user_id: Optional[str]
    target_id: Optional[str]
    attempts: int
    task_id: Optional[str]
    created_at: datetime
    started_at: Optional[datetime]
    completed_at: Optional[datetime]

    model_config = ConfigDict(from_attributes=True)
