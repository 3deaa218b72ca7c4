"""SQLAlchemy ORM model for scrape jobs.

``ScrapeJobRecord`` is the persisted form of
:class:`content_harvest.jobs.models.ScrapeJob`.  Both execution strategies
(durable queue and direct) write the same row shape; the conversion lives in
:mod:`content_harvest.jobs.store`.
"""

from __future__ import annotations

from datetime import datetime
from typing import Any, Optional

import sqlalchemy as sa
from sqlalchemy.orm import Mapped, mapped_column

from content_harvest.core.models.base import Base, JSONType, TimestampMixin


class ScrapeJobRecord(TimestampMixin, Base):
    """One unit of scraping work and its outcome.

    Attributes:
        id: UUID primary key (string form).
        type: ``"page"``, ``"content"``, ``"asset_discovery"`` or
            ``"trend_monitoring"``.
        target: URL to scrape, or ``None`` for source-less trend jobs.
        status: Lifecycle state: ``"pending"``, ``"running"``,
            ``"completed"``, ``"failed"``, or ``"cancelled"``.
        priority: Queue priority (higher runs first on the durable queue).
        progress: Advisory completion percentage, 0-100.
        options: Type-specific extractor options.
        result: Extraction result payload; set only when completed.
        error_message: Human-readable failure reason; set when failed or
            cancelled.
        user_id: Owner of the job, or ``None`` for system jobs.
        target_id: Monitored :class:`ScrapeTarget` that spawned the job.
        attempts: Number of times a worker has started the job.
        task_id: Celery task id when dispatched through the durable queue.
        started_at: When a worker first marked the job running.
        completed_at: When the job reached a terminal state.
    """

    __tablename__ = "scrape_jobs"

    id: Mapped[str] = mapped_column(sa.Uuid(as_uuid=False), primary_key=True)
    type: Mapped[str] = mapped_column(sa.String(32), nullable=False)
    target: Mapped[Optional[str]] = mapped_column(sa.Text, nullable=True)

    # Lifecycle
    status: Mapped[str] = mapped_column(
        sa.String(20),
        nullable=False,
        server_default=sa.text("'pending'"),
    )
    priority: Mapped[int] = mapped_column(
        sa.Integer,
        nullable=False,
        server_default=sa.text("5"),
    )
    progress: Mapped[int] = mapped_column(
        sa.Integer,
        nullable=False,
        server_default=sa.text("0"),
    )
    attempts: Mapped[int] = mapped_column(
        sa.Integer,
        nullable=False,
        server_default=sa.text("0"),
    )
    task_id: Mapped[Optional[str]] = mapped_column(sa.String(255), nullable=True)

    # Payloads
    options: Mapped[Optional[dict[str, Any]]] = mapped_column(JSONType, nullable=True)
    result: Mapped[Optional[dict[str, Any]]] = mapped_column(JSONType, nullable=True)
    error_message: Mapped[Optional[str]] = mapped_column(sa.Text, nullable=True)

    # Ownership
    user_id: Mapped[Optional[str]] = mapped_column(sa.String(64), nullable=True)
    target_id: Mapped[Optional[str]] = mapped_column(
        sa.Uuid(as_uuid=False),
        sa.ForeignKey("scrape_targets.id", ondelete="SET NULL"),
        nullable=True,
    )

    # Timing
    started_at: Mapped[Optional[datetime]] = mapped_column(
        sa.DateTime(timezone=True),
        nullable=True,
    )
    completed_at: Mapped[Optional[datetime]] = mapped_column(
        sa.DateTime(timezone=True),
        nullable=True,
    )

    __table_args__ = (
        sa.Index("idx_scrape_jobs_status", "status"),
        sa.Index("idx_scrape_jobs_target_id", "target_id"),
        sa.Index("idx_scrape_jobs_user_id", "user_id"),
    )
