"""SQLAlchemy ORM models read by the recurring scheduler sweeps.

- ``ScrapeTarget``: a monitored website re-scraped on a daily or weekly cadence.
- ``TrendRecord``: a trend keyword observation; the hourly sweep schedules
  trend-monitoring jobs for the highest-scoring recent keywords.
"""

from __future__ import annotations

from datetime import datetime
from typing import Optional

import sqlalchemy as sa
from sqlalchemy.orm import Mapped, mapped_column

from content_harvest.core.models.base import Base, TimestampMixin


class ScrapeTarget(TimestampMixin, Base):
    """A website scheduled for recurring page scrapes.

    Attributes:
        id: UUID primary key (string form).
        url: Website URL scraped by the page extractor.
        user_id: Owner of the target.
        status: ``"active"`` or ``"inactive"``; only active targets are swept.
        scraping_frequency: ``"daily"`` or ``"weekly"``.
        last_scraped: When the sweep last enqueued a job for this target.
    """

    __tablename__ = "scrape_targets"

    id: Mapped[str] = mapped_column(sa.Uuid(as_uuid=False), primary_key=True)
    url: Mapped[str] = mapped_column(sa.Text, nullable=False)
    user_id: Mapped[Optional[str]] = mapped_column(sa.String(64), nullable=True)
    status: Mapped[str] = mapped_column(
        sa.String(20),
        nullable=False,
        server_default=sa.text("'active'"),
    )
    scraping_frequency: Mapped[str] = mapped_column(
        sa.String(20),
        nullable=False,
        server_default=sa.text("'daily'"),
    )
    last_scraped: Mapped[Optional[datetime]] = mapped_column(
        sa.DateTime(timezone=True),
        nullable=True,
    )

    __table_args__ = (
        sa.Index("idx_scrape_targets_status_frequency", "status", "scraping_frequency"),
    )


class TrendRecord(Base):
    """A scored trend keyword observed by a trend-monitoring job."""

    __tablename__ = "trends"

    id: Mapped[int] = mapped_column(sa.Integer, primary_key=True, autoincrement=True)
    keyword: Mapped[str] = mapped_column(sa.Text, nullable=False)
    source: Mapped[str] = mapped_column(sa.String(32), nullable=False)
    trend_score: Mapped[float] = mapped_column(sa.Float, nullable=False)
    created_at: Mapped[datetime] = mapped_column(
        sa.DateTime(timezone=True),
        nullable=False,
        server_default=sa.func.now(),
    )

    __table_args__ = (
        sa.Index("idx_trends_created_at", "created_at"),
    )
