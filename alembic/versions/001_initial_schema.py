"""Initial schema: scrape_targets, scrape_jobs, trends.

Revision ID: 001
Revises:
Create Date: 2026-10-18
"""

from __future__ import annotations

from typing import Sequence, Union

import sqlalchemy as sa
from alembic import op
from sqlalchemy.dialects import postgresql

# revision identifiers, used by Alembic.
revision: str = "001"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def _timestamps() -> list[sa.Column]:
    return [
        sa.Column(
            "created_at",
            sa.DateTime(timezone=True),
            nullable=False,
            server_default=sa.func.now(),
        ),
        sa.Column(
            "updated_at",
            sa.DateTime(timezone=True),
            nullable=False,
            server_default=sa.func.now(),
        ),
    ]


def upgrade() -> None:
    """Create the monitored-target, job and trend tables."""
    op.create_table(
        "scrape_targets",
        sa.Column("id", sa.Uuid(as_uuid=False), primary_key=True),
        sa.Column("url", sa.Text(), nullable=False),
        sa.Column("user_id", sa.String(64), nullable=True),
        sa.Column(
            "status",
            sa.String(20),
            nullable=False,
            server_default=sa.text("'active'"),
        ),
        sa.Column(
            "scraping_frequency",
            sa.String(20),
            nullable=False,
            server_default=sa.text("'daily'"),
        ),
        sa.Column("last_scraped", sa.DateTime(timezone=True), nullable=True),
        *_timestamps(),
    )
    op.create_index(
        "idx_scrape_targets_status_frequency",
        "scrape_targets",
        ["status", "scraping_frequency"],
    )

    op.create_table(
        "scrape_jobs",
        sa.Column("id", sa.Uuid(as_uuid=False), primary_key=True),
        sa.Column("type", sa.String(32), nullable=False),
        sa.Column("target", sa.Text(), nullable=True),
        # Lifecycle
        sa.Column(
            "status",
            sa.String(20),
            nullable=False,
            server_default=sa.text("'pending'"),
        ),
        sa.Column("priority", sa.Integer(), nullable=False, server_default=sa.text("5")),
        sa.Column("progress", sa.Integer(), nullable=False, server_default=sa.text("0")),
        sa.Column("attempts", sa.Integer(), nullable=False, server_default=sa.text("0")),
        sa.Column("task_id", sa.String(255), nullable=True),
        # Payloads
        sa.Column("options", postgresql.JSONB(), nullable=True),
        sa.Column("result", postgresql.JSONB(), nullable=True),
        sa.Column("error_message", sa.Text(), nullable=True),
        # Ownership
        sa.Column("user_id", sa.String(64), nullable=True),
        sa.Column(
            "target_id",
            sa.Uuid(as_uuid=False),
            sa.ForeignKey("scrape_targets.id", ondelete="SET NULL"),
            nullable=True,
        ),
        # Timing
        sa.Column("started_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("completed_at", sa.DateTime(timezone=True), nullable=True),
        *_timestamps(),
    )
    op.create_index("idx_scrape_jobs_status", "scrape_jobs", ["status"])
    op.create_index("idx_scrape_jobs_target_id", "scrape_jobs", ["target_id"])
    op.create_index("idx_scrape_jobs_user_id", "scrape_jobs", ["user_id"])

    op.create_table(
        "trends",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("keyword", sa.Text(), nullable=False),
        sa.Column("source", sa.String(32), nullable=False),
        sa.Column("trend_score", sa.Float(), nullable=False),
        sa.Column(
            "created_at",
            sa.DateTime(timezone=True),
            nullable=False,
            server_default=sa.func.now(),
        ),
    )
    op.create_index("idx_trends_created_at", "trends", ["created_at"])


def downgrade() -> None:
    """Drop the trend, job and monitored-target tables."""
    op.drop_index("idx_trends_created_at", table_name="trends")
    op.drop_table("trends")
    op.drop_index("idx_scrape_jobs_user_id", table_name="scrape_jobs")
    op.drop_index("idx_scrape_jobs_target_id", table_name="scrape_jobs")
    op.drop_index("idx_scrape_jobs_status", table_name="scrape_jobs")
    op.drop_table("scrape_jobs")
    op.drop_index("idx_scrape_targets_status_frequency", table_name="scrape_targets")
    op.drop_table("scrape_targets")
