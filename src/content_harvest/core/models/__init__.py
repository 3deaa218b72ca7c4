"""SQLAlchemy ORM models for Content Harvest.

All models are imported here so that:
1. Alembic autogenerate can discover them via Base.metadata.
2. Application code can do ``from content_harvest.core.models import ScrapeJobRecord``
   without knowing which sub-module a model lives in.
"""

from __future__ import annotations

from content_harvest.core.models.base import Base, JSONType, TimestampMixin
from content_harvest.core.models.jobs import ScrapeJobRecord
from content_harvest.core.models.targets import ScrapeTarget, TrendRecord

__all__ = [
    "Base",
    "JSONType",
    "TimestampMixin",
    "ScrapeJobRecord",
    "ScrapeTarget",
    "TrendRecord",
]
