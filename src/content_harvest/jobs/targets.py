"""Persistence read by the recurring sweeps: monitored targets and trend history.

- :class:`TargetStore`: websites re-scraped daily or weekly.
- :class:`TrendStore`: scored trend keywords recorded after each
  trend-monitoring job; the hourly sweep reads the top recent keywords back.

Both have a SQLAlchemy implementation (synchronous sessions, used by the
Celery beat tasks) and an in-memory one (tests, broker-less mode).
"""

from __future__ import annotations

import logging
import threading
import uuid
from abc import ABC, abstractmethod
from dataclasses import dataclass, field, replace
from datetime import datetime, timezone
from typing import Any, Iterable

import sqlalchemy as sa

from content_harvest.core.models.targets import ScrapeTarget, TrendRecord
from content_harvest.jobs.store import SessionFactory

logger = logging.getLogger(__name__)

FREQUENCIES = ("daily", "weekly")


@dataclass
class MonitoredTarget:
    """A website the daily or weekly sweep re-scrapes."""

    url: str
    id: str = field(default_factory=lambda: str(uuid.uuid4()))
    user_id: str | None = None
    status: str = "active"
    scraping_frequency: str = "daily"
    last_scraped: datetime | None = None


@dataclass
class TrendObservation:
    keyword: str
    source: str
    trend_score: float
    created_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))


def observations_from_result(result: dict[str, Any]) -> list[TrendObservation]:
    """Flatten a trend-monitoring job result into observations worth recording.

    Entries without a keyword or with a non-positive score are skipped.
    """
    observations: list[TrendObservation] = []
    for entry in result.get("trends") or []:
        keyword = str(entry.get("keyword") or "").strip()
        score = entry.get("trend_score") or 0
        if keyword and score > 0:
            observations.append(
                TrendObservation(
                    keyword=keyword,
                    source=str(entry.get("source") or "unknown"),
                    trend_score=float(score),
                )
            )
    return observations


def _as_utc(value: datetime | None) -> datetime | None:
    if value is not None and value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


# ---------------------------------------------------------------------------
# Contracts
# ---------------------------------------------------------------------------


class TargetStore(ABC):
    @abstractmethod
    def find_due(self, frequency: str, cutoff: datetime) -> list[MonitoredTarget]:
        """Active targets of *frequency* never scraped or last scraped before *cutoff*."""

    @abstractmethod
    def mark_scraped(self, target_id: str, when: datetime) -> None: ...


class TrendStore(ABC):
    @abstractmethod
    def record(self, observations: Iterable[TrendObservation]) -> int:
        """Persist *observations*; return how many were written."""

    @abstractmethod
    def hot_keywords(self, since: datetime, limit: int) -> list[str]:
        """Distinct keywords observed after *since*, best score first."""


# ---------------------------------------------------------------------------
# In-memory
# ---------------------------------------------------------------------------


class InMemoryTargetStore(TargetStore):
    def __init__(self, targets: Iterable[MonitoredTarget] = ()) -> None:
        self._lock = threading.Lock()
        self._targets: dict[str, MonitoredTarget] = {t.id: t for t in targets}

    def add(self, target: MonitoredTarget) -> MonitoredTarget:
        with self._lock:
            self._targets[target.id] = target
        return target

    def get(self, target_id: str) -> MonitoredTarget | None:
        with self._lock:
            target = self._targets.get(target_id)
            return replace(target) if target is not None else None

    def find_due(self, frequency: str, cutoff: datetime) -> list[MonitoredTarget]:
        with self._lock:
            return [
                replace(t)
                for t in self._targets.values()
                if t.status == "active"
                and t.scraping_frequency == frequency
                and (t.last_scraped is None or t.last_scraped < cutoff)
            ]

    def mark_scraped(self, target_id: str, when: datetime) -> None:
        with self._lock:
            target = self._targets.get(target_id)
            if target is not None:
                target.last_scraped = when


class InMemoryTrendStore(TrendStore):
    def __init__(self) -> None:
        self._lock = threading.Lock()
        self.observations: list[TrendObservation] = []

    def record(self, observations: Iterable[TrendObservation]) -> int:
        batch = list(observations)
        with self._lock:
            self.observations.extend(batch)
        return len(batch)

    def hot_keywords(self, since: datetime, limit: int) -> list[str]:
        best: dict[str, float] = {}
        with self._lock:
            for obs in self.observations:
                if obs.created_at > since:
                    best[obs.keyword] = max(best.get(obs.keyword, 0.0), obs.trend_score)
        ranked = sorted(best.items(), key=lambda kv: kv[1], reverse=True)
        return [keyword for keyword, _ in ranked[:limit]]


# ---------------------------------------------------------------------------
# SQLAlchemy
# ---------------------------------------------------------------------------


def _default_session_factory() -> SessionFactory:
    from content_harvest.core.database import get_sync_session  # noqa: PLC0415

    return get_sync_session


class SqlTargetStore(TargetStore):
    """``scrape_targets`` table access."""

    def __init__(self, session_factory: SessionFactory | None = None) -> None:
        self._session_factory = session_factory or _default_session_factory()

    def find_due(self, frequency: str, cutoff: datetime) -> list[MonitoredTarget]:
        with self._session_factory() as session:
            rows = session.scalars(
                sa.select(ScrapeTarget).where(
                    ScrapeTarget.status == "active",
                    ScrapeTarget.scraping_frequency == frequency,
                    sa.or_(
                        ScrapeTarget.last_scraped.is_(None),
                        ScrapeTarget.last_scraped < cutoff,
                    ),
                )
            ).all()
            return [
                MonitoredTarget(
                    id=str(row.id),
                    url=row.url,
                    user_id=row.user_id,
                    status=row.status,
                    scraping_frequency=row.scraping_frequency,
                    last_scraped=_as_utc(row.last_scraped),
                )
                for row in rows
            ]

    def mark_scraped(self, target_id: str, when: datetime) -> None:
        with self._session_factory() as session:
            session.execute(
                sa.update(ScrapeTarget)
                .where(ScrapeTarget.id == target_id)
                .values(last_scraped=when)
            )
            session.commit()


class SqlTrendStore(TrendStore):
    """``trends`` table access."""

    def __init__(self, session_factory: SessionFactory | None = None) -> None:
        self._session_factory = session_factory or _default_session_factory()

    def record(self, observations: Iterable[TrendObservation]) -> int:
        rows = [
            TrendRecord(
                keyword=obs.keyword,
                source=obs.source,
                trend_score=obs.trend_score,
                created_at=obs.created_at,
            )
            for obs in observations
        ]
        if not rows:
            return 0
        with self._session_factory() as session:
            session.add_all(rows)
            session.commit()
        logger.debug("trend_store: recorded %d observations", len(rows))
        return len(rows)

    def hot_keywords(self, since: datetime, limit: int) -> list[str]:
        best = sa.func.max(TrendRecord.trend_score)
        with self._session_factory() as session:
            rows = session.execute(
                sa.select(TrendRecord.keyword, best.label("score"))
                .where(TrendRecord.created_at > since)
                .group_by(TrendRecord.keyword)
                .order_by(best.desc())
                .limit(limit)
            ).all()
        return [row.keyword for row in rows]
