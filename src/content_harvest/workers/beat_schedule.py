"""Celery Beat periodic task schedule for Content Harvest.

Defines when the recurring sweeps run.  All times are UTC (configured in
``celery_app.py``).

This module is imported by ``celery_app.py`` and applied via
``celery_app.conf.beat_schedule``.

Schedule overview:

+---------------------------+---------------------+-----------------------------+
| Task name                 | Schedule            | Purpose                     |
+===========================+=====================+=============================+
| daily_scraping            | 02:00 daily         | Re-scrape overdue daily      |
|                           |                     | targets.                     |
+---------------------------+---------------------+-----------------------------+
| weekly_scraping           | 03:00 Sunday        | Re-scrape overdue weekly     |
|                           |                     | targets.                     |
+---------------------------+---------------------+-----------------------------+
| hourly_trend_monitoring   | Top of every hour   | Trend jobs for the hottest   |
|                           |                     | keywords of the last 24 h.   |
+---------------------------+---------------------+-----------------------------+
| daily_cleanup             | 01:00 daily         | Delete old completed jobs,   |
|                           |                     | purge stale downloads.       |
+---------------------------+---------------------+-----------------------------+
| stalled_job_recovery      | Every 15 minutes    | Fail jobs running longer     |
|                           |                     | than STALLED_JOB_MINUTES.    |
+---------------------------+---------------------+-----------------------------+
"""

from __future__ import annotations

from celery.schedules import crontab

#: Celery Beat schedule dict.  Applied to ``celery_app.conf.beat_schedule``
#: in ``celery_app.py``.
beat_schedule: dict[str, dict] = {  # type: ignore[type-arg]
    "daily_scraping": {
        "task": "content_harvest.workers.tasks.schedule_daily_scraping",
        "schedule": crontab(hour=2, minute=0),
        "options": {
            "queue": "celery",
            "expires": 3_600,  # discard if not started within 1 hour
        },
    },
    "weekly_scraping": {
        "task": "content_harvest.workers.tasks.schedule_weekly_scraping",
        "schedule": crontab(hour=3, minute=0, day_of_week=0),
        "options": {
            "queue": "celery",
            "expires": 3_600,
        },
    },
    "hourly_trend_monitoring": {
        "task": "content_harvest.workers.tasks.schedule_trend_monitoring",
        "schedule": crontab(minute=0),
        "options": {
            "queue": "celery",
            "expires": 1_800,
        },
    },
    "daily_cleanup": {
        "task": "content_harvest.workers.tasks.perform_cleanup",
        "schedule": crontab(hour=1, minute=0),
        "options": {
            "queue": "celery",
            "expires": 3_600,
        },
    },
    "stalled_job_recovery": {
        "task": "content_harvest.workers.tasks.recover_stalled_jobs",
        "schedule": crontab(minute="*/15"),
        "options": {
            "queue": "celery",
            "expires": 600,
        },
    },
}
