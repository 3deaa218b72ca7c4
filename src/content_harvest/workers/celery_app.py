"""Celery application factory for Content Harvest.

Configures the broker, result backend, serialization, task routing, and
priority handling.  All configuration values are sourced from ``Settings`` so
that no secrets or environment-specific values are hard-coded here.

Usage (starting a worker)::

    celery -A content_harvest.workers.celery_app worker -Q scraping,celery --loglevel=info

Usage (starting the Beat scheduler for the recurring sweeps)::

    celery -A content_harvest.workers.celery_app beat --loglevel=info

Usage (within application code)::

    from content_harvest.workers.celery_app import celery_app

    result = celery_app.send_task(
        "content_harvest.workers.tasks.execute_scrape_job",
        kwargs={"job_id": job_id},
        queue="scraping",
        priority=broker_priority(job.priority),
    )
"""

from __future__ import annotations

import logging

from celery import Celery
from celery.signals import worker_process_init
from dotenv import load_dotenv

_logger = logging.getLogger(__name__)

# Trend-source API keys and database URLs may live in a local .env file.
load_dotenv()

from content_harvest.config.settings import get_settings  # noqa: E402
from content_harvest.jobs.models import broker_priority  # noqa: E402

settings = get_settings()

#: The global Celery application instance.
#: Import this object wherever tasks need to be sent or inspected.
celery_app = Celery(
    "content_harvest",
    broker=settings.celery_broker_url,
    backend=settings.celery_result_backend,
    include=["content_harvest.workers.tasks"],
)

# ---------------------------------------------------------------------------
# Core configuration
# ---------------------------------------------------------------------------

celery_app.conf.update(
    # Serialization: all task arguments and return values are JSON.
    task_serializer="json",
    result_serializer="json",
    accept_content=["json"],
    timezone="UTC",
    enable_utc=True,
    # Acknowledge only after the task has finished so a crashed worker's
    # job is redelivered.
    task_acks_late=True,
    task_reject_on_worker_lost=True,
    # One reserved task per process: scrape jobs are long and uneven.
    worker_prefetch_multiplier=1,
    worker_concurrency=settings.worker_concurrency,
    result_expires=86_400,
    task_soft_time_limit=1_800,   # 30 minutes soft limit
    task_time_limit=2_400,        # 40 minutes hard limit
    # Redis emulates priorities with one list per step and drains step 0
    # first.  Job priorities (9 most urgent) go through broker_priority().
    broker_transport_options={
        "priority_steps": list(range(10)),
        "sep": ":",
        "queue_order_strategy": "priority",
    },
    task_default_priority=broker_priority(settings.job_default_priority),
    task_routes={
        "content_harvest.workers.tasks.execute_scrape_job": {
            "queue": "scraping",
        },
        "content_harvest.workers.tasks.schedule_*": {
            "queue": "celery",
        },
        "content_harvest.workers.tasks.perform_cleanup": {
            "queue": "celery",
        },
        "content_harvest.workers.tasks.recover_stalled_jobs": {
            "queue": "celery",
        },
        "content_harvest.workers.tasks.scraping_stats": {
            "queue": "celery",
        },
    },
    beat_schedule_filename="celerybeat-schedule",
)

# Import and apply the Beat schedule after the app is configured.
from content_harvest.workers.beat_schedule import beat_schedule  # noqa: E402

celery_app.conf.beat_schedule = beat_schedule


# ---------------------------------------------------------------------------
# Per-process initialisation
# ---------------------------------------------------------------------------
@worker_process_init.connect
def _init_worker_process(**kwargs: object) -> None:  # noqa: ARG001
    """Reset inherited state after Celery forks a worker process.

    Pooled database connections created in the parent cannot be shared with
    the child, so the engines are disposed and recreated lazily.  Logging is
    configured once per process.
    """
    from content_harvest.core import database as _db  # noqa: PLC0415
    from content_harvest.core.logging_config import configure_logging  # noqa: PLC0415

    _db.dispose_engines()
    configure_logging(get_settings().log_level)
    _logger.debug("celery_app: worker process initialised")
