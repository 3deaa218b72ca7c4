"""Redis pub/sub event bus for real-time scrape job status updates.

The job executor calls :func:`publish_job_update` when a job reaches
``completed`` or ``failed`` (and the runners call it on cancellation).  A
WebSocket layer outside this package subscribes to the channels and forwards
messages to connected clients.

Channel naming convention::

    scrape_job:{job_id}     every update for one job
    user:{user_id}          every update for jobs owned by one user

Message shape::

    {
        "event": "job_update",
        "job_id": "6f1c...",
        "user_id": "42",            # or null for system jobs
        "status": "completed",      # running | completed | failed | cancelled
        "progress": 100,
        "message": "Scraping completed successfully"
    }

The function is synchronous so it can be called from Celery task bodies and
from the direct runner alike.  It creates a short-lived synchronous Redis
connection, publishes, then closes the connection immediately.  Publishing is
fire-and-forget: a failure is logged at WARNING and never propagates.
"""

from __future__ import annotations

import json
import logging
from typing import Any, Optional

logger = logging.getLogger(__name__)


def job_channel(job_id: str) -> str:
    """Return the pub/sub channel carrying updates for *job_id*."""
    return f"scrape_job:{job_id}"


def user_channel(user_id: str) -> str:
    """Return the pub/sub channel carrying updates for jobs owned by *user_id*."""
    return f"user:{user_id}"


def publish(redis_url: str, channel: str, payload: dict[str, Any]) -> None:
    """Publish *payload* as JSON on *channel*.

    Args:
        redis_url: Redis connection URL (e.g. ``redis://localhost:6379/0``).
        channel: Pub/sub channel name.
        payload: JSON-serialisable message body.
    """
    try:
        import redis as redis_lib  # noqa: PLC0415

        r = redis_lib.from_url(redis_url, decode_responses=True)
        try:
            r.publish(channel, json.dumps(payload, default=str))
            logger.debug("event_bus: published to %s", channel)
        finally:
            r.close()
    except Exception as exc:  # noqa: BLE001
        logger.warning("event_bus: failed to publish to %s: %s", channel, exc)


def publish_job_update(
    redis_url: str,
    job_id: str,
    status: str,
    progress: int = 0,
    message: str = "",
    user_id: Optional[str] = None,
) -> None:
    """Publish a job-update event on the job channel and, if owned, the user channel.

    Args:
        redis_url: Redis connection URL.  Use the application's
            ``settings.redis_url``.
        job_id: Identifier of the scrape job.
        status: New job status string.
        progress: Progress value (0-100) at the time of the update.
        message: Human-readable description of the update.
        user_id: Owner of the job, or ``None`` for system jobs.
    """
    payload: dict[str, Any] = {
        "event": "job_update",
        "job_id": job_id,
        "user_id": user_id,
        "status": status,
        "progress": progress,
        "message": message,
    }
    publish(redis_url, job_channel(job_id), payload)
    if user_id:
        publish(redis_url, user_channel(user_id), payload)
