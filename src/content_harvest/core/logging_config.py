"""structlog setup shared by Celery workers and direct-mode callers.

Stdlib loggers (``logging.getLogger(__name__)``) and structlog loggers both
end up in one stdout handler.  Output is JSON lines unless the level is
``DEBUG``, in which case a coloured console renderer is used.

While :class:`~content_harvest.jobs.executor.JobExecutor` runs a job it sets
:data:`job_id_var`; every record emitted in that context, including those
from the browser session and the extractors, carries the ``job_id``.
"""

from __future__ import annotations

import logging
import sys
from contextvars import ContextVar

import structlog
from structlog.types import EventDict, WrappedLogger

job_id_var: ContextVar[str | None] = ContextVar("job_id", default=None)
"""ID of the scrape job executing in the current context."""

# Settings carries trend-source credentials (news_api_key,
# twitter_bearer_token); keys containing these fragments are never rendered.
_SECRET_FRAGMENTS = ("api_key", "token", "password", "authorization")


def _redact_secrets(
    logger: WrappedLogger,  # noqa: ARG001
    method_name: str,  # noqa: ARG001
    event_dict: EventDict,
) -> EventDict:
    for key in event_dict:
        if any(fragment in key.lower() for fragment in _SECRET_FRAGMENTS):
            event_dict[key] = "[REDACTED]"
    return event_dict


def _inject_job_id(
    logger: WrappedLogger,  # noqa: ARG001
    method_name: str,  # noqa: ARG001
    event_dict: EventDict,
) -> EventDict:
    job_id = job_id_var.get()
    if job_id is not None:
        event_dict.setdefault("job_id", job_id)
    return event_dict


def configure_logging(log_level: str = "INFO") -> None:
    """Route stdlib and structlog records through one stdout handler.

    Safe to call more than once: the root handlers are replaced.

    Args:
        log_level: Logging level name, case-insensitive.  ``DEBUG`` switches
            to console rendering and leaves library loggers at their defaults.
    """
    level_name = log_level.upper()
    debug = level_name == "DEBUG"

    shared_processors: list[structlog.types.Processor] = [
        structlog.contextvars.merge_contextvars,
        _inject_job_id,
        _redact_secrets,
        structlog.stdlib.add_log_level,
        structlog.stdlib.add_logger_name,
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.format_exc_info,
    ]
    renderer: structlog.types.Processor = (
        structlog.dev.ConsoleRenderer(colors=True)
        if debug
        else structlog.processors.JSONRenderer()
    )

    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(
        structlog.stdlib.ProcessorFormatter(
            foreign_pre_chain=shared_processors,
            processors=[structlog.stdlib.ProcessorFormatter.remove_processors_meta, renderer],
        )
    )
    root_logger = logging.getLogger()
    root_logger.handlers.clear()
    root_logger.addHandler(handler)
    root_logger.setLevel(getattr(logging, level_name, logging.INFO))

    if not debug:
        for name in ("httpx", "httpcore", "trafilatura", "PIL"):
            logging.getLogger(name).setLevel(logging.WARNING)

    structlog.configure(
        processors=shared_processors + [structlog.stdlib.ProcessorFormatter.wrap_for_formatter],
        wrapper_class=structlog.stdlib.BoundLogger,
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )
