"""Extractor registry: one handler per :class:`~content_harvest.jobs.models.JobType`.

Extractors register themselves on import using the ``@register`` decorator.
The registry is a module-level table built at startup by
:func:`autodiscover`, mapping each ``JobType`` to an ``Extractor`` subclass.

Example: registering an extractor::

    from content_harvest.extractors.registry import register

    @register
    class PageExtractor(Extractor):
        job_type = JobType.PAGE
        ...

Example: looking up an extractor::

    from content_harvest.extractors.registry import autodiscover, get_extractor

    autodiscover()
    cls = get_extractor(JobType.CONTENT)
    result = await cls().extract(url, options)
"""

from __future__ import annotations

import importlib
import logging
import pkgutil
from typing import TYPE_CHECKING

from content_harvest.core.exceptions import ValidationError
from content_harvest.jobs.models import JobType

if TYPE_CHECKING:
    from content_harvest.extractors.base import Extractor

logger = logging.getLogger(__name__)

# Registry singleton: JobType -> Extractor subclass
_REGISTRY: dict[JobType, type[Extractor]] = {}

# Modules in this package that never define extractors.
_SKIP_MODULES = frozenset({"base", "registry", "media"})


def register(cls: type[Extractor]) -> type[Extractor]:
    """Decorator that registers an ``Extractor`` subclass under its ``job_type``.

    A second registration for the same job type overwrites the first and
    logs a warning.

    Raises:
        AttributeError: If ``cls`` does not define ``job_type``.
    """
    job_type: JobType = cls.job_type
    if job_type in _REGISTRY and _REGISTRY[job_type] is not cls:
        logger.warning(
            "Job type '%s' is already registered (was %s). Overwriting with %s.",
            job_type.value,
            _REGISTRY[job_type].__qualname__,
            cls.__qualname__,
        )
    _REGISTRY[job_type] = cls
    logger.debug("Registered extractor: job_type=%s class=%s", job_type.value, cls.__qualname__)
    return cls


def get_extractor(job_type: JobType | str) -> type[Extractor]:
    """Return the ``Extractor`` subclass registered for *job_type*.

    Raises:
        ValidationError: If *job_type* is not a known job type or nothing is
            registered for it.
    """
    try:
        key = JobType(job_type)
    except ValueError:
        raise ValidationError(f"Unsupported job type: {job_type}", field="type") from None
    try:
        return _REGISTRY[key]
    except KeyError:
        raise ValidationError(
            f"No extractor registered for job type '{key.value}'. "
            "Did you forget to call autodiscover()?",
            field="type",
        ) from None


def registered_types() -> list[JobType]:
    """Return the job types that currently have an extractor, in enum order."""
    return [job_type for job_type in JobType if job_type in _REGISTRY]


def autodiscover() -> None:
    """Import every extractor module in this package to trigger ``@register``.

    Idempotent.  A module that fails to import is logged and skipped.
    """
    import content_harvest.extractors as extractors_pkg  # noqa: PLC0415

    prefix = extractors_pkg.__name__ + "."
    for _finder, module_name, _is_pkg in pkgutil.iter_modules(extractors_pkg.__path__, prefix):
        if module_name.rsplit(".", 1)[-1] in _SKIP_MODULES:
            continue
        try:
            importlib.import_module(module_name)
            logger.debug("Autodiscovered extractor module: %s", module_name)
        except Exception as exc:  # noqa: BLE001
            logger.error(
                "Failed to import extractor module '%s': %s",
                module_name,
                exc,
                exc_info=True,
            )
