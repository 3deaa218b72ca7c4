"""Application-wide exception hierarchy for Content Harvest.

All custom exceptions subclass ``ContentHarvestError``, enabling
consistent error handling and structured logging across the application.

Hierarchy::

    ContentHarvestError
    ├── NavigationError          (url, status)
    ├── RobotsDisallowedError    (url)
    ├── ValidationError          (field)
    ├── DownloadError            (url)
    ├── ExtractionError          (url)
    ├── InvalidTransitionError   (job_id, current, requested)
    └── JobNotFoundError         (job_id)

``NavigationError`` and ``DownloadError`` are transient and retried by the
durable queue.  ``RobotsDisallowedError`` and ``ValidationError`` are
permanent: retrying cannot change the outcome.
"""

from __future__ import annotations


class ContentHarvestError(Exception):
    """Base class for all Content Harvest exceptions.

    All application-specific exceptions inherit from this class so that
    callers can catch the entire hierarchy with a single ``except`` clause
    when needed.
    """


# ---------------------------------------------------------------------------
# Scraping exceptions
# ---------------------------------------------------------------------------


class NavigationError(ContentHarvestError):
    """Raised when a page fails to load, times out, or answers with a non-2xx status.

    Args:
        message: Human-readable description of the failure.
        url: URL that was being loaded.
        status: HTTP status code of the response, or ``None`` on timeout
            or network failure.
    """

    def __init__(
        self,
        message: str,
        url: str | None = None,
        status: int | None = None,
    ) -> None:
        super().__init__(message)
        self.url = url
        self.status = status


class RobotsDisallowedError(ContentHarvestError):
    """Raised when the target URL is excluded by the site's robots.txt.

    The caller must not proceed with the request.

    Args:
        url: The disallowed URL.
    """

    def __init__(self, url: str) -> None:
        super().__init__(f"URL disallowed by robots.txt: {url}")
        self.url = url


class ValidationError(ContentHarvestError):
    """Raised for a malformed URL, an unsupported job type, or an invalid job spec.

    Args:
        message: Human-readable description of the problem.
        field: Name of the offending field, when known.
    """

    def __init__(self, message: str, field: str | None = None) -> None:
        super().__init__(message)
        self.field = field


class DownloadError(ContentHarvestError):
    """Raised when a binary asset cannot be fetched or fails validation.

    Args:
        message: Human-readable description of the failure.
        url: URL of the asset.
    """

    def __init__(self, message: str, url: str | None = None) -> None:
        super().__init__(message)
        self.url = url


class ExtractionError(ContentHarvestError):
    """Raised when parsing logic fails on otherwise-loaded content.

    Args:
        message: Human-readable description of the failure.
        url: URL of the page being parsed.
    """

    def __init__(self, message: str, url: str | None = None) -> None:
        super().__init__(message)
        self.url = url


# ---------------------------------------------------------------------------
# Job lifecycle exceptions
# ---------------------------------------------------------------------------


class InvalidTransitionError(ContentHarvestError):
    """Raised when a job is asked to move to a state its current state forbids.

    Args:
        job_id: Identifier of the job.
        current: Status the job is currently in.
        requested: Status that was requested.
    """

    def __init__(self, job_id: str, current: str, requested: str) -> None:
        super().__init__(
            f"Job {job_id} cannot transition from '{current}' to '{requested}'"
        )
        self.job_id = job_id
        self.current = current
        self.requested = requested


class JobNotFoundError(ContentHarvestError):
    """Raised when a job id is not present in the job store.

    Args:
        job_id: The identifier that was looked up.
    """

    def __init__(self, job_id: str) -> None:
        super().__init__(f"Job {job_id} not found")
        self.job_id = job_id
