"""Configuration package for Content Harvest.

Re-exports the settings symbols so that callers can write::

    from content_harvest.config import get_settings
"""

from __future__ import annotations

from content_harvest.config.settings import Settings, get_settings

__all__ = [
    "Settings",
    "get_settings",
]
