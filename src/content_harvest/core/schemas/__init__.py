"""Pydantic schemas for request validation.

Sub-modules:
    jobs: ScrapeJobCreate, ScrapeJobRead
"""

from __future__ import annotations
