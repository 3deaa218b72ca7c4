"""Scrape job lifecycle.

Sub-modules:
    models   : ScrapeJob, JobType, JobStatus and the state machine
    store    : JobStore contract, SqlJobStore, InMemoryJobStore
    targets  : monitored targets and trend history read by the sweeps
    executor : JobExecutor: runs one job to a terminal state
    runner   : CeleryJobRunner, DirectJobRunner, get_job_runner
    scheduler: recurring sweeps (overdue targets, trends, cleanup, stalled jobs)
"""

from __future__ import annotations
