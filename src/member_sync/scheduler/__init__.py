"""
Scheduling for reconciliation passes

Runs the engine on an interval or cron trigger using APScheduler, with at
most one pass in flight and a JSON report written per pass.
"""

from .jobs import report_filename, run_sync_job
from .scheduler import SyncScheduler

__all__ = [
    "SyncScheduler",
    "run_sync_job",
    "report_filename",
]
