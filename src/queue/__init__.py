"""
Processing queue: job orchestration, progress and upload entry points.
"""

from .enqueue import create_upload_url, enqueue_from_storage_event
from .orchestrator import JobOrchestrator
from .progress import JobProgressReporter
from .sweeper import StaleJobSweeper

__all__ = [
    "JobOrchestrator",
    "JobProgressReporter",
    "StaleJobSweeper",
    "create_upload_url",
    "enqueue_from_storage_event",
]
