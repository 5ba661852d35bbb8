"""
Core data models for the royalty statement ingestion pipeline.

All models use Pydantic for runtime validation and type safety.
"""

from .canonical_row import CanonicalRow
from .file_record import FileRecord
from .job import Job, JobStatus

__all__ = [
    "Job",
    "JobStatus",
    "FileRecord",
    "CanonicalRow",
]
