"""
Job model representing one processing_queue record.
"""

from datetime import datetime
from enum import Enum

from pydantic import BaseModel, Field


class JobStatus(str, Enum):
    """Lifecycle states of an ingestion job."""

    PENDING = "pending"
    PROCESSING = "processing"
    COMPLETED = "completed"
    FAILED = "failed"


class Job(BaseModel):
    """
    One queued, trackable unit of work for ingesting one uploaded file.

    Attributes:
        id: Job identifier (PK)
        file_id: files.id of the uploaded file
        storage_path: Object path inside the storage bucket
        catalog: Catalog recorded at enqueue time
        doc_type: Document type recorded at enqueue time
        status: Current lifecycle state
        attempts: Number of claim attempts so far
        processed_row_count: Rows included in flushed batches
        total_row_count: Expected rows (estimate for CSV, exact for XLSX)
        error_message: Truncated failure message
        created_at: Insert time
        updated_at: Last mutation time
    """

    id: str = Field(..., min_length=1)
    file_id: str
    storage_path: str = Field(..., min_length=1)
    catalog: str | None = None
    doc_type: str | None = None
    status: JobStatus = JobStatus.PENDING
    attempts: int = Field(default=0, ge=0)
    processed_row_count: int = Field(default=0, ge=0)
    total_row_count: int = Field(default=0, ge=0)
    error_message: str | None = None
    created_at: datetime | None = None
    updated_at: datetime | None = None

    class Config:
        json_schema_extra = {
            "example": {
                "id": "7d1d3a2e-2f57-4b0e-8a5b-0f6a3c1b9e10",
                "file_id": "3f9a9c1e-6a77-4c53-9a39-0ad2f0c5e0d4",
                "storage_path": "3f9a9c1e-6a77-4c53-9a39-0ad2f0c5e0d4/statement_2023Q4.csv",
                "catalog": "100047",
                "doc_type": "evaluation",
                "status": "processing",
                "attempts": 1,
                "processed_row_count": 300,
                "total_row_count": 1250,
            }
        }
