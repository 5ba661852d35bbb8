"""
FileRecord model representing one row of the files table.
"""

from pydantic import BaseModel, Field


class FileRecord(BaseModel):
    """
    Metadata captured when a statement is uploaded.

    The pipeline only reads this record, except for the terminal error
    write-back when a job could not be created at all.

    Attributes:
        id: File identifier (PK, also used in the storage path)
        name: Original file name
        mime_type: Uploaded content type
        catalog: Catalog the upload belongs to
        doc_type: Document type (e.g. evaluation, reference)
        status: Upload status as tracked by the upload flow
        error_message: Terminal error message, if any
    """

    id: str = Field(..., min_length=1)
    name: str | None = None
    mime_type: str | None = None
    catalog: str | None = None
    doc_type: str | None = None
    status: str | None = None
    error_message: str | None = None
