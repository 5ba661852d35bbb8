"""
Exception hierarchy for the ingestion pipeline.

Hard failures (missing records, transport, format, embedding and storage
errors) are raised as IngestionError subclasses and end the current job.
Row-level data problems are never raised; they are coerced to null.
"""


class IngestionError(Exception):
    """Base class for all fatal ingestion errors."""


class ConfigurationError(IngestionError):
    """Raised when required settings are missing or invalid."""


class JobNotFoundError(IngestionError):
    """Raised when a processing_queue record does not exist."""

    def __init__(self, job_id: str):
        self.job_id = job_id
        super().__init__(f"Job {job_id} not found")


class FileRecordNotFoundError(IngestionError):
    """Raised when a files record does not exist."""

    def __init__(self, file_id: str):
        self.file_id = file_id
        super().__init__(f"File record not found for id {file_id}")


class InvalidStorageEventError(IngestionError):
    """Raised when an upload event cannot be correlated with a file record."""


class StorageError(IngestionError):
    """Raised when the blob store rejects or fails a request."""


class EmptyBlobError(StorageError):
    """Raised when a downloaded object has no content."""

    def __init__(self, path: str):
        self.path = path
        super().__init__(
            f"Downloaded file is empty or missing at path {path}. "
            "Check if file exists at the specified path."
        )


class UnsupportedFileTypeError(IngestionError):
    """Raised when a file extension has no parser."""

    def __init__(self, extension: str | None):
        self.extension = extension
        super().__init__(f"Unsupported file type: {extension}")


class ParseError(IngestionError):
    """Raised when file content cannot be decoded into records."""


class EmbeddingError(IngestionError):
    """Raised when the embedding service fails for a batch."""


class EmbeddingCountMismatchError(EmbeddingError):
    """Raised when the embedding service returns the wrong number of vectors."""

    def __init__(self, expected: int, received: int):
        self.expected = expected
        self.received = received
        super().__init__(
            f"Mismatch between rows to upsert ({expected}) "
            f"and generated embeddings ({received})"
        )


class UpsertError(IngestionError):
    """Raised when the row store fails to persist a batch."""


def truncate_message(message: str, max_length: int = 500) -> str:
    """Bound an error message to the length stored on job and file records."""
    return str(message)[:max_length]
