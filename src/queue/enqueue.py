"""
Upload-side entry points: signed upload URLs and job creation from
storage events.
"""

import re
from typing import Any, Protocol

from src.core.exceptions import (
    FileRecordNotFoundError,
    InvalidStorageEventError,
    truncate_message,
)
from src.core.models import Job
from src.observability.logger import get_logger
from src.storage import BlobStore
from src.warehouse.files import FileStore

logger = get_logger(__name__)

UUID_PATTERN = re.compile(
    r"^[0-9a-f]{8}-[0-9a-f]{4}-[0-9a-f]{4}-[0-9a-f]{4}-[0-9a-f]{12}$", re.IGNORECASE
)
_UNSAFE_PATH_PARTS = re.compile(r"^/+|/+$|\.\./")


class JobCreator(Protocol):
    async def create_job(
        self, file_id: str, storage_path: str, catalog: str | None, doc_type: str | None
    ) -> Job: ...


def sanitize_filename(filename: str) -> str:
    """Strip leading/trailing slashes and parent-directory segments."""
    previous = None
    while previous != filename:
        previous = filename
        filename = _UNSAFE_PATH_PARTS.sub("", filename)
    return filename


async def create_upload_url(blob_store: BlobStore, filename: str, file_id: str) -> dict[str, str]:
    """
    Create a signed upload URL for a new statement.

    The object is stored under <file_id>/<filename> and tagged with the
    file_id so storage events can be correlated with the files record.

    Raises:
        ValueError: If filename is empty or file_id is not a UUID
    """
    if not filename or not file_id:
        raise ValueError("Filename and file_id are required")
    if not UUID_PATTERN.match(file_id):
        raise ValueError("Invalid file_id format")

    path = f"{file_id}/{sanitize_filename(filename)}"
    logger.info(f"Generating signed upload URL for path: {path}", extra={"file_id": file_id})
    return await blob_store.create_signed_upload_url(path, {"file_id": file_id})


def extract_file_id(record: dict[str, Any]) -> str:
    """
    Find the file_id of a storage object.

    Object metadata wins; otherwise the second-to-last path segment is
    used (paths look like [<owner>/]<file_id>/<filename>).

    Raises:
        InvalidStorageEventError: If no UUID file_id can be found
    """
    metadata = record.get("metadata") or {}
    file_id = metadata.get("file_id")
    if file_id:
        return str(file_id)

    storage_path = record.get("name") or ""
    parts = storage_path.split("/")
    candidate = parts[-2] if len(parts) >= 2 else None
    if not candidate:
        raise InvalidStorageEventError(
            f"Invalid storage path format for file_id extraction: {storage_path}"
        )
    if not UUID_PATTERN.match(candidate):
        raise InvalidStorageEventError(
            f"Extracted segment from path is not a valid UUID: {candidate}"
        )
    return candidate


def is_object_insert(event: dict[str, Any]) -> bool:
    record = event.get("record") or {}
    return (
        event.get("type") == "INSERT"
        and event.get("table") == "objects"
        and event.get("schema") == "storage"
        and bool(record.get("name"))
    )


async def enqueue_from_storage_event(
    event: dict[str, Any],
    file_store: FileStore,
    job_store: JobCreator,
    error_message_max_length: int = 500,
) -> Job | None:
    """
    Create a pending job for a newly stored upload.

    Args:
        event: Storage webhook payload
        file_store: files table access
        job_store: processing_queue access
        error_message_max_length: Bound for the file error write-back

    Returns:
        The created Job, or None for events that are not object inserts

    Raises:
        InvalidStorageEventError: If the object cannot be tied to a file_id
        FileRecordNotFoundError: If the files record is missing
    """
    if not is_object_insert(event):
        logger.warning(
            "Ignoring event: Not a storage object insertion or missing record data.",
            extra={"event_type": event.get("type"), "table": event.get("table")},
        )
        return None

    record = event["record"]
    storage_path = record["name"]
    file_id = extract_file_id(record)
    logger.info(f"Processing storage event for path: {storage_path}", extra={"file_id": file_id})

    try:
        file_record = await file_store.get_file(file_id)
        if file_record is None:
            raise FileRecordNotFoundError(file_id)

        job = await job_store.create_job(
            file_id=file_id,
            storage_path=storage_path,
            catalog=file_record.catalog or "unknown",
            doc_type=file_record.doc_type or "unknown",
        )
    except FileRecordNotFoundError:
        raise
    except Exception as e:
        await _write_back_file_error(file_store, file_id, e, error_message_max_length)
        raise

    logger.info(f"Successfully queued job for file_id {file_id}", extra={"job_id": job.id})
    return job


async def _write_back_file_error(
    file_store: FileStore, file_id: str, error: Exception, max_length: int
) -> None:
    try:
        await file_store.mark_failed(file_id, truncate_message(str(error), max_length))
    except Exception as e:
        logger.error(
            f"Failed to record upload error on file {file_id}: {e}",
            extra={"file_id": file_id},
            exc_info=True,
        )
