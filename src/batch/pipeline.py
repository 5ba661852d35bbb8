"""
File processing pipeline.

Coordinates the flow for one job: download → detect format → parse in
batches → normalize/embed/upsert each batch → report progress.
"""

from dataclasses import dataclass

from src.batch.readers import FileFormat, FileReader, detect_format
from src.batch.readers.base import DEFAULT_BATCH_SIZE, RawRecord
from src.batch.writers import BatchRowWriter
from src.core.exceptions import EmptyBlobError
from src.core.models import Job
from src.core.progress import ProgressReporter
from src.observability.logger import get_logger
from src.storage import BlobStore

logger = get_logger(__name__)


@dataclass
class FileProcessingResult:
    """Outcome of processing one file."""

    file_format: FileFormat
    processed_row_count: int
    skipped: bool = False


class IngestionPipeline:
    """
    Runs the parse/embed/upsert flow for the file behind a job.

    Batches are handled strictly in source order, one at a time.
    """

    def __init__(
        self,
        blob_store: BlobStore,
        row_writer: BatchRowWriter,
        batch_size: int = DEFAULT_BATCH_SIZE,
    ):
        """
        Initialize ingestion pipeline.

        Args:
            blob_store: Source of uploaded file bytes
            row_writer: Batch embedder/upserter
            batch_size: Rows per batch
        """
        self.blob_store = blob_store
        self.row_writer = row_writer
        self.file_reader = FileReader(batch_size)

    async def process_file(self, job: Job, progress: ProgressReporter) -> FileProcessingResult:
        """
        Ingest the file referenced by a job.

        Args:
            job: Claimed job (storage_path, file_id, catalog, doc_type are used)
            progress: Progress port for checkpoints

        Returns:
            FileProcessingResult

        Raises:
            UnsupportedFileTypeError: If the extension has no parser
            StorageError: If the download fails or is empty
            ParseError, EmbeddingError, UpsertError: From the batch flow
        """
        file_format = detect_format(job.storage_path)

        if not file_format.capabilities.ingestible:
            logger.warning(
                f"{file_format.value.upper()} processing for job {job.id} is not implemented. Skipping.",
                extra={"job_id": job.id, "file_format": file_format.value},
            )
            await progress.report(0, 0)
            return FileProcessingResult(file_format, 0, skipped=True)

        logger.info(f"Downloading file: {job.storage_path}", extra={"job_id": job.id})
        data = await self.blob_store.download(job.storage_path)
        if not data:
            raise EmptyBlobError(job.storage_path)

        async def on_batch(records: list[RawRecord], first_row_number: int) -> None:
            await self.row_writer.process_batch(
                records,
                file_id=job.file_id,
                catalog=job.catalog,
                doc_type=job.doc_type,
                first_row_number=first_row_number,
            )

        processed = await self.file_reader.read(data, file_format, on_batch, progress)

        logger.info(
            f"Successfully processed {processed} rows for job {job.id}.",
            extra={"job_id": job.id, "processed_row_count": processed},
        )
        return FileProcessingResult(file_format, processed)
