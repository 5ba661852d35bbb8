"""
Job orchestration: the processing_queue state machine.

    pending --(claim)--> processing --(success)--> completed
    processing --(unhandled error)--> failed

A claim on a job that is not pending does nothing. Failures are
persisted on the job and re-raised; retrying is the caller's decision.
"""

from src.batch.pipeline import IngestionPipeline
from src.core.exceptions import JobNotFoundError, truncate_message
from src.core.models import Job, JobStatus
from src.observability import metrics
from src.observability.logger import get_logger, job_context, log_operation
from src.queue.progress import JobProgressReporter
from src.warehouse.jobs import JobStore

logger = get_logger(__name__)


class JobOrchestrator:
    """
    Claims jobs and drives them through file processing.

    The orchestrator is the only component that changes job status.
    """

    def __init__(
        self,
        job_store: JobStore,
        pipeline: IngestionPipeline,
        error_message_max_length: int = 500,
    ):
        """
        Initialize orchestrator.

        Args:
            job_store: processing_queue access
            pipeline: File processing pipeline
            error_message_max_length: Bound for persisted error messages
        """
        self.job_store = job_store
        self.pipeline = pipeline
        self.error_message_max_length = error_message_max_length

    async def claim_and_process(self, job_id: str) -> Job | None:
        """
        Claim a pending job and ingest its file.

        Args:
            job_id: processing_queue id

        Returns:
            The job after the run: completed, or in whatever state another
            writer (the stale sweeper) left it. None when the job was not
            pending.

        Raises:
            JobNotFoundError: If the job does not exist
            Exception: Any processing failure, after the job is marked failed
        """
        job = await self.job_store.get_job(job_id)
        if job is None:
            raise JobNotFoundError(job_id)

        if job.status is not JobStatus.PENDING:
            logger.warning(
                f"Job {job_id} is not in pending state (current: {job.status.value}). Skipping.",
                extra={"job_id": job_id, "status": job.status.value},
            )
            metrics.record_job("skipped")
            return None

        if not await self.job_store.claim(job_id):
            logger.warning(
                f"Job {job_id} was claimed by another worker. Skipping.",
                extra={"job_id": job_id},
            )
            metrics.record_job("skipped")
            return None

        await self._increment_attempts(job_id)

        progress = JobProgressReporter(self.job_store, job_id)
        await progress.report(0, 0)

        operation = log_operation(
            "Processing job",
            logger=logger,
            job_id=job_id,
            file_id=job.file_id,
            storage_path=job.storage_path,
        )
        file_format = None
        try:
            with job_context(job_id), operation:
                result = await self.pipeline.process_file(job, progress)
                file_format = result.file_format.value
        except Exception as e:
            await self._fail(job_id, e)
            metrics.record_job("failed", file_format, operation.elapsed)
            raise

        completed = await self.job_store.mark_completed(
            job_id, processed=progress.processed, total=progress.total
        )
        if completed is None:
            current = await self.job_store.get_job(job_id)
            state = current.status.value if current else "missing"
            logger.warning(
                f"Job {job_id} finished processing but was no longer in processing state (current: {state}). "
                "Not marking it completed.",
                extra={"job_id": job_id, "status": state},
            )
            metrics.record_job("superseded", file_format, operation.elapsed)
            return current

        metrics.record_job("completed", file_format, operation.elapsed)
        logger.info(
            f"Successfully processed and updated job {job_id} status to 'completed'.",
            extra={
                "job_id": job_id,
                "processed_row_count": progress.processed,
                "total_row_count": progress.total,
            },
        )
        return completed

    async def _increment_attempts(self, job_id: str) -> None:
        try:
            attempts = await self.job_store.increment_attempts(job_id)
        except Exception as e:
            logger.error(
                f"Failed to increment attempts for job {job_id}: {e}",
                extra={"job_id": job_id},
                exc_info=True,
            )
        else:
            logger.info(f"Job {job_id} is now attempt number {attempts}.", extra={"job_id": job_id})

    async def _fail(self, job_id: str, error: Exception) -> None:
        message = truncate_message(str(error) or type(error).__name__, self.error_message_max_length)
        try:
            await self.job_store.mark_failed(job_id, message)
        except Exception as e:
            # The original error is the one surfaced to the caller
            logger.error(
                f"Failed to mark job {job_id} as failed: {e}",
                extra={"job_id": job_id},
                exc_info=True,
            )
