"""
Progress checkpoints persisted on the job record.
"""

from src.observability import metrics
from src.observability.logger import get_logger
from src.warehouse.jobs import JobStore

logger = get_logger(__name__)


class JobProgressReporter:
    """
    Writes (processed, total) to processing_queue after every batch.

    Checkpoint failures are logged and swallowed: losing a progress
    update never fails the job.
    """

    def __init__(self, job_store: JobStore, job_id: str):
        self.job_store = job_store
        self.job_id = job_id
        self.processed = 0
        self.total = 0

    async def report(self, processed: int, total: int | None = None) -> None:
        # Counters never move backwards within a run
        self.processed = max(self.processed, processed)
        if total is not None:
            self.total = max(self.total, total)
        total_to_write = self.total if total is not None else None

        logger.info(
            f"Updating job {self.job_id} progress (processed: {self.processed}, total: {self.total})",
            extra={"job_id": self.job_id, "processed": self.processed, "total": self.total},
        )
        try:
            await self.job_store.update_progress(
                self.job_id, processed=self.processed, total=total_to_write
            )
        except Exception as e:
            metrics.record_checkpoint_failure()
            logger.error(
                f"Failed to update progress for job {self.job_id}: {e}",
                extra={"job_id": self.job_id},
                exc_info=True,
            )
