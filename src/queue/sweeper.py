"""
Stale job sweeper.

A worker that dies or exceeds its host's time budget leaves its job in
processing forever. The sweeper fails such jobs once they have gone
without a progress update for longer than the timeout.
"""

from typing import Protocol

from src.observability import metrics
from src.observability.logger import get_logger

logger = get_logger(__name__)

STALE_JOB_MESSAGE = "Job exceeded processing time budget"


class StaleJobStore(Protocol):
    async def fail_stale(self, older_than_seconds: int, error_message: str) -> list[str]: ...


class StaleJobSweeper:
    def __init__(self, job_store: StaleJobStore, timeout_seconds: int = 900):
        if timeout_seconds <= 0:
            raise ValueError("timeout_seconds must be positive")
        self.job_store = job_store
        self.timeout_seconds = timeout_seconds

    async def sweep(self, timeout_seconds: int | None = None) -> list[str]:
        """
        Fail processing jobs idle for longer than the timeout.

        Returns:
            IDs of the failed jobs
        """
        timeout = timeout_seconds or self.timeout_seconds
        job_ids = await self.job_store.fail_stale(timeout, STALE_JOB_MESSAGE)
        for job_id in job_ids:
            logger.warning(
                f"Job {job_id} was stuck in processing for over {timeout}s; marked failed",
                extra={"job_id": job_id, "timeout_seconds": timeout},
            )
            metrics.record_job("swept")
        return job_ids
