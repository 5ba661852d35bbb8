"""
processing_queue persistence.

Every status change is a conditional UPDATE on the expected current
status, so two workers can never both move the same job forward.
"""

from typing import Protocol

import psycopg

from src.core.models import Job, JobStatus
from src.observability.logger import get_logger
from src.warehouse.connection import DatabaseConnectionPool

logger = get_logger(__name__)

JOB_COLUMNS = """
    id::text AS id, file_id::text AS file_id, storage_path, catalog, doc_type,
    status, attempts, processed_row_count, total_row_count, error_message,
    created_at, updated_at
"""


class JobStore(Protocol):
    """Operations the orchestrator needs on the processing_queue table."""

    async def get_job(self, job_id: str) -> Job | None: ...

    async def increment_attempts(self, job_id: str) -> int: ...

    async def claim(self, job_id: str) -> bool: ...

    async def update_progress(
        self, job_id: str, processed: int | None = None, total: int | None = None
    ) -> None: ...

    async def mark_completed(
        self, job_id: str, processed: int | None = None, total: int | None = None
    ) -> Job | None: ...

    async def mark_failed(self, job_id: str, error_message: str) -> bool: ...


class PostgresJobStore:
    """
    JobStore backed by the processing_queue table.
    """

    def __init__(self, pool: DatabaseConnectionPool):
        """
        Initialize job store.

        Args:
            pool: Database connection pool
        """
        self.pool = pool

    async def get_job(self, job_id: str) -> Job | None:
        rows = await self.pool.execute_query(
            f"SELECT {JOB_COLUMNS} FROM processing_queue WHERE id = %s",
            (job_id,),
        )
        return Job(**rows[0]) if rows else None

    async def create_job(
        self,
        file_id: str,
        storage_path: str,
        catalog: str | None,
        doc_type: str | None,
    ) -> Job:
        """
        Insert a new pending job with zero attempts.

        Returns:
            The created Job
        """
        row = await self.pool.execute_returning(
            f"""
            INSERT INTO processing_queue (file_id, storage_path, catalog, doc_type, status, attempts)
            VALUES (%s, %s, %s, %s, %s, 0)
            RETURNING {JOB_COLUMNS}
            """,
            (file_id, storage_path, catalog, doc_type, JobStatus.PENDING.value),
        )
        return Job(**row)

    async def list_jobs(self, status: JobStatus, limit: int = 100) -> list[Job]:
        """List jobs in a status, oldest first."""
        rows = await self.pool.execute_query(
            f"""
            SELECT {JOB_COLUMNS} FROM processing_queue
            WHERE status = %s
            ORDER BY created_at ASC
            LIMIT %s
            """,
            (status.value, limit),
        )
        return [Job(**row) for row in rows]

    async def increment_attempts(self, job_id: str) -> int:
        """
        Atomically add one to attempts.

        Returns:
            The new attempts value
        """
        row = await self.pool.execute_returning(
            "SELECT increment_job_attempts(%s) AS attempts",
            (job_id,),
        )
        return int(row["attempts"])

    async def claim(self, job_id: str) -> bool:
        """
        Move a pending job to processing and reset its counters.

        Returns:
            False if the job was no longer pending
        """
        count = await self.pool.execute_command(
            """
            UPDATE processing_queue
            SET status = %s, processed_row_count = 0, total_row_count = 0,
                error_message = NULL, updated_at = now()
            WHERE id = %s AND status = %s
            """,
            (JobStatus.PROCESSING.value, job_id, JobStatus.PENDING.value),
        )
        return count == 1

    async def update_progress(
        self, job_id: str, processed: int | None = None, total: int | None = None
    ) -> None:
        """
        Persist progress counters of a processing job.

        Counters only move forward; a smaller value leaves the stored one.
        """
        await self.pool.execute_command(
            """
            UPDATE processing_queue
            SET processed_row_count = GREATEST(processed_row_count, COALESCE(%s, processed_row_count)),
                total_row_count = GREATEST(total_row_count, COALESCE(%s, total_row_count)),
                updated_at = now()
            WHERE id = %s AND status = %s
            """,
            (processed, total, job_id, JobStatus.PROCESSING.value),
        )

    async def mark_completed(
        self, job_id: str, processed: int | None = None, total: int | None = None
    ) -> Job | None:
        """
        Finish a processing job with its final counters.

        Returns:
            The completed Job, or None if the job was not processing
        """
        row = await self.pool.execute_returning(
            f"""
            UPDATE processing_queue
            SET status = %s,
                processed_row_count = GREATEST(processed_row_count, COALESCE(%s, processed_row_count)),
                total_row_count = GREATEST(total_row_count, COALESCE(%s, total_row_count)),
                updated_at = now()
            WHERE id = %s AND status = %s
            RETURNING {JOB_COLUMNS}
            """,
            (JobStatus.COMPLETED.value, processed, total, job_id, JobStatus.PROCESSING.value),
        )
        return Job(**row) if row else None

    async def mark_failed(self, job_id: str, error_message: str) -> bool:
        """
        Fail a processing job with an error message.

        Returns:
            False if the job was not processing
        """
        count = await self.pool.execute_command(
            """
            UPDATE processing_queue
            SET status = %s, error_message = %s, updated_at = now()
            WHERE id = %s AND status = %s
            """,
            (JobStatus.FAILED.value, error_message, job_id, JobStatus.PROCESSING.value),
        )
        return count == 1

    async def fail_stale(self, older_than_seconds: int, error_message: str) -> list[str]:
        """
        Fail every processing job not updated within the given age.

        Returns:
            IDs of the jobs that were failed
        """
        try:
            rows = await self.pool.execute_query(
                """
                UPDATE processing_queue
                SET status = %s, error_message = %s, updated_at = now()
                WHERE status = %s AND updated_at < now() - make_interval(secs => %s::float8)
                RETURNING id::text AS id
                """,
                (
                    JobStatus.FAILED.value,
                    error_message,
                    JobStatus.PROCESSING.value,
                    older_than_seconds,
                ),
            )
        except psycopg.DatabaseError as e:
            logger.error(f"Failed to sweep stale jobs: {e}")
            raise
        return [row["id"] for row in rows]
