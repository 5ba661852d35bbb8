"""
Unit tests for JobOrchestrator.

Drives whole jobs through the state machine against in-memory stores.
"""

import pytest

from src.batch import IngestionPipeline
from src.batch.writers import BatchRowWriter
from src.core.exceptions import EmbeddingError, JobNotFoundError, UpsertError
from src.core.models import JobStatus
from src.queue import JobOrchestrator

FILE_ID = "3f9a9c1e-6a77-4c53-9a39-0ad2f0c5e0d4"
JOB_ID = "7d1d3a2e-2f57-4b0e-8a5b-0f6a3c1b9e10"
HEADER = "Client Code,Income Period,Income Type Name,Amount Collected"
CSV_PATH = f"{FILE_ID}/statement.csv"


def statement(row_count: int) -> bytes:
    lines = [HEADER] + [f"100047,202312,Streaming,{i}.00" for i in range(1, row_count + 1)]
    return ("\n".join(lines) + "\n").encode("utf-8")


@pytest.fixture
def orchestrator(job_store, blob_store, embedder, row_store):
    pipeline = IngestionPipeline(blob_store, BatchRowWriter(embedder, row_store), batch_size=1)
    return JobOrchestrator(job_store, pipeline)


@pytest.mark.unit
class TestClaimAndProcess:
    """Tests for JobOrchestrator.claim_and_process"""

    @pytest.mark.asyncio
    async def test_pending_job_completes(self, orchestrator, job_store, blob_store, row_store):
        job_store.add(storage_path=CSV_PATH, catalog="100047")
        blob_store.objects[CSV_PATH] = statement(3)

        completed = await orchestrator.claim_and_process(JOB_ID)

        assert completed.status is JobStatus.COMPLETED
        assert completed.attempts == 1
        assert completed.processed_row_count == 3
        assert completed.total_row_count == 4  # newline estimate includes the header
        assert completed.error_message is None
        assert len(row_store.rows) == 3

    @pytest.mark.asyncio
    async def test_progress_checkpointed_per_batch(self, orchestrator, job_store, blob_store):
        job_store.add(storage_path=CSV_PATH)
        blob_store.objects[CSV_PATH] = statement(3)

        await orchestrator.claim_and_process(JOB_ID)

        processed = [p for p, _ in job_store.progress_calls]
        assert processed == sorted(processed)
        assert processed[-3:] == [1, 2, 3]

    @pytest.mark.asyncio
    async def test_processing_job_is_not_reclaimed(self, orchestrator, job_store, blob_store):
        job_store.add(storage_path=CSV_PATH, status="processing", attempts=1)
        blob_store.objects[CSV_PATH] = statement(1)

        result = await orchestrator.claim_and_process(JOB_ID)

        assert result is None
        assert job_store.jobs[JOB_ID].attempts == 1
        assert job_store.jobs[JOB_ID].status is JobStatus.PROCESSING
        assert blob_store.downloads == []

    @pytest.mark.parametrize("status", ["completed", "failed"])
    @pytest.mark.asyncio
    async def test_terminal_jobs_are_left_alone(self, orchestrator, job_store, blob_store, status):
        job_store.add(storage_path=CSV_PATH, status=status)

        assert await orchestrator.claim_and_process(JOB_ID) is None
        assert job_store.jobs[JOB_ID].status.value == status
        assert blob_store.downloads == []

    @pytest.mark.asyncio
    async def test_lost_claim_race_does_nothing(self, orchestrator, job_store, blob_store):
        job_store.add(storage_path=CSV_PATH)
        job_store.claim_result = False

        assert await orchestrator.claim_and_process(JOB_ID) is None
        assert job_store.jobs[JOB_ID].attempts == 0
        assert blob_store.downloads == []

    @pytest.mark.asyncio
    async def test_missing_job_raises(self, orchestrator):
        with pytest.raises(JobNotFoundError, match="not found"):
            await orchestrator.claim_and_process("00000000-0000-4000-8000-000000000000")

    @pytest.mark.asyncio
    async def test_failed_batch_keeps_earlier_batches(self, orchestrator, job_store, blob_store, row_store):
        job_store.add(storage_path=CSV_PATH)
        blob_store.objects[CSV_PATH] = statement(5)
        row_store.fail_on_call = 3

        with pytest.raises(UpsertError):
            await orchestrator.claim_and_process(JOB_ID)

        job = job_store.jobs[JOB_ID]
        assert job.status is JobStatus.FAILED
        assert "upsert failed" in job.error_message
        assert set(row_store.rows) == {(FILE_ID, 1), (FILE_ID, 2)}
        assert row_store.calls == 3
        assert job.processed_row_count == 2

    @pytest.mark.asyncio
    async def test_error_message_truncated(self, orchestrator, job_store, blob_store, embedder):
        job_store.add(storage_path=CSV_PATH)
        blob_store.objects[CSV_PATH] = statement(1)
        embedder.error = RuntimeError("x" * 2000)

        with pytest.raises(EmbeddingError):
            await orchestrator.claim_and_process(JOB_ID)

        message = job_store.jobs[JOB_ID].error_message
        assert len(message) == 500
        assert message.startswith("Embedding generation failed")

    @pytest.mark.asyncio
    async def test_download_failure_marks_job_failed(self, orchestrator, job_store):
        job_store.add(storage_path=CSV_PATH)

        with pytest.raises(Exception, match="empty or missing"):
            await orchestrator.claim_and_process(JOB_ID)

        assert job_store.jobs[JOB_ID].status is JobStatus.FAILED

    @pytest.mark.asyncio
    async def test_unsupported_file_type_marks_job_failed(self, orchestrator, job_store):
        job_store.add(storage_path=f"{FILE_ID}/statement.txt")

        with pytest.raises(Exception):
            await orchestrator.claim_and_process(JOB_ID)

        job = job_store.jobs[JOB_ID]
        assert job.status is JobStatus.FAILED
        assert job.error_message == "Unsupported file type: txt"

    @pytest.mark.asyncio
    async def test_pdf_completes_with_no_rows(self, orchestrator, job_store, blob_store):
        job_store.add(storage_path=f"{FILE_ID}/statement.pdf")

        completed = await orchestrator.claim_and_process(JOB_ID)

        assert completed.status is JobStatus.COMPLETED
        assert completed.processed_row_count == 0
        assert completed.total_row_count == 0
        assert blob_store.downloads == []

    @pytest.mark.asyncio
    async def test_checkpoint_failures_do_not_fail_job(self, orchestrator, job_store, blob_store):
        job_store.add(storage_path=CSV_PATH)
        blob_store.objects[CSV_PATH] = statement(2)
        job_store.fail_progress = True

        completed = await orchestrator.claim_and_process(JOB_ID)

        assert completed.status is JobStatus.COMPLETED
        assert completed.processed_row_count == 2

    @pytest.mark.asyncio
    async def test_attempt_counter_failure_is_not_fatal(self, orchestrator, job_store, blob_store):
        job_store.add(storage_path=CSV_PATH)
        blob_store.objects[CSV_PATH] = statement(1)
        job_store.fail_increment = True

        completed = await orchestrator.claim_and_process(JOB_ID)

        assert completed.status is JobStatus.COMPLETED
        assert completed.attempts == 0

    @pytest.mark.asyncio
    async def test_original_error_surfaces_when_status_write_fails(
        self, orchestrator, job_store, blob_store, row_store
    ):
        job_store.add(storage_path=CSV_PATH)
        blob_store.objects[CSV_PATH] = statement(1)
        row_store.fail_on_call = 1
        job_store.fail_mark_failed = True

        with pytest.raises(UpsertError):
            await orchestrator.claim_and_process(JOB_ID)

    @pytest.mark.asyncio
    async def test_second_claim_after_completion_is_noop(self, orchestrator, job_store, blob_store):
        job_store.add(storage_path=CSV_PATH)
        blob_store.objects[CSV_PATH] = statement(1)

        await orchestrator.claim_and_process(JOB_ID)
        assert await orchestrator.claim_and_process(JOB_ID) is None

        assert job_store.jobs[JOB_ID].attempts == 1
        assert blob_store.downloads == [CSV_PATH]

    @pytest.mark.asyncio
    async def test_job_failed_by_sweeper_mid_run_is_not_completed(
        self, orchestrator, job_store, blob_store, row_store
    ):
        job_store.add(storage_path=CSV_PATH)
        blob_store.objects[CSV_PATH] = statement(1)
        upsert = row_store.upsert_rows

        async def upsert_then_sweep(rows):
            written = await upsert(rows)
            job_store._update(
                JOB_ID,
                status=JobStatus.FAILED,
                error_message="Job exceeded processing time budget",
            )
            return written

        row_store.upsert_rows = upsert_then_sweep

        result = await orchestrator.claim_and_process(JOB_ID)

        assert result.status is JobStatus.FAILED
        assert result.error_message == "Job exceeded processing time budget"
        assert job_store.jobs[JOB_ID].status is JobStatus.FAILED
