"""
Ingestion worker CLI.

Usage:
    python -m src.cli.ingest_cli process --job-id <job_id>
    python -m src.cli.ingest_cli process-pending [--limit N]
    python -m src.cli.ingest_cli status --job-id <job_id>
    python -m src.cli.ingest_cli sweep-stale [--timeout-seconds S]
    python -m src.cli.ingest_cli enqueue --event-file <path>

Connection settings come from the environment (see Settings.from_env).
"""

import argparse
import asyncio
import json
import sys
from contextlib import asynccontextmanager
from dataclasses import dataclass

from src.batch import IngestionPipeline
from src.batch.writers import BatchRowWriter
from src.core.exceptions import IngestionError
from src.core.mapping import ColumnMap
from src.core.models import JobStatus
from src.core.normalizer import RowNormalizer
from src.core.settings import Settings
from src.embeddings import OpenAIEmbedder
from src.observability.logger import get_logger
from src.observability.metrics import start_metrics_server
from src.queue import JobOrchestrator, StaleJobSweeper, enqueue_from_storage_event
from src.storage import SupabaseBlobStore
from src.warehouse.connection import DatabaseConnectionPool
from src.warehouse.files import PostgresFileStore
from src.warehouse.jobs import PostgresJobStore
from src.warehouse.rows import PostgresRowStore

logger = get_logger(__name__)


@dataclass
class Services:
    """Service handles for one CLI invocation."""

    settings: Settings
    pool: DatabaseConnectionPool
    job_store: PostgresJobStore
    file_store: PostgresFileStore
    blob_store: SupabaseBlobStore | None = None
    embedder: OpenAIEmbedder | None = None

    def orchestrator(self) -> JobOrchestrator:
        normalizer = RowNormalizer(
            column_map=(
                ColumnMap.from_yaml(self.settings.column_map_path)
                if self.settings.column_map_path
                else None
            ),
            value_metric=self.settings.value_metric,
        )
        row_writer = BatchRowWriter(self.embedder, PostgresRowStore(self.pool), normalizer)
        pipeline = IngestionPipeline(self.blob_store, row_writer, self.settings.batch_size)
        return JobOrchestrator(
            self.job_store, pipeline, self.settings.error_message_max_length
        )


@asynccontextmanager
async def open_services(settings: Settings, processing: bool = False):
    """
    Open the database pool and, for processing commands, the storage and
    embedding clients. Everything is closed on exit.
    """
    pool = DatabaseConnectionPool.from_settings(settings)
    await pool.open()
    services = Services(
        settings=settings,
        pool=pool,
        job_store=PostgresJobStore(pool),
        file_store=PostgresFileStore(pool),
    )
    try:
        if processing:
            services.blob_store = SupabaseBlobStore.from_settings(settings)
            services.embedder = OpenAIEmbedder.from_settings(settings)
        yield services
    finally:
        if services.embedder is not None:
            await services.embedder.close()
        if services.blob_store is not None:
            await services.blob_store.close()
        await pool.close()


def print_job(job) -> None:
    print(json.dumps(job.model_dump(mode="json"), indent=2))


async def process_command(args, settings: Settings) -> None:
    """
    Claim and process a single job.

    Args:
        args: Command line arguments
        settings: Runtime settings
    """
    logger.info(f"Processing job: {args.job_id}")

    async with open_services(settings, processing=True) as services:
        job = await services.orchestrator().claim_and_process(args.job_id)

    if job is None:
        print(f"\nJob {args.job_id} was not pending; nothing to do.")
        return
    if job.status is not JobStatus.COMPLETED:
        raise IngestionError(
            f"Job {job.id} was ended by another writer while processing "
            f"(status: {job.status.value}, error: {job.error_message})"
        )
    print(
        f"\nJob {job.id} completed: "
        f"{job.processed_row_count}/{job.total_row_count} rows"
    )


async def process_pending_command(args, settings: Settings) -> None:
    """
    Process pending jobs oldest first, one at a time.

    A failed job does not stop the run; the command fails at the end if
    any job failed.

    Args:
        args: Command line arguments
        settings: Runtime settings
    """
    failed = []
    completed = 0

    async with open_services(settings, processing=True) as services:
        jobs = await services.job_store.list_jobs(JobStatus.PENDING, limit=args.limit)
        logger.info(f"Found {len(jobs)} pending job(s)")
        orchestrator = services.orchestrator()

        for job in jobs:
            try:
                result = await orchestrator.claim_and_process(job.id)
            except Exception as e:
                # The orchestrator has already persisted the failure
                logger.error(
                    f"Job {job.id} failed: {type(e).__name__}: {e}",
                    extra={"job_id": job.id},
                )
                failed.append(job.id)
                continue
            if result is None:
                continue
            if result.status is JobStatus.COMPLETED:
                completed += 1
            else:
                failed.append(job.id)

    print(f"\n{'=' * 60}")
    print("PROCESSING RESULTS")
    print(f"{'=' * 60}\n")
    print(f"  Pending jobs found: {len(jobs)}")
    print(f"  Completed: {completed}")
    print(f"  Failed: {len(failed)}")
    for job_id in failed:
        print(f"    - {job_id}")
    print(f"\n{'=' * 60}\n")

    if failed:
        raise IngestionError(f"{len(failed)} job(s) failed")


async def status_command(args, settings: Settings) -> None:
    """
    Print job status and progress.

    Args:
        args: Command line arguments
        settings: Runtime settings
    """
    async with open_services(settings) as services:
        job = await services.job_store.get_job(args.job_id)

    if job is None:
        print(f"\nNo job found with ID: {args.job_id}")
        sys.exit(1)
    print_job(job)


async def sweep_stale_command(args, settings: Settings) -> None:
    """
    Fail jobs stuck in processing.

    Args:
        args: Command line arguments
        settings: Runtime settings
    """
    timeout = args.timeout_seconds or settings.stale_job_timeout_seconds
    logger.info(f"Sweeping jobs idle in processing for over {timeout}s")

    async with open_services(settings) as services:
        sweeper = StaleJobSweeper(services.job_store, timeout)
        job_ids = await sweeper.sweep()

    print(f"\nMarked {len(job_ids)} stale job(s) as failed.")
    for job_id in job_ids:
        print(f"  - {job_id}")


async def enqueue_command(args, settings: Settings) -> None:
    """
    Create a job from a storage webhook payload.

    Args:
        args: Command line arguments
        settings: Runtime settings
    """
    logger.info(f"Enqueueing from event file: {args.event_file}")
    with open(args.event_file, "r") as f:
        event = json.load(f)

    async with open_services(settings) as services:
        job = await enqueue_from_storage_event(
            event,
            services.file_store,
            services.job_store,
            settings.error_message_max_length,
        )

    if job is None:
        print("\nEvent ignored: not a storage object insertion.")
        return
    print_job(job)


COMMANDS = {
    "process": process_command,
    "process-pending": process_pending_command,
    "status": status_command,
    "sweep-stale": sweep_stale_command,
    "enqueue": enqueue_command,
}


def main():
    """Main entry point for the ingestion CLI."""
    parser = argparse.ArgumentParser(
        description="Royalty statement ingestion worker",
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    parser.add_argument(
        "--env-file",
        help="Path to a .env file (default: INGEST_ENV_FILE or ./.env)",
    )
    parser.add_argument(
        "--metrics",
        action="store_true",
        help="Expose Prometheus metrics on METRICS_PORT while running",
    )

    subparsers = parser.add_subparsers(dest="command", help="Available commands")

    process_parser = subparsers.add_parser("process", help="Claim and process one job")
    process_parser.add_argument("--job-id", required=True, help="processing_queue job ID")

    pending_parser = subparsers.add_parser(
        "process-pending", help="Process pending jobs oldest first"
    )
    pending_parser.add_argument(
        "--limit",
        type=int,
        default=10,
        help="Maximum number of jobs to process (default: 10)",
    )

    status_parser = subparsers.add_parser("status", help="Show job status and progress")
    status_parser.add_argument("--job-id", required=True, help="processing_queue job ID")

    sweep_parser = subparsers.add_parser(
        "sweep-stale", help="Fail jobs stuck in processing"
    )
    sweep_parser.add_argument(
        "--timeout-seconds",
        type=int,
        help="Idle time before a processing job is failed (default: STALE_JOB_TIMEOUT_SECONDS)",
    )

    enqueue_parser = subparsers.add_parser(
        "enqueue", help="Create a job from a storage webhook payload"
    )
    enqueue_parser.add_argument(
        "--event-file", required=True, help="JSON file with the webhook payload"
    )

    args = parser.parse_args()

    if not args.command:
        parser.print_help()
        sys.exit(1)

    try:
        settings = Settings.from_env(args.env_file)
        if args.metrics:
            start_metrics_server()
        asyncio.run(COMMANDS[args.command](args, settings))
    except KeyboardInterrupt:
        print("\nInterrupted by user")
        sys.exit(130)
    except Exception as e:
        logger.error(f"Command {args.command} failed: {e}", exc_info=True)
        print(f"\nError: {e}")
        sys.exit(1)


if __name__ == "__main__":
    main()
