"""
Pytest configuration and fixtures for royalty-ingest tests

This module provides shared fixtures for unit and integration tests:
in-memory stand-ins for the job, file, row and blob stores and the
embedder, plus a PostgreSQL container for the store integration tests.
"""
import os
from datetime import datetime, timedelta, timezone
from typing import Generator

import psycopg
import pytest

from src.core.exceptions import EmptyBlobError, UpsertError
from src.core.models import FileRecord, Job, JobStatus


# =======================
# PYTEST CONFIGURATION
# =======================

def pytest_configure(config):
    """Configure pytest with custom markers"""
    config.addinivalue_line(
        "markers", "unit: Unit tests that don't require external services"
    )
    config.addinivalue_line(
        "markers", "integration: Integration tests that require Docker containers"
    )
    config.addinivalue_line(
        "markers", "e2e: End-to-end tests that test the full pipeline"
    )
    config.addinivalue_line(
        "markers", "slow: Tests that take more than 5 seconds to run"
    )


# =======================
# IN-MEMORY SERVICES
# =======================

FILE_ID = "3f9a9c1e-6a77-4c53-9a39-0ad2f0c5e0d4"
JOB_ID = "7d1d3a2e-2f57-4b0e-8a5b-0f6a3c1b9e10"


class InMemoryJobStore:
    """processing_queue stand-in with the same conditional transitions."""

    def __init__(self):
        self.jobs: dict[str, Job] = {}
        self.progress_calls: list[tuple[int | None, int | None]] = []
        self.fail_progress = False
        self.fail_increment = False
        self.fail_mark_failed = False
        self.claim_result: bool | None = None
        self._next_id = 1

    def add(self, **fields) -> Job:
        job = Job(**{"id": JOB_ID, "file_id": FILE_ID, **fields})
        self.jobs[job.id] = job
        return job

    def _update(self, job_id: str, **changes) -> Job:
        job = self.jobs[job_id].model_copy(
            update={**changes, "updated_at": datetime.now(timezone.utc)}
        )
        self.jobs[job_id] = job
        return job

    async def get_job(self, job_id):
        return self.jobs.get(job_id)

    async def create_job(self, file_id, storage_path, catalog, doc_type):
        job_id = f"00000000-0000-4000-8000-{self._next_id:012d}"
        self._next_id += 1
        job = Job(
            id=job_id,
            file_id=file_id,
            storage_path=storage_path,
            catalog=catalog,
            doc_type=doc_type,
            created_at=datetime.now(timezone.utc),
            updated_at=datetime.now(timezone.utc),
        )
        self.jobs[job_id] = job
        return job

    async def list_jobs(self, status, limit=100):
        jobs = [job for job in self.jobs.values() if job.status is status]
        return jobs[:limit]

    async def increment_attempts(self, job_id):
        if self.fail_increment:
            raise RuntimeError("rpc unavailable")
        job = self._update(job_id, attempts=self.jobs[job_id].attempts + 1)
        return job.attempts

    async def claim(self, job_id):
        if self.claim_result is not None:
            return self.claim_result
        if self.jobs[job_id].status is not JobStatus.PENDING:
            return False
        self._update(
            job_id,
            status=JobStatus.PROCESSING,
            processed_row_count=0,
            total_row_count=0,
            error_message=None,
        )
        return True

    async def update_progress(self, job_id, processed=None, total=None):
        self.progress_calls.append((processed, total))
        if self.fail_progress:
            raise ConnectionError("checkpoint write failed")
        job = self.jobs[job_id]
        if job.status is not JobStatus.PROCESSING:
            return
        self._update(
            job_id,
            processed_row_count=max(job.processed_row_count, processed or 0),
            total_row_count=max(job.total_row_count, total or 0),
        )

    async def mark_completed(self, job_id, processed=None, total=None):
        job = self.jobs[job_id]
        if job.status is not JobStatus.PROCESSING:
            return None
        return self._update(
            job_id,
            status=JobStatus.COMPLETED,
            processed_row_count=max(job.processed_row_count, processed or 0),
            total_row_count=max(job.total_row_count, total or 0),
        )

    async def mark_failed(self, job_id, error_message):
        if self.fail_mark_failed:
            raise ConnectionError("status write failed")
        if self.jobs[job_id].status is not JobStatus.PROCESSING:
            return False
        self._update(job_id, status=JobStatus.FAILED, error_message=error_message)
        return True

    async def fail_stale(self, older_than_seconds, error_message):
        cutoff = datetime.now(timezone.utc) - timedelta(seconds=older_than_seconds)
        stale = [
            job.id
            for job in self.jobs.values()
            if job.status is JobStatus.PROCESSING and job.updated_at and job.updated_at < cutoff
        ]
        for job_id in stale:
            self._update(job_id, status=JobStatus.FAILED, error_message=error_message)
        return stale


class InMemoryFileStore:
    def __init__(self):
        self.files: dict[str, FileRecord] = {}
        self.failures: dict[str, str] = {}

    def add(self, **fields) -> FileRecord:
        record = FileRecord(**{"id": FILE_ID, **fields})
        self.files[record.id] = record
        return record

    async def get_file(self, file_id):
        return self.files.get(file_id)

    async def mark_failed(self, file_id, error_message):
        self.failures[file_id] = error_message


class InMemoryRowStore:
    """Row store keyed on (file_id, row_number), one call per batch."""

    def __init__(self):
        self.rows = {}
        self.calls = 0
        self.fail_on_call: int | None = None

    async def upsert_rows(self, rows):
        self.calls += 1
        if self.fail_on_call == self.calls:
            raise UpsertError("Database upsert failed: connection reset")
        for row in rows:
            self.rows[(row.file_id, row.row_number)] = row
        return len(rows)


class FakeEmbedder:
    """Deterministic embedder: vector derived from text length."""

    def __init__(self, dimensions: int = 4):
        self.dimensions = dimensions
        self.batches: list[list[str]] = []
        self.drop_last = False
        self.error: Exception | None = None

    async def embed(self, text):
        return [float(len(text))] + [0.0] * (self.dimensions - 1)

    async def embed_batch(self, texts):
        self.batches.append(list(texts))
        if self.error is not None:
            raise self.error
        vectors = [await self.embed(text) for text in texts]
        return vectors[:-1] if self.drop_last and vectors else vectors


class InMemoryBlobStore:
    def __init__(self):
        self.objects: dict[str, bytes] = {}
        self.downloads: list[str] = []
        self.signed_requests: list[tuple[str, dict]] = []

    async def download(self, path):
        self.downloads.append(path)
        data = self.objects.get(path)
        if not data:
            raise EmptyBlobError(path)
        return data

    async def create_signed_upload_url(self, path, metadata):
        self.signed_requests.append((path, metadata))
        return {"signed_url": f"https://storage.test/upload/{path}?token=abc", "path": path}


@pytest.fixture
def job_store() -> InMemoryJobStore:
    return InMemoryJobStore()


@pytest.fixture
def file_store() -> InMemoryFileStore:
    return InMemoryFileStore()


@pytest.fixture
def row_store() -> InMemoryRowStore:
    return InMemoryRowStore()


@pytest.fixture
def embedder() -> FakeEmbedder:
    return FakeEmbedder()


@pytest.fixture
def blob_store() -> InMemoryBlobStore:
    return InMemoryBlobStore()


# =======================
# DATABASE FIXTURES (Testcontainers)
# =======================

@pytest.fixture(scope="session")
def postgres_container():
    """
    Start PostgreSQL (with pgvector) for integration tests

    Yields:
        PostgresContainer instance with initialized schema
    """
    try:
        from testcontainers.postgres import PostgresContainer

        container = PostgresContainer(
            image="pgvector/pgvector:pg16",
            username="test_ingest",
            password="test_password",
            dbname="test_royalties",
            driver=None,
        )
        container.start()
    except Exception as e:
        pytest.skip(f"Docker is not available for integration tests: {e}")

    try:
        init_sql_path = os.path.join(
            os.path.dirname(os.path.dirname(__file__)),
            "docker",
            "init-db.sql"
        )
        with open(init_sql_path, 'r') as f:
            init_sql = f.read()

        with psycopg.connect(container.get_connection_url()) as conn:
            with conn.cursor() as cur:
                cur.execute(init_sql)
            conn.commit()

        yield container
    finally:
        container.stop()


@pytest.fixture(scope="function")
def db_connection(postgres_container) -> Generator[psycopg.Connection, None, None]:
    """
    Provide a database connection for a single test

    Yields:
        psycopg Connection object
    """
    with psycopg.connect(postgres_container.get_connection_url()) as conn:
        yield conn
        conn.rollback()


@pytest.fixture(scope="function")
def clean_db(db_connection) -> Generator[psycopg.Connection, None, None]:
    """
    Provide a clean database by truncating all tables before each test

    Yields:
        psycopg Connection object with clean database
    """
    with db_connection.cursor() as cur:
        cur.execute("TRUNCATE TABLE rows, processing_queue, files CASCADE")
        db_connection.commit()

    yield db_connection


@pytest.fixture(scope="function")
def pool_kwargs(postgres_container) -> dict:
    """Connection arguments for DatabaseConnectionPool"""
    return {
        "host": postgres_container.get_container_host_ip(),
        "port": int(postgres_container.get_exposed_port(5432)),
        "database": "test_royalties",
        "user": "test_ingest",
        "password": "test_password",
    }


# =======================
# CONFIGURATION FIXTURES
# =======================

@pytest.fixture
def clean_env(monkeypatch):
    """
    Remove ingestion settings from the environment and skip .env loading
    """
    for name in (
        "DB_HOST", "DB_PORT", "DB_NAME", "DB_USER", "DB_PASSWORD",
        "DB_POOL_MIN_SIZE", "DB_POOL_MAX_SIZE", "SUPABASE_URL",
        "SUPABASE_SERVICE_ROLE_KEY", "STORAGE_BUCKET", "OPENAI_API_KEY",
        "EMBEDDING_MODEL", "EMBEDDING_DIMENSIONS", "INGEST_BATCH_SIZE",
        "ERROR_MESSAGE_MAX_LENGTH", "STALE_JOB_TIMEOUT_SECONDS",
        "COLUMN_MAP_PATH", "VALUE_METRIC", "INGEST_ENV_FILE",
    ):
        monkeypatch.delenv(name, raising=False)
    monkeypatch.setattr("src.core.settings.load_dotenv", lambda *args, **kwargs: False)
    return monkeypatch
