"""
End-to-end tests: storage event -> queued job -> parsed, embedded and
upserted rows in PostgreSQL.

Storage and embeddings are in-memory; the database is a real container.
"""

import io

import pytest
import pytest_asyncio
from openpyxl import Workbook

from src.batch import IngestionPipeline
from src.batch.writers import BatchRowWriter
from src.core.exceptions import UpsertError
from src.core.models import JobStatus
from src.queue import JobOrchestrator, enqueue_from_storage_event
from src.warehouse.connection import DatabaseConnectionPool
from src.warehouse.files import PostgresFileStore
from src.warehouse.jobs import PostgresJobStore
from src.warehouse.rows import PostgresRowStore

FILE_ID = "3f9a9c1e-6a77-4c53-9a39-0ad2f0c5e0d4"
HEADER = "Client Code,Income Period,Income Type Name,Song Title,Amount Collected"


@pytest_asyncio.fixture
async def pool(pool_kwargs, clean_db):
    with clean_db.cursor() as cur:
        cur.execute(
            "INSERT INTO files (id, name, catalog, doc_type) VALUES (%s, %s, %s, %s)",
            (FILE_ID, "statement", "100047", "evaluation"),
        )
    clean_db.commit()

    pool = DatabaseConnectionPool(**pool_kwargs)
    await pool.open()
    yield pool
    await pool.close()


@pytest.fixture
def services(pool, blob_store, embedder):
    embedder.dimensions = 1536
    job_store = PostgresJobStore(pool)
    row_store = PostgresRowStore(pool)
    pipeline = IngestionPipeline(blob_store, BatchRowWriter(embedder, row_store), batch_size=2)
    return {
        "job_store": job_store,
        "file_store": PostgresFileStore(pool),
        "row_store": row_store,
        "orchestrator": JobOrchestrator(job_store, pipeline),
    }


async def enqueue(services, filename):
    event = {
        "type": "INSERT",
        "table": "objects",
        "schema": "storage",
        "record": {"name": f"{FILE_ID}/{filename}", "metadata": {"file_id": FILE_ID}},
    }
    return await enqueue_from_storage_event(event, services["file_store"], services["job_store"])


def stored_rows(conn):
    with conn.cursor() as cur:
        cur.execute(
            "SELECT row_number, catalog, period, song_title, amount_collected "
            "FROM rows WHERE file_id = %s ORDER BY row_number",
            (FILE_ID,),
        )
        rows = cur.fetchall()
    conn.commit()
    return rows


@pytest.mark.e2e
@pytest.mark.asyncio
async def test_csv_statement_ingested(services, blob_store, clean_db):
    blob_store.objects[f"{FILE_ID}/statement.csv"] = (
        HEADER + "\n"
        + '100047,202312,Streaming,Night Drive,"$1,234.56"\n'
        + ",202401-202403,Sync,Blue Hour,10\n"
        + "100047,abc123,Radio,Low Tide,5\n"
    ).encode("utf-8")

    job = await enqueue(services, "statement.csv")
    completed = await services["orchestrator"].claim_and_process(job.id)

    assert completed.status is JobStatus.COMPLETED
    assert completed.attempts == 1
    assert completed.processed_row_count == 3

    rows = stored_rows(clean_db)
    assert [r[0] for r in rows] == [1, 2, 3]
    assert float(rows[0][4]) == pytest.approx(1234.56)
    assert rows[1][1] == "100047"
    assert rows[1][2] == "202401"
    assert rows[2][2] is None


@pytest.mark.e2e
@pytest.mark.asyncio
async def test_xlsx_statement_ingested(services, blob_store, clean_db):
    workbook = Workbook()
    sheet = workbook.active
    sheet.append(HEADER.split(","))
    sheet.append([100047, 20231215, "Streaming", "Night Drive", 12.5])
    buffer = io.BytesIO()
    workbook.save(buffer)
    blob_store.objects[f"{FILE_ID}/statement.xlsx"] = buffer.getvalue()

    job = await enqueue(services, "statement.xlsx")
    completed = await services["orchestrator"].claim_and_process(job.id)

    assert completed.total_row_count == 1
    [(row_number, catalog, period, title, amount)] = stored_rows(clean_db)
    assert (row_number, catalog, period, title) == (1, "100047", "202312", "Night Drive")
    assert float(amount) == pytest.approx(12.5)


@pytest.mark.e2e
@pytest.mark.asyncio
async def test_failed_batch_leaves_partial_rows(services, blob_store, clean_db):
    lines = [HEADER] + [f"100047,202312,Streaming,Track {i},{i}" for i in range(1, 6)]
    blob_store.objects[f"{FILE_ID}/statement.csv"] = ("\n".join(lines) + "\n").encode("utf-8")

    row_store = services["row_store"]
    original_upsert = row_store.upsert_rows
    calls = []

    async def flaky_upsert(rows):
        calls.append(rows[0].row_number)
        if len(calls) == 2:
            raise UpsertError("Database upsert failed: connection reset")
        return await original_upsert(rows)

    row_store.upsert_rows = flaky_upsert

    job = await enqueue(services, "statement.csv")
    with pytest.raises(UpsertError):
        await services["orchestrator"].claim_and_process(job.id)

    failed = await services["job_store"].get_job(job.id)
    assert failed.status is JobStatus.FAILED
    assert failed.error_message == "Database upsert failed: connection reset"
    assert [r[0] for r in stored_rows(clean_db)] == [1, 2]
    assert calls == [1, 3]


@pytest.mark.e2e
@pytest.mark.asyncio
async def test_reprocessing_same_file_does_not_duplicate(services, blob_store, clean_db):
    blob_store.objects[f"{FILE_ID}/statement.csv"] = (
        HEADER + "\n100047,202312,Streaming,Night Drive,1\n"
    ).encode("utf-8")

    for _ in range(2):
        job = await enqueue(services, "statement.csv")
        await services["orchestrator"].claim_and_process(job.id)

    assert len(stored_rows(clean_db)) == 1
