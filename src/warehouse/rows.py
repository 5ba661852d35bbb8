"""
Idempotent upsert operations for canonical rows.

Implements INSERT ... ON CONFLICT UPDATE keyed on (file_id, row_number)
so re-ingesting a file overwrites its rows instead of duplicating them.
"""

from typing import Protocol

import psycopg

from src.core.exceptions import UpsertError
from src.core.models import CanonicalRow
from src.observability.logger import get_logger
from src.warehouse.connection import DatabaseConnectionPool

logger = get_logger(__name__)

ROW_COLUMNS = (
    "file_id",
    "row_number",
    "catalog",
    "client_name",
    "period",
    "metric",
    "value",
    "content",
    "song_title",
    "artist",
    "composers",
    "source_name",
    "income_type",
    "units",
    "amount_collected",
    "royalty_payable",
    "isrc",
    "embedding",
)


def vector_literal(embedding: list[float]) -> str:
    """Render an embedding in pgvector text form."""
    return "[" + ",".join(repr(float(x)) for x in embedding) + "]"


class RowStore(Protocol):
    async def upsert_rows(self, rows: list[CanonicalRow]) -> int: ...


class PostgresRowStore:
    """
    Writes canonical rows to the rows table.

    A call is one transaction: either every row of the batch is stored
    or none is.
    """

    def __init__(self, pool: DatabaseConnectionPool):
        """
        Initialize row store.

        Args:
            pool: Database connection pool
        """
        self.pool = pool

    @staticmethod
    def _upsert_sql() -> str:
        placeholders = ", ".join(
            "%s::vector" if column == "embedding" else "%s" for column in ROW_COLUMNS
        )
        updates = ",\n                ".join(
            f"{column} = EXCLUDED.{column}"
            for column in ROW_COLUMNS
            if column not in ("file_id", "row_number")
        )
        return f"""
            INSERT INTO rows ({", ".join(ROW_COLUMNS)})
            VALUES ({placeholders})
            ON CONFLICT (file_id, row_number) DO UPDATE SET
                {updates}
        """

    async def upsert_rows(self, rows: list[CanonicalRow]) -> int:
        """
        Upsert a batch of rows with their embeddings.

        Args:
            rows: Rows that already carry embeddings

        Returns:
            Number of rows upserted

        Raises:
            UpsertError: If a row lacks an embedding or the write fails
        """
        if not rows:
            return 0

        params = []
        for row in rows:
            if row.embedding is None:
                raise UpsertError(
                    f"Row {row.row_number} of file {row.file_id} has no embedding"
                )
            values = row.model_dump(include=set(ROW_COLUMNS))
            values["embedding"] = vector_literal(row.embedding)
            params.append(tuple(values[column] for column in ROW_COLUMNS))

        try:
            async with self.pool.get_connection() as conn:
                async with conn.cursor() as cur:
                    await cur.executemany(self._upsert_sql(), params)
        except psycopg.Error as e:
            logger.error(f"Row upsert failed: {e}", extra={"batch_size": len(rows)})
            raise UpsertError(f"Database upsert failed: {e}") from e

        return len(rows)
