"""
files table access.
"""

from typing import Protocol

from src.core.models import FileRecord
from src.warehouse.connection import DatabaseConnectionPool


class FileStore(Protocol):
    async def get_file(self, file_id: str) -> FileRecord | None: ...

    async def mark_failed(self, file_id: str, error_message: str) -> None: ...


class PostgresFileStore:
    """
    Reads upload metadata and records terminal upload failures.
    """

    def __init__(self, pool: DatabaseConnectionPool):
        self.pool = pool

    async def get_file(self, file_id: str) -> FileRecord | None:
        rows = await self.pool.execute_query(
            """
            SELECT id::text AS id, name, mime_type, catalog, doc_type, status, error_message
            FROM files WHERE id = %s
            """,
            (file_id,),
        )
        return FileRecord(**rows[0]) if rows else None

    async def mark_failed(self, file_id: str, error_message: str) -> None:
        await self.pool.execute_command(
            "UPDATE files SET status = 'failed', error_message = %s WHERE id = %s",
            (error_message, file_id),
        )
