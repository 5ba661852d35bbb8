"""
PostgreSQL connection pool management using psycopg3

This module provides an asyncio connection pool shared by the job,
file and row stores of one worker process.
"""
import asyncio
import os
from contextlib import asynccontextmanager

from psycopg import OperationalError
from psycopg.rows import dict_row
from psycopg_pool import AsyncConnectionPool


class DatabaseConnectionPool:
    """
    Async PostgreSQL connection pool manager using psycopg3

    Constructed explicitly and passed to the stores that need it; there is
    no module-level pool.
    """

    def __init__(
        self,
        host: str | None = None,
        port: int | None = None,
        database: str | None = None,
        user: str | None = None,
        password: str | None = None,
        min_size: int = 1,
        max_size: int = 5,
        timeout: float = 30.0,
    ) -> None:
        """
        Initialize database connection pool

        Args:
            host: Database host (defaults to env var DB_HOST)
            port: Database port (defaults to env var DB_PORT)
            database: Database name (defaults to env var DB_NAME)
            user: Database user (defaults to env var DB_USER)
            password: Database password (defaults to env var DB_PASSWORD)
            min_size: Minimum pool size
            max_size: Maximum pool size
            timeout: Connection timeout in seconds
        """
        self.host = host or os.getenv("DB_HOST", "localhost")
        self.port = port or int(os.getenv("DB_PORT", "5432"))
        self.database = database or os.getenv("DB_NAME", "royalties")
        self.user = user or os.getenv("DB_USER", "ingest")
        self.password = password or os.getenv("DB_PASSWORD")

        if not self.password:
            raise ValueError(
                "Database password must be provided. "
                "Set DB_PASSWORD environment variable or pass to constructor."
            )

        self.min_size = min_size
        self.max_size = max_size
        self.timeout = timeout

        self.conninfo = (
            f"host={self.host} "
            f"port={self.port} "
            f"dbname={self.database} "
            f"user={self.user} "
            f"password={self.password} "
            f"connect_timeout={int(self.timeout)}"
        )

        self._pool: AsyncConnectionPool | None = None

    @classmethod
    def from_settings(cls, settings) -> "DatabaseConnectionPool":
        return cls(
            host=settings.db_host,
            port=settings.db_port,
            database=settings.db_name,
            user=settings.db_user,
            password=settings.db_password,
            min_size=settings.db_pool_min_size,
            max_size=settings.db_pool_max_size,
        )

    async def open(self, max_retries: int = 3, retry_delay: float = 2.0) -> None:
        """
        Open the connection pool with retry logic.

        Args:
            max_retries: Maximum number of connection attempts
            retry_delay: Delay between retries in seconds

        Raises:
            OperationalError: If connection fails after all retries
        """
        if self._pool is not None:
            return

        for attempt in range(1, max_retries + 1):
            pool = AsyncConnectionPool(
                conninfo=self.conninfo,
                min_size=self.min_size,
                max_size=self.max_size,
                timeout=self.timeout,
                kwargs={"row_factory": dict_row},  # Return rows as dictionaries
                open=False,
            )
            try:
                await pool.open(wait=True, timeout=self.timeout)
                self._pool = pool
                return
            except (OperationalError, TimeoutError) as e:
                await pool.close()
                if attempt < max_retries:
                    await asyncio.sleep(retry_delay)
                else:
                    raise OperationalError(
                        f"Failed to connect to database after {max_retries} attempts: {e}"
                    ) from e

    async def close(self) -> None:
        """Close the connection pool"""
        if self._pool is not None:
            await self._pool.close()
            self._pool = None

    @asynccontextmanager
    async def get_connection(self):
        """
        Get a connection from the pool

        The connection commits when the block exits cleanly and rolls back
        if it raises.

        Yields:
            psycopg.AsyncConnection: Database connection

        Raises:
            RuntimeError: If pool is not open
        """
        if self._pool is None:
            raise RuntimeError("Connection pool is not open. Call open() first.")

        async with self._pool.connection() as conn:
            yield conn

    async def execute_query(self, query: str, params: tuple | dict | None = None) -> list[dict]:
        """
        Execute a SELECT query and return results

        Args:
            query: SQL SELECT query
            params: Query parameters (optional)

        Returns:
            List of dictionaries (one per row)
        """
        async with self.get_connection() as conn:
            async with conn.cursor() as cur:
                await cur.execute(query, params)
                return await cur.fetchall()

    async def execute_returning(self, command: str, params: tuple | dict | None = None) -> dict | None:
        """
        Execute a command with RETURNING and fetch the first row

        Args:
            command: SQL command
            params: Command parameters (optional)

        Returns:
            First returned row, or None if no row matched
        """
        async with self.get_connection() as conn:
            async with conn.cursor() as cur:
                await cur.execute(command, params)
                return await cur.fetchone()

    async def execute_command(self, command: str, params: tuple | dict | None = None) -> int:
        """
        Execute an INSERT/UPDATE/DELETE command

        Args:
            command: SQL command
            params: Command parameters (optional)

        Returns:
            Number of rows affected
        """
        async with self.get_connection() as conn:
            async with conn.cursor() as cur:
                await cur.execute(command, params)
                return cur.rowcount

    async def __aenter__(self):
        await self.open()
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        await self.close()
        return False
