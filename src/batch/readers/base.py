"""
Shared batching behavior for the format readers.
"""

from typing import Any, Awaitable, Callable

from src.core.progress import ProgressReporter
from src.observability.logger import get_logger

logger = get_logger(__name__)

RawRecord = dict[str, Any]
BatchHandler = Callable[[list[RawRecord], int], Awaitable[None]]

DEFAULT_BATCH_SIZE = 100


class BatchingReader:
    """
    Accumulates records and hands them to a batch handler in source order.

    Subclasses call `_add()` for every record and `_finish()` once input is
    exhausted. After each flushed batch the handler has completed before
    progress is reported and before the next record is read.
    """

    format_name = "records"

    def __init__(self, batch_size: int = DEFAULT_BATCH_SIZE):
        """
        Initialize reader.

        Args:
            batch_size: Records per flushed batch
        """
        if batch_size < 1:
            raise ValueError("batch_size must be at least 1")
        self.batch_size = batch_size
        self._reset(None, None)

    def _reset(self, on_batch: BatchHandler | None, progress: ProgressReporter | None) -> None:
        self._on_batch = on_batch
        self._progress = progress
        self._buffer: list[RawRecord] = []
        self._processed = 0
        self._total = 0

    async def _set_total(self, total: int) -> None:
        self._total = max(0, total)
        await self._progress.report(self._processed, self._total)

    async def _add(self, record: RawRecord) -> None:
        self._buffer.append(record)
        if len(self._buffer) >= self.batch_size:
            await self._flush()

    async def _flush(self) -> None:
        if not self._buffer:
            return
        batch = self._buffer
        first_row_number = self._processed + 1
        self._buffer = []

        logger.info(
            f"Processing batch of {len(batch)} {self.format_name} rows "
            f"(total processed: {self._processed + len(batch)})...",
            extra={"batch_size": len(batch), "first_row_number": first_row_number},
        )
        await self._on_batch(batch, first_row_number)

        self._processed += len(batch)
        # Totals are estimates for some formats and must never fall below progress
        self._total = max(self._total, self._processed)
        await self._progress.report(self._processed, self._total)

    async def _finish(self) -> int:
        await self._flush()
        return self._processed
