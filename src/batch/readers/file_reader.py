"""
Format detection and dispatch for uploaded statement files.
"""

import asyncio
from dataclasses import dataclass
from enum import Enum

from src.core.exceptions import UnsupportedFileTypeError
from src.core.progress import ProgressReporter

from .base import DEFAULT_BATCH_SIZE, BatchHandler
from .csv_reader import CSVReader, decode_csv_bytes
from .xlsx_reader import XLSXReader, load_xlsx_bytes


@dataclass(frozen=True)
class FormatCapabilities:
    """
    What the pipeline can do with a file format.

    Attributes:
        ingestible: Rows can be parsed and stored
        exact_total: total_row_count is exact rather than estimated
        first_sheet_only: Only the first sheet of a workbook is read
    """

    ingestible: bool
    exact_total: bool = False
    first_sheet_only: bool = False


class FileFormat(str, Enum):
    """Recognized upload formats."""

    CSV = "csv"
    XLSX = "xlsx"
    PDF = "pdf"

    @property
    def capabilities(self) -> FormatCapabilities:
        return FORMAT_CAPABILITIES[self]


FORMAT_CAPABILITIES: dict[FileFormat, FormatCapabilities] = {
    FileFormat.CSV: FormatCapabilities(ingestible=True, exact_total=False),
    FileFormat.XLSX: FormatCapabilities(ingestible=True, exact_total=True, first_sheet_only=True),
    # Recognized so uploads complete cleanly, but no rows are extracted
    FileFormat.PDF: FormatCapabilities(ingestible=False),
}


def detect_format(storage_path: str) -> FileFormat:
    """
    Determine the file format from a storage path's extension.

    Raises:
        UnsupportedFileTypeError: If the extension is missing or unknown
    """
    name = storage_path.rsplit("/", 1)[-1]
    extension = name.rsplit(".", 1)[-1].lower() if "." in name else None
    try:
        return FileFormat(extension)
    except ValueError:
        raise UnsupportedFileTypeError(extension) from None


class FileReader:
    """
    Parses downloaded bytes with the reader for their format.
    """

    def __init__(self, batch_size: int = DEFAULT_BATCH_SIZE):
        """
        Initialize file reader.

        Args:
            batch_size: Rows per flushed batch for every format
        """
        self.batch_size = batch_size

    async def read(
        self,
        data: bytes,
        file_format: FileFormat,
        on_batch: BatchHandler,
        progress: ProgressReporter,
    ) -> int:
        """
        Parse file bytes and stream records through on_batch.

        Args:
            data: Downloaded file content
            file_format: Detected format (must be ingestible)
            on_batch: Awaited with (records, first_row_number) per batch
            progress: Progress port

        Returns:
            Number of rows handed to on_batch

        Raises:
            UnsupportedFileTypeError: If the format cannot be ingested
        """
        if file_format is FileFormat.CSV:
            text = decode_csv_bytes(data)
            return await CSVReader(self.batch_size).read(text, on_batch, progress)
        elif file_format is FileFormat.XLSX:
            workbook = await asyncio.to_thread(load_xlsx_bytes, data)
            return await XLSXReader(self.batch_size).read(workbook, on_batch, progress)
        else:
            raise UnsupportedFileTypeError(file_format.value)
