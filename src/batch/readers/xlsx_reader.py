"""
XLSX reader for the first worksheet of a workbook.

Only the first worksheet is read; any further sheets are ignored.
"""

import asyncio
import io
import zipfile
from typing import Any

from openpyxl import load_workbook
from openpyxl.cell.rich_text import CellRichText
from openpyxl.utils.exceptions import InvalidFileException
from openpyxl.workbook.workbook import Workbook
from openpyxl.worksheet.worksheet import Worksheet

from src.core.exceptions import ParseError
from src.core.progress import ProgressReporter
from src.observability.logger import get_logger

from .base import BatchHandler, BatchingReader, RawRecord

logger = get_logger(__name__)


def load_xlsx_bytes(data: bytes) -> Workbook:
    """
    Load a workbook with cached formula results instead of formula text.

    Raises:
        ParseError: If the bytes are not a readable XLSX workbook
    """
    try:
        return load_workbook(io.BytesIO(data), data_only=True, rich_text=True)
    except (
        InvalidFileException,
        zipfile.BadZipFile,
        # Malformed part XML; ElementTree and lxml parse errors subclass it
        SyntaxError,
        KeyError,
        ValueError,
        TypeError,
        OSError,
    ) as e:
        raise ParseError(f"Could not open XLSX workbook: {e}") from e


def realize_cell_value(value: Any) -> Any:
    """
    Turn a loaded cell value into a plain value.

    Rich text runs are joined into one string; dates, numbers and
    strings pass through unchanged.
    """
    if isinstance(value, CellRichText):
        return str(value)
    return value


def header_names(worksheet: Worksheet) -> list[str]:
    """
    Read row 1 as field names, naming blank header cells by position.
    """
    headers = []
    for col_number, cell in enumerate(worksheet[1], start=1):
        value = realize_cell_value(cell.value)
        if value is None or str(value).strip() == "":
            headers.append(f"column_{col_number}")
        else:
            headers.append(str(value))
    return headers


class XLSXReader(BatchingReader):
    """
    Reads rows 2..N of the first worksheet into header-keyed records.
    """

    format_name = "XLSX"

    async def read(
        self,
        workbook: Workbook,
        on_batch: BatchHandler,
        progress: ProgressReporter,
    ) -> int:
        """
        Stream the first worksheet's data rows through on_batch.

        Args:
            workbook: Loaded workbook
            on_batch: Awaited with (records, first_row_number) per batch
            progress: Receives (processed, total) before iteration and after every batch

        Returns:
            Number of rows handed to on_batch

        Raises:
            ParseError: If the workbook has no worksheet or no header row
        """
        self._reset(on_batch, progress)

        if not workbook.worksheets:
            raise ParseError("XLSX file contains no worksheets.")
        worksheet = workbook.worksheets[0]
        if len(workbook.worksheets) > 1:
            logger.warning(
                f"Workbook has {len(workbook.worksheets)} worksheets; only "
                f'"{worksheet.title}" is ingested',
                extra={"sheet_count": len(workbook.worksheets)},
            )

        headers = header_names(worksheet)
        if all(name.startswith("column_") for name in headers) and worksheet.max_row <= 1:
            raise ParseError(f'Worksheet "{worksheet.title}" is empty.')

        logger.info(f'Processing XLSX Worksheet "{worksheet.title}"...')
        await self._set_total(worksheet.max_row - 1)

        for row in worksheet.iter_rows(min_row=2, max_row=worksheet.max_row):
            record = self._row_to_record(row, headers)
            if record is not None:
                await self._add(record)
            # Let other tasks run between rows of large sheets
            await asyncio.sleep(0)

        processed = await self._finish()
        logger.info("XLSX processing complete.", extra={"processed_row_count": processed})
        return processed

    @staticmethod
    def _row_to_record(row: tuple, headers: list[str]) -> RawRecord | None:
        values = [realize_cell_value(cell.value) for cell in row]
        if all(value is None for value in values):
            return None

        record: RawRecord = {}
        for col_number, value in enumerate(values, start=1):
            name = headers[col_number - 1] if col_number <= len(headers) else f"column_{col_number}"
            record[name] = value
        return record
