"""
CSV reader producing header-keyed records in bounded batches.
"""

import csv
import io

from src.core.exceptions import ParseError
from src.core.progress import ProgressReporter
from src.observability.logger import get_logger

from .base import DEFAULT_BATCH_SIZE, BatchHandler, BatchingReader

logger = get_logger(__name__)

# Key for values beyond the header width
EXTRA_FIELDS_KEY = "__parsed_extra"


def decode_csv_bytes(data: bytes, encoding: str = "utf-8-sig") -> str:
    """
    Decode downloaded CSV bytes to text.

    Raises:
        ParseError: If the bytes are not valid in the given encoding
    """
    try:
        return data.decode(encoding)
    except UnicodeDecodeError as e:
        raise ParseError(f"CSV file is not valid {encoding} text: {e}") from e


def estimate_row_count(text: str) -> int:
    """
    Estimate data rows from the newline count.

    The count includes the header and blank lines, so it is an upper-bound
    style estimate rather than an exact figure.
    """
    return text.count("\n")


class CSVReader(BatchingReader):
    """
    Reads CSV text whose first row holds the field names.

    The whole decoded text is held in memory; rows are still handed on in
    batches so embedding and persistence keep pace with parsing.
    """

    format_name = "CSV"

    def __init__(self, batch_size: int = DEFAULT_BATCH_SIZE, delimiter: str = ","):
        """
        Initialize CSV reader.

        Args:
            batch_size: Rows per flushed batch
            delimiter: Field delimiter
        """
        super().__init__(batch_size)
        self.delimiter = delimiter

    async def read(
        self,
        text: str,
        on_batch: BatchHandler,
        progress: ProgressReporter,
    ) -> int:
        """
        Parse CSV text and stream its rows through on_batch.

        Args:
            text: Decoded file content
            on_batch: Awaited with (records, first_row_number) per batch
            progress: Receives (processed, total) after every batch

        Returns:
            Number of rows handed to on_batch

        Raises:
            ParseError: If the CSV is malformed
        """
        self._reset(on_batch, progress)

        total = estimate_row_count(text)
        logger.info(f"Parsing CSV, estimated rows: {total}", extra={"total_row_count": total})
        await self._set_total(total)

        reader = csv.DictReader(
            io.StringIO(text, newline=""),
            delimiter=self.delimiter,
            restkey=EXTRA_FIELDS_KEY,
        )
        try:
            # DictReader skips rows with no fields at all
            for record in reader:
                await self._add(dict(record))
        except csv.Error as e:
            raise ParseError(f"CSV parsing failed at line {reader.line_num}: {e}") from e

        processed = await self._finish()
        logger.info("CSV parsing complete.", extra={"processed_row_count": processed})
        return processed
