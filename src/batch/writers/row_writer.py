"""
Batch row writer: normalize, embed and upsert one batch of records.
"""

import time

from src.core.exceptions import EmbeddingCountMismatchError, EmbeddingError, IngestionError
from src.core.models import CanonicalRow
from src.core.normalizer import RawRecord, RowNormalizer
from src.embeddings import Embedder
from src.observability import metrics
from src.observability.logger import get_logger
from src.warehouse.rows import RowStore

logger = get_logger(__name__)


class BatchRowWriter:
    """
    Turns raw records into embedded canonical rows and persists them.

    A batch is all-or-nothing: rows are written only after every row has
    its embedding, and the write itself is a single upsert call.
    """

    def __init__(
        self,
        embedder: Embedder,
        row_store: RowStore,
        normalizer: RowNormalizer | None = None,
    ):
        """
        Initialize batch row writer.

        Args:
            embedder: Embedding service
            row_store: Destination for canonical rows
            normalizer: Row normalizer (defaults to built-in column aliases)
        """
        self.embedder = embedder
        self.row_store = row_store
        self.normalizer = normalizer or RowNormalizer()

    def build_rows(
        self,
        records: list[RawRecord],
        file_id: str,
        catalog: str | None,
        first_row_number: int = 1,
    ) -> list[CanonicalRow]:
        """
        Normalize records, filling catalog from the job when a row has none.
        """
        rows = self.normalizer.normalize_batch(records, file_id, first_row_number)
        if catalog:
            rows = [
                row if row.catalog else row.model_copy(update={"catalog": catalog})
                for row in rows
            ]
        return rows

    async def process_batch(
        self,
        records: list[RawRecord],
        file_id: str,
        catalog: str | None,
        doc_type: str | None,
        first_row_number: int = 1,
    ) -> int:
        """
        Normalize, embed and upsert one batch.

        Args:
            records: Raw records in source order
            file_id: File the records came from
            catalog: Job catalog, used when a row carries none
            doc_type: Job document type (logged for traceability)
            first_row_number: Source ordinal of the first record

        Returns:
            Number of rows persisted

        Raises:
            EmbeddingError: If embedding fails or returns the wrong count
            UpsertError: If the row store rejects the batch
        """
        if not records:
            return 0

        start = time.monotonic()
        try:
            rows = self.build_rows(records, file_id, catalog, first_row_number)

            embed_start = time.monotonic()
            try:
                embeddings = await self.embedder.embed_batch([row.content for row in rows])
            except IngestionError:
                raise
            except Exception as e:
                raise EmbeddingError(f"Embedding generation failed: {e}") from e
            metrics.observe_histogram(
                metrics.embedding_duration_seconds, time.monotonic() - embed_start
            )

            if len(embeddings) != len(rows):
                raise EmbeddingCountMismatchError(len(rows), len(embeddings))

            # Results are joined to rows by position
            embedded = [row.with_embedding(vector) for row, vector in zip(rows, embeddings)]

            logger.info(
                f"Upserting {len(embedded)} rows...",
                extra={"file_id": file_id, "doc_type": doc_type, "first_row_number": first_row_number},
            )
            count = await self.row_store.upsert_rows(embedded)
        except Exception:
            metrics.record_batch(len(records), success=False, duration_seconds=time.monotonic() - start)
            raise

        metrics.record_batch(count, success=True, duration_seconds=time.monotonic() - start)
        logger.info("Batch upsert successful.", extra={"file_id": file_id, "row_count": count})
        return count
