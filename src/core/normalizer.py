"""
Row normalizer: raw parsed record -> CanonicalRow.
"""

from typing import Any

from src.core.coercion import cell_to_text, normalize_period, num_or_null, value_or_null
from src.core.mapping import CanonicalMetric, ColumnMap, map_metric_to_column
from src.core.models import CanonicalRow
from src.observability import metrics
from src.observability.logger import get_logger

logger = get_logger(__name__)

RawRecord = dict[str, Any]

TEXT_FIELDS = (
    "catalog",
    "client_name",
    "income_type",
    "song_title",
    "artist",
    "composers",
    "source_name",
    "isrc",
)
NUMERIC_FIELDS = ("units", "amount_collected", "royalty_payable")


def build_content(record: RawRecord) -> str:
    """
    Build the embedded text for a record.

    Pairs are rendered as "<header>: <value>" in source column order and
    joined with ", ". The output depends only on the record, so the same
    record always embeds the same text.
    """
    return ", ".join(f"{key}: {cell_to_text(value)}" for key, value in record.items())


class RowNormalizer:
    """
    Maps raw records from any parser onto the canonical row shape.

    The same coercion rules apply regardless of the source format.
    """

    def __init__(
        self,
        column_map: ColumnMap | None = None,
        value_metric: CanonicalMetric | str = CanonicalMetric.AMOUNT_COLLECTED,
    ):
        """
        Initialize the normalizer.

        Args:
            column_map: Header alias table (defaults to the built-in aliases)
            value_metric: Metric copied into the generic `value` column
        """
        self.column_map = column_map or ColumnMap()
        metric = map_metric_to_column(str(getattr(value_metric, "value", value_metric)))
        # `value` cannot mirror itself
        if metric is CanonicalMetric.VALUE:
            metric = CanonicalMetric.AMOUNT_COLLECTED
        self.value_metric = metric

    def normalize(self, record: RawRecord, file_id: str, row_number: int) -> CanonicalRow:
        """
        Normalize one raw record.

        Args:
            record: Raw record keyed by source header
            file_id: File the record came from
            row_number: 1-based ordinal of the record within the file

        Returns:
            CanonicalRow without embedding
        """
        fields = self.column_map.resolve(record)

        text_values = {name: value_or_null(fields.get(name)) for name in TEXT_FIELDS}
        numeric_values = {name: num_or_null(fields.get(name)) for name in NUMERIC_FIELDS}

        for name in NUMERIC_FIELDS:
            raw = fields.get(name)
            if numeric_values[name] is None and value_or_null(raw) is not None:
                logger.warning(
                    f"Could not parse numeric value for {name}: {raw!r}, setting to null",
                    extra={"file_id": file_id, "row_number": row_number, "field": name},
                )
                metrics.record_soft_coercion(name)

        raw_period = fields.get("period")
        period = normalize_period(raw_period)
        if period is None and value_or_null(raw_period) is not None:
            metrics.record_soft_coercion("period")

        return CanonicalRow(
            file_id=file_id,
            row_number=row_number,
            period=period,
            metric=text_values["income_type"],
            value=numeric_values[self.value_metric.column],
            content=build_content(record),
            units=numeric_values["units"],
            amount_collected=numeric_values["amount_collected"],
            royalty_payable=numeric_values["royalty_payable"],
            **text_values,
        )

    def normalize_batch(
        self, records: list[RawRecord], file_id: str, first_row_number: int
    ) -> list[CanonicalRow]:
        """Normalize consecutive records starting at first_row_number."""
        return [
            self.normalize(record, file_id, first_row_number + offset)
            for offset, record in enumerate(records)
        ]
