"""
Maps loosely named metrics to the numeric column they aggregate over.
"""

from enum import Enum

from src.observability.logger import get_logger

logger = get_logger(__name__)


class CanonicalMetric(str, Enum):
    """Numeric row columns that aggregation queries may target."""

    AMOUNT_COLLECTED = "amount_collected"
    ROYALTY_PAYABLE = "royalty_payable"
    UNITS = "units"
    VALUE = "value"

    @property
    def column(self) -> str:
        return self.value


METRIC_SYNONYMS: dict[CanonicalMetric, frozenset[str]] = {
    CanonicalMetric.AMOUNT_COLLECTED: frozenset(
        {"amount_collected", "collected", "gross", "earnings"}
    ),
    CanonicalMetric.ROYALTY_PAYABLE: frozenset(
        {"royalty_payable", "payable", "net", "royalty_line"}
    ),
    CanonicalMetric.UNITS: frozenset({"units"}),
    CanonicalMetric.VALUE: frozenset({"value", "metric_value"}),
}

# Reverse index; synonym sets must stay disjoint
_SYNONYM_INDEX: dict[str, CanonicalMetric] = {
    synonym: metric
    for metric, synonyms in METRIC_SYNONYMS.items()
    for synonym in synonyms
}


def map_metric_to_column(
    requested: str | None,
    default: CanonicalMetric | str = CanonicalMetric.AMOUNT_COLLECTED,
) -> CanonicalMetric:
    """
    Resolve a requested metric name to a canonical column.

    Args:
        requested: Metric name as supplied by a caller (any case)
        default: Column returned when the name is unknown

    Returns:
        CanonicalMetric for the requested name, or the default
    """
    fallback = CanonicalMetric(default)

    key = (requested or "").strip().lower()
    metric = _SYNONYM_INDEX.get(key)
    if metric is not None:
        return metric

    logger.warning(
        f"Unsupported metric_filter: {requested}. Defaulting to {fallback.value}.",
        extra={"requested_metric": requested, "default_metric": fallback.value},
    )
    return fallback
