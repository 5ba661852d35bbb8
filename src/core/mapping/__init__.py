"""
Column and metric name mapping.
"""

from .column_map import CANONICAL_FIELDS, ColumnMap
from .metric_mapper import CanonicalMetric, map_metric_to_column

__all__ = [
    "CANONICAL_FIELDS",
    "ColumnMap",
    "CanonicalMetric",
    "map_metric_to_column",
]
