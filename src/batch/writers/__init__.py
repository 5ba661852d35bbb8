"""
Batch writers.
"""

from .row_writer import BatchRowWriter

__all__ = [
    "BatchRowWriter",
]
