"""
Batch ingestion module.
"""

from .pipeline import FileProcessingResult, IngestionPipeline
from .readers import CSVReader, FileFormat, FileReader, XLSXReader
from .writers import BatchRowWriter

__all__ = [
    "IngestionPipeline",
    "FileProcessingResult",
    "CSVReader",
    "XLSXReader",
    "FileReader",
    "FileFormat",
    "BatchRowWriter",
]
