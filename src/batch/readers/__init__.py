"""
Statement file readers.
"""

from .csv_reader import CSVReader
from .file_reader import FileFormat, FileReader, FormatCapabilities, detect_format
from .xlsx_reader import XLSXReader

__all__ = [
    "CSVReader",
    "XLSXReader",
    "FileReader",
    "FileFormat",
    "FormatCapabilities",
    "detect_format",
]
