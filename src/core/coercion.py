"""
Value coercers for raw statement cells.

Every function here fails soft: values that cannot be interpreted become
None instead of raising, so a single dirty cell never aborts a file.
"""

import math
import re
from datetime import date, datetime
from decimal import Decimal
from typing import Any

from src.observability.logger import get_logger

logger = get_logger(__name__)

PERIOD_YYYYMM = re.compile(r"^(19|20)\d{2}(0[1-9]|1[0-2])$")
PERIOD_YYYYMMDD = re.compile(r"^(19|20)\d{2}(0[1-9]|1[0-2])(0[1-9]|[12]\d|3[01])$")

_CURRENCY_CHARS = re.compile(r"[$,]+")
_NON_INT_CHARS = re.compile(r"[^0-9-]+")
_NON_DIGITS = re.compile(r"[^0-9]")
# Leading numeric prefix, the same portion a lenient float parser accepts
_FLOAT_PREFIX = re.compile(r"^\s*[+-]?(\d+\.?\d*|\.\d+)([eE][+-]?\d+)?")
_INT_PREFIX = re.compile(r"^-?\d+")


def _is_blank(value: Any) -> bool:
    return value is None or (isinstance(value, str) and value == "")


def cell_to_text(value: Any) -> str:
    """
    Render a realized cell value as text.

    Integral floats lose their trailing ".0" and dates render in ISO
    format, so XLSX cells read the same way as their CSV equivalents.
    """
    if value is None:
        return ""
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, float) and value.is_integer():
        return str(int(value))
    if isinstance(value, (datetime, date)):
        return value.isoformat()
    return str(value)


def value_or_null(value: Any) -> str | None:
    """
    Trim a value to text.

    Args:
        value: Raw cell value

    Returns:
        Trimmed string, or None for None, empty or whitespace-only input
    """
    if _is_blank(value):
        return None
    text = cell_to_text(value).strip()
    return text or None


def num_or_null(value: Any) -> float | None:
    """
    Parse a money or quantity value.

    "$" and "," are stripped before parsing, and the leading numeric
    portion of the remaining text is used ("12.5 GBP" -> 12.5).

    Args:
        value: Raw cell value

    Returns:
        Float, or None when nothing numeric can be read
    """
    if _is_blank(value) or isinstance(value, bool):
        return None
    if isinstance(value, (int, float, Decimal)):
        number = float(value)
        return None if math.isnan(number) else number
    if isinstance(value, (datetime, date)):
        return None

    cleaned = _CURRENCY_CHARS.sub("", str(value))
    match = _FLOAT_PREFIX.match(cleaned)
    if not match:
        return None
    number = float(match.group(0))
    return None if math.isnan(number) else number


def int_or_null(value: Any) -> int | None:
    """
    Parse an integer after dropping every character except digits and "-".

    Args:
        value: Raw cell value

    Returns:
        Integer, or None when no leading integer remains
    """
    if _is_blank(value) or isinstance(value, bool):
        return None
    if isinstance(value, int):
        return value
    if isinstance(value, float):
        if math.isnan(value):
            return None
        if value.is_integer():
            return int(value)

    cleaned = _NON_INT_CHARS.sub("", cell_to_text(value))
    match = _INT_PREFIX.match(cleaned)
    if not match:
        return None
    return int(match.group(0))


def normalize_period(raw: Any) -> str | None:
    """
    Normalize an income period to YYYYMM.

    Rules, applied to the digits of the input:
    - 6 digits forming a valid YYYYMM are returned unchanged
    - 8 digits forming a valid YYYYMMDD are truncated to YYYYMM
    - 12 or more digits (a range such as 202401-202403) yield the leading
      YYYYMM if it is valid
    - anything else yields None

    Native date values are read as YYYYMMDD.

    Args:
        raw: Raw period cell

    Returns:
        YYYYMM string or None
    """
    if isinstance(raw, (datetime, date)):
        raw = raw.strftime("%Y%m%d")

    original = value_or_null(raw)
    if original is None:
        return None

    digits = _NON_DIGITS.sub("", original)

    if len(digits) == 6 and PERIOD_YYYYMM.match(digits):
        return digits

    if len(digits) == 8 and PERIOD_YYYYMMDD.match(digits):
        return digits[:6]

    if len(digits) >= 12:
        start = digits[:6]
        if PERIOD_YYYYMM.match(start):
            return start
        logger.warning(
            f"Could not extract valid start period (YYYYMM) from range: {original}, "
            "setting period to null",
            extra={"raw_period": original},
        )
        return None

    logger.warning(
        f"Unexpected period format: {original}, setting period to null",
        extra={"raw_period": original},
    )
    return None
