"""
Field Normalizer - canonical values from loosely structured spreadsheet rows.

Spreadsheet rows arrive as ``{column header: cell text or None}``. The same
logical field may appear under several headers (``applianceId``,
``ApplianceID``, ``ID``), so every lookup takes an ordered alias list.
"""

import logging
import re
from datetime import date, datetime
from typing import Any, Dict, Iterable, List, Optional

from services.errors import FieldValueError

logger = logging.getLogger(__name__)

TRUE_STRINGS = ('yes', 'true')

# 1,234 or 12,345,678.5; any other comma is not a number
THOUSANDS_GROUPED = re.compile(r'^[+-]?\d{1,3}(,\d{3})+(\.\d+)?$')

DAY_FIRST_DATETIME_FORMATS = [
    '%d/%m/%Y %H:%M:%S',
    '%d/%m/%Y %H:%M',
]

# Tried in order after DD/MM/YYYY and ISO-8601
FALLBACK_DATE_FORMATS = [
    '%d-%m-%Y',
    '%Y/%m/%d',
    '%d %b %Y',
    '%d %B %Y',
    '%b %d %Y',
    '%B %d, %Y',
    '%d.%m.%Y',
]


def is_missing(value: Any) -> bool:
    """True for None and the empty string."""
    return value is None or value == ''


def get_value(row: Dict[str, Any], keys: Iterable[str], default: Any = None) -> Any:
    """
    Return the first non-missing value among candidate column names.

    Args:
        row: Spreadsheet row keyed by column header
        keys: Candidate headers, highest priority first
        default: Returned when no candidate holds a value

    Returns:
        The first value that is neither None nor '', else ``default``
    """
    for key in keys:
        value = row.get(key)
        if not is_missing(value):
            return value
    return default


def parse_boolean(value: Any) -> bool:
    """Coerce a cell to bool: 'yes'/'true' (any case) are True, everything else False."""
    if isinstance(value, bool):
        return value
    if isinstance(value, str):
        return value.strip().lower() in TRUE_STRINGS
    return False


def _parse_day_month_year(text: str) -> Optional[datetime]:
    parts = text.split('/')
    if len(parts) != 3:
        return None
    try:
        day, month, year = (int(p.strip()) for p in parts)
        return datetime(year, month, day)
    except ValueError:
        return None


def parse_date(value: Any) -> Optional[datetime]:
    """
    Coerce a cell to a datetime.

    Strings are tried as DD/MM/YYYY (optionally with a time) first, then ISO-8601, then a short list of
    common formats. Returns None when nothing matches so the caller can
    substitute its own default.
    """
    if is_missing(value):
        return None
    if isinstance(value, datetime):
        return value
    if isinstance(value, date):
        return datetime(value.year, value.month, value.day)
    if not isinstance(value, str):
        return None

    text = value.strip()
    parsed = _parse_day_month_year(text)
    if parsed is not None:
        return parsed

    for fmt in DAY_FIRST_DATETIME_FORMATS:
        try:
            return datetime.strptime(text, fmt)
        except ValueError:
            continue

    try:
        parsed = datetime.fromisoformat(text.replace('Z', '+00:00'))
        # Stored timestamps are naive UTC
        if parsed.tzinfo is not None:
            parsed = (parsed - parsed.utcoffset()).replace(tzinfo=None)
        return parsed
    except ValueError:
        pass

    for fmt in FALLBACK_DATE_FORMATS:
        try:
            return datetime.strptime(text, fmt)
        except ValueError:
            continue

    logger.debug(f"Could not parse date value: {value!r}")
    return None


def parse_list(value: Any) -> Optional[List[str]]:
    """Split comma-separated text into trimmed items; absent input gives None, not []."""
    if is_missing(value):
        return None
    if isinstance(value, (list, tuple)):
        items = [str(v).strip() for v in value]
    else:
        items = [part.strip() for part in str(value).split(',')]
    items = [item for item in items if item]
    return items or None


def _strip_thousands(text: str) -> str:
    if THOUSANDS_GROUPED.match(text):
        return text.replace(',', '')
    if ',' in text:
        raise ValueError(f"ambiguous comma in number: {text!r}")
    return text


def parse_float(value: Any, field: Optional[str] = None, required: bool = False) -> float:
    """
    Coerce a cell to float.

    Missing or unparseable input gives 0.0 for optional fields. For required
    fields it raises FieldValueError instead.
    """
    if is_missing(value):
        if required:
            raise FieldValueError(field or 'value', f"Missing {field or 'value'}")
        return 0.0
    if isinstance(value, bool):
        return float(value)
    try:
        return float(_strip_thousands(str(value).strip()))
    except ValueError:
        if required:
            raise FieldValueError(field or 'value', f"Invalid number for {field or 'value'}: {value!r}")
        logger.debug(f"Non-numeric value {value!r} for {field}, defaulting to 0")
        return 0.0
