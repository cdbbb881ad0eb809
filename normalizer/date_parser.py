"""
Date parser for transaction exports and billing period strings.
"""
from datetime import date, datetime
from typing import Optional, Union

from dateutil import parser as dateutil_parser

from config import get_date_formats


def parse_date(value: Union[str, datetime, date, None]) -> Optional[date]:
    """
    Parse a date value from various formats into a Python date object.

    Args:
        value: A string that might be a date, or a datetime/date object

    Returns:
        A date object if parsing succeeds, None otherwise
    """
    if value is None:
        return None

    # If already a date or datetime object
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value

    value_str = " ".join(str(value).split())

    if not value_str or value_str.lower() in ("nan", "none", "nat"):
        return None

    for fmt in get_date_formats():
        try:
            return datetime.strptime(value_str, fmt).date()
        except ValueError:
            continue

    # ISO timestamps with offsets ("2025-10-03T09:15:00.000Z") and other
    # free-form values
    try:
        return dateutil_parser.isoparse(value_str).date()
    except ValueError:
        pass

    try:
        return dateutil_parser.parse(value_str, dayfirst=True).date()
    except (ValueError, OverflowError):
        return None


def is_valid_date(value: Union[str, datetime, date, None]) -> bool:
    """Check if a value can be parsed as a valid date."""
    return parse_date(value) is not None


def format_date(dt: Optional[date], fmt: str = "%Y-%m-%d") -> str:
    """
    Format a date object as a string.

    Args:
        dt: Date object to format
        fmt: Output format string (default: YYYY-MM-DD)

    Returns:
        Formatted date string, or empty string if date is None
    """
    if dt is None:
        return ""
    return dt.strftime(fmt)
