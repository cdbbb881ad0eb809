"""
Amount parser for transaction exports, plus money formatting for hints.
"""
import math
import re
from typing import Optional, Tuple, Union

from config import DEFAULT_CURRENCY_SYMBOL


def parse_amount(value: Union[str, int, float, None]) -> float:
    """
    Parse an amount value from various formats into a float.

    Handles:
    - Thousands separators: "1,234.56"
    - Currency symbols and codes: $, S$, SGD, USD
    - Negative formats: -1000, (1000), 1000 CR

    A trailing CR marks a credit to the card and is returned as negative;
    a trailing DR is a charge and stays positive.

    Args:
        value: A string/number that might be an amount

    Returns:
        A float value (positive or negative), or 0.0 if unparseable
    """
    if value is None:
        return 0.0

    if isinstance(value, (int, float)):
        if isinstance(value, float) and math.isnan(value):
            return 0.0
        return float(value)

    value_str = str(value).strip()

    if not value_str:
        return 0.0

    amount, _ = _parse_amount_with_sign(value_str)
    return amount


def _parse_amount_with_sign(value_str: str) -> Tuple[float, str]:
    """
    Parse an amount string and determine its sign.

    Returns:
        Tuple of (amount as float, sign indicator: 'CR', 'DR', or '')
    """
    value_str = value_str.strip()

    is_negative = False
    sign_indicator = ""

    dr_match = re.search(r'\s*DR\s*$', value_str, re.IGNORECASE)
    cr_match = re.search(r'\s*CR\s*$', value_str, re.IGNORECASE)

    if dr_match:
        sign_indicator = "DR"
        value_str = value_str[:dr_match.start()]
    elif cr_match:
        is_negative = True
        sign_indicator = "CR"
        value_str = value_str[:cr_match.start()]

    # (1000) means negative
    if value_str.startswith('(') and value_str.endswith(')'):
        is_negative = True
        value_str = value_str[1:-1]

    value_str = _remove_currency_symbols(value_str).strip()

    if value_str.startswith('-'):
        is_negative = True
        value_str = value_str[1:]

    if value_str.endswith('-'):
        is_negative = True
        value_str = value_str[:-1]

    value_str = _remove_currency_symbols(value_str)
    value_str = value_str.replace(',', '').replace(' ', '')

    if not value_str:
        return 0.0, sign_indicator

    try:
        amount = float(value_str)
    except ValueError:
        return 0.0, sign_indicator

    if is_negative:
        amount = -abs(amount)
    return amount, sign_indicator


def _remove_currency_symbols(value_str: str) -> str:
    """Remove currency symbols and ISO codes from a string."""
    patterns = [
        r'S\$\s*',         # Singapore dollar
        r'SGD\s*',
        r'USD\s*',
        r'\$\s*',
        r'€\s*',
        r'£\s*',
    ]

    for pattern in patterns:
        value_str = re.sub(pattern, '', value_str, flags=re.IGNORECASE)

    return value_str


def has_valid_amount(value: Union[str, int, float, None]) -> bool:
    """
    Check if a value contains a parseable amount.

    Args:
        value: A value to check

    Returns:
        True if the value contains a valid amount, False otherwise
    """
    if value is None:
        return False

    if isinstance(value, (int, float)):
        return not (isinstance(value, float) and math.isnan(value))

    cleaned = str(value).strip()
    if not cleaned or cleaned.lower() == "nan":
        return False

    cleaned = re.sub(r'(DR|CR)\s*$', '', cleaned, flags=re.IGNORECASE).strip()
    if cleaned.startswith('(') and cleaned.endswith(')'):
        cleaned = cleaned[1:-1]
    cleaned = _remove_currency_symbols(cleaned.strip().strip('-'))
    cleaned = cleaned.strip('-').replace(',', '').replace(' ', '')

    if not cleaned:
        return False

    try:
        float(cleaned)
        return True
    except ValueError:
        return False


def format_currency(
    amount: Optional[float],
    symbol: str = DEFAULT_CURRENCY_SYMBOL,
    grouping: bool = False,
) -> str:
    """
    Format an amount with a currency symbol and two decimals.

    Args:
        amount: The amount to format
        symbol: Currency symbol to prefix
        grouping: Insert thousands separators

    Returns:
        Formatted string, "" for None, and "∞" for an uncapped amount
    """
    if amount is None:
        return ""
    if math.isinf(amount):
        return "∞"

    body = f"{abs(amount):,.2f}" if grouping else f"{abs(amount):.2f}"
    sign = "-" if amount < 0 else ""
    return f"{sign}{symbol}{body}"
