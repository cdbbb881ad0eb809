"""
Normalizer module for parsing dates and amounts.
"""
from .date_parser import parse_date, is_valid_date, format_date
from .amount_parser import parse_amount, has_valid_amount, format_currency

__all__ = [
    'parse_date', 'is_valid_date', 'format_date',
    'parse_amount', 'has_valid_amount', 'format_currency',
]
