"""
Parsers module for loading card transactions.
"""
from .base_parser import BaseParser, TransactionSummary, ValidationIssue
from .csv_parser import TransactionCSVParser

__all__ = ['BaseParser', 'TransactionSummary', 'ValidationIssue', 'TransactionCSVParser']
