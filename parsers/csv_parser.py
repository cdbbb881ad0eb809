"""
CSV loader for card transaction exports.

Handles:
- Header detection by column keywords (date, description, amount, ...)
- Optional payment flag and card columns
- Encoding fallback for spreadsheet exports
"""
import logging
from typing import Dict, List, Optional

import pandas as pd

from config import (
    DEFAULT_CATEGORY,
    FILE_ENCODINGS,
    TRUTHY_VALUES,
    get_column_keywords,
    get_config,
)
from normalizer.amount_parser import has_valid_amount, parse_amount
from normalizer.date_parser import parse_date
from parsers.base_parser import BaseParser, TransactionSummary

logger = logging.getLogger(__name__)

# Columns are claimed in this order so "payment" is never mistaken for a date
_FIELD_ORDER = ["is_payment", "card_id", "date", "description", "amount", "category"]


class TransactionCSVParser(BaseParser):
    """
    Loader for transaction CSV files exported from the card tracker or a bank.

    A row becomes a payment when its payment column is truthy. When the file
    has no payment column, a negative amount (a credit to the card) is read
    as a payment and its absolute value kept. With a payment column, a
    negative non-payment row is a refund and keeps its sign.
    """

    def __init__(self, filepath: str, card_id: Optional[str] = None):
        """
        Initialize the CSV loader.

        Args:
            filepath: Path to the CSV file
            card_id: Keep only rows for this card when the file has a card column
        """
        super().__init__(filepath)
        self.card_id = card_id
        self._encoding: Optional[str] = None
        self._column_mapping: Dict[str, str] = {}

    def parse(self) -> List[TransactionSummary]:
        """
        Parse the CSV file and return normalized transactions.

        Returns:
            List of TransactionSummary objects
        """
        logger.info("Parsing transaction CSV: %s", self.filepath)

        df = self._read_csv()
        if df is None or df.empty:
            logger.warning("Could not read CSV file or file is empty: %s", self.filepath)
            self._transactions = []
            return self._transactions

        self._column_mapping = self._identify_columns(df)
        logger.debug("Column mapping: %s", self._column_mapping)

        self._transactions = self._extract_transactions(df)
        logger.info("Extracted %d transactions", len(self._transactions))
        return self._transactions

    @property
    def column_mapping(self) -> Dict[str, str]:
        return dict(self._column_mapping)

    def _read_csv(self) -> Optional[pd.DataFrame]:
        """Read the CSV with encoding fallback, every cell as a string."""
        for encoding in get_config().get("supported_encodings", FILE_ENCODINGS):
            try:
                df = pd.read_csv(
                    self.filepath,
                    dtype=str,
                    encoding=encoding,
                    skipinitialspace=True,
                    keep_default_na=False,
                )
            except UnicodeDecodeError:
                continue
            except pd.errors.EmptyDataError:
                return None
            self._encoding = encoding
            df.columns = [str(c).strip().lower() for c in df.columns]
            return df
        return None

    def _identify_columns(self, df: pd.DataFrame) -> Dict[str, str]:
        """
        Identify which columns map to the transaction fields.

        Exact header matches win over substring matches, and each column is
        claimed by at most one field.

        Args:
            df: DataFrame with lower-cased headers

        Returns:
            Dictionary mapping field names to column names
        """
        keywords = get_column_keywords()
        mapping: Dict[str, str] = {}
        claimed = set()

        for exact in (True, False):
            for field_name in _FIELD_ORDER:
                if field_name in mapping:
                    continue
                for col in df.columns:
                    if col in claimed:
                        continue
                    normalized = col.replace(" ", "_")
                    if exact:
                        hit = col in keywords[field_name] or normalized in keywords[field_name]
                    else:
                        hit = any(kw in col for kw in keywords[field_name])
                    if hit:
                        mapping[field_name] = col
                        claimed.add(col)
                        break

        return mapping

    def _extract_transactions(self, df: pd.DataFrame) -> List[TransactionSummary]:
        """
        Extract transactions from the DataFrame.

        Args:
            df: DataFrame with identified columns

        Returns:
            List of TransactionSummary objects
        """
        transactions = []

        date_col = self._column_mapping.get('date')
        desc_col = self._column_mapping.get('description')
        amount_col = self._column_mapping.get('amount')
        category_col = self._column_mapping.get('category')
        payment_col = self._column_mapping.get('is_payment')
        card_col = self._column_mapping.get('card_id')

        if not amount_col:
            logger.warning("No amount column identified in %s", self.filepath)
            return []

        for idx, row in df.iterrows():
            row_num = idx + 2  # 1-based plus the header row

            card_id = row.get(card_col, "").strip() if card_col else None
            if self.card_id and card_col and card_id != self.card_id:
                continue

            amount_value = row.get(amount_col, "")
            if not has_valid_amount(amount_value):
                logger.debug("Row %d: skipping unparseable amount %r", row_num, amount_value)
                continue
            amount = parse_amount(amount_value)

            if payment_col:
                is_payment = row.get(payment_col, "").strip().lower() in TRUTHY_VALUES
            else:
                is_payment = amount < 0

            category = DEFAULT_CATEGORY
            if category_col:
                category = row.get(category_col, "").strip().lower() or DEFAULT_CATEGORY

            # Refunds stay negative so they reduce spend
            transactions.append(TransactionSummary(
                amount=abs(amount) if is_payment else amount,
                description=row.get(desc_col, "").strip() if desc_col else "",
                date=parse_date(row.get(date_col)) if date_col else None,
                is_payment=is_payment,
                category=category,
                card_id=card_id or self.card_id,
                row_numbers=[row_num],
            ))

        return transactions
