"""
Transaction input shape and the abstract base class for transaction loaders.
"""
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import date
from typing import Any, Dict, List, Optional

from config import DEFAULT_CATEGORY, TRANSACTION_CATEGORIES
from normalizer.date_parser import format_date, parse_date


@dataclass
class TransactionSummary:
    """
    The narrow view of a card transaction that bonus evaluation reads.

    Payments (``is_payment=True``) are money paid back to the card and never
    count as spend. A negative ``amount`` on a non-payment is a refund and
    reduces spend.
    """
    amount: float
    description: str
    date: Optional[date]
    is_payment: bool = False
    category: str = DEFAULT_CATEGORY

    # Loader bookkeeping
    card_id: Optional[str] = None
    row_numbers: List[int] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        """Convert transaction to dictionary."""
        return {
            'amount': self.amount,
            'description': self.description,
            'date': format_date(self.date),
            'is_payment': self.is_payment,
            'category': self.category,
            'card_id': self.card_id,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'TransactionSummary':
        """Create transaction from dictionary (snake_case or camelCase keys)."""
        is_payment = data.get('is_payment', data.get('isPayment', False))
        return cls(
            amount=float(data.get('amount', 0.0)),
            description=data.get('description', '') or '',
            date=parse_date(data.get('date')),
            is_payment=bool(is_payment),
            category=data.get('category') or DEFAULT_CATEGORY,
            card_id=data.get('card_id', data.get('cardId')),
        )


@dataclass
class ValidationIssue:
    """
    Represents a validation issue found during loading.
    """
    row_numbers: List[int]
    issue_type: str
    message: str
    severity: str = "warning"  # "warning" or "error"


class BaseParser(ABC):
    """
    Abstract base class for transaction loaders.
    """

    def __init__(self, filepath: str):
        """
        Initialize the parser with a file path.

        Args:
            filepath: Path to the transaction export
        """
        self.filepath = filepath
        self._transactions: List[TransactionSummary] = []
        self._validation_issues: List[ValidationIssue] = []

    @abstractmethod
    def parse(self) -> List[TransactionSummary]:
        """
        Parse the file and return normalized transactions.

        Returns:
            List of TransactionSummary objects
        """

    def validate(self) -> List[ValidationIssue]:
        """
        Validate the parsed transactions and return any issues found.

        Returns:
            List of ValidationIssue objects
        """
        issues = []

        for i, txn in enumerate(self._transactions):
            if txn.date is None:
                issues.append(ValidationIssue(
                    row_numbers=txn.row_numbers,
                    issue_type="missing_date",
                    message=f"Transaction {i+1} has no valid date",
                ))

            if not txn.description.strip():
                issues.append(ValidationIssue(
                    row_numbers=txn.row_numbers,
                    issue_type="missing_description",
                    message=f"Transaction {i+1} has no description",
                ))

            if txn.amount == 0:
                issues.append(ValidationIssue(
                    row_numbers=txn.row_numbers,
                    issue_type="zero_amount",
                    message=f"Transaction {i+1} has a zero amount",
                ))

            if txn.amount < 0 and not txn.is_payment:
                issues.append(ValidationIssue(
                    row_numbers=txn.row_numbers,
                    issue_type="refund",
                    message=f"Transaction {i+1} is a refund of {-txn.amount:.2f} and reduces spend",
                ))

            if txn.category not in TRANSACTION_CATEGORIES:
                issues.append(ValidationIssue(
                    row_numbers=txn.row_numbers,
                    issue_type="unknown_category",
                    message=f"Transaction {i+1} has unknown category '{txn.category}'",
                ))

        self._validation_issues = issues
        return issues

    @property
    def transactions(self) -> List[TransactionSummary]:
        """Get the parsed transactions."""
        return self._transactions

    @property
    def validation_issues(self) -> List[ValidationIssue]:
        """Get validation issues."""
        return self._validation_issues

    def get_summary(self) -> Dict[str, Any]:
        """
        Get a summary of the parsed transactions.

        Returns:
            Dictionary with summary statistics
        """
        if not self._transactions:
            return {
                'total_transactions': 0,
                'total_spend': 0.0,
                'total_payments': 0.0,
                'payment_count': 0,
                'date_range': (None, None),
            }

        spend = [t for t in self._transactions if not t.is_payment]
        payments = [t for t in self._transactions if t.is_payment]

        dates = [t.date for t in self._transactions if t.date is not None]
        date_range = (min(dates), max(dates)) if dates else (None, None)

        return {
            'total_transactions': len(self._transactions),
            'total_spend': sum(t.amount for t in spend),
            'total_payments': sum(t.amount for t in payments),
            'payment_count': len(payments),
            'date_range': date_range,
        }
