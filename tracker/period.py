"""
Billing periods and period selection.

Periods are calendar months. A card's real statement cycle (which may start
on any day of the month) is not modelled.
"""
import calendar
import logging
import re
from dataclasses import dataclass, field
from datetime import date, datetime
from typing import Iterable, List, Optional, Union

from parsers.base_parser import TransactionSummary

logger = logging.getLogger(__name__)

_PERIOD_RE = re.compile(r'^(\d{4})-(\d{1,2})$')


class PeriodError(ValueError):
    """A period string is not in YYYY-MM form."""


@dataclass(frozen=True, order=True)
class BillingPeriod:
    """One calendar month."""
    year: int
    month: int

    def __post_init__(self):
        if not 1 <= self.month <= 12:
            raise PeriodError(f"month must be 1-12, got {self.month}")

    @classmethod
    def parse(cls, value: Optional[str] = None, today: Optional[date] = None) -> "BillingPeriod":
        """
        Build a period from "YYYY-MM", or the current month when value is None.

        Raises:
            PeriodError: for malformed values
        """
        if value is None or not str(value).strip():
            today = today or date.today()
            return cls(today.year, today.month)

        match = _PERIOD_RE.match(str(value).strip())
        if not match:
            raise PeriodError(f"period must look like YYYY-MM, got {value!r}")
        return cls(int(match.group(1)), int(match.group(2)))

    @property
    def start(self) -> date:
        return date(self.year, self.month, 1)

    @property
    def end(self) -> date:
        return date(self.year, self.month, calendar.monthrange(self.year, self.month)[1])

    @property
    def label(self) -> str:
        return f"{self.year:04d}-{self.month:02d}"

    def contains(self, day: Union[date, datetime, None]) -> bool:
        """Check if a date falls within the month (both ends inclusive)."""
        if day is None:
            return False
        if isinstance(day, datetime):
            day = day.date()
        return self.start <= day <= self.end

    def previous(self) -> "BillingPeriod":
        if self.month == 1:
            return BillingPeriod(self.year - 1, 12)
        return BillingPeriod(self.year, self.month - 1)

    def __str__(self) -> str:
        return self.label


@dataclass
class PeriodSpend:
    """In-period transactions split into spend and payments."""
    period: BillingPeriod
    spend: List[TransactionSummary] = field(default_factory=list)
    payments: List[TransactionSummary] = field(default_factory=list)


def select_period_spend(
    transactions: Iterable[TransactionSummary],
    period: BillingPeriod,
) -> PeriodSpend:
    """
    Keep the transactions dated inside ``period`` and set payments aside.

    Payments are always removed from spend, whatever the rule's
    ``exclude_payments`` flag says.
    """
    selected = PeriodSpend(period=period)
    for txn in transactions or []:
        if not period.contains(txn.date):
            continue
        if txn.is_payment:
            selected.payments.append(txn)
        else:
            selected.spend.append(txn)

    logger.debug(
        "Period %s: %d spend, %d payments", period, len(selected.spend), len(selected.payments)
    )
    return selected
