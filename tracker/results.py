"""
Bonus progress result types.
"""
import math
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional


class BonusStatus(Enum):
    """Where a card stands against its bonus rule this period."""
    INACTIVE = "inactive"
    BELOW_MINIMUM = "below_minimum"
    OVER_CAP = "over_cap"
    AT_CAP = "at_cap"
    IN_SWEET_SPOT = "in_sweet_spot"


def _finite_or_none(value: Optional[float]) -> Optional[float]:
    if value is None or math.isinf(value):
        return None
    return value


@dataclass
class BonusProgress:
    """
    A card's bonus progress for one period.

    Computed fresh on every request and never stored. ``remaining_to_cap`` is
    ``math.inf`` for an uncapped rule, and ``cap_utilization`` is then None.
    """
    card_id: str
    period: str
    total_spend: float = 0.0
    qualifying_spend: float = 0.0
    non_qualifying_spend: float = 0.0
    merchants_used: List[str] = field(default_factory=list)
    merchant_count: int = 0
    min_spend_met: bool = False
    bonus_cap_reached: bool = False
    merchant_requirement_met: bool = False
    remaining_to_minimum: float = 0.0
    remaining_to_cap: float = math.inf
    estimated_bonus: float = 0.0
    estimated_miles: Optional[float] = None
    status: BonusStatus = BonusStatus.INACTIVE
    recommendations: List[str] = field(default_factory=list)

    # Counts
    transaction_count: int = 0
    qualifying_count: int = 0
    payment_count: int = 0

    # Share of the cap used, 0-100
    cap_utilization: Optional[float] = None

    def to_dict(self) -> Dict[str, Any]:
        """Convert progress to a JSON-safe dictionary (infinity becomes None)."""
        return {
            'card_id': self.card_id,
            'period': self.period,
            'total_spend': self.total_spend,
            'qualifying_spend': self.qualifying_spend,
            'non_qualifying_spend': self.non_qualifying_spend,
            'merchants_used': list(self.merchants_used),
            'merchant_count': self.merchant_count,
            'min_spend_met': self.min_spend_met,
            'bonus_cap_reached': self.bonus_cap_reached,
            'merchant_requirement_met': self.merchant_requirement_met,
            'remaining_to_minimum': self.remaining_to_minimum,
            'remaining_to_cap': _finite_or_none(self.remaining_to_cap),
            'estimated_bonus': self.estimated_bonus,
            'estimated_miles': self.estimated_miles,
            'status': self.status.value,
            'recommendations': list(self.recommendations),
            'transaction_count': self.transaction_count,
            'qualifying_count': self.qualifying_count,
            'payment_count': self.payment_count,
            'cap_utilization': self.cap_utilization,
        }
