"""
Next-step hints derived from a computed bonus progress.
"""
import math
from typing import List, Optional

from bonus.models import BonusRule
from config import DEFAULT_CURRENCY_SYMBOL, NEAR_CAP_THRESHOLD
from normalizer.amount_parser import format_currency
from tracker.results import BonusProgress, BonusStatus


class RecommendationGenerator:
    """
    Builds the ordered hint list shown next to a card's progress.

    Hints are independent; any number of them may apply at once:
    1. minimum spend not reached
    2. merchant count not reached
    3. close to the cap (both requirements met)
    4. room left under the cap while in the sweet spot
    5. cap exceeded
    """

    def __init__(
        self,
        currency_symbol: str = DEFAULT_CURRENCY_SYMBOL,
        near_cap_threshold: float = NEAR_CAP_THRESHOLD,
    ):
        self.currency_symbol = currency_symbol
        self.near_cap_threshold = near_cap_threshold

    def _money(self, amount: float) -> str:
        return format_currency(amount, self.currency_symbol)

    def generate(self, progress: BonusProgress, rule: BonusRule) -> List[str]:
        hints: List[str] = []
        min_merchants = rule.effective_min_merchant_count

        if not progress.min_spend_met:
            hints.append(
                f"Spend {self._money(progress.remaining_to_minimum)} more to hit minimum requirement"
            )

        if not progress.merchant_requirement_met and min_merchants > 0:
            remaining = min_merchants - progress.merchant_count
            hints.append(f"Use {remaining} more qualifying merchant{'s' if remaining > 1 else ''}")

        if (progress.min_spend_met and progress.merchant_requirement_met
                and 0 < progress.remaining_to_cap < self.near_cap_threshold):
            hints.append(
                f"Only {self._money(progress.remaining_to_cap)} left before hitting bonus cap"
            )

        # An uncapped rule has no finite headroom to report
        if (progress.status is BonusStatus.IN_SWEET_SPOT
                and 0 < progress.remaining_to_cap and not math.isinf(progress.remaining_to_cap)):
            hints.append(
                f"You can spend {self._money(progress.remaining_to_cap)} more at qualifying merchants"
            )

        if progress.status is BonusStatus.OVER_CAP:
            overspend = progress.qualifying_spend - rule.effective_cap
            hints.append(f"You've exceeded the cap by {self._money(overspend)} - bonus is maxed")

        return hints


def generate_recommendations(
    progress: BonusProgress,
    rule: BonusRule,
    generator: Optional[RecommendationGenerator] = None,
) -> List[str]:
    """Convenience wrapper using the default generator."""
    return (generator or RecommendationGenerator()).generate(progress, rule)
