"""
Bonus progress calculation.

Given a card's bonus rule and its transactions, works out for one calendar
month how much spend qualifies, whether the minimum spend and merchant
count are met, where the card sits relative to the cap, and what bonus the
qualifying spend earns.

Strategy:
1. Select the period's transactions and drop payments
2. Classify each remaining transaction with the rule's matcher
3. Derive threshold flags and the status
4. Estimate the reward (only once both requirements are met)
5. Attach next-step hints
"""
import logging
from typing import Iterable, Optional, Union

from bonus.models import BonusRule
from bonus.repository import RuleRepository
from config import AT_CAP_RATIO
from parsers.base_parser import TransactionSummary
from tracker.matcher import RuleMatcher
from tracker.period import BillingPeriod, select_period_spend
from tracker.recommendations import RecommendationGenerator
from tracker.results import BonusProgress, BonusStatus

logger = logging.getLogger(__name__)


class ProgressCalculator:
    """
    Computes ``BonusProgress`` for a rule over a set of transactions.

    The calculation is pure: the same rule, transactions and period always
    produce the same result, and nothing is cached between calls.
    """

    def __init__(
        self,
        at_cap_ratio: float = AT_CAP_RATIO,
        recommender: Optional[RecommendationGenerator] = None,
    ):
        """
        Initialize the calculator.

        Args:
            at_cap_ratio: Share of the cap from which a card counts as at cap
            recommender: Hint generator (defaults to RecommendationGenerator())
        """
        self.at_cap_ratio = at_cap_ratio
        self.recommender = recommender or RecommendationGenerator()

    def calculate(
        self,
        rule: BonusRule,
        transactions: Iterable[TransactionSummary],
        period: Union[BillingPeriod, str, None] = None,
        card_id: Optional[str] = None,
    ) -> BonusProgress:
        """
        Calculate progress for a rule.

        Args:
            rule: The bonus rule to evaluate
            transactions: The card's transactions (any period)
            period: BillingPeriod or "YYYY-MM"; defaults to the current month
            card_id: Card to report; defaults to the rule's card

        Returns:
            BonusProgress for the period
        """
        if not isinstance(period, BillingPeriod):
            period = BillingPeriod.parse(period)

        selected = select_period_spend(transactions, period)
        matcher = RuleMatcher(rule)

        total_spend = 0.0
        qualifying_spend = 0.0
        non_qualifying_spend = 0.0
        qualifying_count = 0
        merchants_used = []

        for txn in selected.spend:
            total_spend += txn.amount
            result = matcher.evaluate(txn)
            logger.debug("%r -> %s", txn.description, result.reason)

            if result.qualifies:
                qualifying_spend += txn.amount
                qualifying_count += 1
                # A refund alone does not count as using a merchant
                if result.merchant and txn.amount > 0 and result.merchant not in merchants_used:
                    merchants_used.append(result.merchant)
            else:
                non_qualifying_spend += txn.amount

        min_spend = rule.effective_min_spend
        cap = rule.effective_cap
        min_merchant_count = rule.effective_min_merchant_count

        min_spend_met = total_spend >= min_spend
        bonus_cap_reached = qualifying_spend >= cap
        merchant_requirement_met = len(merchants_used) >= min_merchant_count

        progress = BonusProgress(
            card_id=card_id or rule.card_id,
            period=period.label,
            total_spend=total_spend,
            qualifying_spend=qualifying_spend,
            non_qualifying_spend=non_qualifying_spend,
            merchants_used=merchants_used,
            merchant_count=len(merchants_used),
            min_spend_met=min_spend_met,
            bonus_cap_reached=bonus_cap_reached,
            merchant_requirement_met=merchant_requirement_met,
            remaining_to_minimum=max(0.0, min_spend - total_spend),
            remaining_to_cap=max(0.0, cap - qualifying_spend),
            status=self._classify(rule, total_spend, qualifying_spend),
            transaction_count=len(selected.spend),
            qualifying_count=qualifying_count,
            payment_count=len(selected.payments),
            cap_utilization=(
                min(qualifying_spend / cap * 100.0, 100.0) if rule.has_cap else None
            ),
        )

        if min_spend_met and merchant_requirement_met:
            effective_spend = min(qualifying_spend, cap)
            progress.estimated_bonus = effective_spend * rule.bonus_rate
            progress.estimated_miles = self._estimate_miles(rule, effective_spend, progress.estimated_bonus)

        progress.recommendations = self.recommender.generate(progress, rule)
        return progress

    def _classify(self, rule: BonusRule, total_spend: float, qualifying_spend: float) -> BonusStatus:
        """First matching status wins, in priority order."""
        cap = rule.effective_cap
        if not rule.is_active:
            return BonusStatus.INACTIVE
        if total_spend < rule.effective_min_spend:
            return BonusStatus.BELOW_MINIMUM
        if qualifying_spend > cap:
            return BonusStatus.OVER_CAP
        if qualifying_spend >= cap * self.at_cap_ratio:
            return BonusStatus.AT_CAP
        return BonusStatus.IN_SWEET_SPOT

    @staticmethod
    def _estimate_miles(rule: BonusRule, effective_spend: float, estimated_bonus: float) -> Optional[float]:
        """Direct miles-per-dollar takes precedence over converting points."""
        if rule.miles_per_dollar:
            return effective_spend * rule.miles_per_dollar
        if rule.points_to_miles_ratio:
            return estimated_bonus / rule.points_to_miles_ratio
        return None


def calculate_bonus_progress(
    repository: RuleRepository,
    card_id: str,
    transactions: Iterable[TransactionSummary],
    period: Union[BillingPeriod, str, None] = None,
    calculator: Optional[ProgressCalculator] = None,
) -> Optional[BonusProgress]:
    """
    Calculate progress for a card's active rule.

    Returns:
        BonusProgress, or None when the card has no active rule
    """
    rule = repository.get_active_rule_for_card(card_id)
    if rule is None:
        logger.info("No active bonus rule for card %s", card_id)
        return None
    return (calculator or ProgressCalculator()).calculate(rule, transactions, period, card_id=card_id)
