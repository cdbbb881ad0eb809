"""
Bonus progress tracking: matching, period selection, calculation and hints.
"""
from .matcher import (
    MatchResult,
    RuleMatcher,
    extract_merchant_name,
    find_unrecognized_merchants,
    has_excluded_keyword,
    matches_merchant,
)
from .period import BillingPeriod, PeriodError, PeriodSpend, select_period_spend
from .progress import ProgressCalculator, calculate_bonus_progress
from .recommendations import RecommendationGenerator, generate_recommendations
from .results import BonusProgress, BonusStatus

__all__ = [
    'MatchResult', 'RuleMatcher', 'extract_merchant_name', 'find_unrecognized_merchants',
    'has_excluded_keyword', 'matches_merchant',
    'BillingPeriod', 'PeriodError', 'PeriodSpend', 'select_period_spend',
    'ProgressCalculator', 'calculate_bonus_progress',
    'RecommendationGenerator', 'generate_recommendations',
    'BonusProgress', 'BonusStatus',
]
