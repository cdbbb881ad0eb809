"""
Merchant and category matching for bonus qualification.

A transaction qualifies under a rule when:
- the rule lists no merchants, or one of its merchants matches the description
- the rule lists no categories, or the transaction's category is one of them
- no exclusion keyword appears in the description
"""
import logging
from dataclasses import dataclass
from typing import Iterable, List, Optional, Sequence, Union

from bonus.models import BonusRule, MerchantMatchMode, MerchantPattern, compile_merchant_patterns
from parsers.base_parser import TransactionSummary

logger = logging.getLogger(__name__)

MerchantEntries = Union[Sequence[str], Sequence[MerchantPattern]]


@dataclass
class MatchResult:
    """Result of testing one transaction against a rule."""
    qualifies: bool
    merchant: Optional[str] = None
    reason: str = ""


def _as_patterns(merchants: MerchantEntries, mode: MerchantMatchMode) -> List[MerchantPattern]:
    if all(isinstance(m, MerchantPattern) for m in merchants):
        return list(merchants)
    return compile_merchant_patterns([str(m) for m in merchants], mode)


def extract_merchant_name(
    description: str,
    merchants: MerchantEntries,
    mode: MerchantMatchMode = MerchantMatchMode.CONTAINS,
) -> Optional[str]:
    """
    Find the rule merchant that a description matches.

    Args:
        description: Transaction description
        merchants: The rule's merchant strings (or precompiled patterns)
        mode: Match mode used when plain strings are given

    Returns:
        The first matching merchant string as written in the rule, or None
    """
    for pattern in _as_patterns(merchants, mode):
        if pattern.matches(description):
            return pattern.text
    return None


def matches_merchant(
    description: str,
    merchants: MerchantEntries,
    mode: MerchantMatchMode = MerchantMatchMode.CONTAINS,
) -> bool:
    """
    Check if a description matches any merchant.

    Exact and contains comparisons ignore case; regex entries are searched
    case-insensitively and an invalid regex never matches.
    """
    return extract_merchant_name(description, merchants, mode) is not None


def has_excluded_keyword(description: str, keywords: Iterable[str]) -> bool:
    """Check if any exclusion keyword appears in the description (ignoring case)."""
    desc_lower = description.lower()
    return any(keyword.lower() in desc_lower for keyword in keywords)


class RuleMatcher:
    """
    Classifies transactions against one bonus rule.
    """

    def __init__(self, rule: BonusRule):
        self.rule = rule
        self._patterns = rule.merchant_patterns
        self._categories = (
            {c.lower() for c in rule.qualifying_categories}
            if rule.qualifying_categories else None
        )

    def matches_category(self, category: str) -> bool:
        if not self._categories:
            return True
        return (category or "").lower() in self._categories

    def evaluate(self, txn: TransactionSummary) -> MatchResult:
        """
        Test a transaction against the rule.

        Returns:
            MatchResult with the canonical merchant name when one matched
        """
        if has_excluded_keyword(txn.description, self.rule.exclude_keywords):
            return MatchResult(qualifies=False, reason="excluded keyword")

        merchant = None
        if self._patterns:
            merchant = extract_merchant_name(txn.description, self._patterns)
            if merchant is None:
                return MatchResult(qualifies=False, reason="no merchant match")

        if not self.matches_category(txn.category):
            return MatchResult(qualifies=False, merchant=merchant, reason="category not eligible")

        return MatchResult(qualifies=True, merchant=merchant, reason="qualifies")

    def qualifies(self, txn: TransactionSummary) -> bool:
        return self.evaluate(txn).qualifies


def find_unrecognized_merchants(
    transactions: Iterable[TransactionSummary],
    rule: BonusRule,
) -> List[str]:
    """
    List spend descriptions that none of the rule's merchants recognise.

    Useful for spotting merchants that should be added to a rule. A
    description counts as recognised when it contains a rule merchant, or
    when a rule merchant contains its first word.

    Returns:
        Distinct descriptions in first-seen order
    """
    merchants_lower = [m.lower() for m in rule.qualifying_merchants]
    seen = []
    for txn in transactions:
        if txn.is_payment:
            continue
        description = txn.description.strip()
        if not description or description in seen:
            continue
        desc_lower = description.lower()
        first_word = desc_lower.split()[0]
        recognised = any(m in desc_lower or first_word in m for m in merchants_lower)
        if not recognised:
            seen.append(description)
    return seen
