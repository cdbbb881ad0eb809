"""
Unit tests for merchant and category matching.
"""
import unittest
from datetime import date

import sys
import os
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from bonus.models import BonusRule, MerchantMatchMode, MerchantPattern
from parsers.base_parser import TransactionSummary
from tracker.matcher import (
    RuleMatcher,
    extract_merchant_name,
    find_unrecognized_merchants,
    has_excluded_keyword,
    matches_merchant,
)


def _txn(description, amount=10.0, category="other", is_payment=False):
    return TransactionSummary(
        amount=amount, description=description, date=date(2025, 10, 5),
        category=category, is_payment=is_payment,
    )


class TestMerchantMatching(unittest.TestCase):
    """Tests for the three merchant match modes."""

    def test_contains_ignores_case(self):
        self.assertTrue(matches_merchant("COLD STORAGE JEM", ["Cold Storage"]))
        self.assertFalse(matches_merchant("NTUC FairPrice", ["Cold Storage"]))

    def test_exact(self):
        mode = MerchantMatchMode.EXACT
        self.assertTrue(matches_merchant("giant", ["Giant"], mode))
        self.assertFalse(matches_merchant("Giant Tampines", ["Giant"], mode))

    def test_regex(self):
        mode = MerchantMatchMode.REGEX
        self.assertTrue(matches_merchant("7-ELEVEN #123", [r"7-?(eleven|11)"], mode))
        self.assertFalse(matches_merchant("Seven Seas", [r"7-?(eleven|11)"], mode))

    def test_invalid_regex_never_matches(self):
        mode = MerchantMatchMode.REGEX
        self.assertFalse(matches_merchant("anything [", ["["], mode))
        self.assertTrue(matches_merchant("Giant", ["[", "giant"], mode))

    def test_invalid_regex_pattern_is_flagged(self):
        pattern = MerchantPattern.build("(", MerchantMatchMode.REGEX)
        self.assertFalse(pattern.is_valid)
        self.assertIsNone(pattern.compiled)

    def test_extract_returns_rule_spelling(self):
        """Test that the merchant is reported as written in the rule."""
        merchant = extract_merchant_name("giant hypermarket", ["Cold Storage", "Giant"])
        self.assertEqual(merchant, "Giant")

    def test_first_listed_merchant_wins(self):
        merchant = extract_merchant_name("7-11 CS Fresh", ["CS Fresh", "7-11"])
        self.assertEqual(merchant, "CS Fresh")

    def test_no_merchants(self):
        self.assertIsNone(extract_merchant_name("Giant", []))

    def test_excluded_keyword(self):
        self.assertTrue(has_excluded_keyword("FOODPANDA VOUCHER", ["voucher"]))
        self.assertFalse(has_excluded_keyword("foodpanda", ["voucher"]))
        self.assertFalse(has_excluded_keyword("foodpanda", []))


class TestRuleMatcher(unittest.TestCase):
    """Tests for classifying transactions against a rule."""

    def test_merchant_rule(self):
        rule = BonusRule(id="r1", card_id="c1", qualifying_merchants=["Guardian"])
        matcher = RuleMatcher(rule)

        result = matcher.evaluate(_txn("GUARDIAN ORCHARD"))
        self.assertTrue(result.qualifies)
        self.assertEqual(result.merchant, "Guardian")

        result = matcher.evaluate(_txn("Watsons"))
        self.assertFalse(result.qualifies)
        self.assertEqual(result.reason, "no merchant match")

    def test_exclusion_beats_merchant(self):
        rule = BonusRule(
            id="r1", card_id="c1",
            qualifying_merchants=["foodpanda"], exclude_keywords=["PandaPro"],
        )
        result = RuleMatcher(rule).evaluate(_txn("foodpanda pandapro subscription"))
        self.assertFalse(result.qualifies)
        self.assertEqual(result.reason, "excluded keyword")

    def test_category_only_rule(self):
        rule = BonusRule(id="r1", card_id="c1", qualifying_categories=["Food"])
        matcher = RuleMatcher(rule)

        self.assertTrue(matcher.qualifies(_txn("Hawker", category="food")))
        self.assertFalse(matcher.qualifies(_txn("Cinema", category="entertainment")))
        self.assertIsNone(matcher.evaluate(_txn("Hawker", category="food")).merchant)

    def test_merchant_and_category(self):
        rule = BonusRule(
            id="r1", card_id="c1",
            qualifying_merchants=["Giant"], qualifying_categories=["food"],
        )
        result = RuleMatcher(rule).evaluate(_txn("Giant", category="shopping"))
        self.assertFalse(result.qualifies)
        self.assertEqual(result.reason, "category not eligible")

    def test_empty_rule_qualifies_everything(self):
        rule = BonusRule(id="r1", card_id="c1", qualifying_categories=[])
        self.assertTrue(RuleMatcher(rule).qualifies(_txn("Anything")))


class TestUnrecognizedMerchants(unittest.TestCase):
    """Tests for suggesting merchants missing from a rule."""

    def test_lists_unknown_descriptions_once(self):
        rule = BonusRule(id="r1", card_id="c1", qualifying_merchants=["Giant", "Guardian"])
        transactions = [
            _txn("Giant Tampines"),
            _txn("Netflix.com"),
            _txn("Netflix.com"),
            _txn("DBS PAYMENT", is_payment=True),
        ]
        self.assertEqual(find_unrecognized_merchants(transactions, rule), ["Netflix.com"])


if __name__ == '__main__':
    unittest.main()
