"""
Unit tests for the bonus rule model and rule repositories.
"""
import os
import sys
import tempfile
import unittest
from datetime import date

import yaml

sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from bonus.models import BonusRule, MerchantMatchMode, RewardUnit, RuleValidationError
from bonus.profiles import CardProfile, ProfileNotFoundError
from bonus.repository import (
    ActiveRuleConflictError,
    InMemoryRuleRepository,
    RuleNotFoundError,
    RuleStoreError,
    YamlRuleRepository,
)
from parsers.base_parser import TransactionSummary
from tracker.progress import ProgressCalculator


def _rule_data(**overrides):
    data = {
        'card_id': 'card-1',
        'name': 'Grocery bonus',
        'min_spend': 500,
        'max_bonus_spend': 1000,
        'min_merchant_count': 2,
        'qualifying_merchants': ['Giant', 'Guardian'],
        'bonus_rate': 0.10,
    }
    data.update(overrides)
    return data


class TestBonusRule(unittest.TestCase):
    """Tests for the rule model."""

    def test_enum_strings_converted(self):
        rule = BonusRule.from_dict({'id': 'r1', 'card_id': 'c1', 'merchant_match_mode': 'REGEX',
                                    'reward_unit': 'miles'})
        self.assertIs(rule.merchant_match_mode, MerchantMatchMode.REGEX)
        self.assertIs(rule.reward_unit, RewardUnit.MILES)

    def test_unknown_mode_rejected(self):
        with self.assertRaises(RuleValidationError):
            BonusRule.from_dict({'id': 'r1', 'card_id': 'c1', 'merchant_match_mode': 'fuzzy'})

    def test_unknown_field_rejected(self):
        with self.assertRaises(RuleValidationError) as ctx:
            BonusRule.from_dict({'id': 'r1', 'card_id': 'c1', 'colour': 'blue'})
        self.assertIn("unknown rule field 'colour'", ctx.exception.errors)

    def test_validate(self):
        rule = BonusRule(id='r1', card_id='', min_spend=-1, miles_per_dollar=0,
                         qualifying_merchants=['('], merchant_match_mode='regex')
        errors = rule.validate()
        self.assertEqual(len(errors), 4)

    def test_single_string_list_fields(self):
        rule = BonusRule.from_dict({'id': 'r1', 'card_id': 'c1', 'exclude_keywords': 'voucher',
                                    'qualifying_merchants': 'Cold Storage',
                                    'qualifying_categories': 'food'})
        self.assertEqual(rule.exclude_keywords, ['voucher'])
        self.assertEqual(rule.qualifying_merchants, ['Cold Storage'])
        self.assertEqual(rule.qualifying_categories, ['food'])

    def test_non_list_field_is_invalid(self):
        rule = BonusRule(id='r1', card_id='c1', exclude_keywords='voucher')
        self.assertEqual(
            rule.validate(), ["exclude_keywords must be a list of strings (got 'voucher')"]
        )

    def test_effective_values(self):
        rule = BonusRule(id='r1', card_id='c1')
        self.assertEqual(rule.effective_min_spend, 0.0)
        self.assertEqual(rule.effective_min_merchant_count, 0)
        self.assertFalse(rule.has_cap)

    def test_patterns_follow_merchant_changes(self):
        rule = BonusRule(id='r1', card_id='c1', qualifying_merchants=['Giant'])
        self.assertEqual([p.text for p in rule.merchant_patterns], ['Giant'])
        rule.qualifying_merchants = ['Giant', 'Guardian']
        self.assertEqual([p.text for p in rule.merchant_patterns], ['Giant', 'Guardian'])

    def test_dict_round_trip(self):
        rule = BonusRule.from_dict({**_rule_data(), 'id': 'r1', 'qualifying_categories': ['food']})
        again = BonusRule.from_dict(rule.to_dict())
        self.assertEqual(again, rule)


class TestRuleRepository(unittest.TestCase):
    """Tests for rule CRUD and the single-active constraint."""

    def setUp(self):
        self.repo = InMemoryRuleRepository()

    def test_create_assigns_id_and_timestamps(self):
        rule = self.repo.create(_rule_data())
        self.assertTrue(rule.id)
        self.assertEqual(rule.created_at, rule.updated_at)
        self.assertEqual(self.repo.get(rule.id), rule)
        self.assertEqual(len(self.repo), 1)

    def test_create_rejects_system_fields(self):
        with self.assertRaises(RuleValidationError):
            self.repo.create(_rule_data(id='mine'))

    def test_create_rejects_invalid_regex(self):
        with self.assertRaises(RuleValidationError):
            self.repo.create(_rule_data(qualifying_merchants=['[unclosed'], merchant_match_mode='regex'))
        self.assertEqual(len(self.repo), 0)

    def test_get_unknown(self):
        with self.assertRaises(RuleNotFoundError):
            self.repo.get('missing')

    def test_rules_for_card(self):
        self.repo.create(_rule_data())
        self.repo.create(_rule_data(is_active=False))
        self.repo.create(_rule_data(card_id='card-2'))
        self.assertEqual(len(self.repo.get_rules_for_card('card-1')), 2)
        self.assertEqual(self.repo.get_rules_for_card('nobody'), [])

    def test_active_rule_for_card(self):
        self.repo.create(_rule_data(is_active=False, name='old'))
        active = self.repo.create(_rule_data(name='current'))
        self.assertEqual(self.repo.get_active_rule_for_card('card-1'), active)
        self.assertIsNone(self.repo.get_active_rule_for_card('card-2'))

    def test_second_active_rule_rejected(self):
        self.repo.create(_rule_data())
        with self.assertRaises(ActiveRuleConflictError):
            self.repo.create(_rule_data(name='another'))
        self.assertEqual(len(self.repo), 1)

    def test_update(self):
        rule = self.repo.create(_rule_data())
        updated = self.repo.update(rule.id, {'min_spend': 800, 'name': 'Renamed'})

        self.assertEqual(updated.id, rule.id)
        self.assertEqual(updated.min_spend, 800)
        self.assertEqual(updated.name, 'Renamed')
        self.assertEqual(updated.qualifying_merchants, ['Giant', 'Guardian'])
        self.assertEqual(updated.created_at, rule.created_at)
        self.assertGreaterEqual(updated.updated_at, rule.updated_at)

    def test_update_unknown_rule(self):
        with self.assertRaises(RuleNotFoundError):
            self.repo.update('missing', {'name': 'x'})

    def test_update_rejects_unknown_field(self):
        rule = self.repo.create(_rule_data())
        with self.assertRaises(RuleValidationError):
            self.repo.update(rule.id, {'bogus': 1})

    def test_update_cannot_activate_second_rule(self):
        self.repo.create(_rule_data())
        spare = self.repo.create(_rule_data(is_active=False))
        with self.assertRaises(ActiveRuleConflictError):
            self.repo.update(spare.id, {'is_active': True})
        self.assertFalse(self.repo.get(spare.id).is_active)

    def test_delete(self):
        rule = self.repo.create(_rule_data())
        self.assertTrue(self.repo.delete(rule.id))
        self.assertFalse(self.repo.delete(rule.id))
        self.assertEqual(len(self.repo), 0)

    def test_toggle_active(self):
        rule = self.repo.create(_rule_data())
        self.assertFalse(self.repo.toggle_active(rule.id).is_active)
        self.assertTrue(self.repo.toggle_active(rule.id).is_active)

    def test_toggle_conflict(self):
        self.repo.create(_rule_data())
        spare = self.repo.create(_rule_data(is_active=False))
        with self.assertRaises(ActiveRuleConflictError):
            self.repo.toggle_active(spare.id)

    def test_add_merchant(self):
        rule = self.repo.create(_rule_data())
        updated = self.repo.add_merchant(rule.id, '7-Eleven')
        self.assertEqual(updated.qualifying_merchants, ['Giant', 'Guardian', '7-Eleven'])

    def test_add_merchant_is_idempotent(self):
        rule = self.repo.create(_rule_data())
        self.repo.add_merchant(rule.id, 'Giant')
        self.assertEqual(self.repo.get(rule.id).qualifying_merchants, ['Giant', 'Guardian'])

    def test_add_invalid_regex_merchant(self):
        rule = self.repo.create(_rule_data(merchant_match_mode='regex'))
        with self.assertRaises(RuleValidationError):
            self.repo.add_merchant(rule.id, '(')
        self.assertEqual(self.repo.get(rule.id).qualifying_merchants, ['Giant', 'Guardian'])

    def test_remove_merchant_is_case_sensitive(self):
        rule = self.repo.create(_rule_data())
        self.repo.remove_merchant(rule.id, 'giant')
        self.assertEqual(self.repo.get(rule.id).qualifying_merchants, ['Giant', 'Guardian'])
        self.repo.remove_merchant(rule.id, 'Giant')
        self.assertEqual(self.repo.get(rule.id).qualifying_merchants, ['Guardian'])

    def test_create_with_single_string_keyword(self):
        rule = self.repo.create({'card_id': 'c', 'exclude_keywords': 'voucher',
                                 'qualifying_merchants': 'Cold Storage'})
        self.assertEqual(rule.exclude_keywords, ['voucher'])

        txn = TransactionSummary(amount=10.0, description='Cold Storage', date=date(2025, 10, 1))
        progress = ProgressCalculator().calculate(rule, [txn], '2025-10')
        self.assertEqual(progress.qualifying_spend, 10)

    def test_remove_absent_merchant_changes_nothing(self):
        rule = self.repo.create(_rule_data())
        unchanged = self.repo.remove_merchant(rule.id, 'Watsons')
        self.assertIs(unchanged, rule)
        self.assertEqual(self.repo.get(rule.id).updated_at, rule.updated_at)

    def test_separate_repositories_do_not_share_rules(self):
        self.repo.create(_rule_data())
        self.assertEqual(len(InMemoryRuleRepository()), 0)


class TestApplyProfile(unittest.TestCase):
    """Tests for seeding a card from a profile."""

    def setUp(self):
        self.repo = InMemoryRuleRepository()

    def test_apply_builtin_profile(self):
        rules = self.repo.apply_profile('dbs-yuu-2025-10', 'my-yuu')

        self.assertEqual(len(rules), 1)
        rule = rules[0]
        self.assertEqual(rule.card_id, 'my-yuu')
        self.assertEqual(rule.min_spend, 800)
        self.assertEqual(rule.max_bonus_spend, 822.86)
        self.assertEqual(rule.min_merchant_count, 4)
        self.assertIs(rule.reward_unit, RewardUnit.MILES)
        self.assertEqual(self.repo.get_active_rule_for_card('my-yuu'), rule)

    def test_apply_profile_by_name(self):
        rules = self.repo.apply_profile('dbs yuu', 'my-yuu')
        self.assertEqual(rules[0].min_spend, 800)

    def test_apply_replaces_existing_card_rules(self):
        old = self.repo.create(_rule_data(card_id='my-yuu'))
        other = self.repo.create(_rule_data(card_id='other'))

        self.repo.apply_profile('yuu', 'my-yuu')

        ids = [r.id for r in self.repo.list_rules()]
        self.assertNotIn(old.id, ids)
        self.assertIn(other.id, ids)
        self.assertEqual(len(self.repo.get_rules_for_card('my-yuu')), 1)

    def test_apply_twice_gives_fresh_ids(self):
        first = self.repo.apply_profile('uob one', 'card')[0]
        second = self.repo.apply_profile('uob one', 'card')[0]
        self.assertNotEqual(first.id, second.id)
        self.assertEqual(len(self.repo), 1)

    def test_unknown_profile(self):
        with self.assertRaises(ProfileNotFoundError):
            self.repo.apply_profile('no-such-card', 'card')

    def test_profile_with_two_active_templates(self):
        profile = CardProfile(
            id='double', bank_name='Test', card_name='Double',
            rule_templates=[{'name': 'a'}, {'name': 'b'}],
        )
        existing = self.repo.create(_rule_data(card_id='card'))
        with self.assertRaises(ActiveRuleConflictError):
            self.repo.apply_profile(profile, 'card')
        self.assertEqual(self.repo.list_rules(), [existing])


class TestYamlRuleRepository(unittest.TestCase):
    """Tests for YAML persistence."""

    def setUp(self):
        self.temp_dir = tempfile.mkdtemp()
        self.path = os.path.join(self.temp_dir, 'nested', 'rules.yaml')

    def _write_rules_file(self, content):
        os.makedirs(os.path.dirname(self.path), exist_ok=True)
        with open(self.path, 'w', encoding='utf-8') as f:
            f.write(content)

    def test_invalid_yaml_rejected(self):
        self._write_rules_file("bonus_rules: [unclosed\n")
        with self.assertRaises(RuleStoreError):
            YamlRuleRepository(self.path)

    def test_top_level_list_rejected(self):
        self._write_rules_file("- card_id: c1\n")
        with self.assertRaises(RuleStoreError):
            YamlRuleRepository(self.path)

    def test_rules_must_be_mappings(self):
        self._write_rules_file("bonus_rules:\n  - just a string\n")
        with self.assertRaises(RuleStoreError):
            YamlRuleRepository(self.path)

    def test_remove_absent_merchant_does_not_rewrite(self):
        repo = YamlRuleRepository(self.path)
        rule = repo.create(_rule_data())
        os.utime(self.path, (1000000000, 1000000000))
        repo.remove_merchant(rule.id, 'Watsons')
        self.assertEqual(os.path.getmtime(self.path), 1000000000)

    def test_missing_file_starts_empty(self):
        self.assertEqual(len(YamlRuleRepository(self.path)), 0)

    def test_changes_are_persisted(self):
        repo = YamlRuleRepository(self.path)
        rule = repo.create(_rule_data(qualifying_categories=['food']))
        repo.add_merchant(rule.id, 'Cold Storage')

        reloaded = YamlRuleRepository(self.path)
        stored = reloaded.get(rule.id)
        self.assertEqual(stored.qualifying_merchants, ['Giant', 'Guardian', 'Cold Storage'])
        self.assertEqual(stored.qualifying_categories, ['food'])
        self.assertEqual(stored.created_at, rule.created_at)

    def test_file_layout(self):
        repo = YamlRuleRepository(self.path)
        repo.create(_rule_data())
        with open(self.path, 'r', encoding='utf-8') as f:
            payload = yaml.safe_load(f)
        self.assertEqual(len(payload['bonus_rules']), 1)
        self.assertEqual(payload['bonus_rules'][0]['merchant_match_mode'], 'contains')

    def test_delete_persisted(self):
        repo = YamlRuleRepository(self.path)
        rule = repo.create(_rule_data())
        repo.delete(rule.id)
        self.assertEqual(len(YamlRuleRepository(self.path)), 0)

    def test_conflicting_file_rejected(self):
        os.makedirs(os.path.dirname(self.path))
        rules = [
            {**_rule_data(), 'id': 'a'},
            {**_rule_data(), 'id': 'b'},
        ]
        with open(self.path, 'w', encoding='utf-8') as f:
            yaml.safe_dump({'bonus_rules': rules}, f)
        with self.assertRaises(ActiveRuleConflictError):
            YamlRuleRepository(self.path)


if __name__ == '__main__':
    unittest.main()
