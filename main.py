#!/usr/bin/env python3
"""
Bonus Reward Tracker - Main Entry Point

Manages per-card bonus rules and reports how a card's spending this month
measures up against its bonus programme: qualifying spend, minimum spend,
merchant count, cap, estimated reward, and what to do next.

Usage:
    python main.py [--rules-file rules.yaml] <command> [options]

Examples:
    python main.py profiles
    python main.py apply-profile --card my-yuu --profile dbs-yuu-2025-10
    python main.py progress --card my-yuu --transactions october.csv --period 2025-10
"""
import argparse
import json
import logging
import sys
from typing import List, Optional

from bonus.models import RuleValidationError
from bonus.profiles import ProfileNotFoundError, get_profile_catalog
from bonus.repository import (
    ActiveRuleConflictError,
    RuleNotFoundError,
    RuleStoreError,
    YamlRuleRepository,
)
from config import APP_NAME, APP_VERSION, get_config
from normalizer.amount_parser import format_currency
from parsers.csv_parser import TransactionCSVParser
from tracker.matcher import find_unrecognized_merchants
from tracker.period import BillingPeriod, PeriodError
from tracker.progress import ProgressCalculator
from tracker.recommendations import RecommendationGenerator

logger = logging.getLogger(__name__)


def _split_list(value: Optional[List[str]]) -> Optional[List[str]]:
    """Flatten repeated and comma-separated list options."""
    if value is None:
        return None
    items = []
    for entry in value:
        items.extend(part.strip() for part in entry.split(',') if part.strip())
    return items


def _add_rule_fields(parser: argparse.ArgumentParser) -> None:
    """Options shared by add-rule and update-rule."""
    parser.add_argument('--name', help='Rule name')
    parser.add_argument('--description', help='Short description of the bonus')
    parser.add_argument('--min-spend', type=float, help='Minimum total spend per month')
    parser.add_argument('--cap', type=float, dest='max_bonus_spend',
                        help='Maximum qualifying spend that earns the bonus')
    parser.add_argument('--min-merchants', type=int, dest='min_merchant_count',
                        help='Distinct qualifying merchants required per month')
    parser.add_argument('--merchant', action='append', dest='qualifying_merchants',
                        help='Qualifying merchant (repeat or comma-separate)')
    parser.add_argument('--mode', choices=['exact', 'contains', 'regex'], dest='merchant_match_mode',
                        help='How merchants are matched against descriptions')
    parser.add_argument('--category', action='append', dest='qualifying_categories',
                        help='Qualifying transaction category (repeat or comma-separate)')
    parser.add_argument('--exclude', action='append', dest='exclude_keywords',
                        help='Keyword that disqualifies a transaction (repeat or comma-separate)')
    parser.add_argument('--bonus-rate', type=float, help='Bonus reward rate, e.g. 0.10')
    parser.add_argument('--base-rate', type=float, help='Base reward rate, e.g. 0.003')
    parser.add_argument('--unit', choices=['cashback', 'points', 'miles'], dest='reward_unit',
                        help='Reward unit')
    parser.add_argument('--miles-per-dollar', type=float, help='Miles earned per qualifying dollar')
    parser.add_argument('--points-ratio', type=float, dest='points_to_miles_ratio',
                        help='Reward points per mile')


_RULE_FIELDS = [
    'name', 'description', 'min_spend', 'max_bonus_spend', 'min_merchant_count',
    'qualifying_merchants', 'merchant_match_mode', 'qualifying_categories',
    'exclude_keywords', 'bonus_rate', 'base_rate', 'reward_unit',
    'miles_per_dollar', 'points_to_miles_ratio',
]


def _rule_fields_from_args(args: argparse.Namespace) -> dict:
    fields = {}
    for name in _RULE_FIELDS:
        value = getattr(args, name, None)
        if value is None:
            continue
        if name in ('qualifying_merchants', 'qualifying_categories', 'exclude_keywords'):
            value = _split_list(value)
        fields[name] = value
    return fields


def parse_arguments(argv: Optional[List[str]] = None) -> argparse.Namespace:
    """Parse command line arguments."""
    config = get_config()
    parser = argparse.ArgumentParser(
        description="Track credit card bonus progress against per-card bonus rules.",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  python main.py profiles
  python main.py apply-profile --card my-yuu --profile "DBS Yuu Card"
  python main.py add-rule --card my-uob --min-spend 500 --cap 2000 --bonus-rate 0.10
  python main.py progress --card my-yuu --transactions october.csv --period 2025-10 --json

Environment Variables:
  BONUS_RULES_FILE   - Rule store location (default: bonus_rules.yaml)
  CURRENCY_SYMBOL    - Symbol used in hints (default: $)
  LOG_LEVEL          - Logging level (default: WARNING)
        """
    )
    parser.add_argument(
        '--rules-file', '-r',
        default=config.get('rules_file'),
        help='YAML file holding the bonus rules'
    )
    parser.add_argument(
        '--version',
        action='version',
        version=f"%(prog)s {APP_VERSION}"
    )
    parser.add_argument(
        '--verbose', '-v',
        action='store_true',
        help='Enable verbose output'
    )

    sub = parser.add_subparsers(dest='command', required=True)

    profiles = sub.add_parser('profiles', help='List card profile templates')
    profiles.add_argument('--search', help='Filter by bank, card or alias')

    apply_profile = sub.add_parser('apply-profile', help="Replace a card's rules with a profile's")
    apply_profile.add_argument('--card', required=True, help='Card id')
    apply_profile.add_argument('--profile', required=True, help='Profile id, name or alias')

    rules = sub.add_parser('rules', help='List stored rules')
    rules.add_argument('--card', help='Only rules for this card')

    add_rule = sub.add_parser('add-rule', help='Create a rule')
    add_rule.add_argument('--card', required=True, help='Card id')
    add_rule.add_argument('--inactive', action='store_true', help='Create the rule switched off')
    _add_rule_fields(add_rule)

    update_rule = sub.add_parser('update-rule', help='Change fields of a rule')
    update_rule.add_argument('--rule', required=True, help='Rule id')
    _add_rule_fields(update_rule)

    delete_rule = sub.add_parser('delete-rule', help='Delete a rule')
    delete_rule.add_argument('--rule', required=True, help='Rule id')

    toggle = sub.add_parser('toggle', help='Switch a rule on or off')
    toggle.add_argument('--rule', required=True, help='Rule id')

    add_merchant = sub.add_parser('add-merchant', help='Add a qualifying merchant to a rule')
    add_merchant.add_argument('--rule', required=True, help='Rule id')
    add_merchant.add_argument('--merchant', required=True, help='Merchant text')

    remove_merchant = sub.add_parser('remove-merchant', help='Remove a qualifying merchant')
    remove_merchant.add_argument('--rule', required=True, help='Rule id')
    remove_merchant.add_argument('--merchant', required=True, help='Merchant text (exact)')

    progress = sub.add_parser('progress', help="Show a card's bonus progress for a month")
    progress.add_argument('--card', required=True, help='Card id')
    progress.add_argument('--transactions', '-t', required=True, help='Transactions CSV file')
    progress.add_argument('--period', '-p', default=None, help='Month as YYYY-MM (default: current)')
    progress.add_argument('--json', action='store_true', help='Print the result as JSON')

    return parser.parse_args(argv)


def _print_rule(rule) -> None:
    state = "active" if rule.is_active else "inactive"
    cap = format_currency(rule.effective_cap, grouping=True)
    print(f"  [{rule.id}] {rule.name or '(unnamed)'} - card {rule.card_id} ({state})")
    print(f"      min spend {format_currency(rule.effective_min_spend, grouping=True)}, cap {cap}, "
          f"min merchants {rule.effective_min_merchant_count}, bonus {rule.bonus_rate:.2%}")
    if rule.qualifying_merchants:
        print(f"      merchants ({rule.merchant_match_mode.value}): {', '.join(rule.qualifying_merchants)}")
    if rule.qualifying_categories:
        print(f"      categories: {', '.join(rule.qualifying_categories)}")
    if rule.exclude_keywords:
        print(f"      excluded: {', '.join(rule.exclude_keywords)}")


def cmd_profiles(args: argparse.Namespace, repository) -> int:
    catalog = get_profile_catalog()
    profiles = catalog.search(args.search) if args.search else catalog.list_profiles()
    if not profiles:
        print("No matching profiles")
        return 0
    for profile in profiles:
        print(f"{profile.id}: {profile.display_name} (v{profile.version}, "
              f"annual fee {format_currency(profile.annual_fee)})")
        for tip in profile.tips:
            print(f"    - {tip}")
    return 0


def cmd_apply_profile(args: argparse.Namespace, repository) -> int:
    new_rules = repository.apply_profile(args.profile, args.card)
    print(f"Applied profile to card {args.card}: {len(new_rules)} rule(s)")
    for rule in new_rules:
        _print_rule(rule)
    return 0


def cmd_rules(args: argparse.Namespace, repository) -> int:
    rules = repository.get_rules_for_card(args.card) if args.card else repository.list_rules()
    if not rules:
        print("No rules stored")
        return 0
    for rule in rules:
        _print_rule(rule)
    return 0


def cmd_add_rule(args: argparse.Namespace, repository) -> int:
    fields = _rule_fields_from_args(args)
    fields['card_id'] = args.card
    fields['is_active'] = not args.inactive
    rule = repository.create(fields)
    print(f"Created rule {rule.id}")
    _print_rule(rule)
    return 0


def cmd_update_rule(args: argparse.Namespace, repository) -> int:
    rule = repository.update(args.rule, _rule_fields_from_args(args))
    print(f"Updated rule {rule.id}")
    _print_rule(rule)
    return 0


def cmd_delete_rule(args: argparse.Namespace, repository) -> int:
    if not repository.delete(args.rule):
        print(f"Error: no rule with id {args.rule}")
        return 1
    print(f"Deleted rule {args.rule}")
    return 0


def cmd_toggle(args: argparse.Namespace, repository) -> int:
    rule = repository.toggle_active(args.rule)
    print(f"Rule {rule.id} is now {'active' if rule.is_active else 'inactive'}")
    return 0


def cmd_add_merchant(args: argparse.Namespace, repository) -> int:
    rule = repository.add_merchant(args.rule, args.merchant)
    print(f"Merchants: {', '.join(rule.qualifying_merchants)}")
    return 0


def cmd_remove_merchant(args: argparse.Namespace, repository) -> int:
    rule = repository.remove_merchant(args.rule, args.merchant)
    print(f"Merchants: {', '.join(rule.qualifying_merchants) or '(none)'}")
    return 0


def cmd_progress(args: argparse.Namespace, repository) -> int:
    config = get_config()
    period = BillingPeriod.parse(args.period)

    rule = repository.get_active_rule_for_card(args.card)
    if rule is None:
        if args.json:
            print(json.dumps({'card_id': args.card, 'progress': None}))
        else:
            print(f"No active bonus rule for card {args.card}")
        return 0

    parser = TransactionCSVParser(args.transactions, card_id=args.card)
    transactions = parser.parse()
    logger.info("Columns used from %s: %s", args.transactions, parser.column_mapping)
    for issue in parser.validate():
        logger.warning("Row %s: %s", issue.row_numbers, issue.message)

    calculator = ProgressCalculator(
        at_cap_ratio=float(config.get('at_cap_ratio')),
        recommender=RecommendationGenerator(
            currency_symbol=config.get('currency_symbol'),
            near_cap_threshold=float(config.get('near_cap_threshold')),
        ),
    )
    progress = calculator.calculate(rule, transactions, period, card_id=args.card)

    if args.json:
        print(json.dumps({'card_id': args.card, 'progress': progress.to_dict()}, indent=2))
        return 0

    symbol = config.get('currency_symbol')
    def money(amount):
        return format_currency(amount, symbol, grouping=True)

    print(f"\n{'='*60}")
    print(f"{APP_NAME}: {rule.name or rule.id}")
    print(f"{'='*60}")
    print(f"Card: {args.card}")
    print(f"Period: {progress.period}")
    print(f"Status: {progress.status.value}")
    print(f"{'='*60}\n")

    print(f"Total spend:          {money(progress.total_spend)}"
          f" / min {money(rule.effective_min_spend)}")
    print(f"Qualifying spend:     {money(progress.qualifying_spend)} / cap {money(rule.effective_cap)}")
    print(f"Non-qualifying spend: {money(progress.non_qualifying_spend)}")
    if progress.cap_utilization is not None:
        print(f"Cap used:             {progress.cap_utilization:.1f}%")
    print(f"Merchants:            {progress.merchant_count} / {rule.effective_min_merchant_count}"
          + (f" ({', '.join(progress.merchants_used)})" if progress.merchants_used else ""))
    print(f"Estimated bonus:      {progress.estimated_bonus:,.2f} ({rule.reward_unit.value})")
    if progress.estimated_miles:
        print(f"Estimated miles:      {round(progress.estimated_miles):,}")

    if progress.recommendations:
        print("\nNext steps:")
        for hint in progress.recommendations:
            print(f"  - {hint}")

    unrecognized = find_unrecognized_merchants(
        [t for t in transactions if period.contains(t.date)], rule
    )
    if rule.qualifying_merchants and unrecognized:
        print("\nMerchants not in this rule:")
        for description in unrecognized[:10]:
            print(f"  - {description}")
    print()
    return 0


COMMANDS = {
    'profiles': cmd_profiles,
    'apply-profile': cmd_apply_profile,
    'rules': cmd_rules,
    'add-rule': cmd_add_rule,
    'update-rule': cmd_update_rule,
    'delete-rule': cmd_delete_rule,
    'toggle': cmd_toggle,
    'add-merchant': cmd_add_merchant,
    'remove-merchant': cmd_remove_merchant,
    'progress': cmd_progress,
}


def main(argv: Optional[List[str]] = None) -> int:
    """Main entry point."""
    args = parse_arguments(argv)

    level = logging.DEBUG if args.verbose else get_config().get('log_level', 'WARNING')
    logging.basicConfig(
        level=level,
        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s',
    )

    try:
        repository = YamlRuleRepository(args.rules_file)
        return COMMANDS[args.command](args, repository)
    except (RuleNotFoundError, ProfileNotFoundError) as e:
        print(f"Error: not found: {e.args[0]}")
        return 1
    except (RuleValidationError, ActiveRuleConflictError, RuleStoreError, PeriodError) as e:
        print(f"Error: {e}")
        return 1
    except FileNotFoundError as e:
        print(f"Error: file not found: {e.filename}")
        return 1


if __name__ == "__main__":
    sys.exit(main())
