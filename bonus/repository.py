"""
Rule repository: storage and editing of bonus rules, keyed by card.

Repositories are plain objects handed to whoever needs rules, so tests and
separate rule sets never share state. ``InMemoryRuleRepository`` keeps rules
for the life of the process; ``YamlRuleRepository`` mirrors them to a YAML
file after every change.

Only one rule per card may be active at a time. Any change that would
activate a second rule for the same card raises ``ActiveRuleConflictError``
and leaves the repository untouched.
"""
import dataclasses
import logging
import uuid
from pathlib import Path
from typing import Any, Dict, Iterable, List, Mapping, Optional, Union

import yaml

from bonus.models import BonusRule, RuleValidationError, rule_field_names, utc_now
from bonus.profiles import CardProfile, get_card_profile

logger = logging.getLogger(__name__)

# Fields callers may not set through create/update
_SYSTEM_FIELDS = {"id", "created_at", "updated_at"}


class RuleNotFoundError(KeyError):
    """No rule with the given id."""


class ActiveRuleConflictError(ValueError):
    """A card would end up with more than one active rule."""


class RuleStoreError(ValueError):
    """The rules file cannot be read as a rule list."""


class RuleRepository:
    """
    Ordered collection of bonus rules with the editing operations the
    tracker needs. Subclasses hook ``_persist`` to store the rules.
    """

    def __init__(self, rules: Optional[Iterable[BonusRule]] = None):
        self._rules: List[BonusRule] = []
        for rule in rules or []:
            for problem in rule.validate():
                logger.warning("Stored rule %s: %s", rule.id, problem)
            self._check_single_active(rule)
            self._rules.append(rule)

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def list_rules(self) -> List[BonusRule]:
        return list(self._rules)

    def get(self, rule_id: str) -> BonusRule:
        for rule in self._rules:
            if rule.id == rule_id:
                return rule
        raise RuleNotFoundError(rule_id)

    def get_rules_for_card(self, card_id: str) -> List[BonusRule]:
        return [rule for rule in self._rules if rule.card_id == card_id]

    def get_active_rule_for_card(self, card_id: str) -> Optional[BonusRule]:
        """
        Get the active rule for a card.

        Returns:
            The rule, or None when the card has no active rule
        """
        for rule in self._rules:
            if rule.card_id == card_id and rule.is_active:
                return rule
        return None

    def __len__(self) -> int:
        return len(self._rules)

    # ------------------------------------------------------------------
    # Mutations
    # ------------------------------------------------------------------

    def create(self, data: Mapping[str, Any]) -> BonusRule:
        """
        Store a new rule.

        Args:
            data: Rule fields without id or timestamps

        Returns:
            The stored rule with its generated id
        """
        self._reject_system_fields(data)
        now = utc_now()
        rule = BonusRule.from_dict({
            **data,
            'id': str(uuid.uuid4()),
            'created_at': now,
            'updated_at': now,
        })
        rule.ensure_valid()
        self._check_single_active(rule)

        self._rules.append(rule)
        logger.info("Created rule %s for card %s", rule.id, rule.card_id)
        self._persist()
        return rule

    def update(self, rule_id: str, changes: Mapping[str, Any]) -> BonusRule:
        """
        Merge ``changes`` into an existing rule and refresh ``updated_at``.
        """
        self._reject_system_fields(changes)
        unknown = set(changes) - rule_field_names()
        if unknown:
            raise RuleValidationError([f"unknown rule field '{name}'" for name in sorted(unknown)])

        current = self.get(rule_id)
        merged = current.to_dict()
        merged.update(changes)
        merged['updated_at'] = utc_now()
        updated = BonusRule.from_dict(merged)
        updated.created_at = current.created_at
        updated.ensure_valid()
        self._check_single_active(updated)

        self._replace(updated)
        logger.info("Updated rule %s (%s)", rule_id, ", ".join(sorted(changes)) or "no fields")
        self._persist()
        return updated

    def delete(self, rule_id: str) -> bool:
        """
        Delete a rule.

        Returns:
            True if a rule was removed
        """
        before = len(self._rules)
        self._rules = [rule for rule in self._rules if rule.id != rule_id]
        removed = len(self._rules) < before
        if removed:
            logger.info("Deleted rule %s", rule_id)
            self._persist()
        return removed

    def toggle_active(self, rule_id: str) -> BonusRule:
        """Flip a rule between active and inactive."""
        current = self.get(rule_id)
        toggled = dataclasses.replace(current, is_active=not current.is_active, updated_at=utc_now())
        self._check_single_active(toggled)

        self._replace(toggled)
        logger.info("Rule %s is now %s", rule_id, "active" if toggled.is_active else "inactive")
        self._persist()
        return toggled

    def add_merchant(self, rule_id: str, merchant: str) -> BonusRule:
        """
        Append a merchant string to a rule.

        Adding a string that is already present (exact match) changes nothing.
        """
        current = self.get(rule_id)
        if merchant in current.qualifying_merchants:
            return current

        updated = dataclasses.replace(
            current,
            qualifying_merchants=current.qualifying_merchants + [merchant],
            updated_at=utc_now(),
        )
        updated.ensure_valid()

        self._replace(updated)
        logger.info("Added merchant %r to rule %s", merchant, rule_id)
        self._persist()
        return updated

    def remove_merchant(self, rule_id: str, merchant: str) -> BonusRule:
        """
        Remove every entry equal to ``merchant`` (case-sensitive).

        Removing a string that is not present changes nothing.
        """
        current = self.get(rule_id)
        if merchant not in current.qualifying_merchants:
            return current

        updated = dataclasses.replace(
            current,
            qualifying_merchants=[m for m in current.qualifying_merchants if m != merchant],
            updated_at=utc_now(),
        )

        self._replace(updated)
        logger.info("Removed merchant %r from rule %s", merchant, rule_id)
        self._persist()
        return updated

    def apply_profile(self, profile: Union[CardProfile, str], card_id: str) -> List[BonusRule]:
        """
        Replace every rule of ``card_id`` with fresh rules from a profile.

        Args:
            profile: A CardProfile, or a profile id/name known to the catalog
            card_id: Card that receives the rules

        Returns:
            The newly created rules
        """
        if not isinstance(profile, CardProfile):
            profile = get_card_profile(profile)

        now = utc_now()
        new_rules = []
        for template in profile.rule_templates:
            self._reject_system_fields(template)
            rule = BonusRule.from_dict({
                **template,
                'id': str(uuid.uuid4()),
                'card_id': card_id,
                'created_at': now,
                'updated_at': now,
            })
            rule.ensure_valid()
            new_rules.append(rule)

        if sum(1 for rule in new_rules if rule.is_active) > 1:
            raise ActiveRuleConflictError(
                f"profile '{profile.id}' would activate more than one rule for card '{card_id}'"
            )

        self._rules = [rule for rule in self._rules if rule.card_id != card_id] + new_rules
        logger.info("Applied profile %s to card %s (%d rules)", profile.id, card_id, len(new_rules))
        self._persist()
        return new_rules

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _replace(self, rule: BonusRule) -> None:
        self._rules = [rule if existing.id == rule.id else existing for existing in self._rules]

    def _check_single_active(self, rule: BonusRule) -> None:
        if not rule.is_active:
            return
        for existing in self._rules:
            if existing.card_id == rule.card_id and existing.is_active and existing.id != rule.id:
                raise ActiveRuleConflictError(
                    f"card '{rule.card_id}' already has active rule '{existing.id}'"
                )

    @staticmethod
    def _reject_system_fields(data: Mapping[str, Any]) -> None:
        system = sorted(_SYSTEM_FIELDS & set(data))
        if system:
            raise RuleValidationError([f"'{name}' is assigned by the repository" for name in system])

    def _persist(self) -> None:
        """Store the current rules. No-op for in-memory repositories."""


class InMemoryRuleRepository(RuleRepository):
    """Rules that live only as long as the process."""


class YamlRuleRepository(RuleRepository):
    """
    Rules stored in a YAML file under a top-level ``bonus_rules`` key.

    The file is read once on construction and rewritten after each change.
    A missing file starts an empty repository.
    """

    def __init__(self, path: Union[str, Path]):
        self.path = Path(path)
        super().__init__(self._load())

    def _load(self) -> List[BonusRule]:
        if not self.path.exists():
            logger.info("No rules file at %s, starting empty", self.path)
            return []

        try:
            with open(self.path, 'r', encoding='utf-8') as f:
                payload = yaml.safe_load(f) or {}
        except yaml.YAMLError as e:
            raise RuleStoreError(f"{self.path} is not valid YAML: {e}") from e

        if not isinstance(payload, dict):
            raise RuleStoreError(f"{self.path} must hold a mapping with a 'bonus_rules' list")
        items = payload.get('bonus_rules') or []
        if not isinstance(items, list) or not all(isinstance(item, dict) for item in items):
            raise RuleStoreError(f"'bonus_rules' in {self.path} must be a list of rule mappings")

        rules = [BonusRule.from_dict(item) for item in items]
        logger.info("Loaded %d rules from %s", len(rules), self.path)
        return rules

    def _persist(self) -> None:
        payload: Dict[str, Any] = {'bonus_rules': [rule.to_dict() for rule in self._rules]}
        self.path.parent.mkdir(parents=True, exist_ok=True)
        with open(self.path, 'w', encoding='utf-8') as f:
            yaml.safe_dump(payload, f, sort_keys=False, allow_unicode=True)
