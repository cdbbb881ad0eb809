"""
Bonus rule model.

A ``BonusRule`` describes how one card earns its bonus reward: which
merchants or categories qualify, the minimum spend and merchant count that
unlock the bonus, the spend cap, and the reward rates.
"""
import logging
import math
import re
from dataclasses import dataclass, field, fields
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, List, Optional, Pattern, Sequence, Tuple

logger = logging.getLogger(__name__)


class MerchantMatchMode(Enum):
    """How a rule's merchant strings are tested against descriptions."""
    EXACT = "exact"
    CONTAINS = "contains"
    REGEX = "regex"


class RewardUnit(Enum):
    """What the bonus is paid in."""
    CASHBACK = "cashback"
    POINTS = "points"
    MILES = "miles"


class RuleValidationError(ValueError):
    """Raised when a rule cannot be saved as given."""

    def __init__(self, errors: Sequence[str]):
        self.errors = list(errors)
        super().__init__("; ".join(self.errors))


@dataclass(frozen=True)
class MerchantPattern:
    """
    One merchant entry of a rule, prepared for matching.

    ``compiled`` is only set in regex mode. An entry that is not a valid
    regular expression keeps ``compiled=None`` and never matches.
    """
    text: str
    mode: MerchantMatchMode
    compiled: Optional[Pattern] = None

    @classmethod
    def build(cls, text: str, mode: MerchantMatchMode) -> "MerchantPattern":
        if mode is not MerchantMatchMode.REGEX:
            return cls(text=text, mode=mode)
        try:
            return cls(text=text, mode=mode, compiled=re.compile(text, re.IGNORECASE))
        except re.error as e:
            logger.warning("Merchant pattern %r is not a valid regex and will never match: %s", text, e)
            return cls(text=text, mode=mode)

    @property
    def is_valid(self) -> bool:
        return self.mode is not MerchantMatchMode.REGEX or self.compiled is not None

    def matches(self, description: str) -> bool:
        if self.mode is MerchantMatchMode.EXACT:
            return description.lower() == self.text.lower()
        if self.mode is MerchantMatchMode.CONTAINS:
            return self.text.lower() in description.lower()
        if self.compiled is None:
            return False
        return self.compiled.search(description) is not None


def compile_merchant_patterns(
    merchants: Sequence[str],
    mode: MerchantMatchMode,
) -> List[MerchantPattern]:
    """Prepare every merchant string of a rule for matching, in order."""
    return [MerchantPattern.build(m, mode) for m in merchants]


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def _parse_timestamp(value: Any) -> datetime:
    if isinstance(value, datetime):
        return value
    if not value:
        return utc_now()
    return datetime.fromisoformat(str(value).replace("Z", "+00:00"))


def _optional_float(value: Any) -> Optional[float]:
    if value is None or value == "":
        return None
    return float(value)


def _string_list(value: Any) -> List[str]:
    """A single string counts as a one-item list."""
    if value is None:
        return []
    if isinstance(value, str):
        return [value]
    return list(value)


@dataclass
class BonusRule:
    """
    Configurable bonus-reward rule for a single card.

    ``exclude_payments`` is stored and round-tripped but has no effect:
    payments never count as spend whatever its value.
    """
    id: str
    card_id: str
    name: str = ""
    description: str = ""
    is_active: bool = True

    # Thresholds
    min_spend: Optional[float] = None
    max_bonus_spend: Optional[float] = None
    min_merchant_count: Optional[int] = None

    # Qualification
    qualifying_merchants: List[str] = field(default_factory=list)
    merchant_match_mode: MerchantMatchMode = MerchantMatchMode.CONTAINS
    qualifying_categories: Optional[List[str]] = None
    exclude_keywords: List[str] = field(default_factory=list)
    exclude_payments: bool = True

    # Reward
    bonus_rate: float = 0.0
    base_rate: float = 0.0
    reward_unit: RewardUnit = RewardUnit.CASHBACK
    miles_per_dollar: Optional[float] = None
    points_to_miles_ratio: Optional[float] = None

    created_at: datetime = field(default_factory=utc_now)
    updated_at: datetime = field(default_factory=utc_now)

    _pattern_key: Optional[Tuple[Tuple[str, ...], MerchantMatchMode]] = field(
        default=None, init=False, repr=False, compare=False
    )
    _patterns: List[MerchantPattern] = field(
        default_factory=list, init=False, repr=False, compare=False
    )

    def __post_init__(self):
        try:
            if isinstance(self.merchant_match_mode, str):
                self.merchant_match_mode = MerchantMatchMode(self.merchant_match_mode.lower())
            if isinstance(self.reward_unit, str):
                self.reward_unit = RewardUnit(self.reward_unit.lower())
        except ValueError as e:
            raise RuleValidationError([str(e)]) from e

    # ------------------------------------------------------------------
    # Effective thresholds
    # ------------------------------------------------------------------

    @property
    def effective_min_spend(self) -> float:
        return float(self.min_spend or 0.0)

    @property
    def effective_cap(self) -> float:
        """Spend cap for the bonus; an unset (or zero) cap means uncapped."""
        return float(self.max_bonus_spend) if self.max_bonus_spend else math.inf

    @property
    def effective_min_merchant_count(self) -> int:
        return int(self.min_merchant_count or 0)

    @property
    def has_cap(self) -> bool:
        return not math.isinf(self.effective_cap)

    @property
    def merchant_patterns(self) -> List[MerchantPattern]:
        """Compiled merchant entries, rebuilt only when merchants or mode change."""
        key = (tuple(self.qualifying_merchants), self.merchant_match_mode)
        if self._pattern_key != key:
            self._patterns = compile_merchant_patterns(self.qualifying_merchants, self.merchant_match_mode)
            self._pattern_key = key
        return self._patterns

    # ------------------------------------------------------------------
    # Validation
    # ------------------------------------------------------------------

    def validate(self) -> List[str]:
        """Return every problem that should stop this rule being saved."""
        errors = []

        if not self.card_id:
            errors.append("card_id is required")

        for name in ("min_spend", "max_bonus_spend", "min_merchant_count", "bonus_rate", "base_rate"):
            value = getattr(self, name)
            if value is not None and value < 0:
                errors.append(f"{name} must not be negative (got {value})")

        for name in ("miles_per_dollar", "points_to_miles_ratio"):
            value = getattr(self, name)
            if value is not None and value <= 0:
                errors.append(f"{name} must be positive when set (got {value})")

        for name in ("qualifying_merchants", "qualifying_categories", "exclude_keywords"):
            value = getattr(self, name)
            if value is None and name == "qualifying_categories":
                continue
            if not isinstance(value, list) or not all(isinstance(item, str) for item in value):
                errors.append(f"{name} must be a list of strings (got {value!r})")

        for pattern in self.merchant_patterns:
            if not pattern.is_valid:
                errors.append(f"merchant '{pattern.text}' is not a valid regular expression")

        return errors

    def ensure_valid(self) -> None:
        errors = self.validate()
        if errors:
            raise RuleValidationError(errors)

    # ------------------------------------------------------------------
    # Serialisation
    # ------------------------------------------------------------------

    def to_dict(self) -> Dict[str, Any]:
        """Convert rule to a plain dictionary (YAML/JSON friendly)."""
        return {
            'id': self.id,
            'card_id': self.card_id,
            'name': self.name,
            'description': self.description,
            'is_active': self.is_active,
            'min_spend': self.min_spend,
            'max_bonus_spend': self.max_bonus_spend,
            'min_merchant_count': self.min_merchant_count,
            'qualifying_merchants': list(self.qualifying_merchants),
            'merchant_match_mode': self.merchant_match_mode.value,
            'qualifying_categories': (
                list(self.qualifying_categories) if self.qualifying_categories is not None else None
            ),
            'exclude_keywords': list(self.exclude_keywords),
            'exclude_payments': self.exclude_payments,
            'bonus_rate': self.bonus_rate,
            'base_rate': self.base_rate,
            'reward_unit': self.reward_unit.value,
            'miles_per_dollar': self.miles_per_dollar,
            'points_to_miles_ratio': self.points_to_miles_ratio,
            'created_at': self.created_at.isoformat(),
            'updated_at': self.updated_at.isoformat(),
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'BonusRule':
        """Create a rule from a dictionary produced by ``to_dict`` or a template."""
        unknown = set(data) - rule_field_names()
        if unknown:
            raise RuleValidationError([f"unknown rule field '{name}'" for name in sorted(unknown)])

        min_merchant_count = data.get('min_merchant_count')
        categories = data.get('qualifying_categories')

        return cls(
            id=str(data.get('id', '')),
            card_id=str(data.get('card_id', '') or ''),
            name=data.get('name', '') or '',
            description=data.get('description', '') or '',
            is_active=bool(data.get('is_active', True)),
            min_spend=_optional_float(data.get('min_spend')),
            max_bonus_spend=_optional_float(data.get('max_bonus_spend')),
            min_merchant_count=int(min_merchant_count) if min_merchant_count is not None else None,
            qualifying_merchants=_string_list(data.get('qualifying_merchants')),
            merchant_match_mode=data.get('merchant_match_mode', MerchantMatchMode.CONTAINS),
            qualifying_categories=_string_list(categories) if categories is not None else None,
            exclude_keywords=_string_list(data.get('exclude_keywords')),
            exclude_payments=bool(data.get('exclude_payments', True)),
            bonus_rate=float(data.get('bonus_rate', 0.0) or 0.0),
            base_rate=float(data.get('base_rate', 0.0) or 0.0),
            reward_unit=data.get('reward_unit', RewardUnit.CASHBACK),
            miles_per_dollar=_optional_float(data.get('miles_per_dollar')),
            points_to_miles_ratio=_optional_float(data.get('points_to_miles_ratio')),
            created_at=_parse_timestamp(data.get('created_at')),
            updated_at=_parse_timestamp(data.get('updated_at')),
        )


def rule_field_names() -> set:
    """Public field names of ``BonusRule``."""
    return {f.name for f in fields(BonusRule) if not f.name.startswith('_')}
