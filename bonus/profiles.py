"""
Card Profiles: pre-configured bonus rule templates for known cards.

Each profile describes a bank card's published bonus programme (minimum
spend, cap, qualifying merchants, rates) so a new card can be set up by
copying the template instead of entering every field by hand.

Built-in profiles cover:
- DBS yuu Card (miles at yuu merchants, merchant count requirement)
- OCBC 365 Card (dining cashback)
- UOB One Card (cashback on all spend)

Extra profiles can be supplied in a ``card_profiles.yaml`` file.
"""
import logging
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

from bonus.models import BonusRule

logger = logging.getLogger(__name__)


class ProfileNotFoundError(KeyError):
    """No profile matches the given id or name."""


@dataclass
class CardProfile:
    """
    Catalog entry for a specific bank card's reward programme.

    ``rule_templates`` hold rule fields without id, card or timestamps.
    """
    id: str
    bank_name: str
    card_name: str
    version: str = ""
    effective_date: str = ""
    last_updated: str = ""
    official_tnc_url: Optional[str] = None
    review_url: Optional[str] = None
    annual_fee: float = 0.0
    fee_waiver_spend: Optional[float] = None
    income_requirement: Optional[float] = None
    suggested_color: str = "slate"
    rule_templates: List[Dict[str, Any]] = field(default_factory=list)
    tips: List[str] = field(default_factory=list)
    aliases: List[str] = field(default_factory=list)

    @property
    def display_name(self) -> str:
        return f"{self.bank_name} {self.card_name}"

    def matches(self, identifier: str) -> bool:
        """Check if an id, display name or alias refers to this profile."""
        identifier_lower = identifier.strip().lower()
        if identifier_lower in (self.id.lower(), self.display_name.lower()):
            return True
        return any(alias.lower() == identifier_lower for alias in self.aliases)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'CardProfile':
        """Create a profile from a YAML mapping."""
        return cls(
            id=str(data['id']),
            bank_name=data.get('bank_name', ''),
            card_name=data.get('card_name', ''),
            version=str(data.get('version', '')),
            effective_date=str(data.get('effective_date', '')),
            last_updated=str(data.get('last_updated', '')),
            official_tnc_url=data.get('official_tnc_url'),
            review_url=data.get('review_url'),
            annual_fee=float(data.get('annual_fee', 0.0) or 0.0),
            fee_waiver_spend=data.get('fee_waiver_spend'),
            income_requirement=data.get('income_requirement'),
            suggested_color=data.get('suggested_color', 'slate'),
            rule_templates=list(data.get('rule_templates') or []),
            tips=list(data.get('tips') or []),
            aliases=list(data.get('aliases') or []),
        )


# =============================================================================
# Built-in Profiles
# =============================================================================

DBS_YUU_PROFILE = CardProfile(
    id="dbs-yuu-2025-10",
    bank_name="DBS",
    card_name="Yuu Card",
    version="2025-10",
    effective_date="2025-10-01",
    last_updated="2025-11-27",
    official_tnc_url=(
        "https://www.dbs.com.sg/iwov-resources/media/pdf/cards/promotions/"
        "dbs-yuu-cards/dbs-yuu-card-promotion-tncs.pdf"
    ),
    review_url="https://milelion.com/2025/10/06/review-dbs-yuu-card/",
    annual_fee=196.20,
    fee_waiver_spend=600,
    income_requirement=30000,
    suggested_color="purple",
    rule_templates=[
        {
            "name": "DBS Yuu Bonus Tracker",
            "description": "10 mpd at yuu merchants with S$800 min spend and 4+ merchants",
            "is_active": True,
            "min_spend": 800,
            "max_bonus_spend": 822.86,
            "min_merchant_count": 4,
            "qualifying_merchants": [
                "Cold Storage",
                "Giant",
                "Guardian",
                "7-Eleven",
                "7-11",
                "foodpanda",
                "Marketplace",
                "CS Fresh",
                "SimplyGo",
                "BUS/MRT",
                "Jason's Deli",
                "Jasons",
            ],
            "merchant_match_mode": "contains",
            "exclude_keywords": ["voucher", "gift card", "top-up", "topup", "pandapro"],
            "exclude_payments": True,
            "bonus_rate": 0.18,
            "base_rate": 0.05,
            "reward_unit": "miles",
            "miles_per_dollar": 10,
            # 360 yuu points = 100 KrisFlyer miles
            "points_to_miles_ratio": 3.6,
        },
    ],
    tips=[
        "Must transact at 4+ different yuu merchants per month",
        "SimplyGo (bus/MRT) counts as a yuu merchant",
        "Avoid using vouchers or PandaPro discounts - they may not qualify",
        "foodpanda orders with discounts may not count toward bonus",
        "First year annual fee is waived",
        "Can convert yuu points to KrisFlyer miles instantly",
    ],
    aliases=["yuu", "dbs yuu"],
)

OCBC_365_PROFILE = CardProfile(
    id="ocbc-365-2025",
    bank_name="OCBC",
    card_name="365 Card",
    version="2025",
    effective_date="2025-01-01",
    last_updated="2025-11-27",
    annual_fee=192.60,
    fee_waiver_spend=500,
    income_requirement=30000,
    suggested_color="rose",
    rule_templates=[
        {
            "name": "OCBC 365 Dining Cashback",
            "description": "6% cashback on dining (capped at $80/month)",
            "is_active": True,
            "min_spend": 800,
            # $80 cap / 6%
            "max_bonus_spend": 1333.33,
            "qualifying_merchants": [],
            "qualifying_categories": ["food"],
            "merchant_match_mode": "contains",
            "exclude_keywords": [],
            "exclude_payments": True,
            "bonus_rate": 0.06,
            "base_rate": 0.003,
            "reward_unit": "cashback",
        },
    ],
    tips=[
        "Best for dining with 6% cashback",
        "Minimum spend of $800 required",
        "Cashback capped at $80/month for dining",
    ],
    aliases=["ocbc 365", "365"],
)

UOB_ONE_PROFILE = CardProfile(
    id="uob-one-2025",
    bank_name="UOB",
    card_name="One Card",
    version="2025",
    effective_date="2025-01-01",
    last_updated="2025-11-27",
    annual_fee=192.60,
    fee_waiver_spend=500,
    income_requirement=30000,
    suggested_color="blue",
    rule_templates=[
        {
            "name": "UOB One Rebate",
            "description": "Up to 10% rebate with min $500 spend + 3 transactions",
            "is_active": True,
            "min_spend": 500,
            "max_bonus_spend": 2000,
            "qualifying_merchants": [],
            "merchant_match_mode": "contains",
            "exclude_keywords": [],
            "exclude_payments": True,
            "bonus_rate": 0.10,
            "base_rate": 0.003,
            "reward_unit": "cashback",
        },
    ],
    tips=[
        "Need min 3 transactions per statement",
        "Salary crediting to UOB account increases rebate",
        "GIRO payments also qualify",
    ],
    aliases=["uob one"],
)

# All registered profiles
ALL_PROFILES: List[CardProfile] = [
    DBS_YUU_PROFILE,
    OCBC_365_PROFILE,
    UOB_ONE_PROFILE,
]


class ProfileCatalog:
    """
    Lookup over the built-in and user-supplied card profiles.
    """

    def __init__(self, profiles: Optional[List[CardProfile]] = None,
                 custom_profiles: Optional[List[Dict[str, Any]]] = None):
        self.profiles: Dict[str, CardProfile] = {}
        for profile in profiles if profiles is not None else ALL_PROFILES:
            self.profiles[profile.id] = profile

        for data in custom_profiles or []:
            try:
                profile = CardProfile.from_dict(data)
            except (KeyError, TypeError, ValueError) as e:
                logger.warning("Skipping malformed custom profile %r: %s", data, e)
                continue
            self.profiles[profile.id] = profile

    def get_profile(self, identifier: str) -> CardProfile:
        """
        Get a profile by id, "<bank> <card>" name, or alias.

        Raises:
            ProfileNotFoundError: if nothing matches
        """
        if identifier in self.profiles:
            return self.profiles[identifier]

        for profile in self.profiles.values():
            if profile.matches(identifier):
                return profile

        raise ProfileNotFoundError(identifier)

    def list_profiles(self) -> List[CardProfile]:
        return sorted(self.profiles.values(), key=lambda p: (p.bank_name, p.card_name))

    def search(self, query: str) -> List[CardProfile]:
        """Profiles whose bank, card name or aliases contain ``query``."""
        query_lower = query.strip().lower()
        results = []
        for profile in self.list_profiles():
            haystack = " ".join([profile.id, profile.display_name] + profile.aliases).lower()
            if query_lower in haystack:
                results.append(profile)
        return results

    @staticmethod
    def validate_profile(profile: CardProfile) -> List[str]:
        """
        Check that every rule template yields a valid rule once a card is set.

        Returns:
            List of problems, prefixed with the template index
        """
        problems = []
        for i, template in enumerate(profile.rule_templates):
            try:
                rule = BonusRule.from_dict({**template, 'card_id': 'template-check'})
            except (TypeError, ValueError) as e:
                problems.append(f"template {i}: {e}")
                continue
            problems.extend(f"template {i}: {error}" for error in rule.validate())
        return problems


# Global instance
_catalog: Optional[ProfileCatalog] = None


def get_profile_catalog() -> ProfileCatalog:
    """Get the shared profile catalog, including profiles from card_profiles.yaml."""
    global _catalog
    if _catalog is None:
        from config import get_config
        _catalog = ProfileCatalog(custom_profiles=get_config().custom_profiles)
    return _catalog


def get_card_profile(identifier: str) -> CardProfile:
    """Convenience lookup on the shared catalog."""
    return get_profile_catalog().get_profile(identifier)
