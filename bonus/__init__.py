"""
Bonus rule model, rule storage and card profile templates.
"""
from .models import BonusRule, MerchantMatchMode, MerchantPattern, RewardUnit, RuleValidationError
from .profiles import CardProfile, ProfileCatalog, ProfileNotFoundError, get_profile_catalog
from .repository import (
    ActiveRuleConflictError,
    InMemoryRuleRepository,
    RuleNotFoundError,
    RuleRepository,
    RuleStoreError,
    YamlRuleRepository,
)

__all__ = [
    'BonusRule', 'MerchantMatchMode', 'MerchantPattern', 'RewardUnit', 'RuleValidationError',
    'CardProfile', 'ProfileCatalog', 'ProfileNotFoundError', 'get_profile_catalog',
    'ActiveRuleConflictError', 'InMemoryRuleRepository', 'RuleNotFoundError',
    'RuleRepository', 'RuleStoreError', 'YamlRuleRepository',
]
