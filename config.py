"""
Configuration and constants for the bonus reward tracker.

This module provides:
- Default constants for transaction loading and bonus evaluation
- Support for user-configurable settings via environment variables
- Loading custom card profiles from YAML files
"""
import logging
import os
from pathlib import Path
from typing import Any, Dict, List, Optional

import yaml

logger = logging.getLogger(__name__)

# =============================================================================
# Date Formats
# =============================================================================

# Supported date formats in order of preference
DATE_FORMATS: List[str] = [
    "%Y-%m-%d",      # YYYY-MM-DD (ISO format, what the tracker exports)
    "%Y-%m-%dT%H:%M:%S",
    "%d/%m/%Y",      # DD/MM/YYYY
    "%d-%m-%Y",      # DD-MM-YYYY
    "%d/%m/%y",      # DD/MM/YY
    "%d %b %Y",      # DD MMM YYYY (like "15 Jan 2025")
    "%d-%b-%Y",      # DD-MMM-YYYY (like "15-Jan-2025")
    "%d %B %Y",      # DD Month YYYY (like "15 January 2025")
    "%d.%m.%Y",      # DD.MM.YYYY (European format)
]

# =============================================================================
# Transaction Categories
# =============================================================================

TRANSACTION_CATEGORIES: List[str] = [
    "food",
    "transport",
    "shopping",
    "entertainment",
    "utilities",
    "healthcare",
    "travel",
    "education",
    "subscription",
    "other",
]

DEFAULT_CATEGORY: str = "other"

# =============================================================================
# Column Name Mappings for the Transaction Loader
# =============================================================================

DATE_COLUMN_KEYWORDS: List[str] = [
    "date",
    "txn date",
    "transaction date",
    "posting date",
]

DESCRIPTION_COLUMN_KEYWORDS: List[str] = [
    "description",
    "merchant",
    "narration",
    "details",
    "memo",
]

AMOUNT_COLUMN_KEYWORDS: List[str] = [
    "amount",
    "spend",
]

CATEGORY_COLUMN_KEYWORDS: List[str] = [
    "category",
]

PAYMENT_COLUMN_KEYWORDS: List[str] = [
    "is_payment",
    "ispayment",
    "payment",
]

CARD_COLUMN_KEYWORDS: List[str] = [
    "card_id",
    "cardid",
    "card",
]

# Cell values read as "yes" in a payment flag column
TRUTHY_VALUES: List[str] = ["true", "yes", "y", "1", "payment"]

# =============================================================================
# Bonus Evaluation Settings
# =============================================================================

# Qualifying spend at or above this share of the cap counts as "at cap"
AT_CAP_RATIO: float = 0.98

# Remaining headroom below this amount triggers the near-cap warning
NEAR_CAP_THRESHOLD: float = 100.0

DEFAULT_CURRENCY_SYMBOL: str = "$"

DEFAULT_RULES_FILE: str = "bonus_rules.yaml"

# =============================================================================
# File Encodings to Try
# =============================================================================

FILE_ENCODINGS: List[str] = [
    "utf-8-sig",      # Excel CSV with BOM
    "utf-8",
    "cp1252",
    "iso-8859-1",
]

# =============================================================================
# Application Info
# =============================================================================

APP_NAME: str = "Bonus Reward Tracker"
APP_VERSION: str = "1.0.0"


# =============================================================================
# Flexible Configuration System
# =============================================================================

def _env_float(name: str, default: float) -> float:
    """Read a numeric environment variable, keeping the default when malformed."""
    raw = os.environ.get(name)
    if raw is None or not raw.strip():
        return default
    try:
        return float(raw)
    except ValueError:
        logger.warning("Ignoring %s=%r: not a number, using %s", name, raw, default)
        return default


def _config_search_paths(filename: str) -> List[Path]:
    return [
        Path.cwd() / filename,
        Path(__file__).parent / filename,
        Path.home() / ".bonustracker" / filename,
    ]


class Config:
    """
    Flexible configuration manager that supports:
    - Environment variables
    - Custom YAML configuration files
    - Runtime overrides
    """

    _instance: Optional["Config"] = None
    _custom_profiles: List[Dict[str, Any]] = []
    _settings: Dict[str, Any] = {}

    def __new__(cls):
        if cls._instance is None:
            cls._instance = super().__new__(cls)
            cls._instance._load_defaults()
            cls._instance._load_custom_config()
        return cls._instance

    def _load_defaults(self) -> None:
        """Load default settings."""
        self._settings = {
            # Storage
            "rules_file": os.environ.get("BONUS_RULES_FILE", DEFAULT_RULES_FILE),

            # Evaluation
            "at_cap_ratio": _env_float("AT_CAP_RATIO", AT_CAP_RATIO),
            "near_cap_threshold": _env_float("NEAR_CAP_THRESHOLD", NEAR_CAP_THRESHOLD),
            "currency_symbol": os.environ.get("CURRENCY_SYMBOL", DEFAULT_CURRENCY_SYMBOL),

            # Loading
            "date_format_preference": os.environ.get("DATE_FORMAT", "ymd"),
            "supported_encodings": FILE_ENCODINGS,

            # Logging
            "log_level": os.environ.get("LOG_LEVEL", "WARNING"),
        }
        self._custom_profiles = []

    def _load_custom_config(self) -> None:
        """Load custom configuration from YAML file if available."""
        for config_path in _config_search_paths("config.yaml"):
            if config_path.exists():
                try:
                    with open(config_path, 'r', encoding='utf-8') as f:
                        custom_config = yaml.safe_load(f) or {}
                    self._settings.update(custom_config)
                    logger.info("Loaded config from %s", config_path)
                    break
                except (OSError, yaml.YAMLError) as e:
                    logger.warning("Could not load config from %s: %s", config_path, e)

        self._load_custom_profiles()

    def _load_custom_profiles(self) -> None:
        """Load extra card profile templates from YAML."""
        for profiles_path in _config_search_paths("card_profiles.yaml"):
            if profiles_path.exists():
                try:
                    with open(profiles_path, 'r', encoding='utf-8') as f:
                        payload = yaml.safe_load(f) or {}
                    self._custom_profiles = list(payload.get("profiles") or [])
                    logger.info("Loaded %d custom profiles from %s",
                                len(self._custom_profiles), profiles_path)
                    break
                except (OSError, yaml.YAMLError, AttributeError) as e:
                    logger.warning("Could not load card profiles from %s: %s", profiles_path, e)

    def get(self, key: str, default: Any = None) -> Any:
        """Get a configuration value."""
        return self._settings.get(key, default)

    def set(self, key: str, value: Any) -> None:
        """Set a configuration value at runtime."""
        self._settings[key] = value

    @property
    def custom_profiles(self) -> List[Dict[str, Any]]:
        """Get custom card profile definitions."""
        return self._custom_profiles

    def reload(self) -> None:
        """Reload configuration from files."""
        self._load_defaults()
        self._load_custom_config()


def get_config() -> Config:
    """Get the global configuration instance."""
    return Config()


# =============================================================================
# Helper Functions
# =============================================================================

def get_date_formats() -> List[str]:
    """Get date formats in preference order based on config."""
    preference = get_config().get("date_format_preference", "ymd")

    if preference == "mdy":
        # US format first
        return ["%m/%d/%Y", "%m-%d-%Y", "%m/%d/%y"] + DATE_FORMATS
    elif preference == "dmy":
        return ["%d/%m/%Y", "%d-%m-%Y"] + DATE_FORMATS
    else:
        return DATE_FORMATS


def get_column_keywords() -> Dict[str, List[str]]:
    """Get all transaction column keywords as a dictionary."""
    return {
        "date": DATE_COLUMN_KEYWORDS,
        "description": DESCRIPTION_COLUMN_KEYWORDS,
        "amount": AMOUNT_COLUMN_KEYWORDS,
        "category": CATEGORY_COLUMN_KEYWORDS,
        "is_payment": PAYMENT_COLUMN_KEYWORDS,
        "card_id": CARD_COLUMN_KEYWORDS,
    }
