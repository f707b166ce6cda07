"""
Configuration and constants for the tailoring-shop cash book.

This module provides:
- Default constants for parsing records and rendering the ledger
- Support for user-configurable settings via environment variables
- Loading overrides from a YAML file
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

# Formats tried for conceptual (business) dates in order of preference
DATE_FORMATS: List[str] = [
    "%Y-%m-%d",      # YYYY-MM-DD (ISO format, what the API sends)
    "%d/%m/%Y",      # DD/MM/YYYY
    "%d-%m-%Y",      # DD-MM-YYYY
    "%d/%m/%y",      # DD/MM/YY
    "%d %b %Y",      # DD MMM YYYY (like "15 Jan 2025")
    "%d-%b-%Y",      # DD-MMM-YYYY (like "15-Jan-2025")
    "%d %B %Y",      # DD Month YYYY (like "15 January 2025")
]

# Format used for the ledger's display date column
DISPLAY_DATE_FORMAT: str = "%d-%b-%Y"

# =============================================================================
# Ledger Vocabulary
# =============================================================================

INCOME: str = "income"
EXPENSE: str = "expense"
TRANSACTION_TYPES: List[str] = [INCOME, EXPENSE]

CASH: str = "Cash"
BANK: str = "Bank"
PAYMENT_METHODS: List[str] = [CASH, BANK]

BALANCE_BD_LABEL: str = "Balance b/d"
BALANCE_CD_LABEL: str = "Balance c/d"
TOTALS_LABEL: str = "Totals"

DEFAULT_CURRENCY: str = "NGN"
CURRENCY_SYMBOL: str = "₦"

# Allowed difference between a stored checkpoint balance and the replayed one
BALANCE_TOLERANCE: float = 0.01

# =============================================================================
# Offline Import Column Keywords
# =============================================================================

CREATED_AT_COLUMN_KEYWORDS: List[str] = [
    "createdat",
    "created at",
    "created_at",
    "recorded at",
    "timestamp",
]

DATE_COLUMN_KEYWORDS: List[str] = [
    "date",
    "txn date",
    "transaction date",
    "value date",
]

LAST_BALANCED_COLUMN_KEYWORDS: List[str] = [
    "lastbalanceddate",
    "last balanced date",
    "last_balanced_date",
    "balanced date",
    "date",
]

TYPE_COLUMN_KEYWORDS: List[str] = ["type", "txn type", "transaction type"]

DESCRIPTION_COLUMN_KEYWORDS: List[str] = [
    "description",
    "particulars",
    "narration",
    "details",
]

AMOUNT_COLUMN_KEYWORDS: List[str] = ["amount", "value", "sum"]

PAYMENT_METHOD_COLUMN_KEYWORDS: List[str] = [
    "paymentmethod",
    "payment method",
    "payment_method",
    "method",
    "mode",
]

VOUCHER_COLUMN_KEYWORDS: List[str] = [
    "voucherno",
    "voucher no",
    "voucher no.",
    "voucher_no",
    "voucher",
]

ID_COLUMN_KEYWORDS: List[str] = ["_id", "id", "identifier"]

CLIENT_COLUMN_KEYWORDS: List[str] = ["client", "customer", "client name"]

CASH_BALANCE_COLUMN_KEYWORDS: List[str] = [
    "cashbalance",
    "cash balance",
    "cash_balance",
    "cash",
]

BANK_BALANCE_COLUMN_KEYWORDS: List[str] = [
    "bankbalance",
    "bank balance",
    "bank_balance",
    "bank",
]

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

APP_NAME: str = "Tailor Cash Book"
APP_VERSION: str = "1.0.0"

DEFAULT_API_BASE_URL: str = "http://localhost:5000/api"


def get_api_token() -> str:
    """Get the API bearer token from environment variable."""
    return os.environ.get("CASHBOOK_API_TOKEN", "")


# =============================================================================
# Flexible Configuration System
# =============================================================================

class Config:
    """
    Configuration manager that supports:
    - Environment variables
    - A custom YAML configuration file
    - Runtime overrides
    """

    _instance: Optional["Config"] = None
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
            # API settings
            "api_base_url": os.environ.get("CASHBOOK_API_URL", DEFAULT_API_BASE_URL),
            "api_timeout": float(os.environ.get("CASHBOOK_API_TIMEOUT", "20")),
            "api_retry_count": int(os.environ.get("CASHBOOK_API_RETRY_COUNT", "1")),

            # Reconciliation settings
            "balance_tolerance": float(
                os.environ.get("CASHBOOK_BALANCE_TOLERANCE", str(BALANCE_TOLERANCE))
            ),
            "check_checkpoint_consistency": os.environ.get(
                "CASHBOOK_CHECK_CONSISTENCY", "true"
            ).lower() == "true",
            "fetch_concurrently": os.environ.get(
                "CASHBOOK_FETCH_CONCURRENTLY", "true"
            ).lower() == "true",

            # Display settings
            "display_date_format": os.environ.get("CASHBOOK_DATE_FORMAT", DISPLAY_DATE_FORMAT),
            "currency": os.environ.get("CASHBOOK_CURRENCY", DEFAULT_CURRENCY),
            "currency_symbol": os.environ.get("CASHBOOK_CURRENCY_SYMBOL", CURRENCY_SYMBOL),

            # File settings
            "supported_encodings": FILE_ENCODINGS,
        }

    def _load_custom_config(self) -> None:
        """Load custom configuration from YAML file if available."""
        config_paths = [
            Path.cwd() / "config.yaml",
            Path.cwd() / "config.yml",
            Path(__file__).parent / "config.yaml",
            Path.home() / ".tailor_cashbook" / "config.yaml",
        ]

        for config_path in config_paths:
            if config_path.exists():
                try:
                    with open(config_path, 'r', encoding='utf-8') as f:
                        custom_config = yaml.safe_load(f) or {}
                except (OSError, yaml.YAMLError) as e:
                    logger.warning("Could not load config from %s: %s", config_path, e)
                    continue
                if not isinstance(custom_config, dict):
                    logger.warning("Ignoring %s: top level must be a mapping", config_path)
                    continue
                self._settings.update(custom_config)
                logger.info("Loaded config from %s", config_path)
                break

    def get(self, key: str, default: Any = None) -> Any:
        """Get a configuration value."""
        return self._settings.get(key, default)

    def set(self, key: str, value: Any) -> None:
        """Set a configuration value at runtime."""
        self._settings[key] = value

    @property
    def api_base_url(self) -> str:
        return str(self.get("api_base_url", DEFAULT_API_BASE_URL)).rstrip("/")

    @property
    def balance_tolerance(self) -> float:
        return float(self.get("balance_tolerance", BALANCE_TOLERANCE))

    @property
    def display_date_format(self) -> str:
        return self.get("display_date_format", DISPLAY_DATE_FORMAT)

    def reload(self) -> None:
        """Reload configuration from environment and files."""
        self._load_defaults()
        self._load_custom_config()


def get_config() -> Config:
    """Get the global configuration instance."""
    return Config()
