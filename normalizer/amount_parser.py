"""
Amount parser for monetary values in ledger records.
"""
import re
from typing import Optional, Union

from config import CURRENCY_SYMBOL


def parse_amount(value: Union[str, int, float, None]) -> float:
    """
    Parse an amount value from various formats into a float.

    Handles:
    - Plain numbers and numeric strings: 1500, "1500.50"
    - Thousands separators: "1,500,000.00"
    - Currency symbols and codes: ₦, NGN, N
    - Negative formats: -1000, (1000)

    Args:
        value: A string/number that might be an amount

    Returns:
        A float value (positive or negative), or 0.0 if unparseable
    """
    if value is None or isinstance(value, bool):
        return 0.0

    if isinstance(value, (int, float)):
        if value != value:  # NaN from pandas cells
            return 0.0
        return float(value)

    value_str = str(value).strip()
    if not value_str:
        return 0.0

    is_negative = False

    # Parentheses: (1000) means negative
    if value_str.startswith('(') and value_str.endswith(')'):
        is_negative = True
        value_str = value_str[1:-1].strip()

    if value_str.startswith('-'):
        is_negative = True
        value_str = value_str[1:]

    value_str = _remove_currency_symbols(value_str)
    value_str = value_str.replace(',', '').replace(' ', '')

    if not value_str:
        return 0.0

    try:
        amount = float(value_str)
    except ValueError:
        return 0.0

    return -abs(amount) if is_negative else amount


def _remove_currency_symbols(value_str: str) -> str:
    """
    Remove currency symbols from a string.

    Args:
        value_str: String potentially containing currency symbols

    Returns:
        String with currency symbols removed
    """
    patterns = [
        r'₦\s*',           # Naira symbol
        r'NGN\s*',         # ISO code
        r'^N(?=\s*\d)',    # Bare "N" prefix, as typed on receipts
        r'\$\s*',          # Dollar
    ]

    for pattern in patterns:
        value_str = re.sub(pattern, '', value_str, flags=re.IGNORECASE)

    return value_str.strip()


def has_valid_amount(value: Union[str, int, float, None]) -> bool:
    """
    Check if a value contains a parseable amount.

    Args:
        value: A value to check

    Returns:
        True if the value contains a valid amount, False otherwise
    """
    if value is None or isinstance(value, bool):
        return False

    if isinstance(value, (int, float)):
        return value == value

    cleaned = str(value).strip()
    if cleaned.startswith('(') and cleaned.endswith(')'):
        cleaned = cleaned[1:-1]
    cleaned = _remove_currency_symbols(cleaned.lstrip('-'))
    cleaned = cleaned.replace(',', '').replace(' ', '')

    if not cleaned:
        return False

    try:
        float(cleaned)
        return True
    except ValueError:
        return False


def round_money(amount: float) -> float:
    """Round to kobo, normalizing negative zero."""
    return round(amount, 2) + 0.0


def format_currency(
    amount: Optional[float],
    include_symbol: bool = True,
    symbol: str = CURRENCY_SYMBOL,
) -> str:
    """
    Format an amount with thousands grouping and two decimals.

    Args:
        amount: The amount to format
        include_symbol: Whether to prefix the currency symbol

    Returns:
        Formatted currency string, or empty string if amount is None
    """
    if amount is None:
        return ""

    is_negative = amount < 0
    result = f"{abs(round_money(amount)):,.2f}"

    if include_symbol:
        result = symbol + result
    if is_negative:
        result = "-" + result
    return result
