"""
Normalizer module for parsing timestamps, dates and amounts.
"""
from .date_parser import EPOCH, parse_date, parse_timestamp, format_date
from .amount_parser import parse_amount, has_valid_amount, format_currency, round_money

__all__ = [
    'EPOCH', 'parse_date', 'parse_timestamp', 'format_date',
    'parse_amount', 'has_valid_amount', 'format_currency', 'round_money',
]
