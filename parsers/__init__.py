"""
Ledger records and the parsers that produce them.
"""
from .base_parser import BaseParser, BalanceCheckpoint, Transaction, ValidationIssue
from .record_parser import parse_checkpoints, parse_transactions
from .file_parser import CheckpointFileParser, TransactionFileParser

__all__ = [
    'BaseParser', 'BalanceCheckpoint', 'Transaction', 'ValidationIssue',
    'parse_checkpoints', 'parse_transactions',
    'CheckpointFileParser', 'TransactionFileParser',
]
