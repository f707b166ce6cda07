"""
Ledger record types and the abstract base class for record sources.
"""
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import date, datetime
from typing import Any, Dict, List, Optional

from config import BANK, CASH, EXPENSE, INCOME, PAYMENT_METHODS, TRANSACTION_TYPES
from normalizer.date_parser import EPOCH


@dataclass(frozen=True)
class Transaction:
    """
    A single income or expense entry.

    ``created_at`` is the authoritative insertion timestamp and orders
    transactions for reconciliation; ``date`` is the user-supplied business
    date and is only displayed.
    """
    id: str
    type: str
    amount: float
    payment_method: str
    created_at: datetime = EPOCH
    date: Optional[date] = None
    description: str = ""
    voucher_no: str = ""
    client_id: Optional[str] = None
    client_name: str = ""
    currency: str = ""
    created_at_missing: bool = False

    @property
    def is_income(self) -> bool:
        return self.type == INCOME

    @property
    def is_expense(self) -> bool:
        """Anything that is not income is posted on the credit side."""
        return not self.is_income

    @property
    def cash_amount(self) -> float:
        return self.amount if self.payment_method == CASH else 0.0

    @property
    def bank_amount(self) -> float:
        return self.amount if self.payment_method == BANK else 0.0

    @property
    def display_date(self) -> date:
        """Business date, falling back to the day the record was created."""
        return self.date if self.date is not None else self.created_at.date()

    def to_dict(self) -> Dict[str, Any]:
        """Convert transaction to its API representation."""
        return {
            '_id': self.id,
            'type': self.type,
            'amount': self.amount,
            'paymentMethod': self.payment_method,
            'createdAt': self.created_at.isoformat(),
            'date': self.date.isoformat() if self.date else None,
            'description': self.description,
            'voucherNo': self.voucher_no,
            'client': self.client_id,
            'currency': self.currency,
        }


@dataclass(frozen=True)
class BalanceCheckpoint:
    """
    A "balance the book" record: cumulative cash and bank balances fixed at
    the moment ``created_at``, labelled with the conceptual date the operator
    balanced up to.
    """
    id: str
    cash_balance: float
    bank_balance: float
    created_at: datetime = EPOCH
    last_balanced_date: Optional[date] = None
    recorded_by: Optional[str] = None
    created_at_missing: bool = False

    def to_dict(self) -> Dict[str, Any]:
        """Convert checkpoint to its API representation."""
        return {
            '_id': self.id,
            'cashBalance': self.cash_balance,
            'bankBalance': self.bank_balance,
            'createdAt': self.created_at.isoformat(),
            'lastBalancedDate': (
                self.last_balanced_date.isoformat() if self.last_balanced_date else None
            ),
            'recordedBy': self.recorded_by,
        }


@dataclass
class ValidationIssue:
    """
    Represents a problem found in an input record or during reconciliation.
    """
    record_id: str
    issue_type: str
    message: str
    severity: str = "warning"  # "warning" or "error"

    def to_dict(self) -> Dict[str, Any]:
        return {
            'recordId': self.record_id,
            'issueType': self.issue_type,
            'message': self.message,
            'severity': self.severity,
        }


def validate_transactions(transactions: List[Transaction]) -> List[ValidationIssue]:
    """
    Check transactions for the defects the reconciler tolerates silently.

    Returns:
        List of ValidationIssue objects
    """
    issues = []

    for txn in transactions:
        if txn.created_at_missing:
            issues.append(ValidationIssue(
                record_id=txn.id,
                issue_type="missing_created_at",
                message=f"Transaction {txn.id} has no valid createdAt; ordered as epoch",
            ))

        if txn.date is None:
            issues.append(ValidationIssue(
                record_id=txn.id,
                issue_type="missing_date",
                message=f"Transaction {txn.id} has no valid date; showing its creation day",
            ))

        if txn.type not in TRANSACTION_TYPES:
            issues.append(ValidationIssue(
                record_id=txn.id,
                issue_type="unknown_type",
                message=f"Transaction {txn.id} has type '{txn.type}'; posted as expense",
            ))

        if txn.payment_method not in PAYMENT_METHODS:
            issues.append(ValidationIssue(
                record_id=txn.id,
                issue_type="unknown_payment_method",
                message=(
                    f"Transaction {txn.id} has payment method '{txn.payment_method}'; "
                    "excluded from cash and bank totals"
                ),
            ))

        if txn.amount < 0:
            issues.append(ValidationIssue(
                record_id=txn.id,
                issue_type="negative_amount",
                message=f"Transaction {txn.id} has a negative amount ({txn.amount})",
            ))

        if not txn.description.strip():
            issues.append(ValidationIssue(
                record_id=txn.id,
                issue_type="missing_description",
                message=f"Transaction {txn.id} has no description",
            ))

    return issues


def validate_checkpoints(checkpoints: List[BalanceCheckpoint]) -> List[ValidationIssue]:
    """Check balance records for missing timestamps and dates."""
    issues = []

    for checkpoint in checkpoints:
        if checkpoint.created_at_missing:
            issues.append(ValidationIssue(
                record_id=checkpoint.id,
                issue_type="missing_created_at",
                message=f"Balance record {checkpoint.id} has no valid createdAt; ordered as epoch",
            ))
        if checkpoint.last_balanced_date is None:
            issues.append(ValidationIssue(
                record_id=checkpoint.id,
                issue_type="missing_date",
                message=f"Balance record {checkpoint.id} has no lastBalancedDate",
            ))

    return issues


class BaseParser(ABC):
    """
    Abstract base class for sources of ledger records.
    """

    def __init__(self, source: str):
        """
        Initialize the parser.

        Args:
            source: Where the records come from (file path or URL)
        """
        self.source = source
        self._transactions: List[Transaction] = []
        self._checkpoints: List[BalanceCheckpoint] = []

    @abstractmethod
    def parse(self) -> List[Any]:
        """
        Parse the source and return normalized records.
        """
        pass

    def get_summary(self) -> Dict[str, Any]:
        """
        Get a summary of the parsed records.

        Returns:
            Dictionary with summary statistics
        """
        income = sum(t.amount for t in self._transactions if t.is_income)
        expense = sum(t.amount for t in self._transactions if t.is_expense)

        dates = [t.display_date for t in self._transactions]
        date_range = (min(dates), max(dates)) if dates else (None, None)

        return {
            'total_transactions': len(self._transactions),
            'total_checkpoints': len(self._checkpoints),
            'total_income': income,
            'total_expense': expense,
            'net_flow': income - expense,
            'date_range': date_range,
        }
