"""
Closing figures for a new balance record.

Balancing the book fixes the unreconciled segment: the new record carries
the latest balance record's figures plus the net of every transaction
created since it, up to now.
"""
from dataclasses import dataclass
from datetime import date, datetime
from typing import Any, Dict, Iterable, Optional

from parsers.base_parser import BalanceCheckpoint, Transaction
from reconciler.cashbook import CashBookResult, LedgerReconciler


@dataclass(frozen=True)
class PendingBalance:
    """
    The balance record a "balance the book" action would create.

    ``based_on_checkpoint_id`` names the latest balance record the figures
    were derived from (None when there was none). Writers compare it with
    the server's latest record to detect a concurrent balance.
    """
    balanced_date: date
    cash_balance: float
    bank_balance: float
    transaction_count: int
    based_on_checkpoint_id: Optional[str]
    based_on_created_at: Optional[datetime]

    def to_payload(self) -> Dict[str, Any]:
        """Body for ``POST /balances/setLastBalancedDate``."""
        return {
            'date': self.balanced_date.isoformat(),
            'cashBalance': self.cash_balance,
            'bankBalance': self.bank_balance,
        }


def pending_balance_from_result(
    result: CashBookResult,
    checkpoints: Iterable[BalanceCheckpoint],
) -> Optional[PendingBalance]:
    """
    Derive the pending balance from an existing reconciliation result.

    Returns:
        PendingBalance, or None when nothing was created since the last
        balance record
    """
    trailing = result.unreconciled_segment
    if trailing is None:
        return None

    ordered = LedgerReconciler.sort_by_created_at(checkpoints)
    latest = ordered[-1] if ordered else None

    return PendingBalance(
        balanced_date=result.generated_at.date(),
        cash_balance=trailing.closing_cash,
        bank_balance=trailing.closing_bank,
        transaction_count=trailing.transaction_count,
        based_on_checkpoint_id=latest.id if latest else None,
        based_on_created_at=latest.created_at if latest else None,
    )


def compute_pending_balance(
    transactions: Iterable[Transaction],
    checkpoints: Iterable[BalanceCheckpoint],
    now: Optional[datetime] = None,
    reconciler: Optional[LedgerReconciler] = None,
) -> Optional[PendingBalance]:
    """
    Compute the closing figures for the unreconciled segment.

    Args:
        transactions: All transactions
        checkpoints: All balance records
        now: Upper bound of the segment (defaults to the current instant)
        reconciler: Reconciler to use (a default one is built if omitted)

    Returns:
        PendingBalance, or None when there are no new transactions
    """
    checkpoints = list(checkpoints)
    reconciler = reconciler or LedgerReconciler(check_consistency=False)
    result = reconciler.reconcile(transactions, checkpoints, now=now)
    return pending_balance_from_result(result, checkpoints)
