"""Cash book reconciliation: segment replay, filtering and balancing."""
from reconciler.cashbook import CashBookResult, LedgerReconciler, LedgerRow, RowKind, SegmentSummary
from reconciler.date_filter import DateRangeFilter
from reconciler.balancing import PendingBalance, compute_pending_balance
from reconciler.summary import MonthlySummary, monthly_summary

__all__ = [
    "CashBookResult", "LedgerReconciler", "LedgerRow", "RowKind", "SegmentSummary",
    "DateRangeFilter",
    "PendingBalance", "compute_pending_balance",
    "MonthlySummary", "monthly_summary",
]
