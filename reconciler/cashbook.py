"""
Cash Book Reconciliation Module.

Rebuilds a two-column (cash, bank) cash book from the transaction stream and
the balance records:
1. Sorting both streams by createdAt
2. Splitting transactions into segments closed by each balance record
3. Emitting Balance b/d, postings, totals and Balance c/d per segment
4. Appending an unreconciled segment for everything created since the
   last balance record
"""
import logging
from dataclasses import dataclass, field
from datetime import date, datetime, timezone
from enum import Enum
from typing import Any, Dict, Iterable, List, Optional, Sequence, Tuple, TypeVar

from config import (
    BALANCE_BD_LABEL,
    BALANCE_CD_LABEL,
    BANK,
    CASH,
    DISPLAY_DATE_FORMAT,
    get_config,
)
from normalizer.amount_parser import round_money
from normalizer.date_parser import EPOCH, as_utc, format_date, next_day
from parsers.base_parser import (
    BalanceCheckpoint,
    Transaction,
    ValidationIssue,
    validate_checkpoints,
    validate_transactions,
)

logger = logging.getLogger(__name__)

Record = TypeVar("Record", Transaction, BalanceCheckpoint)


class RowKind(Enum):
    """Ledger row variants."""
    OPENING_BALANCE = "balanceBd"
    POSTING = "transaction"
    PERIOD_TOTALS = "totals"
    CLOSING_BALANCE = "balanceCd"


@dataclass(frozen=True)
class LedgerRow:
    """One line of the cash book: a date plus debit and credit halves."""
    kind: RowKind
    date: Optional[date]
    is_reconciled: bool
    segment: int
    particulars_debit: str = ""
    voucher_debit: str = ""
    debit_cash: Optional[float] = None
    debit_bank: Optional[float] = None
    particulars_credit: str = ""
    voucher_credit: str = ""
    credit_cash: Optional[float] = None
    credit_bank: Optional[float] = None
    transaction_id: Optional[str] = None

    def display_date(self, fmt: str = DISPLAY_DATE_FORMAT) -> str:
        return format_date(self.date, fmt)

    def to_dict(self, fmt: str = DISPLAY_DATE_FORMAT) -> Dict[str, Any]:
        """Presentation contract consumed by the ledger table."""
        return {
            'type': self.kind.value,
            'date': self.display_date(fmt),
            'isoDate': self.date.isoformat() if self.date else None,
            'particularsDebit': self.particulars_debit,
            'voucherNoDebit': self.voucher_debit,
            'debitCash': self.debit_cash,
            'debitBank': self.debit_bank,
            'particularsCredit': self.particulars_credit,
            'voucherNoCredit': self.voucher_credit,
            'creditCash': self.credit_cash,
            'creditBank': self.credit_bank,
            'isBalancedPeriod': self.is_reconciled,
            'segment': self.segment,
            'transactionId': self.transaction_id,
        }


@dataclass(frozen=True)
class SegmentSummary:
    """
    Figures for one segment.

    ``closing_*`` are the figures shown on the Balance c/d row: the stored
    balance record values for reconciled segments, the replay for the
    trailing one. ``replayed_closing_*`` are always the replay.
    """
    index: int
    is_reconciled: bool
    start: datetime
    end: datetime
    opening_cash: float
    opening_bank: float
    income_cash: float
    income_bank: float
    expense_cash: float
    expense_bank: float
    closing_cash: float
    closing_bank: float
    replayed_closing_cash: float
    replayed_closing_bank: float
    opening_date: date
    closing_date: date
    checkpoint_id: Optional[str] = None
    transaction_ids: Tuple[str, ...] = ()

    @property
    def transaction_count(self) -> int:
        return len(self.transaction_ids)

    def to_dict(self) -> Dict[str, Any]:
        return {
            'index': self.index,
            'isReconciled': self.is_reconciled,
            'checkpointId': self.checkpoint_id,
            'start': self.start.isoformat(),
            'end': self.end.isoformat(),
            'openingDate': self.opening_date.isoformat(),
            'closingDate': self.closing_date.isoformat(),
            'openingCash': self.opening_cash,
            'openingBank': self.opening_bank,
            'incomeCash': self.income_cash,
            'incomeBank': self.income_bank,
            'expenseCash': self.expense_cash,
            'expenseBank': self.expense_bank,
            'closingCash': self.closing_cash,
            'closingBank': self.closing_bank,
            'replayedClosingCash': self.replayed_closing_cash,
            'replayedClosingBank': self.replayed_closing_bank,
            'transactionCount': self.transaction_count,
        }


@dataclass(frozen=True)
class CashBookResult:
    """Immutable output of one reconciliation run."""
    rows: Tuple[LedgerRow, ...]
    segments: Tuple[SegmentSummary, ...]
    final_cash: float
    final_bank: float
    last_balanced_date: Optional[date]
    generated_at: datetime
    issues: Tuple[ValidationIssue, ...] = field(default_factory=tuple)

    @property
    def unreconciled_segment(self) -> Optional[SegmentSummary]:
        if self.segments and not self.segments[-1].is_reconciled:
            return self.segments[-1]
        return None

    @property
    def mismatched_segments(self) -> List[SegmentSummary]:
        """Reconciled segments whose balance record disagreed with the replay."""
        flagged = {i.record_id for i in self.issues if i.issue_type == "checkpoint_mismatch"}
        return [s for s in self.segments if s.is_reconciled and s.checkpoint_id in flagged]

    def summary(self) -> Dict[str, Any]:
        """Header facts and counts for the ledger view."""
        trailing = self.unreconciled_segment
        return {
            'total_rows': len(self.rows),
            'reconciled_segments': sum(1 for s in self.segments if s.is_reconciled),
            'unreconciled_transactions': trailing.transaction_count if trailing else 0,
            'last_balanced_date': self.last_balanced_date,
            'final_cash': self.final_cash,
            'final_bank': self.final_bank,
            'mismatches_found': len(self.mismatched_segments),
            'reconciliation_status': (
                "PASS" if not self.mismatched_segments else "FAIL - Review Required"
            ),
        }


class LedgerReconciler:
    """
    Replays transactions against balance records to rebuild the cash book.

    The reconciler is a pure function of its inputs plus ``now``: it keeps
    no state between runs and never mutates the records it is given.
    """

    def __init__(
        self,
        tolerance: Optional[float] = None,
        check_consistency: Optional[bool] = None,
    ):
        """
        Initialize the reconciler.

        Args:
            tolerance: Allowed difference between a stored balance record and
                       the replayed closing balance (default from config)
            check_consistency: Whether to compare stored and replayed
                       closing balances at all (default from config)
        """
        config = get_config()
        self.tolerance = config.balance_tolerance if tolerance is None else tolerance
        self.check_consistency = (
            config.get("check_checkpoint_consistency", True)
            if check_consistency is None else check_consistency
        )

    def reconcile(
        self,
        transactions: Iterable[Transaction],
        checkpoints: Iterable[BalanceCheckpoint],
        now: Optional[datetime] = None,
    ) -> CashBookResult:
        """
        Rebuild the cash book.

        Args:
            transactions: All transactions, in any order
            checkpoints: All balance records, in any order
            now: Upper bound of the unreconciled segment (defaults to the
                 current instant)

        Returns:
            CashBookResult with rows, per-segment figures and issues
        """
        now = as_utc(now or datetime.now(timezone.utc))
        txns = self.sort_by_created_at(transactions)
        balance_records = self.sort_by_created_at(checkpoints)

        issues: List[ValidationIssue] = validate_transactions(txns)
        issues.extend(validate_checkpoints(balance_records))

        rows: List[LedgerRow] = []
        segments: List[SegmentSummary] = []

        running_cash = 0.0
        running_bank = 0.0
        segment_start = EPOCH
        prior_date: Optional[date] = None
        # Without a business date on the earliest transaction the book opens today
        first_date = txns[0].date if txns and txns[0].date is not None else now.date()
        cursor = 0

        for index, checkpoint in enumerate(balance_records):
            segment_end = checkpoint.created_at

            # Single forward cursor: the stream is partitioned, never rescanned.
            # Records ordered at the epoch land in the first segment.
            batch_start = cursor
            while cursor < len(txns) and txns[cursor].created_at <= segment_end:
                cursor += 1

            closing_date = checkpoint.last_balanced_date or checkpoint.created_at.date()
            segment = self._replay_segment(
                index=index,
                batch=txns[batch_start:cursor],
                is_reconciled=True,
                start=segment_start,
                end=segment_end,
                opening_cash=running_cash,
                opening_bank=running_bank,
                opening_date=first_date if prior_date is None else next_day(prior_date),
                closing_date=closing_date,
                checkpoint=checkpoint,
                rows=rows,
            )
            segments.append(segment)

            if self.check_consistency:
                issue = self._check_segment(segment)
                if issue is not None:
                    issues.append(issue)

            running_cash = checkpoint.cash_balance
            running_bank = checkpoint.bank_balance
            segment_start = segment_end
            prior_date = closing_date

        remaining = txns[cursor:]
        pending = [t for t in remaining if t.created_at <= now]
        for txn in remaining[len(pending):]:
            issues.append(ValidationIssue(
                record_id=txn.id,
                issue_type="future_created_at",
                message=(
                    f"Transaction {txn.id} was created at {txn.created_at.isoformat()}, "
                    f"after {now.isoformat()}; left out of the cash book"
                ),
            ))

        final_cash, final_bank = running_cash, running_bank
        if pending:
            trailing = self._replay_segment(
                index=len(balance_records),
                batch=pending,
                is_reconciled=False,
                start=segment_start,
                end=now,
                opening_cash=running_cash,
                opening_bank=running_bank,
                opening_date=first_date if prior_date is None else next_day(prior_date),
                closing_date=now.date(),
                checkpoint=None,
                rows=rows,
            )
            segments.append(trailing)
            final_cash, final_bank = trailing.closing_cash, trailing.closing_bank

        logger.debug(
            "Reconciled %d transactions into %d segments (%d rows)",
            len(txns), len(segments), len(rows),
        )

        return CashBookResult(
            rows=tuple(rows),
            segments=tuple(segments),
            final_cash=round_money(final_cash),
            final_bank=round_money(final_bank),
            last_balanced_date=(
                balance_records[-1].last_balanced_date if balance_records else None
            ),
            generated_at=now,
            issues=tuple(issues),
        )

    def _replay_segment(
        self,
        index: int,
        batch: Sequence[Transaction],
        is_reconciled: bool,
        start: datetime,
        end: datetime,
        opening_cash: float,
        opening_bank: float,
        opening_date: date,
        closing_date: date,
        checkpoint: Optional[BalanceCheckpoint],
        rows: List[LedgerRow],
    ) -> SegmentSummary:
        """Append one segment's rows to ``rows`` and return its figures."""
        rows.append(LedgerRow(
            kind=RowKind.OPENING_BALANCE,
            date=opening_date,
            is_reconciled=is_reconciled,
            segment=index,
            particulars_debit=BALANCE_BD_LABEL,
            debit_cash=round_money(opening_cash),
            debit_bank=round_money(opening_bank),
        ))

        income_cash = income_bank = expense_cash = expense_bank = 0.0

        for txn in batch:
            rows.append(self._posting_row(txn, index, is_reconciled))
            if txn.is_income:
                income_cash += txn.cash_amount
                income_bank += txn.bank_amount
            else:
                expense_cash += txn.cash_amount
                expense_bank += txn.bank_amount

        rows.append(LedgerRow(
            kind=RowKind.PERIOD_TOTALS,
            date=closing_date,
            is_reconciled=is_reconciled,
            segment=index,
            debit_cash=round_money(opening_cash + income_cash),
            debit_bank=round_money(opening_bank + income_bank),
            credit_cash=round_money(expense_cash),
            credit_bank=round_money(expense_bank),
        ))

        replayed_cash = round_money(opening_cash + income_cash - expense_cash)
        replayed_bank = round_money(opening_bank + income_bank - expense_bank)

        # A balance record is the source of truth for its own closing figures
        if checkpoint is not None:
            closing_cash = round_money(checkpoint.cash_balance)
            closing_bank = round_money(checkpoint.bank_balance)
        else:
            closing_cash, closing_bank = replayed_cash, replayed_bank

        rows.append(LedgerRow(
            kind=RowKind.CLOSING_BALANCE,
            date=closing_date,
            is_reconciled=is_reconciled,
            segment=index,
            particulars_credit=BALANCE_CD_LABEL,
            credit_cash=closing_cash,
            credit_bank=closing_bank,
        ))

        logger.debug(
            "Segment %d (%s): %d postings, closing cash=%.2f bank=%.2f",
            index, "reconciled" if is_reconciled else "unreconciled",
            len(batch), closing_cash, closing_bank,
        )

        return SegmentSummary(
            index=index,
            is_reconciled=is_reconciled,
            start=start,
            end=end,
            opening_cash=round_money(opening_cash),
            opening_bank=round_money(opening_bank),
            income_cash=round_money(income_cash),
            income_bank=round_money(income_bank),
            expense_cash=round_money(expense_cash),
            expense_bank=round_money(expense_bank),
            closing_cash=closing_cash,
            closing_bank=closing_bank,
            replayed_closing_cash=replayed_cash,
            replayed_closing_bank=replayed_bank,
            opening_date=opening_date,
            closing_date=closing_date,
            checkpoint_id=checkpoint.id if checkpoint is not None else None,
            transaction_ids=tuple(t.id for t in batch),
        )

    @staticmethod
    def _posting_row(txn: Transaction, index: int, is_reconciled: bool) -> LedgerRow:
        cash = txn.amount if txn.payment_method == CASH else None
        bank = txn.amount if txn.payment_method == BANK else None

        if txn.is_income:
            return LedgerRow(
                kind=RowKind.POSTING,
                date=txn.display_date,
                is_reconciled=is_reconciled,
                segment=index,
                particulars_debit=txn.description,
                voucher_debit=txn.voucher_no,
                debit_cash=cash,
                debit_bank=bank,
                transaction_id=txn.id,
            )
        return LedgerRow(
            kind=RowKind.POSTING,
            date=txn.display_date,
            is_reconciled=is_reconciled,
            segment=index,
            particulars_credit=txn.description,
            voucher_credit=txn.voucher_no,
            credit_cash=cash,
            credit_bank=bank,
            transaction_id=txn.id,
        )

    def _check_segment(self, segment: SegmentSummary) -> Optional[ValidationIssue]:
        """Compare a balance record's stored closing figures with the replay."""
        cash_diff = round_money(segment.closing_cash - segment.replayed_closing_cash)
        bank_diff = round_money(segment.closing_bank - segment.replayed_closing_bank)

        if abs(cash_diff) <= self.tolerance and abs(bank_diff) <= self.tolerance:
            return None

        logger.warning(
            "Balance record %s disagrees with replay: cash %.2f vs %.2f, bank %.2f vs %.2f",
            segment.checkpoint_id,
            segment.closing_cash, segment.replayed_closing_cash,
            segment.closing_bank, segment.replayed_closing_bank,
        )
        return ValidationIssue(
            record_id=segment.checkpoint_id or "",
            issue_type="checkpoint_mismatch",
            message=(
                f"Stored closing balance differs from replay by "
                f"cash {cash_diff:.2f}, bank {bank_diff:.2f}"
            ),
        )

    @staticmethod
    def sort_by_created_at(records: Iterable[Record]) -> List[Record]:
        """
        Return records sorted ascending by createdAt.

        The sort is stable, so records sharing a timestamp keep their
        arrival order.
        """
        return sorted(records, key=lambda r: r.created_at or EPOCH)
