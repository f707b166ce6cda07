"""
Unit tests for the cash book segment replay.
"""
import random
import unittest
from datetime import date, datetime, timezone

import sys
import os
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from normalizer.date_parser import EPOCH
from parsers.base_parser import BalanceCheckpoint, Transaction
from reconciler.cashbook import LedgerReconciler, RowKind

NOW = datetime(2024, 1, 20, 12, 0, tzinfo=timezone.utc)


def ts(day, hour=12, minute=0):
    return datetime(2024, 1, day, hour, minute, tzinfo=timezone.utc)


def make_txn(txn_id, txn_type, amount, method, created_at, txn_date=None):
    return Transaction(
        id=txn_id,
        type=txn_type,
        amount=amount,
        payment_method=method,
        created_at=created_at,
        date=txn_date or created_at.date(),
        description=f"{txn_type} {txn_id}",
        voucher_no=f"V-{txn_id}",
    )


def make_checkpoint(checkpoint_id, cash, bank, created_at, balanced_date):
    return BalanceCheckpoint(
        id=checkpoint_id,
        cash_balance=cash,
        bank_balance=bank,
        created_at=created_at,
        last_balanced_date=balanced_date,
    )


class TestNoCheckpoints(unittest.TestCase):
    """Tests for a book that has never been balanced."""

    def setUp(self):
        self.reconciler = LedgerReconciler(tolerance=0.01, check_consistency=True)
        self.transactions = [
            make_txn('t2', 'expense', 30.0, 'Bank', ts(3)),
            make_txn('t1', 'income', 100.0, 'Cash', ts(2)),
        ]

    def test_single_unreconciled_segment(self):
        """Test all transactions form one trailing segment."""
        result = self.reconciler.reconcile(self.transactions, [], now=NOW)

        self.assertEqual(len(result.segments), 1)
        self.assertFalse(result.segments[0].is_reconciled)
        self.assertEqual(
            [row.kind for row in result.rows],
            [RowKind.OPENING_BALANCE, RowKind.POSTING, RowKind.POSTING,
             RowKind.PERIOD_TOTALS, RowKind.CLOSING_BALANCE],
        )
        self.assertTrue(all(not row.is_reconciled for row in result.rows))

    def test_postings_in_created_at_order(self):
        """Test postings follow createdAt, not input order."""
        result = self.reconciler.reconcile(self.transactions, [], now=NOW)
        postings = [row for row in result.rows if row.kind == RowKind.POSTING]
        self.assertEqual([row.transaction_id for row in postings], ['t1', 't2'])

    def test_figures(self):
        """Test opening, totals and replayed closing figures."""
        result = self.reconciler.reconcile(self.transactions, [], now=NOW)
        opening, income, expense, totals, closing = result.rows

        self.assertEqual(opening.date, date(2024, 1, 2))
        self.assertEqual((opening.debit_cash, opening.debit_bank), (0.0, 0.0))
        self.assertEqual(opening.particulars_debit, 'Balance b/d')

        self.assertEqual((income.debit_cash, income.debit_bank), (100.0, None))
        self.assertEqual((expense.credit_cash, expense.credit_bank), (None, 30.0))
        self.assertEqual(expense.particulars_credit, 'expense t2')
        self.assertEqual(expense.voucher_credit, 'V-t2')

        self.assertEqual((totals.debit_cash, totals.debit_bank), (100.0, 0.0))
        self.assertEqual((totals.credit_cash, totals.credit_bank), (0.0, 30.0))

        self.assertEqual(closing.particulars_credit, 'Balance c/d')
        self.assertEqual((closing.credit_cash, closing.credit_bank), (100.0, -30.0))
        self.assertEqual(closing.date, NOW.date())
        self.assertEqual((result.final_cash, result.final_bank), (100.0, -30.0))
        self.assertIsNone(result.last_balanced_date)

    def test_empty_inputs(self):
        """Test no transactions and no checkpoints produce an empty book."""
        result = self.reconciler.reconcile([], [], now=NOW)
        self.assertEqual(result.rows, ())
        self.assertEqual(result.segments, ())
        self.assertEqual((result.final_cash, result.final_bank), (0.0, 0.0))
        self.assertIsNone(result.unreconciled_segment)


class TestSegments(unittest.TestCase):
    """Tests for reconciled segments closed by balance records."""

    def setUp(self):
        self.reconciler = LedgerReconciler(tolerance=0.01, check_consistency=True)

    def test_checkpoint_then_trailing_segment(self):
        """Test a stored checkpoint followed by an unreconciled segment."""
        transactions = [
            make_txn('t1', 'income', 50.0, 'Cash', ts(5)),
            make_txn('t2', 'expense', 20.0, 'Cash', ts(12)),
        ]
        checkpoints = [make_checkpoint('c1', 100.0, 0.0, ts(10), date(2024, 1, 10))]

        result = self.reconciler.reconcile(transactions, checkpoints, now=NOW)

        self.assertEqual(len(result.rows), 8)
        first, trailing = result.segments
        self.assertTrue(first.is_reconciled)
        self.assertEqual(first.transaction_ids, ('t1',))
        self.assertEqual(first.opening_cash, 0.0)
        self.assertEqual(first.closing_cash, 100.0)
        self.assertEqual(first.replayed_closing_cash, 50.0)

        # Stored figures win on the Balance c/d row
        closing_row = result.rows[3]
        self.assertEqual(closing_row.kind, RowKind.CLOSING_BALANCE)
        self.assertEqual(closing_row.credit_cash, 100.0)
        self.assertEqual(closing_row.date, date(2024, 1, 10))

        self.assertFalse(trailing.is_reconciled)
        self.assertEqual(trailing.opening_cash, 100.0)
        self.assertEqual(trailing.opening_date, date(2024, 1, 11))
        self.assertEqual(trailing.closing_cash, 80.0)
        self.assertEqual(result.final_cash, 80.0)
        self.assertEqual(result.last_balanced_date, date(2024, 1, 10))

    def test_consistent_checkpoint_has_no_mismatch(self):
        """Test a checkpoint that agrees with the replay raises no issue."""
        transactions = [make_txn('t1', 'income', 50.0, 'Cash', ts(5))]
        checkpoints = [make_checkpoint('c1', 50.0, 0.0, ts(10), date(2024, 1, 10))]

        result = self.reconciler.reconcile(transactions, checkpoints, now=NOW)

        self.assertEqual(result.mismatched_segments, [])
        self.assertEqual(result.summary()['reconciliation_status'], 'PASS')
        self.assertIsNone(result.unreconciled_segment)
        self.assertEqual(result.final_cash, 50.0)

    def test_mismatch_logged_and_reported(self):
        """Test a disagreeing checkpoint logs a warning and adds an issue."""
        transactions = [make_txn('t1', 'income', 50.0, 'Cash', ts(5))]
        checkpoints = [make_checkpoint('c1', 100.0, 0.0, ts(10), date(2024, 1, 10))]

        with self.assertLogs('reconciler.cashbook', level='WARNING') as logs:
            result = self.reconciler.reconcile(transactions, checkpoints, now=NOW)

        self.assertIn('c1', logs.output[0])
        mismatches = [i for i in result.issues if i.issue_type == 'checkpoint_mismatch']
        self.assertEqual(len(mismatches), 1)
        self.assertEqual(mismatches[0].record_id, 'c1')
        self.assertEqual([s.checkpoint_id for s in result.mismatched_segments], ['c1'])
        self.assertEqual(result.summary()['reconciliation_status'], 'FAIL - Review Required')

    def test_difference_within_tolerance_is_not_a_mismatch(self):
        """Test sub-kobo drift is tolerated."""
        transactions = [make_txn('t1', 'income', 50.0, 'Cash', ts(5))]
        checkpoints = [make_checkpoint('c1', 50.01, 0.0, ts(10), date(2024, 1, 10))]

        result = self.reconciler.reconcile(transactions, checkpoints, now=NOW)
        self.assertEqual(result.mismatched_segments, [])

    def test_consistency_check_can_be_disabled(self):
        """Test no mismatch issue when the check is off."""
        reconciler = LedgerReconciler(tolerance=0.01, check_consistency=False)
        transactions = [make_txn('t1', 'income', 50.0, 'Cash', ts(5))]
        checkpoints = [make_checkpoint('c1', 100.0, 0.0, ts(10), date(2024, 1, 10))]

        result = reconciler.reconcile(transactions, checkpoints, now=NOW)
        self.assertFalse(any(i.issue_type == 'checkpoint_mismatch' for i in result.issues))

    def test_transaction_at_checkpoint_instant_belongs_to_it(self):
        """Test the segment upper bound is inclusive."""
        transactions = [make_txn('t1', 'income', 40.0, 'Bank', ts(10))]
        checkpoints = [make_checkpoint('c1', 0.0, 40.0, ts(10), date(2024, 1, 10))]

        result = self.reconciler.reconcile(transactions, checkpoints, now=NOW)

        self.assertEqual(len(result.segments), 1)
        self.assertEqual(result.segments[0].transaction_ids, ('t1',))
        self.assertIsNone(result.unreconciled_segment)

    def test_empty_checkpoint_window_emits_all_rows(self):
        """Test a checkpoint with no transactions still emits its balance and totals rows."""
        transactions = [make_txn('t1', 'income', 70.0, 'Cash', ts(5))]
        checkpoints = [
            make_checkpoint('c1', 70.0, 0.0, ts(6), date(2024, 1, 6)),
            make_checkpoint('c2', 70.0, 0.0, ts(8), date(2024, 1, 8)),
        ]

        result = self.reconciler.reconcile(transactions, checkpoints, now=NOW)
        second = [row for row in result.rows if row.segment == 1]

        self.assertEqual(
            [row.kind for row in second],
            [RowKind.OPENING_BALANCE, RowKind.PERIOD_TOTALS, RowKind.CLOSING_BALANCE],
        )
        opening, totals, closing = second
        self.assertEqual(opening.debit_cash, 70.0)
        self.assertEqual(opening.date, date(2024, 1, 7))
        self.assertEqual(totals.debit_cash, 70.0)
        self.assertEqual((totals.credit_cash, totals.credit_bank), (0.0, 0.0))
        self.assertEqual(closing.credit_cash, 70.0)

    def test_first_segment_without_transactions_opens_today(self):
        """Test the first opening date falls back to today."""
        checkpoints = [make_checkpoint('c1', 0.0, 0.0, ts(6), date(2024, 1, 6))]
        result = self.reconciler.reconcile([], checkpoints, now=NOW)
        self.assertEqual(result.rows[0].date, NOW.date())

    def test_undated_first_transaction_opens_today(self):
        """Test the book opens today when the earliest transaction has no date."""
        undated = Transaction(id='t1', type='income', amount=10.0, payment_method='Cash',
                              created_at=ts(5), date=None, description='Hem')
        result = self.reconciler.reconcile([undated], [], now=NOW)

        opening, posting = result.rows[:2]
        self.assertEqual(opening.date, NOW.date())
        self.assertEqual(posting.date, date(2024, 1, 5))

    def test_totals_row_dated_with_closing_date(self):
        """Test the totals row carries the segment's closing date."""
        transactions = [make_txn('t1', 'income', 10.0, 'Cash', ts(5))]
        checkpoints = [make_checkpoint('c1', 10.0, 0.0, ts(6), date(2024, 1, 6))]

        result = self.reconciler.reconcile(transactions, checkpoints, now=NOW)
        totals = [row for row in result.rows if row.kind == RowKind.PERIOD_TOTALS][0]
        self.assertEqual(totals.date, date(2024, 1, 6))

    def test_running_balance_carries_stored_figures(self):
        """Test each segment opens with the previous checkpoint's stored figures."""
        transactions = [
            make_txn('t1', 'income', 10.0, 'Cash', ts(2)),
            make_txn('t2', 'income', 5.0, 'Cash', ts(4)),
        ]
        checkpoints = [
            make_checkpoint('c1', 500.0, 25.0, ts(3), date(2024, 1, 3)),
            make_checkpoint('c2', 505.0, 25.0, ts(5), date(2024, 1, 5)),
        ]

        result = self.reconciler.reconcile(transactions, checkpoints, now=NOW)
        second = result.segments[1]
        self.assertEqual((second.opening_cash, second.opening_bank), (500.0, 25.0))
        self.assertEqual(second.replayed_closing_cash, 505.0)
        self.assertEqual((result.final_cash, result.final_bank), (505.0, 25.0))


class TestPaymentMethods(unittest.TestCase):
    """Tests for cash/bank separation."""

    def setUp(self):
        self.reconciler = LedgerReconciler(tolerance=0.01, check_consistency=True)

    def test_no_cross_bleed(self):
        """Test bank movements never touch cash figures."""
        transactions = [
            make_txn('t1', 'income', 200.0, 'Bank', ts(2)),
            make_txn('t2', 'expense', 75.0, 'Bank', ts(3)),
            make_txn('t3', 'income', 10.0, 'Cash', ts(4)),
        ]
        result = self.reconciler.reconcile(transactions, [], now=NOW)
        segment = result.segments[0]

        self.assertEqual((segment.income_cash, segment.income_bank), (10.0, 200.0))
        self.assertEqual((segment.expense_cash, segment.expense_bank), (0.0, 75.0))
        self.assertEqual((result.final_cash, result.final_bank), (10.0, 125.0))

    def test_unknown_method_shown_but_not_totalled(self):
        """Test an unknown payment method posts a row without amounts."""
        transactions = [
            make_txn('t1', 'income', 100.0, 'Cash', ts(2)),
            make_txn('t2', 'income', 60.0, 'Card', ts(3)),
        ]
        result = self.reconciler.reconcile(transactions, [], now=NOW)

        card_row = [row for row in result.rows if row.transaction_id == 't2'][0]
        self.assertEqual((card_row.debit_cash, card_row.debit_bank), (None, None))
        self.assertEqual(result.final_cash, 100.0)
        self.assertTrue(any(i.issue_type == 'unknown_payment_method' for i in result.issues))

    def test_unknown_type_posts_as_expense(self):
        """Test anything that is not income goes on the credit side."""
        transactions = [make_txn('t1', 'refund', 15.0, 'Cash', ts(2))]
        result = self.reconciler.reconcile(transactions, [], now=NOW)

        row = [row for row in result.rows if row.kind == RowKind.POSTING][0]
        self.assertEqual(row.credit_cash, 15.0)
        self.assertEqual(result.final_cash, -15.0)


class TestOrderingAndPartition(unittest.TestCase):
    """Tests for sorting, partitioning and idempotence."""

    def setUp(self):
        self.reconciler = LedgerReconciler(tolerance=0.01, check_consistency=True)
        self.transactions = [
            make_txn(f't{i}', 'income' if i % 3 else 'expense', float(i), 'Cash' if i % 2 else 'Bank',
                     ts(1 + i % 18, hour=i % 24))
            for i in range(1, 40)
        ]
        self.checkpoints = [
            make_checkpoint('c1', 0.0, 0.0, ts(6), date(2024, 1, 6)),
            make_checkpoint('c2', 0.0, 0.0, ts(12), date(2024, 1, 12)),
        ]

    def test_input_order_does_not_matter(self):
        """Test shuffled inputs produce the same rows."""
        expected = self.reconciler.reconcile(self.transactions, self.checkpoints, now=NOW)

        shuffled_txns = list(self.transactions)
        shuffled_checkpoints = list(reversed(self.checkpoints))
        random.Random(7).shuffle(shuffled_txns)

        result = self.reconciler.reconcile(shuffled_txns, shuffled_checkpoints, now=NOW)
        self.assertEqual(result.rows, expected.rows)

    def test_idempotent(self):
        """Test reprocessing the same inputs yields the same result."""
        first = self.reconciler.reconcile(self.transactions, self.checkpoints, now=NOW)
        second = self.reconciler.reconcile(self.transactions, self.checkpoints, now=NOW)
        self.assertEqual(first, second)

    def test_every_transaction_posted_once(self):
        """Test segments partition the transaction stream."""
        result = self.reconciler.reconcile(self.transactions, self.checkpoints, now=NOW)
        posted = [tid for segment in result.segments for tid in segment.transaction_ids]
        self.assertEqual(sorted(posted), sorted(t.id for t in self.transactions))

    def test_inputs_not_mutated(self):
        """Test the reconciler leaves its input lists untouched."""
        transactions = list(self.transactions)
        self.reconciler.reconcile(transactions, self.checkpoints, now=NOW)
        self.assertEqual(transactions, self.transactions)

    def test_stable_sort_on_ties(self):
        """Test records sharing a createdAt keep arrival order."""
        tied = [
            make_txn('a', 'income', 1.0, 'Cash', ts(2)),
            make_txn('b', 'income', 2.0, 'Cash', ts(2)),
        ]
        self.assertEqual([t.id for t in LedgerReconciler.sort_by_created_at(tied)], ['a', 'b'])

    def test_epoch_records_land_in_first_segment(self):
        """Test records without a timestamp are posted in the first segment."""
        undated = Transaction(id='x', type='income', amount=5.0, payment_method='Cash',
                              created_at=EPOCH, created_at_missing=True, description='x')
        checkpoints = [make_checkpoint('c1', 5.0, 0.0, ts(6), date(2024, 1, 6))]

        result = self.reconciler.reconcile([undated], checkpoints, now=NOW)
        self.assertEqual(result.segments[0].transaction_ids, ('x',))
        self.assertTrue(any(i.issue_type == 'missing_created_at' for i in result.issues))

    def test_future_transactions_left_out(self):
        """Test transactions created after now are reported, not posted."""
        transactions = [
            make_txn('t1', 'income', 10.0, 'Cash', ts(2)),
            make_txn('t2', 'income', 99.0, 'Cash', ts(25)),
        ]
        result = self.reconciler.reconcile(transactions, [], now=NOW)

        self.assertEqual(result.segments[0].transaction_ids, ('t1',))
        self.assertEqual(result.final_cash, 10.0)
        future = [i for i in result.issues if i.issue_type == 'future_created_at']
        self.assertEqual([i.record_id for i in future], ['t2'])


class TestRowPresentation(unittest.TestCase):
    """Tests for the row dictionaries served to the ledger table."""

    def test_to_dict(self):
        """Test keys and display date format."""
        reconciler = LedgerReconciler(tolerance=0.01, check_consistency=True)
        result = reconciler.reconcile(
            [make_txn('t1', 'income', 100.0, 'Cash', ts(2))], [], now=NOW
        )
        opening = result.rows[0].to_dict()

        self.assertEqual(opening['type'], 'balanceBd')
        self.assertEqual(opening['date'], '02-Jan-2024')
        self.assertEqual(opening['isoDate'], '2024-01-02')
        self.assertEqual(opening['particularsDebit'], 'Balance b/d')
        self.assertFalse(opening['isBalancedPeriod'])

        posting = result.rows[1].to_dict()
        self.assertEqual(posting['type'], 'transaction')
        self.assertEqual(posting['debitCash'], 100.0)
        self.assertEqual(posting['transactionId'], 't1')


if __name__ == '__main__':
    unittest.main()
