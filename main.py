#!/usr/bin/env python3
"""
Tailor Cash Book - Main Entry Point

Rebuilds the shop's two-column cash book from the REST API (or from CSV/XLSX
exports), prints it, optionally exports it to Excel and balances the book.

Usage:
    python main.py [--api-url URL --token TOKEN | --transactions FILE [--balances FILE]] [options]

Examples:
    python main.py --token $CASHBOOK_API_TOKEN --start 2024-01-01 --end 2024-01-31
    python main.py --transactions transactions.csv --balances balances.csv --output cashbook.xlsx
    python main.py --token $CASHBOOK_API_TOKEN --balance
"""
import argparse
import logging
import os
import sys
from typing import Any, Dict, List, Optional, Tuple

from api.client import CashBookAPIClient
from api.session import Session
from config import APP_NAME, TOTALS_LABEL, get_api_token, get_config
from normalizer.amount_parser import format_currency
from parsers.base_parser import BalanceCheckpoint, Transaction, ValidationIssue
from parsers.file_parser import CheckpointFileParser, FileReadError, TransactionFileParser
from output.excel_generator import generate_cashbook_excel
from reconciler.cashbook import CashBookResult, LedgerReconciler, LedgerRow, RowKind
from reconciler.date_filter import DateRangeFilter
from services.cashbook_service import CashBookService


def parse_arguments(argv: Optional[List[str]] = None) -> argparse.Namespace:
    """Parse command line arguments."""
    parser = argparse.ArgumentParser(
        description="Rebuild and balance the tailoring shop cash book.",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  python main.py --token $CASHBOOK_API_TOKEN
  python main.py --transactions transactions.xlsx --balances balances.xlsx --output cashbook.xlsx
  python main.py --token $CASHBOOK_API_TOKEN --start 01-Jan-2024 --end 31-Jan-2024

Environment Variables:
  CASHBOOK_API_URL    - Base URL of the shop API (default: http://localhost:5000/api)
  CASHBOOK_API_TOKEN  - Bearer token used when --token is not given
        """
    )

    # Data source
    parser.add_argument(
        '--api-url',
        default=None,
        help='Base URL of the shop API (or set CASHBOOK_API_URL)'
    )
    parser.add_argument(
        '--token',
        default=None,
        help='API bearer token (or set CASHBOOK_API_TOKEN)'
    )
    parser.add_argument(
        '--transactions',
        default=None,
        help='Read transactions from a CSV or XLSX export instead of the API'
    )
    parser.add_argument(
        '--balances',
        default=None,
        help='Read balance records from a CSV or XLSX export (with --transactions)'
    )

    # View options
    parser.add_argument(
        '--start',
        default=None,
        help='Show rows dated on or after this date'
    )
    parser.add_argument(
        '--end',
        default=None,
        help='Show rows dated on or before this date'
    )
    parser.add_argument(
        '--output', '-o',
        default=None,
        help='Write the cash book to this Excel file'
    )

    # Actions
    parser.add_argument(
        '--balance',
        action='store_true',
        help='Balance the cash book up to today (API mode only)'
    )
    parser.add_argument(
        '--verbose', '-v',
        action='store_true',
        help='Enable verbose output'
    )

    return parser.parse_args(argv)


def load_from_files(
    transactions_path: str,
    balances_path: Optional[str],
) -> Tuple[List[Transaction], List[BalanceCheckpoint]]:
    """
    Load records from offline exports.

    Raises:
        FileReadError: if a file cannot be read
    """
    parser = TransactionFileParser(transactions_path)
    transactions = parser.parse()
    print_parse_summary(parser.get_summary())

    checkpoints: List[BalanceCheckpoint] = []
    if balances_path:
        checkpoints = CheckpointFileParser(balances_path).parse()

    return transactions, checkpoints


def print_parse_summary(summary: Dict[str, Any]) -> None:
    symbol = get_config().get('currency_symbol')

    print("\n--- Parsing Summary ---")
    if summary.get('encoding'):
        print(f"Encoding: {summary['encoding']}")
    print(f"Total transactions: {summary['total_transactions']}")
    print(f"Total income: {format_currency(summary['total_income'], symbol=symbol)}")
    print(f"Total expense: {format_currency(summary['total_expense'], symbol=symbol)}")
    print(f"Net flow: {format_currency(summary['net_flow'], symbol=symbol)}")
    if summary['date_range'][0]:
        print(f"Date range: {summary['date_range'][0]} to {summary['date_range'][1]}")


def print_ledger(rows: List[LedgerRow]) -> None:
    """Print ledger rows as a fixed-width table."""
    date_format = get_config().display_date_format

    def amount(value: Optional[float]) -> str:
        return format_currency(value, include_symbol=False) if value is not None else ""

    header = (
        f"{'Date':<12} {'Particulars (Dr)':<28} {'Cash':>12} {'Bank':>12} | "
        f"{'Particulars (Cr)':<28} {'Cash':>12} {'Bank':>12}"
    )
    print(header)
    print("-" * len(header))

    for row in rows:
        particulars_debit = TOTALS_LABEL if row.kind == RowKind.PERIOD_TOTALS else row.particulars_debit
        marker = "" if row.is_reconciled else " *"
        print(
            f"{row.display_date(date_format):<12} {particulars_debit[:28]:<28} "
            f"{amount(row.debit_cash):>12} {amount(row.debit_bank):>12} | "
            f"{row.particulars_credit[:28]:<28} "
            f"{amount(row.credit_cash):>12} {amount(row.credit_bank):>12}{marker}"
        )

        if row.kind == RowKind.CLOSING_BALANCE:
            print()


def print_summary(result: CashBookResult) -> None:
    summary = result.summary()
    symbol = get_config().get('currency_symbol')

    print("\n--- Cash Book Summary ---")
    last_balanced = summary['last_balanced_date']
    print(f"Last balanced: {last_balanced.isoformat() if last_balanced else 'never'}")
    print(f"Reconciled segments: {summary['reconciled_segments']}")
    print(f"Unreconciled transactions: {summary['unreconciled_transactions']}")
    print(f"Closing cash: {format_currency(result.final_cash, symbol=symbol)}")
    print(f"Closing bank: {format_currency(result.final_bank, symbol=symbol)}")
    print(f"Status: {summary['reconciliation_status']}")


def print_issues(issues: List[ValidationIssue]) -> None:
    if not issues:
        return
    print(f"\nValidation warnings ({len(issues)}):")
    for issue in issues[:10]:
        print(f"  - {issue.record_id}: {issue.message}")
    if len(issues) > 10:
        print(f"  ... and {len(issues) - 10} more")


def main(argv: Optional[List[str]] = None) -> int:
    """Main entry point."""
    args = parse_arguments(argv)

    if args.verbose:
        logging.basicConfig(level=logging.DEBUG, format='%(name)s - %(levelname)s - %(message)s')

    if args.balances and not args.transactions:
        print("Error: --balances requires --transactions")
        return 1
    if args.balance and args.transactions:
        print("Error: --balance needs the API; it cannot be used with --transactions")
        return 1

    try:
        date_filter = DateRangeFilter(args.start, args.end)
    except ValueError as e:
        print(f"Error: {e}")
        return 1

    print(f"\n{'='*60}")
    print(APP_NAME)
    print(f"{'='*60}")
    if args.transactions:
        print(f"Transactions file: {args.transactions}")
        print(f"Balances file: {args.balances or '(none)'}")
    else:
        print(f"API: {args.api_url or get_config().api_base_url}")
    if date_filter.is_active:
        print(f"Date range: {args.start or '...'} to {args.end or '...'}")
    print(f"{'='*60}\n")

    service: Optional[CashBookService] = None
    session: Optional[Session] = None

    if args.transactions:
        for path in filter(None, (args.transactions, args.balances)):
            if not os.path.exists(path):
                print(f"Error: Input file not found: {path}")
                return 1
        try:
            transactions, checkpoints = load_from_files(args.transactions, args.balances)
        except FileReadError as e:
            print(f"Error: {e}")
            return 1
        result = LedgerReconciler().reconcile(transactions, checkpoints)
    else:
        session = Session(token=args.token or get_api_token())
        if not session.is_authenticated:
            print("Error: No API token. Use --token or set CASHBOOK_API_TOKEN.")
            return 1

        service = CashBookService(CashBookAPIClient(base_url=args.api_url))
        outcome = service.refresh(session)
        if outcome.snapshot is None:
            print(f"Error: {outcome.notification.message}")
            return 1
        transactions = list(outcome.snapshot.transactions)
        result = outcome.snapshot.result

    print_issues(list(result.issues))

    rows = date_filter.apply(result.rows)
    print(f"\nShowing {len(rows)} of {len(result.rows)} rows (* = not yet balanced)\n")
    print_ledger(rows)
    print_summary(result)

    if args.balance:
        balance_outcome = service.balance_cashbook(
            session, expected_checkpoint_id=outcome.snapshot.latest_checkpoint_id
        )
        print(f"\n{balance_outcome.notification.message}")
        if balance_outcome.notification.is_error:
            return 1
        reload = balance_outcome.reload
        if reload is not None and reload.snapshot is not None:
            result = reload.snapshot.result
            transactions = list(reload.snapshot.transactions)
            rows = date_filter.apply(result.rows)
            print_summary(result)

    if args.output:
        generate_cashbook_excel(
            result,
            args.output,
            rows=rows,
            transactions=transactions,
            currency=get_config().get('currency'),
        )

    print(f"\n{'='*60}")
    print("Processing complete!")
    if args.output:
        print(f"Output saved to: {args.output}")
    print(f"{'='*60}\n")

    return 0


if __name__ == "__main__":
    sys.exit(main())
