"""
Excel output generator for the cash book.

Creates a formatted Excel workbook with three sheets:
1. Cash Book (two-column ledger, debit on the left, credit on the right)
2. Segments (figures per balancing period)
3. Monthly Summary
"""
from typing import Iterable, List, Optional

from openpyxl import Workbook
from openpyxl.styles import Alignment, Border, Font, PatternFill, Side
from openpyxl.worksheet.worksheet import Worksheet

from config import DEFAULT_CURRENCY, TOTALS_LABEL
from parsers.base_parser import Transaction
from reconciler.cashbook import CashBookResult, LedgerRow, RowKind
from reconciler.summary import monthly_summary


# Style definitions
HEADER_FONT = Font(bold=True, color="FFFFFF")
HEADER_FILL = PatternFill(start_color="4472C4", end_color="4472C4", fill_type="solid")
BALANCE_FILL = PatternFill(start_color="DDEBF7", end_color="DDEBF7", fill_type="solid")
TOTALS_FILL = PatternFill(start_color="FFF2CC", end_color="FFF2CC", fill_type="solid")
RECONCILED_FILL = PatternFill(start_color="E2EFDA", end_color="E2EFDA", fill_type="solid")
ALT_ROW_FILL = PatternFill(start_color="F2F2F2", end_color="F2F2F2", fill_type="solid")
THIN_BORDER = Border(
    left=Side(style='thin'),
    right=Side(style='thin'),
    top=Side(style='thin'),
    bottom=Side(style='thin')
)
CURRENCY_FORMAT = '#,##0.00'
DATE_FORMAT = 'DD-MMM-YYYY'

LEDGER_COLUMNS = 9


def generate_cashbook_excel(
    result: CashBookResult,
    output_path: str,
    rows: Optional[Iterable[LedgerRow]] = None,
    transactions: Optional[Iterable[Transaction]] = None,
    currency: str = DEFAULT_CURRENCY,
) -> str:
    """
    Generate an Excel workbook for a reconciled cash book.

    Args:
        result: Reconciliation result
        output_path: Path to save the Excel file
        rows: Rows to write on the Cash Book sheet (defaults to all rows of
              ``result``; pass a filtered list to export a date range)
        transactions: Transactions for the Monthly Summary sheet (the sheet
                      is skipped when omitted)
        currency: Currency code shown in the amount headers

    Returns:
        Path to the generated file
    """
    print(f"\nGenerating Excel output: {output_path}")

    wb = Workbook()

    # Remove default sheet
    if 'Sheet' in wb.sheetnames:
        del wb['Sheet']

    _create_cashbook_sheet(wb, list(result.rows if rows is None else rows), currency)
    _create_segments_sheet(wb, result)
    if transactions is not None:
        _create_monthly_summary_sheet(wb, list(transactions))

    wb.save(output_path)
    print(f"Excel file saved: {output_path}")

    return output_path


def _create_cashbook_sheet(wb: Workbook, rows: List[LedgerRow], currency: str) -> None:
    """Create the Cash Book sheet with a two-row grouped header."""
    ws = wb.create_sheet("Cash Book")

    ws.cell(row=1, column=1, value="Date")
    ws.cell(row=1, column=2, value="Debit (Receipts)")
    ws.cell(row=1, column=6, value="Credit (Payments)")
    ws.merge_cells(start_row=1, start_column=1, end_row=2, end_column=1)
    ws.merge_cells(start_row=1, start_column=2, end_row=1, end_column=5)
    ws.merge_cells(start_row=1, start_column=6, end_row=1, end_column=9)

    sub_headers = ["Particulars", "Voucher No.", f"Cash ({currency})", f"Bank ({currency})"]
    for offset, header in enumerate(sub_headers):
        ws.cell(row=2, column=2 + offset, value=header)
        ws.cell(row=2, column=6 + offset, value=header)

    for header_row in (1, 2):
        for col in range(1, LEDGER_COLUMNS + 1):
            cell = ws.cell(row=header_row, column=col)
            cell.font = HEADER_FONT
            cell.fill = HEADER_FILL
            cell.alignment = Alignment(horizontal='center', vertical='center')
            cell.border = THIN_BORDER

    for row_idx, row in enumerate(rows, 3):
        _write_ledger_row(ws, row_idx, row)

    column_widths = [14, 40, 14, 16, 16, 40, 14, 16, 16]
    for col, width in enumerate(column_widths, 1):
        ws.column_dimensions[_get_column_letter(col)].width = width

    ws.freeze_panes = "A3"


def _write_ledger_row(ws: Worksheet, row_idx: int, row: LedgerRow) -> None:
    cell = ws.cell(row=row_idx, column=1, value=row.date)
    cell.number_format = DATE_FORMAT

    particulars_debit = row.particulars_debit
    if row.kind == RowKind.PERIOD_TOTALS:
        particulars_debit = TOTALS_LABEL

    values = [
        particulars_debit, row.voucher_debit, row.debit_cash, row.debit_bank,
        row.particulars_credit, row.voucher_credit, row.credit_cash, row.credit_bank,
    ]
    for col, value in enumerate(values, 2):
        cell = ws.cell(row=row_idx, column=col, value=value)
        if isinstance(value, float):
            cell.number_format = CURRENCY_FORMAT

    if row.kind == RowKind.POSTING:
        fill = RECONCILED_FILL if row.is_reconciled else None
        bold = False
    elif row.kind == RowKind.PERIOD_TOTALS:
        fill, bold = TOTALS_FILL, True
    else:
        fill, bold = BALANCE_FILL, True

    for col in range(1, LEDGER_COLUMNS + 1):
        cell = ws.cell(row=row_idx, column=col)
        cell.border = THIN_BORDER
        if fill is not None:
            cell.fill = fill
        if bold:
            cell.font = Font(bold=True)


def _create_segments_sheet(wb: Workbook, result: CashBookResult) -> None:
    """Create the Segments sheet: one line per balancing period."""
    ws = wb.create_sheet("Segments")

    headers = [
        "Segment", "Status", "Opening Date", "Closing Date", "Transactions",
        "Opening Cash", "Opening Bank", "Income Cash", "Income Bank",
        "Expense Cash", "Expense Bank", "Closing Cash", "Closing Bank",
        "Replayed Cash", "Replayed Bank",
    ]
    for col, header in enumerate(headers, 1):
        cell = ws.cell(row=1, column=col, value=header)
        cell.font = HEADER_FONT
        cell.fill = HEADER_FILL

    mismatched = {s.index for s in result.mismatched_segments}

    for row_idx, segment in enumerate(result.segments, 2):
        if not segment.is_reconciled:
            status = "Unreconciled"
        elif segment.index in mismatched:
            status = "Mismatch"
        else:
            status = "Balanced"

        ws.cell(row=row_idx, column=1, value=segment.index + 1)
        ws.cell(row=row_idx, column=2, value=status)
        ws.cell(row=row_idx, column=3, value=segment.opening_date).number_format = DATE_FORMAT
        ws.cell(row=row_idx, column=4, value=segment.closing_date).number_format = DATE_FORMAT
        ws.cell(row=row_idx, column=5, value=segment.transaction_count)

        amounts = [
            segment.opening_cash, segment.opening_bank,
            segment.income_cash, segment.income_bank,
            segment.expense_cash, segment.expense_bank,
            segment.closing_cash, segment.closing_bank,
            segment.replayed_closing_cash, segment.replayed_closing_bank,
        ]
        for col, amount in enumerate(amounts, 6):
            ws.cell(row=row_idx, column=col, value=amount).number_format = CURRENCY_FORMAT

        if row_idx % 2 == 0:
            for col in range(1, len(headers) + 1):
                ws.cell(row=row_idx, column=col).fill = ALT_ROW_FILL

    # Final balances
    row_idx = len(result.segments) + 3
    ws.cell(row=row_idx, column=1, value="FINAL BALANCE").font = Font(bold=True)
    cell = ws.cell(row=row_idx, column=12, value=result.final_cash)
    cell.number_format = CURRENCY_FORMAT
    cell.font = Font(bold=True)
    cell = ws.cell(row=row_idx, column=13, value=result.final_bank)
    cell.number_format = CURRENCY_FORMAT
    cell.font = Font(bold=True)

    for col in range(1, len(headers) + 1):
        ws.column_dimensions[_get_column_letter(col)].width = 14 if col > 2 else 12

    ws.freeze_panes = "A2"


def _create_monthly_summary_sheet(wb: Workbook, transactions: List[Transaction]) -> None:
    """Create the Monthly Summary sheet."""
    ws = wb.create_sheet("Monthly Summary")

    headers = [
        "Month", "Income Cash", "Income Bank", "Expense Cash", "Expense Bank",
        "Total Income", "Total Expense", "Net", "Count",
    ]
    for col, header in enumerate(headers, 1):
        cell = ws.cell(row=1, column=col, value=header)
        cell.font = HEADER_FONT
        cell.fill = HEADER_FILL

    months = monthly_summary(transactions)
    total_income = 0.0
    total_expense = 0.0

    for row_idx, entry in enumerate(months, 2):
        total_income += entry.income
        total_expense += entry.expense

        ws.cell(row=row_idx, column=1, value=entry.month)
        amounts = [
            entry.income_cash, entry.income_bank, entry.expense_cash, entry.expense_bank,
            entry.income, entry.expense, entry.net,
        ]
        for col, amount in enumerate(amounts, 2):
            ws.cell(row=row_idx, column=col, value=amount).number_format = CURRENCY_FORMAT
        ws.cell(row=row_idx, column=9, value=entry.count)

        if row_idx % 2 == 0:
            for col in range(1, len(headers) + 1):
                ws.cell(row=row_idx, column=col).fill = ALT_ROW_FILL

    # Total row
    row_idx = len(months) + 2
    ws.cell(row=row_idx, column=1, value="TOTAL").font = Font(bold=True)
    for col, amount in ((6, total_income), (7, total_expense), (8, total_income - total_expense)):
        cell = ws.cell(row=row_idx, column=col, value=amount)
        cell.number_format = CURRENCY_FORMAT
        cell.font = Font(bold=True)

    for col, width in enumerate([12, 15, 15, 15, 15, 16, 16, 16, 8], 1):
        ws.column_dimensions[_get_column_letter(col)].width = width

    ws.freeze_panes = "A2"


def _get_column_letter(col_num: int) -> str:
    """Convert column number to letter (1 = A, 27 = AA, etc.)."""
    result = ""
    while col_num > 0:
        col_num, remainder = divmod(col_num - 1, 26)
        result = chr(65 + remainder) + result
    return result
