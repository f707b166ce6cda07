"""
Monthly income and expense summary for the financials overview.
"""
from collections import defaultdict
from dataclasses import dataclass
from typing import Dict, Iterable, List

from normalizer.amount_parser import round_money
from parsers.base_parser import Transaction


@dataclass
class MonthlySummary:
    """Totals for one calendar month, keyed ``YYYY-MM``."""
    month: str
    income_cash: float = 0.0
    income_bank: float = 0.0
    expense_cash: float = 0.0
    expense_bank: float = 0.0
    income: float = 0.0
    expense: float = 0.0
    count: int = 0

    @property
    def net(self) -> float:
        return round_money(self.income - self.expense)

    def to_dict(self) -> Dict[str, object]:
        return {
            'month': self.month,
            'income': round_money(self.income),
            'expense': round_money(self.expense),
            'net': self.net,
            'incomeCash': round_money(self.income_cash),
            'incomeBank': round_money(self.income_bank),
            'expenseCash': round_money(self.expense_cash),
            'expenseBank': round_money(self.expense_bank),
            'count': self.count,
        }


def monthly_summary(transactions: Iterable[Transaction]) -> List[MonthlySummary]:
    """
    Aggregate transactions by the month of their business date.

    Unlike the cash book, totals here include every payment method: a
    transaction with an unknown method still counts toward income/expense.

    Returns:
        One MonthlySummary per month that has transactions, oldest first
    """
    months: Dict[str, MonthlySummary] = defaultdict(lambda: MonthlySummary(month=""))

    for txn in transactions:
        key = txn.display_date.strftime("%Y-%m")
        entry = months[key]
        entry.month = key
        entry.count += 1
        if txn.is_income:
            entry.income += txn.amount
            entry.income_cash += txn.cash_amount
            entry.income_bank += txn.bank_amount
        else:
            entry.expense += txn.amount
            entry.expense_cash += txn.cash_amount
            entry.expense_bank += txn.bank_amount

    return [months[key] for key in sorted(months)]
