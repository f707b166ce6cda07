"""
Date-range filtering of cash book rows.
"""
from datetime import date, datetime
from typing import Iterable, List, Optional, Union

from normalizer.date_parser import end_of_day, parse_date, start_of_day
from reconciler.cashbook import LedgerRow

DateBound = Union[str, date, datetime, None]


class DateRangeFilter:
    """
    Keeps rows whose date falls within an inclusive ``[start, end]`` range.

    The start bound is normalized to the start of its day and the end bound
    to the end of its day. With neither bound set the filter passes every
    row through; with any bound set, rows without a date are dropped.
    """

    def __init__(self, start: DateBound = None, end: DateBound = None):
        start_date = _parse_bound(start, "start")
        end_date = _parse_bound(end, "end")

        self.start: Optional[datetime] = start_of_day(start_date) if start_date else None
        self.end: Optional[datetime] = end_of_day(end_date) if end_date else None

    @property
    def is_active(self) -> bool:
        return self.start is not None or self.end is not None

    def matches(self, row: LedgerRow) -> bool:
        if not self.is_active:
            return True
        if row.date is None:
            return False

        row_moment = start_of_day(row.date)
        if self.start is not None and row_moment < self.start:
            return False
        if self.end is not None and row_moment > self.end:
            return False
        return True

    def apply(self, rows: Iterable[LedgerRow]) -> List[LedgerRow]:
        """Return the matching rows, preserving order."""
        if not self.is_active:
            return list(rows)
        return [row for row in rows if self.matches(row)]


def _parse_bound(value: DateBound, name: str) -> Optional[date]:
    if value is None or value == '':
        return None
    parsed = parse_date(value)
    if parsed is None:
        raise ValueError(f"Invalid {name} date: {value!r}")
    return parsed
