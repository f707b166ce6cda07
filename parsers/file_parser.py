"""
Offline import of transactions and balance records from CSV or XLSX exports.

Column headers are matched against keyword lists, so both raw API dumps
(``createdAt``, ``paymentMethod`` ...) and hand-made spreadsheets
("Created At", "Payment Method" ...) load without a mapping file.
"""
from pathlib import Path
from typing import Any, Dict, List, Optional

import pandas as pd

from config import (
    AMOUNT_COLUMN_KEYWORDS,
    BANK_BALANCE_COLUMN_KEYWORDS,
    CASH_BALANCE_COLUMN_KEYWORDS,
    CLIENT_COLUMN_KEYWORDS,
    CREATED_AT_COLUMN_KEYWORDS,
    DATE_COLUMN_KEYWORDS,
    DESCRIPTION_COLUMN_KEYWORDS,
    ID_COLUMN_KEYWORDS,
    LAST_BALANCED_COLUMN_KEYWORDS,
    PAYMENT_METHOD_COLUMN_KEYWORDS,
    TYPE_COLUMN_KEYWORDS,
    VOUCHER_COLUMN_KEYWORDS,
    get_config,
)
from normalizer.amount_parser import has_valid_amount
from parsers.base_parser import BalanceCheckpoint, BaseParser, Transaction
from parsers.record_parser import parse_checkpoint, parse_transaction

TRANSACTION_FIELDS: Dict[str, List[str]] = {
    '_id': ID_COLUMN_KEYWORDS,
    'createdAt': CREATED_AT_COLUMN_KEYWORDS,
    'date': DATE_COLUMN_KEYWORDS,
    'type': TYPE_COLUMN_KEYWORDS,
    'description': DESCRIPTION_COLUMN_KEYWORDS,
    'amount': AMOUNT_COLUMN_KEYWORDS,
    'paymentMethod': PAYMENT_METHOD_COLUMN_KEYWORDS,
    'voucherNo': VOUCHER_COLUMN_KEYWORDS,
    'client': CLIENT_COLUMN_KEYWORDS,
}

CHECKPOINT_FIELDS: Dict[str, List[str]] = {
    '_id': ID_COLUMN_KEYWORDS,
    'createdAt': CREATED_AT_COLUMN_KEYWORDS,
    'lastBalancedDate': LAST_BALANCED_COLUMN_KEYWORDS,
    'cashBalance': CASH_BALANCE_COLUMN_KEYWORDS,
    'bankBalance': BANK_BALANCE_COLUMN_KEYWORDS,
}


class FileReadError(Exception):
    """Raised when an import file cannot be read at all."""


class RecordFileParser(BaseParser):
    """
    Reads a CSV or XLSX file into a DataFrame and maps its columns onto
    API field names.
    """

    fields: Dict[str, List[str]] = {}

    def __init__(self, filepath: str, sheet_name: Optional[str] = None):
        """
        Initialize the file parser.

        Args:
            filepath: Path to the CSV/XLSX file
            sheet_name: Sheet to read for XLSX files (defaults to the first)
        """
        super().__init__(filepath)
        self.sheet_name = sheet_name
        self._encoding: Optional[str] = None
        self._column_mapping: Dict[str, str] = {}

    @property
    def column_mapping(self) -> Dict[str, str]:
        return self._column_mapping

    def get_summary(self) -> Dict[str, Any]:
        summary = super().get_summary()
        summary['encoding'] = self._encoding
        return summary

    def _read_frame(self) -> pd.DataFrame:
        suffix = Path(self.source).suffix.lower()
        if suffix in ('.xlsx', '.xls'):
            try:
                return pd.read_excel(self.source, sheet_name=self.sheet_name or 0, dtype=str)
            except (OSError, ValueError) as e:
                raise FileReadError(f"Could not read {self.source}: {e}") from e
        return self._read_csv()

    def _read_csv(self) -> pd.DataFrame:
        """Read the CSV with encoding fallback."""
        for encoding in get_config().get("supported_encodings"):
            try:
                df = pd.read_csv(self.source, encoding=encoding, dtype=str)
                self._encoding = encoding
                return df
            except UnicodeDecodeError:
                continue
            except pd.errors.EmptyDataError:
                return pd.DataFrame()
            except OSError as e:
                raise FileReadError(f"Could not read {self.source}: {e}") from e

        raise FileReadError(f"Could not decode {self.source} with any supported encoding")

    def _identify_columns(self, df: pd.DataFrame) -> Dict[str, str]:
        """
        Map API field names to DataFrame columns.

        Exact (case-insensitive) header matches win over substring matches.
        Each column is used for at most one field.
        """
        mapping: Dict[str, str] = {}
        used = set()
        headers = {col: str(col).strip().lower() for col in df.columns}

        for exact in (True, False):
            for field_name, keywords in self.fields.items():
                if field_name in mapping:
                    continue
                for keyword in keywords:
                    # Short keywords ("id", "sum") only match whole headers
                    if not exact and len(keyword) <= 3:
                        continue
                    match = next(
                        (
                            col for col, header in headers.items()
                            if col not in used and (
                                header == keyword if exact else keyword in header
                            )
                        ),
                        None,
                    )
                    if match is not None:
                        mapping[field_name] = match
                        used.add(match)
                        break

        return mapping

    def _rows(self) -> List[Dict[str, str]]:
        df = self._read_frame()
        if df.empty:
            print(f"Warning: {self.source} contains no rows")
            return []

        df = df.dropna(how='all')
        self._column_mapping = self._identify_columns(df)
        print(f"Column mapping for {Path(self.source).name}: {self._column_mapping}")

        rows = []
        for _, row in df.iterrows():
            record = {}
            for field_name, column in self._column_mapping.items():
                value = row[column]
                record[field_name] = None if pd.isna(value) else str(value).strip()
            rows.append(record)
        return rows


class TransactionFileParser(RecordFileParser):
    """Parser for transaction exports."""

    fields = TRANSACTION_FIELDS

    def parse(self) -> List[Transaction]:
        print(f"Parsing transactions file: {self.source}")
        rows = self._rows()

        # Footer lines such as "Total" carry no amount
        records = [record for record in rows if has_valid_amount(record.get('amount'))]
        if len(records) < len(rows):
            print(f"Skipped {len(rows) - len(records)} rows without an amount")

        self._transactions = [
            parse_transaction(record, i) for i, record in enumerate(records)
        ]
        print(f"Extracted {len(self._transactions)} transactions")
        return self._transactions


class CheckpointFileParser(RecordFileParser):
    """Parser for balance-record exports."""

    fields = CHECKPOINT_FIELDS

    def parse(self) -> List[BalanceCheckpoint]:
        print(f"Parsing balance records file: {self.source}")
        self._checkpoints = [
            parse_checkpoint(record, i) for i, record in enumerate(self._rows())
        ]
        print(f"Extracted {len(self._checkpoints)} balance records")
        return self._checkpoints
