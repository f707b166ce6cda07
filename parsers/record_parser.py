"""
Parse REST API payloads into ledger records.

The API returns MongoDB-style documents with camelCase keys, ``_id``
identifiers and ISO-8601 timestamps. Parsing never rejects a record:
unusable timestamps fall back to the epoch and are flagged on the record.
"""
from typing import Any, Dict, Iterable, List, Optional, Tuple

from config import BANK, CASH
from normalizer.amount_parser import parse_amount
from normalizer.date_parser import EPOCH, parse_date, parse_timestamp
from parsers.base_parser import BalanceCheckpoint, Transaction


def _record_id(data: Dict[str, Any], fallback: str) -> str:
    for key in ('_id', 'id'):
        value = data.get(key)
        if value not in (None, ''):
            return str(value)
    return fallback


def _normalize_payment_method(value: Any) -> str:
    text = str(value or '').strip()
    for method in (CASH, BANK):
        if text.lower() == method.lower():
            return method
    return text


def _parse_client(value: Any) -> Tuple[Optional[str], str]:
    """A client is either a bare id or a populated ``{_id, name}`` object."""
    if value in (None, ''):
        return None, ''
    if isinstance(value, dict):
        client_id = value.get('_id') or value.get('id')
        return (str(client_id) if client_id else None), str(value.get('name') or '')
    return str(value), ''


def parse_transaction(data: Dict[str, Any], position: int = 0) -> Transaction:
    """
    Build a Transaction from an API document.

    Args:
        data: One element of ``GET /transactions``
        position: Index in the payload, used to name records without an id
    """
    created_at = parse_timestamp(data.get('createdAt', data.get('created_at')))
    client_id, client_name = _parse_client(data.get('client'))

    return Transaction(
        id=_record_id(data, f"txn-{position}"),
        type=str(data.get('type') or '').strip().lower(),
        amount=parse_amount(data.get('amount')),
        payment_method=_normalize_payment_method(
            data.get('paymentMethod', data.get('payment_method'))
        ),
        created_at=created_at or EPOCH,
        date=parse_date(data.get('date')),
        description=str(data.get('description') or ''),
        voucher_no=str(data.get('voucherNo') or data.get('voucher_no') or ''),
        client_id=client_id,
        client_name=client_name,
        currency=str(data.get('currency') or ''),
        created_at_missing=created_at is None,
    )


def parse_checkpoint(data: Dict[str, Any], position: int = 0) -> BalanceCheckpoint:
    """
    Build a BalanceCheckpoint from an API document.

    Args:
        data: One element of ``GET /balances``
        position: Index in the payload, used to name records without an id
    """
    created_at = parse_timestamp(data.get('createdAt', data.get('created_at')))
    recorded_by = data.get('recordedBy')
    if isinstance(recorded_by, dict):
        recorded_by = recorded_by.get('_id') or recorded_by.get('name')

    return BalanceCheckpoint(
        id=_record_id(data, f"balance-{position}"),
        cash_balance=parse_amount(data.get('cashBalance', data.get('cash_balance'))),
        bank_balance=parse_amount(data.get('bankBalance', data.get('bank_balance'))),
        created_at=created_at or EPOCH,
        last_balanced_date=parse_date(
            data.get('lastBalancedDate', data.get('last_balanced_date'))
        ),
        recorded_by=str(recorded_by) if recorded_by else None,
        created_at_missing=created_at is None,
    )


def parse_transactions(payload: Iterable[Dict[str, Any]]) -> List[Transaction]:
    """Parse a list payload, skipping entries that are not objects."""
    return [
        parse_transaction(item, i)
        for i, item in enumerate(payload or [])
        if isinstance(item, dict)
    ]


def parse_checkpoints(payload: Iterable[Dict[str, Any]]) -> List[BalanceCheckpoint]:
    """Parse a list payload, skipping entries that are not objects."""
    return [
        parse_checkpoint(item, i)
        for i, item in enumerate(payload or [])
        if isinstance(item, dict)
    ]
