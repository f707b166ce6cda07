"""
Cash book service: fetch, reconcile, publish.

Each refresh fetches both record streams, replays them and publishes an
immutable snapshot. Refreshes are numbered; a run that finishes after a
newer one has started is discarded, so the published snapshot always comes
from the most recently started run that completed.
"""
import logging
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass
from datetime import datetime, timezone
from threading import Lock
from typing import Any, Callable, Dict, List, Optional, Tuple

from api.client import CashBookAPIClient
from api.errors import APIError, StaleCheckpointError
from api.session import Session
from config import get_config
from parsers.base_parser import BalanceCheckpoint, Transaction
from reconciler.balancing import PendingBalance, compute_pending_balance
from reconciler.cashbook import CashBookResult, LedgerReconciler, LedgerRow
from reconciler.date_filter import DateBound, DateRangeFilter

logger = logging.getLogger(__name__)

FETCH_FAILED_MESSAGE = "Failed to fetch full cashbook data"
BALANCE_FAILED_MESSAGE = "Failed to balance cashbook"
NOTHING_TO_BALANCE_MESSAGE = "No new transactions to balance since the last record."
BALANCED_MESSAGE = "Cashbook balanced successfully for new transactions!"


@dataclass(frozen=True)
class Notification:
    """
    A user-visible message; ``level`` is "success", "info" or "error".

    ``status_code`` carries the HTTP status of the failure behind an error
    notification, when there was one.
    """
    message: str
    level: str
    status_code: Optional[int] = None

    @property
    def is_error(self) -> bool:
        return self.level == "error"

    def to_dict(self) -> Dict[str, str]:
        return {"message": self.message, "level": self.level}


@dataclass(frozen=True)
class CashBookSnapshot:
    """The inputs and output of one completed reconciliation run."""
    generation: int
    transactions: Tuple[Transaction, ...]
    checkpoints: Tuple[BalanceCheckpoint, ...]
    result: CashBookResult

    @property
    def latest_checkpoint_id(self) -> Optional[str]:
        ordered = LedgerReconciler.sort_by_created_at(self.checkpoints)
        return ordered[-1].id if ordered else None

    def rows(self, start: DateBound = None, end: DateBound = None) -> List[LedgerRow]:
        return DateRangeFilter(start, end).apply(self.result.rows)


@dataclass(frozen=True)
class LoadOutcome:
    snapshot: Optional[CashBookSnapshot] = None
    notification: Optional[Notification] = None
    superseded: bool = False


@dataclass(frozen=True)
class BalanceOutcome:
    notification: Notification
    pending: Optional[PendingBalance] = None
    checkpoint: Optional[BalanceCheckpoint] = None
    reload: Optional[LoadOutcome] = None


# Passed as expected_checkpoint_id to skip the check against a prior read
UNCHECKED = object()


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class CashBookService:
    """
    Orchestrates the data-access client and the reconciler.

    The service holds no session: every call takes the acting ``Session``.
    The only shared state is the last published snapshot.
    """

    def __init__(
        self,
        client: CashBookAPIClient,
        reconciler: Optional[LedgerReconciler] = None,
        fetch_concurrently: Optional[bool] = None,
        clock: Callable[[], datetime] = _utcnow,
    ):
        self.client = client
        self.reconciler = reconciler or LedgerReconciler()
        self.fetch_concurrently = (
            get_config().get("fetch_concurrently", True)
            if fetch_concurrently is None else fetch_concurrently
        )
        self._clock = clock
        self._lock = Lock()
        self._latest_generation = 0
        self._snapshot: Optional[CashBookSnapshot] = None

    @property
    def snapshot(self) -> Optional[CashBookSnapshot]:
        with self._lock:
            return self._snapshot

    def fetch_records(
        self, session: Session
    ) -> Tuple[List[Transaction], List[BalanceCheckpoint]]:
        """
        Retrieve both record streams. Neither is used until both are in.

        Raises:
            APIError: if either retrieval fails
        """
        if not self.fetch_concurrently:
            return (
                self.client.list_transactions(session),
                self.client.list_checkpoints(session),
            )

        with ThreadPoolExecutor(max_workers=2) as pool:
            txn_future = pool.submit(self.client.list_transactions, session)
            checkpoint_future = pool.submit(self.client.list_checkpoints, session)
            return txn_future.result(), checkpoint_future.result()

    def refresh(self, session: Session, now: Optional[datetime] = None) -> LoadOutcome:
        """
        Fetch and replay, then publish the result unless a newer refresh
        started in the meantime.
        """
        with self._lock:
            self._latest_generation += 1
            generation = self._latest_generation

        try:
            transactions, checkpoints = self.fetch_records(session)
        except APIError as e:
            logger.error("Error fetching cashbook data: %s", e)
            notification = Notification(
                e.message or FETCH_FAILED_MESSAGE, "error", status_code=e.status_code
            )
            with self._lock:
                if generation != self._latest_generation:
                    return LoadOutcome(notification=notification, superseded=True)
                self._snapshot = None
            return LoadOutcome(notification=notification)

        result = self.reconciler.reconcile(transactions, checkpoints, now=now or self._clock())
        snapshot = CashBookSnapshot(
            generation=generation,
            transactions=tuple(transactions),
            checkpoints=tuple(checkpoints),
            result=result,
        )

        with self._lock:
            if generation != self._latest_generation:
                logger.info(
                    "Discarding cashbook run %d; run %d started after it",
                    generation, self._latest_generation,
                )
                return LoadOutcome(snapshot=snapshot, superseded=True)
            self._snapshot = snapshot

        for issue in result.issues:
            logger.debug("%s: %s", issue.issue_type, issue.message)
        return LoadOutcome(snapshot=snapshot)

    def rows(self, start: DateBound = None, end: DateBound = None) -> List[LedgerRow]:
        """Rows of the published snapshot within ``[start, end]``."""
        snapshot = self.snapshot
        if snapshot is None:
            return []
        return snapshot.rows(start, end)

    def balance_cashbook(
        self,
        session: Session,
        expected_checkpoint_id: Any = UNCHECKED,
        now: Optional[datetime] = None,
    ) -> BalanceOutcome:
        """
        Create a balance record closing every transaction created since the
        last one, then reload.

        Args:
            session: The acting user
            expected_checkpoint_id: Id of the latest balance record in the
                      view the user acted on (None if there was none). The
                      write is rejected when the server's latest record
                      differs.
            now: Balancing instant (defaults to the clock)
        """
        now = now or self._clock()

        try:
            transactions, checkpoints = self.fetch_records(session)
            if expected_checkpoint_id is not UNCHECKED:
                self._ensure_unchanged(expected_checkpoint_id, checkpoints)

            pending = compute_pending_balance(
                transactions, checkpoints, now=now, reconciler=self.reconciler
            )
            if pending is None:
                return BalanceOutcome(
                    notification=Notification(NOTHING_TO_BALANCE_MESSAGE, "info")
                )

            # Re-read right before the write to narrow the race with other sessions
            self._ensure_unchanged(
                pending.based_on_checkpoint_id, self.client.list_checkpoints(session)
            )
            checkpoint = self.client.create_checkpoint(
                session,
                pending.balanced_date,
                pending.cash_balance,
                pending.bank_balance,
            )
        except StaleCheckpointError as e:
            logger.warning(
                "Balance rejected: expected latest record %s, found %s",
                e.expected_id, e.actual_id,
            )
            return BalanceOutcome(
                notification=Notification(e.message, "error", status_code=e.status_code)
            )
        except APIError as e:
            logger.error("Error balancing cashbook: %s", e)
            return BalanceOutcome(
                notification=Notification(
                    e.message or BALANCE_FAILED_MESSAGE, "error", status_code=e.status_code
                )
            )

        return BalanceOutcome(
            notification=Notification(BALANCED_MESSAGE, "success"),
            pending=pending,
            checkpoint=checkpoint,
            reload=self.refresh(session),
        )

    @staticmethod
    def _ensure_unchanged(
        expected_id: Optional[str], checkpoints: List[BalanceCheckpoint]
    ) -> None:
        ordered = LedgerReconciler.sort_by_created_at(checkpoints)
        actual_id = ordered[-1].id if ordered else None
        if actual_id != expected_id:
            raise StaleCheckpointError(expected_id, actual_id)

