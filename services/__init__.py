"""Cash book orchestration over the REST client and the reconciler."""
from services.cashbook_service import (
    BalanceOutcome,
    CashBookService,
    CashBookSnapshot,
    LoadOutcome,
    Notification,
)

__all__ = [
    "BalanceOutcome", "CashBookService", "CashBookSnapshot", "LoadOutcome", "Notification",
]
