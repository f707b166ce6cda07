"""REST data access for transactions and balance records."""
from api.client import CashBookAPIClient
from api.errors import APIError, AuthenticationError, StaleCheckpointError
from api.session import Session

__all__ = [
    "CashBookAPIClient", "APIError", "AuthenticationError", "StaleCheckpointError", "Session",
]
