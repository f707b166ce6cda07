"""
HTTP client for the shop's REST API.

Only the calls the cash book needs are implemented: listing transactions
and balance records, reading the latest balance record, and creating one.
"""
import logging
from datetime import date
from typing import Any, Dict, List, Optional

import httpx

from api.errors import APIError, AuthenticationError
from api.session import Session
from config import get_config
from parsers.base_parser import BalanceCheckpoint, Transaction
from parsers.record_parser import parse_checkpoint, parse_checkpoints, parse_transactions

logger = logging.getLogger(__name__)


def _build_httpx_client(base_url: str, timeout: float) -> httpx.Client:
    return httpx.Client(
        base_url=base_url,
        timeout=timeout,
        headers={"Content-Type": "application/json"},
    )


class CashBookAPIClient:
    """
    Thin wrapper over ``httpx.Client``.

    GET requests are retried on transport errors; POST requests never are,
    since a balance record must be created at most once.
    """

    def __init__(
        self,
        base_url: Optional[str] = None,
        timeout: Optional[float] = None,
        retry_count: Optional[int] = None,
        client: Optional[httpx.Client] = None,
    ):
        config = get_config()
        self.base_url = (base_url or config.api_base_url).rstrip("/")
        self.timeout = timeout if timeout is not None else float(config.get("api_timeout", 20))
        self.retry_count = (
            retry_count if retry_count is not None else int(config.get("api_retry_count", 1))
        )
        self._client = client or _build_httpx_client(self.base_url, self.timeout)

    def close(self) -> None:
        self._client.close()

    def __enter__(self) -> "CashBookAPIClient":
        return self

    def __exit__(self, *exc_info: Any) -> None:
        self.close()

    def _request(
        self,
        method: str,
        path: str,
        session: Session,
        payload: Optional[Dict[str, Any]] = None,
    ) -> Any:
        attempts = 1 + (self.retry_count if method == "GET" else 0)

        for attempt in range(attempts):
            try:
                response = self._client.request(
                    method, path, json=payload, headers=session.auth_headers()
                )
            except httpx.TransportError as exc:
                if attempt + 1 < attempts:
                    logger.info("%s %s failed (%s); retrying", method, path, exc)
                    continue
                raise APIError(f"Could not reach the server: {exc}") from exc

            if response.status_code == 401:
                raise AuthenticationError(
                    _error_message(response, "Not authorized, please log in again"),
                    status_code=401,
                )
            if response.is_error:
                raise APIError(
                    _error_message(response, f"Request failed ({response.status_code})"),
                    status_code=response.status_code,
                )

            try:
                return response.json()
            except ValueError as exc:
                raise APIError(
                    f"Invalid JSON from {method} {path}", status_code=response.status_code
                ) from exc

    def list_transactions(self, session: Session) -> List[Transaction]:
        """``GET /transactions``, unsorted."""
        payload = self._request("GET", "/transactions", session)
        if not isinstance(payload, list):
            raise APIError("Expected a list of transactions")
        return parse_transactions(payload)

    def list_checkpoints(self, session: Session) -> List[BalanceCheckpoint]:
        """``GET /balances``, unsorted."""
        payload = self._request("GET", "/balances", session)
        if not isinstance(payload, list):
            raise APIError("Expected a list of balance records")
        return parse_checkpoints(payload)

    def latest_checkpoint(self, session: Session) -> Optional[BalanceCheckpoint]:
        """
        ``GET /balances/latest``.

        The server answers ``{lastBalancedDate: null, cashBalance: 0,
        bankBalance: 0}`` when the book has never been balanced; that maps
        to None.
        """
        payload = self._request("GET", "/balances/latest", session)
        if not isinstance(payload, dict):
            raise APIError("Expected a balance record")
        if not payload.get("_id") and payload.get("lastBalancedDate") is None:
            return None
        return parse_checkpoint(payload)

    def create_checkpoint(
        self,
        session: Session,
        conceptual_date: date,
        cash_balance: float,
        bank_balance: float,
    ) -> BalanceCheckpoint:
        """``POST /balances/setLastBalancedDate``."""
        payload = self._request(
            "POST",
            "/balances/setLastBalancedDate",
            session,
            payload={
                "date": conceptual_date.isoformat(),
                "cashBalance": cash_balance,
                "bankBalance": bank_balance,
            },
        )
        if not isinstance(payload, dict):
            raise APIError("Expected the created balance record")
        checkpoint = parse_checkpoint(payload)
        logger.info(
            "Created balance record %s for %s (cash=%.2f, bank=%.2f)",
            checkpoint.id, conceptual_date.isoformat(), cash_balance, bank_balance,
        )
        return checkpoint


def _error_message(response: httpx.Response, default: str) -> str:
    """The server reports failures as ``{"message": ...}``."""
    try:
        body = response.json()
    except ValueError:
        return default
    if isinstance(body, dict) and body.get("message"):
        return str(body["message"])
    return default
