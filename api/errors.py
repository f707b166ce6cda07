"""
Errors raised by the REST data-access layer.
"""
from typing import Optional


class APIError(Exception):
    """A request to the shop API failed."""

    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.message = message
        self.status_code = status_code


class AuthenticationError(APIError):
    """The API rejected the session token (HTTP 401)."""


class StaleCheckpointError(APIError):
    """
    A balance record was created by someone else after the figures for a
    new one were computed.
    """

    def __init__(self, expected_id: Optional[str], actual_id: Optional[str]):
        super().__init__(
            "The cashbook was balanced by another session; reload and try again.",
            status_code=409,
        )
        self.expected_id = expected_id
        self.actual_id = actual_id
