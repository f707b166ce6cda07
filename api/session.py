"""
The acting user, passed explicitly to every data-access call.
"""
from dataclasses import dataclass
from typing import Dict, Optional


@dataclass(frozen=True)
class Session:
    """An authenticated user of the shop API."""
    token: str
    user_id: Optional[str] = None
    name: str = ""
    role: str = ""

    @property
    def is_authenticated(self) -> bool:
        return bool(self.token)

    def auth_headers(self) -> Dict[str, str]:
        if not self.token:
            return {}
        return {"Authorization": f"Bearer {self.token}"}

    @classmethod
    def from_authorization_header(cls, header: Optional[str]) -> "Session":
        """Build a session from an incoming ``Authorization: Bearer`` header."""
        if not header:
            return cls(token="")
        scheme, _, token = header.partition(" ")
        if scheme.lower() != "bearer":
            return cls(token="")
        return cls(token=token.strip())
