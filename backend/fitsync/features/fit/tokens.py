"""
Bearer credential storage.

Holds the current access token and its expiry. No I/O.
"""

from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Callable, Optional


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass(frozen=True)
class Credential:
    """Access token issued by the implicit grant."""
    access_token: Optional[str] = None
    expires_at: Optional[datetime] = None
    scope: Optional[str] = None

    def is_valid(self, now: datetime) -> bool:
        """Valid iff token and expiry are both present and not yet expired."""
        if not self.access_token or self.expires_at is None:
            return False
        return now < self.expires_at

    def __repr__(self):
        # never print the token itself
        return f"<Credential expires_at={self.expires_at} scope={self.scope}>"


class TokenStore:
    """
    In-memory credential holder.

    Usage:
        store = TokenStore()
        store.set(credential)
        if store.is_valid():
            token = store.get().access_token
    """

    def __init__(self, clock: Callable[[], datetime] = utcnow):
        self._clock = clock
        self._credential: Optional[Credential] = None

    def set(self, credential: Credential) -> None:
        self._credential = credential

    def get(self) -> Optional[Credential]:
        return self._credential

    def clear(self) -> None:
        self._credential = None

    def is_valid(self) -> bool:
        """Fails closed: no credential or no expiry means invalid."""
        if self._credential is None:
            return False
        return self._credential.is_valid(self._clock())

    @property
    def access_token(self) -> Optional[str]:
        """Token if the credential is still valid, None otherwise."""
        if not self.is_valid():
            return None
        return self._credential.access_token
