"""
core/revocation.py
------------------
In-memory registry of revoked refresh-token ids.

Logout revokes the presented refresh token's jti; the refresh flow refuses
revoked ids. Entries are dropped once the token would have expired anyway,
so the registry never outgrows the set of live refresh tokens.

Scope: per process. With several workers, revocation only holds on the
worker that handled the logout; a shared store (Redis) is the upgrade path.
Access tokens are not revoked and stay valid until natural expiry.
"""

import threading
from datetime import datetime, timezone
from typing import Callable, Dict


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class RevocationRegistry:

    def __init__(self, clock: Callable[[], datetime] = _utcnow) -> None:
        self._clock = clock
        self._entries: Dict[str, datetime] = {}
        self._lock = threading.Lock()

    def revoke(self, jti: str, expires_at: datetime) -> None:
        with self._lock:
            self._purge()
            if expires_at > self._clock():
                self._entries[jti] = expires_at

    def is_revoked(self, jti: str) -> bool:
        with self._lock:
            self._purge()
            return jti in self._entries

    def __len__(self) -> int:
        with self._lock:
            self._purge()
            return len(self._entries)

    def _purge(self) -> None:
        now = self._clock()
        expired = [jti for jti, expires_at in self._entries.items() if expires_at <= now]
        for jti in expired:
            del self._entries[jti]


revocation_registry = RevocationRegistry()
