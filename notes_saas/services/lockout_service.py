"""
services/lockout_service.py
---------------------------
Failed-login counting and time-boxed account lockout.

The transitions are plain functions of (current state, now) so they can be
tested without a clock or a store. LockoutService persists the result with
one store write per attempt. Concurrent attempts for the same user are
last-writer-wins: the counter may under-count by one, it never goes down
because of a failure.

Rules:
  - A user is locked while lock_until is set and still in the future.
  - A failure after an expired lock restarts the count at 1 and clears it.
  - Otherwise a failure adds one; reaching MAX_LOGIN_ATTEMPTS on an
    unlocked account locks it for LOCKOUT_MINUTES.
  - A success clears both and stamps last_login.
"""

from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Optional

from notes_saas.core.config import settings
from notes_saas.core.logging import get_logger
from notes_saas.db.base import utcnow
from notes_saas.db.store import CredentialStore
from notes_saas.models.user import User

logger = get_logger(__name__)


@dataclass(frozen=True)
class LockoutState:
    login_attempts: int
    lock_until: Optional[datetime]


def is_locked(lock_until: Optional[datetime], now: datetime) -> bool:
    return lock_until is not None and lock_until > now


def register_failure(
    state: LockoutState,
    now: datetime,
    *,
    max_attempts: int = settings.MAX_LOGIN_ATTEMPTS,
    lockout: timedelta = timedelta(minutes=settings.LOCKOUT_MINUTES),
) -> LockoutState:
    if state.lock_until is not None and state.lock_until <= now:
        return LockoutState(login_attempts=1, lock_until=None)

    attempts = state.login_attempts + 1
    lock_until = state.lock_until
    if attempts >= max_attempts and not is_locked(state.lock_until, now):
        lock_until = now + lockout
    return LockoutState(login_attempts=attempts, lock_until=lock_until)


def register_success() -> LockoutState:
    return LockoutState(login_attempts=0, lock_until=None)


class LockoutService:

    @staticmethod
    def is_user_locked(user: User, now: Optional[datetime] = None) -> bool:
        return is_locked(user.lock_until, now or utcnow())

    @staticmethod
    async def record_failure(
        store: CredentialStore, user: User, now: Optional[datetime] = None
    ) -> LockoutState:
        now = now or utcnow()
        previous_lock = user.lock_until
        state = register_failure(
            LockoutState(user.login_attempts or 0, user.lock_until), now
        )
        await store.update_user_security(
            user.id,
            login_attempts=state.login_attempts,
            lock_until=state.lock_until,
        )
        user.login_attempts = state.login_attempts
        user.lock_until = state.lock_until
        if state.lock_until is not None and state.lock_until != previous_lock:
            logger.warning(
                "Account locked",
                user_id=user.id,
                tenant_id=user.tenant_id,
                attempts=state.login_attempts,
                lock_until=state.lock_until.isoformat(),
            )
        return state

    @staticmethod
    async def record_success(
        store: CredentialStore, user: User, now: Optional[datetime] = None
    ) -> None:
        now = now or utcnow()
        state = register_success()
        await store.update_user_security(
            user.id,
            login_attempts=state.login_attempts,
            lock_until=state.lock_until,
            last_login=now,
        )
        user.login_attempts = state.login_attempts
        user.lock_until = state.lock_until
        user.last_login = now
