"""
core/security.py
----------------
Password hashing and opaque token utilities.

Design decisions:
  - bcrypt via passlib; work factor from settings (12 by default, roughly
    100ms per hash on commodity hardware). Tests lower it.
  - bcrypt is CPU-bound, so request handlers use the async wrappers, which
    run it in the worker thread pool. A slow hash never blocks the event loop
    for unrelated requests.
  - Password-reset / email-verification tokens are random hex strings; only
    their SHA-256 digest is persisted.
"""

import hashlib
import secrets

from fastapi.concurrency import run_in_threadpool
from passlib.context import CryptContext

from notes_saas.core.config import settings

pwd_context = CryptContext(
    schemes=["bcrypt"],
    deprecated="auto",
    bcrypt__rounds=settings.BCRYPT_ROUNDS,
)


# ── Password Utilities ────────────────────────────────────────────────────────

def hash_password(plain: str) -> str:
    """Return a salted bcrypt hash of the plain-text password."""
    return pwd_context.hash(plain)


def verify_password(plain: str | None, hashed: str | None) -> bool:
    """
    Constant-time comparison of plain password against stored hash.

    Never raises: empty input or an unrecognisable hash is simply a mismatch.
    """
    if not plain or not hashed:
        return False
    try:
        return pwd_context.verify(plain, hashed)
    except (ValueError, TypeError):
        return False


async def hash_password_async(plain: str) -> str:
    return await run_in_threadpool(hash_password, plain)


async def verify_password_async(plain: str | None, hashed: str | None) -> bool:
    return await run_in_threadpool(verify_password, plain, hashed)


# ── Opaque Tokens ─────────────────────────────────────────────────────────────

def generate_secure_token(length: int = 32) -> str:
    """Random hex token (2 * length characters)."""
    return secrets.token_hex(length)


def hash_token(token: str) -> str:
    """SHA-256 digest used to store single-use tokens at rest."""
    return hashlib.sha256(token.encode("utf-8")).hexdigest()
