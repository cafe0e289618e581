"""
db/session.py
-------------
Async SQLAlchemy engine and session factory.

Design decisions:
  - AsyncEngine with asyncpg driver for non-blocking I/O.
  - Connection pool sized for typical SaaS workloads:
      pool_size=10, max_overflow=20 → max 30 concurrent DB connections.
      (SQLite, used by the test-suite, gets the dialect's default pool.)
  - pool_pre_ping=True: validates connections before checkout to handle
    stale connections after DB restarts or idle timeouts.
  - pool_timeout bounded by STORE_TIMEOUT_SECONDS so an exhausted pool fails
    fast instead of queueing requests indefinitely.
  - expire_on_commit=False: avoids lazy-load errors after commit in async
    context (attributes are already loaded, no implicit SELECT needed).
"""

from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)

from notes_saas.core.config import settings


def build_engine(url: str, **overrides) -> AsyncEngine:
    options = {"echo": settings.DEBUG}
    if not url.startswith("sqlite"):
        options.update(
            pool_size=10,
            max_overflow=20,
            pool_pre_ping=True,
            pool_recycle=3600,             # Recycle connections every hour
            pool_timeout=settings.STORE_TIMEOUT_SECONDS,
        )
    options.update(overrides)
    return create_async_engine(url, **options)


def build_session_factory(bind: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    return async_sessionmaker(
        bind=bind,
        class_=AsyncSession,
        expire_on_commit=False,
        autoflush=False,
    )


# ── Engine ────────────────────────────────────────────────────────────────────
engine = build_engine(settings.DATABASE_URL)

# ── Session Factory ───────────────────────────────────────────────────────────
AsyncSessionLocal = build_session_factory(engine)
