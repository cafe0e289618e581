"""
db/store.py
-----------
Credential store: the narrow contract every service uses to read and mutate
tenants, users and notes, plus its SQLAlchemy implementation.

Rules the implementation keeps:
  - Every operation opens its own short session and commits on its own, so
    a failed request can never roll back a lockout update it already made.
  - Every operation is bounded by STORE_TIMEOUT_SECONDS. Timeouts and
    connectivity failures surface as StoreUnavailableError (retryable).
  - Usage counters move through single UPDATE statements; decrements are
    clamped at zero in SQL.
  - Quota-consuming inserts (notes, admin-created users) take their slot with
    a conditional counter UPDATE in the same transaction as the INSERT. Two
    concurrent creators cannot both take the last slot, and a note never
    exists without being counted.
  - Records are never written back whole. update_user / update_tenant /
    update_note write only the named columns, and refuse counters, lockout
    state and ownership columns.
  - Tenant-scoped reads and writes take a Scope, the filter dict built by
    Principal.scope(). A scope without a tenant_id is refused.
"""

import asyncio
from datetime import datetime
from typing import (
    Any,
    Awaitable,
    Callable,
    Collection,
    Mapping,
    Optional,
    Protocol,
    Tuple,
    TypeVar,
)

from sqlalchemy import and_, case, func, or_, select, update
from sqlalchemy.exc import IntegrityError, InterfaceError, OperationalError
from sqlalchemy.exc import TimeoutError as PoolTimeoutError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from notes_saas.core.errors import StoreUnavailableError, TenantExistsError, UserExistsError
from notes_saas.core.logging import get_logger
from notes_saas.db.base import utcnow
from notes_saas.models.note import NOTE_MUTABLE_FIELDS, Note
from notes_saas.models.tenant import (
    TENANT_MUTABLE_FIELDS,
    UNLIMITED,
    SubscriptionStatus,
    Tenant,
    UsageField,
)
from notes_saas.models.user import USER_MUTABLE_FIELDS, User

logger = get_logger(__name__)

T = TypeVar("T")

# Column filter produced by Principal.scope(); always carries tenant_id
Scope = Mapping[str, Any]

_UNSET = object()


def check_scope(scope: Scope) -> Scope:
    if not scope.get("tenant_id"):
        raise ValueError("Tenant-scoped store access requires a tenant_id")
    return scope


def check_fields(values: Mapping[str, Any], allowed: Collection[str], record: str) -> dict:
    blocked = sorted(set(values) - set(allowed))
    if blocked:
        raise ValueError(f"{record} update cannot write {blocked}")
    return dict(values)


class CredentialStore(Protocol):
    """
    Storage contract shared by the database-backed and fixture-backed
    identity providers. Records returned are detached snapshots: mutating
    one changes nothing. Writes go through the targeted update_* methods.
    """

    # Users
    async def find_user_by_id(self, user_id: str) -> Optional[User]: ...
    async def find_scoped_user(self, user_id: str, scope: Scope) -> Optional[User]: ...
    async def find_user_by_email(
        self, email: str, tenant_id: str, *, active_only: bool = False
    ) -> Optional[User]: ...
    async def find_users_by_email(
        self, email: str, *, active_only: bool = False
    ) -> list[User]: ...
    async def find_user_by_reset_token(self, token_hash: str) -> Optional[User]: ...
    async def find_user_by_verification_token(self, token_hash: str) -> Optional[User]: ...
    async def list_users(self, scope: Scope) -> list[User]: ...
    async def update_user(
        self, user_id: str, values: Mapping[str, Any], scope: Optional[Scope] = None
    ) -> Optional[User]: ...
    async def update_user_security(
        self,
        user_id: str,
        *,
        login_attempts: int,
        lock_until: Optional[datetime],
        last_login=_UNSET,
    ) -> None: ...
    async def create_user(self, user: User) -> bool: ...
    async def deactivate_user(self, user_id: str, scope: Scope) -> bool: ...

    # Tenants
    async def find_tenant_by_id(self, tenant_id: str) -> Optional[Tenant]: ...
    async def find_tenant_by_slug(self, slug: str) -> Optional[Tenant]: ...
    async def update_tenant(
        self, tenant_id: str, values: Mapping[str, Any]
    ) -> Optional[Tenant]: ...
    async def create_tenant_with_admin(self, tenant: Tenant, user: User) -> Tuple[Tenant, User]: ...
    async def increment_tenant_usage(
        self, tenant_id: str, field: UsageField, amount: int = 1
    ) -> None: ...
    async def decrement_tenant_usage(
        self, tenant_id: str, field: UsageField, amount: int = 1
    ) -> None: ...

    # Notes
    async def create_note(self, note: Note) -> bool: ...
    async def update_note(
        self, note_id: str, scope: Scope, values: Mapping[str, Any]
    ) -> Optional[Note]: ...
    async def soft_delete_note(self, note_id: str, scope: Scope, deleted_by: str) -> bool: ...
    async def find_note(self, note_id: str, scope: Scope) -> Optional[Note]: ...
    async def list_notes(
        self, scope: Scope, skip: int = 0, limit: int = 20
    ) -> Tuple[int, list[Note]]: ...


def _note_slot_available():
    return and_(
        Tenant.is_active.is_(True),
        Tenant.subscription_status == SubscriptionStatus.active.value,
        or_(
            Tenant.note_limit == UNLIMITED,
            Tenant.current_note_count < Tenant.note_limit,
        ),
    )


def _user_slot_available():
    return and_(
        Tenant.is_active.is_(True),
        Tenant.subscription_status == SubscriptionStatus.active.value,
        Tenant.current_user_count < Tenant.max_users_per_tenant,
    )


def _clamped_decrement(column, amount: int):
    return case((column - amount < 0, 0), else_=column - amount)


def _scoped(model, scope: Scope) -> list:
    return [getattr(model, key) == value for key, value in check_scope(scope).items()]


def _live_notes(scope: Scope) -> list:
    return [*_scoped(Note, scope), Note.is_deleted.is_(False)]


class SqlAlchemyCredentialStore:

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        timeout: float = 5.0,
    ) -> None:
        self._sessions = session_factory
        self._timeout = timeout

    # ── Plumbing ─────────────────────────────────────────────────────────────

    async def _run(self, name: str, operation: Callable[[], Awaitable[T]]) -> T:
        try:
            return await asyncio.wait_for(operation(), timeout=self._timeout)
        except asyncio.TimeoutError as exc:
            logger.error("Store operation timed out", operation=name, timeout=self._timeout)
            raise StoreUnavailableError() from exc
        except (OperationalError, InterfaceError, PoolTimeoutError, OSError) as exc:
            logger.error("Store unavailable", operation=name, error=str(exc))
            raise StoreUnavailableError() from exc

    async def _one_or_none(self, name: str, stmt) -> Optional[T]:
        async def op():
            async with self._sessions() as session:
                result = await session.execute(stmt)
                return result.scalar_one_or_none()

        return await self._run(name, op)

    async def _all(self, name: str, stmt) -> list:
        async def op():
            async with self._sessions() as session:
                result = await session.execute(stmt)
                return list(result.scalars().all())

        return await self._run(name, op)

    async def _execute(self, name: str, stmt) -> int:
        async def op():
            async with self._sessions() as session, session.begin():
                result = await session.execute(
                    stmt.execution_options(synchronize_session=False)
                )
                return result.rowcount

        return await self._run(name, op)

    async def _update_one(self, name: str, model, record_id: str, criteria: list, values: dict):
        """UPDATE the named columns of one row and return the row as stored."""

        async def op():
            async with self._sessions() as session, session.begin():
                if values:
                    result = await session.execute(
                        update(model)
                        .where(model.id == record_id, *criteria)
                        .values(**values)
                        .execution_options(synchronize_session=False)
                    )
                    if result.rowcount != 1:
                        return None
                    criteria_after = []
                else:
                    criteria_after = criteria
                refreshed = await session.execute(
                    select(model).where(model.id == record_id, *criteria_after)
                )
                return refreshed.scalar_one_or_none()

        return await self._run(name, op)

    # ── Users ────────────────────────────────────────────────────────────────

    async def find_user_by_id(self, user_id: str) -> Optional[User]:
        return await self._one_or_none(
            "find_user_by_id", select(User).where(User.id == user_id)
        )

    async def find_scoped_user(self, user_id: str, scope: Scope) -> Optional[User]:
        return await self._one_or_none(
            "find_scoped_user",
            select(User).where(User.id == user_id, *_scoped(User, scope)),
        )

    async def find_user_by_email(
        self, email: str, tenant_id: str, *, active_only: bool = False
    ) -> Optional[User]:
        stmt = select(User).where(User.email == email.lower(), User.tenant_id == tenant_id)
        if active_only:
            stmt = stmt.where(User.is_active.is_(True))
        return await self._one_or_none("find_user_by_email", stmt)

    async def find_users_by_email(self, email: str, *, active_only: bool = False) -> list[User]:
        stmt = select(User).where(User.email == email.lower()).order_by(User.created_at)
        if active_only:
            stmt = stmt.where(User.is_active.is_(True))
        return await self._all("find_users_by_email", stmt)

    async def find_user_by_reset_token(self, token_hash: str) -> Optional[User]:
        return await self._one_or_none(
            "find_user_by_reset_token",
            select(User).where(User.password_reset_token == token_hash),
        )

    async def find_user_by_verification_token(self, token_hash: str) -> Optional[User]:
        return await self._one_or_none(
            "find_user_by_verification_token",
            select(User).where(User.email_verification_token == token_hash),
        )

    async def list_users(self, scope: Scope) -> list[User]:
        return await self._all(
            "list_users",
            select(User).where(*_scoped(User, scope)).order_by(User.created_at),
        )

    async def update_user(
        self, user_id: str, values: Mapping[str, Any], scope: Optional[Scope] = None
    ) -> Optional[User]:
        """Write the given profile / role / credential columns of one user."""
        values = check_fields(values, USER_MUTABLE_FIELDS, "User")
        criteria = _scoped(User, scope) if scope is not None else []
        return await self._update_one("update_user", User, user_id, criteria, values)

    async def update_user_security(
        self,
        user_id: str,
        *,
        login_attempts: int,
        lock_until: Optional[datetime],
        last_login=_UNSET,
    ) -> None:
        values = {"login_attempts": login_attempts, "lock_until": lock_until}
        if last_login is not _UNSET:
            values["last_login"] = last_login
        await self._execute(
            "update_user_security",
            update(User).where(User.id == user_id).values(**values),
        )

    async def create_user(self, user: User) -> bool:
        """Insert a user into an existing tenant if it has a free user slot."""

        async def op():
            async with self._sessions() as session, session.begin():
                result = await session.execute(
                    update(Tenant)
                    .where(Tenant.id == user.tenant_id, _user_slot_available())
                    .values(current_user_count=Tenant.current_user_count + 1)
                    .execution_options(synchronize_session=False)
                )
                if result.rowcount != 1:
                    return False
                session.add(user)
            return True

        try:
            return await self._run("create_user", op)
        except IntegrityError as exc:
            raise UserExistsError() from exc

    async def deactivate_user(self, user_id: str, scope: Scope) -> bool:
        criteria = _scoped(User, scope)
        tenant_id = scope["tenant_id"]

        async def op():
            async with self._sessions() as session, session.begin():
                result = await session.execute(
                    update(User)
                    .where(User.id == user_id, User.is_active.is_(True), *criteria)
                    .values(is_active=False)
                    .execution_options(synchronize_session=False)
                )
                if result.rowcount != 1:
                    return False
                await session.execute(
                    update(Tenant)
                    .where(Tenant.id == tenant_id)
                    .values(current_user_count=_clamped_decrement(Tenant.current_user_count, 1))
                    .execution_options(synchronize_session=False)
                )
            return True

        return await self._run("deactivate_user", op)

    # ── Tenants ──────────────────────────────────────────────────────────────

    async def find_tenant_by_id(self, tenant_id: str) -> Optional[Tenant]:
        return await self._one_or_none(
            "find_tenant_by_id", select(Tenant).where(Tenant.id == tenant_id)
        )

    async def find_tenant_by_slug(self, slug: str) -> Optional[Tenant]:
        return await self._one_or_none(
            "find_tenant_by_slug", select(Tenant).where(Tenant.slug == slug.lower())
        )

    async def update_tenant(self, tenant_id: str, values: Mapping[str, Any]) -> Optional[Tenant]:
        """Write plan, subscription or settings columns. Counters are refused."""
        values = check_fields(values, TENANT_MUTABLE_FIELDS, "Tenant")
        return await self._update_one("update_tenant", Tenant, tenant_id, [], values)

    async def create_tenant_with_admin(self, tenant: Tenant, user: User) -> Tuple[Tenant, User]:
        """Registration unit of work: tenant row, founding user, user counter."""

        async def op():
            async with self._sessions() as session, session.begin():
                session.add(tenant)
                await session.flush()
                session.add(user)
                tenant.current_user_count += 1
            return tenant, user

        try:
            return await self._run("create_tenant_with_admin", op)
        except IntegrityError as exc:
            raise TenantExistsError() from exc

    async def increment_tenant_usage(
        self, tenant_id: str, field: UsageField, amount: int = 1
    ) -> None:
        column = getattr(Tenant, UsageField(field).value)
        await self._execute(
            "increment_tenant_usage",
            update(Tenant).where(Tenant.id == tenant_id).values({column: column + amount}),
        )

    async def decrement_tenant_usage(
        self, tenant_id: str, field: UsageField, amount: int = 1
    ) -> None:
        column = getattr(Tenant, UsageField(field).value)
        await self._execute(
            "decrement_tenant_usage",
            update(Tenant)
            .where(Tenant.id == tenant_id)
            .values({column: _clamped_decrement(column, amount)}),
        )

    # ── Notes ────────────────────────────────────────────────────────────────

    async def create_note(self, note: Note) -> bool:
        """Take a note slot and insert the note in one transaction."""

        async def op():
            async with self._sessions() as session, session.begin():
                result = await session.execute(
                    update(Tenant)
                    .where(Tenant.id == note.tenant_id, _note_slot_available())
                    .values(current_note_count=Tenant.current_note_count + 1)
                    .execution_options(synchronize_session=False)
                )
                if result.rowcount != 1:
                    return False
                session.add(note)
            return True

        return await self._run("create_note", op)

    async def update_note(
        self, note_id: str, scope: Scope, values: Mapping[str, Any]
    ) -> Optional[Note]:
        values = check_fields(values, NOTE_MUTABLE_FIELDS, "Note")
        return await self._update_one("update_note", Note, note_id, _live_notes(scope), values)

    async def soft_delete_note(self, note_id: str, scope: Scope, deleted_by: str) -> bool:
        """Mark a live note deleted and release its slot in one transaction."""
        criteria = _live_notes(scope)
        tenant_id = scope["tenant_id"]

        async def op():
            async with self._sessions() as session, session.begin():
                result = await session.execute(
                    update(Note)
                    .where(Note.id == note_id, *criteria)
                    .values(is_deleted=True, deleted_at=utcnow(), deleted_by=deleted_by)
                    .execution_options(synchronize_session=False)
                )
                if result.rowcount != 1:
                    return False
                await session.execute(
                    update(Tenant)
                    .where(Tenant.id == tenant_id)
                    .values(current_note_count=_clamped_decrement(Tenant.current_note_count, 1))
                    .execution_options(synchronize_session=False)
                )
            return True

        return await self._run("soft_delete_note", op)

    async def find_note(self, note_id: str, scope: Scope) -> Optional[Note]:
        return await self._one_or_none(
            "find_note", select(Note).where(Note.id == note_id, *_live_notes(scope))
        )

    async def list_notes(
        self, scope: Scope, skip: int = 0, limit: int = 20
    ) -> Tuple[int, list[Note]]:
        criteria = _live_notes(scope)

        async def op():
            async with self._sessions() as session:
                total = (
                    await session.execute(
                        select(func.count()).select_from(Note).where(*criteria)
                    )
                ).scalar_one()
                result = await session.execute(
                    select(Note)
                    .where(*criteria)
                    .order_by(Note.created_at.desc())
                    .offset(skip)
                    .limit(limit)
                )
                return total, list(result.scalars().all())

        return await self._run("list_notes", op)
