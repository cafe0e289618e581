"""
db/fixtures.py
--------------
In-memory credential store for local development and tests.

Seeds two tenants with one admin and one member each:

    acme   (free, 3 notes)    admin@acme.test    user@acme.test
    globex (pro, unlimited)   admin@globex.test  user@globex.test

All four share FIXTURE_PASSWORD. Every method body runs without an await,
so each operation is atomic on the event loop. Records handed out are
copies; nothing changes until an update_* method names the columns to write.
"""

from datetime import datetime
from typing import Dict, Optional, Tuple, TypeVar

from sqlalchemy import inspect

from notes_saas.core.errors import TenantExistsError, UserExistsError
from notes_saas.core.logging import get_logger
from notes_saas.core.security import hash_password
from notes_saas.db.base import utcnow
from notes_saas.db.store import Scope, check_fields, check_scope
from notes_saas.models.note import NOTE_MUTABLE_FIELDS, Note
from notes_saas.models.tenant import TENANT_MUTABLE_FIELDS, Plan, Tenant, UsageField
from notes_saas.models.user import USER_MUTABLE_FIELDS, User, UserRole

logger = get_logger(__name__)

M = TypeVar("M")

_UNSET = object()

FIXTURE_TENANTS = (
    {"id": "fixture-tenant-acme", "slug": "acme", "name": "Acme Corporation", "plan": Plan.free},
    {"id": "fixture-tenant-globex", "slug": "globex", "name": "Globex Corporation", "plan": Plan.pro},
)

FIXTURE_USERS = (
    {
        "id": "fixture-admin-acme",
        "email": "admin@acme.test",
        "tenant_id": "fixture-tenant-acme",
        "role": UserRole.admin,
        "first_name": "Admin",
        "last_name": "User",
    },
    {
        "id": "fixture-user-acme",
        "email": "user@acme.test",
        "tenant_id": "fixture-tenant-acme",
        "role": UserRole.member,
        "first_name": "Regular",
        "last_name": "User",
    },
    {
        "id": "fixture-admin-globex",
        "email": "admin@globex.test",
        "tenant_id": "fixture-tenant-globex",
        "role": UserRole.admin,
        "first_name": "Globex",
        "last_name": "Admin",
    },
    {
        "id": "fixture-user-globex",
        "email": "user@globex.test",
        "tenant_id": "fixture-tenant-globex",
        "role": UserRole.member,
        "first_name": "Globex",
        "last_name": "Member",
    },
)


def _clone(record: M) -> M:
    """Detached copy of an ORM instance holding every column value."""
    mapper = inspect(type(record))
    return type(record)(
        **{attr.key: getattr(record, attr.key) for attr in mapper.column_attrs}
    )


def _clamp(value: int) -> int:
    return max(0, value)


def _in_scope(record, scope: Scope) -> bool:
    return all(getattr(record, key) == value for key, value in check_scope(scope).items())


def _apply(record: M, values: dict) -> M:
    for key, value in values.items():
        setattr(record, key, value)
    record.updated_at = utcnow()
    return _clone(record)


class FixtureCredentialStore:

    def __init__(self, password: str, seed: bool = True) -> None:
        self._tenants: Dict[str, Tenant] = {}
        self._users: Dict[str, User] = {}
        self._notes: Dict[str, Note] = {}
        if seed:
            self._seed(password)

    def _seed(self, password: str) -> None:
        # One hash shared by every fixture account
        password_hash = hash_password(password)
        now = utcnow()
        for entry in FIXTURE_TENANTS:
            tenant = Tenant.new(**entry, created_at=now, updated_at=now)
            self._tenants[tenant.id] = tenant
        for entry in FIXTURE_USERS:
            user = User.new(
                password_hash=password_hash,
                email_verified=True,
                created_at=now,
                updated_at=now,
                **entry,
            )
            self._users[user.id] = user
            self._tenants[user.tenant_id].current_user_count += 1
        logger.info(
            "Fixture identity provider seeded",
            tenants=[t["slug"] for t in FIXTURE_TENANTS],
            users=[u["email"] for u in FIXTURE_USERS],
        )

    # ── Users ────────────────────────────────────────────────────────────────

    async def find_user_by_id(self, user_id: str) -> Optional[User]:
        user = self._users.get(user_id)
        return _clone(user) if user else None

    async def find_user_by_email(
        self, email: str, tenant_id: str, *, active_only: bool = False
    ) -> Optional[User]:
        for user in await self.find_users_by_email(email, active_only=active_only):
            if user.tenant_id == tenant_id:
                return user
        return None

    async def find_users_by_email(self, email: str, *, active_only: bool = False) -> list[User]:
        email = email.strip().lower()
        return [
            _clone(user)
            for user in self._users.values()
            if user.email == email and (user.is_active or not active_only)
        ]

    async def find_user_by_reset_token(self, token_hash: str) -> Optional[User]:
        for user in self._users.values():
            if user.password_reset_token == token_hash:
                return _clone(user)
        return None

    async def find_user_by_verification_token(self, token_hash: str) -> Optional[User]:
        for user in self._users.values():
            if user.email_verification_token == token_hash:
                return _clone(user)
        return None

    async def find_scoped_user(self, user_id: str, scope: Scope) -> Optional[User]:
        user = self._users.get(user_id)
        return _clone(user) if user and _in_scope(user, scope) else None

    async def list_users(self, scope: Scope) -> list[User]:
        return [_clone(u) for u in self._users.values() if _in_scope(u, scope)]

    async def update_user(
        self, user_id: str, values, scope: Optional[Scope] = None
    ) -> Optional[User]:
        values = check_fields(values, USER_MUTABLE_FIELDS, "User")
        user = self._users.get(user_id)
        if user is None or (scope is not None and not _in_scope(user, scope)):
            return None
        return _apply(user, values)

    async def update_user_security(
        self,
        user_id: str,
        *,
        login_attempts: int,
        lock_until: Optional[datetime],
        last_login=_UNSET,
    ) -> None:
        user = self._users.get(user_id)
        if user is None:
            return
        user.login_attempts = login_attempts
        user.lock_until = lock_until
        if last_login is not _UNSET:
            user.last_login = last_login

    async def create_user(self, user: User) -> bool:
        tenant = self._tenants.get(user.tenant_id)
        if tenant is None or not tenant.can_add_user:
            return False
        for other in self._users.values():
            if other.tenant_id == user.tenant_id and other.email == user.email:
                raise UserExistsError()
        now = utcnow()
        user.created_at = user.created_at or now
        user.updated_at = now
        self._users[user.id] = _clone(user)
        tenant.current_user_count += 1
        return True

    async def deactivate_user(self, user_id: str, scope: Scope) -> bool:
        user = self._users.get(user_id)
        if user is None or not _in_scope(user, scope) or not user.is_active:
            return False
        user.is_active = False
        tenant = self._tenants[user.tenant_id]
        tenant.current_user_count = _clamp(tenant.current_user_count - 1)
        return True

    # ── Tenants ──────────────────────────────────────────────────────────────

    async def find_tenant_by_id(self, tenant_id: str) -> Optional[Tenant]:
        tenant = self._tenants.get(tenant_id)
        return _clone(tenant) if tenant else None

    async def find_tenant_by_slug(self, slug: str) -> Optional[Tenant]:
        slug = slug.lower()
        for tenant in self._tenants.values():
            if tenant.slug == slug:
                return _clone(tenant)
        return None

    async def update_tenant(self, tenant_id: str, values) -> Optional[Tenant]:
        values = check_fields(values, TENANT_MUTABLE_FIELDS, "Tenant")
        tenant = self._tenants.get(tenant_id)
        return _apply(tenant, values) if tenant else None

    async def create_tenant_with_admin(self, tenant: Tenant, user: User) -> Tuple[Tenant, User]:
        if any(other.slug == tenant.slug for other in self._tenants.values()):
            raise TenantExistsError()
        now = utcnow()
        for record in (tenant, user):
            record.created_at = record.created_at or now
            record.updated_at = now
        tenant.current_user_count += 1
        self._tenants[tenant.id] = _clone(tenant)
        self._users[user.id] = _clone(user)
        return tenant, user

    async def increment_tenant_usage(
        self, tenant_id: str, field: UsageField, amount: int = 1
    ) -> None:
        tenant = self._tenants.get(tenant_id)
        if tenant is not None:
            column = UsageField(field).value
            setattr(tenant, column, getattr(tenant, column) + amount)

    async def decrement_tenant_usage(
        self, tenant_id: str, field: UsageField, amount: int = 1
    ) -> None:
        tenant = self._tenants.get(tenant_id)
        if tenant is not None:
            column = UsageField(field).value
            setattr(tenant, column, _clamp(getattr(tenant, column) - amount))

    # ── Notes ────────────────────────────────────────────────────────────────

    async def create_note(self, note: Note) -> bool:
        tenant = self._tenants.get(note.tenant_id)
        if tenant is None or not tenant.can_create_notes:
            return False
        now = utcnow()
        note.created_at = note.created_at or now
        note.updated_at = now
        self._notes[note.id] = _clone(note)
        tenant.current_note_count += 1
        return True

    def _live_note(self, note_id: str, scope: Scope) -> Optional[Note]:
        note = self._notes.get(note_id)
        if note is None or note.is_deleted or not _in_scope(note, scope):
            return None
        return note

    async def update_note(self, note_id: str, scope: Scope, values) -> Optional[Note]:
        values = check_fields(values, NOTE_MUTABLE_FIELDS, "Note")
        note = self._live_note(note_id, scope)
        return _apply(note, values) if note else None

    async def soft_delete_note(self, note_id: str, scope: Scope, deleted_by: str) -> bool:
        note = self._live_note(note_id, scope)
        if note is None:
            return False
        note.is_deleted = True
        note.deleted_at = utcnow()
        note.deleted_by = deleted_by
        tenant = self._tenants[note.tenant_id]
        tenant.current_note_count = _clamp(tenant.current_note_count - 1)
        return True

    async def find_note(self, note_id: str, scope: Scope) -> Optional[Note]:
        note = self._live_note(note_id, scope)
        return _clone(note) if note else None

    async def list_notes(
        self, scope: Scope, skip: int = 0, limit: int = 20
    ) -> Tuple[int, list[Note]]:
        check_scope(scope)
        live = [
            note
            for note in self._notes.values()
            if not note.is_deleted and _in_scope(note, scope)
        ]
        live.sort(key=lambda note: note.created_at, reverse=True)
        return len(live), [_clone(note) for note in live[skip: skip + limit]]
