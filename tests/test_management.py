"""Tests for tenant and user management services."""

from datetime import timedelta

import pytest

from notes_saas.core.errors import InsufficientRoleError, NoteNotFoundError, UserNotFoundError
from notes_saas.db.base import utcnow
from notes_saas.db.fixtures import FixtureCredentialStore
from notes_saas.models.note import Note
from notes_saas.models.user import Permission, UserRole
from notes_saas.schemas.tenant import TenantSettingsUpdate
from notes_saas.schemas.user import UserCreate
from notes_saas.services.note_service import NoteService
from notes_saas.services.tenant_service import TenantService
from notes_saas.services.user_service import UserService
from tests.conftest import (
    ACME_ADMIN_ID,
    ACME_ID,
    ACME_MEMBER_ID,
    FIXTURE_PASSWORD,
    GLOBEX_MEMBER_ID,
    principal_for,
)


class _NoteCreatedAfterTenantRead(FixtureCredentialStore):
    """Another request creates a note right after the tenant is read."""

    async def find_tenant_by_slug(self, slug):
        tenant = await super().find_tenant_by_slug(slug)
        await self.create_note(Note.new("meanwhile", "body", ACME_MEMBER_ID, ACME_ID))
        return tenant


class _UserLockedAfterRead(FixtureCredentialStore):
    """Five failed logins land right after the user is read."""

    async def find_scoped_user(self, user_id, scope):
        user = await super().find_scoped_user(user_id, scope)
        await self.update_user_security(
            user_id, login_attempts=5, lock_until=utcnow() + timedelta(hours=2)
        )
        return user


def manager_store() -> FixtureCredentialStore:
    """Seeded store where the acme member also holds canManageUsers."""
    store = FixtureCredentialStore(FIXTURE_PASSWORD)
    store._users[ACME_MEMBER_ID].can_manage_users = True
    return store


class TestTenantWrites:
    """Plan and settings changes never overwrite usage counters."""

    @pytest.mark.asyncio
    async def test_upgrade_keeps_note_created_meanwhile(self) -> None:
        store = _NoteCreatedAfterTenantRead(FIXTURE_PASSWORD)
        admin = await principal_for(store, ACME_ADMIN_ID)

        tenant = await TenantService.upgrade(store, admin, "acme")

        assert tenant.plan == "pro"
        assert tenant.current_note_count == 1
        total, _ = await store.list_notes({"tenant_id": ACME_ID})
        assert total == 1

    @pytest.mark.asyncio
    async def test_settings_update_keeps_counters(
        self, fixture_store: FixtureCredentialStore
    ) -> None:
        store = fixture_store
        admin = await principal_for(store, ACME_ADMIN_ID)
        await NoteService.create_note(store, admin, "kept", "body")

        tenant = await TenantService.update_settings(
            store, admin, TenantSettingsUpdate(name="Acme Renamed")
        )

        assert tenant.name == "Acme Renamed"
        assert tenant.slug == "acme"
        assert tenant.current_note_count == 1
        assert tenant.current_user_count == 2


class TestRoleChange:
    """Role changes write the role columns only."""

    @pytest.mark.asyncio
    async def test_role_change_keeps_lock(self) -> None:
        store = _UserLockedAfterRead(FIXTURE_PASSWORD)
        admin = await principal_for(store, ACME_ADMIN_ID)

        user = await UserService.change_role(store, admin, ACME_MEMBER_ID, UserRole.admin)

        assert user.role == "admin"
        assert user.can_manage_users is True
        assert user.login_attempts == 5
        assert user.lock_until is not None

    @pytest.mark.asyncio
    async def test_role_change_in_other_tenant_is_not_found(
        self, fixture_store: FixtureCredentialStore
    ) -> None:
        admin = await principal_for(fixture_store, ACME_ADMIN_ID)
        with pytest.raises(UserNotFoundError) as exc_info:
            await UserService.change_role(fixture_store, admin, GLOBEX_MEMBER_ID, UserRole.admin)
        assert exc_info.value.status_code == 404


class TestManagerLimits:
    """canManageUsers without the admin role cannot hand out admin powers."""

    @pytest.mark.asyncio
    async def test_manager_creates_member(self) -> None:
        store = manager_store()
        manager = await principal_for(store, ACME_MEMBER_ID)

        user = await UserService.create_user_by_admin(
            store, manager, UserCreate(email="new@acme.test", password="Abcdef1")
        )

        assert user.role == "member"
        assert user.tenant_id == ACME_ID

    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        "extra",
        [
            {"role": UserRole.admin},
            {"permissions": {Permission.manage_users: True}},
            {"permissions": {Permission.manage_tenant: True}},
        ],
    )
    async def test_manager_cannot_grant_admin_powers(self, extra) -> None:
        store = manager_store()
        manager = await principal_for(store, ACME_MEMBER_ID)

        with pytest.raises(InsufficientRoleError) as exc_info:
            await UserService.create_user_by_admin(
                store, manager, UserCreate(email="boss@acme.test", password="Abcdef1", **extra)
            )

        assert exc_info.value.to_dict()["required"] == ["admin"]
        assert await store.find_user_by_email("boss@acme.test", ACME_ID) is None
        assert (await store.find_tenant_by_id(ACME_ID)).current_user_count == 2

    @pytest.mark.asyncio
    async def test_manager_cannot_deactivate_admin(self) -> None:
        store = manager_store()
        manager = await principal_for(store, ACME_MEMBER_ID)

        with pytest.raises(InsufficientRoleError):
            await UserService.deactivate(store, manager, ACME_ADMIN_ID)
        assert (await store.find_user_by_id(ACME_ADMIN_ID)).is_active

    @pytest.mark.asyncio
    async def test_admin_can_create_admin(self, fixture_store: FixtureCredentialStore) -> None:
        admin = await principal_for(fixture_store, ACME_ADMIN_ID)

        user = await UserService.create_user_by_admin(
            fixture_store,
            admin,
            UserCreate(email="second@acme.test", password="Abcdef1", role=UserRole.admin),
        )
        assert user.is_admin


class TestNoteEdits:
    """Members edit their own notes; admins edit any note in the tenant."""

    @pytest.mark.asyncio
    async def test_member_edits_own_note(self, fixture_store: FixtureCredentialStore) -> None:
        member = await principal_for(fixture_store, ACME_MEMBER_ID)
        note = await NoteService.create_note(fixture_store, member, "draft", "body")

        updated = await NoteService.update_note(
            fixture_store, member, note.id, {"title": "final"}
        )

        assert updated.title == "final"
        assert updated.content == "body"

    @pytest.mark.asyncio
    async def test_member_cannot_edit_admins_note(
        self, fixture_store: FixtureCredentialStore
    ) -> None:
        admin = await principal_for(fixture_store, ACME_ADMIN_ID)
        member = await principal_for(fixture_store, ACME_MEMBER_ID)
        note = await NoteService.create_note(fixture_store, admin, "admin only", "body")

        with pytest.raises(NoteNotFoundError):
            await NoteService.update_note(fixture_store, member, note.id, {"title": "mine"})
        assert (await NoteService.get_note(fixture_store, admin, note.id)).title == "admin only"

    @pytest.mark.asyncio
    async def test_admin_edits_members_note(self, fixture_store: FixtureCredentialStore) -> None:
        admin = await principal_for(fixture_store, ACME_ADMIN_ID)
        member = await principal_for(fixture_store, ACME_MEMBER_ID)
        note = await NoteService.create_note(fixture_store, member, "draft", "body")

        updated = await NoteService.update_note(
            fixture_store, admin, note.id, {"content": "reviewed"}
        )
        assert updated.content == "reviewed"
