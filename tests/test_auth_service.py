"""Tests for registration, login, refresh, logout, password reset and email verification."""

from datetime import timedelta

import pytest

from notes_saas.core.errors import (
    InvalidCredentialsError,
    InvalidRefreshTokenError,
    InvalidResetTokenError,
    InvalidVerificationTokenError,
    QuotaExceededError,
    StoreUnavailableError,
    TenantExistsError,
    TenantInactiveError,
    UserExistsError,
)
from notes_saas.core.revocation import RevocationRegistry
from notes_saas.core.tokens import TokenService, TokenType
from notes_saas.db.base import utcnow
from notes_saas.db.fixtures import FixtureCredentialStore
from notes_saas.models.user import User
from notes_saas.schemas.auth import RegisterRequest
from notes_saas.services.auth_service import AuthService
from notes_saas.services.note_service import NoteService
from notes_saas.services.session_service import SessionResolver
from notes_saas.services.tenant_service import TenantService
from tests.conftest import (
    ACME_ADMIN_ID,
    ACME_ID,
    ACME_MEMBER_ID,
    FIXTURE_PASSWORD,
    GLOBEX_ID,
    principal_for,
)


class _StoreWithBrokenSecurityWrites(FixtureCredentialStore):
    async def update_user_security(self, user_id, **fields):
        raise StoreUnavailableError()


class TestRegister:
    """Test tenant self-registration."""

    @pytest.mark.asyncio
    async def test_register_creates_free_tenant_and_admin(
        self, fixture_store: FixtureCredentialStore, tokens: TokenService
    ) -> None:
        data = RegisterRequest(email="a@x.test", password="Abcdef1", tenant_name="Acme Co")

        result = await AuthService.register(fixture_store, data, tokens)

        assert result.tenant.slug == "acme-co"
        assert result.tenant.plan == "free"
        assert result.tenant.note_limit == 3
        assert result.user.role == "admin"
        assert result.user.tenant_id == result.tenant.id

        stored = await fixture_store.find_tenant_by_slug("acme-co")
        assert stored.current_user_count == 1

        access = tokens.verify(result.access_token)
        assert access.token_type is TokenType.access
        assert access.tenant_slug == "acme-co"
        assert access.role == "admin"
        assert tokens.verify(result.refresh_token).token_type is TokenType.refresh

    @pytest.mark.asyncio
    async def test_email_taken_in_any_tenant(
        self, fixture_store: FixtureCredentialStore, tokens: TokenService
    ) -> None:
        data = RegisterRequest(email="USER@acme.test", password="Abcdef1", tenant_name="Initech")
        with pytest.raises(UserExistsError):
            await AuthService.register(fixture_store, data, tokens)

    @pytest.mark.asyncio
    async def test_name_mapping_to_taken_slug(
        self, fixture_store: FixtureCredentialStore, tokens: TokenService
    ) -> None:
        data = RegisterRequest(email="new@x.test", password="Abcdef1", tenant_name="  ACME!! ")
        with pytest.raises(TenantExistsError) as exc_info:
            await AuthService.register(fixture_store, data, tokens)
        assert exc_info.value.status_code == 409

    def test_weak_password_rejected_by_schema(self) -> None:
        with pytest.raises(ValueError):
            RegisterRequest(email="a@x.test", password="abcdef", tenant_name="Acme Co")

    def test_name_without_slug_characters_rejected(self) -> None:
        with pytest.raises(ValueError):
            RegisterRequest(email="a@x.test", password="Abcdef1", tenant_name="!!")


class TestLogin:
    """Test credential checks."""

    @pytest.mark.asyncio
    async def test_login_success(
        self, fixture_store: FixtureCredentialStore, tokens: TokenService
    ) -> None:
        result = await AuthService.login(
            fixture_store, "Admin@Acme.test", FIXTURE_PASSWORD, tokens=tokens
        )

        assert result.user.id == ACME_ADMIN_ID
        assert result.tenant.id == ACME_ID
        payload = tokens.verify(result.access_token)
        assert payload.sub == ACME_ADMIN_ID
        assert payload.tenant_id == ACME_ID
        assert payload.permissions["canManageTenant"] is True

    @pytest.mark.asyncio
    async def test_unknown_email_indistinguishable_from_wrong_password(
        self, fixture_store: FixtureCredentialStore
    ) -> None:
        with pytest.raises(InvalidCredentialsError) as unknown:
            await AuthService.login(fixture_store, "nobody@x.test", "anything")
        with pytest.raises(InvalidCredentialsError) as wrong:
            await AuthService.login(fixture_store, "user@acme.test", "wrong-password")

        assert unknown.value.to_dict() == wrong.value.to_dict()
        assert unknown.value.to_dict() == {
            "error": "Invalid email or password",
            "code": "INVALID_CREDENTIALS",
        }
        assert unknown.value.status_code == wrong.value.status_code == 401

    @pytest.mark.asyncio
    async def test_inactive_user_cannot_log_in(self, fixture_store: FixtureCredentialStore) -> None:
        await fixture_store.deactivate_user(ACME_MEMBER_ID, {"tenant_id": ACME_ID})
        with pytest.raises(InvalidCredentialsError):
            await AuthService.login(fixture_store, "user@acme.test", FIXTURE_PASSWORD)

    @pytest.mark.asyncio
    async def test_inactive_tenant_refused_with_403(
        self, fixture_store: FixtureCredentialStore
    ) -> None:
        await fixture_store.update_tenant(ACME_ID, {"is_active": False})

        with pytest.raises(TenantInactiveError) as exc_info:
            await AuthService.login(fixture_store, "user@acme.test", FIXTURE_PASSWORD)
        assert exc_info.value.status_code == 403

    @pytest.mark.asyncio
    async def test_email_in_two_tenants_needs_hint(
        self, fixture_store: FixtureCredentialStore, tokens: TokenService
    ) -> None:
        acme_user = await fixture_store.find_user_by_id(ACME_MEMBER_ID)
        for tenant_id in (ACME_ID, GLOBEX_ID):
            await fixture_store.create_user(
                User.new("shared@x.test", acme_user.password_hash, tenant_id)
            )

        with pytest.raises(InvalidCredentialsError):
            await AuthService.login(fixture_store, "shared@x.test", FIXTURE_PASSWORD)

        result = await AuthService.login(
            fixture_store, "shared@x.test", FIXTURE_PASSWORD, tenant_slug="globex", tokens=tokens
        )
        assert result.tenant.id == GLOBEX_ID

    @pytest.mark.asyncio
    async def test_failure_recording_is_best_effort(self) -> None:
        store = _StoreWithBrokenSecurityWrites(FIXTURE_PASSWORD)
        with pytest.raises(InvalidCredentialsError):
            await AuthService.login(store, "user@acme.test", "wrong-password")


class TestRefreshAndLogout:
    """Test refresh-token exchange and revocation."""

    @pytest.mark.asyncio
    async def test_refresh_issues_working_access_token(
        self,
        fixture_store: FixtureCredentialStore,
        tokens: TokenService,
        revocations: RevocationRegistry,
    ) -> None:
        login = await AuthService.login(
            fixture_store, "user@acme.test", FIXTURE_PASSWORD, tokens=tokens
        )

        result = await AuthService.refresh(fixture_store, login.refresh_token, tokens, revocations)

        assert result.refresh_token is None
        principal = await SessionResolver.resolve(fixture_store, result.access_token, tokens)
        assert principal.user_id == ACME_MEMBER_ID

    @pytest.mark.asyncio
    async def test_missing_refresh_token(self, fixture_store: FixtureCredentialStore) -> None:
        with pytest.raises(InvalidRefreshTokenError) as exc_info:
            await AuthService.refresh(fixture_store, None)
        assert exc_info.value.message == "Refresh token required"

    @pytest.mark.asyncio
    async def test_access_token_is_not_a_refresh_token(
        self,
        fixture_store: FixtureCredentialStore,
        tokens: TokenService,
        revocations: RevocationRegistry,
    ) -> None:
        login = await AuthService.login(
            fixture_store, "user@acme.test", FIXTURE_PASSWORD, tokens=tokens
        )
        with pytest.raises(InvalidRefreshTokenError):
            await AuthService.refresh(fixture_store, login.access_token, tokens, revocations)

    @pytest.mark.asyncio
    async def test_logout_revokes_refresh_token(
        self,
        fixture_store: FixtureCredentialStore,
        tokens: TokenService,
        revocations: RevocationRegistry,
    ) -> None:
        login = await AuthService.login(
            fixture_store, "user@acme.test", FIXTURE_PASSWORD, tokens=tokens
        )

        assert AuthService.logout(login.refresh_token, tokens, revocations) is True
        with pytest.raises(InvalidRefreshTokenError):
            await AuthService.refresh(fixture_store, login.refresh_token, tokens, revocations)

    def test_logout_ignores_unusable_tokens(
        self, tokens: TokenService, revocations: RevocationRegistry
    ) -> None:
        assert AuthService.logout(None, tokens, revocations) is False
        assert AuthService.logout("garbage", tokens, revocations) is False
        assert len(revocations) == 0

    @pytest.mark.asyncio
    async def test_refresh_refused_for_deactivated_user(
        self,
        fixture_store: FixtureCredentialStore,
        tokens: TokenService,
        revocations: RevocationRegistry,
    ) -> None:
        login = await AuthService.login(
            fixture_store, "user@acme.test", FIXTURE_PASSWORD, tokens=tokens
        )
        await fixture_store.deactivate_user(ACME_MEMBER_ID, {"tenant_id": ACME_ID})

        with pytest.raises(InvalidRefreshTokenError):
            await AuthService.refresh(fixture_store, login.refresh_token, tokens, revocations)


class TestPasswordReset:
    """Test the reset-token flow."""

    @pytest.mark.asyncio
    async def test_reset_sets_new_password_and_clears_lock(
        self, fixture_store: FixtureCredentialStore
    ) -> None:
        await fixture_store.update_user_security(
            ACME_MEMBER_ID, login_attempts=5, lock_until=utcnow() + timedelta(hours=2)
        )
        token = await AuthService.request_password_reset(fixture_store, "user@acme.test")
        assert token

        user = await AuthService.reset_password(fixture_store, token, "NewPass1")
        assert user.login_attempts == 0
        assert user.lock_until is None

        result = await AuthService.login(fixture_store, "user@acme.test", "NewPass1")
        assert result.user.id == ACME_MEMBER_ID
        with pytest.raises(InvalidCredentialsError):
            await AuthService.login(fixture_store, "user@acme.test", FIXTURE_PASSWORD)

    @pytest.mark.asyncio
    async def test_token_is_single_use(self, fixture_store: FixtureCredentialStore) -> None:
        token = await AuthService.request_password_reset(fixture_store, "user@acme.test")
        await AuthService.reset_password(fixture_store, token, "NewPass1")

        with pytest.raises(InvalidResetTokenError):
            await AuthService.reset_password(fixture_store, token, "Another1")

    @pytest.mark.asyncio
    async def test_expired_token_rejected(self, fixture_store: FixtureCredentialStore) -> None:
        token = await AuthService.request_password_reset(fixture_store, "user@acme.test")
        await fixture_store.update_user(
            ACME_MEMBER_ID, {"password_reset_expires": utcnow() - timedelta(seconds=1)}
        )

        with pytest.raises(InvalidResetTokenError) as exc_info:
            await AuthService.reset_password(fixture_store, token, "NewPass1")
        assert exc_info.value.status_code == 400

    @pytest.mark.asyncio
    async def test_only_hash_is_stored(self, fixture_store: FixtureCredentialStore) -> None:
        token = await AuthService.request_password_reset(fixture_store, "user@acme.test")
        user = await fixture_store.find_user_by_id(ACME_MEMBER_ID)
        assert user.password_reset_token
        assert user.password_reset_token != token

    @pytest.mark.asyncio
    async def test_unknown_email_returns_none(self, fixture_store: FixtureCredentialStore) -> None:
        assert await AuthService.request_password_reset(fixture_store, "nobody@x.test") is None


class TestEmailVerification:
    """Test the verification-token flow."""

    @pytest.mark.asyncio
    async def test_verify_marks_address_and_clears_token(
        self, fixture_store: FixtureCredentialStore
    ) -> None:
        await fixture_store.update_user(ACME_MEMBER_ID, {"email_verified": False})

        token = await AuthService.request_email_verification(fixture_store, ACME_MEMBER_ID)
        stored = await fixture_store.find_user_by_id(ACME_MEMBER_ID)
        assert stored.email_verification_token
        assert stored.email_verification_token != token

        user = await AuthService.verify_email(fixture_store, token)
        assert user.email_verified is True
        assert user.email_verification_token is None

    @pytest.mark.asyncio
    async def test_token_is_single_use(self, fixture_store: FixtureCredentialStore) -> None:
        await fixture_store.update_user(ACME_MEMBER_ID, {"email_verified": False})
        token = await AuthService.request_email_verification(fixture_store, ACME_MEMBER_ID)
        await AuthService.verify_email(fixture_store, token)

        with pytest.raises(InvalidVerificationTokenError) as exc_info:
            await AuthService.verify_email(fixture_store, token)
        assert exc_info.value.status_code == 400

    @pytest.mark.asyncio
    async def test_verification_keeps_lock(self, fixture_store: FixtureCredentialStore) -> None:
        await fixture_store.update_user(ACME_MEMBER_ID, {"email_verified": False})
        token = await AuthService.request_email_verification(fixture_store, ACME_MEMBER_ID)
        await fixture_store.update_user_security(
            ACME_MEMBER_ID, login_attempts=5, lock_until=utcnow() + timedelta(hours=2)
        )

        user = await AuthService.verify_email(fixture_store, token)
        assert user.login_attempts == 5
        assert user.lock_until is not None

    @pytest.mark.asyncio
    async def test_already_verified_returns_none(
        self, fixture_store: FixtureCredentialStore
    ) -> None:
        assert await AuthService.request_email_verification(fixture_store, ACME_MEMBER_ID) is None

    @pytest.mark.asyncio
    async def test_inactive_user_cannot_verify(self, fixture_store: FixtureCredentialStore) -> None:
        await fixture_store.update_user(ACME_MEMBER_ID, {"email_verified": False})
        token = await AuthService.request_email_verification(fixture_store, ACME_MEMBER_ID)
        await fixture_store.deactivate_user(ACME_MEMBER_ID, {"tenant_id": ACME_ID})

        with pytest.raises(InvalidVerificationTokenError):
            await AuthService.verify_email(fixture_store, token)


class TestFreePlanUpgrade:
    """A free tenant at its limit can create notes again after upgrading."""

    @pytest.mark.asyncio
    async def test_limit_then_upgrade(self, fixture_store: FixtureCredentialStore) -> None:
        admin = await principal_for(fixture_store, ACME_ADMIN_ID)
        for i in range(3):
            await NoteService.create_note(fixture_store, admin, f"note {i}", "body")

        with pytest.raises(QuotaExceededError) as exc_info:
            await NoteService.create_note(fixture_store, admin, "fourth", "body")
        body = exc_info.value.to_dict()
        assert body["code"] == "NOTE_LIMIT_REACHED"
        assert (body["currentCount"], body["limit"], body["plan"]) == (3, 3, "free")

        tenant = await TenantService.upgrade(fixture_store, admin, "acme")
        assert tenant.plan == "pro"
        assert tenant.note_limit == -1

        note = await NoteService.create_note(fixture_store, admin, "fourth", "body")
        assert note.tenant_id == ACME_ID
        assert (await fixture_store.find_tenant_by_id(ACME_ID)).current_note_count == 4
