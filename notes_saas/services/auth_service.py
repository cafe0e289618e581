"""
services/auth_service.py
------------------------
Registration, login, token refresh, logout, password reset and email
verification.

Service layer is responsible for:
  - Ordering the checks so failures come out with the right code
  - Talking to the credential store, the lockout engine and the token service
  - Returning domain objects (ORM models + token strings) to the route layer
  - Never returning HTTP responses (that's the route's job)

Login never reveals whether an email exists: an unknown email, an email
that matches several tenants without a tenant hint, an inactive user and
a wrong password all produce INVALID_CREDENTIALS.
"""

from dataclasses import dataclass
from datetime import timedelta
from typing import Optional

from fastapi import status

from notes_saas.core.config import settings
from notes_saas.core.errors import (
    AccountLockedError,
    InvalidCredentialsError,
    InvalidRefreshTokenError,
    InvalidResetTokenError,
    InvalidTokenError,
    InvalidVerificationTokenError,
    NotesError,
    StoreUnavailableError,
    TenantExistsError,
    TenantInactiveError,
    UserExistsError,
    UserNotFoundError,
)
from notes_saas.core.logging import get_logger
from notes_saas.core.principal import effective_permissions
from notes_saas.core.revocation import RevocationRegistry, revocation_registry
from notes_saas.core.security import (
    generate_secure_token,
    hash_password_async,
    hash_token,
    verify_password_async,
)
from notes_saas.core.tokens import TokenClaims, TokenService, TokenType, token_service
from notes_saas.db.base import utcnow
from notes_saas.db.store import CredentialStore
from notes_saas.models.tenant import Plan, Tenant, slugify
from notes_saas.models.user import User, UserRole
from notes_saas.schemas.auth import RegisterRequest
from notes_saas.services.lockout_service import LockoutService

logger = get_logger(__name__)


@dataclass
class AuthResult:
    user: User
    tenant: Tenant
    access_token: str
    refresh_token: Optional[str] = None


def claims_for(user: User, tenant: Tenant) -> TokenClaims:
    return TokenClaims(
        user_id=user.id,
        tenant_id=tenant.id,
        email=user.email,
        tenant_slug=tenant.slug,
        role=user.role,
        permissions=effective_permissions(user),
    )


async def find_login_candidate(
    store: CredentialStore, email: str, tenant_slug: Optional[str] = None
) -> Optional[User]:
    """
    Resolve the single active user an email refers to.

    With a tenant hint the lookup is scoped to that tenant. Without one the
    email must match exactly one active user across all tenants.
    """
    if tenant_slug:
        tenant = await store.find_tenant_by_slug(tenant_slug.strip())
        if tenant is None:
            return None
        return await store.find_user_by_email(email, tenant.id, active_only=True)

    users = await store.find_users_by_email(email, active_only=True)
    if len(users) > 1:
        logger.warning("Ambiguous login email without tenant hint", matches=len(users))
        return None
    return users[0] if users else None


class AuthService:

    @staticmethod
    async def register(
        store: CredentialStore,
        data: RegisterRequest,
        tokens: TokenService = token_service,
    ) -> AuthResult:
        """
        Create a free tenant and its first admin, then sign them in.

        Raises UserExistsError if the email is registered in any tenant and
        TenantExistsError if the organisation name maps to a taken slug.
        """
        email = data.email.strip().lower()
        if await store.find_users_by_email(email):
            raise UserExistsError()

        slug = slugify(data.tenant_name)
        if await store.find_tenant_by_slug(slug):
            raise TenantExistsError()

        tenant = Tenant.new(slug, data.tenant_name.strip(), Plan.free)
        user = User.new(
            email,
            await hash_password_async(data.password),
            tenant.id,
            role=UserRole.admin,
            first_name=data.first_name,
            last_name=data.last_name,
        )
        tenant, user = await store.create_tenant_with_admin(tenant, user)
        logger.info("Tenant registered", tenant_id=tenant.id, slug=tenant.slug, user_id=user.id)

        claims = claims_for(user, tenant)
        return AuthResult(
            user=user,
            tenant=tenant,
            access_token=tokens.issue_access(claims),
            refresh_token=tokens.issue_refresh(claims),
        )

    @staticmethod
    async def login(
        store: CredentialStore,
        email: str,
        password: str,
        tenant_slug: Optional[str] = None,
        tokens: TokenService = token_service,
    ) -> AuthResult:
        email = email.strip().lower()
        user = await find_login_candidate(store, email, tenant_slug)
        if user is None:
            logger.info("Login failed", reason="unknown_account")
            raise InvalidCredentialsError()

        now = utcnow()
        if LockoutService.is_user_locked(user, now):
            logger.info("Login refused for locked account", user_id=user.id)
            raise AccountLockedError(user.lock_until)

        if not await verify_password_async(password, user.password_hash):
            try:
                await LockoutService.record_failure(store, user, now)
            except StoreUnavailableError:
                logger.warning("Could not record failed login", user_id=user.id)
            logger.info(
                "Login failed",
                reason="bad_password",
                user_id=user.id,
                attempts=user.login_attempts,
            )
            raise InvalidCredentialsError()

        tenant = await store.find_tenant_by_id(user.tenant_id)
        if tenant is None or not tenant.is_active:
            raise TenantInactiveError(
                "Organization account is inactive",
                status_code=status.HTTP_403_FORBIDDEN,
            )

        await LockoutService.record_success(store, user, now)
        logger.info("Login succeeded", user_id=user.id, tenant_id=tenant.id)

        claims = claims_for(user, tenant)
        return AuthResult(
            user=user,
            tenant=tenant,
            access_token=tokens.issue_access(claims),
            refresh_token=tokens.issue_refresh(claims),
        )

    @staticmethod
    async def refresh(
        store: CredentialStore,
        refresh_token: Optional[str],
        tokens: TokenService = token_service,
        revocations: RevocationRegistry = revocation_registry,
    ) -> AuthResult:
        """
        Mint a new access token from a refresh token.

        The refresh token itself is not rotated. Every rejection is reported
        as INVALID_REFRESH_TOKEN.
        """
        if not refresh_token:
            raise InvalidRefreshTokenError("Refresh token required")
        try:
            payload = tokens.verify(refresh_token)
        except InvalidTokenError as exc:
            raise InvalidRefreshTokenError() from exc

        if payload.token_type is not TokenType.refresh or not payload.jti:
            raise InvalidRefreshTokenError()
        if revocations.is_revoked(payload.jti):
            logger.info("Revoked refresh token presented", user_id=payload.sub)
            raise InvalidRefreshTokenError()

        user = await store.find_user_by_id(payload.sub)
        if user is None or not user.is_active or user.tenant_id != payload.tenant_id:
            raise InvalidRefreshTokenError()
        tenant = await store.find_tenant_by_id(user.tenant_id)
        if tenant is None or not tenant.is_active:
            raise InvalidRefreshTokenError()

        return AuthResult(
            user=user,
            tenant=tenant,
            access_token=tokens.issue_access(claims_for(user, tenant)),
        )

    @staticmethod
    def logout(
        refresh_token: Optional[str],
        tokens: TokenService = token_service,
        revocations: RevocationRegistry = revocation_registry,
    ) -> bool:
        """
        Revoke the presented refresh token. Returns True if one was revoked.

        Logout always succeeds for the caller; an unusable refresh token is
        simply ignored. Access tokens stay valid until they expire.
        """
        if not refresh_token:
            return False
        try:
            payload = tokens.verify(refresh_token)
        except NotesError:
            return False
        if payload.token_type is not TokenType.refresh or not payload.jti:
            return False
        revocations.revoke(payload.jti, payload.expires_at)
        logger.info("Refresh token revoked", user_id=payload.sub)
        return True

    @staticmethod
    async def request_password_reset(
        store: CredentialStore, email: str, tenant_slug: Optional[str] = None
    ) -> Optional[str]:
        """
        Issue a single-use reset token for the account, if there is one.

        Only the SHA-256 of the token is stored. Returns the raw token for
        delivery, or None when no single active account matches.
        """
        user = await find_login_candidate(store, email.strip().lower(), tenant_slug)
        if user is None:
            return None

        token = generate_secure_token()
        expires = utcnow() + timedelta(minutes=settings.PASSWORD_RESET_EXPIRE_MINUTES)
        await store.update_user(
            user.id,
            {"password_reset_token": hash_token(token), "password_reset_expires": expires},
        )
        logger.info("Password reset requested", user_id=user.id)
        return token

    @staticmethod
    async def reset_password(store: CredentialStore, token: str, new_password: str) -> User:
        """Consume a reset token, set the new password and clear any lockout."""
        user = await store.find_user_by_reset_token(hash_token(token))
        now = utcnow()
        if (
            user is None
            or not user.is_active
            or user.password_reset_expires is None
            or user.password_reset_expires <= now
        ):
            raise InvalidResetTokenError()

        updated = await store.update_user(
            user.id,
            {
                "password_hash": await hash_password_async(new_password),
                "password_reset_token": None,
                "password_reset_expires": None,
            },
        )
        if updated is None:
            raise InvalidResetTokenError()
        await store.update_user_security(updated.id, login_attempts=0, lock_until=None)
        updated.login_attempts = 0
        updated.lock_until = None
        logger.info("Password reset completed", user_id=updated.id)
        return updated

    @staticmethod
    async def request_email_verification(store: CredentialStore, user_id: str) -> Optional[str]:
        """
        Issue an email verification token for the user. Only its SHA-256 is
        stored. Returns None when the address is already verified.
        """
        user = await store.find_user_by_id(user_id)
        if user is None:
            raise UserNotFoundError()
        if user.email_verified:
            return None

        token = generate_secure_token()
        await store.update_user(user.id, {"email_verification_token": hash_token(token)})
        logger.info("Email verification requested", user_id=user.id)
        return token

    @staticmethod
    async def verify_email(store: CredentialStore, token: str) -> User:
        """Consume a verification token and mark the address verified."""
        user = await store.find_user_by_verification_token(hash_token(token))
        if user is None or not user.is_active:
            raise InvalidVerificationTokenError()

        updated = await store.update_user(
            user.id, {"email_verified": True, "email_verification_token": None}
        )
        if updated is None:
            raise InvalidVerificationTokenError()
        logger.info("Email verified", user_id=updated.id)
        return updated
