"""
dependencies.py
---------------
FastAPI dependency injection functions for authentication and authorisation.

Flow:
  1. get_token reads the Bearer token from the Authorization header, falling
     back to the auth cookie.
  2. get_principal hands it to SessionResolver, which verifies the token and
     reloads user + tenant from the credential store on every request.
  3. require_role / require_permission layer checks on top of the principal.

The tenant_id on the principal (never one from the request) scopes every
store call, so an elevated role never reaches across tenants.
"""

from functools import lru_cache
from typing import Annotated, Callable, Optional

from fastapi import Depends, Request
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from notes_saas.core.config import settings
from notes_saas.core.errors import InsufficientRoleError, NotesError, PermissionDeniedError
from notes_saas.core.logging import bind_request_context, get_logger
from notes_saas.core.principal import Principal
from notes_saas.db.providers import create_credential_store
from notes_saas.db.store import CredentialStore
from notes_saas.models.user import Permission, UserRole
from notes_saas.services.session_service import SessionResolver

logger = get_logger(__name__)

# auto_error=False: a missing header falls through to the cookie, then NO_TOKEN
bearer_scheme = HTTPBearer(auto_error=False)


@lru_cache()
def get_store() -> CredentialStore:
    return create_credential_store(settings)


def get_token(
    request: Request,
    credentials: Annotated[Optional[HTTPAuthorizationCredentials], Depends(bearer_scheme)],
) -> Optional[str]:
    if credentials is not None and credentials.scheme.lower() == "bearer":
        return credentials.credentials
    return request.cookies.get(settings.AUTH_COOKIE_NAME)


async def get_principal(
    token: Annotated[Optional[str], Depends(get_token)],
    store: Annotated[CredentialStore, Depends(get_store)],
) -> Principal:
    """Resolve the request's principal or fail with the resolver's error code."""
    try:
        principal = await SessionResolver.resolve(store, token)
    except NotesError as exc:
        logger.info("Authentication rejected", code=exc.code.value)
        raise
    bind_request_context(tenant_id=principal.tenant_id, user_id=principal.user_id)
    return principal


async def get_optional_principal(
    token: Annotated[Optional[str], Depends(get_token)],
    store: Annotated[CredentialStore, Depends(get_store)],
) -> Optional[Principal]:
    """Like get_principal, but anonymous / invalid credentials yield None."""
    if not token:
        return None
    try:
        principal = await SessionResolver.resolve(store, token)
    except NotesError as exc:
        if exc.status_code >= 500:
            raise
        return None
    bind_request_context(tenant_id=principal.tenant_id, user_id=principal.user_id)
    return principal


CurrentPrincipal = Annotated[Principal, Depends(get_principal)]
StoreDep = Annotated[CredentialStore, Depends(get_store)]


def require_role(*roles: UserRole) -> Callable:
    allowed = [UserRole(role).value for role in roles]

    async def checker(principal: CurrentPrincipal) -> Principal:
        if principal.role not in allowed:
            raise InsufficientRoleError(required=allowed, current=principal.role)
        return principal

    return checker


def require_permission(permission: Permission) -> Callable:
    permission = Permission(permission)

    async def checker(principal: CurrentPrincipal) -> Principal:
        if not principal.has_permission(permission):
            raise PermissionDeniedError(permission.value)
        return principal

    return checker


get_current_admin = require_role(UserRole.admin)
