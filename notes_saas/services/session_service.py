"""
services/session_service.py
---------------------------
Turns a presented access token into a Principal.

Runs on every authenticated request and caches nothing between requests,
so a deactivated user, a deactivated tenant or a user moved to another
tenant is rejected on the very next call. Order of checks:

  1. no token                       -> NO_TOKEN
  2. bad signature / expiry / shape -> INVALID_TOKEN
  3. not an access token            -> INVALID_TOKEN_TYPE
  4. user missing / inactive        -> USER_NOT_FOUND / USER_INACTIVE
     tenant missing / inactive      -> TENANT_INACTIVE
  5. token tenant != user's tenant  -> TENANT_MISMATCH
  6. build the Principal from the freshly loaded records
"""

from typing import Optional

from notes_saas.core.errors import (
    InvalidTokenTypeError,
    NoTokenError,
    TenantInactiveError,
    TenantMismatchError,
    UserInactiveError,
    UserNotFoundError,
)
from notes_saas.core.logging import get_logger
from notes_saas.core.principal import Principal
from notes_saas.core.tokens import TokenService, TokenType, token_service
from notes_saas.db.store import CredentialStore

logger = get_logger(__name__)


class SessionResolver:

    @staticmethod
    async def resolve(
        store: CredentialStore,
        token: Optional[str],
        tokens: TokenService = token_service,
    ) -> Principal:
        if not token:
            raise NoTokenError()

        payload = tokens.verify(token)
        if payload.token_type is not TokenType.access:
            raise InvalidTokenTypeError()

        user = await store.find_user_by_id(payload.sub)
        if user is None:
            raise UserNotFoundError()
        if not user.is_active:
            raise UserInactiveError()

        tenant = await store.find_tenant_by_id(user.tenant_id)
        if tenant is None or not tenant.is_active:
            raise TenantInactiveError()

        if payload.tenant_id != user.tenant_id:
            logger.warning(
                "Token tenant mismatch",
                user_id=user.id,
                claimed_tenant_id=payload.tenant_id,
                user_tenant_id=user.tenant_id,
            )
            raise TenantMismatchError()

        return Principal.from_records(user, tenant)
