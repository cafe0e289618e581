"""
services/user_service.py
------------------------
Admin user management inside the caller's own tenant.

All lookups and writes take a Principal.scope() filter. A user id that
belongs to another tenant behaves exactly like one that does not exist.

Holding canManageUsers lets a member create and deactivate ordinary
members. Creating an admin, granting a manage-* permission or deactivating
an admin still needs the admin role.
"""

from typing import Dict, Optional

from fastapi import status

from notes_saas.core.errors import (
    InsufficientRoleError,
    TenantNotFoundError,
    UserExistsError,
    UserNotFoundError,
)
from notes_saas.core.logging import get_logger
from notes_saas.core.principal import Principal
from notes_saas.core.security import hash_password_async
from notes_saas.db.store import CredentialStore
from notes_saas.models.user import ROLE_FIELDS, Permission, User, UserRole
from notes_saas.schemas.user import UserCreate
from notes_saas.services.quota_service import QuotaService, user_limit_error

logger = get_logger(__name__)

ADMIN_ONLY_GRANTS = (Permission.manage_users, Permission.manage_tenant)


def require_admin(principal: Principal) -> None:
    if not principal.is_admin:
        raise InsufficientRoleError(required=[UserRole.admin.value], current=principal.role)


def grants_admin_powers(role: UserRole, permissions: Optional[Dict[Permission, bool]]) -> bool:
    if role is UserRole.admin:
        return True
    return any((permissions or {}).get(permission) for permission in ADMIN_ONLY_GRANTS)


class UserService:

    @staticmethod
    async def create_user_by_admin(
        store: CredentialStore, principal: Principal, data: UserCreate
    ) -> User:
        """
        Create a user in the caller's tenant.

        Raises InsufficientRoleError when a non-admin asks for an admin or a
        manage-* grant, UserExistsError on a duplicate email within the
        tenant and UserLimitReachedError when the tenant has no free slot.
        """
        if grants_admin_powers(data.role, data.permissions):
            require_admin(principal)

        tenant = await store.find_tenant_by_id(principal.tenant_id)
        if tenant is None:
            raise TenantNotFoundError()
        QuotaService.ensure_can_add_user(tenant)

        email = data.email.strip().lower()
        if await store.find_user_by_email(email, tenant.id):
            raise UserExistsError()

        user = User.new(
            email,
            await hash_password_async(data.password),
            role=data.role,
            permissions=data.permissions,
            first_name=data.first_name,
            last_name=data.last_name,
            **principal.scope(),
        )
        if not await store.create_user(user):
            tenant = await store.find_tenant_by_id(principal.tenant_id) or tenant
            raise user_limit_error(tenant)

        logger.info(
            "Admin created user",
            new_user_id=user.id,
            role=user.role,
            tenant_id=tenant.id,
            created_by=principal.user_id,
        )
        return user

    @staticmethod
    async def list_users_in_tenant(store: CredentialStore, principal: Principal) -> list[User]:
        return await store.list_users(principal.scope())

    @staticmethod
    async def get_user_in_tenant(
        store: CredentialStore, principal: Principal, user_id: str
    ) -> User:
        user = await store.find_scoped_user(user_id, principal.scope())
        if user is None:
            raise UserNotFoundError(status_code=status.HTTP_404_NOT_FOUND)
        return user

    @staticmethod
    async def change_role(
        store: CredentialStore, principal: Principal, user_id: str, role: UserRole
    ) -> User:
        user = await UserService.get_user_in_tenant(store, principal, user_id)
        previous = user.role
        user.set_role(role)
        user = await store.update_user(
            user.id,
            {field: getattr(user, field) for field in ROLE_FIELDS},
            scope=principal.scope(),
        )
        if user is None:
            raise UserNotFoundError(status_code=status.HTTP_404_NOT_FOUND)
        logger.info(
            "User role changed",
            user_id=user.id,
            tenant_id=user.tenant_id,
            previous_role=previous,
            role=user.role,
            changed_by=principal.user_id,
        )
        return user

    @staticmethod
    async def deactivate(store: CredentialStore, principal: Principal, user_id: str) -> User:
        """Soft-disable a user and release their user slot. Admin targets need an admin."""
        user = await UserService.get_user_in_tenant(store, principal, user_id)
        if user.is_admin:
            require_admin(principal)
        if user.is_active:
            await store.deactivate_user(user.id, principal.scope())
            user.is_active = False
            logger.info(
                "User deactivated",
                user_id=user.id,
                tenant_id=user.tenant_id,
                deactivated_by=principal.user_id,
            )
        return user
