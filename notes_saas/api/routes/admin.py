"""
api/routes/admin.py
-------------------
User management within the caller's tenant (canManageUsers; admins hold it
implicitly).

GET   /admin/users                      List users in the tenant.
POST  /admin/users                      Create a user (subject to the user cap).
PATCH /admin/users/{user_id}/role       Admin: change a user's role.
POST  /admin/users/{user_id}/deactivate  Soft-disable a user.
"""

from typing import Annotated

from fastapi import APIRouter, Depends, status

from notes_saas.core.principal import Principal
from notes_saas.dependencies import StoreDep, get_current_admin, require_permission
from notes_saas.models.user import Permission
from notes_saas.schemas.user import RoleUpdate, UserCreate, UserListResponse, UserView
from notes_saas.services.user_service import UserService

router = APIRouter(prefix="/admin", tags=["Admin"])

UserManager = Annotated[Principal, Depends(require_permission(Permission.manage_users))]


@router.get(
    "/users",
    response_model=UserListResponse,
    summary="List all users in the current tenant",
)
async def list_users(store: StoreDep, manager: UserManager) -> UserListResponse:
    users = await UserService.list_users_in_tenant(store, manager)
    return UserListResponse(users=[UserView.from_user(u) for u in users], total=len(users))


@router.post(
    "/users",
    response_model=UserView,
    status_code=status.HTTP_201_CREATED,
    summary="Create a new user in the current tenant",
)
async def admin_create_user(body: UserCreate, store: StoreDep, manager: UserManager) -> UserView:
    """
    The tenant comes from the caller's token; a user can never be created
    in another tenant. Fails with USER_LIMIT_REACHED once the tenant's
    maxUsersPerTenant is used up.
    """
    user = await UserService.create_user_by_admin(store, manager, body)
    return UserView.from_user(user)


@router.patch(
    "/users/{user_id}/role",
    response_model=UserView,
    summary="Change a user's role (admin only)",
)
async def change_role(
    user_id: str,
    body: RoleUpdate,
    store: StoreDep,
    admin: Annotated[Principal, Depends(get_current_admin)],
) -> UserView:
    user = await UserService.change_role(store, admin, user_id, body.role)
    return UserView.from_user(user)


@router.post(
    "/users/{user_id}/deactivate",
    response_model=UserView,
    summary="Deactivate a user",
)
async def deactivate_user(user_id: str, store: StoreDep, manager: UserManager) -> UserView:
    user = await UserService.deactivate(store, manager, user_id)
    return UserView.from_user(user)
