"""
schemas/user.py
---------------
Pydantic models for user views and admin user management.

Security note:
  - password_hash, lockout counters and reset tokens are NEVER part of a
    response schema.
  - permissions in a view are the effective set (admins show all true).
"""

from datetime import datetime
from typing import Dict, Optional

from pydantic import Field, field_validator

from notes_saas.core.principal import effective_permissions
from notes_saas.models.user import Permission, User, UserRole
from notes_saas.schemas.base import CamelModel, EmailAddress, check_password_strength


class ProfileView(CamelModel):
    first_name: Optional[str] = None
    last_name: Optional[str] = None


class UserView(CamelModel):
    id: str
    email: str
    role: str
    full_name: str
    profile: ProfileView
    permissions: Dict[str, bool]
    is_admin: bool
    is_active: bool
    created_at: Optional[datetime] = None
    last_login: Optional[datetime] = None

    @classmethod
    def from_user(cls, user: User) -> "UserView":
        return cls(
            id=user.id,
            email=user.email,
            role=user.role,
            full_name=user.full_name,
            profile=ProfileView(first_name=user.first_name, last_name=user.last_name),
            permissions=effective_permissions(user),
            is_admin=user.is_admin,
            is_active=user.is_active,
            created_at=user.created_at,
            last_login=user.last_login,
        )


class UserCreate(CamelModel):
    """Used by an admin to create a user inside their own tenant."""
    email: EmailAddress
    password: str = Field(..., min_length=6, max_length=128)
    role: UserRole = UserRole.member
    first_name: Optional[str] = Field(None, min_length=1, max_length=50)
    last_name: Optional[str] = Field(None, min_length=1, max_length=50)
    permissions: Optional[Dict[Permission, bool]] = None

    check_password = field_validator("password")(check_password_strength)


class RoleUpdate(CamelModel):
    role: UserRole


class UserListResponse(CamelModel):
    users: list[UserView]
    total: int
