"""
models/user.py
--------------
User ORM model with roles, permission flags, lockout state and tenant binding.

Role design:
  - 'admin':  Implicitly holds every permission (see effective_permissions).
  - 'member': Holds exactly the permission flags stored on the row.

A user belongs to exactly one tenant. Email is unique within a tenant and
stored lowercase. The password_hash column stores bcrypt hashes only;
plain text is never stored and never logged.
"""

import uuid
from datetime import datetime
from enum import Enum as PyEnum
from typing import Dict, Optional

from sqlalchemy import Boolean, ForeignKey, Integer, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from notes_saas.db.base import Base, TimestampMixin, UTCDateTime


class UserRole(str, PyEnum):
    admin = "admin"
    member = "member"


class Permission(str, PyEnum):
    create_notes = "canCreateNotes"
    edit_notes = "canEditNotes"
    delete_notes = "canDeleteNotes"
    share_notes = "canShareNotes"
    manage_users = "canManageUsers"
    manage_tenant = "canManageTenant"


# Permission → column holding its stored flag
PERMISSION_COLUMNS: Dict[Permission, str] = {
    Permission.create_notes: "can_create_notes",
    Permission.edit_notes: "can_edit_notes",
    Permission.delete_notes: "can_delete_notes",
    Permission.share_notes: "can_share_notes",
    Permission.manage_users: "can_manage_users",
    Permission.manage_tenant: "can_manage_tenant",
}

MEMBER_DEFAULT_PERMISSIONS: Dict[Permission, bool] = {
    Permission.create_notes: True,
    Permission.edit_notes: True,
    Permission.delete_notes: True,
    Permission.share_notes: True,
    Permission.manage_users: False,
    Permission.manage_tenant: False,
}

# Columns a targeted update may write. Lockout state goes through
# update_user_security; is_active through deactivate_user (it frees a user slot).
USER_MUTABLE_FIELDS = frozenset({
    "role",
    "first_name",
    "last_name",
    "password_hash",
    "password_reset_token",
    "password_reset_expires",
    "email_verified",
    "email_verification_token",
    *PERMISSION_COLUMNS.values(),
})

ROLE_FIELDS = ("role", "can_manage_users", "can_manage_tenant")


class User(Base, TimestampMixin):
    __tablename__ = "users"
    __table_args__ = (
        UniqueConstraint("tenant_id", "email", name="uq_users_tenant_email"),
    )

    id: Mapped[str] = mapped_column(
        String(36), primary_key=True, default=lambda: str(uuid.uuid4())
    )
    email: Mapped[str] = mapped_column(String(255), nullable=False, index=True)
    password_hash: Mapped[str] = mapped_column(String(255), nullable=False)
    tenant_id: Mapped[str] = mapped_column(
        String(36),
        ForeignKey("tenants.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    role: Mapped[str] = mapped_column(
        String(20), nullable=False, default=UserRole.member.value
    )

    first_name: Mapped[Optional[str]] = mapped_column(String(50), nullable=True)
    last_name: Mapped[Optional[str]] = mapped_column(String(50), nullable=True)

    # Stored permission flags; admins bypass them
    can_create_notes: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    can_edit_notes: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    can_delete_notes: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    can_share_notes: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    can_manage_users: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    can_manage_tenant: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)

    # Security
    login_attempts: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    lock_until: Mapped[Optional[datetime]] = mapped_column(UTCDateTime(), nullable=True)
    last_login: Mapped[Optional[datetime]] = mapped_column(UTCDateTime(), nullable=True)
    password_reset_token: Mapped[Optional[str]] = mapped_column(String(64), nullable=True)
    password_reset_expires: Mapped[Optional[datetime]] = mapped_column(
        UTCDateTime(), nullable=True
    )
    email_verified: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    email_verification_token: Mapped[Optional[str]] = mapped_column(String(64), nullable=True)

    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True, index=True)

    @classmethod
    def new(
        cls,
        email: str,
        password_hash: str,
        tenant_id: str,
        role: "UserRole | str" = UserRole.member,
        permissions: Optional[Dict[Permission, bool]] = None,
        **overrides,
    ) -> "User":
        """Build a user with every column populated (no reliance on flush defaults)."""
        role = UserRole(role)
        flags = dict(MEMBER_DEFAULT_PERMISSIONS)
        if role is UserRole.admin:
            flags = {permission: True for permission in Permission}
        if permissions:
            flags.update(permissions)
        fields = dict(
            id=str(uuid.uuid4()),
            email=email.strip().lower(),
            password_hash=password_hash,
            tenant_id=tenant_id,
            role=role.value,
            first_name=None,
            last_name=None,
            login_attempts=0,
            lock_until=None,
            last_login=None,
            password_reset_token=None,
            password_reset_expires=None,
            email_verified=False,
            email_verification_token=None,
            is_active=True,
        )
        fields.update({PERMISSION_COLUMNS[p]: value for p, value in flags.items()})
        fields.update(overrides)
        return cls(**fields)

    @property
    def is_admin(self) -> bool:
        return self.role == UserRole.admin.value

    @property
    def permissions(self) -> Dict[str, bool]:
        """Stored flags keyed by their wire name (not the effective set)."""
        return {
            permission.value: bool(getattr(self, column))
            for permission, column in PERMISSION_COLUMNS.items()
        }

    @property
    def full_name(self) -> str:
        if self.first_name and self.last_name:
            return f"{self.first_name} {self.last_name}"
        return self.first_name or self.last_name or self.email.split("@")[0]

    def set_role(self, role: "UserRole | str") -> None:
        """Change role; promotion to admin also raises the manage-* flags."""
        role = UserRole(role)
        self.role = role.value
        if role is UserRole.admin:
            self.can_manage_users = True
            self.can_manage_tenant = True

    def __repr__(self) -> str:
        return f"<User id={self.id} email={self.email} role={self.role}>"
