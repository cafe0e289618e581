"""
core/principal.py
-----------------
The authenticated principal attached to every request, and the one rule that
turns a user row into the permissions it actually holds.

effective_permissions() is the only place the admin bypass lives. Guards,
token claims and response views all go through it.
"""

from dataclasses import dataclass, field
from typing import Any, Dict, Mapping, Optional

from notes_saas.models.tenant import Tenant
from notes_saas.models.user import Permission, User, UserRole


def effective_permissions(user: User) -> Dict[str, bool]:
    """
    Permissions the user holds right now, keyed by wire name.

    Inactive users hold nothing; admins hold everything regardless of the
    stored flags; members hold exactly their stored flags.
    """
    if not user.is_active:
        return {permission.value: False for permission in Permission}
    if user.role == UserRole.admin.value:
        return {permission.value: True for permission in Permission}
    return user.permissions


@dataclass(frozen=True)
class Principal:
    user_id: str
    tenant_id: str
    tenant_slug: str
    role: str
    permissions: Mapping[str, bool] = field(default_factory=dict)
    email: Optional[str] = None

    @classmethod
    def from_records(cls, user: User, tenant: Tenant) -> "Principal":
        return cls(
            user_id=user.id,
            tenant_id=tenant.id,
            tenant_slug=tenant.slug,
            role=user.role,
            permissions=effective_permissions(user),
            email=user.email,
        )

    @property
    def is_admin(self) -> bool:
        return self.role == UserRole.admin.value

    def has_permission(self, permission: "Permission | str") -> bool:
        return bool(self.permissions.get(Permission(permission).value, False))

    # ── Tenant scoping ───────────────────────────────────────────────────────

    def scope(self, query: Optional[Mapping[str, Any]] = None) -> Dict[str, Any]:
        """
        Merge this principal's tenant_id into a filter / document.

        A caller-supplied tenant_id is overwritten, never trusted. Every
        tenant-scoped store call takes the result as its Scope.
        """
        scoped = dict(query or {})
        scoped["tenant_id"] = self.tenant_id
        return scoped

    def as_dict(self) -> Dict[str, Any]:
        return {
            "userId": self.user_id,
            "tenantId": self.tenant_id,
            "tenantSlug": self.tenant_slug,
            "role": self.role,
            "permissions": dict(self.permissions),
            "isAdmin": self.is_admin,
        }
