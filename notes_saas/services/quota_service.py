"""
services/quota_service.py
-------------------------
Tenant quota gate.

The checks here only read a Tenant snapshot. The authoritative check for a
note or user insert is the conditional counter UPDATE the credential store
runs in the same transaction; these functions give the fast rejection and
build the error the client sees.
"""

from typing import Any, Dict

from notes_saas.core.errors import QuotaExceededError, UserLimitReachedError
from notes_saas.models.tenant import Plan, Tenant

FREE_PLAN_LIMIT_MESSAGE = (
    "Free plan limit reached. You can only create {limit} notes. "
    "Upgrade to Pro for unlimited notes."
)
PLAN_LIMIT_MESSAGE = "Note creation limit reached for your current plan."


def can_create_note(tenant: Tenant) -> bool:
    return tenant.can_create_notes


def can_add_user(tenant: Tenant) -> bool:
    return tenant.can_add_user


def note_limit_error(tenant: Tenant) -> QuotaExceededError:
    if tenant.plan == Plan.free.value:
        message = FREE_PLAN_LIMIT_MESSAGE.format(limit=tenant.note_limit)
    else:
        message = PLAN_LIMIT_MESSAGE
    return QuotaExceededError(
        message,
        current_count=tenant.current_note_count,
        limit=tenant.note_limit,
        plan=tenant.plan,
    )


def user_limit_error(tenant: Tenant) -> UserLimitReachedError:
    return UserLimitReachedError(
        current_count=tenant.current_user_count,
        limit=tenant.max_users_per_tenant,
        plan=tenant.plan,
    )


class QuotaService:

    @staticmethod
    def ensure_can_create_note(tenant: Tenant) -> None:
        if not can_create_note(tenant):
            raise note_limit_error(tenant)

    @staticmethod
    def ensure_can_add_user(tenant: Tenant) -> None:
        if not can_add_user(tenant):
            raise user_limit_error(tenant)

    @staticmethod
    def usage_report(tenant: Tenant) -> Dict[str, Any]:
        return {
            "plan": tenant.plan,
            "noteLimit": tenant.note_limit,
            "hasUnlimitedNotes": tenant.has_unlimited_notes,
            "remainingNotes": tenant.remaining_notes,
            "canCreateNotes": tenant.can_create_notes,
            "canAddUser": tenant.can_add_user,
            "maxUsersPerTenant": tenant.max_users_per_tenant,
            "usage": {
                "currentNoteCount": tenant.current_note_count,
                "currentUserCount": tenant.current_user_count,
                "storageUsed": tenant.storage_used,
            },
        }
