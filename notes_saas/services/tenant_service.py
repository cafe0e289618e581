"""
services/tenant_service.py
--------------------------
Business logic for tenant management.

Service layer is responsible for:
  - Loading the caller's own tenant (never a tenant named by the client
    unless it is the caller's)
  - Enforcing plan rules through Tenant.change_plan / PlanPolicy
  - Writing only the plan, subscription and settings columns it changes;
    usage counters are never written from a snapshot
  - Returning domain objects (ORM models) to the route layer
"""

from datetime import timedelta

from notes_saas.core.errors import AlreadyProError, TenantNotFoundError
from notes_saas.core.logging import get_logger
from notes_saas.core.principal import Principal
from notes_saas.db.base import utcnow
from notes_saas.db.store import CredentialStore
from notes_saas.models.tenant import PLAN_FIELDS, Plan, SubscriptionStatus, Tenant
from notes_saas.schemas.tenant import TenantSettingsUpdate

logger = get_logger(__name__)

SUBSCRIPTION_TERM = timedelta(days=365)


class TenantService:

    @staticmethod
    async def get_current(store: CredentialStore, principal: Principal) -> Tenant:
        tenant = await store.find_tenant_by_id(principal.tenant_id)
        if tenant is None:
            raise TenantNotFoundError()
        return tenant

    @staticmethod
    async def upgrade(store: CredentialStore, principal: Principal, slug: str) -> Tenant:
        """
        Move the caller's tenant to the pro plan for one year.

        A slug that is not the caller's own tenant is reported as not found.
        """
        tenant = await store.find_tenant_by_slug(slug)
        if tenant is None or tenant.id != principal.tenant_id:
            raise TenantNotFoundError()
        if tenant.plan == Plan.pro.value:
            raise AlreadyProError()

        now = utcnow()
        tenant.change_plan(Plan.pro)
        changes = {field: getattr(tenant, field) for field in PLAN_FIELDS}
        changes.update(
            subscription_status=SubscriptionStatus.active.value,
            subscription_start=now,
            subscription_end=now + SUBSCRIPTION_TERM,
        )
        tenant = await store.update_tenant(tenant.id, changes)
        if tenant is None:
            raise TenantNotFoundError()
        logger.info(
            "Tenant upgraded",
            tenant_id=tenant.id,
            plan=tenant.plan,
            upgraded_by=principal.user_id,
        )
        return tenant

    @staticmethod
    async def update_settings(
        store: CredentialStore, principal: Principal, data: TenantSettingsUpdate
    ) -> Tenant:
        changes = data.model_dump(exclude_unset=True, exclude_none=True)
        tenant = await store.update_tenant(principal.tenant_id, changes)
        if tenant is None:
            raise TenantNotFoundError()
        logger.info(
            "Tenant settings updated",
            tenant_id=tenant.id,
            fields=sorted(changes),
            updated_by=principal.user_id,
        )
        return tenant
