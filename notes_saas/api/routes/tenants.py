"""
api/routes/tenants.py
---------------------
Tenant endpoints. Every route works on the caller's own tenant.

GET  /tenants/current          Full tenant view.
GET  /tenants/usage            Counters, limits and derived quota flags.
PUT  /tenants/settings         Admin: rename, registration toggle, user cap.
POST /tenants/{slug}/upgrade   Admin: move the tenant to the pro plan.
"""

from typing import Annotated

from fastapi import APIRouter, Depends

from notes_saas.core.principal import Principal
from notes_saas.dependencies import CurrentPrincipal, StoreDep, get_current_admin
from notes_saas.schemas.tenant import (
    TenantDetailView,
    TenantSettingsUpdate,
    UpgradeResponse,
    UsageReport,
)
from notes_saas.services.quota_service import QuotaService
from notes_saas.services.tenant_service import TenantService

router = APIRouter(prefix="/tenants", tags=["Tenants"])


@router.get(
    "/current",
    response_model=TenantDetailView,
    summary="Get the current user's tenant",
)
async def get_current_tenant(principal: CurrentPrincipal, store: StoreDep) -> TenantDetailView:
    tenant = await TenantService.get_current(store, principal)
    return TenantDetailView.from_tenant(tenant)


@router.get(
    "/usage",
    response_model=UsageReport,
    summary="Get quota usage for the current tenant",
)
async def get_usage(principal: CurrentPrincipal, store: StoreDep) -> UsageReport:
    tenant = await TenantService.get_current(store, principal)
    return UsageReport.model_validate(QuotaService.usage_report(tenant))


@router.put(
    "/settings",
    response_model=TenantDetailView,
    summary="Update tenant settings (admin only)",
)
async def update_settings(
    body: TenantSettingsUpdate,
    store: StoreDep,
    admin: Annotated[Principal, Depends(get_current_admin)],
) -> TenantDetailView:
    tenant = await TenantService.update_settings(store, admin, body)
    return TenantDetailView.from_tenant(tenant)


@router.post(
    "/{slug}/upgrade",
    response_model=UpgradeResponse,
    summary="Upgrade the tenant to the pro plan (admin only)",
)
async def upgrade_tenant(
    slug: str,
    store: StoreDep,
    admin: Annotated[Principal, Depends(get_current_admin)],
) -> UpgradeResponse:
    """
    Admin-only.
    An admin can only upgrade their own tenant; any other slug is reported
    as not found, even if it exists.
    """
    tenant = await TenantService.upgrade(store, admin, slug)
    return UpgradeResponse(
        message="Tenant upgraded to Pro plan successfully",
        tenant=TenantDetailView.from_tenant(tenant),
    )
