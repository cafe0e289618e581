"""
schemas/tenant.py
-----------------
Pydantic request/response models for Tenant.

Naming convention:
  TenantSettingsUpdate → inbound request body
  TenantView           → outbound summary (login / register responses)
  TenantDetailView     → outbound full view (/auth/me, /tenants/current)
"""

from datetime import datetime
from typing import Optional

from pydantic import Field, field_validator

from notes_saas.models.tenant import Tenant
from notes_saas.schemas.base import CamelModel


class UsageView(CamelModel):
    current_note_count: int
    current_user_count: int
    storage_used: int


class TenantSettingsView(CamelModel):
    allow_registration: bool
    max_users_per_tenant: int


class SubscriptionView(CamelModel):
    status: str
    start_date: Optional[datetime] = None
    end_date: Optional[datetime] = None


class TenantView(CamelModel):
    id: str
    slug: str
    name: str
    plan: str
    note_limit: int
    has_unlimited_notes: bool
    remaining_notes: int
    can_create_notes: bool
    usage: UsageView

    @classmethod
    def from_tenant(cls, tenant: Tenant, **extra) -> "TenantView":
        return cls(
            id=tenant.id,
            slug=tenant.slug,
            name=tenant.name,
            plan=tenant.plan,
            note_limit=tenant.note_limit,
            has_unlimited_notes=tenant.has_unlimited_notes,
            remaining_notes=tenant.remaining_notes,
            can_create_notes=tenant.can_create_notes,
            usage=UsageView(
                current_note_count=tenant.current_note_count,
                current_user_count=tenant.current_user_count,
                storage_used=tenant.storage_used,
            ),
            **extra,
        )


class TenantDetailView(TenantView):
    is_active: bool
    settings: TenantSettingsView
    subscription: SubscriptionView

    @classmethod
    def from_tenant(cls, tenant: Tenant, **extra) -> "TenantDetailView":
        return super().from_tenant(
            tenant,
            is_active=tenant.is_active,
            settings=TenantSettingsView(
                allow_registration=tenant.allow_registration,
                max_users_per_tenant=tenant.max_users_per_tenant,
            ),
            subscription=SubscriptionView(
                status=tenant.subscription_status,
                start_date=tenant.subscription_start,
                end_date=tenant.subscription_end,
            ),
            **extra,
        )


class UsageReport(CamelModel):
    plan: str
    note_limit: int
    has_unlimited_notes: bool
    remaining_notes: int
    can_create_notes: bool
    can_add_user: bool
    max_users_per_tenant: int
    usage: UsageView


class TenantSettingsUpdate(CamelModel):
    name: Optional[str] = Field(None, min_length=2, max_length=100, examples=["Acme Corp"])
    allow_registration: Optional[bool] = None
    max_users_per_tenant: Optional[int] = Field(None, ge=1, le=1000)

    @field_validator("name")
    @classmethod
    def strip_name(cls, v: Optional[str]) -> Optional[str]:
        return v.strip() if v is not None else v


class UpgradeResponse(CamelModel):
    message: str
    tenant: TenantDetailView
