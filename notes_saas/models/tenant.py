"""
models/tenant.py
----------------
Tenant (organisation) ORM model.

Each tenant is an isolated organisational unit and the unit of billing and
quota. All data belonging to a tenant is scoped by tenant_id at the query
level: services build every filter with Principal.scope(), which always
writes the caller's tenant_id into it.

Usage counters (current_note_count, current_user_count, storage_used) are
maintained by increment / decrement operations in the credential store.
They are never recomputed by counting rows on the hot path.

Plan-dependent defaults come from PlanPolicy, resolved once when the tenant
is created or changes plan.
"""

import re
import uuid
from dataclasses import dataclass
from datetime import datetime
from enum import Enum as PyEnum
from typing import Optional

from sqlalchemy import Boolean, CheckConstraint, Integer, String
from sqlalchemy.orm import Mapped, mapped_column

from notes_saas.db.base import Base, TimestampMixin, UTCDateTime, utcnow

UNLIMITED = -1
FREE_NOTE_LIMIT_RANGE = (1, 10)
SLUG_MAX_LENGTH = 50


def slugify(name: str) -> str:
    """
    Derive a tenant slug from an organisation name.

    "Acme  Corp!" -> "acme-corp"
    """
    slug = re.sub(r"[^a-z0-9\s-]", "", name.lower())
    slug = re.sub(r"\s+", "-", slug)
    slug = re.sub(r"-+", "-", slug)
    return slug[:SLUG_MAX_LENGTH].strip("-")


class Plan(str, PyEnum):
    free = "free"
    pro = "pro"


class SubscriptionStatus(str, PyEnum):
    active = "active"
    inactive = "inactive"
    suspended = "suspended"
    cancelled = "cancelled"


class UsageField(str, PyEnum):
    notes = "current_note_count"
    users = "current_user_count"
    storage = "storage_used"


# Columns a targeted update may write. Usage counters move only through the
# store's increment / decrement and quota-gated operations.
TENANT_MUTABLE_FIELDS = frozenset({
    "name",
    "plan",
    "note_limit",
    "max_users_per_tenant",
    "allow_registration",
    "subscription_status",
    "subscription_start",
    "subscription_end",
    "is_active",
})

PLAN_FIELDS = ("plan", "note_limit", "max_users_per_tenant")


@dataclass(frozen=True)
class PlanPolicy:
    default_note_limit: int
    default_max_users: int

    @classmethod
    def for_plan(cls, plan: "Plan | str") -> "PlanPolicy":
        return PLAN_POLICIES[Plan(plan)]


PLAN_POLICIES = {
    Plan.free: PlanPolicy(default_note_limit=3, default_max_users=5),
    Plan.pro: PlanPolicy(default_note_limit=UNLIMITED, default_max_users=100),
}


class Tenant(Base, TimestampMixin):
    __tablename__ = "tenants"
    __table_args__ = (
        CheckConstraint("current_note_count >= 0", name="ck_tenants_note_count"),
        CheckConstraint("current_user_count >= 0", name="ck_tenants_user_count"),
        CheckConstraint("storage_used >= 0", name="ck_tenants_storage_used"),
    )

    id: Mapped[str] = mapped_column(
        String(36), primary_key=True, default=lambda: str(uuid.uuid4())
    )
    slug: Mapped[str] = mapped_column(String(50), unique=True, nullable=False, index=True)
    name: Mapped[str] = mapped_column(String(100), nullable=False)

    plan: Mapped[str] = mapped_column(String(10), nullable=False, default=Plan.free.value)
    note_limit: Mapped[int] = mapped_column(Integer, nullable=False, default=3)

    subscription_status: Mapped[str] = mapped_column(
        String(20), nullable=False, default=SubscriptionStatus.active.value
    )
    subscription_start: Mapped[Optional[datetime]] = mapped_column(
        UTCDateTime(), nullable=True, default=utcnow
    )
    subscription_end: Mapped[Optional[datetime]] = mapped_column(UTCDateTime(), nullable=True)

    current_note_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    current_user_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    storage_used: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    allow_registration: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    max_users_per_tenant: Mapped[int] = mapped_column(Integer, nullable=False, default=5)

    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True, index=True)

    @classmethod
    def new(cls, slug: str, name: str, plan: "Plan | str" = Plan.free, **overrides) -> "Tenant":
        """Build a tenant with every plan-dependent field resolved from PlanPolicy."""
        policy = PlanPolicy.for_plan(plan)
        fields = dict(
            id=str(uuid.uuid4()),
            slug=slug,
            name=name,
            plan=Plan(plan).value,
            note_limit=policy.default_note_limit,
            max_users_per_tenant=policy.default_max_users,
            subscription_status=SubscriptionStatus.active.value,
            subscription_start=utcnow(),
            subscription_end=None,
            current_note_count=0,
            current_user_count=0,
            storage_used=0,
            allow_registration=True,
            is_active=True,
        )
        fields.update(overrides)
        return cls(**fields)

    # ── Derived quota state ──────────────────────────────────────────────────

    @property
    def has_unlimited_notes(self) -> bool:
        return self.note_limit == UNLIMITED

    @property
    def remaining_notes(self) -> int:
        if self.has_unlimited_notes:
            return UNLIMITED
        return max(0, self.note_limit - self.current_note_count)

    @property
    def is_subscription_active(self) -> bool:
        return self.subscription_status == SubscriptionStatus.active.value

    @property
    def can_create_notes(self) -> bool:
        if not self.is_active or not self.is_subscription_active:
            return False
        return self.has_unlimited_notes or self.current_note_count < self.note_limit

    @property
    def can_add_user(self) -> bool:
        if not self.is_active or not self.is_subscription_active:
            return False
        return self.current_user_count < self.max_users_per_tenant

    # ── Plan changes ─────────────────────────────────────────────────────────

    def change_plan(self, plan: "Plan | str", note_limit: Optional[int] = None) -> None:
        """
        Switch plan keeping plan / note_limit consistent.

        free: note_limit must land in 1-10; anything else falls back to the
              policy default (3).
        pro:  unlimited unless an explicit positive override is given.
        """
        plan = Plan(plan)
        policy = PlanPolicy.for_plan(plan)
        if plan is Plan.free:
            low, high = FREE_NOTE_LIMIT_RANGE
            candidate = note_limit if note_limit is not None else self.note_limit
            if candidate is None or not (low <= candidate <= high):
                candidate = policy.default_note_limit
            self.note_limit = candidate
        else:
            if note_limit is not None and note_limit > 0:
                self.note_limit = note_limit
            else:
                self.note_limit = UNLIMITED
        if self.plan != plan.value:
            if plan is Plan.pro:
                self.max_users_per_tenant = max(
                    self.max_users_per_tenant, policy.default_max_users
                )
            else:
                self.max_users_per_tenant = policy.default_max_users
        self.plan = plan.value

    def __repr__(self) -> str:
        return f"<Tenant id={self.id} slug={self.slug} plan={self.plan}>"
