"""
models/__init__.py
------------------
Re-export all models so create_tables.py (and Alembic's env.py) can import
Base and discover all tables via a single import:

    from notes_saas.models import Base
"""

from notes_saas.db.base import Base
from notes_saas.models.note import Note
from notes_saas.models.tenant import Plan, PlanPolicy, SubscriptionStatus, Tenant, UsageField
from notes_saas.models.user import Permission, User, UserRole

__all__ = [
    "Base",
    "Note",
    "Permission",
    "Plan",
    "PlanPolicy",
    "SubscriptionStatus",
    "Tenant",
    "UsageField",
    "User",
    "UserRole",
]
