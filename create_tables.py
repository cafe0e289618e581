"""
create_tables.py
----------------
One-shot script to create all database tables and seed the demo tenants.
Use this for quick setup. For production migrations, use Alembic instead.

Seeds (skipped when the slug already exists):
    acme   (free)  admin@acme.test / user@acme.test
    globex (pro)   admin@globex.test / user@globex.test
All seeded accounts use FIXTURE_PASSWORD.

Usage:
    python create_tables.py            # create tables + seed
    python create_tables.py --no-seed  # create tables only
"""

import asyncio
import sys

from notes_saas.core.config import settings
from notes_saas.core.logging import configure_logging, get_logger
from notes_saas.core.security import hash_password
from notes_saas.db.fixtures import FIXTURE_TENANTS, FIXTURE_USERS
from notes_saas.db.session import build_engine, build_session_factory
from notes_saas.db.store import SqlAlchemyCredentialStore
from notes_saas.models import Base, Tenant, User  # Imports all models so metadata is populated

logger = get_logger(__name__)


async def seed(store: SqlAlchemyCredentialStore) -> None:
    password_hash = hash_password(settings.FIXTURE_PASSWORD)
    for entry in FIXTURE_TENANTS:
        if await store.find_tenant_by_slug(entry["slug"]):
            logger.info("Seed tenant exists, skipping", slug=entry["slug"])
            continue
        tenant = Tenant.new(entry["slug"], entry["name"], entry["plan"])
        users = [u for u in FIXTURE_USERS if u["tenant_id"] == entry["id"]]
        admin, *members = [
            User.new(
                u["email"],
                password_hash,
                tenant.id,
                role=u["role"],
                first_name=u["first_name"],
                last_name=u["last_name"],
                email_verified=True,
            )
            for u in users
        ]
        await store.create_tenant_with_admin(tenant, admin)
        for member in members:
            await store.create_user(member)
        logger.info("Seeded tenant", slug=tenant.slug, plan=tenant.plan, users=len(users))


async def create_all_tables(with_seed: bool = True) -> None:
    engine = build_engine(settings.DATABASE_URL, echo=True)
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    if with_seed:
        store = SqlAlchemyCredentialStore(
            build_session_factory(engine), timeout=settings.STORE_TIMEOUT_SECONDS
        )
        await seed(store)
    await engine.dispose()
    print("✅  All tables created successfully.")


if __name__ == "__main__":
    configure_logging()
    asyncio.run(create_all_tables(with_seed="--no-seed" not in sys.argv))
