"""Shared fixtures for the test suite."""

import os

# Settings are read at import time; set them before anything imports notes_saas.
os.environ["SECRET_KEY"] = "test-secret-key-not-for-production-use-0123456789"
os.environ["DATABASE_URL"] = "sqlite+aiosqlite:///:memory:"
os.environ["BCRYPT_ROUNDS"] = "4"
os.environ["APP_ENV"] = "test"
os.environ["IDENTITY_PROVIDER"] = "store"
os.environ["DEBUG"] = "false"

from typing import AsyncIterator  # noqa: E402

import pytest  # noqa: E402
import pytest_asyncio  # noqa: E402
from fastapi import FastAPI  # noqa: E402
from fastapi.testclient import TestClient  # noqa: E402
from sqlalchemy.ext.asyncio import create_async_engine  # noqa: E402
from sqlalchemy.pool import StaticPool  # noqa: E402

from notes_saas.core.principal import Principal  # noqa: E402
from notes_saas.core.revocation import RevocationRegistry  # noqa: E402
from notes_saas.core.tokens import TokenService  # noqa: E402
from notes_saas.db.fixtures import FixtureCredentialStore  # noqa: E402
from notes_saas.db.session import build_session_factory  # noqa: E402
from notes_saas.db.store import SqlAlchemyCredentialStore  # noqa: E402
from notes_saas.models import Base  # noqa: E402

FIXTURE_PASSWORD = "password"

ACME_ID = "fixture-tenant-acme"
GLOBEX_ID = "fixture-tenant-globex"
ACME_ADMIN_ID = "fixture-admin-acme"
ACME_MEMBER_ID = "fixture-user-acme"
GLOBEX_ADMIN_ID = "fixture-admin-globex"
GLOBEX_MEMBER_ID = "fixture-user-globex"


@pytest.fixture
def fixture_store() -> FixtureCredentialStore:
    """Fresh seeded in-memory store (acme free / globex pro)."""
    return FixtureCredentialStore(FIXTURE_PASSWORD)


@pytest.fixture
def tokens() -> TokenService:
    return TokenService("unit-test-secret")


@pytest.fixture
def revocations() -> RevocationRegistry:
    return RevocationRegistry()


@pytest_asyncio.fixture
async def sql_store() -> AsyncIterator[SqlAlchemyCredentialStore]:
    """SqlAlchemyCredentialStore on a private in-memory SQLite database."""
    engine = create_async_engine(
        "sqlite+aiosqlite:///:memory:",
        poolclass=StaticPool,
        connect_args={"check_same_thread": False},
    )
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield SqlAlchemyCredentialStore(build_session_factory(engine), timeout=5.0)
    await engine.dispose()


async def principal_for(store, user_id: str) -> Principal:
    user = await store.find_user_by_id(user_id)
    tenant = await store.find_tenant_by_id(user.tenant_id)
    return Principal.from_records(user, tenant)


@pytest.fixture
def app(fixture_store: FixtureCredentialStore) -> FastAPI:
    """Application wired to the fixture store."""
    from main import create_application
    from notes_saas.dependencies import get_store

    application = create_application()
    application.dependency_overrides[get_store] = lambda: fixture_store
    return application


@pytest.fixture
def client(app: FastAPI) -> TestClient:
    return TestClient(app)
