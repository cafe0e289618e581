"""
db/providers.py
---------------
Selects the identity provider backing the credential store.

IDENTITY_PROVIDER=store   → SqlAlchemyCredentialStore on DATABASE_URL
IDENTITY_PROVIDER=fixture → FixtureCredentialStore (development only)
"""

from notes_saas.core.config import Settings, settings
from notes_saas.core.logging import get_logger
from notes_saas.db.store import CredentialStore, SqlAlchemyCredentialStore

logger = get_logger(__name__)


def create_credential_store(config: Settings = settings) -> CredentialStore:
    if config.IDENTITY_PROVIDER == "fixture":
        if config.is_production:
            raise RuntimeError("The fixture identity provider cannot run in production")
        from notes_saas.db.fixtures import FixtureCredentialStore

        logger.warning("Using fixture identity provider", app_env=config.APP_ENV)
        return FixtureCredentialStore(config.FIXTURE_PASSWORD)

    from notes_saas.db.session import AsyncSessionLocal

    return SqlAlchemyCredentialStore(AsyncSessionLocal, timeout=config.STORE_TIMEOUT_SECONDS)
