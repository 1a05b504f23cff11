"""Pytest configuration shared across the suite."""

import os

_DEFAULT_ENV_VARS: dict[str, str] = {
    "DATABASE_URL": "sqlite+aiosqlite:///./test_xero_tokens.db",
    "DATABASE_AUTO_CREATE": "false",
    "XERO_CLIENT_ID": "test-client-id",
    "XERO_CLIENT_SECRET": "test-client-secret",
    "XERO_REDIRECT_URI": "https://example.com/api/auth/callback",
    "FRONTEND_URL": "https://frontend.example",
    "RATE_LIMIT_ENABLED": "false",
}

for key, value in _DEFAULT_ENV_VARS.items():
    os.environ.setdefault(key, value)

import pytest  # noqa: E402
import pytest_asyncio  # noqa: E402
from sqlalchemy.pool import NullPool  # noqa: E402

from app.database import close_db, create_database_engine, create_session_factory, init_db  # noqa: E402
from app.integrations.xero.oauth import XeroOAuthConfig  # noqa: E402
from app.integrations.xero.service import XeroTokenService  # noqa: E402
from app.integrations.xero.token_store import XeroTokenStore  # noqa: E402
from tests.fakes import FakeClock, FakeXeroOAuth  # noqa: E402


@pytest.fixture
def oauth_config() -> XeroOAuthConfig:
    return XeroOAuthConfig(
        client_id="client-123",
        client_secret="shh-secret",
        redirect_uri="https://example.com/api/auth/callback",
        timeout_seconds=5,
    )


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def fake_oauth(oauth_config: XeroOAuthConfig) -> FakeXeroOAuth:
    return FakeXeroOAuth(oauth_config)


@pytest_asyncio.fixture
async def engine(tmp_path):
    engine = create_database_engine(
        f"sqlite+aiosqlite:///{tmp_path / 'tokens.db'}",
        poolclass=NullPool,
    )
    await init_db(engine)
    yield engine
    await close_db(engine)


@pytest.fixture
def session_factory(engine):
    return create_session_factory(engine)


@pytest.fixture
def store(session_factory, clock: FakeClock) -> XeroTokenStore:
    return XeroTokenStore(session_factory, clock=clock)


@pytest.fixture
def service(store: XeroTokenStore, fake_oauth: FakeXeroOAuth, clock: FakeClock) -> XeroTokenService:
    return XeroTokenService(store, fake_oauth, clock=clock)
