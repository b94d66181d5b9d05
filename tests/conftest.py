from __future__ import annotations

import os
import sys
from collections.abc import AsyncIterator, Iterator
from pathlib import Path

ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

import pytest  # noqa: E402
from httpx import ASGITransport, AsyncClient  # noqa: E402

from app.core.config import get_settings  # noqa: E402

TEST_DB_PATH = ROOT / "test.db"
if TEST_DB_PATH.exists():
    TEST_DB_PATH.unlink()

TEST_ENV = {
    "APP_ENV": "test",
    "DATABASE_URL": f"sqlite+aiosqlite:///{TEST_DB_PATH}",
    "GOOGLE_CLIENT_ID": "client-id",
    "GOOGLE_CLIENT_SECRET": "client-secret",
    "GOOGLE_OAUTH_CALLBACK": "http://localhost:8000/google/callback",
    "SUPABASE_URL": "http://identity.test",
    "SUPABASE_SERVICE_ROLE_KEY": "service-key",
    "FRONTEND_BASE_URL": "http://localhost:5173",
}
for key, value in TEST_ENV.items():
    os.environ[key] = value
os.environ.pop("GOOGLE_SCOPES", None)
get_settings.cache_clear()

USERS = {"token-alice": "user-alice", "token-bob": "user-bob"}


async def _reset_database() -> None:
    from app.core.db import engine
    from app.models import Base

    async with engine.begin() as connection:
        await connection.run_sync(Base.metadata.drop_all)
        await connection.run_sync(Base.metadata.create_all)


@pytest.fixture(autouse=True)
def settings_cache(monkeypatch) -> Iterator[None]:
    get_settings.cache_clear()
    yield
    get_settings.cache_clear()


@pytest.fixture()
def fake_identity(monkeypatch) -> dict[str, str]:
    """Resolve the tokens in USERS without calling the identity provider."""
    from app.core.errors import AuthenticationError
    from app.core.identity import IdentityClient

    async def fake_get_user_id(self, token):  # type: ignore[no-untyped-def]
        self._require_configured()
        if not token:
            raise AuthenticationError("Missing Authorization or token in body")
        if token not in USERS:
            raise AuthenticationError("Invalid user token")
        return USERS[token]

    monkeypatch.setattr(IdentityClient, "get_user_id", fake_get_user_id)
    return USERS


@pytest.fixture()
async def client(fake_identity) -> AsyncIterator[AsyncClient]:
    from app.main import app

    await _reset_database()

    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://testserver") as client:
        yield client


@pytest.fixture()
async def session():
    from app.core.db import AsyncSessionLocal

    await _reset_database()
    async with AsyncSessionLocal() as session:
        yield session


@pytest.fixture(scope="session")
def anyio_backend() -> str:
    return "asyncio"
