from __future__ import annotations

from collections.abc import AsyncIterator, Awaitable, Callable
from typing import Any, Dict, Optional

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient
from mongomock_motor import AsyncMongoMockClient

from lomu.config import get_settings
from lomu.db import close_mongo_connection, connect_to_mongo
from lomu.integrations import cloudinary as media
from lomu.main import app
from lomu.services.auth_service import reset_rate_limiters

UserFactory = Callable[..., Awaitable[Dict[str, Any]]]


@pytest.fixture(autouse=True)
def _env_overrides(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("MONGO_URI", "mongodb://localhost:27017/test")
    monkeypatch.setenv("MONGO_DB_NAME", "lomu-test")
    monkeypatch.setenv("JWT_SECRET", "test-secret")
    monkeypatch.setenv("BCRYPT_ROUNDS", "10")
    monkeypatch.setenv("ADMIN_USERNAMES", "admin")
    monkeypatch.setenv("FRONTEND_URL", "https://lomu.test")
    monkeypatch.setenv("AUTH_RATE_LIMIT_MAX", "1000")
    for name in ("CLOUDINARY_URL", "CLOUDINARY_CLOUD_NAME", "SMTP_HOST", "REDIS_URL", "MATCH_TRANSACTIONS"):
        monkeypatch.delenv(name, raising=False)
    get_settings.cache_clear()  # type: ignore[attr-defined]
    media.is_enabled.cache_clear()
    media.ensure_configured.cache_clear()
    reset_rate_limiters()


@pytest_asyncio.fixture
async def mongo_client(monkeypatch: pytest.MonkeyPatch) -> AsyncIterator[AsyncMongoMockClient]:
    client = AsyncMongoMockClient()

    def _client_factory(*_args, **_kwargs) -> AsyncMongoMockClient:
        return client

    monkeypatch.setattr("lomu.db.AsyncIOMotorClient", _client_factory)
    yield client
    client.close()


@pytest_asyncio.fixture
async def api_client(mongo_client: AsyncMongoMockClient) -> AsyncIterator[AsyncClient]:
    await connect_to_mongo()
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://testserver") as client:
        yield client
    await close_mongo_connection()


def auth_headers(token: str) -> Dict[str, str]:
    return {"Authorization": f"Bearer {token}"}


@pytest.fixture
def make_user(api_client: AsyncClient) -> UserFactory:
    """Register an account over HTTP and return ``{"token", "id", "headers", "user"}``."""

    async def _make(
        username: str,
        *,
        password: str = "secret1",
        email: Optional[str] = None,
        gender: Optional[str] = None,
    ) -> Dict[str, Any]:
        resp = await api_client.post(
            "/api/auth/register",
            json={"username": username, "email": email or f"{username}@x.com", "password": password},
        )
        assert resp.status_code == 201, resp.text
        body = resp.json()
        headers = auth_headers(body["token"])
        if gender:
            set_resp = await api_client.put("/api/users/set-gender", json={"gender": gender}, headers=headers)
            assert set_resp.status_code == 200, set_resp.text
        return {"token": body["token"], "id": body["user"]["_id"], "headers": headers, "user": body["user"]}

    return _make
