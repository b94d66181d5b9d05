from __future__ import annotations

import httpx
import pytest

from app.core.config import get_settings
from app.core.errors import AuthenticationError, ConfigurationError, IdentityProviderError
from app.core.identity import IdentityClient


def _mock_async_client(monkeypatch, handler) -> None:
    real_client = httpx.AsyncClient

    def factory(*args, **kwargs):  # type: ignore[no-untyped-def]
        kwargs["transport"] = httpx.MockTransport(handler)
        return real_client(*args, **kwargs)

    monkeypatch.setattr("app.core.identity.httpx.AsyncClient", factory)


@pytest.mark.anyio("asyncio")
async def test_get_user_id_sends_service_key_and_user_token(monkeypatch) -> None:
    seen: list[httpx.Request] = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(request)
        return httpx.Response(200, json={"id": "user-123", "email": "owner@example.com"})

    _mock_async_client(monkeypatch, handler)

    user_id = await IdentityClient(get_settings()).get_user_id("session-token")

    assert user_id == "user-123"
    assert str(seen[0].url) == "http://identity.test/auth/v1/user"
    assert seen[0].headers["apikey"] == "service-key"
    assert seen[0].headers["authorization"] == "Bearer session-token"


@pytest.mark.anyio("asyncio")
async def test_rejected_token_raises_authentication_error(monkeypatch) -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(401, json={"msg": "invalid JWT"})

    _mock_async_client(monkeypatch, handler)

    with pytest.raises(AuthenticationError) as excinfo:
        await IdentityClient(get_settings()).get_user_id("expired")

    assert excinfo.value.message == "Invalid user token"
    assert excinfo.value.detail == "invalid JWT"


@pytest.mark.anyio("asyncio")
async def test_missing_token_raises_before_any_request(monkeypatch) -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        raise AssertionError("identity provider should not be called")

    _mock_async_client(monkeypatch, handler)

    with pytest.raises(AuthenticationError):
        await IdentityClient(get_settings()).get_user_id(None)


@pytest.mark.anyio("asyncio")
async def test_provider_outage_is_identity_provider_error(monkeypatch) -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(503, text="upstream unavailable")

    _mock_async_client(monkeypatch, handler)

    with pytest.raises(IdentityProviderError) as excinfo:
        await IdentityClient(get_settings()).get_user_id("token")

    assert excinfo.value.status_code == 500


@pytest.mark.anyio("asyncio")
async def test_network_failure_is_identity_provider_error(monkeypatch) -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectError("refused", request=request)

    _mock_async_client(monkeypatch, handler)

    with pytest.raises(IdentityProviderError):
        await IdentityClient(get_settings()).get_user_id("token")


@pytest.mark.anyio("asyncio")
async def test_missing_identity_configuration(monkeypatch) -> None:
    monkeypatch.setenv("SUPABASE_URL", "")
    get_settings.cache_clear()

    with pytest.raises(ConfigurationError):
        await IdentityClient(get_settings()).get_user_id("token")
