from __future__ import annotations

import httpx
import pytest

from app.core.config import get_settings
from app.core.errors import DownstreamError
from app.services.google_workspace import GoogleWorkspaceClient


def _mock_async_client(monkeypatch, handler) -> None:
    real_client = httpx.AsyncClient

    def factory(*args, **kwargs):  # type: ignore[no-untyped-def]
        kwargs["transport"] = httpx.MockTransport(handler)
        return real_client(*args, **kwargs)

    monkeypatch.setattr("app.services.google_workspace.httpx.AsyncClient", factory)


@pytest.mark.anyio("asyncio")
async def test_sheet_values_are_returned_verbatim(monkeypatch) -> None:
    seen: list[httpx.Request] = []
    body = {"range": "Sheet1!A1:Z2", "majorDimension": "ROWS", "values": [["a", "b"]]}

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(request)
        return httpx.Response(200, json=body)

    _mock_async_client(monkeypatch, handler)

    result = await GoogleWorkspaceClient(get_settings()).get_sheet_values("access", "sheet/1")

    assert result == body
    assert seen[0].url.raw_path == b"/v4/spreadsheets/sheet%2F1/values/A%3AZ"
    assert seen[0].headers["authorization"] == "Bearer access"


@pytest.mark.anyio("asyncio")
async def test_error_status_and_body_are_relayed(monkeypatch) -> None:
    google_error = {"error": {"code": 404, "message": "Requested entity was not found.", "status": "NOT_FOUND"}}

    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(404, json=google_error)

    _mock_async_client(monkeypatch, handler)

    with pytest.raises(DownstreamError) as excinfo:
        await GoogleWorkspaceClient(get_settings()).list_form_responses("access", "form-1")

    assert excinfo.value.status_code == 404
    assert excinfo.value.detail == google_error


@pytest.mark.anyio("asyncio")
async def test_network_failure_is_bad_gateway(monkeypatch) -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ReadTimeout("slow", request=request)

    _mock_async_client(monkeypatch, handler)

    with pytest.raises(DownstreamError) as excinfo:
        await GoogleWorkspaceClient(get_settings()).list_forms("access")

    assert excinfo.value.status_code == 502
