from fastapi.testclient import TestClient

from app.main import app

client = TestClient(app)


def test_health_check_returns_ok_status_and_version() -> None:
    response = client.get("/health")

    assert response.status_code == 200
    payload = response.json()
    assert payload["data"]["status"] == "ok"
    assert payload["data"]["version"]


def test_responses_carry_cors_headers_for_frontend_origin() -> None:
    response = client.get("/health")

    assert response.headers["access-control-allow-origin"] == "http://localhost:5173"
    assert response.headers["access-control-allow-methods"] == "GET,POST,OPTIONS"
    assert response.headers["access-control-allow-headers"] == "Authorization,Content-Type"


def test_options_on_any_path_returns_no_content() -> None:
    for path in ("/google/start", "/google/sheets", "/does-not-exist"):
        response = client.options(path)

        assert response.status_code == 204
        assert response.content == b""
        assert response.headers["access-control-allow-methods"] == "GET,POST,OPTIONS"


def test_cors_origin_falls_back_to_wildcard(monkeypatch) -> None:
    from app.core.config import get_settings

    monkeypatch.setenv("FRONTEND_BASE_URL", "/")
    get_settings.cache_clear()

    response = client.options("/google/start")

    assert response.headers["access-control-allow-origin"] == "*"


def test_unknown_route_uses_error_envelope() -> None:
    response = client.get("/nope")

    assert response.status_code == 404
    assert response.json() == {"error": "Not Found"}
