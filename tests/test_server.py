import json
import urllib.parse

import pytest
from starlette.testclient import TestClient

import server
from codegrant.env import Settings
from tests.oauth_helpers import REDIRECT_URI, USER_BEARER, FakeUserDirectory


def _settings(data_dir: str) -> Settings:
    return Settings(
        jwt_secret="server-signing-secret-0123456789abcdef",
        supabase_url="https://project.supabase.co",
        supabase_service_role_key="service-role-key",
        data_dir=data_dir,
    )


def test_health_response_format(tmp_path) -> None:
    app = server.create_app(_settings(str(tmp_path)), user_directory=FakeUserDirectory())

    with TestClient(app) as client:
        payload = client.get("/health").json()

    assert payload["status"] == "ok"
    assert payload["version"] == "0.1.0"
    assert payload["timestamp"]


def test_unknown_path_returns_json_404(tmp_path) -> None:
    app = server.create_app(_settings(str(tmp_path)), user_directory=FakeUserDirectory())

    with TestClient(app) as client:
        response = client.get("/nope")

    assert response.status_code == 404
    assert response.json() == {"error": "not_found", "error_description": "Endpoint not found"}


@pytest.mark.parametrize(
    ("method", "path", "allowed"),
    [
        ("GET", "/oauth/token", "POST"),
        ("GET", "/oauth/register-app", "POST"),
        ("POST", "/oauth/userinfo", "GET"),
    ],
)
def test_wrong_method_returns_json_405(tmp_path, method, path, allowed) -> None:
    app = server.create_app(_settings(str(tmp_path)), user_directory=FakeUserDirectory())

    with TestClient(app) as client:
        response = client.request(method, path)

    assert response.status_code == 405
    assert response.headers["content-type"] == "application/json"
    assert allowed in response.headers["allow"].split(", ")
    assert response.json() == {
        "error": "method_not_allowed",
        "error_description": "Method not allowed",
    }


def test_lifespan_closes_directory(tmp_path) -> None:
    directory = FakeUserDirectory()
    app = server.create_app(_settings(str(tmp_path)), user_directory=directory)

    with TestClient(app):
        assert directory.closed is False

    assert directory.closed is True


def test_full_flow_persists_to_data_dir(tmp_path) -> None:
    app = server.create_app(_settings(str(tmp_path)), user_directory=FakeUserDirectory())

    with TestClient(app) as client:
        credentials = client.post(
            "/oauth/register-app",
            json={"app_name": "Example App", "redirect_uris": [REDIRECT_URI]},
        ).json()
        location = client.get(
            "/oauth/authorize",
            params={
                "client_id": credentials["client_id"],
                "redirect_uri": REDIRECT_URI,
                "response_type": "code",
            },
            headers={"Authorization": f"Bearer {USER_BEARER}"},
            follow_redirects=False,
        ).headers["location"]
        code = urllib.parse.parse_qs(urllib.parse.urlparse(location).query)["code"][0]
        assert code in json.loads((tmp_path / "codes.json").read_text(encoding="utf-8"))

        exchanged = client.post(
            "/oauth/token",
            data={
                "grant_type": "authorization_code",
                "code": code,
                "client_id": credentials["client_id"],
                "client_secret": credentials["client_secret"],
                "redirect_uri": REDIRECT_URI,
            },
        )

    assert exchanged.status_code == 200
    apps = json.loads((tmp_path / "apps.json").read_text(encoding="utf-8"))
    assert credentials["client_id"] in apps
    assert json.loads((tmp_path / "codes.json").read_text(encoding="utf-8")) == {}


def test_memory_data_dir_writes_nothing(tmp_path, monkeypatch) -> None:
    monkeypatch.chdir(tmp_path)
    app = server.create_app(_settings(":memory:"), user_directory=FakeUserDirectory())

    with TestClient(app) as client:
        response = client.post(
            "/oauth/register-app",
            json={"app_name": "Example App", "redirect_uris": [REDIRECT_URI]},
        )

    assert response.status_code == 201
    assert list(tmp_path.iterdir()) == []


def test_create_app_reads_environment(oauth_env, monkeypatch) -> None:
    monkeypatch.setattr(server, "load_env", lambda: None)
    monkeypatch.setattr(server, "setup_logging", lambda: False)

    app = server.create_app()

    with TestClient(app) as client:
        assert client.get("/health").status_code == 200

    controller = app.state.controller
    assert controller.token_service.access_token_ttl == 3600
    assert controller.user_directory.base_url == "https://project.supabase.co"


def test_main_runs_uvicorn_with_local_defaults(monkeypatch) -> None:
    calls: list[dict] = []
    sentinel = object()
    monkeypatch.setattr(server, "create_app", lambda: sentinel)
    monkeypatch.setattr(server.uvicorn, "run", lambda app, **kwargs: calls.append({"app": app, **kwargs}))
    monkeypatch.delenv("HOST", raising=False)
    monkeypatch.delenv("PORT", raising=False)

    server.main()

    assert calls == [{"app": sentinel, "host": "127.0.0.1", "port": 3000}]


def test_main_reads_host_and_port_from_env(monkeypatch) -> None:
    calls: list[dict] = []
    sentinel = object()
    monkeypatch.setattr(server, "create_app", lambda: sentinel)
    monkeypatch.setattr(server.uvicorn, "run", lambda app, **kwargs: calls.append({"app": app, **kwargs}))
    monkeypatch.setenv("HOST", "0.0.0.0")
    monkeypatch.setenv("PORT", "9100")

    server.main()

    assert calls == [{"app": sentinel, "host": "0.0.0.0", "port": 9100}]
