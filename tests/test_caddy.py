"""Tests for Caddy route publishing and the admin API client."""

from datetime import datetime, timezone
from pathlib import Path

import httpx
import orjson
import pytest

from devx.core.caddy import (
    DEFAULT_SERVER,
    CaddyClient,
    build_config,
    build_routes,
    check_health,
    expected_routes,
    publish_routes,
    render_config,
    session_hostnames,
    session_route_ids,
)
from devx.core.errors import ExternalUnavailable
from devx.core.session import Session
from helpers import FakeTool, result

T0 = datetime(2024, 1, 15, 12, 0, tzinfo=timezone.utc)
BASE_URL = "http://caddy.test"


def make_session(name: str, ports: dict[str, int], alias: str = "") -> Session:
    return Session(
        name=name,
        branch=name,
        path=Path(f"/repo/.worktrees/{name}"),
        ports=ports,
        project_alias=alias,
        created_at=T0,
        updated_at=T0,
    )


SESSIONS = [
    make_session("b-session", {"ui": 3000}),
    make_session("a-session", {"ui": 4000, "api": 4001}),
]


def make_client(handler) -> CaddyClient:
    return CaddyClient(BASE_URL, transport=httpx.MockTransport(handler))


def routes_response(routes, servers=None):
    """Admin API answering /config/, the server list and the routes path."""

    def handler(request: httpx.Request) -> httpx.Response:
        path = request.url.path
        if path == "/config/":
            return httpx.Response(200, json={})
        if path == "/config/apps/http/servers":
            return httpx.Response(200, json=servers or {})
        if path == f"/config/apps/http/servers/{DEFAULT_SERVER}/routes":
            return httpx.Response(200, json=routes)
        return httpx.Response(404)

    return handler


def test_build_config_ordering():
    """Test routes are ordered by session then service, whatever the input."""
    routes = build_config(SESSIONS)["apps"]["http"]["servers"][DEFAULT_SERVER][
        "routes"
    ]
    assert [r["@id"] for r in routes] == [
        "sess-a-session-api",
        "sess-a-session-ui",
        "sess-b-session-ui",
    ]
    assert routes[0]["match"] == [{"host": ["a-session-api.localhost"]}]
    assert routes[0]["handle"][0]["upstreams"] == [{"dial": "localhost:4001"}]
    assert routes[0]["terminal"] is True


def test_build_config_deterministic():
    """Test the rendered document does not depend on store order."""
    assert render_config(build_config(SESSIONS)) == render_config(
        build_config(list(reversed(SESSIONS)))
    )


def test_build_config_admin_and_listen():
    """Test the admin address and the :80 listener are set."""
    config = build_config([], admin_listen="localhost:2999")
    assert config["admin"] == {"listen": "localhost:2999"}
    server = config["apps"]["http"]["servers"][DEFAULT_SERVER]
    assert server == {"listen": [":80"], "routes": []}


def test_session_hostnames_with_project():
    """Test project sessions get alias-prefixed hostnames."""
    session = make_session("feat", {"ui": 3000, "___": 3001}, alias="web")
    assert session_hostnames(session) == {"ui": "web-feat-ui.localhost"}


def test_route_views_agree():
    """Test hostnames, route ids and built routes cover the same services."""
    session = make_session("feat", {"ui": 3000, "api": 3001, "___": 3002}, "web")
    expected = expected_routes([session])

    assert [r.service_name for r in expected] == ["api", "ui"]
    assert session_route_ids(session) == ["sess-web-feat-api", "sess-web-feat-ui"]
    assert session_hostnames(session) == {
        "api": "web-feat-api.localhost",
        "ui": "web-feat-ui.localhost",
    }
    routes = build_routes([session])
    assert [r["@id"] for r in routes] == session_route_ids(session)
    assert routes[1]["match"] == [{"host": ["web-feat-ui.localhost"]}]
    assert routes[1]["handle"][0]["upstreams"] == [{"dial": "localhost:3000"}]


def test_publish_routes_writes_and_reloads(tmp_path):
    """Test the config is written before caddy reload is called."""
    caddy = FakeTool("caddy")
    config_path = tmp_path / "caddy.json"
    outcome = publish_routes(SESSIONS, caddy, config_path)

    assert outcome.reloaded
    assert outcome.routes == 3
    assert outcome.warnings == []
    assert caddy.calls == [["caddy", "reload", "--config", str(config_path)]]
    written = orjson.loads(config_path.read_bytes())
    assert written == build_config(SESSIONS)


def test_publish_routes_reload_failure_keeps_file(tmp_path):
    """Test a failed reload is a warning and the file is still written."""
    caddy = FakeTool("caddy", lambda cmd: result(cmd, 1, stderr="connection refused"))
    config_path = tmp_path / "caddy.json"
    outcome = publish_routes(SESSIONS, caddy, config_path)

    assert not outcome.reloaded
    assert config_path.exists()
    assert outcome.warnings == [
        "Caddy reload failed (config saved for next start): connection refused"
    ]


def test_publish_routes_caddy_missing(tmp_path):
    """Test a missing caddy binary is a warning."""
    outcome = publish_routes(
        SESSIONS, FakeTool("caddy", installed=False), tmp_path / "caddy.json"
    )
    assert not outcome.reloaded
    assert "not found in PATH" in outcome.warnings[0]


def test_publish_routes_disabled(tmp_path):
    """Test disable_caddy writes nothing and runs nothing."""
    caddy = FakeTool("caddy")
    outcome = publish_routes(SESSIONS, caddy, tmp_path / "caddy.json", disabled=True)
    assert outcome.skipped
    assert caddy.calls == []
    assert not (tmp_path / "caddy.json").exists()


@pytest.mark.parametrize("status,body", [(404, b""), (200, b"null"), (200, b"")])
def test_get_routes_empty_forms(status, body):
    """Test 404, null and empty bodies all mean no routes."""
    client = make_client(lambda request: httpx.Response(status, content=body))
    assert client.get_routes() == []


def test_get_routes_bad_status():
    """Test an unexpected status raises ExternalUnavailable."""
    client = make_client(lambda request: httpx.Response(500, text="boom"))
    with pytest.raises(ExternalUnavailable, match="status 500"):
        client.get_routes()


def test_connection_error():
    """Test transport failures become ExternalUnavailable."""

    def handler(request):
        raise httpx.ConnectError("refused", request=request)

    with pytest.raises(ExternalUnavailable, match="failed to connect"):
        make_client(handler).check_connection()


def test_discover_server_name_port_80_only():
    """Test :8080 is not mistaken for :80."""
    servers = {
        "alt": {"listen": [":8080"]},
        "main": {"listen": ["0.0.0.0:80"]},
    }
    client = make_client(routes_response([], servers))
    assert client.discover_server_name() == "main"

    client = make_client(routes_response([], {"alt": {"listen": [":8080"]}}))
    assert client.discover_server_name() == DEFAULT_SERVER


def test_route_ids():
    """Test only routes with an @id are collected."""
    routes = [{"@id": "sess-a-session-ui"}, {"match": []}]
    assert make_client(routes_response(routes)).route_ids() == {"sess-a-session-ui"}


def test_check_health_counts():
    """Test missing routes are reported per route."""
    routes = [{"@id": "sess-a-session-ui"}, {"@id": "sess-b-session-ui"}]
    health = check_health(SESSIONS, make_client(routes_response(routes)))

    assert health.caddy_running
    assert health.routes_needed == 3
    assert health.routes_existing == 2
    assert not health.healthy
    missing = [s.route_id for s in health.route_statuses if not s.exists]
    assert missing == ["sess-a-session-api"]


def test_check_health_caddy_down():
    """Test an unreachable Caddy is reported rather than raised."""
    client = make_client(lambda request: httpx.Response(502))
    health = check_health(SESSIONS, client)
    assert not health.caddy_running
    assert "502" in health.caddy_error
    assert not health.healthy
