"""Caddy route synchronization.

The desired route set is a pure function of the session store. Publishing
writes the complete Caddy JSON config to disk and asks ``caddy reload`` to
pick it up; the file on disk is the source of truth, so a proxy that is down
gets the right routes on its next start.

The admin API is only read: to check that Caddy is up and which routes it is
serving.
"""

from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Iterable

import httpx
import orjson

from devx.core.errors import ExternalUnavailable, SubprocessFailure
from devx.core.fsutil import atomic_write_bytes
from devx.core.naming import build_hostname, build_route_id
from devx.core.session import Session
from devx.core.tools import Tool

DEFAULT_SERVER = "devx"
DEFAULT_ADMIN = "localhost:2019"
HTTP_LISTEN = ":80"

# Seconds for every admin API request
HTTP_TIMEOUT = 10.0

# Seconds for caddy reload
RELOAD_TIMEOUT = 30.0


@dataclass
class RouteStatus:
    """Whether one expected route is live."""

    session_name: str
    service_name: str
    route_id: str
    hostname: str
    port: int
    exists: bool = False


def expected_routes(sessions: Iterable[Session]) -> list[RouteStatus]:
    """Every route the store implies, sorted by session then service."""
    statuses = []
    for session in sorted(sessions, key=lambda s: s.name):
        for svc in sorted(session.ports):
            hostname = build_hostname(session.name, svc, session.project_alias)
            if not hostname:
                continue
            statuses.append(
                RouteStatus(
                    session_name=session.name,
                    service_name=svc,
                    route_id=build_route_id(session.name, svc, session.project_alias),
                    hostname=hostname,
                    port=session.ports[svc],
                )
            )
    return statuses


def session_hostnames(session: Session) -> dict[str, str]:
    """Service name to hostname for every routable service of a session."""
    return {r.service_name: r.hostname for r in expected_routes([session])}


def session_route_ids(session: Session) -> list[str]:
    """Route ids a session is expected to have, sorted by service."""
    return [r.route_id for r in expected_routes([session])]


def build_route(route_id: str, hostname: str, port: int) -> dict[str, Any]:
    return {
        "@id": route_id,
        "match": [{"host": [hostname]}],
        "handle": [
            {
                "handler": "reverse_proxy",
                "upstreams": [{"dial": f"localhost:{port}"}],
            }
        ],
        "terminal": True,
    }


def build_routes(sessions: Iterable[Session]) -> list[dict[str, Any]]:
    """Build routes ordered by session name, then service name.

    Services whose names normalize to nothing get no route.
    """
    return [
        build_route(r.route_id, r.hostname, r.port) for r in expected_routes(sessions)
    ]


def build_config(
    sessions: Iterable[Session], admin_listen: str = DEFAULT_ADMIN
) -> dict[str, Any]:
    """Build the complete Caddy config for a set of sessions."""
    return {
        "admin": {"listen": admin_listen or DEFAULT_ADMIN},
        "apps": {
            "http": {
                "servers": {
                    DEFAULT_SERVER: {
                        "listen": [HTTP_LISTEN],
                        "routes": build_routes(sessions),
                    }
                }
            }
        },
    }


def render_config(config: dict[str, Any]) -> bytes:
    return orjson.dumps(config, option=orjson.OPT_INDENT_2)


@dataclass
class SyncResult:
    """Outcome of publishing routes."""

    config_path: Path | None = None
    routes: int = 0
    reloaded: bool = False
    skipped: bool = False
    warnings: list[str] = field(default_factory=list)


def publish_routes(
    sessions: Iterable[Session],
    caddy: Tool,
    config_path: Path,
    admin_listen: str = DEFAULT_ADMIN,
    disabled: bool = False,
) -> SyncResult:
    """Write the desired config to config_path and reload Caddy.

    A failed or impossible reload is a warning: the written file still
    holds the right routes for the next Caddy start.

    Args:
        sessions: Every session in the store.
        caddy: The caddy tool.
        config_path: Where the config document is written.
        admin_listen: Admin address recorded in the config.
        disabled: Skip everything (``disable_caddy``).
    """
    if disabled:
        return SyncResult(skipped=True)

    config = build_config(sessions, admin_listen)
    atomic_write_bytes(config_path, render_config(config))
    result = SyncResult(
        config_path=config_path,
        routes=len(config["apps"]["http"]["servers"][DEFAULT_SERVER]["routes"]),
    )

    try:
        reload = caddy.run(
            ["reload", "--config", str(config_path)], timeout=RELOAD_TIMEOUT
        )
    except (ExternalUnavailable, SubprocessFailure) as e:
        result.warnings.append(
            f"Caddy reload failed (config saved for next start): {e}"
        )
        return result

    if reload.ok:
        result.reloaded = True
    else:
        result.warnings.append(
            "Caddy reload failed (config saved for next start): "
            f"{reload.output.strip()}"
        )
    return result


class CaddyClient:
    """Read-only client for the Caddy admin API.

    Args:
        base_url: Admin API base URL, e.g. ``http://localhost:2019``.
        timeout: Per-request timeout in seconds.
        transport: Optional httpx transport (tests pass a MockTransport).
    """

    def __init__(
        self,
        base_url: str,
        timeout: float = HTTP_TIMEOUT,
        transport: httpx.BaseTransport | None = None,
    ) -> None:
        self.base_url = base_url.rstrip("/")
        self.server_name = DEFAULT_SERVER
        self._discovered = False
        self._client = httpx.Client(
            base_url=self.base_url, timeout=timeout, transport=transport
        )

    def __enter__(self) -> "CaddyClient":
        return self

    def __exit__(self, *exc_info) -> None:
        self.close()

    def close(self) -> None:
        self._client.close()

    def _get(self, path: str) -> httpx.Response:
        try:
            return self._client.get(path)
        except httpx.HTTPError as e:
            raise ExternalUnavailable(
                f"failed to connect to Caddy admin API at {self.base_url}: {e}"
            ) from e

    def check_connection(self) -> None:
        """Verify the admin API answers ``GET /config/``.

        Raises:
            ExternalUnavailable: If Caddy is unreachable or unhealthy.
        """
        response = self._get("/config/")
        if response.status_code != 200:
            raise ExternalUnavailable(
                f"caddy admin API returned status {response.status_code}"
            )

    def discover_server_name(self) -> str:
        """Find the HTTP server listening on port 80.

        Only listen addresses ending in ``:80`` match, so ``:8080`` does not.
        Falls back to the default server name on any failure.
        """
        if self._discovered:
            return self.server_name
        self._discovered = True
        try:
            response = self._get("/config/apps/http/servers")
        except ExternalUnavailable:
            return self.server_name
        if response.status_code != 200:
            return self.server_name
        try:
            servers = orjson.loads(response.content)
        except orjson.JSONDecodeError:
            return self.server_name
        if not isinstance(servers, dict):
            return self.server_name
        for name, server in servers.items():
            listen = server.get("listen") if isinstance(server, dict) else None
            if any(
                isinstance(addr, str) and addr.endswith(HTTP_LISTEN)
                for addr in listen or []
            ):
                self.server_name = name
                break
        return self.server_name

    def routes_path(self) -> str:
        return f"/config/apps/http/servers/{self.discover_server_name()}/routes"

    def get_routes(self) -> list[dict[str, Any]]:
        """Fetch the routes of the discovered server.

        A 404, a ``null`` body and an empty body all mean no routes.

        Raises:
            ExternalUnavailable: On connection failure, an unexpected status
                or an unparsable body.
        """
        response = self._get(self.routes_path())
        if response.status_code == 404:
            return []
        if response.status_code != 200:
            raise ExternalUnavailable(
                f"caddy API returned status {response.status_code}: {response.text}"
            )
        body = response.content.strip()
        if not body or body == b"null":
            return []
        try:
            routes = orjson.loads(body)
        except orjson.JSONDecodeError as e:
            raise ExternalUnavailable(f"failed to parse routes response: {e}") from e
        if not isinstance(routes, list):
            raise ExternalUnavailable("failed to parse routes response: not a list")
        return routes

    def route_ids(self) -> set[str]:
        return {
            route["@id"]
            for route in self.get_routes()
            if isinstance(route, dict) and route.get("@id")
        }


@dataclass
class HealthCheckResult:
    """Caddy reachability and per-route presence."""

    caddy_running: bool
    caddy_error: str = ""
    route_statuses: list[RouteStatus] = field(default_factory=list)
    routes_needed: int = 0
    routes_existing: int = 0

    @property
    def healthy(self) -> bool:
        return self.caddy_running and self.routes_needed == self.routes_existing


def check_health(sessions: Iterable[Session], client: CaddyClient) -> HealthCheckResult:
    """Compare the desired route set with what Caddy is serving.

    An unreachable Caddy is reported in the result, not raised.

    Raises:
        ExternalUnavailable: If Caddy answered but its routes could not be read.
    """
    try:
        client.check_connection()
    except ExternalUnavailable as e:
        return HealthCheckResult(caddy_running=False, caddy_error=str(e))

    live = client.route_ids()
    result = HealthCheckResult(caddy_running=True)
    for status in expected_routes(sessions):
        status.exists = status.route_id in live
        result.routes_needed += 1
        if status.exists:
            result.routes_existing += 1
        result.route_statuses.append(status)
    return result
