"""``.envrc`` generation for session workspaces."""

from pathlib import Path
from typing import Mapping

from devx.core.fsutil import atomic_write_text
from devx.core.naming import host_url, host_var, port_var
from devx.core.tools import Tool

ENVRC_FILE = ".envrc"


def render_envrc(
    name: str,
    ports: Mapping[str, int],
    routes: Mapping[str, str] | None = None,
    scheme: str = "http",
) -> str:
    """Render the env file exporting ports, hostnames and the session name.

    Ports and hostnames are sorted by service name.
    """
    lines = [f"export {port_var(svc)}={ports[svc]}" for svc in sorted(ports)]
    if routes:
        lines.append("")
        lines.append("# HTTP hostnames")
        for svc in sorted(routes):
            lines.append(f"export {host_var(svc)}={host_url(routes[svc], scheme)}")
    lines.append("")
    lines.append(f"export SESSION_NAME={name}")
    return "\n".join(lines) + "\n"


def write_envrc(
    workspace: Path,
    name: str,
    ports: Mapping[str, int],
    routes: Mapping[str, str] | None = None,
    scheme: str = "http",
    direnv: Tool | None = None,
) -> list[str]:
    """Write ``<workspace>/.envrc`` and run ``direnv allow`` if direnv is installed.

    Returns:
        Warnings from direnv. Its absence is not a warning.
    """
    atomic_write_text(workspace / ENVRC_FILE, render_envrc(name, ports, routes, scheme))
    if direnv is None or not direnv.available():
        return []
    result = direnv.run(["allow"], cwd=workspace)
    if not result.ok:
        return [f"direnv allow failed: {result.output.strip()}"]
    return []
