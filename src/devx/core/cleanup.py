"""Run the configured cleanup command when a session is removed."""

from typing import Mapping

from devx.core.errors import ExternalUnavailable, SubprocessFailure
from devx.core.naming import build_hostname, host_url, host_var, port_var
from devx.core.session import Session
from devx.core.tools import Tool

CLEANUP_TIMEOUT = 30.0


def cleanup_environment(
    session: Session, base_env: Mapping[str, str], scheme: str = "http"
) -> dict[str, str]:
    """Environment for the cleanup command.

    Adds SESSION_NAME, WORKTREE_PATH, SESSION_BRANCH and the same
    ``<SVC>_PORT``/``<SVC>_HOST`` variables the session's .envrc exports.
    """
    env = dict(base_env)
    env["SESSION_NAME"] = session.name
    env["WORKTREE_PATH"] = str(session.path)
    env["SESSION_BRANCH"] = session.branch
    for svc, port in session.ports.items():
        env[port_var(svc)] = str(port)
    for svc in session.routes:
        hostname = build_hostname(session.name, svc, session.project_alias)
        if hostname:
            env[host_var(svc)] = host_url(hostname, scheme)
    return env


def run_cleanup(
    shell: Tool,
    command: str,
    session: Session,
    base_env: Mapping[str, str],
    scheme: str = "http",
    timeout: float = CLEANUP_TIMEOUT,
) -> list[str]:
    """Run command through ``sh -c`` in the workspace.

    Failures, non-zero exits and timeouts are returned as warnings.
    """
    if not command.strip():
        return []
    cwd = session.path if session.path.is_dir() else None
    env = cleanup_environment(session, base_env, scheme)
    try:
        result = shell.run(["-c", command], cwd=cwd, env=env, timeout=timeout)
    except (ExternalUnavailable, SubprocessFailure) as e:
        return [f"cleanup command failed: {e}"]
    if not result.ok:
        detail = result.output.strip()
        message = f"cleanup command exited with status {result.returncode}"
        return [f"{message}: {detail}" if detail else message]
    return []
