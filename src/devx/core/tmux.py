"""tmux wrapper for devx.

Each devx session runs in a tmux session of the same name, loaded from the
workspace's ``.tmuxp.yaml``. Sessions outlive devx so they can be detached
and re-attached.
"""

import time
from dataclasses import dataclass
from pathlib import Path
from typing import Mapping

from devx.core.errors import ExternalUnavailable, SubprocessFailure
from devx.core.tmuxp import TMUXP_FILE
from devx.core.tools import Tool

DEFAULT_SIZE = "120x40"

# Seconds to let tmuxp finish building windows before pruning window 0
SETTLE_SECONDS = 0.5


class TmuxError(SubprocessFailure):
    """Raised when a tmux command fails."""

    pass


@dataclass
class TmuxSession:
    """One line of ``tmux list-sessions``."""

    name: str
    attached: bool


def tmux_name(name: str) -> str:
    """Name tmux gives a session created as name.

    tmux rewrites ``.`` and ``:`` in session names to ``_``.
    """
    return name.replace(".", "_").replace(":", "_")


def _target(name: str) -> str:
    return f"={tmux_name(name)}"


def in_tmux(environ: Mapping[str, str]) -> bool:
    """Check if we're running inside a tmux session.

    Returns:
        True if the TMUX variable is set, False otherwise.
    """
    return bool(environ.get("TMUX"))


def has_session(tmux: Tool, name: str) -> bool:
    """Check if a tmux session exists.

    Args:
        tmux: The tmux tool.
        name: Session name to check.

    Returns:
        True if session exists, False otherwise (including no tmux server).
    """
    try:
        return tmux.run(["has-session", "-t", _target(name)]).ok
    except ExternalUnavailable:
        return False


def kill_session(tmux: Tool, name: str) -> None:
    """Kill a tmux session.

    Args:
        tmux: The tmux tool.
        name: Session name to kill.

    Raises:
        TmuxError: If tmux command fails.
    """
    result = tmux.run(["kill-session", "-t", _target(name)])
    if not result.ok:
        raise TmuxError(f"Failed to kill session {name}", stderr=result.stderr)


def get_current_session(tmux: Tool, environ: Mapping[str, str]) -> str | None:
    """Get the name of the tmux session we are running in.

    Returns:
        Session name if running inside tmux, None otherwise.
    """
    if not in_tmux(environ):
        return None
    try:
        result = tmux.run(["display-message", "-p", "#{session_name}"])
    except ExternalUnavailable:
        return None
    if result.ok and result.stdout.strip():
        return result.stdout.strip()
    return None


def list_sessions(tmux: Tool) -> list[TmuxSession]:
    """List tmux sessions.

    Returns:
        Sessions on the server, or an empty list if no server is running or
        tmux is not installed.
    """
    try:
        result = tmux.run([
            "list-sessions", "-F", "#{session_name}:#{session_attached}"
        ])
    except ExternalUnavailable:
        return []
    if not result.ok:
        return []
    sessions = []
    for line in result.stdout.splitlines():
        name, sep, attached = line.rpartition(":")
        if not sep:
            continue
        attached_flag = attached.strip() not in ("", "0")
        sessions.append(TmuxSession(name=name, attached=attached_flag))
    return sessions


def attach_session(tmux: Tool, name: str) -> None:
    """Attach the current terminal to an existing session.

    Raises:
        ExternalUnavailable: If tmux is not installed.
        TmuxError: If the session does not exist or attach fails.
    """
    if not tmux.available():
        raise ExternalUnavailable("tmux not found in PATH")
    if not has_session(tmux, name):
        raise TmuxError(f"tmux session '{name}' does not exist")
    code = tmux.interactive(["attach", "-t", _target(name)])
    if code != 0:
        raise TmuxError(f"failed to attach to tmux session '{name}'", returncode=code)


def load_session(
    tmux: Tool,
    tmuxp: Tool,
    workspace: Path,
    name: str,
    settle: float = SETTLE_SECONDS,
) -> None:
    """Build a detached tmux session from ``<workspace>/.tmuxp.yaml``.

    Any stale session with the same name is killed first. After tmuxp has
    settled, window 0 (a scratch window some tmuxp versions leave behind) is
    removed.

    Raises:
        ExternalUnavailable: If tmux or tmuxp is not installed.
        TmuxError: If tmuxp fails to load the layout.
    """
    if not tmuxp.available():
        raise ExternalUnavailable(
            "tmuxp not found in PATH. Install with: pip install tmuxp"
        )
    if not tmux.available():
        raise ExternalUnavailable("tmux not found in PATH")

    config_path = workspace / TMUXP_FILE
    if not config_path.exists():
        raise TmuxError(f"tmuxp config not found at {config_path}")

    tmux.run(["kill-session", "-t", _target(name)])
    tmux.run(["set-option", "-g", "default-size", DEFAULT_SIZE])

    # tmuxp load takes the same -L socket flag as tmux
    result = tmuxp.run(
        ["load", *tmux.global_args, "-d", str(config_path), "-s", tmux_name(name)],
        cwd=workspace,
    )
    if not result.ok:
        raise TmuxError("failed to load tmuxp session", stderr=result.output)

    time.sleep(settle)
    tmux.run(["kill-window", "-t", f"{tmux_name(name)}:0"])


def launch_session(
    tmux: Tool,
    tmuxp: Tool,
    workspace: Path,
    name: str,
    settle: float = SETTLE_SECONDS,
    attach: bool = True,
) -> list[str]:
    """Load the session layout and attach to it.

    Returns:
        Warnings. A failed attach is a warning with manual instructions.

    Raises:
        ExternalUnavailable: If tmux or tmuxp is not installed.
        TmuxError: If the layout fails to load.
    """
    load_session(tmux, tmuxp, workspace, name, settle)
    if not attach:
        return []
    code = tmux.interactive(["attach", "-t", _target(name)])
    if code != 0:
        return [
            f"could not attach to tmux session '{name}'. "
            f"Attach manually with: tmux attach -t {tmux_name(name)}"
        ]
    return []


def switch_client(tmux: Tool, name: str) -> None:
    """Move the enclosing tmux client to a session.

    Raises:
        SubprocessFailure: If tmux rejects the switch.
    """
    tmux.check(["switch-client", "-t", _target(name)])
