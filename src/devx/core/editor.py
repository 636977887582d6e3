"""Editor launching for devx sessions.

The editor is started detached and never owned: devx records its pid for
liveness checks and leaves closing it to the user.
"""

import os
import shlex
from pathlib import Path
from typing import Callable, Mapping

from devx.core.errors import ExternalUnavailable
from devx.core.tools import Tool


def resolve_editor(configured: str, environ: Mapping[str, str]) -> str:
    """Pick the editor command: config, then VISUAL, then EDITOR.

    Returns:
        The command string, or "" if none is set.
    """
    for candidate in (configured, environ.get("VISUAL", ""), environ.get("EDITOR", "")):
        if candidate and candidate.strip():
            return candidate.strip()
    return ""


def is_process_running(pid: int) -> bool:
    """Check whether pid is alive using signal 0."""
    if pid <= 0:
        return False
    try:
        os.kill(pid, 0)
    except ProcessLookupError:
        return False
    except PermissionError:
        return True
    return True


class EditorLauncher:
    """Starts the resolved editor on a workspace.

    Args:
        command: Editor command line, e.g. ``code`` or ``subl -n``.
        tool_factory: Builds the Tool for the editor binary and its flags.
    """

    def __init__(
        self, command: str, tool_factory: Callable[..., Tool] = Tool
    ) -> None:
        self.command = command
        self.tool_factory = tool_factory

    def launch(self, path: Path) -> int:
        """Open path in the editor without waiting for it.

        Returns:
            The editor pid, or 0 if no editor is configured.

        Raises:
            ExternalUnavailable: If the editor executable cannot be started.
        """
        argv = shlex.split(self.command)
        if not argv:
            return 0
        binary, *flags = argv
        editor = self.tool_factory(binary, flags)
        try:
            return editor.start([str(path)], cwd=path)
        except ExternalUnavailable as e:
            raise ExternalUnavailable(
                f"failed to start editor '{self.command}': {e}"
            ) from e

    def is_running(self, pid: int) -> bool:
        return is_process_running(pid)
