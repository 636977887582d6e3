"""External tool capability.

Every collaborator devx drives as a subprocess (git, tmux, tmuxp, direnv,
caddy, the shell) is wrapped in a Tool so callers can assert call shape and
tests can swap in recording fakes.
"""

import os
import shutil
import subprocess
import threading
from dataclasses import dataclass, field
from pathlib import Path
from typing import Mapping, Sequence

from devx.core.errors import ExternalUnavailable, SubprocessFailure

# Set DEVX_TMUX_SOCKET to run tmux (and tmuxp) against an isolated server
TMUX_SOCKET_ENV = "DEVX_TMUX_SOCKET"

# Seconds between SIGTERM and SIGKILL for a timed-out child
TERMINATE_GRACE = 5.0


class ToolTimeout(SubprocessFailure):
    """Raised when a tool invocation exceeds its timeout."""

    pass


@dataclass
class ToolResult:
    """Outcome of a finished tool invocation."""

    args: list[str]
    returncode: int
    stdout: str = ""
    stderr: str = ""

    @property
    def ok(self) -> bool:
        return self.returncode == 0

    @property
    def output(self) -> str:
        """stdout and stderr concatenated, for error classification."""
        return self.stdout + self.stderr


def _terminate(proc: subprocess.Popen) -> None:
    """Signal a child to terminate, escalating to kill after a grace period."""
    proc.terminate()
    try:
        proc.communicate(timeout=TERMINATE_GRACE)
    except subprocess.TimeoutExpired:
        proc.kill()
        proc.communicate()


class Tool:
    """One external executable.

    Args:
        binary: Executable name looked up on PATH.
        global_args: Arguments inserted before every subcommand
            (e.g. ``-L <socket>`` for tmux).
    """

    def __init__(self, binary: str, global_args: Sequence[str] = ()) -> None:
        self.binary = binary
        self.global_args = list(global_args)

    def __repr__(self) -> str:
        return f"Tool({self.binary!r})"

    def available(self) -> bool:
        """Check whether the executable is on PATH."""
        return shutil.which(self.binary) is not None

    def command(self, args: Sequence[str]) -> list[str]:
        return [self.binary, *self.global_args, *args]

    def run(
        self,
        args: Sequence[str],
        cwd: Path | None = None,
        env: Mapping[str, str] | None = None,
        timeout: float | None = None,
        capture: bool = True,
    ) -> ToolResult:
        """Run the tool to completion.

        Args:
            args: Arguments after the binary and global args.
            cwd: Working directory.
            env: Full environment for the child. Defaults to the current one.
            timeout: Seconds before the child is terminated.
            capture: Capture stdout/stderr. When False they go to the terminal.

        Returns:
            ToolResult with the exit status and captured output.

        Raises:
            ExternalUnavailable: If the binary is missing or cannot be executed.
            ToolTimeout: If the timeout elapsed. The child has been terminated.
        """
        cmd = self.command(args)
        pipe = subprocess.PIPE if capture else None
        try:
            proc = subprocess.Popen(
                cmd,
                cwd=cwd,
                env=dict(env) if env is not None else None,
                stdout=pipe,
                stderr=pipe,
                text=True,
            )
        except FileNotFoundError as e:
            if not self.available():
                raise ExternalUnavailable(f"{self.binary} not found in PATH") from e
            raise

        try:
            stdout, stderr = proc.communicate(timeout=timeout)
        except subprocess.TimeoutExpired:
            _terminate(proc)
            raise ToolTimeout(f"{self.binary} timed out after {timeout:g}s")

        return ToolResult(cmd, proc.returncode, stdout or "", stderr or "")

    def check(self, args: Sequence[str], **kwargs) -> ToolResult:
        """Run the tool and raise SubprocessFailure on a non-zero exit."""
        result = self.run(args, **kwargs)
        if not result.ok:
            raise SubprocessFailure(
                f"{self.binary} {' '.join(args)} failed (exit {result.returncode})",
                stderr=result.stderr or result.stdout,
                returncode=result.returncode,
            )
        return result

    def start(self, args: Sequence[str], cwd: Path | None = None) -> int:
        """Start the tool detached from this process and return its pid.

        The child gets its own session so it survives devx exiting. A daemon
        thread waits on it so it never lingers as a zombie.

        Raises:
            ExternalUnavailable: If the binary is missing or cannot be executed.
        """
        cmd = self.command(args)
        try:
            proc = subprocess.Popen(
                cmd,
                cwd=cwd,
                stdin=subprocess.DEVNULL,
                stdout=subprocess.DEVNULL,
                stderr=subprocess.DEVNULL,
                start_new_session=True,
            )
        except FileNotFoundError as e:
            raise ExternalUnavailable(f"{self.binary} not found in PATH") from e
        except OSError as e:
            raise ExternalUnavailable(f"failed to start {self.binary}: {e}") from e

        threading.Thread(target=proc.wait, daemon=True).start()
        return proc.pid

    def interactive(self, args: Sequence[str], cwd: Path | None = None) -> int:
        """Run the tool attached to the current terminal and return its exit code."""
        try:
            return subprocess.run(self.command(args), cwd=cwd).returncode
        except FileNotFoundError as e:
            raise ExternalUnavailable(f"{self.binary} not found in PATH") from e


@dataclass
class Tools:
    """The set of external tools devx drives."""

    git: Tool = field(default_factory=lambda: Tool("git"))
    tmux: Tool = field(default_factory=lambda: Tool("tmux"))
    tmuxp: Tool = field(default_factory=lambda: Tool("tmuxp"))
    direnv: Tool = field(default_factory=lambda: Tool("direnv"))
    caddy: Tool = field(default_factory=lambda: Tool("caddy"))
    shell: Tool = field(default_factory=lambda: Tool("sh"))

    @classmethod
    def default(cls) -> "Tools":
        """Build the real tool set, honouring DEVX_TMUX_SOCKET."""
        tools = cls()
        if socket := os.environ.get(TMUX_SOCKET_ENV):
            tools.tmux = Tool("tmux", ["-L", socket])
        return tools
