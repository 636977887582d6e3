"""Recording fakes and small helpers for devx tests."""

import subprocess
from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import Callable, Mapping, Sequence

from devx.core.config import write_yaml
from devx.core.editor import EditorLauncher
from devx.core.errors import ExternalUnavailable
from devx.core.locator import CONFIG_FILE
from devx.core.tools import Tool, ToolResult

Handler = Callable[[list[str]], ToolResult | None]

GIT_IDENTITY = [
    "-c",
    "user.name=devx tests",
    "-c",
    "user.email=devx@example.com",
    "-c",
    "commit.gpgsign=false",
]


def git(repo: Path, *args: str) -> str:
    """Run git in repo and return stdout, failing the test on error."""
    proc = subprocess.run(
        ["git", *GIT_IDENTITY, *args],
        cwd=repo,
        capture_output=True,
        text=True,
    )
    assert proc.returncode == 0, proc.stderr
    return proc.stdout


def write_global_config(global_dir: Path, **values) -> None:
    """Write a global config.yaml with the given keys."""
    write_yaml(global_dir / CONFIG_FILE, values)


class FakeTool(Tool):
    """A Tool that records invocations instead of running anything.

    Args:
        binary: Name reported in commands and errors.
        handler: Called with the full argv for each run; returns the result,
            or None for a successful empty result.
        installed: What available() reports. Runs raise ExternalUnavailable
            when False, like a missing binary.
    """

    def __init__(
        self,
        binary: str,
        handler: Handler | None = None,
        installed: bool = True,
        global_args: Sequence[str] = (),
    ) -> None:
        super().__init__(binary, global_args)
        self.handler = handler
        self.installed = installed
        self.calls: list[list[str]] = []
        self.cwds: list[Path | None] = []
        self.envs: list[Mapping[str, str] | None] = []
        self.timeouts: list[float | None] = []
        self.started: list[list[str]] = []
        self.interactive_calls: list[list[str]] = []
        self.interactive_code = 0

    def available(self) -> bool:
        return self.installed

    def _respond(self, cmd: list[str]) -> ToolResult:
        if not self.installed:
            raise ExternalUnavailable(f"{self.binary} not found in PATH")
        result = self.handler(cmd) if self.handler else None
        return result or ToolResult(cmd, 0)

    def run(self, args, cwd=None, env=None, timeout=None, capture=True) -> ToolResult:
        cmd = self.command(args)
        self.calls.append(cmd)
        self.cwds.append(cwd)
        self.envs.append(env)
        self.timeouts.append(timeout)
        return self._respond(cmd)

    def start(self, args, cwd=None) -> int:
        if not self.installed:
            raise ExternalUnavailable(f"{self.binary} not found in PATH")
        self.started.append(self.command(args))
        return 4242

    def interactive(self, args, cwd=None) -> int:
        if not self.installed:
            raise ExternalUnavailable(f"{self.binary} not found in PATH")
        self.interactive_calls.append(self.command(args))
        return self.interactive_code

    def subcommands(self) -> list[str]:
        """First argument after global args of every recorded run."""
        skip = 1 + len(self.global_args)
        return [cmd[skip] for cmd in self.calls if len(cmd) > skip]


def result(cmd: list[str], returncode: int = 0, stdout: str = "", stderr: str = ""):
    return ToolResult(cmd, returncode, stdout, stderr)


class FakeEditor(EditorLauncher):
    """Editor launcher that hands out pids without starting anything."""

    launched: list[Path] = []
    alive: set[int] = set()
    next_pid = 5000

    def launch(self, path: Path) -> int:
        if not self.command:
            return 0
        FakeEditor.next_pid += 1
        FakeEditor.launched.append(path)
        FakeEditor.alive.add(FakeEditor.next_pid)
        return FakeEditor.next_pid

    def is_running(self, pid: int) -> bool:
        return pid in FakeEditor.alive

    @classmethod
    def reset(cls) -> None:
        cls.launched = []
        cls.alive = set()
        cls.next_pid = 5000


class Clock:
    """Deterministic clock advancing one second per reading."""

    def __init__(self, start: datetime | None = None) -> None:
        self.now = start or datetime(2024, 1, 15, 12, 0, tzinfo=timezone.utc)

    def __call__(self) -> datetime:
        current = self.now
        self.now += timedelta(seconds=1)
        return current


class PortProbe:
    """Hands out ports from a fixed sequence, then counts up."""

    def __init__(self, *ports: int, start: int = 40000) -> None:
        self.queue = list(ports)
        self.next = start

    def __call__(self) -> int:
        if self.queue:
            return self.queue.pop(0)
        self.next += 1
        return self.next
