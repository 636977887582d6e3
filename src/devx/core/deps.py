"""Dependency probing for ``devx check``."""

import shlex
from dataclasses import dataclass

from devx.core.errors import DevxError
from devx.core.tools import Tool, Tools


@dataclass
class Dependency:
    """An external program devx relies on."""

    name: str
    tool: Tool
    required: bool
    description: str
    install_hint: str
    version_args: tuple[str, ...] = ("--version",)


@dataclass
class CheckResult:
    """Presence and version of one dependency."""

    dependency: Dependency
    available: bool
    version: str = ""


def get_dependencies(tools: Tools) -> list[Dependency]:
    return [
        Dependency(
            "Git",
            tools.git,
            True,
            "Version control system for managing worktrees",
            "Install with: brew install git",
        ),
        Dependency(
            "Tmux",
            tools.tmux,
            True,
            "Terminal multiplexer for session management",
            "Install with: brew install tmux",
            ("-V",),
        ),
        Dependency(
            "Tmuxp",
            tools.tmuxp,
            True,
            "Tmux session manager",
            "Install with: pip install tmuxp",
        ),
        Dependency(
            "Caddy",
            tools.caddy,
            True,
            "Web server for local development routing",
            "Install with: brew install caddy",
            ("version",),
        ),
        Dependency(
            "Direnv",
            tools.direnv,
            False,
            "Environment variable management (recommended)",
            "Install with: brew install direnv",
        ),
    ]


def editor_dependency(editor_command: str) -> Dependency | None:
    """Dependency entry for the resolved editor, or None if none is set."""
    if not editor_command:
        return None
    binary = shlex.split(editor_command)[0]
    return Dependency(
        "Editor",
        Tool(binary),
        False,
        f"Configured editor: {editor_command}",
        f"Check your editor configuration or install {binary}",
    )


def check_dependency(dep: Dependency) -> CheckResult:
    """Probe one dependency and read the first line of its version output."""
    if not dep.tool.available():
        return CheckResult(dep, available=False)
    version = ""
    try:
        result = dep.tool.run(list(dep.version_args), timeout=10)
    except DevxError:
        return CheckResult(dep, available=True)
    if result.ok and result.stdout.strip():
        version = result.stdout.strip().splitlines()[0].strip()
    return CheckResult(dep, available=True, version=version)


def check_all(tools: Tools, editor_command: str = "") -> list[CheckResult]:
    deps = get_dependencies(tools)
    if (editor := editor_dependency(editor_command)) is not None:
        deps.append(editor)
    return [check_dependency(dep) for dep in deps]


def missing_required(results: list[CheckResult]) -> list[str]:
    return [
        r.dependency.name
        for r in results
        if r.dependency.required and not r.available
    ]
