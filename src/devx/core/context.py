"""Explicit runtime context threaded through devx operations.

Everything an operation needs from its surroundings (working directory,
resolved files, configuration, external tools, clock) is carried here so
tests can substitute any of it.
"""

import os
from dataclasses import dataclass, field
from datetime import datetime
from pathlib import Path
from typing import Callable, Mapping

from devx.core.caddy import CaddyClient
from devx.core.config import Config, load_config
from devx.core.editor import EditorLauncher, resolve_editor
from devx.core.locator import StorageLocator
from devx.core.ports import get_free_port
from devx.core.projects import ProjectRegistry
from devx.core.state import SessionStore, utcnow
from devx.core.tmux import SETTLE_SECONDS
from devx.core.tools import Tools


@dataclass
class Context:
    """Resolved surroundings for one devx invocation.

    Attributes:
        cwd: Working directory the invocation runs from.
        locator: Resolves devx files to paths.
        config: Effective configuration for cwd.
        tools: External tools.
        environ: Process environment (VISUAL, EDITOR, TMUX, ...).
        clock: Source of the current instant.
        settle_seconds: Pause after tmuxp load before pruning window 0.
        config_file: Explicit ``--config`` file, re-applied per project.
        editor_factory: Builds the editor launcher for a command string.
        caddy_transport: httpx transport for the admin client (tests).
        port_probe: Source of free ports for allocation.
        index_transport: httpx transport for release checks (tests).
        check_updates: Whether the TUI checks for a newer release.
    """

    cwd: Path
    locator: StorageLocator
    config: Config
    tools: Tools = field(default_factory=Tools.default)
    environ: Mapping[str, str] = field(default_factory=lambda: dict(os.environ))
    clock: Callable[[], datetime] = utcnow
    settle_seconds: float = SETTLE_SECONDS
    config_file: Path | None = None
    editor_factory: Callable[[str], EditorLauncher] = EditorLauncher
    caddy_transport: object | None = None
    port_probe: Callable[[], int] = get_free_port
    index_transport: object | None = None
    check_updates: bool = False

    @classmethod
    def from_environment(
        cls, cwd: Path | None = None, config_file: Path | None = None
    ) -> "Context":
        """Build the context for a real command-line invocation."""
        cwd = cwd or Path.cwd()
        environ = dict(os.environ)
        locator = StorageLocator(cwd)
        config = load_config(locator, config_file=config_file, environ=environ)
        return cls(
            cwd=cwd,
            locator=locator,
            config=config,
            tools=Tools.default(),
            environ=environ,
            config_file=config_file,
            check_updates=True,
        )

    def config_for(self, project_path: Path | None) -> Config:
        """Configuration with the given project's ``.devx/config.yaml`` applied."""
        if project_path is None:
            return self.config
        return load_config(
            self.locator,
            project_path=project_path,
            config_file=self.config_file,
            environ=self.environ,
        )

    def load_store(self) -> SessionStore:
        return SessionStore.load(self.locator.sessions_path, clock=self.clock)

    def load_registry(self) -> ProjectRegistry:
        return ProjectRegistry.load(self.locator.projects_path)

    def editor(self, config: Config | None = None) -> EditorLauncher:
        configured = (config or self.config).editor
        return self.editor_factory(resolve_editor(configured, self.environ))

    def caddy_client(self, config: Config | None = None) -> CaddyClient:
        return CaddyClient(
            (config or self.config).caddy_api, transport=self.caddy_transport
        )
