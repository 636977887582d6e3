"""Shared pytest fixtures for devx tests."""

import shutil
import subprocess
from pathlib import Path

import pytest

from devx.core.config import Config
from devx.core.context import Context
from devx.core.locator import StorageLocator
from devx.core.tools import Tool, Tools
from helpers import Clock, FakeEditor, FakeTool, PortProbe, git, result


@pytest.fixture(autouse=True)
def isolated_home(tmp_path, monkeypatch):
    """Point HOME at a temp directory so nothing touches ~/.config/devx.

    Also clears variables that change devx behaviour from the outside.
    """
    home = tmp_path / "home"
    home.mkdir()
    monkeypatch.setenv("HOME", str(home))
    for var in ("TMUX", "VISUAL", "EDITOR", "DEVX_TMUX_SOCKET", "DEVX_CONFIG"):
        monkeypatch.delenv(var, raising=False)
    FakeEditor.reset()
    return home


@pytest.fixture
def global_dir(tmp_path) -> Path:
    path = tmp_path / "global"
    path.mkdir()
    return path


@pytest.fixture
def git_repo(tmp_path) -> Path:
    """A git repository with one commit on main."""
    if shutil.which("git") is None:
        pytest.skip("git not installed")
    repo = tmp_path / "repo"
    repo.mkdir()
    git(repo, "init", "-q", "-b", "main")
    (repo / "README.md").write_text("# test repo\n")
    git(repo, "add", "README.md")
    git(repo, "commit", "-q", "-m", "initial commit")
    return repo.resolve()


@pytest.fixture
def fake_tools() -> Tools:
    """Real git; every other collaborator is a recording fake.

    tmux reports no sessions, direnv is not installed.
    """

    def tmux_handler(cmd):
        if cmd[1] in ("has-session", "list-sessions", "display-message"):
            return result(cmd, 1, stderr="no server running")
        return None

    return Tools(
        git=Tool("git"),
        tmux=FakeTool("tmux", tmux_handler),
        tmuxp=FakeTool("tmuxp"),
        direnv=FakeTool("direnv", installed=False),
        caddy=FakeTool("caddy"),
        shell=FakeTool("sh"),
    )


@pytest.fixture
def make_context(global_dir, fake_tools):
    """Factory for a Context rooted at a directory with fake collaborators."""

    def factory(cwd: Path, config: Config | None = None, **overrides) -> Context:
        values = dict(
            cwd=cwd,
            locator=StorageLocator(cwd, global_dir=global_dir),
            config=config or Config(),
            tools=fake_tools,
            environ={},
            clock=Clock(),
            settle_seconds=0,
            editor_factory=FakeEditor,
            port_probe=PortProbe(),
        )
        values.update(overrides)
        return Context(**values)

    return factory


@pytest.fixture
def ctx(git_repo, make_context) -> Context:
    """Context inside a fresh git repository."""
    return make_context(git_repo)


@pytest.fixture
def worker_id(request):
    """Get the pytest-xdist worker ID, or 'master' if not running in parallel."""
    # pytest-xdist sets workerinput on the config when running in parallel
    if hasattr(request.config, "workerinput"):
        return request.config.workerinput["workerid"]
    return "master"


@pytest.fixture
def tmux_socket(worker_id):
    """A real tmux bound to a per-worker socket, its server killed around the test.

    Tests never touch the user's own tmux server.
    """
    if shutil.which("tmux") is None:
        pytest.skip("tmux not installed")
    socket = f"devx-test-{worker_id}"
    subprocess.run(["tmux", "-L", socket, "kill-server"], capture_output=True)
    yield Tool("tmux", ["-L", socket])
    subprocess.run(["tmux", "-L", socket, "kill-server"], capture_output=True)
