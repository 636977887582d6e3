"""Storage locator for devx files.

Files resolve to a project-level ``.devx/`` directory (found by walking up
from the working directory) when it holds them, and to the user-global
``~/.config/devx/`` directory otherwise.
"""

from pathlib import Path

PROJECT_DIR_NAME = ".devx"

CONFIG_FILE = "config.yaml"
SESSIONS_FILE = "sessions.json"
TEMPLATE_FILE = "session.yaml.tmpl"
PROJECTS_FILE = "projects.json"
CADDY_CONFIG_FILE = "caddy-config.json"
UPDATE_CHECK_FILE = "updatecheck.json"

# Never resolved to a project-level directory
GLOBAL_ONLY = {PROJECTS_FILE, CADDY_CONFIG_FILE, UPDATE_CHECK_FILE}


def get_global_dir() -> Path:
    """Get the user-global devx directory (~/.config/devx)."""
    return Path.home() / ".config" / "devx"


def find_project_dir(start: Path) -> Path | None:
    """Walk from start toward the filesystem root looking for ``.devx/``.

    Returns:
        The ``.devx`` directory, or None if no ancestor has one.
    """
    current = start.resolve()
    for candidate in (current, *current.parents):
        marker = candidate / PROJECT_DIR_NAME
        if marker.is_dir():
            return marker
    return None


class StorageLocator:
    """Resolves devx file names to concrete paths.

    Args:
        cwd: Directory the project-level search starts from.
        global_dir: User-global directory. Defaults to ~/.config/devx.
    """

    def __init__(self, cwd: Path, global_dir: Path | None = None) -> None:
        self.cwd = cwd
        self.global_dir = global_dir or get_global_dir()
        self._project_dir = find_project_dir(cwd)

    def project_dir(self) -> Path | None:
        return self._project_dir

    def global_path(self, filename: str) -> Path:
        return self.global_dir / filename

    def path_for(self, filename: str) -> Path:
        """Resolve filename for both reading and writing.

        The project-level file wins when a ``.devx`` directory was found and
        the file exists in it. Registry and proxy files are always global.
        """
        if filename not in GLOBAL_ONLY and self._project_dir is not None:
            candidate = self._project_dir / filename
            if candidate.exists():
                return candidate
        return self.global_path(filename)

    @property
    def sessions_path(self) -> Path:
        return self.path_for(SESSIONS_FILE)

    @property
    def config_path(self) -> Path:
        return self.path_for(CONFIG_FILE)

    @property
    def template_path(self) -> Path:
        return self.path_for(TEMPLATE_FILE)

    @property
    def projects_path(self) -> Path:
        return self.global_path(PROJECTS_FILE)

    @property
    def caddy_config_path(self) -> Path:
        return self.global_path(CADDY_CONFIG_FILE)

    @property
    def update_check_path(self) -> Path:
        return self.global_path(UPDATE_CHECK_FILE)
