"""devx configuration management.

Configuration is layered, lowest to highest:

- built-in defaults
- global ``~/.config/devx/config.yaml``
- project ``<project>/.devx/config.yaml``
- an explicit ``--config`` file
- ``DEVX_<KEY>`` environment variables
"""

from dataclasses import asdict, dataclass, field, fields
from pathlib import Path
from typing import Any, Mapping

import orjson
import yaml

from devx.core.errors import StoreCorruption, ValidationError
from devx.core.fsutil import atomic_write_text
from devx.core.locator import CONFIG_FILE, PROJECT_DIR_NAME, StorageLocator

ENV_PREFIX = "DEVX_"

VALID_SCHEMES = {"http", "https"}

LIST_KEYS = {"ports", "bootstrap_files"}
BOOL_KEYS = {"disable_caddy"}

_TRUE_WORDS = {"1", "true", "yes", "on"}
_FALSE_WORDS = {"0", "false", "no", "off", ""}


@dataclass
class Config:
    """Effective devx configuration.

    Attributes:
        basedomain: Domain routes are served under.
        caddy_api: Base URL of the proxy admin API.
        caddy_admin: Admin listen address written into the proxy config.
        tmuxp_template: Path to a layout template overriding the located one.
        ports: Service names that get a port in every new session.
        editor: Editor command. Falls back to VISUAL, then EDITOR.
        bootstrap_files: Project-relative files copied into new workspaces.
        cleanup_command: Shell command run when a session is removed.
        disable_caddy: Skip route publication entirely.
        host_scheme: Scheme used in ``<SVC>_HOST`` values.
    """

    basedomain: str = "localhost"
    caddy_api: str = "http://localhost:2019"
    caddy_admin: str = "localhost:2019"
    tmuxp_template: str = ""
    ports: list[str] = field(default_factory=lambda: ["ui", "api"])
    editor: str = ""
    bootstrap_files: list[str] = field(default_factory=list)
    cleanup_command: str = ""
    disable_caddy: bool = False
    host_scheme: str = "http"

    def __post_init__(self) -> None:
        """Validate scheme and service names."""
        if self.host_scheme not in VALID_SCHEMES:
            raise ValidationError(
                f"invalid host_scheme: {self.host_scheme}. "
                f"Must be one of {sorted(VALID_SCHEMES)}"
            )
        if len(set(self.ports)) != len(self.ports):
            raise ValidationError(f"duplicate service names in ports: {self.ports}")

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "Config":
        """Build a Config from a mapping, ignoring unknown keys."""
        known = {f.name for f in fields(cls)}
        values = {}
        for key, value in data.items():
            if key not in known or value is None:
                continue
            if key in LIST_KEYS and isinstance(value, str):
                value = coerce_value(key, value)
            elif key in LIST_KEYS:
                value = [str(item) for item in value]
            elif key in BOOL_KEYS:
                value = _to_bool(key, value)
            else:
                value = str(value)
            values[key] = value
        return cls(**values)

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)

    def template_path(self) -> Path | None:
        """The configured layout template with ``~`` expanded, if set."""
        if not self.tmuxp_template:
            return None
        return Path(self.tmuxp_template).expanduser()


def known_keys() -> list[str]:
    return [f.name for f in fields(Config)]


def _to_bool(key: str, value: Any) -> bool:
    if isinstance(value, bool):
        return value
    word = str(value).strip().lower()
    if word in _TRUE_WORDS:
        return True
    if word in _FALSE_WORDS:
        return False
    raise ValidationError(f"invalid boolean for {key}: {value!r}")


def coerce_value(key: str, raw: str) -> Any:
    """Convert a command-line or environment string into the key's type.

    List keys accept a JSON array (``["ui","api"]``) or a comma separated
    list. Bool keys accept 1/true/yes/on and 0/false/no/off.

    Raises:
        ValidationError: If the key is unknown or the value does not parse.
    """
    if key not in known_keys():
        raise ValidationError(f"unknown configuration key: {key}")
    if key in LIST_KEYS:
        text = raw.strip()
        if text.startswith("[") and text.endswith("]"):
            try:
                items = orjson.loads(text)
            except orjson.JSONDecodeError as e:
                raise ValidationError(f"invalid JSON array for {key}: {e}") from e
            return [str(item) for item in items]
        return [item.strip() for item in text.split(",") if item.strip()]
    if key in BOOL_KEYS:
        return _to_bool(key, raw)
    return raw


def read_yaml(path: Path) -> dict[str, Any]:
    """Read a YAML mapping, returning an empty dict if the file is missing.

    Raises:
        StoreCorruption: If the file is not valid YAML or not a mapping.
    """
    if not path.exists():
        return {}
    try:
        data = yaml.safe_load(path.read_text())
    except yaml.YAMLError as e:
        raise StoreCorruption(f"failed to parse {path}: {e}") from e
    if data is None:
        return {}
    if not isinstance(data, dict):
        raise StoreCorruption(f"failed to parse {path}: expected a mapping")
    return data


def write_yaml(path: Path, data: Mapping[str, Any]) -> None:
    atomic_write_text(path, yaml.safe_dump(dict(data), sort_keys=True))


def env_overrides(environ: Mapping[str, str]) -> dict[str, Any]:
    """Collect ``DEVX_<KEY>`` values for known keys."""
    overrides = {}
    for key in known_keys():
        env_name = ENV_PREFIX + key.upper()
        if env_name in environ:
            overrides[key] = coerce_value(key, environ[env_name])
    return overrides


def config_layers(
    locator: StorageLocator,
    project_path: Path | None = None,
    config_file: Path | None = None,
) -> list[Path]:
    """Config files consulted, lowest precedence first."""
    layers = [locator.global_path(CONFIG_FILE)]
    if project_path is not None:
        project_file = project_path / PROJECT_DIR_NAME / CONFIG_FILE
    elif (project_dir := locator.project_dir()) is not None:
        project_file = project_dir / CONFIG_FILE
    else:
        project_file = None
    if project_file is not None and project_file not in layers:
        layers.append(project_file)
    if config_file is not None:
        layers.append(config_file)
    return layers


def load_config(
    locator: StorageLocator,
    project_path: Path | None = None,
    config_file: Path | None = None,
    environ: Mapping[str, str] | None = None,
) -> Config:
    """Load the effective configuration.

    Args:
        locator: Storage locator for the current directory.
        project_path: Root of the project a session belongs to. Its
            ``.devx/config.yaml`` overrides the global file.
        config_file: Explicit file from ``--config``.
        environ: Environment to read ``DEVX_*`` overrides from.

    Returns:
        The merged Config.

    Raises:
        StoreCorruption: If any layer fails to parse.
        ValidationError: If a value has the wrong shape.
    """
    if config_file is not None and not config_file.exists():
        raise ValidationError(f"config file not found: {config_file}")
    merged: dict[str, Any] = {}
    for path in config_layers(locator, project_path, config_file):
        merged.update(read_yaml(path))
    merged.update(env_overrides(environ or {}))
    return Config.from_dict(merged)


def set_config_value(path: Path, key: str, raw: str) -> Any:
    """Set one key in a config file, preserving the others.

    Returns:
        The coerced value written.
    """
    value = coerce_value(key, raw)
    data = read_yaml(path)
    data[key] = value
    write_yaml(path, data)
    return value
