"""Claude Code hook installation for devx.

Installs Stop and Notification hooks into a project's
``.claude/settings.local.json`` so Claude running inside a session flags it
for attention when it finishes or waits for input.
"""

import shutil
from dataclasses import dataclass
from datetime import datetime
from pathlib import Path
from typing import Any, Callable

import orjson

from devx.core.errors import StoreCorruption
from devx.core.fsutil import atomic_write_bytes
from devx.core.state import utcnow

CLAUDE_DIR = ".claude"
SETTINGS_FILE = "settings.local.json"

DONE_REASON = "Claude Done"
WAITING_REASON = "Claude is waiting for your input"

# Prefix shared by every hook command devx installs
FLAG_COMMAND = "devx session flag --force $SESSION_NAME"

HOOK_CONFIG = {
    "Stop": [
        {
            "hooks": [
                {"type": "command", "command": f"{FLAG_COMMAND} '{DONE_REASON}'"}
            ],
        }
    ],
    "Notification": [
        {
            "hooks": [
                {"type": "command", "command": f"{FLAG_COMMAND} '{WAITING_REASON}'"}
            ],
        }
    ],
}

HOOK_REASONS = {"Stop": DONE_REASON, "Notification": WAITING_REASON}


@dataclass
class InstallResult:
    """Outcome of installing hooks.

    Attributes:
        settings_path: The settings file written.
        created: The settings file did not exist before.
        already_installed: Matching hooks were present and nothing was written.
        backup_path: Copy of the previous settings, if one was made.
    """

    settings_path: Path
    created: bool = False
    already_installed: bool = False
    backup_path: Path | None = None

    @property
    def message(self) -> str:
        if self.already_installed:
            return "Claude hooks are already installed and configured correctly."
        if self.created:
            return "Claude hooks installed successfully"
        return "Claude hooks updated successfully"


def get_settings_path(project_path: Path) -> Path:
    """Path to the project's local Claude settings."""
    return project_path / CLAUDE_DIR / SETTINGS_FILE


def read_settings(settings_path: Path) -> dict[str, Any]:
    """Read a settings file. A missing or empty file is an empty object.

    Raises:
        StoreCorruption: If the file is not a JSON object.
    """
    if not settings_path.exists():
        return {}
    content = settings_path.read_bytes()
    if not content.strip():
        return {}
    try:
        settings = orjson.loads(content)
    except orjson.JSONDecodeError as e:
        raise StoreCorruption(
            f"failed to parse Claude settings {settings_path}: {e}"
        ) from e
    if not isinstance(settings, dict):
        raise StoreCorruption(
            f"failed to parse Claude settings {settings_path}: not an object"
        )
    return settings


def _commands(entry: Any) -> list[str]:
    if not isinstance(entry, dict):
        return []
    return [
        h.get("command", "")
        for h in entry.get("hooks") or []
        if isinstance(h, dict) and h.get("type") == "command"
    ]


def _is_devx_entry(entry: Any) -> bool:
    return any(c.startswith(FLAG_COMMAND) for c in _commands(entry))


def hooks_match(settings: dict[str, Any]) -> bool:
    """Check every devx hook is present with its reason."""
    hooks = settings.get("hooks")
    if not isinstance(hooks, dict):
        return False
    for event, reason in HOOK_REASONS.items():
        commands = [c for entry in hooks.get(event) or [] for c in _commands(entry)]
        if not any(c.startswith(FLAG_COMMAND) and reason in c for c in commands):
            return False
    return True


def hooks_installed(project_path: Path) -> bool:
    """Check the project's settings already carry the devx hooks.

    Raises:
        StoreCorruption: If the settings file does not parse.
    """
    return hooks_match(read_settings(get_settings_path(project_path)))


def merge_hooks(settings: dict[str, Any]) -> dict[str, Any]:
    """Settings with the devx hooks in place.

    Other keys, other events and other hooks on the same events are kept;
    earlier devx entries are replaced.
    """
    merged = dict(settings)
    hooks = dict(merged.get("hooks") or {})
    for event, event_hooks in HOOK_CONFIG.items():
        kept = [e for e in hooks.get(event) or [] if not _is_devx_entry(e)]
        hooks[event] = kept + event_hooks
    merged["hooks"] = hooks
    return merged


def install_hooks(
    project_path: Path,
    force: bool = False,
    backup: bool = True,
    clock: Callable[[], datetime] = utcnow,
) -> InstallResult:
    """Install the devx hooks into the project's Claude settings.

    Existing settings are copied to ``settings.local.json.backup.<unix time>``
    before they are rewritten, unless backup is False.

    Args:
        project_path: Directory holding (or to hold) ``.claude/``.
        force: Rewrite even when matching hooks are already installed.
        backup: Copy an existing settings file first.
        clock: Source of the backup timestamp.

    Raises:
        StoreCorruption: If the existing settings file does not parse.
    """
    settings_path = get_settings_path(project_path)
    result = InstallResult(settings_path, created=not settings_path.exists())
    settings = read_settings(settings_path)

    if hooks_match(settings) and not force:
        result.already_installed = True
        return result

    if backup and not result.created:
        stamp = int(clock().timestamp())
        result.backup_path = settings_path.with_name(
            f"{SETTINGS_FILE}.backup.{stamp}"
        )
        shutil.copyfile(settings_path, result.backup_path)

    atomic_write_bytes(
        settings_path, orjson.dumps(merge_hooks(settings), option=orjson.OPT_INDENT_2)
    )
    return result


def preview_changes(project_path: Path) -> str:
    """Describe what install_hooks would write, without writing anything.

    Raises:
        StoreCorruption: If the existing settings file does not parse.
    """
    claude_dir = project_path / CLAUDE_DIR
    settings_path = get_settings_path(project_path)
    settings = read_settings(settings_path)

    lines = []
    if not claude_dir.exists():
        lines.append(f"Will create: {CLAUDE_DIR}/")
    if not settings_path.exists():
        lines.append(f"Will create: {CLAUDE_DIR}/{SETTINGS_FILE}")
        lines += ["", "New file contents:"]
    else:
        lines.append(f"Will update: {CLAUDE_DIR}/{SETTINGS_FILE}")
        lines.append("Will create: backup file")
        lines += ["", "Updated file contents:"]

    document = orjson.dumps(merge_hooks(settings), option=orjson.OPT_INDENT_2)
    lines += ["```json", document.decode(), "```"]
    return "\n".join(lines) + "\n"
