"""Session dataclass for devx."""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from pathlib import Path
from typing import Any

from devx.core.errors import ValidationError
from devx.core.naming import is_valid_session_name
from devx.core.ports import MAX_PORT, MIN_PORT

# Fields with a dedicated attribute; anything else in a record lands in extra
KNOWN_FIELDS = {
    "name",
    "project_alias",
    "project_path",
    "branch",
    "path",
    "ports",
    "routes",
    "editor_pid",
    "attention_flag",
    "attention_reason",
    "attention_time",
    "last_attached",
    "created_at",
    "updated_at",
}


def format_time(value: datetime) -> str:
    """Render an instant as ISO-8601, using ``Z`` for UTC."""
    text = value.isoformat()
    if text.endswith("+00:00"):
        text = text[: -len("+00:00")] + "Z"
    return text


def parse_time(value: str | None) -> datetime | None:
    """Parse an ISO-8601 instant. Empty and zero (year 1) values map to None.

    Naive values are taken as UTC.
    """
    if not value:
        return None
    parsed = datetime.fromisoformat(value)
    if parsed.year == 1:
        return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


@dataclass
class Session:
    """A devx session record.

    Attributes:
        name: Session name, also the branch name and tmux session name.
        branch: Branch checked out in the workspace.
        path: Absolute workspace directory (``<project>/.worktrees/<name>``).
        ports: Service name to allocated TCP port.
        created_at: When the record was added.
        updated_at: Advanced on every mutation.
        project_alias: Registry alias, empty for standalone sessions.
        project_path: Repository root the workspace was created from.
        routes: Service name to published hostname.
        editor_pid: Last launched editor pid, 0 if none.
        attention_flag: Set by external agents to ask for the user.
        attention_reason: Short reason for the flag.
        attention_time: When the flag was set.
        last_attached: Last successful attach.
        extra: Unknown record fields, preserved on save.
    """

    name: str
    branch: str
    path: Path
    ports: dict[str, int]
    created_at: datetime
    updated_at: datetime
    project_alias: str = ""
    project_path: Path | None = None
    routes: dict[str, str] = field(default_factory=dict)
    editor_pid: int = 0
    attention_flag: bool = False
    attention_reason: str = ""
    attention_time: datetime | None = None
    last_attached: datetime | None = None
    extra: dict[str, Any] = field(default_factory=dict)

    def __post_init__(self) -> None:
        """Validate name and ports."""
        if not is_valid_session_name(self.name):
            raise ValidationError(f"invalid session name '{self.name}'")
        values = list(self.ports.values())
        if len(set(values)) != len(values):
            raise ValidationError(
                f"session '{self.name}' has duplicate ports: {self.ports}"
            )
        for service, port in self.ports.items():
            if not MIN_PORT <= port <= MAX_PORT:
                raise ValidationError(
                    f"session '{self.name}' port {port} for '{service}' out of range"
                )

    def to_dict(self) -> dict[str, Any]:
        """Serialize, omitting empty optional fields."""
        data: dict[str, Any] = dict(self.extra)
        data.update(
            {
                "name": self.name,
                "branch": self.branch,
                "path": str(self.path),
                "ports": dict(self.ports),
                "created_at": format_time(self.created_at),
                "updated_at": format_time(self.updated_at),
            }
        )
        if self.project_alias:
            data["project_alias"] = self.project_alias
        if self.project_path is not None:
            data["project_path"] = str(self.project_path)
        if self.routes:
            data["routes"] = dict(self.routes)
        if self.editor_pid:
            data["editor_pid"] = self.editor_pid
        if self.attention_flag:
            data["attention_flag"] = True
        if self.attention_reason:
            data["attention_reason"] = self.attention_reason
        if self.attention_time is not None:
            data["attention_time"] = format_time(self.attention_time)
        if self.last_attached is not None:
            data["last_attached"] = format_time(self.last_attached)
        return data

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "Session":
        """Deserialize a record.

        Raises:
            KeyError: If a required field is missing.
            ValueError: If a field has the wrong shape.
        """
        created_at = parse_time(data["created_at"])
        if created_at is None:
            raise ValueError(f"session '{data.get('name')}' has no created_at")
        project_path = data.get("project_path")
        return cls(
            name=data["name"],
            branch=data.get("branch") or data["name"],
            path=Path(data["path"]),
            ports={k: int(v) for k, v in (data.get("ports") or {}).items()},
            created_at=created_at,
            updated_at=parse_time(data.get("updated_at")) or created_at,
            project_alias=data.get("project_alias", ""),
            project_path=Path(project_path) if project_path else None,
            routes=dict(data.get("routes") or {}),
            editor_pid=int(data.get("editor_pid") or 0),
            attention_flag=bool(data.get("attention_flag", False)),
            attention_reason=data.get("attention_reason", ""),
            attention_time=parse_time(data.get("attention_time")),
            last_attached=parse_time(data.get("last_attached")),
            extra={k: v for k, v in data.items() if k not in KNOWN_FIELDS},
        )
