"""Project registry.

Registered projects live in the global ``projects.json``:

    {"projects": {"<alias>": {"name": ..., "path": ..., ...}}}
"""

from dataclasses import dataclass
from pathlib import Path
from typing import Any

import orjson

from devx.core.errors import NotFound, StoreCorruption, ValidationError
from devx.core.fsutil import atomic_write_bytes
from devx.core.naming import normalize_dns

DEFAULT_BRANCH = "main"


@dataclass
class Project:
    """A registered source repository.

    Attributes:
        name: Display name.
        path: Absolute repository root.
        description: Free-form description.
        default_branch: Branch pulled before creating sessions.
        auto_pull: Fast-forward the default branch before every create.
    """

    name: str
    path: Path
    description: str = ""
    default_branch: str = DEFAULT_BRANCH
    auto_pull: bool = False

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {"name": self.name, "path": str(self.path)}
        if self.description:
            data["description"] = self.description
        if self.default_branch:
            data["default_branch"] = self.default_branch
        if self.auto_pull:
            data["auto_pull"] = True
        return data

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "Project":
        return cls(
            name=data.get("name", ""),
            path=Path(data["path"]),
            description=data.get("description", ""),
            default_branch=data.get("default_branch") or DEFAULT_BRANCH,
            auto_pull=bool(data.get("auto_pull", False)),
        )


def validate_alias(alias: str) -> str:
    """Check that alias is already in DNS-safe form.

    Raises:
        ValidationError: If alias is empty or would change under normalize_dns.
    """
    if not alias or normalize_dns(alias) != alias:
        raise ValidationError(
            f"invalid project alias '{alias}': use lowercase letters, digits and '-'"
        )
    return alias


class ProjectRegistry:
    """Alias to Project mapping backed by a JSON file."""

    def __init__(self, path: Path, projects: dict[str, Project] | None = None) -> None:
        self.path = path
        self.projects: dict[str, Project] = projects or {}

    @classmethod
    def load(cls, path: Path) -> "ProjectRegistry":
        """Load the registry, returning an empty one if the file is missing.

        Raises:
            StoreCorruption: If the file exists but does not parse.
        """
        if not path.exists():
            return cls(path)
        content = path.read_bytes()
        if not content.strip():
            return cls(path)
        try:
            data = orjson.loads(content)
            projects = {
                alias: Project.from_dict(entry)
                for alias, entry in (data.get("projects") or {}).items()
            }
        except (orjson.JSONDecodeError, AttributeError, KeyError, TypeError) as e:
            raise StoreCorruption(f"failed to parse projects file {path}: {e}") from e
        return cls(path, projects)

    def save(self) -> None:
        document = {
            "projects": {
                alias: project.to_dict() for alias, project in self.projects.items()
            }
        }
        atomic_write_bytes(
            self.path,
            orjson.dumps(document, option=orjson.OPT_INDENT_2 | orjson.OPT_SORT_KEYS),
        )

    def add(self, alias: str, project: Project) -> Project:
        """Register a project and save.

        The path is made absolute.

        Raises:
            ValidationError: On a bad alias, a missing path, or a duplicate
                alias or path.
        """
        validate_alias(alias)
        if alias in self.projects:
            raise ValidationError(f"project '{alias}' already exists")
        if not project.path.exists():
            raise ValidationError(f"project path does not exist: {project.path}")
        if not project.path.is_dir():
            raise ValidationError(f"project path is not a directory: {project.path}")
        project.path = project.path.resolve()
        if (existing := self.find_by_path(project.path)) is not None:
            raise ValidationError(
                f"path {project.path} is already registered as '{existing[0]}'"
            )
        self.projects[alias] = project
        self.save()
        return project

    def remove(self, alias: str) -> Project:
        """Unregister a project and save.

        Raises:
            NotFound: If alias is not registered.
        """
        project = self.get(alias)
        del self.projects[alias]
        self.save()
        return project

    def get(self, alias: str) -> Project:
        """Raises NotFound if alias is not registered."""
        try:
            return self.projects[alias]
        except KeyError:
            raise NotFound(f"project '{alias}' not found") from None

    def find_by_path(self, path: Path) -> tuple[str, Project] | None:
        target = path.resolve()
        for alias, project in self.projects.items():
            if project.path.resolve() == target:
                return alias, project
        return None

    def find_containing(self, path: Path) -> tuple[str, Project] | None:
        """Find the innermost registered project that contains path."""
        target = path.resolve()
        best: tuple[str, Project] | None = None
        for alias, project in self.projects.items():
            root = project.path.resolve()
            if target == root or root in target.parents:
                if best is None or len(root.parts) > len(best[1].path.resolve().parts):
                    best = (alias, project)
        return best
