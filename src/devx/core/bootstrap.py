"""Copy configured bootstrap files into new workspaces.

Bootstrap files are untracked project files (``.env.local``, credentials,
local settings) a fresh worktree needs but git does not carry.
"""

import os
import shutil
from dataclasses import dataclass, field
from pathlib import Path, PurePosixPath
from typing import Iterable

from devx.core.errors import ValidationError


@dataclass
class BootstrapResult:
    """Outcome of copying bootstrap files."""

    copied: list[str] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)


def clean_relative(rel_path: str) -> Path:
    """Normalize a bootstrap path and reject anything leaving the project.

    Raises:
        ValidationError: If the path is absolute or escapes via ``..``.
    """
    if os.path.isabs(rel_path):
        raise ValidationError(f"bootstrap file path must be relative: {rel_path}")
    cleaned = os.path.normpath(rel_path)
    if cleaned == ".." or cleaned.startswith(".." + os.sep):
        raise ValidationError(
            f"bootstrap file path cannot escape project root: {rel_path}"
        )
    return Path(PurePosixPath(cleaned))


def copy_bootstrap_files(
    project_root: Path, workspace: Path, rel_paths: Iterable[str]
) -> BootstrapResult:
    """Copy each relative path from project_root to workspace.

    Sub-directories are created and permission bits preserved. Missing
    sources are reported as warnings.

    Raises:
        ValidationError: On an absolute or escaping path. Files before it
            have already been copied.
    """
    result = BootstrapResult()
    for raw in rel_paths:
        rel_path = raw.strip()
        if not rel_path:
            continue
        cleaned = clean_relative(rel_path)
        source = project_root / cleaned
        dest = workspace / cleaned
        if not source.exists():
            result.warnings.append(f"bootstrap file not found: {rel_path}")
            continue
        dest.parent.mkdir(parents=True, exist_ok=True)
        if source.is_dir():
            shutil.copytree(source, dest, dirs_exist_ok=True)
        else:
            shutil.copy2(source, dest)
        result.copied.append(rel_path)
    return result
