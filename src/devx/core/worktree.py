"""Git worktree provisioning for devx sessions.

Each session gets its own worktree at ``<project>/.worktrees/<name>`` checked
out on a branch of the same name.
"""

import shutil
from dataclasses import dataclass
from pathlib import Path

from devx.core.errors import BranchInUse, SubprocessFailure, WorktreeConflict
from devx.core.tools import Tool

WORKTREES_DIR = ".worktrees"

# Fetch failures that mean "no usable remote" rather than a real error
_FETCH_SKIP = (
    "Could not resolve host",
    "unable to access",
    "does not appear to be a git repository",
)

# Pull failures that leave the branch as it is
_PULL_SKIP = (
    "Couldn't find remote ref",
    "not a valid object name",
    "Would overwrite",
    "diverged",
    "Not possible to fast-forward",
)

# Newer git reports a busy branch as "already used by worktree"
_IN_USE = ("is already checked out", "is already used by worktree")


@dataclass
class WorktreeInfo:
    """One entry of ``git worktree list --porcelain``."""

    path: Path
    branch: str = ""
    head: str = ""


def worktree_path(project_path: Path, name: str) -> Path:
    return project_path / WORKTREES_DIR / name


def parse_porcelain(output: str) -> list[WorktreeInfo]:
    """Parse ``git worktree list --porcelain`` output.

    Records are separated by blank lines. Detached worktrees have an empty
    branch.
    """
    worktrees: list[WorktreeInfo] = []
    current: WorktreeInfo | None = None
    for line in output.splitlines():
        if not line.strip():
            if current is not None:
                worktrees.append(current)
                current = None
            continue
        key, _, value = line.partition(" ")
        if key == "worktree":
            if current is not None:
                worktrees.append(current)
            current = WorktreeInfo(path=Path(value))
        elif current is None:
            continue
        elif key == "HEAD":
            current.head = value
        elif key == "branch":
            current.branch = value.removeprefix("refs/heads/")
    if current is not None:
        worktrees.append(current)
    return worktrees


def list_worktrees(git: Tool, project_path: Path) -> list[WorktreeInfo]:
    """List the worktrees of a repository.

    Raises:
        SubprocessFailure: If git fails.
    """
    result = git.check(["worktree", "list", "--porcelain"], cwd=project_path)
    return parse_porcelain(result.stdout)


def _same_path(a: Path, b: Path) -> bool:
    return a.resolve() == b.resolve()


def find_worktree(git: Tool, project_path: Path, path: Path) -> WorktreeInfo | None:
    for info in list_worktrees(git, project_path):
        if _same_path(info.path, path):
            return info
    return None


def branch_checked_out_at(git: Tool, project_path: Path, branch: str) -> Path | None:
    """Return where branch is checked out, or None."""
    for info in list_worktrees(git, project_path):
        if info.branch == branch:
            return info.path
    return None


def branch_exists(git: Tool, project_path: Path, branch: str) -> bool:
    """Check whether a local branch exists.

    Raises:
        SubprocessFailure: If git fails for a reason other than a missing ref.
    """
    result = git.run(
        ["show-ref", "--verify", "--quiet", f"refs/heads/{branch}"], cwd=project_path
    )
    if result.returncode == 1:
        return False
    if not result.ok:
        raise SubprocessFailure(
            f"failed to check branch '{branch}'",
            stderr=result.stderr,
            returncode=result.returncode,
        )
    return True


def prune_worktrees(git: Tool, project_path: Path) -> None:
    git.check(["worktree", "prune"], cwd=project_path)


def is_git_repo(git: Tool, path: Path) -> bool:
    """Check whether path is inside a git work tree."""
    result = git.run(["rev-parse", "--is-inside-work-tree"], cwd=path)
    return result.ok and result.stdout.strip() == "true"


def repo_root(git: Tool, path: Path) -> Path | None:
    """Top-level directory of the repository containing path, or None."""
    result = git.run(["rev-parse", "--show-toplevel"], cwd=path)
    if not result.ok:
        return None
    return Path(result.stdout.strip())


def create_worktree(
    git: Tool, project_path: Path, name: str, detach: bool = False
) -> tuple[Path, list[str]]:
    """Materialize ``<project>/.worktrees/<name>`` on branch name.

    An existing worktree already on the branch is reused. With detach, a
    worktree on another branch or a stray directory is removed and recreated.

    Args:
        git: The git tool.
        project_path: Repository root.
        name: Session and branch name.
        detach: Replace a conflicting directory instead of failing.

    Returns:
        The worktree path and any warnings.

    Raises:
        WorktreeConflict: If the directory is in the way and detach is False.
        BranchInUse: If the branch is checked out in another worktree.
        SubprocessFailure: If git fails otherwise.
    """
    path = worktree_path(project_path, name)
    warnings: list[str] = []

    if path.exists():
        info = find_worktree(git, project_path, path)
        if info is None:
            try:
                prune_worktrees(git, project_path)
            except SubprocessFailure as e:
                warnings.append(f"failed to prune worktrees: {e}")
            info = find_worktree(git, project_path, path)

        if info is not None:
            if info.branch == name:
                warnings.append(f"reusing existing worktree at {path} (branch: {name})")
                return path, warnings
            if not detach:
                raise WorktreeConflict(
                    f"worktree at {path} exists but is on branch "
                    f"'{info.branch or 'detached HEAD'}', not '{name}'. "
                    f"Use --detach to override"
                )
            git.check(["worktree", "remove", "--force", str(path)], cwd=project_path)
        elif not detach:
            raise WorktreeConflict(
                f"directory {path} exists but is not a git worktree. "
                f"Remove it manually or use --detach"
            )
        else:
            shutil.rmtree(path)

    if branch_exists(git, project_path, name):
        args = ["worktree", "add", str(path), name]
    else:
        args = ["worktree", "add", "-b", name, str(path)]

    result = git.run(args, cwd=project_path)
    if not result.ok:
        if any(marker in result.output for marker in _IN_USE):
            where = branch_checked_out_at(git, project_path, name)
            location = f" at {where}" if where else ""
            raise BranchInUse(f"branch '{name}' is already checked out{location}")
        raise SubprocessFailure(
            f"failed to create worktree for '{name}'",
            stderr=result.output,
            returncode=result.returncode,
        )
    return path, warnings


def remove_worktree(git: Tool, project_path: Path | None, path: Path) -> list[str]:
    """Remove a worktree, falling back to deleting the directory.

    Never raises for git failures; problems come back as warnings.
    """
    warnings: list[str] = []
    if not path.exists():
        return warnings
    cwd = project_path if project_path is not None and project_path.exists() else None
    try:
        result = git.run(["worktree", "remove", "--force", str(path)], cwd=cwd)
        removed = result.ok
    except SubprocessFailure as e:
        warnings.append(str(e))
        removed = False
    if not removed or path.exists():
        try:
            shutil.rmtree(path)
        except OSError as e:
            warnings.append(f"failed to remove worktree {path}: {e}")
    return warnings


def pull_branch(git: Tool, project_path: Path, branch: str) -> list[str]:
    """Fast-forward branch from origin before creating a session.

    Missing remotes, missing remote branches and divergence are skipped
    silently.

    Returns:
        Warnings for failures that were not expected skips.
    """
    status = git.run(["status", "--porcelain"], cwd=project_path)
    if not status.ok:
        return [f"failed to check git status: {status.stderr.strip()}"]
    if status.stdout.strip():
        return ["skipping pull: repository has uncommitted changes"]

    fetch = git.run(["fetch", "origin"], cwd=project_path)
    if not fetch.ok:
        if any(marker in fetch.output for marker in _FETCH_SKIP):
            return []
        return [f"failed to fetch from origin: {fetch.output.strip()}"]

    pull = git.run(["pull", "origin", branch, "--ff-only"], cwd=project_path)
    if not pull.ok:
        if any(marker in pull.output for marker in _PULL_SKIP):
            return []
        return [f"failed to pull from origin/{branch}: {pull.output.strip()}"]
    return []
