"""Project commands for devx.

Projects are registered repositories sessions can be created in from
anywhere with ``devx session create NAME --project ALIAS``.
"""

from pathlib import Path

import click

from devx.commands.common import fail, get_context
from devx.core.errors import DevxError
from devx.core.locator import CONFIG_FILE, PROJECT_DIR_NAME
from devx.core.projects import Project
from devx.core.worktree import is_git_repo

SETTABLE_KEYS = ["name", "description", "default-branch", "auto-pull"]


@click.group()
def project() -> None:
    """Manage registered projects."""


@project.command()
@click.argument("path", type=click.Path(path_type=Path))
@click.option("--alias", "-a", required=True, help="Short alias for the project")
@click.option("--name", "-n", default="", help="Display name (defaults to alias)")
@click.option("--desc", "-d", default="", help="Project description")
@click.option("--default-branch", default="main", help="Branch to pull from")
@click.pass_context
def add(
    ctx: click.Context,
    path: Path,
    alias: str,
    name: str,
    desc: str,
    default_branch: str,
) -> None:
    """Register a project.

    Examples:

        devx project add ~/src/web --alias web

        devx project add . --alias api --desc "Backend API"
    """
    devx = get_context(ctx)
    path = (devx.cwd / path.expanduser()).resolve()
    try:
        registry = devx.load_registry()
        if path.is_dir() and not is_git_repo(devx.tools.git, path):
            click.echo(f"Warning: {path} does not appear to be a git repository")
        added = registry.add(
            alias,
            Project(
                name=name or alias,
                path=path,
                description=desc,
                default_branch=default_branch,
            ),
        )
    except DevxError as e:
        fail(e)

    click.echo(f"Successfully added project '{alias}' ({added.name})")
    click.echo(f"Path: {added.path}")
    if (added.path / PROJECT_DIR_NAME / CONFIG_FILE).exists():
        click.echo("Found .devx configuration in project")
    else:
        click.echo(
            "\nTip: Create a .devx/config.yaml in your project to define "
            "custom services and settings"
        )


@project.command("list")
@click.pass_context
def list_cmd(ctx: click.Context) -> None:
    """List registered projects with their session counts."""
    devx = get_context(ctx)
    try:
        registry = devx.load_registry()
        store = devx.load_store()
    except DevxError as e:
        fail(e)

    if not registry.projects:
        click.echo("No projects registered.")
        click.echo("\nAdd a project with: devx project add <path> --alias <alias>")
        return

    for alias in sorted(registry.projects):
        p = registry.projects[alias]
        count = sum(1 for s in store if s.project_alias == alias)
        click.echo(f"{alias} ({p.name})")
        click.echo(f"  Path: {p.path}")
        if p.description:
            click.echo(f"  Description: {p.description}")
        click.echo(f"  Default branch: {p.default_branch}")
        if p.auto_pull:
            click.echo("  Auto-pull: enabled")
        click.echo(f"  Sessions: {count}")


@project.command()
@click.argument("alias")
@click.option("--force", "-f", is_flag=True, help="Remove even with active sessions")
@click.pass_context
def remove(ctx: click.Context, alias: str, force: bool) -> None:
    """Unregister a project. Its sessions and worktrees are left alone."""
    devx = get_context(ctx)
    try:
        registry = devx.load_registry()
        registry.get(alias)
        if not force:
            count = sum(1 for s in devx.load_store() if s.project_alias == alias)
            if count:
                fail(
                    f"project '{alias}' has {count} active session(s). "
                    "Use --force to remove anyway"
                )
        removed = registry.remove(alias)
    except DevxError as e:
        fail(e)
    click.echo(f"Removed project '{alias}' ({removed.name})")


@project.command("set")
@click.argument("alias")
@click.argument("key", type=click.Choice(SETTABLE_KEYS))
@click.argument("value")
@click.pass_context
def set_cmd(ctx: click.Context, alias: str, key: str, value: str) -> None:
    """Set a project attribute.

    KEY is one of name, description, default-branch or auto-pull.

    Examples:

        devx project set web default-branch develop

        devx project set web auto-pull true
    """
    devx = get_context(ctx)
    try:
        registry = devx.load_registry()
        p = registry.get(alias)
    except DevxError as e:
        fail(e)

    if key == "name":
        p.name = value
    elif key == "description":
        p.description = value
    elif key == "default-branch":
        p.default_branch = value
    else:
        if value.lower() not in ("true", "false"):
            fail("auto-pull must be true or false")
        p.auto_pull = value.lower() == "true"
        value = str(p.auto_pull).lower()

    registry.save()
    click.echo(f"Set project '{alias}' {key.replace('-', ' ')} to: {value}")
