"""Claude Code integration commands for devx."""

import click

from devx.commands.common import fail, get_context
from devx.core.errors import DevxError
from devx.hooks.install import (
    CLAUDE_DIR,
    DONE_REASON,
    SETTINGS_FILE,
    WAITING_REASON,
    hooks_installed,
    install_hooks,
    preview_changes,
)


@click.group()
def claude() -> None:
    """Manage Claude Code integration."""


@claude.command("init-hooks")
@click.option("--force", "-f", is_flag=True, help="Overwrite existing hooks")
@click.option(
    "--no-backup", is_flag=True, help="Don't back up the existing settings"
)
@click.option(
    "--dry-run", is_flag=True, help="Show what would be done without changing files"
)
@click.option("--quiet", "-q", is_flag=True, help="Suppress output")
@click.pass_context
def init_hooks(
    ctx: click.Context, force: bool, no_backup: bool, dry_run: bool, quiet: bool
) -> None:
    """Install Claude hooks that flag sessions for attention.

    Run from a project directory. When Claude stops, the session is flagged
    'Claude Done'; when Claude waits for input, it is flagged 'Claude is
    waiting for your input'. Existing settings are backed up first.
    """
    devx = get_context(ctx)
    project_path = devx.cwd

    try:
        if dry_run:
            preview = preview_changes(project_path)
            if not quiet:
                click.echo("Dry run - changes that would be made:\n")
                click.echo(preview, nl=False)
            return

        if hooks_installed(project_path) and not force:
            if not quiet:
                click.echo(
                    "Claude hooks are already installed and configured correctly."
                )
                click.echo("Use --force to reinstall them anyway.")
            return

        result = install_hooks(
            project_path, force=force, backup=not no_backup, clock=devx.clock
        )
    except DevxError as e:
        fail(f"failed to install hooks: {e}")

    if quiet:
        return
    click.echo(result.message)
    if result.backup_path is not None:
        click.echo(f"Backup created: {result.backup_path}")
    action = "Created" if result.created else "Updated"
    click.echo(f"\n{action} {CLAUDE_DIR}/{SETTINGS_FILE} with hooks configuration.")
    click.echo("\nThe following hooks have been configured:")
    click.echo(f"• Stop: Sets session flag to '{DONE_REASON}'")
    click.echo(f"• Notification: Sets session flag to '{WAITING_REASON}'")
