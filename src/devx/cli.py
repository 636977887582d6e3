"""CLI entry point for devx.

Usage:
    devx                              # Launch the TUI
    devx session create <name>        # Create an isolated session
    devx session attach <name>        # Re-enter a session
    devx session rm <name>            # Tear a session down
"""

from pathlib import Path

import click

from devx.commands.caddy import caddy
from devx.commands.check import check
from devx.commands.claude import claude
from devx.commands.common import get_context
from devx.commands.config import config
from devx.commands.project import project
from devx.commands.session import session
from devx.commands.update import update
from devx.commands.version import version


@click.group(invoke_without_command=True)
@click.option(
    "--config",
    "config_file",
    type=click.Path(dir_okay=False, path_type=Path),
    envvar="DEVX_CONFIG",
    default=None,
    help="Explicit config file layered over global and project config",
)
@click.version_option(package_name="devx")
@click.pass_context
def main(ctx: click.Context, config_file: Path | None) -> None:
    """devx - isolated local development sessions.

    Each session is a git worktree with its own ports, hostnames, editor
    and tmux session.

    Running 'devx' without a subcommand launches the TUI.
    """
    ctx.ensure_object(dict)
    ctx.obj["config_file"] = config_file

    if ctx.invoked_subcommand is not None:
        return

    from devx.tui.app import DevxApp

    app = DevxApp(get_context(ctx))
    app.run()


# Register commands
main.add_command(session)
main.add_command(config)
main.add_command(project)
main.add_command(caddy)
main.add_command(check)
main.add_command(claude)
main.add_command(version)
main.add_command(update)
