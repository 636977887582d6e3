"""Version command for devx."""

import platform

import click
import orjson

from devx.commands.common import get_context
from devx.core.errors import DevxError
from devx.core.updates import check_for_updates, installed_version


def version_info() -> dict[str, str]:
    """Version of devx and the runtime it runs on."""
    return {
        "version": installed_version(),
        "python_version": platform.python_version(),
        "os": platform.system().lower(),
        "arch": platform.machine(),
    }


@click.command()
@click.option(
    "--output",
    "-o",
    type=click.Choice(["text", "json"]),
    default="text",
    help="Output format",
)
@click.option("--detailed", is_flag=True, help="Show detailed version information")
@click.option("--check-updates", is_flag=True, help="Check for a newer release")
@click.pass_context
def version(
    ctx: click.Context, output: str, detailed: bool, check_updates: bool
) -> None:
    """Show version information."""
    info = version_info()
    if output == "json":
        click.echo(orjson.dumps(info, option=orjson.OPT_INDENT_2).decode())
    elif not detailed:
        click.echo(f"devx version {info['version']}")
    else:
        click.echo("devx version information:")
        click.echo(f"  Version:        {info['version']}")
        click.echo(f"  Python version: {info['python_version']}")
        click.echo(f"  OS/Arch:        {info['os']}/{info['arch']}")

    if not check_updates or output == "json":
        return

    devx = get_context(ctx)
    click.echo()
    click.echo("Checking for updates...")
    try:
        update = check_for_updates(info["version"], devx.index_transport)
    except DevxError as e:
        click.echo(f"Error checking for updates: {e}", err=True)
        return
    click.echo(f"Current version: {update.current_version}")
    click.echo(f"Latest version:  {update.latest_version}")
    if not update.available:
        click.echo("You are running the latest version.")
        return
    click.echo(f"A newer version is available: {update.latest_version}")
    click.echo(f"Release URL: {update.release_url}")
    click.echo("Run 'devx update' to upgrade.")
