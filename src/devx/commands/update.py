"""Update command for devx.

Checks the package index for a newer release and installs it with pip.
"""

import subprocess
import sys

import click

from devx.commands.common import fail, get_context
from devx.core.errors import DevxError
from devx.core.updates import PACKAGE, check_for_updates, installed_version


@click.command()
@click.argument("version", required=False)
@click.option("--check", "check_only", is_flag=True, help="Only check, do not install")
@click.option("--force", is_flag=True, help="Reinstall even when already up to date")
@click.pass_context
def update(
    ctx: click.Context, version: str | None, check_only: bool, force: bool
) -> None:
    """Update devx to the latest release.

    Optionally specify a VERSION to install a specific release.

    Examples:

    \b
        devx update            # Install the latest release
        devx update --check    # Only report whether one is available
        devx update 0.2.0      # Install a specific release
    """
    devx = get_context(ctx)

    if version is None:
        click.echo("Checking for updates...")
        try:
            info = check_for_updates(installed_version(), devx.index_transport)
        except DevxError as e:
            fail(e)
        click.echo(f"Current version: {info.current_version}")
        click.echo(f"Latest version:  {info.latest_version}")
        if not info.available and (check_only or not force):
            click.echo("You are already running the latest version.")
            return
        if check_only:
            click.echo(f"A newer version is available: {info.latest_version}")
            click.echo("Run 'devx update' to upgrade.")
            return
        package_spec = PACKAGE
        click.echo(f"Updating {PACKAGE} to {info.latest_version}...")
    elif check_only:
        fail("--check does not take a VERSION")
    else:
        package_spec = f"{PACKAGE}=={version}"
        click.echo(f"Updating to {PACKAGE} version {version}...")

    args = [sys.executable, "-m", "pip", "install", "--upgrade", package_spec]
    if force:
        args.append("--force-reinstall")
    try:
        result = subprocess.run(args, capture_output=True, text=True)
    except FileNotFoundError:
        fail("pip not found. Please ensure pip is installed.")

    if result.returncode != 0:
        click.echo(result.stderr, err=True)
        raise SystemExit(1)
    click.echo(result.stdout)
    click.echo("Update complete.")
