"""Config commands for devx."""

import click
import yaml

from devx.commands.common import fail, get_context
from devx.core.config import set_config_value
from devx.core.errors import DevxError
from devx.core.fsutil import atomic_write_text
from devx.core.locator import TEMPLATE_FILE
from devx.core.tmuxp import DEFAULT_TEMPLATE


@click.group()
def config() -> None:
    """View and change devx configuration."""


@config.command()
@click.pass_context
def view(ctx: click.Context) -> None:
    """Print the effective configuration as YAML."""
    devx = get_context(ctx)
    click.echo(yaml.safe_dump(devx.config.to_dict(), sort_keys=True), nl=False)


@config.command()
@click.argument("key")
@click.pass_context
def get(ctx: click.Context, key: str) -> None:
    """Print one configuration value."""
    devx = get_context(ctx)
    values = devx.config.to_dict()
    if key not in values:
        fail(f"key '{key}' not found")
    value = values[key]
    if isinstance(value, list):
        click.echo(",".join(value))
    elif isinstance(value, bool):
        click.echo(str(value).lower())
    else:
        click.echo(value)


@config.command("set")
@click.argument("key")
@click.argument("value")
@click.pass_context
def set_cmd(ctx: click.Context, key: str, value: str) -> None:
    """Set a configuration value in the active config file.

    The project file is used when the current directory has a .devx
    directory containing a config.yaml, otherwise the global file.

    Examples:

        devx config set editor "code -n"

        devx config set ports ui,api,worker

        devx config set ports '["ui","api"]'
    """
    devx = get_context(ctx)
    path = devx.locator.config_path
    try:
        written = set_config_value(path, key, value)
    except DevxError as e:
        fail(e)
    click.echo(f"Set {key} = {written}")


@config.command()
@click.option("--force", is_flag=True, help="Overwrite an existing template")
@click.pass_context
def init(ctx: click.Context, force: bool) -> None:
    """Write the default tmuxp layout template for customization."""
    devx = get_context(ctx)
    path = devx.locator.global_path(TEMPLATE_FILE)
    if path.exists() and not force:
        click.echo(f"Template file already exists at {path}")
        click.echo("Use --force to overwrite")
        return
    atomic_write_text(path, DEFAULT_TEMPLATE)
    click.echo(f"Created default tmuxp template at {path}")
    click.echo("You can now customize this template to suit your workflow.")
