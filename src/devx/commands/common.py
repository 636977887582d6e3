"""Helpers shared by devx commands."""

from pathlib import Path
from typing import NoReturn

import click

from devx.core.context import Context
from devx.core.errors import DevxError


def fail(error: Exception | str) -> NoReturn:
    """Print an error to stderr and exit with status 1."""
    click.echo(f"Error: {error}", err=True)
    raise SystemExit(1)


def get_context(ctx: click.Context) -> Context:
    """Resolve the devx Context for this invocation.

    A Context placed in ``ctx.obj["context"]`` (by tests or an embedding
    caller) is used as-is; otherwise one is built from the environment.
    """
    ctx.ensure_object(dict)
    if ctx.obj.get("context") is None:
        config_file: Path | None = ctx.obj.get("config_file")
        try:
            ctx.obj["context"] = Context.from_environment(config_file=config_file)
        except DevxError as e:
            fail(e)
    return ctx.obj["context"]


def echo_warnings(warnings: list[str]) -> None:
    for warning in warnings:
        click.echo(f"Warning: {warning}")


def confirm(prompt: str) -> bool:
    """Ask a y/N question. Only y, Y, yes and Yes count as yes."""
    response = click.prompt(prompt, default="", show_default=False)
    return response.strip() in ("y", "Y", "yes", "Yes")
