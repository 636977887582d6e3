"""Check command - probe external dependencies."""

import click

from devx.commands.common import get_context
from devx.core.deps import CheckResult, check_all, missing_required
from devx.core.editor import resolve_editor
from devx.core.updates import installed_version


def _print_result(result: CheckResult) -> None:
    status = "✓" if result.available else "✗"
    line = f"{status} {result.dependency.name}"
    if result.version:
        line += f" ({result.version})"
    click.echo(f"{line} - {result.dependency.description}")
    if not result.available:
        click.echo(f"  └─ {result.dependency.install_hint}")


@click.command()
@click.pass_context
def check(ctx: click.Context) -> None:
    """Check that required and optional dependencies are installed."""
    devx = get_context(ctx)
    editor = resolve_editor(devx.config.editor, devx.environ)
    results = check_all(devx.tools, editor)

    click.echo(f"Dependency Check (devx version {installed_version()}):")
    click.echo()
    for result in results:
        _print_result(result)
    click.echo()

    missing = missing_required(results)
    optional = [
        r.dependency.name
        for r in results
        if not r.dependency.required and not r.available
    ]
    if missing:
        click.echo(f"Missing required dependencies: {', '.join(missing)}")
    if optional:
        click.echo(f"Missing optional dependencies: {', '.join(optional)}")
    if not missing and not optional:
        click.echo("All dependencies are installed.")
    if missing:
        raise SystemExit(1)
